"""
Error taxonomy shared by the store, the project registry and the HTTP layer.

The store raises these; only kanban_server.py turns them into responses.
Unexpected filesystem failures are not wrapped and surface as OSError.
"""


class KanbanError(Exception):
    """Base class for expected, caller-visible failures."""
    pass


class TaskNotFound(KanbanError):
    """Raised when a referenced task file does not exist."""

    def __init__(self, status: str, filename: str):
        super().__init__(f"Task not found: {status}/{filename}")
        self.status = status
        self.filename = filename


class ProjectNotFound(KanbanError):
    """Raised when a project id is not in the registry."""

    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class ValidationError(KanbanError):
    """Raised before any file mutation when input is unusable."""
    pass


class Conflict(KanbanError):
    """Raised when an operation would overwrite an existing entry."""
    pass

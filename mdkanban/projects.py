"""
Global project registry.

Stored as JSON at ~/.kanban-ui/config.json:

    {
      "currentProject": "/home/me/code/app",
      "projects": [
        {"id": "app", "name": "App", "path": "/home/me/code/app",
         "lastAccessed": "2024-06-10T09:00:00.000Z"}
      ]
    }

A project's tasks live in <path>/tasks. The registry is the "current task
root" accessor handed to TaskStore.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import Conflict, ProjectNotFound, ValidationError
from .naming import slugify
from .schema import STATUSES, now_iso

logger = logging.getLogger(__name__)

DEFAULT_GLOBAL_CONFIG = Path.home() / ".kanban-ui" / "config.json"
TASKS_DIRNAME = "tasks"


def validate_project_path(project_path: Union[str, Path], create_if_missing: bool = False) -> Dict[str, Any]:
    """Check for <path>/tasks, optionally creating it with all status dirs."""
    tasks_dir = Path(project_path) / TASKS_DIRNAME
    if tasks_dir.exists():
        if not tasks_dir.is_dir():
            return {"valid": False, "error": "tasks path exists but is not a directory"}
        return {"valid": True, "tasksDir": str(tasks_dir)}
    if create_if_missing:
        for status in STATUSES:
            (tasks_dir / status.value).mkdir(parents=True, exist_ok=True)
        return {"valid": True, "tasksDir": str(tasks_dir), "created": True}
    return {"valid": False, "error": "tasks directory does not exist", "canCreate": True}


class ProjectRegistry:
    """Reads and writes the global project list."""

    def __init__(self, config_path: Union[str, Path, None] = None):
        self.config_path = Path(config_path) if config_path else DEFAULT_GLOBAL_CONFIG

    def ensure(self, default_project_path: Union[str, Path, None] = None) -> None:
        """Create the config with a single default project on first run."""
        if self.config_path.exists():
            return
        project_path = str(Path(default_project_path or Path.cwd()).resolve())
        self._save({
            "currentProject": project_path,
            "projects": [{
                "id": "default-project",
                "name": "Default Project",
                "path": project_path,
                "lastAccessed": now_iso(),
            }],
        })
        logger.info(f"Created global config at {self.config_path}")

    def _load(self) -> Dict[str, Any]:
        with open(self.config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        data.setdefault("projects", [])
        data.setdefault("currentProject", None)
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    @staticmethod
    def _find(data: Dict[str, Any], project_id: str) -> Dict[str, Any]:
        for project in data["projects"]:
            if project["id"] == project_id:
                return project
        raise ProjectNotFound(project_id)

    # ── Queries ──────────────────────────────────────────────────────────

    def list_projects(self) -> List[Dict[str, Any]]:
        return self._load()["projects"]

    def get_project(self, project_id: str) -> Dict[str, Any]:
        return self._find(self._load(), project_id)

    def current_project(self) -> Optional[Dict[str, Any]]:
        data = self._load()
        for project in data["projects"]:
            if project["path"] == data["currentProject"]:
                return project
        return None

    def current_path(self) -> Path:
        current = self._load()["currentProject"]
        if not current:
            raise ProjectNotFound("(current)")
        return Path(current)

    def tasks_dir(self) -> Path:
        """Task root of the current project; handed to TaskStore."""
        return self.current_path() / TASKS_DIRNAME

    # ── Mutations ────────────────────────────────────────────────────────

    def add_project(self, name: str, project_path: str, create_tasks_dir: bool = False) -> Dict[str, Any]:
        """Register a project directory. Returns the project plus validation info."""
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name is required")
        if not isinstance(project_path, str) or not project_path.strip():
            raise ValidationError("path is required")
        path = Path(project_path).expanduser()
        if not path.exists():
            raise ValidationError("Path does not exist")
        if not path.is_dir():
            raise ValidationError("Path is not a directory")

        validation = validate_project_path(path, create_tasks_dir)
        if not validation["valid"]:
            raise ValidationError(validation["error"])

        data = self._load()
        path_str = str(path)
        if any(p["path"] == path_str for p in data["projects"]):
            raise Conflict("A project with this path already exists")

        base_id = slugify(name, max_length=64)
        project_id = base_id
        suffix = 1
        existing_ids = {p["id"] for p in data["projects"]}
        while project_id in existing_ids:
            project_id = f"{base_id}-{suffix}"
            suffix += 1

        project = {
            "id": project_id,
            "name": name.strip(),
            "path": path_str,
            "lastAccessed": now_iso(),
        }
        data["projects"].append(project)
        self._save(data)
        logger.info(f"Added project {project_id} at {path_str}")
        return {**project, "tasksCreated": bool(validation.get("created"))}

    def remove_project(self, project_id: str) -> Dict[str, Any]:
        data = self._load()
        removed = self._find(data, project_id)
        data["projects"].remove(removed)
        if data["currentProject"] == removed["path"] and data["projects"]:
            data["currentProject"] = data["projects"][0]["path"]
        self._save(data)
        return removed

    def update_project(self, project_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Only the name is editable; changing the path would orphan the tasks."""
        data = self._load()
        project = self._find(data, project_id)
        name = updates.get("name") if isinstance(updates, dict) else None
        if name:
            project["name"] = str(name).strip()
        self._save(data)
        return project

    def switch_project(self, project_id: str) -> Dict[str, Any]:
        data = self._load()
        project = self._find(data, project_id)
        project["lastAccessed"] = now_iso()
        data["currentProject"] = project["path"]
        self._save(data)
        logger.info(f"Switched to project {project_id} ({project['path']})")
        return project

"""
Task schema for the markdown kanban.

Task lifecycle:
  Ideation → Backlog → Planning → Implementing → UAT → Done

A task's status is the name of the directory its file lives in. Moving
between any two statuses is allowed; entering Done stamps `completed`.
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from .errors import ValidationError


class TaskStatus(Enum):
    """Fixed, ordered set of lifecycle stages (one directory each)."""
    IDEATION = "ideation"
    BACKLOG = "backlog"
    PLANNING = "planning"
    IMPLEMENTING = "implementing"
    UAT = "uat"
    DONE = "done"        # Terminal: entering it stamps `completed`

    @classmethod
    def parse(cls, value: Any) -> "TaskStatus":
        """Coerce a raw value to a status, raising ValidationError if unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Invalid status: {value!r}")


STATUSES: List[TaskStatus] = list(TaskStatus)


class TaskTag(Enum):
    """Tag vocabulary accepted on create/update."""
    NEW_FUNCTIONALITY = "new-functionality"
    FEATURE_ENHANCEMENT = "feature-enhancement"
    BUG = "bug"
    REFACTOR = "refactor"
    DEVOPS = "devops"


TAGS = frozenset(t.value for t in TaskTag)


def now_iso() -> str:
    """UTC timestamp in the same shape browsers emit (millis + 'Z')."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


@dataclass
class AcceptanceCriterion:
    text: str
    checked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "checked": self.checked}

    @classmethod
    def from_dict(cls, data: Any) -> "AcceptanceCriterion":
        if not isinstance(data, dict) or not isinstance(data.get("text"), str):
            raise ValidationError("acceptanceCriteria entries need a 'text' string")
        return cls(text=data["text"].strip(), checked=bool(data.get("checked", False)))


@dataclass
class Task:
    """One task file, as parsed from disk."""

    # Identity
    id: str                         # Stable id, or "status/filename" when legacy
    status: TaskStatus
    filename: str                   # e.g. "fix-login-bug.md"

    # Content
    title: str
    description: str = ""
    tags: List[str] = field(default_factory=list)
    acceptance_criteria: List[AcceptanceCriterion] = field(default_factory=list)
    notes: str = ""
    epic: Optional[str] = None
    completed: Optional[str] = None  # ISO-8601, set on entering Done

    # True when the file has no "## Id" section yet
    legacy: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON shape the board UI consumes."""
        data: Dict[str, Any] = {
            "id": self.id,
            "filename": self.filename,
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags),
            "acceptanceCriteria": [c.to_dict() for c in self.acceptance_criteria],
            "notes": self.notes,
        }
        if self.epic:
            data["epic"] = self.epic
        if self.completed:
            data["completed"] = self.completed
        return data


# ── Partial updates ─────────────────────────────────────────────────────────

# JSON key -> Task attribute. Anything else in a patch is ignored,
# which keeps id and filename out of reach of update().
PATCH_FIELDS = {
    "title": "title",
    "status": "status",
    "description": "description",
    "tags": "tags",
    "acceptanceCriteria": "acceptance_criteria",
    "acceptance_criteria": "acceptance_criteria",
    "notes": "notes",
    "epic": "epic",
    "completed": "completed",
}


def validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required")
    return title.strip()


def validate_tags(tags: Any) -> List[str]:
    if not isinstance(tags, list):
        raise ValidationError("tags must be a list")
    cleaned = []
    for tag in tags:
        if tag not in TAGS:
            raise ValidationError(f"Unknown tag: {tag!r}")
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def _coerce(attr: str, value: Any) -> Any:
    """Validate one patch value and convert it to the Task attribute type."""
    if attr == "title":
        return validate_title(value)
    if attr == "status":
        return TaskStatus.parse(value)
    if attr == "tags":
        return validate_tags(value)
    if attr == "acceptance_criteria":
        if not isinstance(value, list):
            raise ValidationError("acceptanceCriteria must be a list")
        return [AcceptanceCriterion.from_dict(c) for c in value]
    if attr in ("epic", "completed"):
        # Empty clears the optional field
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if not isinstance(value, str):
            raise ValidationError(f"{attr} must be a string")
        return value.strip()
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{attr} must be a string")
    return value.strip()


def normalize_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Map a JSON patch to validated Task attributes, dropping unknown keys."""
    if not isinstance(patch, dict):
        raise ValidationError("Request body must be a JSON object")
    changes: Dict[str, Any] = {}
    for key, value in patch.items():
        attr = PATCH_FIELDS.get(key)
        if attr is not None:
            changes[attr] = _coerce(attr, value)
    return changes


def apply_patch(task: Task, changes: Dict[str, Any]) -> Task:
    """Shallow-merge normalized changes over a task.

    If the merge moves the task into Done from another status, `completed`
    is stamped unless the caller supplied it.
    """
    updated = replace(task, **changes)
    entering_done = (
        updated.status == TaskStatus.DONE and task.status != TaskStatus.DONE
    )
    if entering_done and "completed" not in changes:
        updated.completed = now_iso()
    return updated

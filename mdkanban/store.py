"""
Task directory store.

Layout under the task root:

    tasks/
      project.json          board settings (free-form)
      notes.md              project notes (free text)
      ideation/
        _order.json         display order of this column, by task id
        some-idea.md
      backlog/
      ...
      done/

Every operation reads and writes files directly; there is no cache and no
locking. Two concurrent writers on one column can race on its order file.
"""
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .codec import parse_task, serialize_task
from .errors import TaskNotFound, ValidationError, Conflict
from .migration import migrate_tree, needs_migration
from .naming import IdClock, slugify, unique_filename
from .order import is_task_file, read_order, write_order
from .schema import (
    STATUSES, Task, TaskStatus, apply_patch, normalize_patch, now_iso,
)

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILENAME = "project.json"
NOTES_FILENAME = "notes.md"
DEFAULT_PROJECT_CONFIG = {"boardName": "Task Manager"}

RootSource = Union[str, Path, Callable[[], Union[str, Path]]]


def order_tasks(tasks: List[Task], order: List[str]) -> List[Task]:
    """Indexed tasks in index order, then everything the index missed.

    Ids with no file are skipped and repeated ids count once, so every
    task in `tasks` appears exactly once in the result.
    """
    by_id: Dict[str, List[int]] = {}
    for i, task in enumerate(tasks):
        by_id.setdefault(task.id, []).append(i)

    result = []
    placed = set()
    for task_id in order:
        for i in by_id.pop(task_id, []):
            result.append(tasks[i])
            placed.add(i)
    result.extend(task for i, task in enumerate(tasks) if i not in placed)
    return result


class TaskStore:
    """Markdown-file-backed store for kanban tasks."""

    def __init__(self, root: RootSource):
        """`root` is the task directory, or a callable returning the current one."""
        if callable(root):
            self._root = root
        else:
            fixed = Path(root)
            self._root = lambda: fixed
        self._ids = IdClock()

    @property
    def root(self) -> Path:
        return Path(self._root())

    def status_dir(self, status) -> Path:
        return self.root / TaskStatus.parse(status).value

    # ── Setup ────────────────────────────────────────────────────────────

    def ensure_directories(self) -> None:
        """Create the status directories. Order files are left to migration."""
        for status in STATUSES:
            (self.root / status.value).mkdir(parents=True, exist_ok=True)

    def migrate_if_needed(self) -> bool:
        """Run the legacy migration if the tree has never been migrated."""
        if not needs_migration(self.root):
            return False
        logger.info(f"No order files under {self.root}; migrating legacy task tree")
        migrate_tree(self.root)
        return True

    # ── Low-level helpers ────────────────────────────────────────────────

    @staticmethod
    def _check_filename(filename: Any) -> str:
        if (not isinstance(filename, str) or not is_task_file(filename)
                or "/" in filename or "\\" in filename):
            raise ValidationError(f"Invalid task filename: {filename!r}")
        return filename

    def _read(self, status: TaskStatus, filename: str) -> Task:
        self._check_filename(filename)
        path = self.status_dir(status) / filename
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            raise TaskNotFound(status.value, filename)
        return parse_task(content, filename, status)

    def _list_status(self, status: TaskStatus) -> List[Task]:
        directory = self.status_dir(status)
        try:
            names = sorted(
                n for n in os.listdir(directory)
                if is_task_file(n) and (directory / n).is_file()
            )
        except FileNotFoundError:
            return []

        tasks = []
        for name in names:
            try:
                content = (directory / name).read_text(encoding="utf-8", errors="replace")
            except FileNotFoundError:
                # Removed between listdir and read
                logger.debug(f"Skipping vanished file {status.value}/{name}")
                continue
            tasks.append(parse_task(content, name, status))
        return order_tasks(tasks, read_order(directory))

    # ── Public API ───────────────────────────────────────────────────────

    def list_all(self) -> List[Task]:
        """All tasks, column by column, each column in display order."""
        self.migrate_if_needed()
        tasks = []
        for status in STATUSES:
            tasks.extend(self._list_status(status))
        return tasks

    def list_status(self, status) -> List[Task]:
        """Tasks of one column in display order."""
        self.migrate_if_needed()
        return self._list_status(TaskStatus.parse(status))

    def create(self, fields: Dict[str, Any]) -> Task:
        """Create a task file with a fresh id and append it to its column."""
        changes = normalize_patch(fields)
        if "title" not in changes:
            raise ValidationError("title is required")
        if "status" not in changes:
            raise ValidationError("status is required")

        status = changes["status"]
        directory = self.status_dir(status)
        task = replace(
            Task(id=self._ids.next_id(), status=status, filename="", title=changes["title"]),
            **changes,
        )
        if task.status == TaskStatus.DONE and not task.completed:
            task.completed = now_iso()

        taken = set(os.listdir(directory))
        slug = slugify(task.title)
        while True:
            task.filename = unique_filename(slug, taken)
            try:
                with open(directory / task.filename, "x", encoding="utf-8") as f:
                    f.write(serialize_task(task))
                break
            except FileExistsError:
                # Another process took the name after our listdir
                taken.add(task.filename)

        order = read_order(directory)
        order.append(task.id)
        write_order(directory, order)
        logger.info(f"Created {status.value}/{task.filename} id={task.id}")
        return task

    def update(self, status, filename: str, patch: Dict[str, Any]) -> Task:
        """Merge `patch` into a task and rewrite its file in place.

        The file is never relocated here, even when `patch` changes the
        status; callers must use move() for that.
        """
        status = TaskStatus.parse(status)
        changes = normalize_patch(patch)
        task = self._read(status, filename)
        updated = apply_patch(task, changes)
        (self.status_dir(status) / filename).write_text(serialize_task(updated), encoding="utf-8")
        return updated

    def move(self, from_status, filename: str, to_status, position: Optional[int] = None) -> Task:
        """Move a task to another column (or another slot in the same one).

        The filename is kept. `position` is an index into the destination
        column's visible order, clamped to range; None appends.
        """
        from_status = TaskStatus.parse(from_status)
        to_status = TaskStatus.parse(to_status)
        if position is not None and (isinstance(position, bool) or not isinstance(position, int)):
            raise ValidationError("position must be an integer")

        task = self._read(from_status, filename)
        old_id = task.id
        if task.legacy:
            # Give it a real id now so it survives this and later moves
            task = replace(task, id=self._ids.next_id(), legacy=False)
        moved = apply_patch(task, {"status": to_status})

        source_dir = self.status_dir(from_status)
        dest_dir = self.status_dir(to_status)
        if from_status == to_status:
            (dest_dir / filename).write_text(serialize_task(moved), encoding="utf-8")
        else:
            try:
                with open(dest_dir / filename, "x", encoding="utf-8") as f:
                    f.write(serialize_task(moved))
            except FileExistsError:
                raise Conflict(f"{to_status.value}/{filename} already exists")
            (source_dir / filename).unlink()
            write_order(source_dir, [i for i in read_order(source_dir) if i != old_id])

        ids = [t.id for t in self._list_status(to_status) if t.filename != filename]
        if position is None:
            ids.append(moved.id)
        else:
            ids.insert(max(0, min(position, len(ids))), moved.id)
        write_order(dest_dir, ids)

        logger.info(f"Moved {from_status.value}/{filename} -> {to_status.value} id={moved.id}")
        return moved

    def reorder(self, status, ids: List[str]) -> List[Task]:
        """Replace a column's order verbatim and return the refreshed board."""
        status = TaskStatus.parse(status)
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise ValidationError("ordered ids must be a list of strings")
        write_order(self.status_dir(status), ids)
        return self.list_all()

    def delete(self, status, filename: str) -> None:
        """Remove a task file and purge its id from the column order."""
        status = TaskStatus.parse(status)
        task = self._read(status, filename)
        directory = self.status_dir(status)
        (directory / filename).unlink()
        write_order(directory, [i for i in read_order(directory) if i != task.id])
        logger.info(f"Deleted {status.value}/{filename} id={task.id}")

    # ── Project config & notes ───────────────────────────────────────────

    def get_project_config(self) -> Dict[str, Any]:
        path = self.root / PROJECT_CONFIG_FILENAME
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return dict(DEFAULT_PROJECT_CONFIG)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable {path}: {e}")
            return dict(DEFAULT_PROJECT_CONFIG)
        return data if isinstance(data, dict) else dict(DEFAULT_PROJECT_CONFIG)

    def update_project_config(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow-merge `updates` into project.json and return the result."""
        if not isinstance(updates, dict):
            raise ValidationError("config must be a JSON object")
        merged = {**self.get_project_config(), **updates}
        path = self.root / PROJECT_CONFIG_FILENAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(merged, indent=2), encoding="utf-8")
        return merged

    def get_notes(self) -> str:
        try:
            return (self.root / NOTES_FILENAME).read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def update_notes(self, content: str) -> str:
        if not isinstance(content, str):
            raise ValidationError("notes content must be a string")
        (self.root / NOTES_FILENAME).write_text(content, encoding="utf-8")
        return content

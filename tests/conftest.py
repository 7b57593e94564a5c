"""Shared test fixtures for the markdown kanban tests."""

import os
import sys
from pathlib import Path
from typing import Optional

import pytest

# Ensure the repo root (mdkanban/, kanban_server.py) is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from mdkanban.store import TaskStore


def write_task_file(directory: Path, filename: str, title: str,
                    task_id: Optional[str] = None, mtime: Optional[float] = None) -> Path:
    """Write a minimal task file the way a user (or an old version) would."""
    directory.mkdir(parents=True, exist_ok=True)
    content = f"# {title}\n\n"
    if task_id:
        content += f"## Id\n{task_id}\n\n"
    content += f"## Status\n{directory.name}\n\n## Tags\n\n## Description\n\n## Acceptance Criteria\n\n## Notes\n"
    path = directory / filename
    path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def snapshot(root: Path) -> dict:
    """Relative path -> bytes for every file under root."""
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*")) if p.is_file()
    }


@pytest.fixture
def tasks_root(tmp_path) -> Path:
    return tmp_path / "tasks"


@pytest.fixture
def store(tasks_root) -> TaskStore:
    """A migrated, empty board."""
    s = TaskStore(tasks_root)
    s.ensure_directories()
    s.migrate_if_needed()
    return s

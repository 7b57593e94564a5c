"""
Tests for the legacy filename -> stable id migration.
"""
import os

import pytest

from conftest import snapshot, write_task_file
from mdkanban.codec import extract_id
from mdkanban.migration import migrate_directory, migrate_tree, needs_migration
from mdkanban.order import ORDER_FILENAME, read_order, write_order
from mdkanban.schema import STATUSES
from mdkanban.store import TaskStore

MTIME = 1_700_000_000.0


def test_numbered_files_keep_their_order(tasks_root):
    backlog = tasks_root / "backlog"
    # Written out of order so mtime and filename disagree
    write_task_file(backlog, "10-c.md", "C", mtime=MTIME + 1)
    write_task_file(backlog, "02-b.md", "B", mtime=MTIME + 2)
    write_task_file(backlog, "01-a.md", "A", mtime=MTIME + 3)

    store = TaskStore(tasks_root)
    tasks = store.list_all()

    assert [t.title for t in tasks] == ["A", "B", "C"]
    assert [t.filename for t in tasks] == ["a.md", "b.md", "c.md"]
    assert len({t.id for t in tasks}) == 3
    assert not any(t.legacy for t in tasks)
    assert read_order(backlog) == [t.id for t in tasks]
    assert sorted(p.name for p in backlog.glob("*.md")) == ["a.md", "b.md", "c.md"]


def test_ids_come_from_mtime_and_stay_distinct(tasks_root):
    backlog = tasks_root / "backlog"
    for name in ("01-a.md", "02-b.md", "03-c.md"):
        write_task_file(backlog, name, name, mtime=MTIME)

    result = migrate_directory(backlog)
    base = int(MTIME * 1000)
    assert result.order == [str(base), str(base + 1), str(base + 2)]
    assert result.assigned == 3
    assert result.renamed == {"01-a.md": "a.md", "02-b.md": "b.md", "03-c.md": "c.md"}


def test_second_run_is_byte_identical(tasks_root):
    write_task_file(tasks_root / "backlog", "01-a.md", "A", mtime=MTIME)
    write_task_file(tasks_root / "done", "01-z.md", "Z", mtime=MTIME)
    store = TaskStore(tasks_root)

    assert store.migrate_if_needed() is True
    first = snapshot(tasks_root)
    assert store.migrate_if_needed() is False
    assert snapshot(tasks_root) == first

    # Even forcing it re-records the same ids without touching files
    migrate_tree(tasks_root)
    assert snapshot(tasks_root) == first


def test_existing_ids_pass_through(tasks_root):
    backlog = tasks_root / "backlog"
    path = write_task_file(backlog, "03-resumed.md", "Resumed", task_id="keep-me")
    before = path.read_bytes()
    write_task_file(backlog, "04-fresh.md", "Fresh", mtime=MTIME)

    result = migrate_directory(backlog)

    assert result.order[0] == "keep-me"
    assert (backlog / "03-resumed.md").read_bytes() == before
    assert (backlog / "fresh.md").exists()
    assert result.renamed == {"04-fresh.md": "fresh.md"}


def test_synthesized_id_avoids_existing_ids(tasks_root):
    backlog = tasks_root / "backlog"
    taken = str(int(MTIME * 1000))
    write_task_file(backlog, "b.md", "Has id", task_id=taken)
    write_task_file(backlog, "a.md", "Needs id", mtime=MTIME)

    result = migrate_directory(backlog)
    assert result.order == [str(int(taken) + 1), taken]


def test_slug_collisions_get_suffixes(tasks_root):
    backlog = tasks_root / "backlog"
    write_task_file(backlog, "01-a.md", "Numbered", mtime=MTIME)
    write_task_file(backlog, "a.md", "Plain", mtime=MTIME)

    result = migrate_directory(backlog)

    assert result.renamed == {"01-a.md": "a-2.md"}
    assert sorted(p.name for p in backlog.glob("*.md")) == ["a-2.md", "a.md"]
    titles = [t.title for t in TaskStore(tasks_root).list_status("backlog")]
    assert titles == ["Numbered", "Plain"]


def test_missing_directories_are_created_with_empty_order(tasks_root):
    write_task_file(tasks_root / "uat", "01-only.md", "Only", mtime=MTIME)
    migrate_tree(tasks_root)
    for status in STATUSES:
        directory = tasks_root / status.value
        assert (directory / ORDER_FILENAME).exists()
    assert read_order(tasks_root / "ideation") == []
    assert len(read_order(tasks_root / "uat")) == 1


def test_file_without_title_gets_id_prepended(tasks_root):
    backlog = tasks_root / "backlog"
    backlog.mkdir(parents=True)
    (backlog / "01-untitled.md").write_text("## Notes\nscribbles\n")
    migrate_directory(backlog)
    content = (backlog / "untitled.md").read_text()
    assert content.startswith("## Id\n")
    assert extract_id(content)


def test_any_order_file_skips_migration(tasks_root):
    write_task_file(tasks_root / "backlog", "01-legacy.md", "Legacy", mtime=MTIME)
    (tasks_root / "done").mkdir(parents=True)
    write_order(tasks_root / "done", [])
    assert not needs_migration(tasks_root)

    [task] = TaskStore(tasks_root).list_all()
    assert task.legacy
    assert task.id == "backlog/01-legacy.md"
    assert (tasks_root / "backlog" / "01-legacy.md").exists()
    assert not (tasks_root / "backlog" / ORDER_FILENAME).exists()


def test_empty_tree_is_marked_migrated(tasks_root):
    store = TaskStore(tasks_root)
    store.ensure_directories()
    assert needs_migration(tasks_root)
    assert store.list_all() == []
    assert not needs_migration(tasks_root)


def test_interrupted_rename_is_resumed_without_duplicates(tasks_root, monkeypatch):
    backlog = tasks_root / "backlog"
    write_task_file(backlog, "01-fix-bug.md", "Fix bug", mtime=MTIME)
    real_replace = os.replace

    def crash_on_rename(src, dst):
        # Temp-file swaps go through; the final rename dies
        if str(src).endswith(".tmp"):
            return real_replace(src, dst)
        raise OSError("killed mid-migration")

    monkeypatch.setattr(os, "replace", crash_on_rename)
    with pytest.raises(OSError):
        migrate_tree(tasks_root)
    monkeypatch.undo()

    assert needs_migration(tasks_root)
    injected = extract_id((backlog / "01-fix-bug.md").read_text())
    assert injected

    tasks = TaskStore(tasks_root).list_all()

    assert [t.id for t in tasks] == [injected]
    assert [p.name for p in backlog.glob("*.md")] == ["01-fix-bug.md"]
    assert read_order(backlog) == [injected]


def test_migration_skips_directories_named_like_tasks(tasks_root):
    backlog = tasks_root / "backlog"
    (backlog / "01-folder.md").mkdir(parents=True)
    write_task_file(backlog, "02-real.md", "Real", mtime=MTIME)

    result = migrate_directory(backlog)

    assert result.renamed == {"02-real.md": "real.md"}
    assert (backlog / "01-folder.md").is_dir()

"""
One-time upgrade of a task tree from positional filenames to stable ids.

Old layout: "01-fix-bug.md", "02-add-login.md" (the prefix was the position).
New layout: "fix-bug.md" with an "## Id" section, position kept in _order.json.

Migration runs only when no status directory has an order file yet, so a
second run is a no-op. Within a run, files that already carry an Id are
recorded as-is, which makes an interrupted migration safe to resume.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Set, Optional, Union

from .codec import extract_id, inject_id
from .naming import strip_priority_prefix, unique_filename
from .order import atomic_write_text, has_order, is_task_file, write_order
from .schema import STATUSES

logger = logging.getLogger(__name__)


@dataclass
class DirectoryMigration:
    """What happened to one status directory."""
    status: str
    order: List[str] = field(default_factory=list)
    renamed: Dict[str, str] = field(default_factory=dict)  # old -> new filename
    assigned: int = 0                                       # files given a new id


def needs_migration(root: Union[str, Path]) -> bool:
    """True when no status directory has an order file yet."""
    root = Path(root)
    return not any(has_order(root / status.value) for status in STATUSES)


def migrate_directory(directory: Path, taken_ids: Optional[Set[str]] = None,
                      write_index: bool = True) -> DirectoryMigration:
    """Assign ids, drop numeric prefixes and write the order file for one directory."""
    if taken_ids is None:
        taken_ids = set()
    result = DirectoryMigration(status=directory.name)
    directory.mkdir(parents=True, exist_ok=True)

    names = sorted(
        n for n in os.listdir(directory)
        if is_task_file(n) and (directory / n).is_file()
    )
    contents = {
        name: (directory / name).read_text(encoding="utf-8", errors="replace") for name in names
    }
    existing = {name: extract_id(content) for name, content in contents.items()}
    taken_ids.update(task_id for task_id in existing.values() if task_id)
    taken_names = set(names)

    for name in names:
        task_id = existing[name]
        if task_id:
            result.order.append(task_id)
            continue

        path = directory / name
        # mtime is the best remaining hint of creation order
        stamp = int(path.stat().st_mtime * 1000)
        while str(stamp) in taken_ids:
            stamp += 1
        task_id = str(stamp)
        taken_ids.add(task_id)

        taken_names.discard(name)
        new_name = unique_filename(strip_priority_prefix(name), taken_names)
        taken_names.add(new_name)

        # Id goes into the old file first, so a crash before the rename
        # leaves a file the next run records as-is
        atomic_write_text(path, inject_id(contents[name], task_id))
        if new_name != name:
            os.replace(path, directory / new_name)
            result.renamed[name] = new_name
        result.assigned += 1
        result.order.append(task_id)

    if write_index:
        write_order(directory, result.order)
    return result


def migrate_tree(root: Union[str, Path]) -> Dict[str, DirectoryMigration]:
    """Migrate every status directory under `root`, in lifecycle order."""
    root = Path(root)
    taken_ids: Set[str] = set()
    results = {}
    for status in STATUSES:
        result = migrate_directory(root / status.value, taken_ids, write_index=False)
        results[status.value] = result
        if result.assigned or result.order:
            logger.info(
                f"Migrated {status.value}: {len(result.order)} tasks, "
                f"{result.assigned} new ids, {len(result.renamed)} renamed"
            )
    # Order files mark the tree as migrated, so none is written until
    # every directory is done
    for status, result in results.items():
        write_order(root / status, result.order)
    return results

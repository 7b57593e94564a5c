"""
Order index files.

Each status directory holds one `_order.json`:

    {"order": ["1718000000000", "1718000000123"]}

The list is the display order of the directory's tasks by id. A missing
file means "no order recorded yet" and reads as an empty list.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import List, Union

ORDER_FILENAME = "_order.json"


def is_task_file(name: str) -> bool:
    """Markdown files only; '_' and '.' prefixes are reserved bookkeeping."""
    return name.endswith(".md") and not name.startswith(("_", "."))


def order_path(directory: Union[str, Path]) -> Path:
    return Path(directory) / ORDER_FILENAME


def has_order(directory: Union[str, Path]) -> bool:
    return order_path(directory).is_file()


def read_order(directory: Union[str, Path]) -> List[str]:
    """Return the stored id sequence, or [] when no order file exists."""
    try:
        with open(order_path(directory), "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return []
    order = data.get("order", []) if isinstance(data, dict) else []
    return [str(task_id) for task_id in order]


def atomic_write_text(target: Union[str, Path], text: str) -> None:
    """Write via a temp file in the same directory, then os.replace()."""
    target = Path(target)
    # "_" prefix keeps the temp file out of task listings
    fd, tmp_path = tempfile.mkstemp(
        dir=str(target.parent), prefix=f"_{target.name}.", suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, target)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def write_order(directory: Union[str, Path], ids: List[str]) -> None:
    """Replace the order file so readers never see a partial write."""
    atomic_write_text(order_path(directory), json.dumps({"order": list(ids)}, indent=2) + "\n")

"""
Task tree watcher.

Watches the task root with watchdog and publishes one message per changed
task file to the ChangeNotifier:

    {"event": "add" | "change" | "unlink", "path": "...", "timestamp": 1718...}

Bursts on the same path (editors often write a file several times) are
coalesced: a message goes out only after the path has been quiet for
`debounce_ms`, carrying the last event seen.
"""
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from .events import ChangeNotifier, timestamp_ms

logger = logging.getLogger(__name__)

# watchdog event_type -> client-facing name
EVENT_NAMES = {
    "created": "add",
    "modified": "change",
    "deleted": "unlink",
}


class Debouncer:
    """Trailing-edge debounce keyed by path."""

    def __init__(self, delay_ms: int, callback: Callable[[Dict[str, Any]], None]):
        self.delay = delay_ms / 1000
        self.callback = callback
        self._pending: Dict[str, Tuple[threading.Timer, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def trigger(self, key: str, payload: Dict[str, Any]) -> None:
        """(Re)start the quiet period for `key`; the latest payload wins."""
        with self._lock:
            previous = self._pending.get(key)
            if previous:
                previous[0].cancel()
            timer = threading.Timer(self.delay, self._fire, args=(key,))
            timer.daemon = True
            self._pending[key] = (timer, payload)
            timer.start()

    def _fire(self, key: str) -> None:
        current = threading.current_thread()
        with self._lock:
            entry = self._pending.get(key)
            # A newer trigger replaced this timer; let that one fire
            if entry is None or entry[0] is not current:
                return
            del self._pending[key]
        self.callback(entry[1])

    def flush(self) -> None:
        """Fire everything pending right now."""
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for timer, payload in pending:
            timer.cancel()
            self.callback(payload)

    def cancel(self) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for timer, _ in pending:
            timer.cancel()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)


class TaskEventHandler(FileSystemEventHandler):
    """Filters raw filesystem events down to task-file changes."""

    def __init__(self, root: Path, debouncer: Debouncer):
        self.root = root
        self.debouncer = debouncer

    def on_any_event(self, fs_event):
        if fs_event.is_directory:
            return
        if fs_event.event_type == "moved":
            self._route(fs_event.src_path, "unlink")
            self._route(fs_event.dest_path, "add")
            return
        kind = EVENT_NAMES.get(fs_event.event_type)
        if kind:
            self._route(fs_event.src_path, kind)

    def _route(self, path: Union[str, bytes], kind: str) -> None:
        if isinstance(path, bytes):
            path = path.decode()
        p = Path(path)
        if p.suffix != ".md":
            return
        # Only <root>/notes.md and <root>/<status>/<task>.md
        try:
            depth = len(p.relative_to(self.root).parts)
        except ValueError:
            return
        if depth > 2:
            return
        self.debouncer.trigger(str(p), {"event": kind, "path": str(p)})


class TaskWatcher:
    """Owns the watchdog observer for the current task root."""

    def __init__(self, notifier: ChangeNotifier, root: Union[str, Path], debounce_ms: int = 100):
        self.notifier = notifier
        self.root = Path(root)
        self.debouncer = Debouncer(debounce_ms, self._publish)
        self._observer: Optional[Observer] = None

    def _publish(self, payload: Dict[str, Any]) -> None:
        self.notifier.publish({**payload, "timestamp": timestamp_ms()})

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> bool:
        """Start watching. Returns False when the root does not exist."""
        if self._observer is not None:
            return True
        if not self.root.is_dir():
            logger.warning(f"Task root {self.root} not found; watcher not started")
            return False
        handler = TaskEventHandler(self.root.resolve(), self.debouncer)
        observer = Observer()
        observer.schedule(handler, str(self.root.resolve()), recursive=True)
        observer.start()
        self._observer = observer
        logger.info(f"Watching for changes in: {self.root}")
        return True

    def stop(self) -> None:
        self.debouncer.cancel()
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None

    def restart(self, root: Union[str, Path]) -> bool:
        self.stop()
        self.root = Path(root)
        return self.start()

    def switch_project(self, project_id: str, root: Union[str, Path]) -> None:
        """Re-target the watcher and tell clients to reload everything."""
        self.restart(root)
        self.notifier.publish({
            "event": "project-switched",
            "projectId": project_id,
            "timestamp": timestamp_ms(),
        })

# mdkanban: configuration
# Defaults < config.yaml < environment < CLI args (applied by kanban_server.py).

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

CONFIG_PATH = Path("kanban.yaml")


def _env(*names: str) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


@dataclass
class Config:
    """Runtime configuration for the kanban server."""

    # HTTP
    host: str = "127.0.0.1"
    port: int = 3050

    # Task root. None = "<current project>/tasks" from the project registry
    tasks_dir: Optional[str] = None
    global_config: str = "~/.kanban-ui/config.json"

    # Watcher
    watch: bool = True
    debounce_ms: int = 100

    log_level: str = "INFO"

    def apply_env(self):
        """Override fields from environment variables."""
        tasks_dir = _env("KANBAN_TASKS_DIR", "TASKS_DIR")
        if tasks_dir:
            self.tasks_dir = tasks_dir
        host = _env("KANBAN_HOST")
        if host:
            self.host = host
        port = _env("PORT", "KANBAN_PORT")
        if port and port.isdigit():
            self.port = int(port)
        global_config = _env("KANBAN_GLOBAL_CONFIG")
        if global_config:
            self.global_config = global_config
        debounce = _env("KANBAN_DEBOUNCE_MS")
        if debounce and debounce.isdigit():
            self.debounce_ms = int(debounce)
        level = _env("KANBAN_LOG_LEVEL")
        if level:
            self.log_level = level.upper()

    def resolve_paths(self):
        """Expand ~ in path settings."""
        self.global_config = str(Path(self.global_config).expanduser())
        if self.tasks_dir:
            self.tasks_dir = str(Path(self.tasks_dir).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None, use_env: bool = True) -> "Config":
        """Load config from YAML, falling back to defaults, then apply env."""
        cfg_path = Path(path) if path else CONFIG_PATH
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                data = yaml.safe_load(f) or {}
            cfg = cls(**{k: v for k, v in data.items() if k in known})
        else:
            cfg = cls()
        if use_env:
            cfg.apply_env()
        cfg.resolve_paths()
        return cfg

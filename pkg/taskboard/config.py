# Taskboard: configuration
# Override via taskboard.yaml (or --config) and TASKBOARD_* environment variables.

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .autoscroll import AutoScroller, ScrollContainer
from .remote import is_configured
from .sensors import DragSensor, InputMode, constraint_for

CONFIG_PATH = Path("taskboard.yaml")

# env var -> field name
ENV_OVERRIDES = {
    "TASKBOARD_BACKEND_URL": "backend_url",
    "TASKBOARD_ANON_KEY": "anon_key",
    "TASKBOARD_CACHE_DB": "cache_db",
    "TASKBOARD_REQUEST_TIMEOUT": "request_timeout",
    "TASKBOARD_DEMO_MODE": "demo_mode",
}


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class BoardConfig:
    """Runtime configuration for the task board."""

    # Hosted backend (empty = local cache only)
    backend_url: str = ""
    anon_key: str = ""
    tasks_table: str = "tasks"
    categories_table: str = "categories"

    # Local cache
    cache_db: str = "~/.local/share/taskboard/cache.db"
    cache_namespace: str = "tasks"

    # Per-mutation deadline, seconds
    request_timeout: float = 10.0

    # Signed-in demo user when no backend is configured
    demo_mode: bool = False

    # Drag and drop
    input_mode: str = "pointer"
    drag_distance: float = 8.0
    touch_delay_ms: float = 250.0
    touch_tolerance: float = 5.0
    fallback_radius: float = 240.0
    autoscroll_edge: float = 60.0
    autoscroll_max_speed: float = 20.0

    @property
    def backend_configured(self) -> bool:
        return is_configured(self.backend_url, self.anon_key)

    @property
    def mode(self) -> InputMode:
        return InputMode.from_str(self.input_mode)

    def orchestrator_options(self, container: Optional[ScrollContainer] = None) -> Dict[str, Any]:
        """Keyword arguments for ApplicationShell.build_orchestrator()."""
        mode = self.mode
        constraint = constraint_for(mode, self.drag_distance, self.touch_delay_ms, self.touch_tolerance)
        scroller = None
        if container is not None:
            scroller = AutoScroller(container, edge=self.autoscroll_edge, max_speed=self.autoscroll_max_speed)
        return {
            "input_mode": mode,
            "sensor": DragSensor(mode, constraint),
            "scroller": scroller,
            "fallback_radius": self.fallback_radius,
        }

    def resolve_paths(self):
        """Expand ~ in the cache path."""
        self.cache_db = str(Path(self.cache_db).expanduser())

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> None:
        environ = os.environ if environ is None else environ
        for env_name, attr in ENV_OVERRIDES.items():
            if env_name in environ:
                self._set(attr, environ[env_name])

    def _set(self, attr: str, value: Any) -> None:
        kind = type(getattr(self, attr))
        try:
            if kind is bool:
                value = _as_bool(value)
            elif kind is float:
                value = float(value)
            else:
                value = str(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for {attr}: {value!r}") from e
        setattr(self, attr, value)

    @classmethod
    def load(cls, path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> "BoardConfig":
        """
        Load config from a YAML file (if present), then environment overrides.

        Unknown keys are ignored. A file that exists but isn't a YAML mapping
        raises ConfigError.
        """
        cfg_path = Path(path) if path else CONFIG_PATH
        cfg = cls()
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping, got {type(data).__name__}")
            known = {f.name for f in fields(cls)}
            for key, value in data.items():
                if key in known and value is not None:
                    cfg._set(key, value)
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")
        cfg.apply_env(environ)
        if cfg.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        cfg.resolve_paths()
        return cfg

"""Configuration for the Dev Maestro service.

Settings come from environment variables and from ``local/config.json`` in
the install directory. The resulting ``MaestroConfig`` is owned by a
``ConfigHolder`` that the HTTP and MCP layers share; the plan parsing code
never reads configuration itself.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConfigurationError
from .models import DEFAULT_TASK_PREFIX
from .plan import validate_prefix
from .maestro_logging import log_config_reloaded

logger = logging.getLogger("maestro.config")

PLAN_FILENAME = "MASTER_PLAN.md"
DEFAULT_PORT = 6010
DEFAULT_HOST = "127.0.0.1"
DEFAULT_INSTALL_DIR = "~/.dev-maestro"
DEFAULT_LOG_LEVEL = "INFO"
# Seconds an idle HTTP connection is kept open
DEFAULT_KEEP_ALIVE = 5

# Levels understood by both the logging module and uvicorn
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
LOG_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}

# Where a plan file is looked for inside a project, in order of preference
PLAN_LOCATIONS = (
    PLAN_FILENAME,
    f"docs/{PLAN_FILENAME}",
    f"planning/{PLAN_FILENAME}",
    f".github/{PLAN_FILENAME}",
    f"doc/{PLAN_FILENAME}",
)
PLAN_SEARCH_DEPTH = 3
PLAN_CONTAINER_DIRS = {"docs", "doc", "planning", ".github"}

LOCAL_SUBDIRS = ("icons", "css", "views")
DEFAULT_LOCAL_CONFIG: Dict[str, Any] = {
    "port": DEFAULT_PORT,
    "autoUpdate": True,
    "updateBranch": "main",
    "showUpdateNotifications": True,
}


@dataclass(slots=True)
class MaestroConfig:
    """Resolved service configuration."""

    install_dir: Path
    plan_path: Optional[Path] = None
    project_root: Optional[Path] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    task_prefix: str = DEFAULT_TASK_PREFIX
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[Path] = None
    auto_update: bool = True
    update_branch: str = "main"
    show_update_notifications: bool = True
    keep_alive_timeout: int = DEFAULT_KEEP_ALIVE

    @property
    def local_dir(self) -> Path:
        return self.install_dir / "local"

    @property
    def local_config_path(self) -> Path:
        return self.local_dir / "config.json"

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "installDir": str(self.install_dir),
            "masterPlanPath": str(self.plan_path) if self.plan_path else None,
            "projectRoot": str(self.project_root) if self.project_root else None,
            "host": self.host,
            "port": self.port,
            "url": self.url,
            "taskPrefix": self.task_prefix,
            "autoUpdate": self.auto_update,
            "updateBranch": self.update_branch,
            "showUpdateNotifications": self.show_update_notifications,
        }


def _resolve(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def find_master_plan(project_root: Path | str) -> Optional[Path]:
    """Locate the plan file inside a project directory."""
    root = _resolve(project_root)
    if not root.is_dir():
        return None

    for location in PLAN_LOCATIONS:
        candidate = root / location
        if candidate.is_file():
            return candidate

    # Breadth-first so the shallowest match wins
    level: List[Path] = [root]
    for _ in range(PLAN_SEARCH_DEPTH):
        next_level: List[Path] = []
        for directory in level:
            try:
                entries = sorted(directory.iterdir())
            except OSError:
                continue
            for entry in entries:
                if entry.name == PLAN_FILENAME and entry.is_file():
                    return entry
                if entry.is_dir() and not entry.is_symlink():
                    next_level.append(entry)
        level = next_level
    return None


def project_root_from_plan(plan_path: Path | str) -> Path:
    """Return the project directory that owns a plan file."""
    plan_dir = _resolve(plan_path).parent
    if plan_dir.name in PLAN_CONTAINER_DIRS:
        return plan_dir.parent
    return plan_dir


def resolve_plan_location(location: Path | str) -> Path:
    """Turn a plan file path or a project directory into a plan file path."""
    target = _resolve(location)
    if target.is_file():
        return target
    if target.is_dir():
        found = find_master_plan(target)
        if found is None:
            raise ConfigurationError(f"Could not find {PLAN_FILENAME} in {target}")
        return found
    raise ConfigurationError(f"Path not found: {target}")


def load_local_config(install_dir: Path) -> Dict[str, Any]:
    """Read ``local/config.json``; a missing file yields an empty dict."""
    path = install_dir / "local" / "config.json"
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Invalid local config at {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Local config at {path} must be a JSON object")
    return data


def ensure_local_structure(install_dir: Path | str) -> Path:
    """Create the ``local/`` customization directory with its default config."""
    local_dir = _resolve(install_dir) / "local"
    for name in LOCAL_SUBDIRS:
        (local_dir / name).mkdir(parents=True, exist_ok=True)

    config_path = local_dir / "config.json"
    if not config_path.exists():
        config_path.write_text(json.dumps(DEFAULT_LOCAL_CONFIG, indent=2) + "\n", encoding="utf-8")
        logger.info(f"Created default local config at {config_path}")
    return local_dir


def _parse_port(value: Any) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid port: {value!r}") from e
    if not 0 < port < 65536:
        raise ConfigurationError(f"Port out of range: {port}")
    return port


def _parse_keep_alive(value: Any) -> int:
    try:
        seconds = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid keep-alive timeout: {value!r}") from e
    if seconds < 1:
        raise ConfigurationError(f"Keep-alive timeout must be at least 1 second: {seconds}")
    return seconds


def _parse_log_level(value: str) -> str:
    level = value.strip().upper()
    level = LOG_LEVEL_ALIASES.get(level, level)
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"Invalid log level {value!r}. Expected one of: {', '.join(LOG_LEVELS)}")
    return level


def _parse_prefix(value: str) -> str:
    try:
        return validate_prefix(value)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def load_config(env: Optional[Mapping[str, str]] = None, cwd: Optional[Path] = None) -> MaestroConfig:
    """Build a configuration from the environment and the local config file.

    The plan file is taken from ``MASTER_PLAN_PATH`` when set, otherwise it is
    discovered inside ``PROJECT_ROOT`` or the working directory. A missing plan
    file is not an error here; the service reports it per request.
    """
    env = os.environ if env is None else env
    install_dir = _resolve(env.get("DEV_MAESTRO_DIR") or DEFAULT_INSTALL_DIR)
    local = load_local_config(install_dir)

    plan_path: Optional[Path] = None
    project_root: Optional[Path] = None
    if env.get("MASTER_PLAN_PATH"):
        plan_path = _resolve(env["MASTER_PLAN_PATH"])
    if env.get("PROJECT_ROOT"):
        project_root = _resolve(env["PROJECT_ROOT"])
        if plan_path is None:
            plan_path = find_master_plan(project_root)
    if plan_path is None:
        plan_path = find_master_plan(cwd or Path.cwd())
    if plan_path is not None and project_root is None:
        project_root = project_root_from_plan(plan_path)

    log_file = env.get("DEV_MAESTRO_LOG_FILE")
    config = MaestroConfig(
        install_dir=install_dir,
        plan_path=plan_path,
        project_root=project_root,
        host=env.get("DEV_MAESTRO_HOST") or DEFAULT_HOST,
        port=_parse_port(env.get("PORT") or local.get("port") or DEFAULT_PORT),
        task_prefix=_parse_prefix(env.get("DEV_MAESTRO_TASK_PREFIX") or DEFAULT_TASK_PREFIX),
        log_level=_parse_log_level(env.get("DEV_MAESTRO_LOG_LEVEL") or DEFAULT_LOG_LEVEL),
        log_file=_resolve(log_file) if log_file else None,
        auto_update=bool(local.get("autoUpdate", True)),
        update_branch=str(local.get("updateBranch", "main")),
        show_update_notifications=bool(local.get("showUpdateNotifications", True)),
        keep_alive_timeout=_parse_keep_alive(env.get("DEV_MAESTRO_KEEP_ALIVE") or DEFAULT_KEEP_ALIVE),
    )
    logger.debug(f"Loaded configuration: {config.to_dict()}")
    return config


class ConfigHolder:
    """Own the current configuration and allow it to be swapped at runtime."""

    def __init__(self, config: Optional[MaestroConfig] = None, env: Optional[Mapping[str, str]] = None):
        self._env = env
        self._lock = threading.Lock()
        self._config = config if config is not None else load_config(env)

    @property
    def config(self) -> MaestroConfig:
        with self._lock:
            return self._config

    def reload(self) -> MaestroConfig:
        """Re-read environment variables and the local config file."""
        fresh = load_config(self._env)
        with self._lock:
            self._config = fresh
        log_config_reloaded(str(fresh.plan_path) if fresh.plan_path else None, reason="reload")
        return fresh

    def set_plan_path(self, location: Path | str) -> MaestroConfig:
        """Point the service at another plan file (or a project directory holding one)."""
        plan_path = resolve_plan_location(location)
        with self._lock:
            self._config = replace(
                self._config,
                plan_path=plan_path,
                project_root=project_root_from_plan(plan_path),
            )
            updated = self._config
        logger.info(f"Plan file set to {plan_path}")
        log_config_reloaded(str(plan_path), reason="plan_path")
        return updated

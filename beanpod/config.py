"""
Configuration — Workspace config and service settings

Two kinds of configuration:
  1. Workspace config (.beans.yml) — statuses, types, priorities, id
     prefix/length, defaults. Declared values are merged over hard defaults
     and cached briefly so hot paths do not re-read the file.
  2. Service settings (environment) — CLI path, timeouts, retry and cache
     tuning, logging.

Environment variables:
- BEANS_CLI_PATH: Path to the beans binary (default: beans)
- BEANS_WORKSPACE_ROOT: Workspace directory (default: current directory)
- BEANS_TIMEOUT: CLI call timeout in seconds (default: 30)
- BEANS_PROBE_TIMEOUT: Availability probe timeout in seconds (default: 5)
- BEANS_MAX_RETRIES: Retries after the first attempt (default: 3)
- BEANS_RETRY_BASE_DELAY: Base backoff delay in seconds (default: 0.1)
- BEANS_CACHE_TTL: Offline cache lifetime in seconds (default: 300)
- BEANS_CONFIG_CACHE_TTL: Workspace config cache lifetime in seconds (default: 5)
- BEANS_LOG_LEVEL: Log level (default: INFO)
- BEANS_LOG_FORMAT: "json" or "text" (default: json)
"""

import logging
import os
import threading
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml


logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".beans.yml"

DEFAULT_STATUSES = ["todo", "in-progress", "completed", "scrapped", "draft"]
DEFAULT_TYPES = ["milestone", "epic", "feature", "task", "bug"]
DEFAULT_PRIORITIES = ["critical", "high", "normal", "low", "deferred"]
DEFAULT_TERMINAL_STATUSES = ["completed", "scrapped"]


@dataclass
class BeansConfig:
    """Workspace configuration merged over defaults."""
    path: str = ".beans"
    prefix: str = "bean"
    id_length: int = 4
    default_status: str = "draft"
    default_type: str = "task"
    statuses: List[str] = field(default_factory=lambda: list(DEFAULT_STATUSES))
    types: List[str] = field(default_factory=lambda: list(DEFAULT_TYPES))
    priorities: List[str] = field(default_factory=lambda: list(DEFAULT_PRIORITIES))
    terminal_statuses: List[str] = field(default_factory=lambda: list(DEFAULT_TERMINAL_STATUSES))

    def validate_status(self, status: str) -> Optional[str]:
        """Returns error message or None if valid."""
        if status not in self.statuses:
            return f"Invalid status: {status}. Must be one of: {', '.join(self.statuses)}"
        return None

    def validate_type(self, bean_type: str) -> Optional[str]:
        """Returns error message or None if valid."""
        if bean_type not in self.types:
            return f"Invalid type: {bean_type}. Must be one of: {', '.join(self.types)}"
        return None

    def validate_priority(self, priority: str) -> Optional[str]:
        """Returns error message or None if valid."""
        if priority not in self.priorities:
            return f"Invalid priority: {priority}. Must be one of: {', '.join(self.priorities)}"
        return None

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal_statuses

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "prefix": self.prefix,
            "id_length": self.id_length,
            "default_status": self.default_status,
            "default_type": self.default_type,
            "statuses": list(self.statuses),
            "types": list(self.types),
            "priorities": list(self.priorities),
            "terminal_statuses": list(self.terminal_statuses),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BeansConfig':
        """Create from a declared mapping; missing or empty keys keep defaults."""
        config = cls()
        updates: Dict[str, Any] = {}

        for key in ("path", "prefix", "default_status", "default_type"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                updates[key] = value.strip()

        id_length = data.get("id_length")
        if isinstance(id_length, int) and not isinstance(id_length, bool) and id_length > 0:
            updates["id_length"] = id_length

        for key in ("statuses", "types", "priorities", "terminal_statuses"):
            values = _string_list(data.get(key))
            if values:
                updates[key] = values

        return replace(config, **updates)


def _string_list(value: Any) -> List[str]:
    """Coerce a YAML list (of strings or {name: ...} mappings) to names."""
    if not isinstance(value, list):
        return []
    names = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("name")
        if isinstance(item, str) and item.strip():
            names.append(item.strip())
    return names


class ConfigManager:
    """
    Reads the workspace .beans.yml.

    Keys may sit at the top level or under a `beans:` section. A missing
    file means defaults; a malformed file is logged and also means defaults.
    """

    def __init__(self, workspace_root: Optional[Path] = None):
        self.workspace_root = Path(workspace_root) if workspace_root else Path.cwd()

    @property
    def config_path(self) -> Path:
        return self.workspace_root / CONFIG_FILENAME

    def exists(self) -> bool:
        return self.config_path.is_file()

    def read(self) -> Dict[str, Any]:
        """Return the declared mapping, or {} when absent or unreadable."""
        if not self.exists():
            return {}

        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to read %s: %s", self.config_path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a mapping", self.config_path)
            return {}

        section = data.get("beans")
        if isinstance(section, dict):
            merged = {k: v for k, v in data.items() if k != "beans"}
            merged.update(section)
            return merged
        return data

    def load(self) -> BeansConfig:
        """Load workspace config merged over defaults."""
        return BeansConfig.from_dict(self.read())


class ConfigCache:
    """
    Short-lived cache over ConfigManager.load().

    Invalidated by elapsed time only: callers accept up to `ttl` seconds of
    staleness in exchange for not re-reading the file on every call.
    """

    def __init__(self, manager: ConfigManager, ttl: float = 5.0,
                 clock: Callable[[], float] = time.monotonic):
        self._manager = manager
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._config: Optional[BeansConfig] = None
        self._loaded_at: Optional[float] = None

    def get(self) -> BeansConfig:
        with self._lock:
            now = self._clock()
            if (self._config is not None and self._loaded_at is not None
                    and now - self._loaded_at < self._ttl):
                return self._config

            self._config = self._manager.load()
            self._loaded_at = now
            return self._config


@dataclass
class ServiceSettings:
    """
    Settings for the service layer itself.

    Loaded from environment variables with defaults matching the beans CLI
    integration's expectations.
    """
    cli_path: str = "beans"
    workspace_root: Optional[str] = None
    timeout: float = 30.0
    probe_timeout: float = 5.0
    max_output_bytes: int = 10 * 1024 * 1024
    max_retries: int = 3
    retry_base_delay: float = 0.1
    cache_ttl: float = 300.0
    config_cache_ttl: float = 5.0
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> 'ServiceSettings':
        return cls(
            cli_path=os.environ.get("BEANS_CLI_PATH", "") or "beans",
            workspace_root=os.environ.get("BEANS_WORKSPACE_ROOT") or None,
            timeout=_get_float_env("BEANS_TIMEOUT", 30.0),
            probe_timeout=_get_float_env("BEANS_PROBE_TIMEOUT", 5.0),
            max_retries=_get_int_env("BEANS_MAX_RETRIES", 3),
            retry_base_delay=_get_float_env("BEANS_RETRY_BASE_DELAY", 0.1),
            cache_ttl=_get_float_env("BEANS_CACHE_TTL", 300.0),
            config_cache_ttl=_get_float_env("BEANS_CONFIG_CACHE_TTL", 5.0),
            log_level=os.environ.get("BEANS_LOG_LEVEL", "INFO").upper(),
            log_format=os.environ.get("BEANS_LOG_FORMAT", "json").lower(),
        )

    def validate(self) -> None:
        """Validate settings values."""
        if self.timeout <= 0:
            raise ValueError("BEANS_TIMEOUT must be > 0")
        if self.probe_timeout <= 0:
            raise ValueError("BEANS_PROBE_TIMEOUT must be > 0")
        if self.max_retries < 0:
            raise ValueError("BEANS_MAX_RETRIES must be >= 0")
        if self.retry_base_delay < 0:
            raise ValueError("BEANS_RETRY_BASE_DELAY must be >= 0")
        if self.cache_ttl <= 0:
            raise ValueError("BEANS_CACHE_TTL must be > 0")
        if self.log_format not in ("json", "text"):
            raise ValueError("BEANS_LOG_FORMAT must be 'json' or 'text'")

    @property
    def resolved_workspace_root(self) -> Path:
        return Path(self.workspace_root) if self.workspace_root else Path.cwd()


def _get_int_env(key: str, default: int) -> int:
    value = os.environ.get(key, "")
    if value:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def _get_float_env(key: str, default: float) -> float:
    value = os.environ.get(key, "")
    if value:
        try:
            return float(value)
        except ValueError:
            pass
    return default

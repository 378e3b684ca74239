"""Configuration management for todosync.

This module handles loading and saving application configuration to/from
a JSON file. The config directory can be customized via CLI argument.

CRITICAL: This module must have NO web or CLI dependencies.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .validation import ValidationError

logger = logging.getLogger(__name__)

__all__ = ["Config", "DEFAULT_CONFIG_DIR", "DEFAULT_SERVER_PORT"]

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "todosync"
DEFAULT_SERVER_PORT = 3000

# database_file is filled in relative to the config directory
DEFAULT_CONFIG: Dict[str, Any] = {
    "database_file": None,
    "server_url": f"http://127.0.0.1:{DEFAULT_SERVER_PORT}",
    "server_host": "127.0.0.1",
    "server_port": DEFAULT_SERVER_PORT,
    "request_timeout": 15,
    "max_retries": 2,
    "retry_backoff": 0.5,
}


class Config:
    """Manages application configuration stored in JSON format.

    Attributes:
        config_dir: Path to the configuration directory
        config_file: Path to config.json inside config_dir
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Custom config directory path. If None, uses ~/.config/todosync/
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file = self.config_dir / "config.json"
        self.config_data = self.load_config()

    def _defaults(self) -> Dict[str, Any]:
        defaults = dict(DEFAULT_CONFIG)
        defaults["database_file"] = str(self.config_dir / "tasks.db")
        return defaults

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, creating it with defaults if missing.

        Unknown keys are preserved. A corrupt file is replaced by defaults.
        """
        config = self._defaults()
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    config.update(loaded)
                else:
                    logger.warning(f"Ignoring non-object config in {self.config_file}")
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Could not read {self.config_file}, using defaults: {e}")
        self.save_config(config)
        return config

    def save_config(self, config: Dict[str, Any]) -> None:
        """Write configuration to file."""
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2, ensure_ascii=False)
        self.config_data = config

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        value = self.config_data.get(key)
        return value if value is not None else default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value and save to file."""
        config = dict(self.config_data)
        config[key] = value
        self.save_config(config)

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        return self.config_dir

    # ===== Typed accessors =====

    def get_database_file(self) -> Path:
        """Get the local task database path."""
        return Path(self.get("database_file", str(self.config_dir / "tasks.db")))

    def get_server_url(self) -> str:
        """Get the task server base URL (no trailing slash)."""
        url = self.get("server_url", DEFAULT_CONFIG["server_url"])
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ValidationError("server_url", f"must be an http(s) URL, got {url!r}")
        return url.rstrip("/")

    def set_server_url(self, url: str) -> None:
        """Set the task server base URL."""
        if not url.startswith(("http://", "https://")):
            raise ValidationError("server_url", f"must be an http(s) URL, got {url!r}")
        self.set("server_url", url.rstrip("/"))

    def get_server_host(self) -> str:
        """Get the interface the task server binds to."""
        return str(self.get("server_host", DEFAULT_CONFIG["server_host"]))

    def get_server_port(self) -> int:
        """Get the port the task server listens on."""
        return self._get_number("server_port", int, minimum=1, maximum=65535)

    def get_request_timeout(self) -> float:
        """Get the per-request timeout in seconds."""
        return self._get_number("request_timeout", float, minimum=0.1)

    def get_max_retries(self) -> int:
        """Get how many times an idempotent request is retried when unreachable."""
        return self._get_number("max_retries", int, minimum=0)

    def get_retry_backoff(self) -> float:
        """Get the initial retry delay in seconds (doubles on each retry)."""
        return self._get_number("retry_backoff", float, minimum=0.0)

    def _get_number(
        self,
        key: str,
        kind: type,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
    ) -> Any:
        raw = self.get(key, DEFAULT_CONFIG[key])
        if isinstance(raw, bool):
            raise ValidationError(key, "must be a number")
        try:
            value = kind(raw)
        except (TypeError, ValueError):
            raise ValidationError(key, f"must be a number, got {raw!r}") from None
        if minimum is not None and value < minimum:
            raise ValidationError(key, f"must be at least {minimum}, got {value}")
        if maximum is not None and value > maximum:
            raise ValidationError(key, f"must be at most {maximum}, got {value}")
        return value

# src/toolbelt/logging_config.py
"""
Logging setup for applications embedding toolbelt.

The library itself only ever calls ``logging.getLogger(__name__)``; nothing
is configured on import. Agent applications that want toolbelt's output
routed somewhere call ``configure_logging()`` once at startup.

Settings come from the ``[toolbelt.logging]`` table (see ``config.py``) or
an explicit dict, layered over ``DEFAULT_LOGGING_CONFIG``:

    **Display filter**: with ``console_enabled = false`` (the default) the
    console handler only passes records logged with
    ``extra={"display": True}`` at or above ``display_min_level``. Use
    ``log_display()`` for messages an operator should always see, such as
    "Budget exceeded".

    **File logging**: off by default. ``file_mode = "per_run"`` writes a
    new timestamped file per process; ``file_mode = "single"`` appends to
    one file rotated at ``rotation_max_bytes``.

Usage:
    from toolbelt.logging_config import configure_logging, log_display

    configure_logging(app_name="my-agent", config={"console_enabled": True})
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from .config import load_config
from .exceptions import ConfigError

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(name)s - %(message)s",
    "file_enabled": False,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/toolbelt/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "toolbelt": "INFO",
        "aiohttp": "WARNING",
        "asyncio": "WARNING",
    },
}


def _to_level(level: str | int | None, default: int) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if isinstance(resolved, int):
            return resolved
    return default


class DisplayFilter(logging.Filter):
    """Gate console output.

    When the console is globally enabled every record passes and the
    handler level decides. Otherwise only records flagged ``display=True``
    pass, and only at or above ``display_min_level``.
    """

    def __init__(self, console_globally_enabled: bool = False, display_min_level: int = logging.INFO) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


class LoggingManager:
    """Process-wide holder of the handlers installed by ``configure_logging``."""

    _instance: LoggingManager | None = None

    def __init__(self) -> None:
        self.configured = False
        self.log_file_path: Path | None = None
        self.console_handler: logging.Handler | None = None
        self.file_handler: logging.Handler | None = None
        self.display_filter: DisplayFilter | None = None

    @classmethod
    def get_instance(cls) -> LoggingManager:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Remove installed handlers and forget the manager. Used by tests."""
        if cls._instance is not None:
            cls._instance._remove_handlers()
        cls._instance = None

    def _remove_handlers(self) -> None:
        root_logger = logging.getLogger()
        for handler in (self.console_handler, self.file_handler):
            if handler is not None:
                root_logger.removeHandler(handler)
                handler.close()
        self.console_handler = None
        self.file_handler = None
        self.display_filter = None
        self.log_file_path = None
        self.configured = False

    def configure(
        self,
        app_name: str = "toolbelt",
        config: dict[str, Any] | None = None,
        config_file_path: str | Path | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        if self.configured and not force_reconfigure:
            return self.log_file_path

        log_config = self._load_config(config, config_file_path)

        # Only our own handlers are replaced; the host app's stay put.
        self._remove_handlers()
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)

        console_enabled = bool(log_config.get("console_enabled", False))
        self.display_filter = DisplayFilter(
            console_globally_enabled=console_enabled,
            display_min_level=_to_level(log_config.get("display_min_level"), logging.INFO),
        )
        self.console_handler = self._create_console_handler(log_config)
        if not console_enabled:
            # the filter is the only gate in quiet mode
            self.console_handler.setLevel(logging.DEBUG)
        self.console_handler.addFilter(self.display_filter)
        root_logger.addHandler(self.console_handler)

        if log_config.get("file_enabled", False):
            self.file_handler, self.log_file_path = self._create_file_handler(log_config, app_name)
            if self.file_handler is not None:
                root_logger.addHandler(self.file_handler)

        for component, level in log_config.get("components", {}).items():
            logging.getLogger(component).setLevel(_to_level(level, logging.INFO))

        self.configured = True
        logging.getLogger(__name__).debug(
            f"Logging configured for {app_name} (log file: {self.log_file_path})"
        )
        return self.log_file_path

    def _load_config(
        self, config: dict[str, Any] | None, config_file_path: str | Path | None
    ) -> dict[str, Any]:
        if config is None:
            try:
                config = load_config(config_file_path).logging
            except ConfigError as e:
                sys.stderr.write(f"Warning: using default logging settings: {e}\n")
                config = {}

        merged = {**DEFAULT_LOGGING_CONFIG, **config}
        merged["components"] = {
            **DEFAULT_LOGGING_CONFIG["components"],
            **config.get("components", {}),
        }
        return merged

    def _create_console_handler(self, config: dict[str, Any]) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(_to_level(config.get("console_level"), logging.WARNING))
        handler.setFormatter(
            logging.Formatter(config.get("console_format", DEFAULT_LOGGING_CONFIG["console_format"]))
        )
        return handler

    def _create_file_handler(
        self, config: dict[str, Any], app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        """Create the per-run or rotating file handler; (None, None) if the path is unusable."""
        log_dir = Path(os.path.expanduser(config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        handler: logging.Handler
        if config.get("file_mode") == "single":
            try:
                filename = config.get("file_single_name", "{app}.log").format(app=app_name)
            except (KeyError, ValueError):
                filename = f"{app_name}.log"
            log_file_path = log_dir / filename
            try:
                handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config.get("rotation_max_bytes", 10 * 1024 * 1024),
                    backupCount=config.get("rotation_backup_count", 5),
                    encoding="utf-8",
                )
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None
        else:
            timestamp = datetime.now()
            try:
                filename = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"]).format(
                    app=app_name, timestamp=timestamp
                )
            except (KeyError, ValueError):
                filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
            log_file_path = log_dir / filename
            try:
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None

        handler.setLevel(_to_level(config.get("file_level"), logging.DEBUG))
        handler.setFormatter(
            logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"]))
        )
        return handler, log_file_path


def configure_logging(
    app_name: str = "toolbelt",
    config: dict[str, Any] | None = None,
    config_file_path: str | Path | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Install toolbelt's console (and optionally file) handlers.

    Args:
        app_name: Used in log file names.
        config: Logging settings; when omitted, the ``[toolbelt.logging]``
            table is read via ``load_config(config_file_path)``.
        config_file_path: TOML file to read when ``config`` is omitted.
        force_reconfigure: Replace handlers from an earlier call.

    Returns:
        The log file path, or None when file logging is off.
    """
    return LoggingManager.get_instance().configure(
        app_name=app_name,
        config=config,
        config_file_path=config_file_path,
        force_reconfigure=force_reconfigure,
    )


def log_display(logger: logging.Logger, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
    """Log ``msg`` flagged for the console even when it is in quiet mode.

    Any ``extra`` passed in is kept and merged.
    """
    extra = dict(kwargs.pop("extra", None) or {})
    extra["display"] = True
    logger.log(level, msg, *args, extra=extra, **kwargs)


def get_log_file_path() -> Path | None:
    return LoggingManager.get_instance().log_file_path


def set_console_level(level: str | int) -> None:
    """Change the console handler's level at runtime."""
    handler = LoggingManager.get_instance().console_handler
    if handler is not None:
        handler.setLevel(_to_level(level, handler.level))


def set_file_level(level: str | int) -> None:
    """Change the file handler's level at runtime."""
    handler = LoggingManager.get_instance().file_handler
    if handler is not None:
        handler.setLevel(_to_level(level, handler.level))


def set_component_level(component: str, level: str | int) -> None:
    """Change one logger's level at runtime, e.g. ``("toolbelt.budget", "DEBUG")``."""
    component_logger = logging.getLogger(component)
    component_logger.setLevel(_to_level(level, component_logger.level))

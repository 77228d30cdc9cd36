# tests/logging/test_logging_display.py
"""
Tests for logging setup: DisplayFilter, log_display(), file handlers and
console gating.

These tests verify:
- DisplayFilter behavior matrix (verbose vs quiet, display flag, min level)
- log_display() extra merging
- File mode selection (per-run vs single rotating file)
- End-to-end console gating in quiet mode
- Settings read from the [toolbelt.logging] table
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from toolbelt.logging_config import (
    DEFAULT_LOGGING_CONFIG,
    DisplayFilter,
    LoggingManager,
    configure_logging,
    get_log_file_path,
    log_display,
    set_component_level,
    set_console_level,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_logging_manager():
    """Drop handlers installed by configure_logging between tests."""
    root = logging.getLogger()
    level = root.level
    LoggingManager.reset_instance()
    yield
    LoggingManager.reset_instance()
    root.setLevel(level)
    logging.getLogger("toolbelt").setLevel(logging.NOTSET)


def _make_record(
    level: int = logging.INFO,
    display: bool | None = None,
) -> logging.LogRecord:
    record = logging.LogRecord(
        name="toolbelt.test",
        level=level,
        pathname=__file__,
        lineno=1,
        msg="test message",
        args=(),
        exc_info=None,
    )
    if display is not None:
        record.display = display
    return record


# ---------------------------------------------------------------------------
# DisplayFilter
# ---------------------------------------------------------------------------


class TestDisplayFilter:
    """Behavior matrix of the console gate."""

    def test_verbose_passes_everything(self) -> None:
        f = DisplayFilter(console_globally_enabled=True)

        assert f.filter(_make_record(logging.DEBUG))
        assert f.filter(_make_record(logging.INFO, display=False))

    def test_quiet_drops_unflagged(self) -> None:
        f = DisplayFilter(console_globally_enabled=False)

        assert not f.filter(_make_record(logging.ERROR))

    def test_quiet_passes_flagged_at_min_level(self) -> None:
        f = DisplayFilter(console_globally_enabled=False, display_min_level=logging.WARNING)

        assert f.filter(_make_record(logging.WARNING, display=True))
        assert not f.filter(_make_record(logging.INFO, display=True))


# ---------------------------------------------------------------------------
# log_display
# ---------------------------------------------------------------------------


class TestLogDisplay:
    def test_sets_display_flag(self, caplog) -> None:
        logger = logging.getLogger("toolbelt.test")

        with caplog.at_level(logging.INFO, logger="toolbelt.test"):
            log_display(logger, logging.WARNING, "Budget exceeded")

        assert caplog.records[0].display is True
        assert caplog.records[0].levelno == logging.WARNING

    def test_merges_existing_extra(self, caplog) -> None:
        logger = logging.getLogger("toolbelt.test")

        with caplog.at_level(logging.INFO, logger="toolbelt.test"):
            log_display(logger, logging.INFO, "hello", extra={"step": 3})

        assert caplog.records[0].step == 3
        assert caplog.records[0].display is True


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Handler installation and console gating."""

    def test_quiet_console_only_shows_display_records(self, capsys) -> None:
        configure_logging(config={"console_enabled": False})
        logger = logging.getLogger("toolbelt.test")

        logger.warning("routine warning")
        log_display(logger, logging.WARNING, "Budget exceeded")

        err = capsys.readouterr().err
        assert "Budget exceeded" in err
        assert "routine warning" not in err

    def test_verbose_console_respects_level(self, capsys) -> None:
        configure_logging(config={"console_enabled": True, "console_level": "WARNING"})
        logger = logging.getLogger("toolbelt.test")

        logger.info("too quiet")
        logger.warning("loud enough")

        err = capsys.readouterr().err
        assert "loud enough" in err
        assert "too quiet" not in err

    def test_configure_is_idempotent(self) -> None:
        configure_logging(config={})
        handler = LoggingManager.get_instance().console_handler

        configure_logging(config={"console_enabled": True})

        assert LoggingManager.get_instance().console_handler is handler

    def test_force_reconfigure_replaces_own_handler_only(self) -> None:
        foreign = logging.NullHandler()
        root = logging.getLogger()
        root.addHandler(foreign)
        try:
            configure_logging(config={})
            first = LoggingManager.get_instance().console_handler

            configure_logging(config={}, force_reconfigure=True)

            assert LoggingManager.get_instance().console_handler is not first
            assert first not in root.handlers
            assert foreign in root.handlers
        finally:
            root.removeHandler(foreign)

    def test_component_levels(self) -> None:
        configure_logging(config={"components": {"toolbelt": "DEBUG"}})

        assert logging.getLogger("toolbelt").level == logging.DEBUG
        assert logging.getLogger("aiohttp").level == logging.WARNING

        set_component_level("toolbelt", "ERROR")
        assert logging.getLogger("toolbelt").level == logging.ERROR

    def test_set_console_level(self) -> None:
        configure_logging(config={"console_enabled": True})

        set_console_level("ERROR")

        assert LoggingManager.get_instance().console_handler.level == logging.ERROR

    def test_reads_toolbelt_logging_table(self, tmp_path, capsys) -> None:
        config_file = tmp_path / "config.toml"
        config_file.write_text('[toolbelt.logging]\nconsole_enabled = true\nconsole_level = "INFO"\n')

        configure_logging(config_file_path=config_file)
        logging.getLogger("toolbelt.test").info("visible")

        assert "visible" in capsys.readouterr().err

    def test_invalid_config_file_falls_back_to_defaults(self, tmp_path, capsys) -> None:
        config_file = tmp_path / "config.toml"
        config_file.write_text("[toolbelt.logging\n")

        configure_logging(config_file_path=config_file)

        assert "using default logging settings" in capsys.readouterr().err
        assert LoggingManager.get_instance().configured


class TestFileLogging:
    """Per-run and single-file modes."""

    def test_file_logging_off_by_default(self) -> None:
        assert configure_logging(config={}) is None
        assert get_log_file_path() is None

    def test_per_run_file(self, tmp_path) -> None:
        path = configure_logging(
            app_name="agent",
            config={"file_enabled": True, "file_directory": str(tmp_path)},
        )

        assert path is not None
        assert path.parent == tmp_path
        assert path.name.startswith("agent_")
        assert isinstance(LoggingManager.get_instance().file_handler, logging.FileHandler)

        logging.getLogger("toolbelt.test").info("to file")
        LoggingManager.get_instance().file_handler.flush()
        assert "to file" in path.read_text()

    def test_single_rotating_file(self, tmp_path) -> None:
        path = configure_logging(
            app_name="agent",
            config={
                "file_enabled": True,
                "file_directory": str(tmp_path),
                "file_mode": "single",
                "rotation_max_bytes": 1024,
                "rotation_backup_count": 2,
            },
        )

        handler = LoggingManager.get_instance().file_handler
        assert path == tmp_path / "agent.log"
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == 1024
        assert handler.backupCount == 2

    def test_defaults_are_quiet(self) -> None:
        assert DEFAULT_LOGGING_CONFIG["console_enabled"] is False
        assert DEFAULT_LOGGING_CONFIG["file_enabled"] is False

"""Unit tests for skillcore.utils.logging module."""

import logging

import pytest

from skillcore.config.schema import SkillCoreSettings
from skillcore.events import EventBus
from skillcore.utils.logging import setup_logging


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def settings_for(tmp_path, **logging_config):
    return SkillCoreSettings(logging={"log_dir": str(tmp_path / "logs"), **logging_config})


@pytest.mark.unit
@pytest.mark.usefixtures("restore_root_logger")
class TestSetupLogging:
    """Tests for setup_logging."""

    def test_session_log_file(self, tmp_path):
        log_file = setup_logging(settings_for(tmp_path, level="warning"), "s1")

        assert log_file == str(tmp_path / "logs" / "session-s1.log")
        assert logging.getLogger().level == logging.WARNING

    def test_default_session_name(self, tmp_path):
        log_file = setup_logging(settings_for(tmp_path))

        assert log_file.startswith(str(tmp_path / "logs" / "session-"))

    def test_trace_level_subscribes_tracer(self, tmp_path):
        """Test trace level maps to DEBUG and adds the execution trace listener."""
        bus = EventBus()

        setup_logging(settings_for(tmp_path, level="trace"), "s2", event_bus=bus)

        assert logging.getLogger().level == logging.DEBUG
        assert bus.listener_count == 1
        assert (tmp_path / "logs" / "session-s2-trace.log").exists()

    def test_trace_executions_flag(self, tmp_path):
        bus = EventBus()

        setup_logging(settings_for(tmp_path, trace_executions=True), "s3", event_bus=bus)

        assert bus.listener_count == 1

    def test_no_tracer_by_default(self, tmp_path):
        bus = EventBus()

        setup_logging(settings_for(tmp_path), "s4", event_bus=bus)

        assert bus.listener_count == 0

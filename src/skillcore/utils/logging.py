"""Session logging setup."""

import logging
from datetime import datetime
from pathlib import Path

from skillcore.config.schema import SkillCoreSettings
from skillcore.events import EventBus
from skillcore.trace_logger import ExecutionTraceLogger

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    settings: SkillCoreSettings,
    session_name: str | None = None,
    event_bus: EventBus | None = None,
) -> str:
    """Setup session-specific logging to file (not console).

    Log files follow the pattern ``<log_dir>/session-{name}.log``. At level
    "trace", or when ``trace_executions`` is set, an ExecutionTraceLogger is
    subscribed to the event bus and writes ``session-{name}-trace.log``.

    Args:
        settings: Loaded settings
        session_name: Session identifier (defaults to a timestamp)
        event_bus: Bus the trace logger listens on (optional)

    Returns:
        Path to log file as string

    Example:
        >>> setup_logging(load_settings(), "2025-11-09-13-16-20")
        '/Users/user/.skillcore/logs/session-2025-11-09-13-16-20.log'
    """
    log_dir = Path(settings.logging.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    if session_name is None:
        session_name = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")

    log_file = log_dir / f"session-{session_name}.log"

    log_level = settings.logging.level.upper()
    # TRACE is DEBUG plus the execution trace file
    numeric_level = logging.DEBUG if log_level == "TRACE" else getattr(logging, log_level, logging.INFO)

    # Clear any existing handlers to avoid duplicates
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        filename=str(log_file),
        filemode="a",
        force=True,
    )

    if event_bus is not None and (log_level == "TRACE" or settings.logging.trace_executions):
        trace_log_file = log_dir / f"session-{session_name}-trace.log"
        include_params = settings.logging.include_params
        event_bus.subscribe(
            ExecutionTraceLogger(trace_file=trace_log_file, include_params=include_params)
        )
        logger.info(f"Trace logging enabled: {trace_log_file} (include_params={include_params})")

    return str(log_file)

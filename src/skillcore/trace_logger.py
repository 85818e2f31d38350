"""Trace-level logging of skill executions.

Provides structured JSON logging of finished executions with timing, layer,
outcome and resource usage for offline analysis.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from skillcore.events import Event, EventType

logger = logging.getLogger(__name__)

TRACED_EVENTS = (EventType.EXECUTION_COMPLETED, EventType.EXECUTION_FAILED)


class ExecutionTraceLogger:
    """Event listener appending one JSON line per finished execution.

    Example:
        >>> tracer = ExecutionTraceLogger(Path("~/.skillcore/logs/trace.jsonl").expanduser())
        >>> event_bus.subscribe(tracer)
    """

    def __init__(self, trace_file: Path, include_params: bool = False):
        """Initialize trace logger.

        Args:
            trace_file: Path to trace log file
            include_params: Whether to include call parameters in traces
        """
        self.trace_file = trace_file
        self.include_params = include_params
        self._ensure_trace_file()

    def _ensure_trace_file(self) -> None:
        """Ensure trace log file and directory exist."""
        self.trace_file.parent.mkdir(parents=True, exist_ok=True)
        if not self.trace_file.exists():
            self.trace_file.touch()
            logger.debug(f"Created trace log file: {self.trace_file}")

    def handle_event(self, event: Event) -> None:
        if event.type not in TRACED_EVENTS:
            return
        data = event.data
        self.log_execution(
            execution_id=data.get("execution_id", event.event_id),
            skill_id=data.get("skill_id"),
            layer=data.get("layer"),
            state=data.get("state"),
            duration_ms=data.get("duration_ms"),
            resource_usage=data.get("resource_usage"),
            extension_id=data.get("extension_id"),
            params=data.get("params"),
            error=data.get("error"),
        )

    def log_execution(
        self,
        *,
        execution_id: str,
        skill_id: str | None = None,
        layer: int | None = None,
        state: str | None = None,
        duration_ms: float | None = None,
        resource_usage: dict[str, Any] | None = None,
        extension_id: str | None = None,
        params: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
    ) -> None:
        """Append a trace entry for one execution.

        Args:
            execution_id: Unique identifier of the execution
            skill_id: Executed skill
            layer: Skill layer
            state: Final execution state
            duration_ms: Wall-clock duration in milliseconds
            resource_usage: Resources consumed
            extension_id: Extension routed to, if any
            params: Call parameters (logged only if include_params=True)
            error: Structured error for failed executions
        """
        trace_entry: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "execution_id": execution_id,
            "skill_id": skill_id,
            "layer": layer,
            "state": state,
            "success": error is None,
        }

        if extension_id:
            trace_entry["extension_id"] = extension_id

        if params is not None:
            if self.include_params:
                trace_entry["params"] = params
            else:
                # Include names but not values
                trace_entry["param_names"] = sorted(params)

        if duration_ms is not None:
            trace_entry["duration_ms"] = round(duration_ms, 2)

        if resource_usage:
            trace_entry["resource_usage"] = resource_usage

        if error:
            trace_entry["error"] = {
                "kind": error.get("kind"),
                "subkind": error.get("subkind"),
                "code": error.get("code"),
                "message": error.get("message"),
            }

        try:
            with open(self.trace_file, "a") as f:
                json.dump(trace_entry, f, default=str)
                f.write("\n")
        except Exception as e:
            logger.error(f"Failed to write trace log: {e}")

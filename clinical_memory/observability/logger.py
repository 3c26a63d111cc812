"""Observability logger for structured build/assembly telemetry."""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from clinical_memory.observability.events import (
    AssemblyEvent,
    BuildMode,
    DocumentBuildEvent,
    EventType,
    ObservabilityEvent,
    SourceLoadEvent,
)

logger = logging.getLogger(__name__)


class ObservabilityLogger:
    """Central logger for document build and context assembly events.

    Writes structured events to JSON Lines files for later analysis.
    A disabled logger never touches the filesystem.
    """

    _instance: Optional["ObservabilityLogger"] = None

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: bool = True,
        log_full_content: bool = False,
        max_content_length: int = 500,
    ):
        """Initialize observability logger.

        Args:
            log_dir: Directory for log files (default: data/logs)
            enabled: Whether logging is enabled
            log_full_content: Whether to log full query text
            max_content_length: Max length for truncated content
        """
        self.enabled = enabled
        self.log_full_content = log_full_content
        self.max_content_length = max_content_length

        if log_dir is None:
            log_dir = Path("data/logs")
        self.log_dir = log_dir
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        # Separate files for different event types
        self._log_files: dict[str, Path] = {
            "builds": self.log_dir / "document_builds.jsonl",
            "sources": self.log_dir / "source_failures.jsonl",
            "assembly": self.log_dir / "context_assembly.jsonl",
        }

        # Event callbacks for real-time monitoring
        self._callbacks: list[Callable[[ObservabilityEvent], None]] = []

        self._current_session_id: Optional[str] = None

    @classmethod
    def get_instance(cls) -> "ObservabilityLogger":
        """Get or create singleton instance configured from settings."""
        if cls._instance is None:
            from clinical_memory.config import get_settings

            settings = get_settings()
            cls._instance = cls(
                log_dir=settings.telemetry_log_dir,
                enabled=settings.telemetry_enabled,
                log_full_content=settings.telemetry_full_content,
                max_content_length=settings.telemetry_max_content_length,
            )
        return cls._instance

    def set_session_id(self, session_id: str) -> None:
        """Set current session ID for event correlation."""
        self._current_session_id = session_id

    def generate_request_id(self) -> str:
        """Generate a unique request ID."""
        return str(uuid.uuid4())[:8]

    def add_callback(self, callback: Callable[[ObservabilityEvent], None]) -> None:
        """Add callback for real-time event monitoring."""
        self._callbacks.append(callback)

    def _write_event(self, event: ObservabilityEvent, log_type: str) -> None:
        """Write event to appropriate log file."""
        if not self.enabled:
            return

        if self._current_session_id and not event.session_id:
            event.session_id = self._current_session_id

        try:
            log_file = self._log_files.get(log_type)
            if log_file:
                with open(log_file, "a") as f:
                    f.write(event.model_dump_json() + "\n")

            for callback in self._callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(f"Observability callback failed: {e}")

        except Exception as e:
            logger.warning(f"Failed to write observability event: {e}")

    def _truncate(self, content: str) -> str:
        """Truncate content if needed."""
        if self.log_full_content:
            return content
        if len(content) <= self.max_content_length:
            return content
        return content[: self.max_content_length] + "..."

    # Document builds

    @contextmanager
    def document_build(
        self,
        patient_id: Optional[str],
        mode: BuildMode = BuildMode.FULL,
        request_id: Optional[str] = None,
    ):
        """Context manager for logging a full build or incremental refresh.

        Usage:
            with obs.document_build(patient_id) as event:
                doc = ...
                event.problems = len(doc.problem_matrix)
        """
        start_time = time.time()
        request_id = request_id or self.generate_request_id()

        event = DocumentBuildEvent(
            event_type=EventType.BUILD_START,
            patient_id=patient_id,
            mode=mode,
            request_id=request_id,
        )

        try:
            yield event
            event.event_type = EventType.BUILD_SUCCESS

        except Exception as e:
            event.event_type = EventType.BUILD_ERROR
            event.error_type = type(e).__name__
            event.error_message = str(e)[:200]
            raise

        finally:
            event.duration_ms = (time.time() - start_time) * 1000
            self._write_event(event, "builds")

    def log_source_failure(
        self,
        source: str,
        error: BaseException,
        patient_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> None:
        """Log a chart section that failed to load."""
        event = SourceLoadEvent(
            source=source,
            patient_id=patient_id,
            error_type=type(error).__name__,
            error_message=str(error)[:200],
            request_id=request_id,
        )
        self._write_event(event, "sources")

    # Context assembly

    def log_assembly(
        self,
        task: str,
        chars: int,
        budget_chars: Optional[int] = None,
        dropped_blocks: Optional[list[str]] = None,
        query: Optional[str] = None,
    ) -> None:
        """Log a working-memory assembly."""
        event = AssemblyEvent(
            task=task,
            chars=chars,
            budget_chars=budget_chars,
            over_budget=budget_chars is not None and chars > budget_chars,
            dropped_blocks=dropped_blocks or [],
            query_summary=self._truncate(query) if query else None,
        )
        self._write_event(event, "assembly")

    # Utility methods

    def get_recent_events(
        self,
        log_type: str,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Read recent events from a log file."""
        log_file = self._log_files.get(log_type)
        if not log_file or not log_file.exists():
            return []

        events = []
        with open(log_file) as f:
            for line in f:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

        return events[-limit:]

    def get_stats(self, log_type: str) -> dict[str, Any]:
        """Get basic statistics for a log type."""
        events = self.get_recent_events(log_type, limit=1000)
        if not events:
            return {"total": 0}

        total = len(events)
        errors = sum(
            1
            for e in events
            if "error" in e.get("event_type", "") or "failure" in e.get("event_type", "")
        )
        avg_duration = sum(e.get("duration_ms") or 0 for e in events) / total

        return {
            "total": total,
            "errors": errors,
            "error_rate": errors / total if total > 0 else 0,
            "avg_duration_ms": avg_duration,
        }


def get_observability_logger() -> ObservabilityLogger:
    """Get the global observability logger instance."""
    return ObservabilityLogger.get_instance()

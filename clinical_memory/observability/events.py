"""Structured observability events for document builds and context assembly."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of observability events."""

    BUILD_START = "build_start"
    BUILD_SUCCESS = "build_success"
    BUILD_ERROR = "build_error"
    SOURCE_LOAD_FAILURE = "source_load_failure"
    CONTEXT_ASSEMBLY = "context_assembly"


class BuildMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class ObservabilityEvent(BaseModel):
    """Base class for all observability events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class DocumentBuildEvent(ObservabilityEvent):
    """Event for full builds and incremental refreshes."""

    patient_id: Optional[str] = None
    mode: BuildMode = BuildMode.FULL

    # Populated on success
    problems: int = 0
    lab_trends: int = 0
    vitals: int = 0
    new_vitals: int = 0
    new_labs: int = 0
    failed_sources: list[str] = Field(default_factory=list)

    # Error fields
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class SourceLoadEvent(ObservabilityEvent):
    """A chart section that failed to load and was treated as empty."""

    event_type: EventType = EventType.SOURCE_LOAD_FAILURE
    source: str
    patient_id: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class AssemblyEvent(ObservabilityEvent):
    """Working-memory assembly for one task tier."""

    event_type: EventType = EventType.CONTEXT_ASSEMBLY
    task: str
    chars: int = 0
    budget_chars: Optional[int] = None
    over_budget: bool = False
    dropped_blocks: list[str] = Field(default_factory=list)
    query_summary: Optional[str] = None

"""Observability module for document build and context assembly telemetry."""

from clinical_memory.observability.events import (
    AssemblyEvent,
    BuildMode,
    DocumentBuildEvent,
    EventType,
    ObservabilityEvent,
    SourceLoadEvent,
)
from clinical_memory.observability.logger import ObservabilityLogger, get_observability_logger

__all__ = [
    "AssemblyEvent",
    "BuildMode",
    "DocumentBuildEvent",
    "EventType",
    "ObservabilityEvent",
    "ObservabilityLogger",
    "SourceLoadEvent",
    "get_observability_logger",
]

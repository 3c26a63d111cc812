"""Longitudinal clinical memory engine."""

from clinical_memory.longitudinal import (
    DocumentBuilder,
    DocumentRenderer,
    DocumentUpdater,
    SessionActivity,
    TaskKind,
    WorkingMemoryAssembler,
)
from clinical_memory.models import LongitudinalDocument

__version__ = "0.1.0"

__all__ = [
    "DocumentBuilder",
    "DocumentRenderer",
    "DocumentUpdater",
    "LongitudinalDocument",
    "SessionActivity",
    "TaskKind",
    "WorkingMemoryAssembler",
]

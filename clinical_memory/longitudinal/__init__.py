"""Longitudinal document build, update, render and working-memory assembly."""

from clinical_memory.longitudinal.builder import DocumentBuilder
from clinical_memory.longitudinal.renderer import DocumentRenderer
from clinical_memory.longitudinal.session import SessionActivity
from clinical_memory.longitudinal.updater import DocumentUpdater
from clinical_memory.longitudinal.working_memory import TaskKind, WorkingMemoryAssembler

__all__ = [
    "DocumentBuilder",
    "DocumentRenderer",
    "DocumentUpdater",
    "SessionActivity",
    "TaskKind",
    "WorkingMemoryAssembler",
]

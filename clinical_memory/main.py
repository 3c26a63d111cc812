"""Programmatic entry points for the clinical memory engine."""

import logging
import sys
from typing import Any, Optional

from clinical_memory.config import get_settings


def setup_logging():
    """Configure logging based on settings."""
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def create_source_from_settings():
    """HTTP source when a base URL is configured, else the on-disk chart tree."""
    from clinical_memory.sources import HttpPatientSource, JsonDirectorySource

    settings = get_settings()
    if settings.has_http_source:
        return HttpPatientSource.from_settings()
    return JsonDirectorySource.from_settings()


async def build_document(patient_id: str, encounter_id: Optional[str] = None, source=None):
    """Build a longitudinal document for one patient.

    Example:
        import asyncio
        from clinical_memory.main import build_document

        doc = asyncio.run(build_document("PAT001", encounter_id="ENC042"))
    """
    from clinical_memory.longitudinal import DocumentBuilder

    builder = DocumentBuilder.from_settings(source or create_source_from_settings())
    return await builder.build_full(patient_id, encounter_id)


async def build_working_memory(
    patient_id: str,
    task: str,
    encounter_id: Optional[str] = None,
    source=None,
    **extra: Any,
) -> str:
    """Build a document and assemble the context for one task.

    Example:
        context = asyncio.run(build_working_memory(
            "PAT001",
            "ask",
            question="What is the potassium trend?",
        ))
    """
    from clinical_memory.longitudinal import WorkingMemoryAssembler

    setup_logging()
    doc = await build_document(patient_id, encounter_id=encounter_id, source=source)
    assembler = WorkingMemoryAssembler.from_settings(doc)
    return assembler.assemble(task, extra)

"""Patient chart data sources."""

from clinical_memory.sources.base import (
    ChartLayoutSource,
    PatientDataSource,
    SourceFormatError,
    SourceLoadError,
    SourceNotFoundError,
)
from clinical_memory.sources.http import HttpPatientSource
from clinical_memory.sources.json_files import JsonDirectorySource

__all__ = [
    "ChartLayoutSource",
    "HttpPatientSource",
    "JsonDirectorySource",
    "PatientDataSource",
    "SourceFormatError",
    "SourceLoadError",
    "SourceNotFoundError",
]

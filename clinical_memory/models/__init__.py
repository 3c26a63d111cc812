"""Data models for the longitudinal clinical document."""

from clinical_memory.models.categories import (
    CATEGORY_DISPLAY_ORDER,
    DEFAULT_CATEGORY_PROFILES,
    CategoryProfile,
    ProblemCategory,
    ProblemCategoryClassifier,
)
from clinical_memory.models.document import (
    AIMemory,
    ClinicalNarrative,
    LongitudinalDocument,
    ProblemPeriodData,
    ProblemTimeline,
    SessionContext,
)
from clinical_memory.models.labs import LabTrend, LabValue, TrendDirection
from clinical_memory.models.periods import (
    DEFAULT_TIME_PERIODS,
    HISTORICAL_LABEL,
    PeriodRange,
    TimePeriod,
    TimePeriodCatalog,
)
from clinical_memory.models.records import (
    Allergy,
    Demographics,
    Encounter,
    LabResult,
    Medication,
    NoteRecord,
    Problem,
    VitalSign,
)

__all__ = [
    "AIMemory",
    "Allergy",
    "CATEGORY_DISPLAY_ORDER",
    "CategoryProfile",
    "ClinicalNarrative",
    "DEFAULT_CATEGORY_PROFILES",
    "DEFAULT_TIME_PERIODS",
    "Demographics",
    "Encounter",
    "HISTORICAL_LABEL",
    "LabResult",
    "LabTrend",
    "LabValue",
    "LongitudinalDocument",
    "Medication",
    "NoteRecord",
    "PeriodRange",
    "Problem",
    "ProblemCategory",
    "ProblemCategoryClassifier",
    "ProblemPeriodData",
    "ProblemTimeline",
    "SessionContext",
    "TimePeriod",
    "TimePeriodCatalog",
    "TrendDirection",
    "VitalSign",
]

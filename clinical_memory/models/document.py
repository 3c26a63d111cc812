"""Longitudinal clinical document — the root aggregate.

Organizes patient data along two axes:
- Rows: clinical problems (Heart Failure, Diabetes, CKD, ...)
- Columns: time periods (Current Encounter, Past 24 Hours, ..., Historical)

Cross-cutting streams (vitals, lab trends, medications, imaging, procedures,
encounters), the accumulating clinical narrative, the assistant's memory and
the current session context hang off the same document.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from clinical_memory.models.categories import ProblemCategory, ProblemCategoryClassifier
from clinical_memory.models.labs import LabTrend
from clinical_memory.models.periods import PeriodBounds, TimePeriod, TimePeriodCatalog
from clinical_memory.models.records import (
    Allergy,
    Demographics,
    Encounter,
    LabResult,
    Medication,
    Problem,
    VitalSign,
)

DOCUMENT_VERSION = "1.0"


# ── Problem matrix ────────────────────────────────────────────────────────────


class NoteExcerpt(BaseModel):
    date: Optional[datetime] = None
    type: Optional[str] = None
    author: Optional[str] = None
    excerpt: str = ""


class MedicationChanges(BaseModel):
    started: list[Medication] = Field(default_factory=list)
    stopped: list[Medication] = Field(default_factory=list)
    adjusted: list[Medication] = Field(default_factory=list)
    current: list[Medication] = Field(default_factory=list)


class PeriodStatus(BaseModel):
    trend: Optional[str] = None
    control_level: Optional[str] = None
    notes: str = ""


class ProblemPeriodData(BaseModel):
    """Everything known about one problem within one time period."""

    encounters: list[Encounter] = Field(default_factory=list)
    notes: list[NoteExcerpt] = Field(default_factory=list)
    labs: list[LabResult] = Field(default_factory=list)
    medications: MedicationChanges = Field(default_factory=MedicationChanges)
    vitals: list[VitalSign] = Field(default_factory=list)
    imaging: list[dict[str, Any]] = Field(default_factory=list)
    procedures: list[dict[str, Any]] = Field(default_factory=list)
    status: PeriodStatus = Field(default_factory=PeriodStatus)

    def is_empty(self) -> bool:
        return not (
            self.encounters
            or self.notes
            or self.labs
            or self.vitals
            or self.medications.started
            or self.medications.stopped
            or self.medications.adjusted
        )


class ProblemInfo(BaseModel):
    id: str
    name: str
    icd10: Optional[str] = None
    snomed: Optional[str] = None
    onset_date: Optional[datetime] = None
    resolved_date: Optional[datetime] = None
    status: str = "active"
    priority: str = "medium"
    category: ProblemCategory = ProblemCategory.OTHER
    notes: str = ""


class ProblemTimeline(BaseModel):
    """One problem row: metadata plus a period-label-keyed set of buckets."""

    problem: ProblemInfo
    related_labs: list[str] = Field(default_factory=list)
    related_vitals: list[str] = Field(default_factory=list)
    timeline: dict[str, ProblemPeriodData] = Field(default_factory=dict)

    @classmethod
    def from_problem(
        cls,
        problem: Problem,
        classifier: ProblemCategoryClassifier,
        period_labels: list[str],
    ) -> "ProblemTimeline":
        category = classifier.categorize(problem.name)
        info = ProblemInfo(
            id=problem.id,
            name=problem.name,
            icd10=problem.icd10,
            snomed=problem.snomed,
            onset_date=problem.onset_date,
            resolved_date=problem.resolved_date,
            status=problem.status or "active",
            priority=problem.priority or "medium",
            category=category,
            notes=problem.notes or "",
        )
        return cls(
            problem=info,
            related_labs=classifier.get_related_labs(category),
            related_vitals=classifier.get_related_vitals(category),
            timeline={label: ProblemPeriodData() for label in period_labels},
        )

    def get_period_data(self, label: str) -> ProblemPeriodData:
        """Bucket for ``label``; allocated on first access for unknown labels."""
        if label not in self.timeline:
            self.timeline[label] = ProblemPeriodData()
        return self.timeline[label]

    def has_any_data(self) -> bool:
        return any(not data.is_empty() for data in self.timeline.values())

    def lab_is_related(self, lab_name: str) -> bool:
        lowered = lab_name.lower()
        return any(name.lower() in lowered for name in self.related_labs)


# ── Snapshot / streams ────────────────────────────────────────────────────────


class CurrentEncounter(BaseModel):
    id: str
    start_date: Optional[datetime] = None


class DocumentMetadata(BaseModel):
    generated_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    last_loaded_timestamp: Optional[datetime] = None
    patient_id: Optional[str] = None
    current_encounter: Optional[CurrentEncounter] = None
    document_version: str = DOCUMENT_VERSION


class PatientSnapshot(BaseModel):
    demographics: Optional[Demographics] = None
    allergies: list[Allergy] = Field(default_factory=list)
    code_status: Optional[str] = None
    advance_directives: Any = None
    primary_provider: Any = None
    insurance: Any = None
    emergency_contact: Any = None
    social_history: Any = None
    family_history: Any = None


class ChangeType(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"
    ADJUSTED = "adjusted"


class MedicationChange(BaseModel):
    type: ChangeType = ChangeType.ADJUSTED
    date: Optional[datetime] = None
    name: str
    dose: Optional[str] = None
    reason: Optional[str] = None


class MedicationStream(BaseModel):
    current: list[Medication] = Field(default_factory=list)
    historical: list[Medication] = Field(default_factory=list)
    recent_changes: list[MedicationChange] = Field(default_factory=list)


class LongitudinalData(BaseModel):
    vitals: list[VitalSign] = Field(default_factory=list)
    vitals_by_period: dict[str, list[VitalSign]] = Field(default_factory=dict)
    labs: dict[str, LabTrend] = Field(default_factory=dict)
    medications: MedicationStream = Field(default_factory=MedicationStream)
    imaging: list[dict[str, Any]] = Field(default_factory=list)
    procedures: list[dict[str, Any]] = Field(default_factory=list)
    encounters: list[Encounter] = Field(default_factory=list)


# ── Narrative / memory / session ──────────────────────────────────────────────


class ClinicalNarrative(BaseModel):
    """Accumulating narrative; every field is externally writable opaque text."""

    trajectory_assessment: str = ""
    key_findings: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)
    patient_voice: str = ""
    nursing_assessment: str = ""


class ClinicalDecision(BaseModel):
    decision: str
    rationale: Optional[str] = None
    timestamp: Optional[datetime] = None


class InteractionEntry(BaseModel):
    type: str
    summary: str
    timestamp: Optional[datetime] = None


class AIMemory(BaseModel):
    """The assistant's accumulated understanding of the patient."""

    patient_summary: str = ""
    problem_insights: dict[str, str] = Field(default_factory=dict)
    clinical_decisions: list[ClinicalDecision] = Field(default_factory=list)
    interaction_log: list[InteractionEntry] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.patient_summary
            or self.problem_insights
            or self.clinical_decisions
            or self.interaction_log
        )


class SafetyFlag(BaseModel):
    text: str
    severity: str = "warning"
    timestamp: Optional[datetime] = None


class DictationEntry(BaseModel):
    text: str
    timestamp: Optional[datetime] = None


class ConversationMessage(BaseModel):
    role: str
    content: str


class AIObservation(BaseModel):
    id: str
    text: str
    timestamp: Optional[datetime] = None
    status: str = "active"
    category: str = "clinical"


class SessionContext(BaseModel):
    doctor_dictation: list[DictationEntry] = Field(default_factory=list)
    patient_conversation: list[ConversationMessage] = Field(default_factory=list)
    nurse_conversation: list[ConversationMessage] = Field(default_factory=list)
    ai_observations: list[AIObservation] = Field(default_factory=list)
    safety_flags: list[SafetyFlag] = Field(default_factory=list)
    reviewed_items: list[str] = Field(default_factory=list)
    pending_items: list[str] = Field(default_factory=list)


# ── Document ──────────────────────────────────────────────────────────────────


class LongitudinalDocument(BaseModel):
    """Problem × time matrix plus cross-cutting streams for one patient."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    patient_snapshot: PatientSnapshot = Field(default_factory=PatientSnapshot)
    problem_matrix: dict[str, ProblemTimeline] = Field(default_factory=dict)
    longitudinal_data: LongitudinalData = Field(default_factory=LongitudinalData)
    clinical_narrative: ClinicalNarrative = Field(default_factory=ClinicalNarrative)
    ai_memory: AIMemory = Field(default_factory=AIMemory)
    session_context: SessionContext = Field(default_factory=SessionContext)

    catalog: TimePeriodCatalog = Field(default_factory=TimePeriodCatalog, exclude=True)
    classifier: ProblemCategoryClassifier = Field(
        default_factory=ProblemCategoryClassifier, exclude=True
    )

    # ── Queries ───────────────────────────────────────────────────────────

    @property
    def time_periods(self) -> tuple[TimePeriod, ...]:
        return self.catalog.periods

    def get_problem(self, problem_id: str) -> Optional[ProblemTimeline]:
        return self.problem_matrix.get(problem_id)

    def get_problems_by_category(self, category: ProblemCategory) -> list[ProblemTimeline]:
        return [t for t in self.problem_matrix.values() if t.problem.category == category]

    def get_active_problems(self) -> list[ProblemTimeline]:
        return [t for t in self.problem_matrix.values() if t.problem.status == "active"]

    def get_lab_trend(self, lab_name: str) -> Optional[LabTrend]:
        return self.longitudinal_data.labs.get(lab_name)

    def get_labs_for_problem(self, problem_id: str) -> list[LabTrend]:
        timeline = self.problem_matrix.get(problem_id)
        if timeline is None:
            return []
        labs = self.longitudinal_data.labs
        return [labs[name] for name in timeline.related_labs if name in labs]

    def get_vitals_for_period(self, label: str) -> list[VitalSign]:
        return self.longitudinal_data.vitals_by_period.get(label, [])

    # ── Period routing ────────────────────────────────────────────────────

    @property
    def encounter_start(self) -> Optional[datetime]:
        encounter = self.metadata.current_encounter
        return encounter.start_date if encounter else None

    def get_period_bounds(self, period: TimePeriod) -> PeriodBounds:
        return self.catalog.get_period_bounds(period, self.encounter_start)

    def is_in_period(self, value: Any, period: TimePeriod) -> bool:
        return self.catalog.is_in_period(value, period, self.encounter_start)

    def get_time_period_for_date(self, value: Any) -> str:
        return self.catalog.get_time_period_for_date(value, self.encounter_start)

"""Longitudinal document builder.

Populates a LongitudinalDocument from a PatientDataSource:
- build_full(patient_id): initial load of the whole chart
- update_since(doc, timestamp): incremental refresh of vitals and labs only

Every chart section is loaded independently; a section that fails to load is
logged and treated as empty so a degraded document is always returned.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from clinical_memory.models.categories import (
    ProblemCategory,
    ProblemCategoryClassifier,
    keyword_in_text,
    keyword_position,
)
from clinical_memory.models.document import (
    ChangeType,
    CurrentEncounter,
    LongitudinalDocument,
    MedicationChange,
    NoteExcerpt,
    PeriodStatus,
    ProblemPeriodData,
    ProblemTimeline,
)
from clinical_memory.models.labs import LabTrend, is_critical_flag
from clinical_memory.models.periods import DEFAULT_TIME_PERIODS, TimePeriod, TimePeriodCatalog
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
from clinical_memory.observability import BuildMode, ObservabilityLogger, get_observability_logger
from clinical_memory.sources.base import PatientDataSource
from clinical_memory.utils.dates import MIN_DATETIME, parse_datetime, utcnow

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

EXCERPT_BEFORE = 50
EXCERPT_AFTER = 150
EXCERPT_FALLBACK_LENGTH = 200

# Medication -> condition associations used when a medication's indication
# does not name the problem directly.
MEDICATION_PROBLEM_ASSOCIATIONS: dict[str, tuple[str, ...]] = {
    "heart failure": (
        "furosemide", "lasix", "carvedilol", "metoprolol", "lisinopril",
        "entresto", "spironolactone", "digoxin",
    ),
    "diabetes": (
        "metformin", "insulin", "glipizide", "januvia", "jardiance", "ozempic", "trulicity",
    ),
    "hypertension": (
        "lisinopril", "amlodipine", "losartan", "metoprolol", "hydrochlorothiazide", "hctz",
    ),
    "atrial fibrillation": (
        "warfarin", "eliquis", "xarelto", "pradaxa", "metoprolol", "diltiazem", "digoxin",
    ),
    "kidney": ("sodium bicarbonate", "sevelamer", "calcitriol", "epoetin"),
    "anticoagulation": (
        "warfarin", "eliquis", "xarelto", "pradaxa", "heparin", "lovenox", "aspirin",
    ),
}


# ---------------------------------------------------------------------------
# Matching helpers
# ---------------------------------------------------------------------------


def _by_date_desc(moment: Optional[datetime]) -> datetime:
    return moment or MIN_DATETIME


def _in_range(moment: Optional[datetime], start: datetime, end: datetime) -> bool:
    return moment is not None and start <= moment <= end


def encounter_addresses_problem(encounter: Encounter, problem: Problem) -> bool:
    name = problem.name.strip().lower()
    for diagnosis in encounter.diagnoses:
        if name and diagnosis.name and name in diagnosis.name.lower():
            return True
        if problem.icd10 and diagnosis.icd10 == problem.icd10:
            return True
    return False


def medication_related_to_problem(medication: Medication, problem_name: str) -> bool:
    problem = problem_name.lower()
    med_name = medication.name.lower()
    indication = (medication.indication or "").lower()

    if problem and problem in indication:
        return True

    for condition, meds in MEDICATION_PROBLEM_ASSOCIATIONS.items():
        if condition in problem and any(m in med_name for m in meds):
            return True
    return False


def extract_relevant_excerpt(
    content: Optional[str],
    keywords: Sequence[str],
    max_length: int = EXCERPT_FALLBACK_LENGTH,
) -> str:
    """Excerpt around the first keyword hit, or the head of the content."""
    if not content:
        return ""

    lowered = content.lower()
    for keyword in keywords:
        idx = keyword_position(keyword, lowered)
        if idx != -1:
            start = max(0, idx - EXCERPT_BEFORE)
            end = min(len(content), idx + len(keyword) + EXCERPT_AFTER)
            excerpt = content[start:end]
            if start > 0:
                excerpt = "..." + excerpt
            if end < len(content):
                excerpt = excerpt + "..."
            return excerpt

    return content[:max_length] + ("..." if len(content) > max_length else "")


def assess_period_status(period_data: ProblemPeriodData) -> None:
    """Derive the status of one problem/period bucket from its contents."""
    status = PeriodStatus(notes=period_data.status.notes)

    if period_data.is_empty():
        status.trend = "no data"
    elif any(is_critical_flag(lab.flag) for lab in period_data.labs):
        status.trend = "concerning"
        status.control_level = "poorly-controlled"
    elif period_data.encounters:
        status.trend = "active"
    else:
        status.trend = "stable"
        status.control_level = "controlled"

    period_data.status = status


# ---------------------------------------------------------------------------
# Incremental insertion (shared with DocumentUpdater)
# ---------------------------------------------------------------------------


def _periods_containing(doc: LongitudinalDocument, moment: Optional[datetime]) -> list[str]:
    """Labels of every period whose window holds ``moment``; windows overlap."""
    labels = []
    for period in doc.time_periods:
        bounds = doc.get_period_bounds(period)
        if _in_range(moment, bounds.start_date, bounds.end_date):
            labels.append(period.label)
    return labels


def insert_vital(doc: LongitudinalDocument, vital: VitalSign) -> list[str]:
    """Add one vital set to the stream, period index and problem timelines.

    The vital is filed under every period containing it, the same way a
    full build fills the overlapping period windows.

    Returns:
        The period labels the vital was filed under
    """
    stream = doc.longitudinal_data
    stream.vitals.append(vital)
    stream.vitals.sort(key=lambda v: _by_date_desc(v.date), reverse=True)

    labels = _periods_containing(doc, vital.date)
    for label in labels:
        period_vitals = stream.vitals_by_period.setdefault(label, [])
        period_vitals.append(vital)
        period_vitals.sort(key=lambda v: _by_date_desc(v.date), reverse=True)

    for timeline in doc.problem_matrix.values():
        if not timeline.related_vitals:
            continue
        relevant = vital.subset(timeline.related_vitals)
        if relevant is None:
            continue
        for label in labels:
            period_data = timeline.get_period_data(label)
            period_data.vitals.append(relevant)
            period_data.vitals.sort(key=lambda v: _by_date_desc(v.date), reverse=True)
            assess_period_status(period_data)

    return labels


def insert_lab(doc: LongitudinalDocument, lab: LabResult, baseline_days: int = 30) -> list[str]:
    """Add one lab result to its trend and to every problem that tracks it.

    Returns:
        The period labels the result was filed under
    """
    labs = doc.longitudinal_data.labs
    trend = labs.get(lab.name)
    if trend is None:
        trend = LabTrend(name=lab.name, reference_range=lab.reference_range)
        labs[lab.name] = trend
    trend.add_value(lab.collected_date, lab.value, lab.unit, lab.flag)
    trend.compute_baseline(baseline_days, now=doc.catalog.now())

    labels = _periods_containing(doc, lab.collected_date)
    for timeline in doc.problem_matrix.values():
        if not timeline.lab_is_related(lab.name):
            continue
        for label in labels:
            period_data = timeline.get_period_data(label)
            period_data.labs.append(lab)
            assess_period_status(period_data)

    return labels


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class DocumentBuilder:
    """Builds and incrementally refreshes longitudinal documents."""

    def __init__(
        self,
        source: PatientDataSource,
        periods: Sequence[TimePeriod] = DEFAULT_TIME_PERIODS,
        classifier: Optional[ProblemCategoryClassifier] = None,
        clock: Callable[[], datetime] = utcnow,
        telemetry: Optional[ObservabilityLogger] = None,
        note_content_window_days: int = 90,
        medication_change_window_days: int = 90,
        lab_baseline_days: int = 30,
    ):
        """Initialize builder.

        Args:
            source: Chart data source
            periods: Time period catalog for new documents
            classifier: Problem category classifier (default table if omitted)
            clock: Returns the current aware time; injectable for tests
            telemetry: Observability sink (global instance if omitted)
            note_content_window_days: Notes newer than this get full content
            medication_change_window_days: Window for the recent-change list
            lab_baseline_days: Values older than this feed lab baselines
        """
        self.source = source
        self.periods = tuple(periods)
        self.classifier = classifier or ProblemCategoryClassifier()
        self.clock = clock
        self.telemetry = telemetry or get_observability_logger()
        self.note_content_window_days = note_content_window_days
        self.medication_change_window_days = medication_change_window_days
        self.lab_baseline_days = lab_baseline_days

    @classmethod
    def from_settings(cls, source: PatientDataSource, **kwargs: Any) -> "DocumentBuilder":
        from clinical_memory.config import get_settings

        settings = get_settings()
        kwargs.setdefault("note_content_window_days", settings.note_content_window_days)
        kwargs.setdefault("medication_change_window_days", settings.medication_change_window_days)
        kwargs.setdefault("lab_baseline_days", settings.lab_baseline_days)
        return cls(source, **kwargs)

    def new_document(self) -> LongitudinalDocument:
        return LongitudinalDocument(
            catalog=TimePeriodCatalog(self.periods, clock=self.clock),
            classifier=self.classifier,
        )

    # ------------------------------------------------------------------
    # Full build
    # ------------------------------------------------------------------

    async def build_full(
        self,
        patient_id: str,
        encounter_id: Optional[str] = None,
    ) -> LongitudinalDocument:
        """Build a complete document from the patient's whole chart."""
        logger.info("Building full longitudinal document for patient %s", patient_id)
        start_time = time.time()
        failed: list[str] = []

        with self.telemetry.document_build(patient_id, BuildMode.FULL) as event:
            doc = self.new_document()
            doc.metadata.generated_at = self.clock()
            doc.metadata.patient_id = patient_id

            (
                demographics,
                allergies,
                problems,
                medications,
                vitals,
                labs,
                notes_index,
                encounters,
                imaging,
                social_history,
                family_history,
                procedures,
            ) = await asyncio.gather(
                self._safe_load("demographics", patient_id, self.source.load_patient, failed),
                self._safe_load("allergies", patient_id, self.source.load_allergies, failed),
                self._safe_load("problems", patient_id, self.source.load_problems, failed),
                self._safe_load("medications", patient_id, self.source.load_medications, failed),
                self._safe_load("vitals", patient_id, self.source.load_vitals, failed),
                self._safe_load("labs", patient_id, self.source.load_labs, failed),
                self._safe_load("notes", patient_id, self.source.load_notes_index, failed),
                self._safe_load("encounters", patient_id, self.source.load_encounters, failed),
                self._safe_load("imaging", patient_id, self.source.load_imaging, failed),
                self._safe_load("social_history", patient_id, self.source.load_social_history, failed),
                self._safe_load("family_history", patient_id, self.source.load_family_history, failed),
                self._safe_load("procedures", patient_id, self.source.load_procedures, failed),
            )

            note_records = _records(_section(notes_index, "notes"), NoteRecord, "note")
            notes = await self._load_notes_with_content(patient_id, note_records)

            encounter_list = _records(_section(encounters, "encounters"), Encounter, "encounter")
            vital_list = _records(_section(vitals, "vitals"), VitalSign, "vital")
            lab_list = _records(_section(labs, "labs"), LabResult, "lab")
            active_meds, historical_meds = _medications(medications)

            if encounter_id:
                doc.metadata.current_encounter = CurrentEncounter(
                    id=encounter_id,
                    start_date=next(
                        (e.date for e in encounter_list if e.id == encounter_id), None
                    ),
                )

            self.populate_patient_snapshot(
                doc, demographics, allergies, social_history, family_history
            )
            self.populate_problem_matrix(
                doc,
                _problems(problems),
                encounter_list,
                notes,
                lab_list,
                active_meds,
                historical_meds,
                vital_list,
            )
            self.populate_vitals(doc, vital_list)
            self.populate_lab_trends(doc, lab_list)
            self.populate_medications(doc, active_meds, historical_meds)
            doc.longitudinal_data.imaging = _dicts(_section(imaging, "studies"))
            doc.longitudinal_data.procedures = _dicts(_section(procedures, "procedures"))
            doc.longitudinal_data.encounters = encounter_list

            doc.metadata.last_loaded_timestamp = self.clock()
            doc.metadata.last_updated = doc.metadata.last_loaded_timestamp

            event.problems = len(doc.problem_matrix)
            event.lab_trends = len(doc.longitudinal_data.labs)
            event.vitals = len(doc.longitudinal_data.vitals)
            event.failed_sources = list(failed)

        logger.info(
            "Longitudinal document built in %.0fms (problems=%d, lab trends=%d, vitals=%d, failed sources=%s)",
            (time.time() - start_time) * 1000,
            len(doc.problem_matrix),
            len(doc.longitudinal_data.labs),
            len(doc.longitudinal_data.vitals),
            failed or "none",
        )
        return doc

    # ------------------------------------------------------------------
    # Incremental refresh
    # ------------------------------------------------------------------

    async def update_since(
        self,
        doc: LongitudinalDocument,
        since: Any = None,
    ) -> LongitudinalDocument:
        """Fold vitals and labs newer than the watermark into ``doc``.

        Only vitals and labs are refreshed; problems, medications and notes
        wait for the next full build. Without any watermark this falls back
        to a full rebuild and returns the new document. A ``since`` older
        than the document's watermark is ignored so records already folded
        in are never added twice.
        """
        candidates = [parse_datetime(since), doc.metadata.last_loaded_timestamp]
        watermark = max((c for c in candidates if c is not None), default=None)
        patient_id = doc.metadata.patient_id

        if watermark is None:
            logger.warning("No watermark for patient %s, doing full rebuild", patient_id)
            encounter = doc.metadata.current_encounter
            return await self.build_full(patient_id or "", encounter.id if encounter else None)

        logger.info("Updating longitudinal document for %s since %s", patient_id, watermark.isoformat())
        failed: list[str] = []

        with self.telemetry.document_build(patient_id, BuildMode.INCREMENTAL) as event:
            self.source.invalidate()
            vitals, labs = await asyncio.gather(
                self._safe_load("vitals", patient_id, self.source.load_vitals, failed),
                self._safe_load("labs", patient_id, self.source.load_labs, failed),
            )

            new_vitals = [
                v
                for v in _records(_section(vitals, "vitals"), VitalSign, "vital")
                if v.date is not None and v.date > watermark
            ]
            new_labs = [
                lab
                for lab in _records(_section(labs, "labs"), LabResult, "lab")
                if lab.collected_date is not None and lab.collected_date > watermark
            ]

            for vital in new_vitals:
                insert_vital(doc, vital)
            for lab in new_labs:
                insert_lab(doc, lab, self.lab_baseline_days)

            now = self.clock()
            previous = doc.metadata.last_loaded_timestamp
            doc.metadata.last_loaded_timestamp = max(now, watermark, previous or watermark)
            doc.metadata.last_updated = now

            event.new_vitals = len(new_vitals)
            event.new_labs = len(new_labs)
            event.failed_sources = list(failed)

        logger.info(
            "Incremental update for %s: %d new vitals, %d new labs",
            patient_id,
            len(new_vitals),
            len(new_labs),
        )
        return doc

    # ------------------------------------------------------------------
    # Safe loading
    # ------------------------------------------------------------------

    async def _safe_load(
        self,
        name: str,
        patient_id: Optional[str],
        loader: Callable[[str], Awaitable[Any]],
        failed: list[str],
    ) -> Any:
        try:
            return await loader(patient_id)
        except Exception as e:
            logger.warning("Data load failed for %s (%s): %s", name, patient_id, e)
            failed.append(name)
            self.telemetry.log_source_failure(name, e, patient_id=patient_id)
            return None

    async def _load_notes_with_content(
        self,
        patient_id: str,
        note_refs: list[NoteRecord],
    ) -> list[NoteRecord]:
        """Hydrate recent notes with full content; older notes keep metadata only."""
        cutoff = self.clock() - timedelta(days=self.note_content_window_days)

        async def hydrate(ref: NoteRecord) -> NoteRecord:
            if ref.date is None or ref.date < cutoff:
                return ref
            try:
                full = await self.source.load_note(ref.id, patient_id)
                return NoteRecord.model_validate({**ref.model_dump(by_alias=True), **(full or {})})
            except Exception as e:
                logger.warning("Could not load note %s for %s: %s", ref.id, patient_id, e)
                return ref

        return list(await asyncio.gather(*(hydrate(ref) for ref in note_refs)))

    # ------------------------------------------------------------------
    # Patient snapshot
    # ------------------------------------------------------------------

    def populate_patient_snapshot(
        self,
        doc: LongitudinalDocument,
        demographics: Any,
        allergies: Any,
        social_history: Any,
        family_history: Any,
    ) -> None:
        snapshot = doc.patient_snapshot
        snapshot.allergies = _records(_section(allergies, "allergies"), Allergy, "allergy")
        snapshot.social_history = social_history
        snapshot.family_history = family_history

        if not isinstance(demographics, dict):
            return
        try:
            demo = Demographics.model_validate(demographics)
        except ValidationError as e:
            logger.warning("Skipping malformed demographics: %s", e)
            return

        snapshot.demographics = demo
        snapshot.code_status = demo.code_status or "Full Code"
        snapshot.advance_directives = demo.advance_directives
        snapshot.primary_provider = demo.primary_care_provider
        snapshot.insurance = demo.insurance
        snapshot.emergency_contact = demo.emergency_contact

    # ------------------------------------------------------------------
    # Problem matrix
    # ------------------------------------------------------------------

    def populate_problem_matrix(
        self,
        doc: LongitudinalDocument,
        problems: list[Problem],
        encounters: list[Encounter],
        notes: list[NoteRecord],
        labs: list[LabResult],
        active_meds: list[Medication],
        historical_meds: list[Medication],
        vitals: list[VitalSign],
    ) -> None:
        labels = doc.catalog.labels

        for problem in problems:
            timeline = ProblemTimeline.from_problem(problem, self.classifier, labels)
            keywords = self.get_problem_keywords(problem.name, timeline.problem.category)

            for period in doc.time_periods:
                bounds = doc.get_period_bounds(period)
                start, end = bounds.start_date, bounds.end_date
                period_data = timeline.get_period_data(period.label)

                period_data.encounters = [
                    e
                    for e in encounters
                    if _in_range(e.date, start, end) and encounter_addresses_problem(e, problem)
                ]
                period_data.notes = self.filter_notes_for_problem(notes, keywords, start, end)
                period_data.labs = [
                    lab
                    for lab in labs
                    if _in_range(lab.collected_date, start, end) and timeline.lab_is_related(lab.name)
                ]
                period_data.vitals = self.filter_vitals_for_problem(vitals, timeline, start, end)
                self.filter_meds_for_problem(
                    period_data, active_meds, historical_meds, problem.name, start, end
                )
                assess_period_status(period_data)

            doc.problem_matrix[problem.id] = timeline

    def get_problem_keywords(self, name: str, category: ProblemCategory) -> list[str]:
        keywords = [name.lower()]
        if category != ProblemCategory.OTHER:
            keywords.extend(self.classifier.get_keywords(category))
        return list(dict.fromkeys(keywords))

    def filter_notes_for_problem(
        self,
        notes: Iterable[NoteRecord],
        keywords: list[str],
        start: datetime,
        end: datetime,
    ) -> list[NoteExcerpt]:
        results = []
        for note in notes:
            if not _in_range(note.date, start, end):
                continue
            text = (note.content or note.title or "").lower()
            if any(keyword_in_text(kw, text) for kw in keywords):
                results.append(
                    NoteExcerpt(
                        date=note.date,
                        type=note.type,
                        author=note.author,
                        excerpt=extract_relevant_excerpt(note.content, keywords),
                    )
                )
        results.sort(key=lambda n: _by_date_desc(n.date), reverse=True)
        return results

    def filter_vitals_for_problem(
        self,
        vitals: Iterable[VitalSign],
        timeline: ProblemTimeline,
        start: datetime,
        end: datetime,
    ) -> list[VitalSign]:
        if not timeline.related_vitals:
            return []
        results = []
        for vital in vitals:
            if not _in_range(vital.date, start, end):
                continue
            relevant = vital.subset(timeline.related_vitals)
            if relevant is not None:
                results.append(relevant)
        results.sort(key=lambda v: _by_date_desc(v.date), reverse=True)
        return results

    def filter_meds_for_problem(
        self,
        period_data: ProblemPeriodData,
        active_meds: list[Medication],
        historical_meds: list[Medication],
        problem_name: str,
        start: datetime,
        end: datetime,
    ) -> None:
        meds = period_data.medications
        meds.current = [m for m in active_meds if medication_related_to_problem(m, problem_name)]
        meds.started = [m for m in meds.current if _in_range(m.start_date, start, end)]
        meds.stopped = []

        for med in historical_meds:
            if not medication_related_to_problem(med, problem_name):
                continue
            if _in_range(med.start_date, start, end):
                meds.started.append(med)
            if _in_range(med.end_date, start, end):
                meds.stopped.append(med)

    # ------------------------------------------------------------------
    # Cross-cutting streams
    # ------------------------------------------------------------------

    def populate_vitals(self, doc: LongitudinalDocument, vitals: list[VitalSign]) -> None:
        stream = doc.longitudinal_data
        stream.vitals = sorted(vitals, key=lambda v: _by_date_desc(v.date), reverse=True)
        stream.vitals_by_period = {}
        for period in doc.time_periods:
            bounds = doc.get_period_bounds(period)
            stream.vitals_by_period[period.label] = [
                v for v in stream.vitals if _in_range(v.date, bounds.start_date, bounds.end_date)
            ]

    def populate_lab_trends(self, doc: LongitudinalDocument, labs: list[LabResult]) -> None:
        trends: dict[str, LabTrend] = {}
        for lab in labs:
            trend = trends.get(lab.name)
            if trend is None:
                trend = LabTrend(name=lab.name, reference_range=lab.reference_range)
                trends[lab.name] = trend
            trend.add_value(lab.collected_date, lab.value, lab.unit, lab.flag)

        now = self.clock()
        for trend in trends.values():
            trend.compute_baseline(self.lab_baseline_days, now=now)

        doc.longitudinal_data.labs = trends

    def populate_medications(
        self,
        doc: LongitudinalDocument,
        active_meds: list[Medication],
        historical_meds: list[Medication],
    ) -> None:
        stream = doc.longitudinal_data.medications
        stream.current = active_meds
        stream.historical = historical_meds

        cutoff = self.clock() - timedelta(days=self.medication_change_window_days)
        changes: list[MedicationChange] = []

        for med in active_meds:
            if med.start_date and med.start_date >= cutoff:
                changes.append(
                    MedicationChange(
                        type=ChangeType.STARTED,
                        date=med.start_date,
                        name=med.name,
                        dose=med.dose,
                        reason=med.indication,
                    )
                )
        for med in historical_meds:
            if med.end_date and med.end_date >= cutoff:
                changes.append(
                    MedicationChange(
                        type=ChangeType.STOPPED,
                        date=med.end_date,
                        name=med.name,
                        dose=med.dose,
                        reason=med.stop_reason,
                    )
                )

        changes.sort(key=lambda c: _by_date_desc(c.date), reverse=True)
        stream.recent_changes = changes


# ---------------------------------------------------------------------------
# Payload normalization
# ---------------------------------------------------------------------------


def _section(payload: Any, key: str) -> list[Any]:
    """List under ``payload[key]``; a bare list payload is returned as-is."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        items = payload.get(key)
        if isinstance(items, list):
            return items
    return []


def _records(items: Iterable[Any], model: type[R], label: str) -> list[R]:
    """Validate records one at a time, skipping malformed ones."""
    records = []
    for item in items:
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning("Skipping malformed %s record: %s", label, e.errors()[:1])
    return records


def _dicts(items: Iterable[Any]) -> list[dict[str, Any]]:
    return [item for item in items if isinstance(item, dict)]


def _problems(payload: Any) -> list[Problem]:
    if not isinstance(payload, dict):
        return []
    problems = []
    for group, status in (("active", "active"), ("resolved", "resolved")):
        for record in _records(_section(payload.get(group), "problems"), Problem, "problem"):
            record.status = status
            problems.append(record)
    return problems


def _medications(payload: Any) -> tuple[list[Medication], list[Medication]]:
    if not isinstance(payload, dict):
        return [], []
    active = _records(_section(payload.get("active"), "medications"), Medication, "medication")
    historical = _records(
        _section(payload.get("historical"), "medications"), Medication, "medication"
    )
    return active, historical

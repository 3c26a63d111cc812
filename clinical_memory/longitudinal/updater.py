"""Real-time updates to a longitudinal document.

The builder refreshes from the chart on a watermark; the updater handles data
that arrives during the session (live vitals, new lab panels, nursing notes,
dictation) and the assistant's write-back into the narrative and memory
regions. Write-back text is stored verbatim and only ever rendered.
"""
from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from clinical_memory.longitudinal.builder import insert_lab, insert_vital
from clinical_memory.models.document import (
    AIObservation,
    ChangeType,
    ClinicalDecision,
    ConversationMessage,
    DictationEntry,
    InteractionEntry,
    LongitudinalDocument,
    MedicationChange,
    SafetyFlag,
)
from clinical_memory.models.labs import format_value, is_critical_flag, parse_numeric
from clinical_memory.models.records import LabResult, VitalSign
from clinical_memory.utils.dates import MIN_DATETIME, parse_datetime, utcnow

logger = logging.getLogger(__name__)

CONVERSATION_WINDOW = 20
MAX_ACTIVE_OBSERVATIONS = 30
MAX_INACTIVE_OBSERVATIONS = 20
OBSERVATION_STALE_AFTER = timedelta(hours=4)
DICTATION_FINDING_LENGTH = 200
MAX_KEY_FINDINGS = 20
MAX_DECISIONS = 50
MAX_INTERACTIONS = 50

# (low, high, unit); None disables that side
CRITICAL_LAB_THRESHOLDS: dict[str, tuple[Optional[float], Optional[float], str]] = {
    "Potassium": (2.5, 6.5, "mEq/L"),
    "Sodium": (120, 160, "mEq/L"),
    "Glucose": (50, 400, "mg/dL"),
    "Hemoglobin": (7, 20, "g/dL"),
    "Troponin": (None, 0.04, "ng/mL"),
    "Creatinine": (None, 10, "mg/dL"),
}

CONCERNING_PATTERNS = (
    re.compile(r"new onset", re.I),
    re.compile(r"worsening", re.I),
    re.compile(r"acute", re.I),
    re.compile(r"critical", re.I),
    re.compile(r"unstable", re.I),
    re.compile(r"deteriorat", re.I),
)

_QUOTE_RE = re.compile(r'"([^"]+)"')
_PATIENT_REPORT_RE = re.compile(
    r"patient (?:reports?|states?|says?|denies?|complains? of)\s+([^.]+)", re.I
)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_NO_DATA_RE = re.compile(
    r"no data|no results|not available|not yet|no .* found|no .* populated|no .* recorded", re.I
)
_GENERIC_NO_DATA_RE = re.compile(r"no data populated|no data available|no chart data", re.I)

# Finding relevance scoring
_SEVERE_RE = re.compile(r"critical|urgent|emergent|acute|unstable|deteriorat", re.I)
_SAFETY_RE = re.compile(r"safety|contraindic|allerg|interaction", re.I)
_WORSENING_RE = re.compile(r"worsening|declining|concerning|abnormal", re.I)
_CHRONIC_RE = re.compile(r"baseline|historical|chronic|stable", re.I)
_FINDING_NO_DATA_RE = re.compile(r"no data|no results|not available|not yet populated", re.I)

_TOPIC_WORD_RE = re.compile(r"[a-z0-9]{5,}")


def extract_patient_statements(text: str) -> list[str]:
    """Quoted speech and "patient reports ..." clauses."""
    statements = [m.group(1) for m in _QUOTE_RE.finditer(text)]
    statements.extend(m.group(1).strip() for m in _PATIENT_REPORT_RE.finditer(text))
    return statements


def extract_key_findings(text: str) -> list[str]:
    """First sentence matching each concerning pattern."""
    findings = []
    sentences = _SENTENCE_SPLIT_RE.split(text)
    for pattern in CONCERNING_PATTERNS:
        for sentence in sentences:
            if pattern.search(sentence):
                finding = sentence.strip()
                if finding and finding not in findings:
                    findings.append(finding)
                break
    return findings


def _shares_topic(a: str, b: str) -> bool:
    return bool(set(_TOPIC_WORD_RE.findall(a)) & set(_TOPIC_WORD_RE.findall(b)))


class DocumentUpdater:
    """Applies session-time updates to a LongitudinalDocument in place."""

    def __init__(
        self,
        document: LongitudinalDocument,
        clock: Callable[[], datetime] = utcnow,
        max_writeback_chars: int = 4000,
        lab_baseline_days: int = 30,
    ):
        self.document = document
        self.clock = clock
        self.max_writeback_chars = max_writeback_chars
        self.lab_baseline_days = lab_baseline_days

    @classmethod
    def from_settings(cls, document: LongitudinalDocument, **kwargs: Any) -> "DocumentUpdater":
        from clinical_memory.config import get_settings

        settings = get_settings()
        kwargs.setdefault("max_writeback_chars", settings.max_writeback_chars)
        kwargs.setdefault("lab_baseline_days", settings.lab_baseline_days)
        return cls(document, **kwargs)

    def _touch(self) -> None:
        self.document.metadata.last_updated = self.clock()

    def _bound(self, text: Optional[str]) -> str:
        text = (text or "").strip()
        if len(text) > self.max_writeback_chars:
            logger.info("Truncating write-back text from %d chars", len(text))
            return text[: self.max_writeback_chars]
        return text

    # ── Vitals ────────────────────────────────────────────────────────────

    def add_vitals(self, vitals: VitalSign | dict[str, Any]) -> Optional[VitalSign]:
        """Record a vital set; an undated set is stamped with the current time."""
        try:
            vital = vitals if isinstance(vitals, VitalSign) else VitalSign.model_validate(vitals)
        except ValidationError as e:
            logger.warning("Ignoring malformed vitals: %s", e.errors()[:1])
            return None

        if vital.date is None:
            vital = vital.model_copy(update={"date": self.clock()})

        labels = insert_vital(self.document, vital)
        self.check_vital_alerts(vital)
        self._touch()
        logger.debug("Added vitals to %s", ", ".join(labels) or "no period")
        return vital

    def check_vital_alerts(self, vital: VitalSign) -> list[SafetyFlag]:
        alerts: list[tuple[str, str]] = []

        if vital.systolic and (vital.systolic > 180 or vital.systolic < 90):
            level = "HYPERTENSIVE URGENCY" if vital.systolic > 180 else "HYPOTENSION"
            diastolic = format_value(vital.diastolic) if vital.diastolic else "?"
            alerts.append((f"{level}: BP {format_value(vital.systolic)}/{diastolic}", "critical"))

        if vital.heart_rate and (vital.heart_rate > 120 or vital.heart_rate < 50):
            level = "TACHYCARDIA" if vital.heart_rate > 120 else "BRADYCARDIA"
            severity = "critical" if vital.heart_rate > 150 or vital.heart_rate < 40 else "warning"
            alerts.append((f"{level}: HR {format_value(vital.heart_rate)}", severity))

        if vital.spo2 and vital.spo2 < 92:
            severity = "critical" if vital.spo2 < 88 else "warning"
            alerts.append((f"HYPOXIA: SpO2 {format_value(vital.spo2)}%", severity))

        rr = vital.respiratory_rate
        if rr and (rr > 24 or rr < 10):
            level = "TACHYPNEA" if rr > 24 else "BRADYPNEA"
            severity = "critical" if rr > 30 or rr < 8 else "warning"
            alerts.append((f"{level}: RR {format_value(rr)}", severity))

        temp = vital.temperature
        if temp and (temp > 101.3 or temp < 96):
            level = "FEVER" if temp > 101.3 else "HYPOTHERMIA"
            severity = "critical" if temp > 103 or temp < 95 else "warning"
            alerts.append((f"{level}: Temp {format_value(temp)}°F", severity))

        return [f for f in (self.add_safety_flag(text, sev) for text, sev in alerts) if f]

    # ── Labs ──────────────────────────────────────────────────────────────

    def add_lab_results(
        self,
        results: Iterable[LabResult | dict[str, Any]],
        collected_date: Any = None,
        panel_name: Optional[str] = None,
    ) -> int:
        """Record a panel of results collected together.

        Returns:
            Number of results recorded
        """
        collected = parse_datetime(collected_date) or self.clock()
        added = 0

        for item in results:
            try:
                result = item if isinstance(item, LabResult) else LabResult.model_validate(item)
            except ValidationError as e:
                logger.warning("Ignoring malformed lab result: %s", e.errors()[:1])
                continue

            updates: dict[str, Any] = {}
            if result.collected_date is None:
                updates["collected_date"] = collected
            if panel_name and not result.panel_name:
                updates["panel_name"] = panel_name
            if updates:
                result = result.model_copy(update=updates)

            insert_lab(self.document, result, self.lab_baseline_days)
            self.check_lab_alerts(result)
            added += 1

        self._touch()
        logger.info("Added lab panel %s with %d results", panel_name or "Unknown", added)
        return added

    def check_lab_alerts(self, result: LabResult) -> list[SafetyFlag]:
        flags = []
        unit = f" {result.unit}" if result.unit else ""

        if is_critical_flag(result.flag):
            flags.append(
                self.add_safety_flag(f"CRITICAL LAB: {result.name} = {result.value}{unit}", "critical")
            )

        threshold = CRITICAL_LAB_THRESHOLDS.get(result.name)
        value = parse_numeric(result.value)
        if threshold and value is not None:
            low, high, threshold_unit = threshold
            if low is not None and value < low:
                flags.append(
                    self.add_safety_flag(
                        f"CRITICAL LOW {result.name}: {format_value(value)} {threshold_unit}",
                        "critical",
                    )
                )
            if high is not None and value > high:
                flags.append(
                    self.add_safety_flag(
                        f"CRITICAL HIGH {result.name}: {format_value(value)} {threshold_unit}",
                        "critical",
                    )
                )

        return [f for f in flags if f]

    # ── Nursing / dictation ───────────────────────────────────────────────

    def add_nursing_note(self, note: str | dict[str, Any]) -> None:
        text = note if isinstance(note, str) else note.get("text") or note.get("content") or ""
        if not text.strip():
            return

        narrative = self.document.clinical_narrative
        narrative.nursing_assessment = self._bound(text)

        statements = extract_patient_statements(text)
        if statements:
            narrative.patient_voice = self._bound(" ".join(statements))

        for finding in extract_key_findings(text):
            if finding not in narrative.key_findings:
                narrative.key_findings.append(finding)

        self._touch()

    def add_doctor_dictation(self, text: str) -> Optional[DictationEntry]:
        text = (text or "").strip()
        if not text:
            return None

        entry = DictationEntry(text=text, timestamp=self.clock())
        self.document.session_context.doctor_dictation.append(entry)

        lowered = text.lower()
        if any(word in lowered for word in ("assessment", "diagnosis", "plan")):
            finding = f"MD Assessment: {text[:DICTATION_FINDING_LENGTH]}"
            if finding not in self.document.clinical_narrative.key_findings:
                self.document.clinical_narrative.key_findings.append(finding)

        self._touch()
        return entry

    # ── Safety flags ──────────────────────────────────────────────────────

    def add_safety_flag(self, text: str, severity: str = "warning") -> Optional[SafetyFlag]:
        """Add a flag unless one with the same text exists; returns the new flag."""
        flags = self.document.session_context.safety_flags
        if any(f.text == text for f in flags):
            return None
        flag = SafetyFlag(text=text, severity=severity, timestamp=self.clock())
        flags.append(flag)
        logger.info("Added safety flag: %s (%s)", text, severity)
        return flag

    def remove_safety_flag(self, text: str) -> bool:
        flags = self.document.session_context.safety_flags
        for i, flag in enumerate(flags):
            if flag.text == text:
                del flags[i]
                return True
        return False

    # ── Reviewed / pending ────────────────────────────────────────────────

    def mark_reviewed(self, item: str) -> None:
        ctx = self.document.session_context
        if item not in ctx.reviewed_items:
            ctx.reviewed_items.append(item)
        if item in ctx.pending_items:
            ctx.pending_items.remove(item)

    def add_pending_item(self, item: str) -> None:
        if item not in self.document.session_context.pending_items:
            self.document.session_context.pending_items.append(item)

    def remove_pending_item(self, item: str) -> None:
        if item in self.document.session_context.pending_items:
            self.document.session_context.pending_items.remove(item)

    # ── AI observations ───────────────────────────────────────────────────

    def add_ai_observation(self, text: str, category: str = "clinical") -> Optional[str]:
        """Record an observation; returns its id, or None for blanks and duplicates."""
        text = self._bound(text)
        if not text:
            return None

        observations = self.document.session_context.ai_observations
        lowered = text.lower()
        if any(o.status == "active" and o.text.lower() == lowered for o in observations):
            return None

        obs_id = f"obs_{uuid.uuid4().hex[:10]}"
        observations.append(
            AIObservation(id=obs_id, text=text, timestamp=self.clock(), category=category)
        )
        self.prune_observations()
        return obs_id

    def supersede_observation(
        self,
        old_id: str,
        new_text: Optional[str] = None,
        category: str = "clinical",
    ) -> Optional[str]:
        for obs in self.document.session_context.ai_observations:
            if obs.id == old_id:
                obs.status = "superseded"
                break
        return self.add_ai_observation(new_text, category) if new_text else None

    def prune_observations(self) -> None:
        """Retire stale observations and cap the active and inactive sets."""
        observations = self.document.session_context.ai_observations
        now = self.clock()

        for obs in observations:
            if obs.status != "active":
                continue
            if _NO_DATA_RE.search(obs.text) and self._has_data_now(obs.text):
                obs.status = "invalidated"
                continue
            created = obs.timestamp or now
            if now - created > OBSERVATION_STALE_AFTER:
                lowered = obs.text.lower()
                newer = any(
                    other.id != obs.id
                    and other.status == "active"
                    and (other.timestamp or MIN_DATETIME) > created
                    and _shares_topic(lowered, other.text.lower())
                    for other in observations
                )
                if newer:
                    obs.status = "superseded"

        def by_time(o: AIObservation) -> datetime:
            return o.timestamp or MIN_DATETIME

        active = sorted((o for o in observations if o.status == "active"), key=by_time)
        for obs in active[: max(0, len(active) - MAX_ACTIVE_OBSERVATIONS)]:
            obs.status = "superseded"

        inactive = sorted((o for o in observations if o.status != "active"), key=by_time)
        drop = {o.id for o in inactive[: max(0, len(inactive) - MAX_INACTIVE_OBSERVATIONS)]}
        if drop:
            observations[:] = [o for o in observations if o.id not in drop]

    def _has_data_now(self, text: str) -> bool:
        lowered = text.lower()
        stream = self.document.longitudinal_data
        for name, trend in stream.labs.items():
            if name.lower() in lowered and trend.values:
                return True
        if "vital" in lowered and stream.vitals:
            return True
        if _GENERIC_NO_DATA_RE.search(text):
            return bool(stream.vitals or stream.labs or self.document.problem_matrix)
        return False

    # ── Narrative ─────────────────────────────────────────────────────────

    def prune_key_findings(self, max_findings: int = MAX_KEY_FINDINGS) -> None:
        """Keep the ``max_findings`` most relevant findings, in relevance order."""
        findings = self.document.clinical_narrative.key_findings
        if len(findings) <= max_findings:
            return

        problem_names = [t.problem.name.lower() for t in self.document.problem_matrix.values()]

        def score(item: tuple[int, str]) -> float:
            idx, finding = item
            value = idx * 0.5
            if _SEVERE_RE.search(finding):
                value += 10
            if _SAFETY_RE.search(finding):
                value += 10
            if _WORSENING_RE.search(finding):
                value += 5
            if _CHRONIC_RE.search(finding):
                value += 1
            if _FINDING_NO_DATA_RE.search(finding):
                value -= 5
            lowered = finding.lower()
            if any(name in lowered for name in problem_names):
                value -= 2
            return value

        ranked = sorted(enumerate(findings), key=score, reverse=True)
        self.document.clinical_narrative.key_findings = [f for _, f in ranked[:max_findings]]

    def set_trajectory_assessment(self, text: str) -> None:
        self.document.clinical_narrative.trajectory_assessment = self._bound(text)

    def add_open_question(self, question: str) -> None:
        questions = self.document.clinical_narrative.open_questions
        question = self._bound(question)
        if question and question not in questions:
            questions.append(question)

    def remove_open_question(self, question: str) -> None:
        questions = self.document.clinical_narrative.open_questions
        if question in questions:
            questions.remove(question)

    # ── Medications ───────────────────────────────────────────────────────

    def add_medication_change(
        self,
        name: str,
        change_type: ChangeType | str = ChangeType.ADJUSTED,
        dose: Optional[str] = None,
        reason: Optional[str] = None,
        date: Any = None,
    ) -> MedicationChange:
        change = MedicationChange(
            type=ChangeType(change_type),
            date=parse_datetime(date) or self.clock(),
            name=name,
            dose=dose,
            reason=reason,
        )
        changes = self.document.longitudinal_data.medications.recent_changes
        changes.append(change)
        changes.sort(key=lambda c: c.date or MIN_DATETIME, reverse=True)
        self._touch()
        return change

    # ── Conversations ─────────────────────────────────────────────────────

    def sync_patient_conversation(self, messages: list[dict[str, Any]]) -> None:
        if messages:
            self.document.session_context.patient_conversation = self._conversation(
                messages, "patient"
            )

    def sync_nurse_conversation(self, messages: list[dict[str, Any]]) -> None:
        if messages:
            self.document.session_context.nurse_conversation = self._conversation(
                messages, "nurse"
            )

    @staticmethod
    def _conversation(messages: list[dict[str, Any]], other: str) -> list[ConversationMessage]:
        # "user" is the physician on our side of the chat
        return [
            ConversationMessage(
                role="doctor" if m.get("role") == "user" else other,
                content=str(m.get("content", "")),
            )
            for m in messages[-CONVERSATION_WINDOW:]
        ]

    # ── AI memory ─────────────────────────────────────────────────────────

    def set_patient_summary(self, summary: str) -> None:
        self.document.ai_memory.patient_summary = self._bound(summary)

    def set_problem_insight(self, problem_id: str, insight: str) -> None:
        if problem_id not in self.document.problem_matrix:
            logger.debug("Insight recorded for unknown problem %s", problem_id)
        self.document.ai_memory.problem_insights[problem_id] = self._bound(insight)

    def record_decision(self, decision: str, rationale: Optional[str] = None) -> None:
        decisions = self.document.ai_memory.clinical_decisions
        decisions.append(
            ClinicalDecision(
                decision=self._bound(decision),
                rationale=self._bound(rationale) or None,
                timestamp=self.clock(),
            )
        )
        del decisions[:-MAX_DECISIONS]

    def log_interaction(self, interaction_type: str, summary: str) -> None:
        log = self.document.ai_memory.interaction_log
        log.append(
            InteractionEntry(
                type=interaction_type, summary=self._bound(summary), timestamp=self.clock()
            )
        )
        del log[:-MAX_INTERACTIONS]

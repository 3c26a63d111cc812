"""Longitudinal document renderer.

Serializes a LongitudinalDocument into one markdown text document for model
consumption. Sections, in order:

1. Patient header (never omitted)
2. Safety-critical information (never omitted, never truncated)
3. Problem-oriented matrix
4. Laboratory trends
5. Vital sign trends
6. Medications
7. Clinical narrative
8. Current session context

Every section renderer is public so the working-memory assembler can compose
its tiers from the same building blocks.
"""
from __future__ import annotations

import logging
import statistics
from datetime import datetime
from typing import Any, Callable, Optional

from clinical_memory.models.categories import CATEGORY_DISPLAY_ORDER, ProblemCategory
from clinical_memory.models.document import LongitudinalDocument, ProblemTimeline
from clinical_memory.models.labs import LabTrend, TrendDirection, format_value
from clinical_memory.models.records import Medication, VitalSign
from clinical_memory.utils.dates import (
    calculate_age,
    format_short_date,
    format_time,
    iso_day,
    utcnow,
)

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = "\n\n" + "=" * 60 + "\n\n"

TRAJECTORY_PERIOD = "Past 30 Days"
MAX_PROBLEM_NOTES = 3
MAX_TABLE_ITEMS = 3
MAX_NOTE_EXCERPT = 150
MAX_RECENT_CHANGES = 10
VITALS_TREND_WINDOW = 10

LAB_PANELS: dict[str, tuple[str, ...]] = {
    "Renal Function": ("BUN", "Creatinine", "eGFR", "Potassium"),
    "Cardiac Markers": ("BNP", "NT-proBNP", "Troponin", "Troponin I", "Troponin T"),
    "Diabetes Management": ("Glucose", "Hemoglobin A1c", "HbA1c"),
    "Complete Blood Count": ("Hemoglobin", "Hematocrit", "WBC", "Platelets"),
    "Coagulation": ("PT", "INR", "PTT"),
    "Electrolytes": ("Sodium", "Chloride", "CO2", "Calcium", "Magnesium", "Phosphorus"),
    "Liver Function": ("AST", "ALT", "Alkaline Phosphatase", "Bilirubin", "Albumin"),
    "Lipids": ("Total Cholesterol", "LDL", "HDL", "Triglycerides"),
}

LAB_ABBREVIATIONS: dict[str, str] = {
    "Hemoglobin A1c": "HbA1c",
    "Hemoglobin": "Hgb",
    "Hematocrit": "Hct",
    "White Blood Cell": "WBC",
    "Blood Urea Nitrogen": "BUN",
    "Creatinine": "Cr",
    "Potassium": "K",
    "Sodium": "Na",
    "Chloride": "Cl",
    "Carbon Dioxide": "CO2",
    "Alkaline Phosphatase": "ALP",
    "Alanine Aminotransferase": "ALT",
    "Aspartate Aminotransferase": "AST",
    "Brain Natriuretic Peptide": "BNP",
    "Glomerular Filtration Rate": "eGFR",
    "Prothrombin Time": "PT",
    "International Normalized Ratio": "INR",
    "Partial Thromboplastin Time": "PTT",
}

# Table indicators; significant moves get a double arrow
TREND_INDICATORS: dict[TrendDirection, str] = {
    TrendDirection.RISING: "↑",
    TrendDirection.RISING_SIGNIFICANTLY: "↑↑",
    TrendDirection.FALLING: "↓",
    TrendDirection.FALLING_SIGNIFICANTLY: "↓↓",
    TrendDirection.FLUCTUATING: "↕",
    TrendDirection.STABLE: "→",
}

ALLERGY_SEVERITY_ICONS = {"severe": "!!!", "moderate": "!!"}


def abbreviate_lab(name: str) -> str:
    return LAB_ABBREVIATIONS.get(name, name)


def abbreviate_med(name: str) -> str:
    first_word = name.split(" ")[0]
    return first_word[:12] + "..." if len(first_word) > 15 else first_word


def _num(value: Optional[float], default: str = "-") -> str:
    return format_value(value) if value is not None else default


class DocumentRenderer:
    """Renders a longitudinal document as sectioned markdown."""

    def __init__(
        self,
        max_lab_dates: int = 10,
        max_vitals_rows: int = 15,
        include_lab_trends: bool = True,
        include_narrative: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize renderer.

        Args:
            max_lab_dates: Most-recent distinct dates shown per lab panel
            max_vitals_rows: Rows in the vitals table
            include_lab_trends: Render the laboratory trends section
            include_narrative: Render the clinical narrative section
            clock: Reference time for age calculation
        """
        self.max_lab_dates = max_lab_dates
        self.max_vitals_rows = max_vitals_rows
        self.include_lab_trends = include_lab_trends
        self.include_narrative = include_narrative
        self.clock = clock

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "DocumentRenderer":
        from clinical_memory.config import get_settings

        settings = get_settings()
        kwargs.setdefault("max_lab_dates", settings.renderer_max_lab_dates)
        kwargs.setdefault("max_vitals_rows", settings.renderer_max_vitals_rows)
        return cls(**kwargs)

    def render(self, doc: LongitudinalDocument) -> str:
        sections = [
            self.render_patient_header(doc),
            self.render_safety_section(doc),
            self.render_problem_matrix(doc),
        ]
        if self.include_lab_trends:
            sections.append(self.render_lab_trends(doc))
        sections.append(self.render_vital_trends(doc))
        sections.append(self.render_medications(doc))
        if self.include_narrative:
            sections.append(self.render_clinical_narrative(doc))
        sections.append(self.render_session_context(doc))

        return SECTION_SEPARATOR.join(s for s in sections if s and s.strip())

    # ── Header / safety ───────────────────────────────────────────────────

    def render_patient_header(self, doc: LongitudinalDocument) -> str:
        snapshot = doc.patient_snapshot
        demo = snapshot.demographics
        if demo is None:
            return "# PATIENT: Unknown"

        age = calculate_age(demo.date_of_birth, self.clock())
        dob = iso_day(demo.date_of_birth) if demo.date_of_birth else "Unknown"
        pcp = snapshot.primary_provider
        if isinstance(pcp, dict):
            pcp = pcp.get("name")

        lines = [
            f"# PATIENT: {demo.display_name}",
            f"MRN: {demo.mrn or 'Unknown'} | DOB: {dob} "
            f"({age if age is not None else 'Unknown'} yo {demo.sex or 'Unknown'})",
            f"PCP: {pcp or 'Unknown'}",
            f"Code Status: {snapshot.code_status or 'Full Code'}",
        ]

        directives = snapshot.advance_directives
        if isinstance(directives, dict) and directives.get("livingWill"):
            lines.append("Advance Directives: Living Will on file")

        return "\n".join(lines)

    def render_safety_section(self, doc: LongitudinalDocument) -> str:
        lines = ["## SAFETY-CRITICAL INFORMATION (ALWAYS REVIEW)", "", "### ALLERGIES:"]

        allergies = doc.patient_snapshot.allergies
        if not allergies:
            lines.append("NKDA (No Known Drug Allergies)")
        for allergy in allergies:
            icon = ALLERGY_SEVERITY_ICONS.get((allergy.severity or "").lower(), "!")
            lines.append(
                f"{icon} {allergy.substance} ({allergy.type or 'Drug'}): "
                f"{allergy.reaction or 'Unknown reaction'} "
                f"[{allergy.severity or 'Unknown severity'}]"
            )

        flags = doc.session_context.safety_flags
        if flags:
            lines.extend(["", "### ACTIVE SAFETY FLAGS:"])
            for flag in flags:
                icon = "!!!" if flag.severity == "critical" else "!!"
                lines.append(f"{icon} {flag.text}")

        return "\n".join(lines) + "\n"

    # ── Problem matrix ────────────────────────────────────────────────────

    def render_problem_matrix(self, doc: LongitudinalDocument) -> str:
        text = "## PROBLEM-ORIENTED LONGITUDINAL MATRIX\n\n"

        groups: dict[ProblemCategory, list[ProblemTimeline]] = {}
        for timeline in doc.problem_matrix.values():
            groups.setdefault(timeline.problem.category, []).append(timeline)

        for category in CATEGORY_DISPLAY_ORDER:
            timelines = [
                t
                for t in groups.get(category, [])
                if t.has_any_data() or t.problem.status == "active"
            ]
            if not timelines:
                continue
            text += f"### {category.value.upper()}\n\n"
            for timeline in timelines:
                text += self.render_problem_timeline(timeline, doc) + "\n"

        return text

    def render_problem_timeline(self, timeline: ProblemTimeline, doc: LongitudinalDocument) -> str:
        p = timeline.problem
        text = f"#### {p.name}"
        if p.icd10:
            text += f" [{p.icd10}]"
        text += f" - Status: {p.status.upper()}\n"

        details = []
        if p.onset_date:
            details.append(f"Onset: {format_short_date(p.onset_date)}")
        if p.priority:
            details.append(f"Priority: {p.priority}")
        text += " | ".join(details) + "\n\n"

        text += "| Time Period | Status | Key Events | Labs | Medications |\n"
        text += "|------------|--------|------------|------|-------------|\n"

        for period in doc.time_periods:
            data = timeline.timeline.get(period.label)
            if data is None:
                continue

            status = data.status.trend or "N/A"
            events = f"{len(data.encounters)} enc" if data.encounters else "-"
            labs = "; ".join(
                f"{abbreviate_lab(lab.name)}: {lab.value}{f'({lab.flag})' if lab.flag else ''}"
                for lab in data.labs[:MAX_TABLE_ITEMS]
            ) or "-"
            meds = data.medications
            changes = (
                [f"+{abbreviate_med(m.name)}" for m in meds.started]
                + [f"-{abbreviate_med(m.name)}" for m in meds.stopped]
                + [f"~{abbreviate_med(m.name)}" for m in meds.adjusted]
            )
            med_summary = ", ".join(changes[:MAX_TABLE_ITEMS]) or "-"

            text += f"| {period.label} | {status} | {events} | {labs} | {med_summary} |\n"

        # Period windows overlap, so the same excerpt can sit in several buckets
        notes = []
        seen = set()
        for data in timeline.timeline.values():
            for note in data.notes:
                key = (note.date, note.excerpt)
                if key not in seen:
                    seen.add(key)
                    notes.append(note)
        if notes:
            text += "\n**Recent Notes:**\n"
            for note in notes[:MAX_PROBLEM_NOTES]:
                excerpt = note.excerpt or "No excerpt available"
                if len(excerpt) > MAX_NOTE_EXCERPT:
                    excerpt = excerpt[:MAX_NOTE_EXCERPT] + "..."
                text += f'- {format_short_date(note.date)}: "{excerpt}"\n'

        if p.notes:
            text += f"\n**Critical Context:** {p.notes}\n"

        return text

    # ── Labs ──────────────────────────────────────────────────────────────

    def render_lab_trends(self, doc: LongitudinalDocument) -> str:
        labs = doc.longitudinal_data.labs
        if not labs:
            return ""

        text = "## LABORATORY TRENDS\n\n"
        for panel, lab_names in LAB_PANELS.items():
            trends = []
            for wanted in lab_names:
                match = self._find_lab(labs, wanted)
                if match is not None and match not in trends:
                    trends.append(match)
            if trends:
                text += f"### {panel}\n{self.render_lab_table(trends)}\n"
        return text

    @staticmethod
    def _find_lab(labs: dict[str, LabTrend], wanted: str) -> Optional[LabTrend]:
        lowered = wanted.lower()
        if wanted in labs:
            return labs[wanted]
        for name, trend in labs.items():
            if lowered in name.lower():
                return trend
        return None

    def render_lab_table(self, trends: list[LabTrend]) -> str:
        dates = sorted({iso_day(v.date) for t in trends for v in t.values}, reverse=True)
        dates = dates[: self.max_lab_dates]
        if not dates:
            return "No data available\n"

        text = f"| Lab | {' | '.join(d[5:] for d in dates)} | Trend |\n"
        text += "|-----|" + "------|" * (len(dates) + 1) + "\n"

        for trend in trends:
            by_day: dict[str, str] = {}
            for v in trend.values:
                by_day.setdefault(
                    iso_day(v.date), f"{format_value(v.value)}{f'({v.flag})' if v.flag else ''}"
                )
            cells = [by_day.get(d, "-") for d in dates]
            indicator = TREND_INDICATORS.get(trend.trend, "?")
            text += f"| {abbreviate_lab(trend.name)} | {' | '.join(cells)} | {indicator} |\n"

        return text

    # ── Vitals ────────────────────────────────────────────────────────────

    def render_vital_trends(self, doc: LongitudinalDocument) -> str:
        vitals = doc.longitudinal_data.vitals
        if not vitals:
            return ""

        text = "## VITAL SIGN TRENDS\n\n"
        text += "| Date | BP | HR | RR | SpO2 | Temp | Weight | Pain |\n"
        text += "|------|----|----|----|----|-------|--------|------|\n"

        for v in vitals[: self.max_vitals_rows]:
            bp = f"{_num(v.systolic, '?')}/{_num(v.diastolic, '?')}"
            spo2 = f"{format_value(v.spo2)}%" if v.spo2 is not None else "-"
            weight = f"{format_value(v.weight)}kg" if v.weight is not None else "-"
            pain = f"{format_value(v.pain_score)}/10" if v.pain_score is not None else "-"
            text += (
                f"| {format_short_date(v.date)} | {bp} | {_num(v.heart_rate)} | "
                f"{_num(v.respiratory_rate)} | {spo2} | {_num(v.temperature)} | {weight} | {pain} |\n"
            )

        text += "\n**Trends:**\n"
        text += self.analyze_vital_trends(vitals)
        return text

    def analyze_vital_trends(self, vitals: list[VitalSign]) -> str:
        """Narrative over the most recent readings (weight, BP control, SpO2 dips)."""
        if len(vitals) < 2:
            return "- Insufficient data for trend analysis\n"

        recent = vitals[:VITALS_TREND_WINDOW]
        lines = []

        weights = [v.weight for v in recent if v.weight]
        if len(weights) >= 2:
            change = weights[0] - weights[-1]
            if abs(change) > 2:
                direction = "GAINED" if change > 0 else "LOST"
                concern = " (possible fluid retention)" if change > 2 else ""
                lines.append(
                    f"- Weight: {direction} {abs(change):.1f}kg over "
                    f"{len(weights)} measurements{concern}"
                )
            else:
                lines.append(f"- Weight: STABLE around {statistics.fmean(weights):.1f}kg")

        systolics = [v.systolic for v in recent if v.systolic]
        if len(systolics) >= 2:
            avg = statistics.fmean(systolics)
            status = "ELEVATED" if avg > 140 else "LOW" if avg < 100 else "CONTROLLED"
            lines.append(f"- BP: {status} (avg systolic: {avg:.0f})")

        spo2s = [v.spo2 for v in recent if v.spo2]
        if len(spo2s) >= 2:
            avg = statistics.fmean(spo2s)
            lowest = min(spo2s)
            if lowest < 92:
                lines.append(f"- SpO2: CONCERNING - dipped to {format_value(lowest)}% (avg: {avg:.0f}%)")
            elif avg < 95:
                lines.append(f"- SpO2: BORDERLINE (avg: {avg:.0f}%)")

        if not lines:
            return "- Vitals appear stable\n"
        return "\n".join(lines) + "\n"

    # ── Medications ───────────────────────────────────────────────────────

    def render_medications(self, doc: LongitudinalDocument) -> str:
        stream = doc.longitudinal_data.medications
        text = "## MEDICATIONS\n\n"

        if stream.current:
            text += "### Current Medications\n"
            by_indication: dict[str, list[Medication]] = {}
            for med in stream.current:
                by_indication.setdefault(med.indication or "Other", []).append(med)
            for indication, meds in by_indication.items():
                text += f"**{indication}:**\n"
                for med in meds:
                    line = f"- {med.name}"
                    for part in (med.dose, med.route, med.frequency):
                        if part:
                            line += f" {part}"
                    if med.instructions:
                        line += f" - {med.instructions}"
                    text += line + "\n"

        if stream.recent_changes:
            text += "\n### Recent Medication Changes (90 days)\n"
            icons = {"started": "+", "stopped": "-"}
            for change in stream.recent_changes[:MAX_RECENT_CHANGES]:
                icon = icons.get(change.type.value, "~")
                dose = f" {change.dose}" if change.dose else ""
                reason = f" - {change.reason}" if change.reason else ""
                text += f"{format_short_date(change.date)}: {icon} {change.name}{dose}{reason}\n"

        return text

    # ── Narrative ─────────────────────────────────────────────────────────

    def render_clinical_narrative(self, doc: LongitudinalDocument) -> str:
        narrative = doc.clinical_narrative
        parts = []

        trajectory = narrative.trajectory_assessment or self.generate_trajectory_assessment(doc)
        if trajectory:
            parts.append(f"### Disease Trajectory Assessment\n{trajectory}\n")
        if narrative.key_findings:
            parts.append(
                "### Key Findings\n" + "".join(f"- {f}\n" for f in narrative.key_findings)
            )
        if narrative.patient_voice:
            parts.append(f'### Patient Reported\n"{narrative.patient_voice}"\n')
        if narrative.nursing_assessment:
            parts.append(f"### Nursing Assessment\n{narrative.nursing_assessment}\n")
        if narrative.open_questions:
            parts.append(
                "### Unresolved Clinical Questions\n"
                + "".join(f"? {q}\n" for q in narrative.open_questions)
            )

        if not parts:
            return ""
        return "## CLINICAL NARRATIVE\n\n" + "\n".join(parts)

    def generate_trajectory_assessment(self, doc: LongitudinalDocument) -> Optional[str]:
        """Per-problem trajectory from the last-30-day period status."""
        lines = []
        for timeline in doc.get_active_problems():
            recent = timeline.timeline.get(TRAJECTORY_PERIOD)
            if recent is None:
                continue

            status = recent.status.trend if recent.status.trend != "no data" else None
            if not status and not recent.is_empty():
                if len(recent.encounters) > 2:
                    status = "actively managed"
                elif recent.medications.started:
                    status = "treatment escalation"
                elif recent.medications.stopped:
                    status = "treatment de-escalation"

            if status:
                lines.append(f"- **{timeline.problem.name}**: {status}")

        return "\n".join(lines) if lines else None

    # ── Session ───────────────────────────────────────────────────────────

    def render_session_context(self, doc: LongitudinalDocument) -> str:
        ctx = doc.session_context
        parts = []

        if ctx.doctor_dictation:
            parts.append(
                "### Physician's Assessment/Reasoning\n"
                + "".join(f'[{format_time(d.timestamp)}] "{d.text}"\n' for d in ctx.doctor_dictation)
            )
        if ctx.patient_conversation:
            parts.append(
                "### Patient Interview (Recent)\n"
                "The following is the recent conversation between the physician and the patient:\n"
                + "".join(
                    f"{'Doctor' if m.role == 'doctor' else 'Patient'}: {m.content}\n"
                    for m in ctx.patient_conversation
                )
            )
        if ctx.nurse_conversation:
            parts.append(
                "### Nurse Communication (Recent)\n"
                "The following is the recent conversation between the physician and the nurse:\n"
                + "".join(
                    f"{'Doctor' if m.role == 'doctor' else 'Nurse'}: {m.content}\n"
                    for m in ctx.nurse_conversation
                )
            )

        observations = [o for o in ctx.ai_observations if o.status == "active"]
        if observations:
            parts.append("### AI Observations\n" + "".join(f"- {o.text}\n" for o in observations))
        if ctx.reviewed_items:
            parts.append(
                "### Reviewed This Session\n" + "".join(f"[x] {i}\n" for i in ctx.reviewed_items)
            )
        if ctx.pending_items:
            parts.append(
                "### Pending/Open Items\n" + "".join(f"[ ] {i}\n" for i in ctx.pending_items)
            )

        if not parts:
            return ""
        return "## CURRENT SESSION CONTEXT\n\n" + "\n".join(parts)

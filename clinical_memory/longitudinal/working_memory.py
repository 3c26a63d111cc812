"""Working memory assembler.

Builds a focused context for each kind of model call instead of sending the
whole longitudinal document every time. Tiers, smallest to largest:

- ask: quick question; summary + safety + topic-relevant block
- dictate: physician's narrated reasoning; adds mentioned problems, recent
  data and the medication list
- refresh: comprehensive resync; full render plus the accumulated AI memory
- write_note: full render, unfiltered

ask and dictate are trimmed to their character budgets by dropping optional
blocks; the header and the safety block are never dropped or truncated.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from clinical_memory.longitudinal.renderer import DocumentRenderer
from clinical_memory.longitudinal.session import SessionActivity
from clinical_memory.models.categories import keyword_in_text
from clinical_memory.models.document import LongitudinalDocument
from clinical_memory.models.labs import format_value
from clinical_memory.observability import ObservabilityLogger, get_observability_logger
from clinical_memory.utils.dates import format_short_date

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n"
TRUNCATION_MARKER = "\n[...truncated to fit context budget]"
MAX_ABNORMAL_LABS = 15
RECENT_MEMORY_ENTRIES = 5

LAB_KEYWORDS = (
    "lab", "result", "level", "value", "trend", "creatinine", "potassium",
    "bnp", "troponin", "hemoglobin", "a1c", "inr", "glucose", "sodium", "magnesium",
    "calcium", "phosphorus", "albumin", "bilirubin", "ast", "alt", "wbc", "platelet",
    "hematocrit", "egfr", "bun", "procalcitonin", "lactate", "iron", "ferritin",
)
MEDICATION_KEYWORDS = (
    "medication", "med", "meds", "drug", "dose", "dosing", "interaction",
    "contraindic", "prescri", "formulary", "generic", "pharma",
)
VITAL_KEYWORDS = (
    "vital", "blood pressure", "bp", "heart rate", "hr", "oxygen",
    "spo2", "temperature", "temp", "respiratory rate", "rr", "weight",
)


class TaskKind(str, Enum):
    ASK = "ask"
    DICTATE = "dictate"
    REFRESH = "refresh"
    WRITE_NOTE = "write_note"

    @classmethod
    def parse(cls, value: Any) -> Optional["TaskKind"]:
        """Resolve a task name; accepts ``writeNote`` and ``write-note`` spellings."""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").replace("-", "_")
        if normalized == "writeNote":
            return cls.WRITE_NOTE
        try:
            return cls(normalized.lower())
        except ValueError:
            return None


DEFAULT_BUDGETS: dict[TaskKind, int] = {
    TaskKind.ASK: 5000,
    TaskKind.DICTATE: 10000,
    TaskKind.REFRESH: 15000,
    TaskKind.WRITE_NOTE: 15000,
}

ENFORCED_TASKS = frozenset({TaskKind.ASK, TaskKind.DICTATE})

# Optional blocks in the order they are sacrificed when over budget
DROP_ORDER = ("previous_insights", "session_activity", "medications", "recent_data")


def _mentions_any(keywords: tuple[str, ...], text: str) -> bool:
    return any(keyword_in_text(kw, text) for kw in keywords)


class WorkingMemoryAssembler:
    """Composes task-scoped context from a document and its renderer."""

    def __init__(
        self,
        document: LongitudinalDocument,
        session: Optional[SessionActivity] = None,
        renderer: Optional[DocumentRenderer] = None,
        budgets: Optional[dict[TaskKind, int]] = None,
        telemetry: Optional[ObservabilityLogger] = None,
    ):
        """Initialize assembler.

        Args:
            document: Longitudinal document to draw from
            session: Session activity trail (omitted from output if None)
            renderer: Section renderer (default options if None)
            budgets: Character budget per task kind
            telemetry: Observability sink (global instance if omitted)
        """
        self.document = document
        self.session = session
        self.renderer = renderer or DocumentRenderer()
        self.budgets = {**DEFAULT_BUDGETS, **(budgets or {})}
        self.telemetry = telemetry or get_observability_logger()

    @classmethod
    def from_settings(
        cls,
        document: LongitudinalDocument,
        session: Optional[SessionActivity] = None,
        **kwargs: Any,
    ) -> "WorkingMemoryAssembler":
        from clinical_memory.config import get_settings

        settings = get_settings()
        kwargs.setdefault("renderer", DocumentRenderer.from_settings())
        kwargs.setdefault(
            "budgets",
            {
                TaskKind.ASK: settings.ask_budget_chars,
                TaskKind.DICTATE: settings.dictate_budget_chars,
                TaskKind.REFRESH: settings.refresh_budget_chars,
                TaskKind.WRITE_NOTE: settings.write_note_budget_chars,
            },
        )
        return cls(document, session=session, **kwargs)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def assemble(
        self,
        task: TaskKind | str,
        extra: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> str:
        """Assemble working memory for one interaction.

        Args:
            task: Task kind ("ask", "dictate", "refresh", "writeNote"/"write_note");
                anything else gets the default moderate context
            extra: Task inputs, e.g. ``{"question": ...}`` or ``{"dictation": ...}``
            **kwargs: Same inputs given as keywords

        Returns:
            Context text ready to be placed in a prompt
        """
        extra = {**(extra or {}), **kwargs}
        kind = TaskKind.parse(task)

        if kind == TaskKind.ASK:
            question = extra.get("question") or ""
            text, dropped = self.assemble_for_ask(question)
            query = question
        elif kind == TaskKind.DICTATE:
            dictation = extra.get("dictation") or ""
            text, dropped = self.assemble_for_dictation(dictation)
            query = dictation
        elif kind == TaskKind.REFRESH:
            text, dropped, query = self.assemble_for_refresh(), [], None
        elif kind == TaskKind.WRITE_NOTE:
            text, dropped, query = self.assemble_for_note_writing(), [], None
        else:
            logger.info("Unknown task kind %r, using default context", task)
            text, dropped, query = self.assemble_default(), [], None

        budget = self.budgets.get(kind) if kind else None
        if budget is not None and len(text) > budget:
            logger.warning(
                "%s context is %d chars, over its %d char budget", kind.value, len(text), budget
            )
        self.telemetry.log_assembly(
            kind.value if kind else "default",
            len(text),
            budget_chars=budget,
            dropped_blocks=dropped,
            query=query,
        )
        return text

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def assemble_for_ask(self, question: str) -> tuple[str, list[str]]:
        blocks = [
            ("summary", self.get_patient_summary_block()),
            ("safety", self.get_safety_block()),
            ("topic", self.get_relevant_context_for_question(question)),
            ("session_activity", self.get_session_block()),
            ("previous_insights", self.get_previous_insights_block()),
        ]
        return self._fit(blocks, self.budgets[TaskKind.ASK], topic="topic")

    def assemble_for_dictation(self, dictation: str) -> tuple[str, list[str]]:
        mentioned = self.identify_mentioned_problems(dictation)
        problems = self.get_problems_block(mentioned) if mentioned else self.get_active_problems_block()

        blocks = [
            ("summary", self.get_patient_summary_block()),
            ("safety", self.get_safety_block()),
            ("problems", problems),
            ("recent_data", self.get_recent_data_block()),
            ("medications", self.get_medications_block()),
            ("session_activity", self.get_session_block()),
            ("previous_insights", self.get_previous_insights_block()),
        ]
        return self._fit(blocks, self.budgets[TaskKind.DICTATE], topic="problems")

    def assemble_for_refresh(self) -> str:
        return f"{self.renderer.render(self.document)}{BLOCK_SEPARATOR}{self.get_ai_memory_block()}"

    def assemble_for_note_writing(self) -> str:
        return self.renderer.render(self.document)

    def assemble_default(self) -> str:
        blocks = [
            self.get_patient_summary_block(),
            self.get_safety_block(),
            self.get_active_problems_block(),
            self.get_recent_data_block(),
            self.get_session_block(),
        ]
        return BLOCK_SEPARATOR.join(b for b in blocks if b and b.strip())

    # ------------------------------------------------------------------
    # Budget fitting
    # ------------------------------------------------------------------

    @staticmethod
    def _join(blocks: list[tuple[str, str]]) -> str:
        return BLOCK_SEPARATOR.join(text for _, text in blocks if text and text.strip())

    def _fit(
        self,
        blocks: list[tuple[str, str]],
        budget: int,
        topic: str,
    ) -> tuple[str, list[str]]:
        """Drop optional blocks, then truncate the topic block, until within budget."""
        blocks = [(name, text) for name, text in blocks if text and text.strip()]
        dropped: list[str] = []

        for name in DROP_ORDER:
            if len(self._join(blocks)) <= budget:
                break
            if any(n == name for n, _ in blocks):
                blocks = [(n, t) for n, t in blocks if n != name]
                dropped.append(name)

        text = self._join(blocks)
        if len(text) <= budget:
            return text, dropped

        others = [(n, t) for n, t in blocks if n != topic]
        topic_text = next((t for n, t in blocks if n == topic), "")
        if not topic_text:
            return text, dropped

        overflow = len(text) - budget
        keep = max(0, len(topic_text) - overflow - len(TRUNCATION_MARKER))
        truncated = topic_text[:keep].rstrip() + TRUNCATION_MARKER
        fitted = [(n, truncated if n == topic else t) for n, t in blocks]
        dropped.append(f"{topic} (truncated)")
        if others and len(self._join(others)) > budget:
            logger.warning("Header and safety blocks alone exceed the %d char budget", budget)
        return self._join(fitted), dropped

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def get_patient_summary_block(self) -> str:
        header = self.renderer.render_patient_header(self.document)
        summary = self.document.ai_memory.patient_summary
        if summary:
            return f"{header}\n\n## AI'S CURRENT UNDERSTANDING\n{summary}"
        return header

    def get_safety_block(self) -> str:
        return self.renderer.render_safety_section(self.document)

    def get_session_block(self) -> str:
        return self.session.to_context_string() if self.session else ""

    def get_relevant_context_for_question(self, question: str) -> str:
        """Blocks matching what the question is about; a compact overview otherwise."""
        q = (question or "").lower()
        sections = []

        if q:
            if _mentions_any(LAB_KEYWORDS, q):
                sections.append(self.renderer.render_lab_trends(self.document))
            if _mentions_any(MEDICATION_KEYWORDS, q):
                sections.append(self.renderer.render_medications(self.document))
            if _mentions_any(VITAL_KEYWORDS, q):
                sections.append(self.renderer.render_vital_trends(self.document))

            mentioned = self.identify_mentioned_problems(question)
            if mentioned:
                sections.append(self.get_problems_block(mentioned))

        sections = [s for s in sections if s and s.strip()]
        if not sections:
            sections = [self.get_active_problems_block(), self.get_recent_data_block()]

        return BLOCK_SEPARATOR.join(s for s in sections if s and s.strip())

    def get_problems_block(self, problem_ids: list[str]) -> str:
        if not problem_ids:
            return ""

        doc = self.document
        text = "## RELEVANT PROBLEMS\n\n"
        for problem_id in problem_ids:
            timeline = doc.get_problem(problem_id)
            if timeline is None:
                continue
            p = timeline.problem
            text += f"### {p.name} [{p.status}]\n"
            if p.icd10:
                text += f"ICD-10: {p.icd10}\n"
            if p.onset_date:
                text += f"Onset: {format_short_date(p.onset_date)}\n"

            insight = doc.ai_memory.problem_insights.get(problem_id)
            if insight:
                text += f"**AI Analysis:** {insight}\n"

            lab_data = []
            for trend in doc.get_labs_for_problem(problem_id):
                latest = trend.latest_value
                if latest is None:
                    continue
                flag = f" [{latest.flag}]" if latest.flag else ""
                unit = f" {latest.unit}" if latest.unit else ""
                lab_data.append(f"{trend.name}: {format_value(latest.value)}{unit}{flag}")
            if lab_data:
                text += f"Related labs: {', '.join(lab_data)}\n"

            text += "\n"
        return text

    def get_active_problems_block(self) -> str:
        active = self.document.get_active_problems()
        if not active:
            return ""

        insights = self.document.ai_memory.problem_insights
        text = "## ACTIVE PROBLEMS\n"
        for timeline in active:
            p = timeline.problem
            text += f"- **{p.name}** [{p.status}]"
            if p.icd10:
                text += f" ({p.icd10})"
            if insights.get(p.id):
                text += f": {insights[p.id]}"
            text += "\n"
        return text

    def get_recent_data_block(self) -> str:
        stream = self.document.longitudinal_data
        text = "## RECENT DATA\n"

        if stream.vitals:
            v = stream.vitals[0]

            def val(x: Optional[float]) -> str:
                return format_value(x) if x is not None else "?"

            text += (
                f"Latest Vitals: BP {val(v.systolic)}/{val(v.diastolic)}, HR {val(v.heart_rate)}, "
                f"RR {val(v.respiratory_rate)}, SpO2 {val(v.spo2)}%, Temp {val(v.temperature)}"
            )
            if v.weight:
                text += f", Wt {format_value(v.weight)}kg"
            text += "\n"

        abnormal = []
        for name, trend in stream.labs.items():
            latest = trend.latest_value
            if latest is not None and latest.flag:
                unit = f" {latest.unit}" if latest.unit else ""
                abnormal.append(f"{name}: {format_value(latest.value)}{unit} [{latest.flag}]")
        if abnormal:
            text += f"Abnormal Labs: {'; '.join(abnormal[:MAX_ABNORMAL_LABS])}\n"
            if len(abnormal) > MAX_ABNORMAL_LABS:
                text += f"({len(abnormal) - MAX_ABNORMAL_LABS} more abnormal results)\n"

        text += f"Active Medications: {len(stream.medications.current)}\n"
        return text

    def get_medications_block(self) -> str:
        return self.renderer.render_medications(self.document)

    def get_previous_insights_block(self) -> str:
        narrative = self.document.clinical_narrative
        text = ""
        if narrative.trajectory_assessment:
            text += f"## AI'S TRAJECTORY ASSESSMENT\n{narrative.trajectory_assessment}\n\n"
        if narrative.open_questions:
            text += "## UNRESOLVED QUESTIONS\n"
            text += "".join(f"? {q}\n" for q in narrative.open_questions)
        return text

    def get_ai_memory_block(self) -> str:
        mem = self.document.ai_memory
        text = "## AI MEMORY (Accumulated Understanding)\n\n"
        if mem.is_empty():
            return text + "No accumulated understanding yet.\n"

        if mem.patient_summary:
            text += f"### Patient Summary\n{mem.patient_summary}\n\n"

        if mem.problem_insights:
            text += "### Per-Problem Insights\n"
            for problem_id, insight in mem.problem_insights.items():
                timeline = self.document.get_problem(problem_id)
                name = timeline.problem.name if timeline else problem_id
                text += f"- **{name}**: {insight}\n"
            text += "\n"

        if mem.clinical_decisions:
            text += "### Clinical Decisions Made\n"
            for d in mem.clinical_decisions[-RECENT_MEMORY_ENTRIES:]:
                rationale = f" ({d.rationale})" if d.rationale else ""
                text += f"- {d.decision}{rationale}\n"
            text += "\n"

        if mem.interaction_log:
            text += "### Recent AI Interactions\n"
            for entry in mem.interaction_log[-RECENT_MEMORY_ENTRIES:]:
                text += f"- [{entry.type}] {entry.summary}\n"

        return text

    # ------------------------------------------------------------------
    # Problem mentions
    # ------------------------------------------------------------------

    def identify_mentioned_problems(self, text: Optional[str]) -> list[str]:
        """Ids of problems whose name or category keywords appear in ``text``."""
        if not text:
            return []
        lowered = text.lower()
        classifier = self.document.classifier

        mentioned = []
        for problem_id, timeline in self.document.problem_matrix.items():
            name = timeline.problem.name.strip().lower()
            if (name and keyword_in_text(name, lowered)) or classifier.text_mentions(
                timeline.problem.category, lowered
            ):
                mentioned.append(problem_id)
        return mentioned

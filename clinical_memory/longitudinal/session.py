"""Session activity — ephemeral trail of what the physician did this session.

Navigation, questions asked, dictations, orders and notes written. Nothing
here is persisted; it only feeds the working-memory "session activity" block.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, PrivateAttr

from clinical_memory.utils.dates import utcnow

QUESTION_CHARS = 200
DICTATION_CHARS = 500
DEFAULT_VIEW = "Chart Review"

CHART_SECTIONS: tuple[str, ...] = (
    "Chart Review",
    "Notes",
    "Problem List",
    "Medications",
    "Allergies",
    "Labs",
    "Imaging",
    "Vitals",
    "Social History",
    "Orders",
)


class NavigationEntry(BaseModel):
    timestamp: datetime
    route: Optional[str] = None
    section_name: Optional[str] = None
    dwell_seconds: Optional[int] = None


class FocusedNote(BaseModel):
    id: str
    title: Optional[str] = None


class CurrentFocus(BaseModel):
    route: Optional[str] = None
    section_name: Optional[str] = None
    focused_note: Optional[FocusedNote] = None
    focused_lab: Optional[str] = None
    entered_at: Optional[datetime] = None


class QuestionEntry(BaseModel):
    timestamp: datetime
    question: str
    abbreviated_answer: str = ""


class TimedText(BaseModel):
    timestamp: datetime
    text: str


class OrderEntry(BaseModel):
    timestamp: datetime
    order_name: str
    type: Optional[str] = None


class ChangesSinceLastAI(BaseModel):
    new_vitals: bool = False
    new_labs: bool = False
    new_orders: bool = False
    new_notes: bool = False
    navigation_changes: int = 0
    last_ai_interaction: Optional[datetime] = None

    @property
    def has_changes(self) -> bool:
        return (
            self.new_vitals
            or self.new_labs
            or self.new_orders
            or self.new_notes
            or self.navigation_changes > 0
        )


class SessionSummary(BaseModel):
    sections_viewed: list[str]
    questions_asked: int
    dictations_given: int
    orders_placed: int
    notes_written: int
    session_duration_seconds: int
    current_section: Optional[str] = None
    has_changes: bool = False


class SessionActivity(BaseModel):
    """Mutable per-session activity trail."""

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = Field(default_factory=utcnow)
    navigation_history: list[NavigationEntry] = Field(default_factory=list)
    current_focus: CurrentFocus = Field(default_factory=CurrentFocus)
    questions_asked: list[QuestionEntry] = Field(default_factory=list)
    dictations: list[TimedText] = Field(default_factory=list)
    orders_placed: list[OrderEntry] = Field(default_factory=list)
    notes_written: list[TimedText] = Field(default_factory=list)
    changes_since_last_ai: ChangesSinceLastAI = Field(default_factory=ChangesSinceLastAI)

    _clock = PrivateAttr(default=utcnow)

    def set_clock(self, clock) -> None:
        self._clock = clock

    # ── Tracking ──────────────────────────────────────────────────────────

    def track_navigation(self, route: str, section_name: Optional[str] = None) -> None:
        now = self._clock()

        if self.current_focus.entered_at and self.navigation_history:
            dwell = now - self.current_focus.entered_at
            self.navigation_history[-1].dwell_seconds = round(dwell.total_seconds())

        self.navigation_history.append(
            NavigationEntry(timestamp=now, route=route, section_name=section_name)
        )
        self.current_focus = CurrentFocus(route=route, section_name=section_name, entered_at=now)
        self.changes_since_last_ai.navigation_changes += 1

    def track_note_viewed(self, note_id: str, title: Optional[str] = None) -> None:
        self.current_focus.focused_note = FocusedNote(id=note_id, title=title)

    def track_lab_viewed(self, lab_name: str) -> None:
        self.current_focus.focused_lab = lab_name

    def track_question(self, question: str, abbreviated_answer: Optional[str] = None) -> None:
        self.questions_asked.append(
            QuestionEntry(
                timestamp=self._clock(),
                question=question[:QUESTION_CHARS],
                abbreviated_answer=(abbreviated_answer or "")[:QUESTION_CHARS],
            )
        )

    def track_dictation(self, text: str) -> None:
        self.dictations.append(TimedText(timestamp=self._clock(), text=text[:DICTATION_CHARS]))

    def track_order(self, order_name: str, order_type: Optional[str] = None) -> None:
        self.orders_placed.append(
            OrderEntry(timestamp=self._clock(), order_name=order_name, type=order_type)
        )
        self.changes_since_last_ai.new_orders = True

    def track_note_written(self, note_type: str) -> None:
        self.notes_written.append(TimedText(timestamp=self._clock(), text=note_type))
        self.changes_since_last_ai.new_notes = True

    def track_new_vitals(self) -> None:
        self.changes_since_last_ai.new_vitals = True

    def track_new_labs(self) -> None:
        self.changes_since_last_ai.new_labs = True

    def mark_ai_interaction(self) -> None:
        """Reset change tracking after the assistant has seen the chart."""
        self.changes_since_last_ai = ChangesSinceLastAI(last_ai_interaction=self._clock())

    # ── Queries ───────────────────────────────────────────────────────────

    def get_viewed_sections(self) -> list[str]:
        return list(dict.fromkeys(n.section_name for n in self.navigation_history if n.section_name))

    def get_chart_review_checklist(self) -> list[tuple[str, bool]]:
        visited = set(self.get_viewed_sections())
        return [(name, name in visited) for name in CHART_SECTIONS]

    def get_session_duration_minutes(self) -> int:
        return round((self._clock() - self.started_at).total_seconds() / 60)

    def get_summary(self) -> SessionSummary:
        return SessionSummary(
            sections_viewed=self.get_viewed_sections(),
            questions_asked=len(self.questions_asked),
            dictations_given=len(self.dictations),
            orders_placed=len(self.orders_placed),
            notes_written=len(self.notes_written),
            session_duration_seconds=sum(n.dwell_seconds or 0 for n in self.navigation_history),
            current_section=self.current_focus.section_name,
            has_changes=self.changes_since_last_ai.has_changes,
        )

    def to_context_string(self) -> str:
        lines = [
            "## SESSION ACTIVITY",
            f"Current view: {self.current_focus.section_name or DEFAULT_VIEW}",
        ]

        sections = self.get_viewed_sections()
        if sections:
            lines.append(f"Sections reviewed this session: {', '.join(sections)}")

        if self.questions_asked:
            last = self.questions_asked[-1]
            lines.append(f"Questions asked this session: {len(self.questions_asked)}")
            lines.append(f'Last question: "{last.question}"')
            if last.abbreviated_answer:
                lines.append(f'Last answer summary: "{last.abbreviated_answer}"')

        if self.dictations:
            lines.append(f"Dictations this session: {len(self.dictations)}")

        if self.orders_placed:
            lines.append(f"Orders placed: {', '.join(o.order_name for o in self.orders_placed)}")

        focus = self.current_focus
        if focus.focused_note:
            lines.append(f"Currently reading: {focus.focused_note.title or focus.focused_note.id}")
        if focus.focused_lab:
            lines.append(f"Currently viewing lab: {focus.focused_lab}")

        return "\n".join(lines) + "\n"

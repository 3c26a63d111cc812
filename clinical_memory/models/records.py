"""Source record models.

Typed views over the JSON shapes served by patient data sources. Field names
are snake_case in Python and camelCase on the wire. Unknown keys are kept so
pass-through data survives round trips, and dates are parsed leniently (an
unparseable date becomes ``None`` rather than rejecting the record).
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from clinical_memory.utils.dates import parse_datetime

FlexibleDateTime = Annotated[Optional[datetime], BeforeValidator(parse_datetime)]


class SourceRecord(BaseModel):
    """Base for records coming from external data sources."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        coerce_numbers_to_str=True,
    )


class Demographics(SourceRecord):
    mrn: Optional[str] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: FlexibleDateTime = None
    sex: Optional[str] = None
    primary_care_provider: Any = None
    insurance: Any = None
    emergency_contact: Any = None
    code_status: Optional[str] = None
    advance_directives: Any = None

    @property
    def display_name(self) -> str:
        parts = [self.last_name, self.first_name, self.middle_name]
        return ", ".join(p for p in parts if p) or "Unknown"


class Allergy(SourceRecord):
    substance: str = "Unknown substance"
    type: Optional[str] = None
    reaction: Optional[str] = None
    severity: Optional[str] = None


class Problem(SourceRecord):
    id: str
    name: str
    icd10: Optional[str] = Field(None, alias="icd10")
    snomed: Optional[str] = None
    onset_date: FlexibleDateTime = None
    resolved_date: FlexibleDateTime = None
    status: str = "active"
    priority: Optional[str] = None
    notes: Optional[str] = None


class Medication(SourceRecord):
    name: str
    dose: Optional[str] = None
    route: Optional[str] = None
    frequency: Optional[str] = None
    indication: Optional[str] = None
    instructions: Optional[str] = None
    start_date: FlexibleDateTime = None
    end_date: FlexibleDateTime = None
    discontinued_reason: Optional[str] = None
    reason: Optional[str] = None

    @property
    def stop_reason(self) -> Optional[str]:
        return self.discontinued_reason or self.reason


class VitalSign(SourceRecord):
    date: FlexibleDateTime = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    heart_rate: Optional[float] = None
    respiratory_rate: Optional[float] = None
    spo2: Optional[float] = Field(None, alias="spO2")
    temperature: Optional[float] = None
    weight: Optional[float] = None
    pain_score: Optional[float] = None

    def subset(self, fields: list[str]) -> Optional["VitalSign"]:
        """Copy holding only ``fields`` (plus date); ``None`` if none are present."""
        values = {f: getattr(self, f, None) for f in fields}
        values = {k: v for k, v in values.items() if v is not None}
        if not values:
            return None
        return VitalSign(date=self.date, **values)


class LabResult(SourceRecord):
    name: str
    value: Any = None
    unit: Optional[str] = None
    collected_date: FlexibleDateTime = None
    flag: Optional[str] = None
    reference_range: Optional[str] = None
    panel_name: Optional[str] = None


class NoteRecord(SourceRecord):
    id: str
    date: FlexibleDateTime = None
    type: Optional[str] = None
    author: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None


class Diagnosis(SourceRecord):
    name: Optional[str] = None
    icd10: Optional[str] = Field(None, alias="icd10")


class Encounter(SourceRecord):
    id: Optional[str] = None
    date: FlexibleDateTime = None
    type: Optional[str] = None
    provider: Any = None
    diagnoses: list[Diagnosis] = Field(default_factory=list)

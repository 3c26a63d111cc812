"""Pytest configuration and fixtures."""

import copy
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio

from clinical_memory.longitudinal import DocumentBuilder
from clinical_memory.observability import ObservabilityLogger
from clinical_memory.sources.base import ChartLayoutSource, SourceNotFoundError

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
PATIENT_ID = "PAT001"


def _ago(days: float = 0, hours: float = 0) -> str:
    return (NOW - timedelta(days=days, hours=hours)).isoformat()


# ---------------------------------------------------------------------------
# In-memory chart
# ---------------------------------------------------------------------------


class InMemoryChartSource(ChartLayoutSource):
    """Chart layout served from a path -> payload dict."""

    def __init__(self, files: dict[str, Any]):
        self.files = files
        self.fetched: list[str] = []
        self.invalidations = 0

    async def fetch_json(self, path: str) -> Any:
        self.fetched.append(path)
        if path not in self.files:
            raise SourceNotFoundError(path)
        return copy.deepcopy(self.files[path])

    def invalidate(self) -> None:
        self.invalidations += 1


def build_chart_files() -> dict[str, Any]:
    p = PATIENT_ID
    return {
        f"{p}/demographics.json": {
            "mrn": "MRN123",
            "firstName": "Jane",
            "lastName": "Doe",
            "dateOfBirth": "1950-03-10",
            "sex": "F",
            "primaryCareProvider": {"name": "Dr. Smith"},
            "codeStatus": "DNR",
            "advanceDirectives": {"livingWill": True},
        },
        f"{p}/allergies.json": {
            "allergies": [
                {"substance": "Penicillin", "type": "Drug", "reaction": "Hives", "severity": "Severe"}
            ]
        },
        f"{p}/problems/active.json": {
            "problems": [
                {
                    "id": "P1",
                    "name": "Congestive Heart Failure",
                    "icd10": "I50.9",
                    "onsetDate": "2020-01-01",
                    "priority": "high",
                },
                {"id": "P2", "name": "Chronic Kidney Disease Stage 3", "icd10": "N18.3"},
                {"id": "P3", "name": "Type 2 Diabetes Mellitus", "icd10": "E11.9"},
                {"id": "P4", "name": "Osteopenia"},
            ]
        },
        f"{p}/problems/resolved.json": {
            "problems": [
                {"id": "P9", "name": "Community Acquired Pneumonia", "resolvedDate": "2023-02-01"}
            ]
        },
        f"{p}/medications/active.json": {
            "medications": [
                {
                    "name": "Furosemide 40mg",
                    "dose": "40 mg",
                    "route": "PO",
                    "frequency": "daily",
                    "indication": "Heart failure",
                    "startDate": _ago(days=10),
                },
                {
                    "name": "Metformin",
                    "dose": "500 mg",
                    "route": "PO",
                    "frequency": "BID",
                    "indication": "Type 2 Diabetes Mellitus",
                    "startDate": "2019-05-01",
                },
            ]
        },
        f"{p}/medications/historical.json": {
            "medications": [
                {
                    "name": "Lisinopril",
                    "dose": "10 mg",
                    "startDate": "2018-01-01",
                    "endDate": _ago(days=20),
                    "discontinuedReason": "Hyperkalemia",
                }
            ]
        },
        f"{p}/vitals/index.json": {
            "vitals": [
                {
                    "date": _ago(hours=2),
                    "systolic": 150,
                    "diastolic": 90,
                    "heartRate": 88,
                    "respiratoryRate": 18,
                    "spO2": 95,
                    "temperature": 98.6,
                    "weight": 82,
                    "painScore": 2,
                },
                {
                    "date": _ago(days=3),
                    "systolic": 140,
                    "diastolic": 85,
                    "heartRate": 80,
                    "spO2": 91,
                    "weight": 80,
                },
                {"date": _ago(days=40), "systolic": 130, "diastolic": 80, "weight": 79},
            ]
        },
        f"{p}/labs/index.json": {"panels": [{"id": "BMP1"}, {"id": "BMP2"}, {"id": "BMP3"}]},
        f"{p}/labs/panels/BMP1.json": {
            "id": "BMP1",
            "name": "Basic Metabolic Panel",
            "collectedDate": _ago(days=40),
            "results": [
                {"name": "Potassium", "value": 4.0, "unit": "mEq/L", "referenceRange": "3.5-5.0"},
                {"name": "Creatinine", "value": 1.4, "unit": "mg/dL"},
            ],
        },
        f"{p}/labs/panels/BMP2.json": {
            "id": "BMP2",
            "name": "Basic Metabolic Panel",
            "collectedDate": _ago(days=20),
            "results": [
                {"name": "Potassium", "value": 3.6, "unit": "mEq/L"},
                {"name": "Creatinine", "value": 1.5, "unit": "mg/dL"},
            ],
        },
        f"{p}/labs/panels/BMP3.json": {
            "id": "BMP3",
            "name": "Basic Metabolic Panel",
            "collectedDate": _ago(days=10),
            "results": [
                {"name": "Potassium", "value": 3.2, "unit": "mEq/L", "flag": "L"},
                {"name": "Creatinine", "value": 1.6, "unit": "mg/dL", "flag": "H"},
                {"name": "BNP", "value": 850, "unit": "pg/mL", "flag": "H"},
            ],
        },
        f"{p}/notes/index.json": {
            "notes": [
                {
                    "id": "N1",
                    "date": _ago(days=5),
                    "type": "Progress Note",
                    "author": "Dr. Smith",
                    "title": "Progress note",
                },
                {
                    "id": "N2",
                    "date": "2022-01-01",
                    "type": "Consult",
                    "author": "Dr. Jones",
                    "title": "Nephrology consult",
                    "content": "Consulted for declining kidney function.",
                },
            ]
        },
        f"{p}/notes/N1.json": {
            "id": "N1",
            "content": (
                "Patient seen for follow-up. Heart failure symptoms improved with "
                "diuresis. Weight stable. Continue furosemide."
            ),
        },
        f"{p}/notes/N2.json": {"id": "N2", "content": "Full consult text."},
        f"{p}/encounters/index.json": {
            "encounters": [
                {
                    "id": "ENC1",
                    "date": _ago(days=1),
                    "type": "Inpatient",
                    "diagnoses": [
                        {"name": "Congestive heart failure exacerbation", "icd10": "I50.23"}
                    ],
                },
                {
                    "id": "ENC0",
                    "date": _ago(days=60),
                    "type": "Outpatient",
                    "diagnoses": [{"name": "Renal follow-up", "icd10": "N18.3"}],
                },
            ]
        },
        f"{p}/imaging/index.json": {
            "studies": [{"id": "IMG1", "type": "Echo", "date": "2024-11-02", "impression": "EF 35%"}]
        },
        f"{p}/social_history.json": {"tobacco": "former", "alcohol": "none"},
        f"{p}/family_history.json": {"father": "MI at 60"},
        f"{p}/procedures/index.json": {
            "procedures": [{"name": "Cardiac catheterization", "date": "2021-04-01"}]
        },
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def patient_id():
    return PATIENT_ID


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def telemetry(tmp_path):
    """Disabled telemetry sink; never touches disk."""
    return ObservabilityLogger(log_dir=tmp_path / "logs", enabled=False)


@pytest.fixture
def chart_files():
    return build_chart_files()


@pytest.fixture
def chart_source(chart_files):
    return InMemoryChartSource(chart_files)


@pytest.fixture
def builder(chart_source, clock, telemetry):
    return DocumentBuilder(chart_source, clock=clock, telemetry=telemetry)


@pytest_asyncio.fixture
async def document(builder):
    """Fully built document for the sample chart."""
    return await builder.build_full(PATIENT_ID)

"""Tests for the longitudinal document builder."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from clinical_memory.longitudinal import DocumentBuilder
from clinical_memory.longitudinal.builder import (
    assess_period_status,
    encounter_addresses_problem,
    extract_relevant_excerpt,
    medication_related_to_problem,
)
from clinical_memory.models import ProblemCategory, ProblemPeriodData, TrendDirection
from clinical_memory.models.document import ChangeType
from clinical_memory.models.records import Encounter, LabResult, Medication, Problem
from clinical_memory.observability import ObservabilityLogger
from clinical_memory.sources import PatientDataSource, SourceLoadError

LOADERS = [
    "load_patient",
    "load_allergies",
    "load_problems",
    "load_medications",
    "load_vitals",
    "load_labs",
    "load_notes_index",
    "load_encounters",
    "load_imaging",
    "load_social_history",
    "load_family_history",
    "load_procedures",
]


class MutableClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestBuildFull:
    """Tests for build_full on the sample chart."""

    @pytest.mark.asyncio
    async def test_snapshot(self, document, now):
        snapshot = document.patient_snapshot

        assert snapshot.demographics.display_name == "Doe, Jane"
        assert snapshot.code_status == "DNR"
        assert snapshot.allergies[0].substance == "Penicillin"
        assert snapshot.social_history == {"tobacco": "former", "alcohol": "none"}
        assert document.metadata.patient_id == "PAT001"
        assert document.metadata.last_loaded_timestamp == now

    @pytest.mark.asyncio
    async def test_code_status_defaults_to_full_code(self, builder, chart_files, patient_id):
        del chart_files[f"{patient_id}/demographics.json"]["codeStatus"]

        doc = await builder.build_full(patient_id)

        assert doc.patient_snapshot.code_status == "Full Code"

    @pytest.mark.asyncio
    async def test_problem_matrix_rows(self, document):
        matrix = document.problem_matrix

        assert list(matrix) == ["P1", "P2", "P3", "P4", "P9"]
        assert matrix["P1"].problem.category == ProblemCategory.CARDIOVASCULAR
        assert matrix["P2"].problem.category == ProblemCategory.RENAL
        assert matrix["P3"].problem.category == ProblemCategory.ENDOCRINE
        assert matrix["P4"].problem.category == ProblemCategory.OTHER
        assert matrix["P9"].problem.status == "resolved"
        assert matrix["P1"].problem.priority == "high"

    @pytest.mark.asyncio
    async def test_every_problem_has_every_period(self, document):
        labels = document.catalog.labels
        for timeline in document.problem_matrix.values():
            assert list(timeline.timeline) == labels

    @pytest.mark.asyncio
    async def test_related_labs_filed_by_period(self, document):
        ckd = document.get_problem("P2")

        past_month = ckd.timeline["Past 30 Days"].labs
        assert len(past_month) == 4
        assert {lab.name for lab in past_month} == {"Potassium", "Creatinine"}
        assert len(ckd.timeline["Past 90 Days"].labs) == 6

    @pytest.mark.asyncio
    async def test_period_status(self, document):
        chf = document.get_problem("P1")

        assert chf.timeline["Past 30 Days"].status.trend == "active"
        assert chf.timeline["Current Encounter"].status.trend == "stable"
        assert chf.timeline["Current Encounter"].status.control_level == "controlled"
        for data in document.get_problem("P4").timeline.values():
            assert data.status.trend == "no data"

    @pytest.mark.asyncio
    async def test_encounters_matched_by_name_and_icd(self, document):
        chf = document.get_problem("P1").timeline["Past 7 Days"]
        ckd = document.get_problem("P2").timeline["Past 90 Days"]

        assert [e.id for e in chf.encounters] == ["ENC1"]
        assert [e.id for e in ckd.encounters] == ["ENC0"]

    @pytest.mark.asyncio
    async def test_recent_notes_hydrated(self, document, chart_source, patient_id):
        assert f"{patient_id}/notes/N1.json" in chart_source.fetched
        assert f"{patient_id}/notes/N2.json" not in chart_source.fetched

        notes = document.get_problem("P1").timeline["Past 7 Days"].notes
        assert len(notes) == 1
        assert notes[0].author == "Dr. Smith"
        assert "Heart failure symptoms improved" in notes[0].excerpt

    @pytest.mark.asyncio
    async def test_old_notes_use_index_content(self, document):
        notes = document.get_problem("P2").timeline["Historical"].notes
        assert [n.excerpt for n in notes] == ["Consulted for declining kidney function."]

    @pytest.mark.asyncio
    async def test_missing_note_body_is_tolerated(self, builder, chart_files, patient_id):
        del chart_files[f"{patient_id}/notes/N1.json"]

        doc = await builder.build_full(patient_id)

        assert doc.get_problem("P1").timeline["Past 7 Days"].notes == []

    @pytest.mark.asyncio
    async def test_problem_medications(self, document):
        chf = document.get_problem("P1").timeline["Past 30 Days"].medications

        assert [m.name for m in chf.current] == ["Furosemide 40mg"]
        assert [m.name for m in chf.started] == ["Furosemide 40mg"]
        assert [m.name for m in chf.stopped] == ["Lisinopril"]

        diabetes = document.get_problem("P3").timeline
        assert diabetes["Past 30 Days"].medications.started == []
        assert [m.name for m in diabetes["Historical"].medications.started] == ["Metformin"]

    @pytest.mark.asyncio
    async def test_recent_medication_changes(self, document):
        changes = document.longitudinal_data.medications.recent_changes

        assert [(c.type, c.name) for c in changes] == [
            (ChangeType.STARTED, "Furosemide 40mg"),
            (ChangeType.STOPPED, "Lisinopril"),
        ]
        assert changes[0].reason == "Heart failure"
        assert changes[1].reason == "Hyperkalemia"

    @pytest.mark.asyncio
    async def test_lab_trends(self, document):
        potassium = document.get_lab_trend("Potassium")

        assert [v.value for v in potassium.values] == [3.2, 3.6, 4.0]
        assert potassium.trend == TrendDirection.FALLING
        assert potassium.baseline == 4.0
        assert document.get_lab_trend("BNP").trend == TrendDirection.INSUFFICIENT_DATA
        assert [t.name for t in document.get_labs_for_problem("P1")] == ["BNP"]

    @pytest.mark.asyncio
    async def test_vitals_index(self, document):
        data = document.longitudinal_data

        assert len(data.vitals) == 3
        assert data.vitals[0].systolic == 150
        sizes = {label: len(v) for label, v in data.vitals_by_period.items()}
        assert sizes == {
            "Current Encounter": 1,
            "Past 24 Hours": 1,
            "Past 7 Days": 2,
            "Past 30 Days": 2,
            "Past 90 Days": 3,
            "Past Year": 3,
            "Historical": 3,
        }

    @pytest.mark.asyncio
    async def test_problem_vitals_are_subsets(self, document):
        vitals = document.get_problem("P1").timeline["Past 7 Days"].vitals

        assert len(vitals) == 2
        assert vitals[0].heart_rate == 88
        assert vitals[0].spo2 is None

    @pytest.mark.asyncio
    async def test_imaging_and_procedures(self, document):
        assert document.longitudinal_data.imaging[0]["impression"] == "EF 35%"
        assert document.longitudinal_data.procedures[0]["name"] == "Cardiac catheterization"
        assert len(document.longitudinal_data.encounters) == 2

    @pytest.mark.asyncio
    async def test_encounter_anchor(self, builder, patient_id, now):
        doc = await builder.build_full(patient_id, encounter_id="ENC1")

        assert doc.metadata.current_encounter.start_date == now - timedelta(days=1)
        current = doc.get_problem("P1").timeline["Current Encounter"]
        assert [e.id for e in current.encounters] == ["ENC1"]
        assert current.status.trend == "active"
        assert doc.get_time_period_for_date(now - timedelta(hours=12)) == "Current Encounter"

    @pytest.mark.asyncio
    async def test_critical_lab_marks_period_concerning(self, builder, chart_files, patient_id):
        chart_files[f"{patient_id}/labs/panels/BMP3.json"]["results"][0]["flag"] = "LL"

        doc = await builder.build_full(patient_id)

        status = doc.get_problem("P2").timeline["Past 30 Days"].status
        assert status.trend == "concerning"
        assert status.control_level == "poorly-controlled"

    @pytest.mark.asyncio
    async def test_malformed_records_skipped(self, builder, chart_files, patient_id):
        chart_files[f"{patient_id}/vitals/index.json"]["vitals"].append(
            {"date": "2025-06-14", "systolic": "not a number"}
        )
        chart_files[f"{patient_id}/problems/active.json"]["problems"].append({"id": "P5"})

        doc = await builder.build_full(patient_id)

        assert len(doc.longitudinal_data.vitals) == 3
        assert "P5" not in doc.problem_matrix


class TestDegradedSources:
    """Tests for source failure handling."""

    @pytest.mark.asyncio
    async def test_all_sources_failing(self, tmp_path, clock, patient_id):
        source = MagicMock(spec=PatientDataSource)
        for name in LOADERS:
            getattr(source, name).side_effect = SourceLoadError("chart store down")
        telemetry = ObservabilityLogger(log_dir=tmp_path, enabled=True)
        builder = DocumentBuilder(source, clock=clock, telemetry=telemetry)

        doc = await builder.build_full(patient_id)

        assert doc.problem_matrix == {}
        assert doc.patient_snapshot.demographics is None
        assert doc.longitudinal_data.labs == {}
        assert doc.metadata.last_loaded_timestamp is not None

        failures = telemetry.get_recent_events("sources")
        assert len(failures) == 12
        assert failures[0]["error_type"] == "SourceLoadError"
        build = telemetry.get_recent_events("builds")[0]
        assert build["event_type"] == "build_success"
        assert len(build["failed_sources"]) == 12

    @pytest.mark.asyncio
    async def test_one_section_failing(self, builder, chart_files, patient_id):
        del chart_files[f"{patient_id}/labs/index.json"]

        doc = await builder.build_full(patient_id)

        assert doc.longitudinal_data.labs == {}
        assert len(doc.problem_matrix) == 5
        assert len(doc.longitudinal_data.vitals) == 3

    @pytest.mark.asyncio
    async def test_out_of_range_date_does_not_abort_build(self, builder, chart_files, patient_id):
        historical = chart_files[f"{patient_id}/medications/historical.json"]["medications"]
        historical[0]["endDate"] = "9999-12-31T23:00:00-05:00"

        doc = await builder.build_full(patient_id)

        lisinopril = doc.longitudinal_data.medications.historical[0]
        assert lisinopril.name == "Lisinopril"
        assert lisinopril.end_date is None
        assert len(doc.problem_matrix) == 5


class TestUpdateSince:
    """Tests for incremental refresh."""

    @pytest.mark.asyncio
    async def test_without_watermark_rebuilds(self, builder, document, patient_id):
        document.metadata.last_loaded_timestamp = None

        refreshed = await builder.update_since(document)
        expected = await builder.build_full(patient_id)

        assert refreshed is not document
        assert refreshed.model_dump() == expected.model_dump()

    @pytest.mark.asyncio
    async def test_folds_in_new_vitals_and_labs(self, chart_source, chart_files, telemetry, now, patient_id):
        clock = MutableClock(now)
        builder = DocumentBuilder(chart_source, clock=clock, telemetry=telemetry)
        doc = await builder.build_full(patient_id)

        later = now + timedelta(hours=1)
        chart_files[f"{patient_id}/vitals/index.json"]["vitals"].insert(
            0, {"date": later.isoformat(), "systolic": 160, "diastolic": 95, "weight": 83}
        )
        chart_files[f"{patient_id}/labs/index.json"]["panels"].append({"id": "BMP4"})
        chart_files[f"{patient_id}/labs/panels/BMP4.json"] = {
            "id": "BMP4",
            "name": "Basic Metabolic Panel",
            "collectedDate": later.isoformat(),
            "results": [{"name": "Potassium", "value": 3.0, "unit": "mEq/L", "flag": "L"}],
        }
        clock.now = now + timedelta(hours=2)

        updated = await builder.update_since(doc)

        assert updated is doc
        assert chart_source.invalidations == 1
        assert len(doc.longitudinal_data.vitals) == 4
        assert doc.longitudinal_data.vitals[0].systolic == 160
        assert len(doc.get_vitals_for_period("Current Encounter")) == 2
        assert doc.get_lab_trend("Potassium").latest_value.value == 3.0
        assert len(doc.get_lab_trend("Potassium").values) == 4
        ckd_current = doc.get_problem("P2").timeline["Current Encounter"]
        assert [lab.value for lab in ckd_current.labs] == [3.0]
        assert doc.metadata.last_loaded_timestamp == now + timedelta(hours=2)

    @pytest.mark.asyncio
    async def test_nothing_new(self, chart_source, telemetry, now, patient_id):
        clock = MutableClock(now)
        builder = DocumentBuilder(chart_source, clock=clock, telemetry=telemetry)
        doc = await builder.build_full(patient_id)
        clock.now = now + timedelta(minutes=5)

        await builder.update_since(doc)

        assert len(doc.longitudinal_data.vitals) == 3
        assert doc.metadata.last_loaded_timestamp == now + timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_matches_full_build_across_overlapping_periods(
        self, chart_source, chart_files, telemetry, now, patient_id
    ):
        clock = MutableClock(now)
        builder = DocumentBuilder(chart_source, clock=clock, telemetry=telemetry)
        doc = await builder.build_full(patient_id)

        later = now + timedelta(hours=1)
        chart_files[f"{patient_id}/vitals/index.json"]["vitals"].insert(
            0, {"date": later.isoformat(), "systolic": 175, "diastolic": 100, "weight": 84}
        )
        chart_files[f"{patient_id}/labs/index.json"]["panels"].append({"id": "STAT"})
        chart_files[f"{patient_id}/labs/panels/STAT.json"] = {
            "id": "STAT",
            "name": "Potassium",
            "collectedDate": later.isoformat(),
            "results": [{"name": "Potassium", "value": 7.1, "unit": "mEq/L", "flag": "HH"}],
        }
        clock.now = now + timedelta(hours=2)

        await builder.update_since(doc)
        fresh = await builder.build_full(patient_id)

        for label in ("Current Encounter", "Past 24 Hours", "Past 7 Days", "Past 30 Days"):
            incremental = doc.get_problem("P2").timeline[label]
            rebuilt = fresh.get_problem("P2").timeline[label]
            assert incremental.status.trend == rebuilt.status.trend == "concerning"
            assert [lab.value for lab in incremental.labs] == [lab.value for lab in rebuilt.labs]
            assert 7.1 in [lab.value for lab in incremental.labs]

            assert [v.date for v in doc.get_problem("P1").timeline[label].vitals] == [
                v.date for v in fresh.get_problem("P1").timeline[label].vitals
            ]
            assert [v.date for v in doc.get_vitals_for_period(label)] == [
                v.date for v in fresh.get_vitals_for_period(label)
            ]

    @pytest.mark.asyncio
    async def test_explicit_since(self, builder, document, now):
        await builder.update_since(document, since=now - timedelta(days=5))

        # Records at or before the document's watermark are not folded in again
        assert len(document.longitudinal_data.vitals) == 3
        assert len(document.get_lab_trend("Potassium").values) == 3
        assert document.metadata.last_loaded_timestamp == now

    @pytest.mark.asyncio
    async def test_since_newer_than_watermark(self, chart_source, chart_files, telemetry, now, patient_id):
        clock = MutableClock(now)
        builder = DocumentBuilder(chart_source, clock=clock, telemetry=telemetry)
        doc = await builder.build_full(patient_id)

        vitals = chart_files[f"{patient_id}/vitals/index.json"]["vitals"]
        vitals.insert(0, {"date": (now + timedelta(hours=1)).isoformat(), "systolic": 120})
        vitals.insert(0, {"date": (now + timedelta(hours=3)).isoformat(), "systolic": 125})
        clock.now = now + timedelta(hours=4)

        await builder.update_since(doc, since=now + timedelta(hours=2))

        assert [v.systolic for v in doc.longitudinal_data.vitals[:2]] == [125, 150]
        assert doc.metadata.last_loaded_timestamp == now + timedelta(hours=4)


class TestHelpers:
    """Tests for matching and status helpers."""

    def test_excerpt_around_keyword(self):
        content = "x" * 100 + " potassium repleted " + "y" * 300
        excerpt = extract_relevant_excerpt(content, ["potassium"])

        assert excerpt.startswith("...")
        assert excerpt.endswith("...")
        assert "potassium repleted" in excerpt
        assert len(excerpt) == 3 + 50 + len("potassium") + 150 + 3

    def test_excerpt_fallback_to_head(self):
        assert extract_relevant_excerpt("a" * 250, ["sodium"]) == "a" * 200 + "..."
        assert extract_relevant_excerpt("short", ["sodium"]) == "short"
        assert extract_relevant_excerpt(None, ["sodium"]) == ""

    def test_assess_period_status(self):
        data = ProblemPeriodData()
        assess_period_status(data)
        assert data.status.trend == "no data"

        data.labs.append(LabResult(name="Potassium", value=2.1, flag="LL"))
        data.encounters.append(Encounter(id="E1"))
        assess_period_status(data)
        assert data.status.trend == "concerning"

        data.labs = []
        assess_period_status(data)
        assert data.status.trend == "active"

    def test_medication_related_to_problem(self):
        furosemide = Medication(name="Furosemide", indication="edema")

        assert medication_related_to_problem(furosemide, "Chronic heart failure")
        assert not medication_related_to_problem(furosemide, "Gout")
        assert medication_related_to_problem(Medication(name="Allopurinol", indication="Gout"), "Gout")

    def test_encounter_addresses_problem(self):
        encounter = Encounter(diagnoses=[{"name": "Acute on chronic gout flare", "icd10": "M10.9"}])

        assert encounter_addresses_problem(encounter, Problem(id="1", name="Gout"))
        assert encounter_addresses_problem(encounter, Problem(id="2", name="Arthritis", icd10="M10.9"))
        assert not encounter_addresses_problem(encounter, Problem(id="3", name="Arthritis"))
        assert not encounter_addresses_problem(Encounter(diagnoses=[{}]), Problem(id="4", name="x"))

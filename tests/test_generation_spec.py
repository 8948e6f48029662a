from planalign.alignment.extractor import extract
from planalign.alignment.generation_spec import (
    DEFAULT_PROTOCOL_DURATION_WEEKS,
    build_generation_spec,
    build_regeneration_request,
    protocol_duration_weeks,
)
from planalign.alignment.validator import validate


def test_duration_never_shorter_than_default(detox_elements):
    assert protocol_duration_weeks(detox_elements) == DEFAULT_PROTOCOL_DURATION_WEEKS
    assert protocol_duration_weeks(extract({})) == DEFAULT_PROTOCOL_DURATION_WEEKS


def test_duration_from_last_phase():
    doc = {"phased_expansion": [{"phase_name": "Phase 5", "start_week": 14, "duration_weeks": 4}]}
    assert protocol_duration_weeks(extract(doc)) == 18


def test_generation_spec_contents(detox_elements):
    spec = build_generation_spec(detox_elements, patient_context={"age": 42})
    assert spec["closedWorld"] is True
    assert spec["totalWeeks"] == 12
    assert spec["counts"] == {"supplements": 4, "clinicTreatments": 3,
                              "lifestyleProtocols": 1, "retestItems": 1}
    assert [p["name"] for p in spec["phases"]] == [
        "Core Protocol - Weeks 1-2", "Phase 1 - Week 3", "Phase 2 - Weeks 5-6",
    ]
    iv = spec["elements"]["clinicTreatments"][1]
    assert iv == {
        "name": "IV Glutathione",
        "phase": "Available after Week 4",
        "startWeek": 4,
        "indication": "Oxidative stress",
        "contraindications": "Sulfur sensitivity",
        "is_optional": True,
    }
    assert spec["safetyConstraints"]["absolute"] == ["Pregnancy"]
    assert spec["safetyConstraints"]["readiness"] == ["Tolerating core binders"]
    assert spec["patientContext"] == {"age": 42}


def test_generation_spec_omits_empty_constraint_groups():
    spec = build_generation_spec(extract({"core_protocol": {"items": ["Zinc"]}}))
    assert spec["safetyConstraints"] == {}
    assert spec["patientContext"] == {}


def test_regeneration_request(detox_elements, plan_partial):
    report = validate(plan_partial, detox_elements)
    request = build_regeneration_request(plan_partial, report, detox_elements)
    assert request["overallCoverage"] == 52
    assert request["missing"]["supplements"] == [{
        "name": "DMSA (cycled)",
        "phase": "Phase 2 - Weeks 5-6",
        "startWeek": 5,
        "timing": "3 days on, 11 off",
    }]
    assert "lifestyleProtocols" not in request["missing"]
    assert request["requiredTotalWeeks"] == 12
    assert request["planTotalWeeks"] == 8
    assert request["timelineCompressed"] is True


def test_regeneration_request_without_total_weeks(detox_elements):
    report = validate(None, detox_elements)
    request = build_regeneration_request(None, report, detox_elements)
    assert request["planTotalWeeks"] is None
    assert request["timelineCompressed"] is False

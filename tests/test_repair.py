import copy

from planalign.alignment.extractor import extract
from planalign.alignment.model import AlignmentPolicy
from planalign.alignment.repair import alignment_note, enforce_safety_rules, repair
from planalign.alignment.validator import validate

MAGNESIUM_DOC = {"core_protocol": {"items": [{"name": "Magnesium Glycinate", "category": "supplement"}]}}
HYDRATION_DOC = {"core_protocol": {"items": [{"name": "Hydration Protocol", "category": "lifestyle"}]}}


def _repair(plan, elements, policy=None):
    return repair(plan, validate(plan, elements, policy), elements, policy)


def test_supplement_injected_into_first_phase():
    elements = extract(MAGNESIUM_DOC)
    plan = {"phases": [{"title": "Week 1", "items": ["Drink more water"]}]}
    fixed = _repair(plan, elements)
    assert "Take Magnesium Glycinate as prescribed (per protocol)" in fixed["phases"][0]["items"]
    assert fixed["phases"][0]["supplements"] == ["Magnesium Glycinate"]
    assert validate(fixed, elements).coverage_percentage["supplements"] == 100


def test_lifestyle_gap_not_repaired_by_default():
    elements = extract(HYDRATION_DOC)
    plan = {"phases": [{"title": "Week 1", "items": []}]}
    fixed = _repair(plan, elements)
    after = validate(fixed, elements)
    assert after.missing["lifestyleProtocols"] == ["Hydration Protocol"]
    assert fixed["alignmentVerification"]["itemsNotRepaired"]["lifestyleProtocols"] == 1


def test_lifestyle_auto_fix_opt_in():
    elements = extract(HYDRATION_DOC)
    plan = {"phases": [{"title": "Week 1", "items": []}]}
    fixed = _repair(plan, elements, AlignmentPolicy(lifestyle_auto_fix=True))
    assert fixed["phases"][0]["lifestyleActions"] == ["Hydration Protocol"]
    assert validate(fixed, elements).is_aligned is True


def test_partial_plan_placement(detox_elements, plan_partial):
    fixed = _repair(plan_partial, detox_elements)
    late = fixed["phases"][2]
    assert late["supplements"] == ["DMSA (cycled)"]
    assert late["clinicTreatments"] == ["Infrared sauna sessions", "IV Glutathione", "Ozone Therapy"]
    assert "Discuss IV Glutathione with your clinician (clinician decision, per protocol)" in late["items"]
    assert fixed["retestSchedule"] == [{
        "name": "Urine Toxic Metals",
        "timing": "Week 8",
        "action": "Schedule Urine Toxic Metals (per protocol)",
    }]
    assert validate(fixed, detox_elements).is_aligned is True


def test_alignment_note_counts_only(detox_elements, plan_partial):
    fixed = _repair(plan_partial, detox_elements)
    assert fixed["alignmentNote"] == (
        "Alignment auto-fix: added 1 supplement(s), 2 clinic treatment(s), 1 retest(s)"
    )
    assert fixed["alignmentVerification"] == {
        "autoFixed": True,
        "itemsAdded": {"supplements": 1, "clinicTreatments": 2, "lifestyleProtocols": 0, "retestItems": 1},
        "itemsNotRepaired": {"supplements": 0, "clinicTreatments": 0, "lifestyleProtocols": 0, "retestItems": 0},
    }


def test_alignment_note_mentions_unrepaired():
    note = alignment_note({"supplements": 2}, {"lifestyleProtocols": 1})
    assert note == (
        "Alignment auto-fix: added 2 supplement(s), 0 clinic treatment(s), 0 retest(s); "
        "not auto-fixed: 1 lifestyle protocol(s)"
    )


def test_inputs_not_mutated(detox_elements, plan_partial):
    before = copy.deepcopy(plan_partial)
    report = validate(plan_partial, detox_elements)
    report_before = report.to_dict()
    repair(plan_partial, report, detox_elements)
    assert plan_partial == before
    assert report.to_dict() == report_before


def test_aligned_report_returns_copy_with_zero_note(detox_elements, plan_aligned):
    fixed = _repair(plan_aligned, detox_elements)
    assert fixed is not plan_aligned
    assert fixed["phases"] == plan_aligned["phases"]
    assert fixed["alignmentVerification"]["autoFixed"] is False
    assert fixed["alignmentNote"].startswith("Alignment auto-fix: added 0 supplement(s)")


def test_repair_idempotent(detox_elements, plan_partial):
    once = _repair(plan_partial, detox_elements)
    twice = _repair(once, detox_elements)
    assert twice["phases"] == once["phases"]
    assert twice["retestSchedule"] == once["retestSchedule"]


def test_repair_idempotent_with_lifestyle_gap(detox_elements, plan_partial):
    plan_partial["phases"][0]["lifestyleActions"] = []
    once = _repair(plan_partial, detox_elements)
    twice = _repair(once, detox_elements)
    assert twice["phases"] == once["phases"]
    assert validate(twice, detox_elements).missing["lifestyleProtocols"] == ["Hydration Protocol"]


def test_clinic_placement_policies():
    doc = {"core_protocol": {"items": [{"name": "Red Light Therapy", "category": "therapy"}]}}
    elements = extract(doc)
    plan = {"phases": [{"title": "One"}, {"title": "Two"}, {"title": "Three"}]}

    late = _repair(plan, elements)
    assert late["phases"][2]["clinicTreatments"] == ["Red Light Therapy"]

    unified = _repair(plan, elements, AlignmentPolicy(clinic_treatment_placement="unified"))
    assert unified["phases"][0]["clinicTreatments"] == ["Red Light Therapy"]


def test_clinic_late_phase_clamped_to_short_plan():
    elements = extract({"clinic_treatments": {"available_modalities": [{"name": "Ozone Therapy"}]}})
    fixed = _repair({"phases": [{"title": "Only phase"}]}, elements)
    assert fixed["phases"][0]["clinicTreatments"] == ["Ozone Therapy"]


def test_bucket_clamped_to_last_phase():
    doc = {"phased_expansion": [{"phase_name": "Phase 3 - Recovery",
                                 "items": [{"name": "Chlorella", "category": "binder"}]}]}
    elements = extract(doc)
    fixed = _repair({"phases": [{"title": "A"}, {"title": "B"}]}, elements)
    assert fixed["phases"][1]["supplements"] == ["Chlorella"]
    assert validate(fixed, elements).is_aligned is True


def test_phases_scaffolded_for_empty_plan(detox_elements):
    fixed = _repair(None, detox_elements)
    assert [p["title"] for p in fixed["phases"]] == [
        "Core Protocol - Weeks 1-2", "Phase 1 - Week 3", "Phase 2 - Weeks 5-6",
    ]
    assert fixed["phases"][1]["supplements"] == ["Chlorella"]
    after = validate(fixed, detox_elements)
    assert after.missing["lifestyleProtocols"] == ["Hydration Protocol"]
    assert after.missing["supplements"] == []
    assert after.missing["clinicTreatments"] == []
    assert after.missing["retestItems"] == []


def test_no_scaffold_policy_leaves_items_unrepaired():
    elements = extract(MAGNESIUM_DOC)
    fixed = _repair({"title": "Plan"}, elements, AlignmentPolicy(scaffold_missing_phases=False))
    assert "phases" not in fixed
    assert fixed["alignmentVerification"]["itemsNotRepaired"]["supplements"] == 1


def test_non_dict_phase_replaced():
    elements = extract(MAGNESIUM_DOC)
    fixed = _repair({"phases": ["Week one notes"]}, elements)
    assert fixed["phases"][0]["title"] == "Week one notes"
    assert fixed["phases"][0]["supplements"] == ["Magnesium Glycinate"]


def test_duplicate_names_each_repaired():
    doc = {
        "core_protocol": {"items": [{"name": "Zinc", "category": "supplement"}]},
        "phased_expansion": [{"phase_name": "Phase 1", "items": [{"name": "Zinc", "category": "supplement"}]}],
    }
    elements = extract(doc)
    fixed = _repair({"phases": [{"title": "A"}, {"title": "B"}]}, elements)
    assert fixed["phases"][0]["supplements"] == ["Zinc"]
    assert fixed["phases"][1]["supplements"] == ["Zinc"]
    assert fixed["alignmentVerification"]["itemsAdded"]["supplements"] == 2


def test_enforce_safety_rules(detox_elements, plan_partial):
    fixed = enforce_safety_rules(plan_partial, detox_elements)
    assert fixed["safetyRules"]["stopImmediately"] == ["Pregnancy"]
    assert fixed["safetyRules"]["escalation24h"] == ["Severe headache"]
    assert fixed["totalWeeks"] == 12
    assert plan_partial["totalWeeks"] == 8
    assert "safetyRules" not in plan_partial


def test_enforce_safety_rules_keeps_existing_entries(detox_elements):
    plan = {"totalWeeks": 16, "safetyRules": {"stopImmediately": ["Stop if pregnant: Pregnancy"]}}
    fixed = enforce_safety_rules(plan, detox_elements)
    assert fixed["safetyRules"]["stopImmediately"] == ["Stop if pregnant: Pregnancy"]
    assert fixed["totalWeeks"] == 16


def test_deeply_nested_plan_repaired_from_empty():
    plan = {}
    for _ in range(100000):
        plan = {"next": plan}
    elements = extract(MAGNESIUM_DOC)
    fixed = _repair(plan, elements)
    assert "next" not in fixed
    assert fixed["phases"][0]["supplements"] == ["Magnesium Glycinate"]


def test_padded_names_injected_without_padding():
    elements = extract({"core_protocol": {"items": [{"name": " Zinc ", "category": "supplement"}]}})
    fixed = _repair({"phases": [{"title": "A"}]}, elements)
    assert fixed["phases"][0]["supplements"] == ["Zinc"]
    assert fixed["phases"][0]["items"] == ["Take Zinc as prescribed (per protocol)"]

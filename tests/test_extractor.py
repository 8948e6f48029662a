import json

from planalign.alignment.extractor import (
    CLINIC_TREATMENT_KEYWORDS,
    LIFESTYLE_KEYWORDS,
    category_from_tag,
    extract,
    infer_legacy_category,
)
from planalign.alignment.model import ConstraintType, ElementCategory
from planalign.alignment.normalize import ProtocolShape, detect_shape


def test_core_supplement_only():
    doc = {"core_protocol": {"items": [{"name": "Magnesium Glycinate", "category": "supplement"}]}}
    elements = extract(doc)
    assert elements.names("supplements") == ["Magnesium Glycinate"]
    assert elements.names("clinicTreatments") == []
    assert elements.names("lifestyleProtocols") == []
    assert elements.names("retestItems") == []


def test_untagged_iv_item_is_clinic_treatment():
    doc = {"core_protocol": {"items": [{"name": "IV Glutathione"}]}}
    elements = extract(doc)
    assert elements.names("clinicTreatments") == ["IV Glutathione"]
    assert elements.names("supplements") == []


def test_full_protocol_categories(detox_elements):
    assert detox_elements.names("supplements") == [
        "Magnesium Glycinate", "Modified Citrus Pectin", "Chlorella", "DMSA (cycled)",
    ]
    assert detox_elements.names("clinicTreatments") == [
        "Infrared Sauna", "IV Glutathione", "Ozone Therapy",
    ]
    assert detox_elements.names("lifestyleProtocols") == ["Hydration Protocol"]
    assert detox_elements.names("retestItems") == ["Urine Toxic Metals"]


def test_phase_labels_and_start_weeks(detox_elements):
    dmsa = detox_elements.supplements[3]
    assert dmsa.phase_label == "Phase 2 - Weeks 5-6"
    assert dmsa.start_week == 5
    assert dmsa.source == "phased_expansion"
    assert dmsa.details["dosage"] == "100mg"

    iv = detox_elements.clinic_treatments[1]
    assert iv.phase_label == "Available after Week 4"
    assert iv.start_week == 4
    assert iv.details["is_optional"] is True
    assert iv.details["indication"] == "Oxidative stress"


def test_retest_details(detox_elements):
    retest = detox_elements.retest_items[0]
    assert retest.category == ElementCategory.RETEST
    assert retest.details == {"timing": "Week 8", "purpose": "Measure body burden"}


def test_safety_constraints_in_walk_order(detox_elements):
    got = [(c.type, c.constraint) for c in detox_elements.safety_constraints]
    assert got == [
        (ConstraintType.STRUCTURAL, "Daily bowel movements established"),
        (ConstraintType.STRUCTURAL, "No detox reactions for 7 days"),
        (ConstraintType.READINESS, "Tolerating core binders"),
        (ConstraintType.ABSOLUTE, "Pregnancy"),
        (ConstraintType.MONITORING, "Kidney function every 4 weeks"),
        (ConstraintType.WARNING, "Severe headache"),
        (ConstraintType.PRECAUTION, "Start low, go slow"),
    ]


def test_phase_info(detox_elements):
    assert [(p.name, p.start_week, p.end_week, p.kind) for p in detox_elements.phases] == [
        ("Core Protocol - Weeks 1-2", 1, 2, "core"),
        ("Phase 1 - Week 3", 3, 4, "expansion"),
        ("Phase 2 - Weeks 5-6", 5, 6, "expansion"),
    ]
    assert detox_elements.phases[1].readiness_criteria == ["Tolerating core binders"]


def test_default_clinic_phase():
    doc = {"clinic_treatments": {"available_modalities": [{"name": "Ozone Therapy"}]}}
    ozone = extract(doc).clinic_treatments[0]
    assert ozone.phase_label == "Available after Week 4"
    assert ozone.start_week == 4


def test_legacy_modules_use_keyword_inference(legacy_protocol):
    assert detect_shape(legacy_protocol) == ProtocolShape.LEGACY_MODULES
    elements = extract(legacy_protocol)
    assert elements.names("supplements") == ["Vitamin D3", "Fish Oil"]
    assert elements.names("clinicTreatments") == ["IV Glutathione"]
    assert elements.names("lifestyleProtocols") == ["Sleep Optimization"]
    assert elements.supplements[0].phase_label == "Foundations"
    assert elements.supplements[0].source == "modules"
    assert elements.phases[0].kind == "module"


def test_mixed_shape_appends_modules_last():
    doc = {
        "core_protocol": {"items": [{"name": "Chlorella", "category": "binder"}]},
        "modules": [{"name": "Extras", "items": [{"name": "Zinc"}]}],
    }
    assert detect_shape(doc) == ProtocolShape.MIXED
    assert extract(doc).names("supplements") == ["Chlorella", "Zinc"]


def test_explicit_tag_wins_over_keywords():
    doc = {"core_protocol": {"items": [{"name": "Sauna Support Blend", "category": "supplement"}]}}
    assert extract(doc).names("supplements") == ["Sauna Support Blend"]


def test_model_enum_spellings_accepted_as_tags():
    assert category_from_tag("ClinicTreatment") == ElementCategory.CLINIC_TREATMENT
    assert category_from_tag("LifestyleProtocol") == ElementCategory.LIFESTYLE_PROTOCOL
    assert category_from_tag("Supplement") == ElementCategory.SUPPLEMENT
    assert category_from_tag("unknown") is None
    assert category_from_tag(None) is None


def test_unrecognized_tag_falls_back_to_inference():
    doc = {"core_protocol": {"items": [{"name": "Morning Sunlight", "category": "misc"}]}}
    assert extract(doc).names("lifestyleProtocols") == ["Morning Sunlight"]


def test_legacy_inference_order():
    # clinic keywords are checked before lifestyle keywords
    assert infer_legacy_category("Infrared sauna after exercise") == ElementCategory.CLINIC_TREATMENT
    assert infer_legacy_category("Resistance Training") == ElementCategory.LIFESTYLE_PROTOCOL
    assert infer_legacy_category("Zinc Picolinate") == ElementCategory.SUPPLEMENT
    assert infer_legacy_category(None) == ElementCategory.SUPPLEMENT


def test_keyword_lists_are_named_constants():
    assert "iv " in CLINIC_TREATMENT_KEYWORDS
    assert "sleep" in LIFESTYLE_KEYWORDS


def test_duplicates_across_phases_preserved():
    doc = {
        "core_protocol": {"items": [{"name": "Magnesium Glycinate", "category": "supplement"}]},
        "phased_expansion": [
            {"phase_name": "Phase 1", "items": [{"name": "Magnesium Glycinate", "category": "supplement"}]},
        ],
    }
    elements = extract(doc)
    assert elements.names("supplements") == ["Magnesium Glycinate", "Magnesium Glycinate"]
    assert [e.phase_label for e in elements.supplements] == ["Core Protocol - Weeks 1-2", "Phase 1"]


def test_extraction_deterministic(detox_protocol):
    assert extract(detox_protocol).to_dict() == extract(detox_protocol).to_dict()


def test_json_text_accepted(detox_protocol):
    assert extract(json.dumps(detox_protocol)).to_dict() == extract(detox_protocol).to_dict()


def test_malformed_documents_yield_empty_sets():
    for doc in (None, {}, {"core_protocol": {"items": "oops"}}, {"phased_expansion": "nope"}):
        elements = extract(doc)
        assert elements.total_items() == 0
        assert elements.safety_constraints == []


def test_unparseable_and_non_object_documents_warn():
    assert extract("{not json").warnings == ["protocol_unparseable"]
    assert extract(42).warnings == ["protocol_not_an_object"]


def test_nameless_items_skipped_with_warning():
    doc = {"core_protocol": {"items": [{"dosage": "1g"}, {"name": "Zinc"}, {"name": "  "}]}}
    elements = extract(doc)
    assert elements.names("supplements") == ["Zinc"]
    assert elements.warnings == [
        "skipped_item_without_name: core_protocol.items[0]",
        "skipped_item_without_name: core_protocol.items[2]",
    ]


def test_every_item_in_exactly_one_category(detox_elements):
    counted = sum(len(detox_elements.elements_for(k)) for k in
                  ("supplements", "clinicTreatments", "lifestyleProtocols", "retestItems"))
    assert counted == detox_elements.total_items() == 9


def test_non_finite_phase_numbers_fall_back_to_defaults():
    doc = json.loads(
        '{"core_protocol": {"duration_weeks": Infinity, "items": ["Magnesium"]},'
        ' "phased_expansion": [{"phase_name": "Phase 1", "start_week": NaN,'
        ' "duration_weeks": -Infinity, "items": ["Zinc"]}]}'
    )
    elements = extract(doc)
    assert elements.names("supplements") == ["Magnesium", "Zinc"]
    assert [(p.start_week, p.duration_weeks) for p in elements.phases] == [(1, 2), (3, 2)]


def test_dict_item_names_are_stripped():
    doc = {
        "core_protocol": {"items": [{"name": " Zinc ", "category": "supplement"}]},
        "retest_schedule": [{"test": "  Urine Toxic Metals "}],
    }
    elements = extract(doc)
    assert elements.names("supplements") == ["Zinc"]
    assert elements.names("retestItems") == ["Urine Toxic Metals"]

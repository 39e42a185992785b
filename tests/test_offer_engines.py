"""
Tests for offer risk assessment and template-based offer texts.
"""

import pytest

from elta.services.risk_engine import (
    assess_risk,
    quick_risk_check,
    get_offer_obs_points,
    get_recommended_margin,
    get_risk_rules,
)
from elta.services.offer_text_engine import (
    OfferTextContext,
    evaluate_conditions,
    calculate_relevance_score,
    substitute_variables,
    assemble_offer_texts,
    generate_offer_content,
    get_default_templates,
    get_component_templates,
    merge_offer_texts,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def old_low_margin():
    return {"building_age_years": 65, "margin_percentage": 8, "component_count": 5}


@pytest.fixture
def templates():
    return [
        {
            "id": "t1", "template_key": "description", "scope_type": "global", "priority": 1,
            "title": "Omfang", "content": "Installation i {{antal_rum}} rum til {{samlet_pris}}",
        },
        {
            "id": "t2", "template_key": "description", "scope_type": "global", "priority": 5,
            "title": "Omfang (prioriteret)", "content": "Komplet el-installation",
        },
        {
            "id": "t3", "template_key": "obs_point", "scope_type": "room_type", "scope_id": "bathroom",
            "priority": 2, "title": "Vådrum", "content": "Vådrum udføres med IP44 materiel",
            "conditions": {"room_types": ["bathroom"]},
        },
        {
            "id": "t4", "template_key": "warranty", "scope_type": "global", "priority": 0,
            "is_required": True, "title": "Garanti", "content": "5 års garanti",
        },
        {
            "id": "t5", "template_key": "terms", "scope_type": "global", "priority": 9,
            "is_active": False, "title": "Inaktiv", "content": "Skal ikke med",
        },
        {
            "id": "t6", "template_key": "installation_note", "scope_type": "component", "scope_id": "EV-11",
            "priority": 3, "title": "Elbillader", "content": "Lader monteres på væg",
            "conditions": {"component_codes": ["EV-11"]},
        },
    ]


# =============================================================================
# RISK ENGINE
# =============================================================================

class TestRiskEngine:

    def test_empty_context_is_unclear_scope(self):
        result = assess_risk({})
        assert [r.detection_rule for r in result.risks] == ["RISK_UNCLEAR_SCOPE"]
        assert result.overall_risk_level == "low"
        assert any(r.startswith("Vigtigt") for r in result.recommendations)

    def test_sorted_by_severity(self, old_low_margin):
        result = assess_risk(old_low_margin)
        codes = [r.detection_rule for r in result.risks]

        assert codes[0] == "RISK_VERY_LOW_MARGIN"
        assert set(codes) == {"RISK_VERY_LOW_MARGIN", "RISK_VERY_OLD", "RISK_LOW_MARGIN", "RISK_OLD_WIRING"}
        assert result.overall_risk_level == "high"

    def test_margin_risks_hidden_from_customer(self, old_low_margin):
        result = assess_risk(old_low_margin)
        visible = {r.detection_rule for r in result.customer_visible_risks}
        assert visible == {"RISK_VERY_OLD", "RISK_OLD_WIRING"}

    def test_quick_check(self, old_low_margin):
        badge = quick_risk_check(old_low_margin)
        assert badge == {"level": "high", "count": 4, "top_issue": "Kritisk lav margin"}

    def test_obs_points(self):
        points = get_offer_obs_points({"has_bathroom_work": True, "component_count": 3})
        assert points == [
            "Vådrumsinstallation udføres efter gældende sikkerhedsregler med godkendte komponenter."
        ]

    def test_recommended_margin_for_old_building(self, old_low_margin):
        margin = get_recommended_margin(old_low_margin)
        assert margin["minimum_margin"] == 25
        assert margin["recommended_margin"] == 35
        assert "gammel bygning" in margin["reason"]
        assert "høj samlet risiko" in margin["reason"]

    def test_recommended_margin_for_commercial(self):
        margin = get_recommended_margin({"building_type": "commercial", "component_count": 5})
        assert margin == {
            "minimum_margin": 20,
            "recommended_margin": 28,
            "reason": "Anbefalet pga: erhverv/industri",
        }

    def test_standard_margin(self):
        margin = get_recommended_margin({"component_count": 5})
        assert margin["reason"] == "Standard margin for projektet"

    def test_rules_listing(self):
        rules = get_risk_rules()
        assert len(rules) == 13
        assert {"code", "name", "category", "severity", "show_to_customer"} == set(rules[0])


# =============================================================================
# OFFER TEXTS
# =============================================================================

class TestOfferTexts:

    def test_conditions(self):
        context = OfferTextContext(room_types=["kitchen"], component_count=4)
        assert evaluate_conditions(None, context) is True
        assert evaluate_conditions({"room_types": ["bathroom"]}, context) is False
        assert evaluate_conditions({"min_quantity": 5}, context) is False
        assert evaluate_conditions({"max_quantity": 5, "room_types": ["kitchen"]}, context) is True

    def test_relevance_score(self):
        template = {
            "priority": 2, "scope_type": "component", "is_required": True,
            "conditions": {"component_codes": ["A"], "room_types": [], "min_quantity": None},
        }
        assert calculate_relevance_score(template) == 20 + 40 + 5 + 5

    def test_substitution_keeps_unknown_placeholders(self):
        context = OfferTextContext(room_count=3, total_price=125000)
        text = substitute_variables("{{antal_rum}} rum, {{samlet_pris}}, {{ukendt}}", context)
        assert text == "3 rum, 125.000 kr., {{ukendt}}"

    def test_assembly(self, templates):
        context = OfferTextContext(room_types=["bathroom"], room_count=2, component_codes=["EV-11"])
        result = assemble_offer_texts(templates, context)

        assert result.technical_scope == ["Komplet el-installation"]
        assert result.obs_points == ["Vådrum udføres med IP44 materiel"]
        assert result.warranty_notes == ["5 års garanti"]
        assert result.installation_notes == ["Lader monteres på væg"]
        assert result.terms == []

    def test_conditions_filter_templates(self, templates):
        result = assemble_offer_texts(templates, OfferTextContext(room_types=["kitchen"]))
        assert result.obs_points == []
        assert result.installation_notes == []

    def test_generated_content_shape(self, templates):
        content = generate_offer_content(templates, OfferTextContext())
        assert set(content) == {"technical_scope", "exclusions", "assumptions", "obs_points", "warranty_notes"}
        assert content["exclusions"] == []

    def test_template_lookups(self, templates):
        assert [t["id"] for t in get_default_templates(templates)] == ["t2", "t4"]
        assert [t["id"] for t in get_component_templates(templates, ["EV-11"])] == ["t6"]

    def test_merge_keeps_edited_sections(self):
        existing = {"technical_scope": ["Rettet af sælger"], "obs_points": [], "optional_upgrades": ["Ekstra spot"]}
        generated = {"technical_scope": ["Auto"], "obs_points": ["OBS"], "warranty_notes": ["Garanti"]}
        merged = merge_offer_texts(existing, generated)

        assert merged["technical_scope"] == ["Rettet af sælger"]
        assert merged["obs_points"] == ["OBS"]
        assert merged["warranty_notes"] == ["Garanti"]
        assert merged["optional_upgrades"] == ["Ekstra spot"]

    def test_merge_without_existing(self):
        generated = {"technical_scope": ["Auto"]}
        assert merge_offer_texts(None, generated) is generated

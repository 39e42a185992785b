"""
Tests for the auto-project estimation pipeline.

Covers description interpretation, component matching, time/price
calculation, project risk analysis, offer text generation and the
end-to-end analyze_project flow (catalog mocked).
"""

import asyncio
from datetime import date
import pytest
from unittest.mock import patch

from elta.estimation.interpreter import (
    ProjectInterpretation,
    detect_building_type,
    detect_building_size,
    detect_building_age,
    detect_rooms,
    detect_electrical_points,
    estimate_cable_requirements,
    estimate_panel_requirements,
    detect_complexity_factors,
    calculate_complexity_score,
    calculate_risk_score,
    interpret_project,
)
from elta.estimation.component_matcher import (
    match_components,
    components_from_rows,
    fetch_database_components,
    to_calculation_components,
    to_calculation_materials,
)
from elta.estimation.calculation_engine import (
    TimeCalculation,
    calculate_size_multiplier,
    calculate_complexity_multiplier,
    calculate_accessibility_multiplier,
    calculate_time,
    calculate_price,
    adjust_price_for_risk,
    apply_discount,
    format_currency,
    format_hours,
    estimate_workdays,
)
from elta.estimation.risk_analysis import (
    analyze_risks,
    calculate_overall_risk_score,
    generate_offer_reservations,
    generate_internal_notes,
)
from elta.estimation.offer_generator import generate_offer_text, format_offer_section_for_display
from elta.estimation import analyze_project, quick_analyze, calculate_project


DESCRIPTION = (
    "Renovering af parcelhus på 140 m2 fra 1965 med køkken, stue og 2 soveværelse. "
    "Der skal laves 10 stik og 8 spots."
)

LONG_NEUTRAL = (
    "Vi ønsker at få installeret nye lamper og kontakter i et nyere hus med gode adgangsforhold "
    "og masser af plads i tavlen"
)


# =============================================================================
# FIXTURES
# =============================================================================

def _interpretation(**overrides) -> ProjectInterpretation:
    values = dict(
        raw_description=LONG_NEUTRAL,
        building_type="house",
        building_size_m2=None,
        building_age_years=10,
        rooms=[{"name": "kitchen", "type": "kitchen"}],
        electrical_points={},
        cable_requirements={},
        panel_requirements={"upgrade_needed": False, "new_panel_needed": False, "required_groups": 2},
        complexity_score=3,
        complexity_factors=[],
        risk_score=1,
        risk_factors=[],
        ai_confidence=0.8,
    )
    values.update(overrides)
    return ProjectInterpretation(**values)


@pytest.fixture
def simple_interpretation():
    return _interpretation(
        electrical_points={"outlets": 4, "spots": 6},
        cable_requirements={"nym_1_5mm": 48, "nym_2_5mm": 24},
    )


# =============================================================================
# INTERPRETER
# =============================================================================

class TestInterpreter:

    def test_building_type(self):
        assert detect_building_type("Renovering af parcelhus") == "house"
        assert detect_building_type("Ny belysning i butik") == "commercial"
        assert detect_building_type("Nye lamper") == "unknown"

    def test_building_size(self):
        assert detect_building_size("Hus på 140 m2") == 140
        assert detect_building_size("ca. 85 kvm") == 85
        assert detect_building_size("stort hus") is None

    def test_building_age(self):
        assert detect_building_age("Hus fra 1965", current_year=2025) == 60
        assert detect_building_age("Et gammelt hus på landet") == 60
        assert detect_building_age("Ingen oplysninger") is None

    def test_rooms_with_count(self):
        rooms = detect_rooms("køkken og 3 soveværelse")
        assert [r["name"] for r in rooms] == ["kitchen", "bedroom_1", "bedroom_2", "bedroom_3"]

    def test_no_rooms_gives_main(self):
        assert detect_rooms("Nye lamper") == [{"name": "main", "type": "other"}]

    def test_explicit_points(self):
        points = detect_electrical_points("Køkken med 8 stik og 6 spots og 2 loftlampe", [])
        assert points == {"outlets": 8, "spots": 6, "ceiling_lights": 2}

    def test_room_defaults_added_when_few_points(self):
        points = detect_electrical_points("Nyt køkken", [{"name": "kitchen", "type": "kitchen"}])
        assert points == {"outlets": 8, "switches": 2, "spots": 6, "ceiling_lights": 1}

    def test_ev_charger_mention(self):
        points = detect_electrical_points("Installation af ladeboks til elbil", [])
        assert points["ev_charger"] == 1

    def test_cable_requirements(self):
        cables = estimate_cable_requirements({"spots": 6, "ceiling_lights": 2, "outlets": 8}, 100)
        assert cables["nym_1_5mm"] == 64
        assert cables["nym_2_5mm"] == 48
        assert cables["nym_6mm"] == 0

    def test_panel_requirements(self):
        panel = estimate_panel_requirements({"spots": 6, "ceiling_lights": 2, "outlets": 8}, 50)
        assert panel == {
            "upgrade_needed": True,
            "required_groups": 5,
            "required_amperage": 25,
            "new_panel_needed": False,
        }

    def test_heavy_loads_need_new_panel(self):
        panel = estimate_panel_requirements({"ev_charger": 1, "power_32a": 1}, None)
        assert panel["required_amperage"] == 50
        assert panel["new_panel_needed"] is True

    def test_complexity(self):
        factors = detect_complexity_factors("Væggene er beton og huset er gammel")
        assert [f["code"] for f in factors] == ["concrete_walls", "old_building"]
        assert calculate_complexity_score(factors) == 5
        assert calculate_complexity_score([]) == 3
        assert calculate_complexity_score([{"multiplier": 0.9}]) == 1

    def test_risk_score(self):
        assert calculate_risk_score([]) == 1
        assert calculate_risk_score([{"severity": "high"}]) == 4

    def test_full_interpretation(self):
        result = interpret_project(DESCRIPTION, current_year=2025)
        interpretation = result.interpretation

        assert interpretation.building_type == "house"
        assert interpretation.building_size_m2 == 140
        assert interpretation.building_age_years == 60
        assert [r["type"] for r in interpretation.rooms] == ["kitchen", "living", "bedroom", "bedroom"]
        assert interpretation.electrical_points == {"outlets": 10, "spots": 8}
        assert {r["code"] for r in interpretation.risk_factors} == {"renovation", "old_wiring_inferred"}
        assert result.confidence == pytest.approx(0.85)
        assert result.warnings == []

    def test_short_description_warns(self):
        result = interpret_project("lamper")
        assert any("meget kort" in w for w in result.warnings)
        assert any(r["code"] == "minimal_description" for r in result.interpretation.risk_factors)


# =============================================================================
# COMPONENT MATCHER
# =============================================================================

class TestComponentMatcher:

    def test_defaults(self, simple_interpretation):
        result = match_components(simple_interpretation)

        assert [(c.code, c.quantity) for c in result.components] == [("outlet_single", 4), ("spot_light", 6)]
        materials = {m.name: m.quantity for m in result.materials}
        assert materials["Installationskabel NYM-J 3x1,5mm²"] == 48
        assert materials["Stikkontakt komplet (FUGA)"] == 4
        assert materials["Samledåse IP55"] == 3
        assert materials["Flexrør 16mm"] == 50
        assert result.match_confidence == 0

    def test_database_components_win(self, simple_interpretation):
        db = components_from_rows([
            {"id": "c1", "code": "outlet_single", "name": "Stik DB", "price": 500,
             "time_estimate": 20, "category": "outlet"},
            {"name": "Uden kode"},
        ])
        result = match_components(simple_interpretation, db)

        outlet = result.components[0]
        assert outlet.source == "database"
        assert outlet.unit_price == 500
        assert outlet.component_id == "c1"
        assert result.match_confidence == 0.5

    def test_panel_groups_added(self):
        interpretation = _interpretation(
            electrical_points={"outlets": 2},
            panel_requirements={"upgrade_needed": True, "new_panel_needed": False, "required_groups": 12},
        )
        result = match_components(interpretation)
        assert ("panel_group", 4) in [(c.code, c.quantity) for c in result.components]

    def test_new_panel(self):
        interpretation = _interpretation(
            electrical_points={"ev_charger": 1},
            panel_requirements={"upgrade_needed": True, "new_panel_needed": True, "required_groups": 20},
        )
        codes = [c.code for c in match_components(interpretation).components]
        assert codes == ["ev_charger", "panel_new"]

    def test_fetch_falls_back_on_error(self, catalog):
        catalog.get_calc_components.side_effect = Exception("db down")
        assert asyncio.run(fetch_database_components(catalog)) == {}

    def test_calculation_rows(self, simple_interpretation):
        rows = to_calculation_components(match_components(simple_interpretation).components)
        assert rows[0]["total"] == 4 * 450
        assert rows[0]["time_minutes"] == 4 * 25


# =============================================================================
# CALCULATION
# =============================================================================

class TestCalculation:

    def test_size_multiplier(self):
        assert calculate_size_multiplier(None) == 1.0
        assert calculate_size_multiplier(40) == 0.9
        assert calculate_size_multiplier(120) == 1.05
        assert calculate_size_multiplier(500) == 1.2

    def test_complexity_multiplier(self):
        assert calculate_complexity_multiplier([]) == 1.0
        assert calculate_complexity_multiplier(
            [{"category": "material", "multiplier": 1.4}]
        ) == pytest.approx(1.32)

    def test_accessibility_multiplier_capped(self):
        assert calculate_accessibility_multiplier(
            [{"category": "access", "multiplier": 1.2}]
        ) == pytest.approx(1.14)
        assert calculate_accessibility_multiplier(
            [{"category": "access", "multiplier": 1.3}] * 3
        ) == 1.5

    def test_time(self):
        components = [
            {"category": "outlet", "time_minutes": 120},
            {"category": "lighting", "time_minutes": 60},
        ]
        time = calculate_time(components, _interpretation())
        assert time.base_hours == 3
        assert time.total_hours == 3
        assert time.breakdown[0] == {"category": "outlet", "hours": 2, "description": "Stikkontakter"}

    def _price(self):
        time = TimeCalculation(
            base_hours=10, complexity_multiplier=1, size_multiplier=1,
            accessibility_multiplier=1, total_hours=10,
        )
        return calculate_price([{"total_cost": 1000}], time)

    def test_price(self):
        price = self._price()
        assert price.labor_cost == 4500
        assert price.subtotal == 5500
        assert price.margin_amount == 1375
        assert price.risk_buffer_amount == 275
        assert price.total_price == 7150

    def test_risk_adjustment(self):
        adjusted = adjust_price_for_risk(self._price(), 5)
        assert adjusted.risk_buffer_percentage == 5.5
        assert adjusted.total_price == 7177.5

    def test_discount(self):
        discounted = apply_discount(self._price(), 10)
        assert discounted.discount_amount == 715
        assert discounted.final_price == 6435

    def test_formatting(self):
        assert format_currency(12345) == "12.345 kr."
        assert format_hours(0.5) == "30 min"
        assert format_hours(2) == "2 timer"
        assert format_hours(2.5) == "2t 30min"
        assert estimate_workdays(8) == 2


# =============================================================================
# RISK ANALYSIS
# =============================================================================

class TestRiskAnalysis:

    def test_old_building_with_ev(self):
        interpretation = _interpretation(
            raw_description="Elbillader i gammelt hus",
            building_age_years=60,
            electrical_points={"ev_charger": 1},
        )
        analysis = analyze_risks(interpretation)
        codes = [r["code"] for r in analysis.risks]

        assert codes == ["old_building_pre_1970", "minimal_description", "ev_charger"]
        assert analysis.overall_score == 3
        assert analysis.requires_inspection is True
        assert generate_offer_reservations(analysis).startswith("Forbehold:")

    def test_price_rules_are_internal(self):
        price = calculate_price(
            [{"total_cost": 100}],
            TimeCalculation(1, 1, 1, 1, 1),
            margin_percentage=15,
        )
        analysis = analyze_risks(_interpretation(), price)
        codes = {r["code"] for r in analysis.risks}

        assert codes == {"low_margin", "small_project"}
        assert analysis.offer_reservations == []
        assert len(analysis.internal_notes) == 2

    def test_interpreter_risks_merged_once(self):
        interpretation = _interpretation(risk_factors=[
            {"type": "scope", "code": "renovation", "title": "Renovering", "description": "", "severity": "medium"},
        ])
        analysis = analyze_risks(interpretation)
        assert [r["code"] for r in analysis.risks] == ["renovation"]

    def test_no_risks(self):
        analysis = analyze_risks(_interpretation())
        assert analysis.risks == []
        assert analysis.overall_score == 1
        assert analysis.summary == "Ingen væsentlige risici identificeret. Standard projekt."
        assert analysis.requires_inspection is False
        assert generate_internal_notes(analysis) == "Ingen særlige bemærkninger."

    def test_low_confidence_requires_inspection(self):
        assert analyze_risks(_interpretation(ai_confidence=0.5)).requires_inspection is True

    def test_overall_score_weighting(self):
        assert calculate_overall_risk_score([{"severity": "low"}]) == 1
        assert calculate_overall_risk_score([{"severity": "critical"}]) == 5


# =============================================================================
# OFFER TEXT
# =============================================================================

class TestOfferGenerator:

    def _offer(self, **kwargs):
        interpretation = interpret_project(DESCRIPTION, current_year=2025).interpretation
        match = match_components(interpretation)
        calculation = calculate_project(
            to_calculation_components(match.components),
            to_calculation_materials(match.materials),
            interpretation,
        )
        analysis = analyze_risks(interpretation, calculation.price)
        return generate_offer_text(interpretation, calculation, analysis, offer_date=date(2025, 3, 1), **kwargs)

    def test_full_text(self):
        offer = self._offer(customer_name="Jens Hansen", project_address="Søndergade 1")
        text = offer.full_offer_text

        assert "Til: Jens Hansen" in text
        assert "Adresse: Søndergade 1" in text
        assert "Dato: 01.03.2025" in text
        assert "Elta Solar ApS" in text
        assert "ekskl. moms" in text

    def test_sections(self):
        sections = self._offer().sections
        assert sections.work_description.startswith("El-installation i villa/parcelhus på 140 m².")
        assert "Stikkontakter: 10 stk. stikkontakt enkelt" in sections.work_description
        assert sections.scope_description.startswith("OMFANG")
        assert "Samlet antal elpunkter" in sections.scope_description
        assert "BETINGELSER" in sections.terms

    def test_markdown_display(self):
        section = "Fordeling:\n  • Belysning: 2 timer\n------"
        assert format_offer_section_for_display(section) == "**Fordeling:**\n- Belysning: 2 timer\n---"


# =============================================================================
# PIPELINE
# =============================================================================

class TestAutoProject:

    def test_analyze_project(self):
        stages = []
        result = asyncio.run(analyze_project(
            DESCRIPTION, customer_name="Jens Hansen", on_progress=lambda p: stages.append(p["stage"])
        ))

        assert result["success"] is True
        assert result["error"] is None
        data = result["data"]
        assert data["interpretation"]["building_type"] == "house"
        assert data["calculation"]["price"]["total_price"] > 0
        assert data["interpretation"]["id"].startswith("temp-")
        assert "Til: Jens Hansen" in data["offer_text"]["full_offer_text"]
        assert stages[0] == "interpreting"
        assert stages[-1] == "complete"

    def test_uses_catalog_components(self, catalog):
        catalog.get_calc_components.return_value = [
            {"id": "c1", "code": "outlet_single", "name": "Stik DB", "price": 500,
             "time_estimate": 20, "category": "outlet"},
        ]
        result = asyncio.run(analyze_project(DESCRIPTION, client=catalog))

        components = result["data"]["calculation"]["components"]
        outlet = next(c for c in components if c["code"] == "outlet_single")
        assert outlet["unit_price"] == 500
        catalog.get_calc_components.assert_awaited_once()

    def test_failure_is_reported(self):
        with patch("elta.estimation.auto_project.interpret_project", side_effect=RuntimeError("boom")):
            result = asyncio.run(analyze_project(DESCRIPTION))

        assert result["success"] is False
        assert result["data"] is None
        assert result["error"] == "boom"

    def test_quick_analyze(self):
        result = asyncio.run(quick_analyze(DESCRIPTION))
        assert result["building_type"] == "house"
        assert result["size_m2"] == 140
        assert result["total_points"] == 18
        assert result["estimated_price"] > 0

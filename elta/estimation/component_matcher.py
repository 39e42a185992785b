"""
Component Matcher

Maps an interpreted project to calculation components and a bill of
materials. Component prices and times come from calc_components when a
row with the matching code exists, otherwise from built-in estimates.
"""

import math
import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, List, Any

from elta.estimation.interpreter import ProjectInterpretation
from elta.services.pricing import round_half_up

logger = logging.getLogger(__name__)


@dataclass
class ComponentMatch:
    code: str
    name: str
    unit: str
    unit_price: float
    time_minutes: float
    category: str
    source: str = "estimate"
    quantity: float = 0
    component_id: Optional[str] = None


@dataclass
class MaterialMatch:
    name: str
    unit: str
    unit_cost: float
    unit_price: float
    source: str = "estimate"
    quantity: float = 0
    material_id: Optional[str] = None
    supplier_product_id: Optional[str] = None
    sku: Optional[str] = None
    supplier_name: Optional[str] = None


@dataclass
class MatchingResult:
    components: List[ComponentMatch] = field(default_factory=list)
    materials: List[MaterialMatch] = field(default_factory=list)
    unmatched_points: List[str] = field(default_factory=list)
    match_confidence: float = 0.5


# ============== Default Data ==============

DEFAULT_COMPONENTS: Dict[str, ComponentMatch] = {
    c.code: c for c in [
        ComponentMatch("outlet_single", "Stikkontakt enkelt", "stk", 450, 25, "outlet"),
        ComponentMatch("outlet_double", "Stikkontakt dobbelt", "stk", 650, 30, "outlet"),
        ComponentMatch("switch_single", "Afbryder enkelt", "stk", 350, 20, "switch"),
        ComponentMatch("switch_multi", "Korrespondanceafbryder", "stk", 550, 35, "switch"),
        ComponentMatch("dimmer", "Dæmper", "stk", 750, 30, "switch"),
        ComponentMatch("spot_light", "LED Spot indbygning", "stk", 350, 20, "lighting"),
        ComponentMatch("ceiling_light", "Loftudtag", "stk", 400, 25, "lighting"),
        ComponentMatch("outdoor_light", "Udendørs lampeudtag", "stk", 650, 40, "lighting"),
        ComponentMatch("power_16a", "Kraftstik 16A", "stk", 850, 35, "power"),
        ComponentMatch("power_32a", "Kraftstik 32A", "stk", 1250, 45, "power"),
        ComponentMatch("ev_charger", "Elbillader installation", "stk", 4500, 120, "power"),
        ComponentMatch("data_outlet", "Dataudtag CAT6", "stk", 550, 30, "data"),
        ComponentMatch("tv_outlet", "Antenne/TV udtag", "stk", 450, 25, "data"),
        ComponentMatch("panel_group", "Gruppeudvidelse i tavle", "stk", 650, 30, "panel"),
        ComponentMatch("panel_new", "Ny eltavle komplet", "stk", 8500, 240, "panel"),
    ]
}

DEFAULT_MATERIALS: Dict[str, MaterialMatch] = {
    "cable_1_5mm": MaterialMatch("Installationskabel NYM-J 3x1,5mm²", "m", 8.50, 12.00),
    "cable_2_5mm": MaterialMatch("Installationskabel NYM-J 3x2,5mm²", "m", 12.50, 18.00),
    "cable_4mm": MaterialMatch("Installationskabel NYM-J 3x4mm²", "m", 22.00, 32.00),
    "cable_6mm": MaterialMatch("Installationskabel NYM-J 5x6mm²", "m", 45.00, 65.00),
    "cable_10mm": MaterialMatch("Installationskabel NYM-J 5x10mm²", "m", 85.00, 120.00),
    "cable_outdoor": MaterialMatch("Jordkabel XPUJ 3x2,5mm²", "m", 28.00, 40.00),
    "cable_data": MaterialMatch("Datakabel CAT6 U/UTP", "m", 6.50, 10.00),
    "outlet_material": MaterialMatch("Stikkontakt komplet (FUGA)", "stk", 85.00, 120.00),
    "switch_material": MaterialMatch("Afbryder komplet (FUGA)", "stk", 75.00, 105.00),
    "spot_material": MaterialMatch("LED Spot 7W indbygning", "stk", 125.00, 180.00),
    "junction_box": MaterialMatch("Samledåse IP55", "stk", 18.00, 28.00),
    "conduit": MaterialMatch("Flexrør 16mm", "m", 3.50, 6.00),
}

POINT_TO_COMPONENT = {
    "outlets": "outlet_single",
    "double_outlets": "outlet_double",
    "switches": "switch_single",
    "multi_switches": "switch_multi",
    "dimmers": "dimmer",
    "spots": "spot_light",
    "ceiling_lights": "ceiling_light",
    "outdoor_lights": "outdoor_light",
    "power_16a": "power_16a",
    "power_32a": "power_32a",
    "ev_charger": "ev_charger",
    "data_outlets": "data_outlet",
    "tv_outlets": "tv_outlet",
}

# cable requirement key -> default material key
CABLE_MATERIALS = [
    ("nym_1_5mm", "cable_1_5mm"),
    ("nym_2_5mm", "cable_2_5mm"),
    ("nym_4mm", "cable_4mm"),
    ("nym_6mm", "cable_6mm"),
    ("nym_10mm", "cable_10mm"),
    ("outdoor_cable", "cable_outdoor"),
    ("data_cable", "cable_data"),
]


# ============== Database Components ==============

def components_from_rows(rows: List[Dict[str, Any]]) -> Dict[str, ComponentMatch]:
    """Index calc_components rows by code"""
    components = {}
    for row in rows:
        if not row.get("code"):
            continue
        components[row["code"]] = ComponentMatch(
            code=row["code"],
            name=row.get("name") or row["code"],
            unit=row.get("unit") or "stk",
            unit_price=row.get("price") or 0,
            time_minutes=row.get("time_estimate") or 30,
            category=row.get("category") or "general",
            source="database",
            component_id=row.get("id"),
        )
    return components


async def fetch_database_components(client) -> Dict[str, ComponentMatch]:
    """Active calc_components, empty when the lookup fails"""
    try:
        rows = await client.get_calc_components()
    except Exception as e:
        logger.warning(f"[ComponentMatcher] Could not load calc_components, using defaults: {e}")
        return {}
    return components_from_rows(rows)


# ============== Matching ==============

def _component(code: str, quantity: float, db_components: Dict[str, ComponentMatch]) -> Optional[ComponentMatch]:
    base = db_components.get(code) or DEFAULT_COMPONENTS.get(code)
    if base is None:
        return None
    return replace(base, quantity=quantity)


def _material(key: str, quantity: float) -> MaterialMatch:
    return replace(DEFAULT_MATERIALS[key], quantity=quantity)


def map_points_to_components(
    points: Dict[str, int],
    db_components: Dict[str, ComponentMatch]
) -> List[ComponentMatch]:
    components = []
    for point_key, code in POINT_TO_COMPONENT.items():
        quantity = points.get(point_key) or 0
        if quantity > 0:
            component = _component(code, quantity, db_components)
            if component:
                components.append(component)
    return components


def add_panel_components(
    interpretation: ProjectInterpretation,
    components: List[ComponentMatch],
    db_components: Dict[str, ComponentMatch]
) -> None:
    panel = interpretation.panel_requirements

    if panel.get("new_panel_needed"):
        components.append(_component("panel_new", 1, db_components))
    elif panel.get("upgrade_needed"):
        # Existing panels are assumed to have 8 groups when unknown
        groups_to_add = max(panel["required_groups"] - (panel.get("current_groups") or 8), 0)
        if groups_to_add > 0:
            components.append(_component("panel_group", groups_to_add, db_components))


def calculate_materials(
    interpretation: ProjectInterpretation,
    components: List[ComponentMatch]
) -> List[MaterialMatch]:
    """Cables from the cable estimate plus fittings, junction boxes and conduit"""
    cables = interpretation.cable_requirements
    materials = []

    for cable_key, material_key in CABLE_MATERIALS:
        if cables.get(cable_key, 0) > 0:
            materials.append(_material(material_key, cables[cable_key]))

    for component in components:
        if component.category == "outlet":
            materials.append(_material("outlet_material", component.quantity))
        elif component.category == "switch":
            materials.append(_material("switch_material", component.quantity))
        elif component.code == "spot_light":
            materials.append(_material("spot_material", component.quantity))

    # One junction box per 4 points
    total_points = sum(c.quantity for c in components)
    materials.append(_material("junction_box", math.ceil(total_points / 4)))

    # 70% of installation cable runs in conduit
    total_cable = cables.get("nym_1_5mm", 0) + cables.get("nym_2_5mm", 0) + cables.get("nym_4mm", 0)
    conduit_length = round_half_up(total_cable * 0.7)
    if conduit_length > 0:
        materials.append(_material("conduit", conduit_length))

    return materials


def match_components(
    interpretation: ProjectInterpretation,
    db_components: Optional[Dict[str, ComponentMatch]] = None
) -> MatchingResult:
    db_components = db_components or {}

    components = map_points_to_components(interpretation.electrical_points, db_components)
    add_panel_components(interpretation, components, db_components)
    materials = calculate_materials(interpretation, components)

    db_matched = len([c for c in components if c.source == "database"])
    match_confidence = db_matched / len(components) if components else 0.5

    return MatchingResult(
        components=components,
        materials=materials,
        unmatched_points=[],
        match_confidence=match_confidence,
    )


# ============== Output Format ==============

def to_calculation_components(matches: List[ComponentMatch]) -> List[Dict[str, Any]]:
    return [
        {
            "component_id": m.component_id,
            "name": m.name,
            "code": m.code,
            "quantity": m.quantity,
            "unit": m.unit,
            "unit_price": m.unit_price,
            "total": m.quantity * m.unit_price,
            "time_minutes": m.time_minutes * m.quantity,
            "category": m.category,
        }
        for m in matches
    ]


def to_calculation_materials(matches: List[MaterialMatch]) -> List[Dict[str, Any]]:
    return [
        {
            "material_id": m.material_id,
            "supplier_product_id": m.supplier_product_id,
            "name": m.name,
            "sku": m.sku,
            "supplier_name": m.supplier_name,
            "quantity": m.quantity,
            "unit": m.unit,
            "unit_cost": m.unit_cost,
            "unit_price": m.unit_price,
            "total_cost": m.quantity * m.unit_cost,
            "total_price": m.quantity * m.unit_price,
        }
        for m in matches
    ]

"""
Electrical Calculation Engine

Electrical calculations for Danish installations, based on DS/HD 60364
(the Danish implementation of IEC 60364) and Stærkstrømsbekendtgørelsen.

- Cable sizing with voltage drop verification
- Load calculation with diversity/demand factors
- Panel/distribution board configuration
- Breaker and RCD sizing
- Phase balancing for 3-phase systems
- Compliance checking against Danish standards

Loads and rooms are plain dicts as stored in the calculation tables:

    load = {"description": str, "category": str, "rated_power_watts": float,
            "quantity": int, "demand_factor": float?, "phase_assignment": 1|2|3?}
    room = {"name": str, "room_type": str, "area_m2": float, "floor": int,
            "is_wet_room": bool, "loads": [load], "cable_distance_m": float?}
"""

import math
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field

from elta.services.pricing import round_half_up


# ============== Reference Data (IEC 60364-5-52) ==============

CABLE_SIZES = [1.5, 2.5, 4, 6, 10, 16, 25, 35, 50, 70, 95, 120]

BREAKER_RATINGS = [6, 10, 13, 16, 20, 25, 32, 40, 50, 63, 80, 100]

# PVC-insulated copper at 30°C ambient: [method][core_count][cross_section] = amperes
CURRENT_CAPACITY: Dict[str, Dict[int, Dict[float, float]]] = {
    "A1": {
        2: {1.5: 15.5, 2.5: 21, 4: 28, 6: 36, 10: 50, 16: 68, 25: 89, 35: 110, 50: 134, 70: 171, 95: 207, 120: 239},
        3: {1.5: 13.5, 2.5: 18, 4: 24, 6: 31, 10: 42, 16: 57, 25: 75, 35: 92, 50: 110, 70: 139, 95: 167, 120: 192},
    },
    "A2": {
        2: {1.5: 15, 2.5: 20, 4: 27, 6: 34, 10: 46, 16: 62, 25: 80, 35: 99, 50: 119, 70: 151, 95: 182, 120: 210},
        3: {1.5: 13, 2.5: 17.5, 4: 23, 6: 29, 10: 39, 16: 52, 25: 68, 35: 83, 50: 99, 70: 125, 95: 150, 120: 172},
    },
    "B1": {
        2: {1.5: 17.5, 2.5: 24, 4: 32, 6: 41, 10: 57, 16: 76, 25: 101, 35: 125, 50: 151, 70: 192, 95: 232, 120: 269},
        3: {1.5: 15.5, 2.5: 21, 4: 28, 6: 36, 10: 50, 16: 68, 25: 89, 35: 110, 50: 134, 70: 171, 95: 207, 120: 239},
    },
    "B2": {
        2: {1.5: 16.5, 2.5: 23, 4: 30, 6: 38, 10: 52, 16: 69, 25: 90, 35: 111, 50: 133, 70: 168, 95: 201, 120: 232},
        3: {1.5: 15, 2.5: 20, 4: 27, 6: 34, 10: 46, 16: 62, 25: 80, 35: 99, 50: 119, 70: 151, 95: 182, 120: 210},
    },
    "C": {
        2: {1.5: 19.5, 2.5: 27, 4: 36, 6: 46, 10: 63, 16: 85, 25: 112, 35: 138, 50: 168, 70: 213, 95: 258, 120: 299},
        3: {1.5: 17.5, 2.5: 24, 4: 32, 6: 41, 10: 57, 16: 76, 25: 96, 35: 119, 50: 144, 70: 184, 95: 223, 120: 259},
    },
    "E": {
        2: {1.5: 22, 2.5: 30, 4: 40, 6: 51, 10: 70, 16: 94, 25: 119, 35: 148, 50: 180, 70: 232, 95: 282, 120: 328},
        3: {1.5: 19.5, 2.5: 26, 4: 35, 6: 44, 10: 60, 16: 80, 25: 101, 35: 126, 50: 153, 70: 196, 95: 238, 120: 276},
    },
    "F": {
        2: {1.5: 24, 2.5: 33, 4: 45, 6: 58, 10: 80, 16: 107, 25: 138, 35: 169, 50: 207, 70: 268, 95: 328, 120: 382},
        3: {1.5: 22, 2.5: 30, 4: 40, 6: 51, 10: 70, 16: 94, 25: 119, 35: 147, 50: 179, 70: 229, 95: 278, 120: 322},
    },
}

# Table B.52.14, reference 30°C
TEMP_CORRECTION = {
    10: 1.22, 15: 1.17, 20: 1.12, 25: 1.06,
    30: 1.00, 35: 0.94, 40: 0.87, 45: 0.79,
    50: 0.71, 55: 0.61, 60: 0.50,
}

# Table B.52.17, cables bundled or on the same tray
GROUPING_CORRECTION = {
    1: 1.00, 2: 0.80, 3: 0.70, 4: 0.65,
    5: 0.60, 6: 0.57, 7: 0.54, 8: 0.52,
    9: 0.50, 10: 0.48, 12: 0.45, 16: 0.41,
    20: 0.38,
}

# Ω·mm²/m at ~70°C operating temperature (PVC)
COPPER_RESISTIVITY_70C = 0.0225

DIVERSITY_RESIDENTIAL = {
    "lighting": 0.85,
    "socket_outlet": 0.40,
    "fixed_appliance": 0.75,
    "motor": 0.70,
    "heating": 0.85,
    "cooking": 0.65,
    "ev_charger": 1.00,  # continuous
    "data_equipment": 0.60,
}

DIVERSITY_COMMERCIAL = {
    "lighting": 0.90,
    "socket_outlet": 0.30,
    "fixed_appliance": 0.80,
    "motor": 0.75,
    "heating": 0.80,
    "cooking": 0.70,
    "ev_charger": 0.80,
    "data_equipment": 0.70,
}

# (cable_type, cross_section, core_count) -> DKK per metre
CABLE_COSTS = {
    ("PVT", 1.5, 3): 8,
    ("PVT", 2.5, 3): 12,
    ("PVT", 4, 3): 18,
    ("PVT", 6, 3): 26,
    ("PVT", 10, 3): 42,
    ("PVT", 16, 3): 65,
    ("PVT", 25, 3): 98,
    ("PVT", 1.5, 2): 6,
    ("PVT", 2.5, 2): 9,
    ("PVT", 4, 2): 14,
    ("NOIKLX", 4, 3): 35,
    ("NOIKLX", 6, 3): 48,
    ("NOIKLX", 10, 3): 72,
    ("NOIKLX", 16, 3): 105,
    ("NOIKLX", 25, 3): 155,
}

BREAKER_COSTS = [
    # MCB, 1 module each
    {"breaker_type": "MCB", "rating_a": 6, "characteristic": "B", "cost_dkk": 85, "modules": 1},
    {"breaker_type": "MCB", "rating_a": 10, "characteristic": "B", "cost_dkk": 85, "modules": 1},
    {"breaker_type": "MCB", "rating_a": 13, "characteristic": "B", "cost_dkk": 90, "modules": 1},
    {"breaker_type": "MCB", "rating_a": 16, "characteristic": "B", "cost_dkk": 90, "modules": 1},
    {"breaker_type": "MCB", "rating_a": 20, "characteristic": "B", "cost_dkk": 95, "modules": 1},
    {"breaker_type": "MCB", "rating_a": 25, "characteristic": "C", "cost_dkk": 110, "modules": 1},
    {"breaker_type": "MCB", "rating_a": 32, "characteristic": "C", "cost_dkk": 130, "modules": 1},
    {"breaker_type": "MCB", "rating_a": 40, "characteristic": "C", "cost_dkk": 165, "modules": 1},
    # RCBO, 2 modules each
    {"breaker_type": "RCBO", "rating_a": 10, "characteristic": "B", "rcd_type": "A", "cost_dkk": 450, "modules": 2},
    {"breaker_type": "RCBO", "rating_a": 16, "characteristic": "B", "rcd_type": "A", "cost_dkk": 450, "modules": 2},
    {"breaker_type": "RCBO", "rating_a": 20, "characteristic": "B", "rcd_type": "A", "cost_dkk": 480, "modules": 2},
    {"breaker_type": "RCBO", "rating_a": 25, "characteristic": "C", "rcd_type": "A", "cost_dkk": 520, "modules": 2},
    {"breaker_type": "RCBO", "rating_a": 32, "characteristic": "C", "rcd_type": "B", "cost_dkk": 850, "modules": 2},
    # RCD groups
    {"breaker_type": "RCD", "rating_a": 25, "rcd_type": "A", "cost_dkk": 650, "modules": 2},
    {"breaker_type": "RCD", "rating_a": 40, "rcd_type": "A", "cost_dkk": 750, "modules": 2},
    {"breaker_type": "RCD", "rating_a": 63, "rcd_type": "A", "cost_dkk": 850, "modules": 4},
    {"breaker_type": "RCD", "rating_a": 40, "rcd_type": "B", "cost_dkk": 2200, "modules": 4},
]

PANEL_SIZES = [12, 24, 36, 48, 72]
PANEL_COSTS = {12: 450, 24: 750, 36: 1100, 48: 1500, 72: 2200}

SURGE_PROTECTION_COST = {"Type2": 1200, "Type1+2": 3500, "Type1": 2500}

# Ib <= In <= Iz, method B2 reference
BREAKER_CABLE_MAP = {
    6: 1.5, 10: 1.5, 13: 1.5, 16: 2.5, 20: 2.5,
    25: 4, 32: 6, 40: 10, 50: 16, 63: 16, 80: 25, 100: 35,
}

STANDARDS_CHECKED = [
    "DS/HD 60364-3 (Lastberegning)",
    "DS/HD 60364-4-41 (Beskyttelse mod elektrisk stød)",
    "DS/HD 60364-4-43 (Overstrømsbeskyttelse)",
    "DS/HD 60364-4-44 (Overspændingsbeskyttelse)",
    "DS/HD 60364-5-52 (Kabelinstallation)",
    "DS/HD 60364-7-701 (Vådrum)",
    "DS/HD 60364-7-722 (EV-ladestandere)",
]

CIRCUIT_LABOR_SECONDS = 900  # 15 min per circuit
PANEL_BASE_SECONDS = 3600


# ============== Dataclasses ==============

@dataclass
class CableSizingResult:
    recommended_cross_section: float
    min_cross_section_current: float
    min_cross_section_voltage_drop: float
    design_current_a: float
    cable_capacity_a: float
    voltage_drop_v: float
    voltage_drop_percent: float
    derating_factor: float
    cable_designation: str
    cost_per_meter: float
    total_cable_cost: float
    compliant: bool
    warnings: List[str] = field(default_factory=list)


@dataclass
class LoadAnalysisResult:
    total_connected_load_w: int
    total_demand_load_w: int
    total_demand_current_a: float
    phase_loads: Dict[str, int]
    phase_imbalance_percent: float
    recommended_main_breaker_a: int
    recommended_supply_fuse_a: int
    diversity_factors_used: Dict[str, float]
    category_breakdown: List[Dict[str, Any]] = field(default_factory=list)
    supply_adequate: bool = True
    warnings: List[str] = field(default_factory=list)


@dataclass
class CircuitConfig:
    position: int
    description: str
    breaker_type: str  # MCB, RCBO
    rating_a: int
    characteristic: str  # B, C
    phase: int
    cable_cross_section: float
    cable_type: str
    connected_load_w: int
    load_category: str
    area: str
    rcd_type: Optional[str] = None
    rcd_sensitivity_ma: Optional[int] = None
    point_count: Optional[int] = None


@dataclass
class RCDGroup:
    description: str
    rcd_type: str
    sensitivity_ma: int
    rating_a: int
    circuits: List[int]
    modules: int


@dataclass
class PanelConfiguration:
    name: str
    panel_type: str
    total_modules: int
    modules_used: int
    spare_capacity_percent: int
    main_switch_rating_a: int
    phase_type: str
    rcd_groups: List[RCDGroup]
    circuits: List[CircuitConfig]
    surge_protection: Dict[str, Any]
    estimated_material_cost: float
    estimated_time_seconds: int
    cost_breakdown: List[Dict[str, Any]] = field(default_factory=list)
    compliance_notes: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ComplianceIssue:
    code: str
    severity: str  # error, warning, info
    standard_ref: str
    description: str
    recommendation: str
    affected_area: Optional[str] = None


@dataclass
class ComplianceCheckResult:
    compliant: bool
    issues: List[ComplianceIssue]
    summary: Dict[str, int]
    standards_checked: List[str]


@dataclass
class ElectricalProjectResult:
    load_analysis: LoadAnalysisResult
    panel: PanelConfiguration
    cable_sizing: List[CableSizingResult]
    compliance: ComplianceCheckResult
    room_summaries: List[Dict[str, Any]]
    total_cable_meters: int
    total_electrical_material_cost: int
    total_electrical_labor_seconds: int
    warnings: List[str] = field(default_factory=list)


# ============== Lookup Helpers ==============

def get_temperature_correction(temp_c: float) -> float:
    """Correction factor for the closest tabulated ambient temperature"""
    closest = min(sorted(TEMP_CORRECTION), key=lambda t: abs(t - temp_c))
    return TEMP_CORRECTION[closest]


def get_grouping_correction(count: int) -> float:
    """Correction factor for the largest tabulated group size <= count"""
    if count <= 1:
        return 1.0
    applicable = [c for c in sorted(GROUPING_CORRECTION) if c <= count]
    return GROUPING_CORRECTION[applicable[-1]] if applicable else 0.38


def select_breaker_rating(current: float) -> int:
    for rating in BREAKER_RATINGS:
        if rating >= current:
            return rating
    return 100


def select_cable_for_breaker(breaker_rating: int) -> float:
    return BREAKER_CABLE_MAP.get(breaker_rating, 2.5)


def get_max_current_for_cable(cross_section: float, method: str = "B2", core_count: int = 3) -> float:
    return CURRENT_CAPACITY.get(method, {}).get(core_count, {}).get(cross_section, 0)


def estimate_cable_cost(cable_type: str, cross_section: float) -> int:
    """Rough DKK/m estimate when the cable is not in the price table"""
    multiplier = {"NOIKLX": 2.0, "PFSP": 2.5}.get(cable_type, 1.0)
    return round_half_up(cross_section * 3 * multiplier)


def _voltage_drop(current: float, length: float, cross_section: float, phase: str) -> float:
    if phase == "1-phase":
        return 2 * length * current * COPPER_RESISTIVITY_70C / cross_section
    return math.sqrt(3) * length * current * COPPER_RESISTIVITY_70C / cross_section


def find_min_cross_section_by_current(current: float, method: str, core_count: int) -> float:
    table = CURRENT_CAPACITY.get(method, {}).get(core_count)
    if not table:
        return 2.5
    for size in CABLE_SIZES:
        capacity = table.get(size)
        if capacity and capacity >= current:
            return size
    return 120


def find_min_cross_section_by_voltage_drop(
    current: float, length: float, voltage: float, phase: str, max_drop_percent: float
) -> float:
    max_drop_v = max_drop_percent / 100 * voltage
    for size in CABLE_SIZES:
        if _voltage_drop(current, length, size, phase) <= max_drop_v:
            return size
    return 120


# ============== Cable Sizing ==============

def calculate_cable_size(
    power_watts: float,
    length_meters: float,
    voltage: float = 230,
    phase: str = "1-phase",
    power_factor: float = 1.0,
    installation_method: str = "B2",
    core_count: int = 3,
    ambient_temp_c: float = 30,
    grouped_cables: int = 1,
    cable_type: str = "PVT",
    max_voltage_drop_percent: float = 4,
) -> CableSizingResult:
    """
    Calculate the required cable size for a circuit.

    The cross-section is the larger of the minimum needed for current
    carrying capacity (after derating) and for the voltage drop limit.
    """
    warnings = []

    if phase == "1-phase":
        design_current = power_watts / (voltage * power_factor)
    else:
        design_current = power_watts / (math.sqrt(3) * voltage * power_factor)

    derating = get_temperature_correction(ambient_temp_c) * get_grouping_correction(grouped_cables)

    min_by_current = find_min_cross_section_by_current(design_current / derating, installation_method, core_count)
    min_by_drop = find_min_cross_section_by_voltage_drop(
        design_current, length_meters, voltage, phase, max_voltage_drop_percent
    )
    recommended = max(min_by_current, min_by_drop)

    capacity = get_max_current_for_cable(recommended, installation_method, core_count) * derating

    drop_v = _voltage_drop(design_current, length_meters, recommended, phase)
    drop_percent = drop_v / voltage * 100

    cost_per_meter = CABLE_COSTS.get((cable_type, recommended, core_count))
    if cost_per_meter is None:
        cost_per_meter = estimate_cable_cost(cable_type, recommended)

    size_label = f"{recommended:g}"
    core_designation = f"2x{size_label}" if core_count == 2 else f"3G{size_label}"

    compliant = True
    if drop_percent > max_voltage_drop_percent:
        warnings.append(
            f"Spændingsfald {drop_percent:.1f}% overskrider grænsen på {max_voltage_drop_percent}%"
        )
        compliant = False
    if capacity < design_current:
        warnings.append(f"Kabelkapacitet {capacity:.1f}A er under designstrøm {design_current:.1f}A")
        compliant = False
    if design_current > 32 and phase == "1-phase":
        warnings.append("Belastning over 32A bør overvejes med 3-faset tilslutning")
    if grouped_cables > 6:
        warnings.append("Mange kabler samlet - overvej separate føringsveje for bedre køling")

    return CableSizingResult(
        recommended_cross_section=recommended,
        min_cross_section_current=min_by_current,
        min_cross_section_voltage_drop=min_by_drop,
        design_current_a=round_half_up(design_current, 2),
        cable_capacity_a=round_half_up(capacity, 2),
        voltage_drop_v=round_half_up(drop_v, 2),
        voltage_drop_percent=round_half_up(drop_percent, 2),
        derating_factor=round_half_up(derating, 3),
        cable_designation=f"{cable_type} {core_designation}",
        cost_per_meter=cost_per_meter,
        total_cable_cost=round_half_up(cost_per_meter * length_meters, 2),
        compliant=compliant,
        warnings=warnings,
    )


# ============== Load Calculation ==============

def _least_loaded_phase(tracker: Dict[int, float]) -> int:
    return min((1, 2, 3), key=lambda p: tracker[p])


def calculate_load(
    loads: List[Dict[str, Any]],
    phase: str,
    building_type: str = "residential",
) -> LoadAnalysisResult:
    """
    Calculate total electrical load with diversity factors.

    Demand per load uses its own demand factor, else the category diversity
    factor, else 0.5. On 3-phase supplies loads without a fixed phase go to
    the least loaded phase.
    """
    warnings = []
    diversity = dict(DIVERSITY_COMMERCIAL if building_type == "commercial" else DIVERSITY_RESIDENTIAL)

    categories: Dict[str, Dict[str, float]] = {}
    phase_loads = {1: 0.0, 2: 0.0, 3: 0.0}
    total_connected = 0.0
    total_demand = 0.0

    for load in loads:
        category = load.get("category", "")
        quantity = load.get("quantity", 1)
        connected = load.get("rated_power_watts", 0) * quantity
        factor = load.get("demand_factor")
        if factor is None:
            factor = diversity.get(category, 0.5)
        demand = connected * factor

        total_connected += connected
        total_demand += demand

        cat = categories.setdefault(category, {"connected": 0.0, "count": 0})
        cat["connected"] += connected
        cat["count"] += quantity

        if phase == "3-phase":
            assignment = load.get("phase_assignment") or _least_loaded_phase(phase_loads)
            phase_loads[assignment] += demand
        else:
            phase_loads[1] += demand

    imbalance = 0.0
    if phase == "3-phase":
        avg = sum(phase_loads.values()) / 3
        if avg > 0:
            max_dev = max(abs(v - avg) for v in phase_loads.values())
            imbalance = max_dev / avg * 100

    if phase == "1-phase":
        total_current = total_demand / 230
    else:
        total_current = total_demand / (math.sqrt(3) * 400)

    main_breaker = select_breaker_rating(total_current)
    idx = BREAKER_RATINGS.index(main_breaker)
    supply_fuse = BREAKER_RATINGS[idx + 1] if idx < len(BREAKER_RATINGS) - 1 else main_breaker

    breakdown = []
    for category, data in categories.items():
        factor = diversity.get(category, 0.5)
        breakdown.append({
            "category": category,
            "connected_load_w": round_half_up(data["connected"]),
            "demand_factor": factor,
            "demand_load_w": round_half_up(data["connected"] * factor),
            "count": data["count"],
        })

    if imbalance > 20:
        warnings.append(f"Fasebelastning er skæv med {imbalance:.0f}% afvigelse - overvej omfordeling")
    if total_current > 63 and phase == "1-phase":
        warnings.append("Totalbelastning kræver 3-faset forsyning")
    if total_demand > 17000 and phase == "1-phase":
        warnings.append(
            "Samlet effektbehov overskrider typisk 1-faset tilslutning (25A × 230V = 5750W per fase)"
        )

    return LoadAnalysisResult(
        total_connected_load_w=round_half_up(total_connected),
        total_demand_load_w=round_half_up(total_demand),
        total_demand_current_a=round_half_up(total_current, 2),
        phase_loads={
            "phase_1_w": round_half_up(phase_loads[1]),
            "phase_2_w": round_half_up(phase_loads[2]),
            "phase_3_w": round_half_up(phase_loads[3]),
        },
        phase_imbalance_percent=round_half_up(imbalance, 1),
        recommended_main_breaker_a=main_breaker,
        recommended_supply_fuse_a=supply_fuse,
        diversity_factors_used=diversity,
        category_breakdown=breakdown,
        warnings=warnings,
    )


# ============== Panel Configuration ==============

def build_rcd_groups(circuits: List[CircuitConfig], max_per_group: int = 6) -> List[RCDGroup]:
    """
    Group MCB circuits under shared RCDs.

    Socket outlet circuits get their own groups (rated at least 40A), the
    remaining MCB circuits share lighting/other groups.
    """
    groups: List[RCDGroup] = []
    unprotected = [c for c in circuits if c.breaker_type == "MCB"]
    sockets = [c for c in unprotected if c.load_category == "socket_outlet"]
    others = [c for c in unprotected if c.load_category != "socket_outlet"]

    for i in range(0, len(sockets), max_per_group):
        batch = sockets[i:i + max_per_group]
        group_load = sum(c.connected_load_w for c in batch)
        rating_needed = select_breaker_rating(group_load / 230 * 0.5)
        groups.append(RCDGroup(
            description=f"HPFI stikkontakter (gruppe {len(groups) + 1})",
            rcd_type="A",
            sensitivity_ma=30,
            rating_a=max(rating_needed, 40),
            circuits=[c.position for c in batch],
            modules=2,
        ))

    for i in range(0, len(others), max_per_group):
        batch = others[i:i + max_per_group]
        groups.append(RCDGroup(
            description=f"HPFI belysning/øvrige (gruppe {len(groups) + 1})",
            rcd_type="A",
            sensitivity_ma=30,
            rating_a=40,
            circuits=[c.position for c in batch],
            modules=2,
        ))

    return groups


def calculate_panel_costs(
    circuits: List[CircuitConfig],
    rcd_groups: List[RCDGroup],
    panel_modules: int,
    surge_protection: bool,
    main_switch_rating: int,
) -> List[Dict[str, Any]]:
    costs = []

    panel_cost = PANEL_COSTS.get(panel_modules, 1500)
    costs.append({"item": f"Tavle {panel_modules} moduler", "quantity": 1,
                  "unit_cost": panel_cost, "total_cost": panel_cost})

    main_switch_cost = 350 + (200 if main_switch_rating > 40 else 0)
    costs.append({"item": f"Hovedafbryder {main_switch_rating}A", "quantity": 1,
                  "unit_cost": main_switch_cost, "total_cost": main_switch_cost})

    breaker_counts: Dict[str, Dict[str, float]] = {}
    for circuit in circuits:
        key = f"{circuit.breaker_type} {circuit.rating_a}A {circuit.characteristic}"
        entry = next(
            (b for b in BREAKER_COSTS
             if b["breaker_type"] == circuit.breaker_type and b["rating_a"] == circuit.rating_a),
            None,
        )
        unit_cost = entry["cost_dkk"] if entry else (480 if circuit.breaker_type == "RCBO" else 95)
        counted = breaker_counts.setdefault(key, {"count": 0, "cost": unit_cost})
        counted["count"] += 1

    for key, data in breaker_counts.items():
        costs.append({"item": key, "quantity": data["count"], "unit_cost": data["cost"],
                      "total_cost": data["count"] * data["cost"]})

    for group in rcd_groups:
        entry = next(
            (b for b in BREAKER_COSTS
             if b["breaker_type"] == "RCD" and b.get("rcd_type") == group.rcd_type
             and b["rating_a"] == group.rating_a),
            None,
        )
        rcd_cost = entry["cost_dkk"] if entry else 750
        costs.append({"item": group.description, "quantity": 1, "unit_cost": rcd_cost, "total_cost": rcd_cost})

    if surge_protection:
        surge = SURGE_PROTECTION_COST["Type2"]
        costs.append({"item": "Overspændingsbeskyttelse Type 2", "quantity": 1,
                      "unit_cost": surge, "total_cost": surge})

    # Bus bars, terminals, labels
    misc = round_half_up(len(circuits) * 25 + 200)
    costs.append({"item": "Skinner, klemmer, mærkning", "quantity": 1, "unit_cost": misc, "total_cost": misc})

    return costs


def configure_panel_from_loads(
    rooms: List[Dict[str, Any]],
    phase: str,
    is_renovation: bool = False,
) -> PanelConfiguration:
    """
    Configure a distribution panel from the rooms and their loads.

    Circuits are created per room and type: lighting (10A, 1.5mm², max
    2300W per circuit), outlets (16A, 2.5mm², max 10 outlets or 3680W per
    circuit), dedicated circuits for heavy loads and heating, and 16A
    circuits for the rest. Wet rooms get RCBO protection, EV chargers get
    RCBO type B.
    """
    circuits: List[CircuitConfig] = []
    warnings = []
    compliance_notes = []
    tracker = {1: 0.0, 2: 0.0, 3: 0.0}
    position = 1

    def next_phase(watts: float) -> int:
        ph = _least_loaded_phase(tracker) if phase == "3-phase" else 1
        tracker[ph] += watts
        return ph

    for room in rooms:
        room_loads = room.get("loads", [])
        if not room_loads:
            continue
        name = room.get("name", "")
        wet = bool(room.get("is_wet_room"))

        lighting = [l for l in room_loads if l.get("category") == "lighting"]
        outlets = [l for l in room_loads if l.get("category") == "socket_outlet"]
        heavy = [l for l in room_loads if l.get("category") in ("fixed_appliance", "cooking", "ev_charger")]
        heating = [l for l in room_loads if l.get("category") == "heating"]
        other = [l for l in room_loads if l.get("category") not in (
            "lighting", "socket_outlet", "fixed_appliance", "cooking", "ev_charger", "heating")]

        if lighting:
            total_w = sum(l["rated_power_watts"] * l.get("quantity", 1) for l in lighting)
            count = max(math.ceil(total_w / 2300), 1)
            w_per = total_w / count
            points = math.ceil(sum(l.get("quantity", 1) for l in lighting) / count)
            for i in range(count):
                circuits.append(CircuitConfig(
                    position=position,
                    description=f"Belysning {name} ({i + 1}/{count})" if count > 1 else f"Belysning {name}",
                    breaker_type="MCB",
                    rating_a=10,
                    characteristic="B",
                    phase=next_phase(w_per),
                    cable_cross_section=1.5,
                    cable_type="PVT",
                    connected_load_w=round_half_up(w_per),
                    load_category="lighting",
                    area=name,
                    point_count=points,
                ))
                position += 1

        if outlets:
            total_outlets = sum(l.get("quantity", 1) for l in outlets)
            total_w = sum(l["rated_power_watts"] * l.get("quantity", 1) for l in outlets)
            count = max(math.ceil(total_outlets / 10), math.ceil(total_w / 3680), 1)
            w_per = total_w / count
            per_circuit = math.ceil(total_outlets / count)
            for i in range(count):
                circuits.append(CircuitConfig(
                    position=position,
                    description=f"Stikkontakter {name} ({i + 1}/{count})" if count > 1 else f"Stikkontakter {name}",
                    breaker_type="RCBO" if wet else "MCB",
                    rating_a=16,
                    characteristic="B",
                    phase=next_phase(w_per),
                    cable_cross_section=2.5,
                    cable_type="PVT",
                    connected_load_w=round_half_up(w_per),
                    load_category="socket_outlet",
                    area=name,
                    rcd_type="A" if wet else None,
                    rcd_sensitivity_ma=30 if wet else None,
                    point_count=per_circuit,
                ))
                position += 1

        for load in heavy:
            total_w = load["rated_power_watts"] * load.get("quantity", 1)
            rating = select_breaker_rating(total_w / 230)
            is_ev = load.get("category") == "ev_charger"
            circuits.append(CircuitConfig(
                position=position,
                description=f"{load.get('description', '')} ({name})",
                breaker_type="RCBO" if is_ev else "MCB",
                rating_a=rating,
                characteristic="B",
                phase=next_phase(total_w),
                cable_cross_section=select_cable_for_breaker(rating),
                cable_type="PVT",
                connected_load_w=round_half_up(total_w),
                load_category=load.get("category"),
                area=name,
                rcd_type="B" if is_ev else None,
                rcd_sensitivity_ma=30 if is_ev else None,
            ))
            position += 1
            if is_ev:
                compliance_notes.append("EV-lader kræver RCD Type B (30mA) iht. DS/HD 60364-7-722")

        for load in heating:
            total_w = load["rated_power_watts"] * load.get("quantity", 1)
            rating = select_breaker_rating(total_w / 230)
            circuits.append(CircuitConfig(
                position=position,
                description=f"{load.get('description', '')} ({name})",
                breaker_type="RCBO" if wet else "MCB",
                rating_a=rating,
                characteristic="B",
                phase=next_phase(total_w),
                cable_cross_section=select_cable_for_breaker(rating),
                cable_type="PVT",
                connected_load_w=round_half_up(total_w),
                load_category="heating",
                area=name,
                rcd_type="A" if wet else None,
                rcd_sensitivity_ma=30 if wet else None,
            ))
            position += 1

        for load in other:
            total_w = load["rated_power_watts"] * load.get("quantity", 1)
            circuits.append(CircuitConfig(
                position=position,
                description=f"{load.get('description', '')} ({name})",
                breaker_type="MCB",
                rating_a=16,
                characteristic="B",
                phase=next_phase(total_w),
                cable_cross_section=2.5,
                cable_type="PVT",
                connected_load_w=round_half_up(total_w),
                load_category=load.get("category"),
                area=name,
            ))
            position += 1

        if wet:
            compliance_notes.append(f"{name}: Alle kredsløb kræver HPFI/RCD 30mA iht. DS/HD 60364-7-701")

    rcd_groups = build_rcd_groups(circuits)

    # Main switch takes 2 modules on 1-phase, 4 on 3-phase
    modules_used = 4 if phase == "3-phase" else 2
    modules_used += sum(g.modules for g in rcd_groups)
    modules_used += sum(2 if c.breaker_type == "RCBO" else 1 for c in circuits)

    surge_modules = 3
    modules_used += surge_modules

    min_modules = math.ceil(modules_used * 1.2)
    total_modules = next((s for s in PANEL_SIZES if s >= min_modules), 72)

    total_load = sum(c.connected_load_w for c in circuits)
    main_current = total_load / 230 if phase == "1-phase" else total_load / (math.sqrt(3) * 400)
    main_switch = select_breaker_rating(main_current * 0.6)

    cost_breakdown = calculate_panel_costs(circuits, rcd_groups, total_modules, True, main_switch)
    estimated_time = PANEL_BASE_SECONDS + len(circuits) * CIRCUIT_LABOR_SECONDS

    if is_renovation:
        compliance_notes.append("Renovering: Eksisterende installation skal undersøges for kompatibilitet")
        warnings.append("Ved renovering bør eksisterende HPFI/RCD og jordingsforhold kontrolleres")

    spare_percent = (total_modules - modules_used) / total_modules * 100
    if spare_percent < 15:
        warnings.append("Lav reservekapacitet i tavlen - overvej større tavle for fremtidige udvidelser")

    return PanelConfiguration(
        name="Hovedtavle",
        panel_type="main",
        total_modules=total_modules,
        modules_used=modules_used,
        spare_capacity_percent=round_half_up(spare_percent),
        main_switch_rating_a=main_switch,
        phase_type=phase,
        rcd_groups=rcd_groups,
        circuits=circuits,
        surge_protection={"required": True, "type": "Type2", "modules": surge_modules},
        estimated_material_cost=sum(c["total_cost"] for c in cost_breakdown),
        estimated_time_seconds=estimated_time,
        cost_breakdown=cost_breakdown,
        compliance_notes=compliance_notes,
        warnings=warnings,
    )


# ============== Compliance ==============

def check_compliance(
    panel: PanelConfiguration,
    cable_sizing: List[CableSizingResult],
    rooms: List[Dict[str, Any]],
) -> ComplianceCheckResult:
    """Check a panel and its cables against the Danish installation rules"""
    issues: List[ComplianceIssue] = []

    def in_rcd_group(position: int, max_sensitivity: Optional[int] = None) -> bool:
        return any(
            position in g.circuits and (max_sensitivity is None or g.sensitivity_ma <= max_sensitivity)
            for g in panel.rcd_groups
        )

    # DS/HD 60364-4-41: RCD for socket outlets <= 32A
    for circuit in panel.circuits:
        if circuit.load_category == "socket_outlet" and circuit.rating_a <= 32:
            if circuit.breaker_type != "RCBO" and not in_rcd_group(circuit.position):
                issues.append(ComplianceIssue(
                    code="RCD_SOCKET",
                    severity="error",
                    standard_ref="DS/HD 60364-4-41 §411.3.3",
                    description=f'Stikkontaktkreds "{circuit.description}" mangler HPFI/RCD-beskyttelse',
                    affected_area=circuit.area,
                    recommendation="Tilføj HPFI/RCD 30mA beskyttelse til alle stikkontaktkredse ≤32A",
                ))

    # DS/HD 60364-7-701: wet rooms
    for room in rooms:
        if not room.get("is_wet_room"):
            continue
        for circuit in (c for c in panel.circuits if c.area == room.get("name")):
            has_rcd30 = (
                (circuit.breaker_type == "RCBO" and circuit.rcd_sensitivity_ma == 30)
                or in_rcd_group(circuit.position, 30)
            )
            if not has_rcd30:
                issues.append(ComplianceIssue(
                    code="RCD_WET_ROOM",
                    severity="error",
                    standard_ref="DS/HD 60364-7-701 §701.411.3.3",
                    description=f'Kreds "{circuit.description}" i vådrum "{room.get("name")}" mangler 30mA HPFI',
                    affected_area=room.get("name"),
                    recommendation="Alle kredse i vådrum skal have HPFI/RCD ≤30mA",
                ))

    # DS/HD 60364-7-722: EV chargers need type B
    for circuit in panel.circuits:
        if circuit.load_category == "ev_charger" and circuit.rcd_type != "B":
            issues.append(ComplianceIssue(
                code="EV_RCD_TYPE",
                severity="error",
                standard_ref="DS/HD 60364-7-722 §722.531.3.101",
                description=f'EV-lader kreds "{circuit.description}" kræver RCD Type B',
                affected_area=circuit.area,
                recommendation="EV-ladere med DC-fejlstrøm kræver RCD Type B (eller Type A med DC-fejlstrømsdetektering)",
            ))

    # Cable/breaker coordination
    for circuit in panel.circuits:
        max_current = get_max_current_for_cable(circuit.cable_cross_section, "B2", 3)
        if max_current < circuit.rating_a:
            issues.append(ComplianceIssue(
                code="CABLE_BREAKER_MISMATCH",
                severity="error",
                standard_ref="DS/HD 60364-4-43 §433.1",
                description=(
                    f"Kabel {circuit.cable_cross_section:g}mm² ({max_current:g}A) kan ikke beskyttes af "
                    f"{circuit.rating_a}A sikring"
                ),
                affected_area=circuit.area,
                recommendation=(
                    f"Brug minimum {select_cable_for_breaker(circuit.rating_a):g}mm² kabel "
                    "eller reducer sikringsstørrelsen"
                ),
            ))

    for cable in cable_sizing:
        if not cable.compliant:
            issues.append(ComplianceIssue(
                code="VOLTAGE_DROP",
                severity="warning",
                standard_ref="DS/HD 60364-5-52 §525",
                description=f"Spændingsfald {cable.voltage_drop_percent}% overstiger anbefalet grænse",
                recommendation="Øg kabeltværsnit eller reducer kabelafstand",
            ))

    if panel.phase_type == "3-phase":
        phase_loads = [0.0, 0.0, 0.0]
        for circuit in panel.circuits:
            phase_loads[circuit.phase - 1] += circuit.connected_load_w
        avg = sum(phase_loads) / 3
        if avg > 0:
            max_imbalance = max(abs(p - avg) / avg for p in phase_loads) * 100
            if max_imbalance > 25:
                issues.append(ComplianceIssue(
                    code="PHASE_IMBALANCE",
                    severity="warning",
                    standard_ref="DS/HD 60364-5-52",
                    description=f"Fasebelastning er {max_imbalance:.0f}% skæv - anbefalet max 20%",
                    recommendation="Omfordel kredsløb mellem faserne for bedre balance",
                ))

    if panel.spare_capacity_percent < 10:
        issues.append(ComplianceIssue(
            code="SPARE_CAPACITY",
            severity="warning",
            standard_ref="Generel god praksis",
            description=f"Kun {panel.spare_capacity_percent}% ledig kapacitet i tavlen",
            recommendation="Overvej større tavle for fremtidige udvidelser (min. 20% reserve anbefales)",
        ))

    if not panel.surge_protection.get("required"):
        issues.append(ComplianceIssue(
            code="SURGE_PROTECTION",
            severity="info",
            standard_ref="DS/HD 60364-4-44 §443",
            description="Overspændingsbeskyttelse er anbefalet for alle nye installationer",
            recommendation="Installer Type 2 overspændingsbeskyttelse i hovedtavlen",
        ))

    summary = {
        "errors": sum(1 for i in issues if i.severity == "error"),
        "warnings": sum(1 for i in issues if i.severity == "warning"),
        "info": sum(1 for i in issues if i.severity == "info"),
    }

    return ComplianceCheckResult(
        compliant=summary["errors"] == 0,
        issues=issues,
        summary=summary,
        standards_checked=list(STANDARDS_CHECKED),
    )


# ============== Full Project ==============

def estimate_cable_length(room: Optional[Dict[str, Any]], max_run: Optional[float] = None) -> float:
    """Routing estimate: room diagonal x2, 3m per floor, 3m panel entry"""
    if not room:
        return 15
    estimated = math.sqrt(room.get("area_m2", 0)) * 2 + room.get("floor", 0) * 3 + 3
    return min(estimated, max_run or 50)


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def calculate_electrical_project(
    rooms: List[Dict[str, Any]],
    supply_phase: str = "3-phase",
    building_type: str = "residential",
    is_renovation: bool = False,
    existing_main_fuse_a: Optional[float] = None,
    default_installation_method: str = "B2",
    max_cable_run_m: Optional[float] = None,
) -> ElectricalProjectResult:
    """Load analysis, panel, cable sizing and compliance for a whole project"""
    warnings: List[str] = []

    all_loads = [load for room in rooms for load in room.get("loads", [])]

    load_analysis = calculate_load(all_loads, supply_phase, building_type)
    warnings.extend(load_analysis.warnings)

    if existing_main_fuse_a:
        load_analysis.supply_adequate = load_analysis.total_demand_current_a <= existing_main_fuse_a
        if not load_analysis.supply_adequate:
            warnings.append(
                f"Nuværende hovedsikring {existing_main_fuse_a:g}A er utilstrækkelig. "
                f"Behov: {load_analysis.total_demand_current_a:.0f}A. Opgradering nødvendig."
            )

    panel = configure_panel_from_loads(rooms, supply_phase, is_renovation)
    warnings.extend(panel.warnings)

    rooms_by_name = {room.get("name"): room for room in rooms}

    # Individual circuits are single-phase 230V
    cable_lengths: List[float] = []
    cable_sizing: List[CableSizingResult] = []
    for circuit in panel.circuits:
        room = rooms_by_name.get(circuit.area)
        length = (room or {}).get("cable_distance_m") or estimate_cable_length(room, max_cable_run_m)
        cable_lengths.append(length)
        cable_sizing.append(calculate_cable_size(
            power_watts=circuit.connected_load_w,
            length_meters=length,
            voltage=230,
            phase="1-phase",
            power_factor=0.8 if circuit.load_category == "motor" else 1.0,
            installation_method=default_installation_method,
            core_count=3,
            cable_type=circuit.cable_type,
        ))

    compliance = check_compliance(panel, cable_sizing, rooms)
    warnings.extend(i.description for i in compliance.issues if i.severity == "warning")

    room_summaries = []
    for room in rooms:
        idxs = [i for i, c in enumerate(panel.circuits) if c.area == room.get("name")]
        room_summaries.append({
            "room_name": room.get("name"),
            "room_type": room.get("room_type"),
            "total_load_w": sum(panel.circuits[i].connected_load_w for i in idxs),
            "circuit_count": len(idxs),
            "cable_meters": round_half_up(sum(cable_lengths[i] for i in idxs), 1),
            "material_cost": round_half_up(sum(cable_sizing[i].total_cable_cost for i in idxs), 2),
            "labor_time_seconds": len(idxs) * CIRCUIT_LABOR_SECONDS,
        })

    total_material = panel.estimated_material_cost + sum(c.total_cable_cost for c in cable_sizing)
    total_labor = panel.estimated_time_seconds + sum(r["labor_time_seconds"] for r in room_summaries)

    return ElectricalProjectResult(
        load_analysis=load_analysis,
        panel=panel,
        cable_sizing=cable_sizing,
        compliance=compliance,
        room_summaries=room_summaries,
        total_cable_meters=round_half_up(sum(cable_lengths)),
        total_electrical_material_cost=round_half_up(total_material),
        total_electrical_labor_seconds=total_labor,
        warnings=_dedupe(warnings),
    )

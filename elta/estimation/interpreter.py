"""
Project Interpreter

Pattern-based reading of a free-text (Danish) project description:
building type, size and age, rooms, electrical points, cable and panel
estimates, complexity and risk factors, and a confidence score.
"""

import re
import time
import math
from datetime import datetime
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, List, Any

from elta.services.pricing import round_half_up


INTERPRETER_MODEL = "local-pattern-v1"


# ============== Detection Patterns ==============

BUILDING_TYPE_PATTERNS = [
    ("house", [
        r"\b(hus|villa|parcelhus|rækkehus|bungalow)\b",
        r"\b(enfamiliehus|enfamilies|sommerhus)\b",
    ]),
    ("apartment", [
        r"\b(lejlighed|ejerlejlighed|andel|etage)\b",
        r"\b(penthouse|stueetage)\b",
    ]),
    ("commercial", [
        r"\b(erhverv|kontor|butik|restaurant|cafe)\b",
        r"\b(klinik|salon|værksted)\b",
    ]),
    ("industrial", [
        r"\b(industri|lager|fabrik|produktion|hal)\b",
    ]),
]

SIZE_PATTERNS = [
    r"(\d+)\s*m2",
    r"(\d+)\s*m²",
    r"(\d+)\s*kvm",
    r"(\d+)\s*kvadratmeter",
]

YEAR_PATTERN = r"\b(19\d{2}|20[0-2]\d)\b"

AGE_KEYWORDS = [
    (r"\bgammelt?\s*(hus|bygning|ejendom)\b", 60),
    (r"\bældre\s*(hus|bygning|ejendom)\b", 50),
    (r"\bny(t|bygger?i?)\b", 5),
]

ROOM_PATTERNS = [
    ("kitchen", [r"\bkøkken\b", r"\bkøkkenalrum\b"],
     {"outlets": 8, "switches": 2, "spots": 6, "ceiling_lights": 1}),
    ("living", [r"\bstue\b", r"\bopholdsrum\b", r"\balrum\b"],
     {"outlets": 6, "switches": 2, "spots": 4, "ceiling_lights": 1, "tv_outlets": 1}),
    ("bedroom", [r"\bsoveværelse\b", r"\bværelse\b", r"\bsoverum\b"],
     {"outlets": 4, "switches": 1, "ceiling_lights": 1}),
    ("bathroom", [r"\bbadeværelse\b", r"\bbad\b", r"\btoilet\b", r"\bbryggers\b"],
     {"outlets": 2, "switches": 1, "spots": 3}),
    ("office", [r"\bkontor\b", r"\barbejdsværelse\b", r"\bhjemmekontor\b"],
     {"outlets": 6, "switches": 1, "ceiling_lights": 1, "data_outlets": 2}),
    ("utility", [r"\bbryggers\b", r"\bvaskerum\b", r"\bteknik\b"],
     {"outlets": 3, "switches": 1, "ceiling_lights": 1, "power_16a": 1}),
    ("garage", [r"\bgarage\b", r"\bcarport\b"],
     {"outlets": 2, "switches": 1, "ceiling_lights": 2, "power_16a": 1}),
    ("outdoor", [r"\budendørs\b", r"\bterrasse\b", r"\bhave\b", r"\baltan\b"],
     {"outdoor_lights": 4, "outlets": 2}),
]

ELECTRICAL_PATTERNS = [
    ("outlets", r"(\d+)\s*(stk\.?\s*)?(stikkontakt|stik)\b"),
    ("double_outlets", r"(\d+)\s*(stk\.?\s*)?(dobbelt\s*stik|dobbelt\s*kontakt)\b"),
    ("switches", r"(\d+)\s*(stk\.?\s*)?(afbryder|kontakt)\b"),
    ("spots", r"(\d+)\s*(stk\.?\s*)?(spot|downlight|indbygning)"),
    ("ceiling_lights", r"(\d+)\s*(stk\.?\s*)?(loftlampe|pendel|lampe)\b"),
    ("outdoor_lights", r"(\d+)\s*(stk\.?\s*)?(udendørs|udelampe|facade)\s*lampe"),
    ("ev_charger", r"\b(elbil|lader|ladeboks|ev\s*charger)\b"),
    ("power_16a", r"(\d+)\s*(stk\.?\s*)?16\s*a\b"),
    ("power_32a", r"(\d+)\s*(stk\.?\s*)?32\s*a\b"),
    ("data_outlets", r"(\d+)\s*(stk\.?\s*)?(data|netværk|ethernet)\b"),
]

EV_MENTION_PATTERN = r"\b(elbil|lader|ladeboks|ev)\b"

# (code, patterns, multiplier, category)
COMPLEXITY_PATTERNS = [
    ("concrete_walls", [r"\bbeton\b", r"\bbetonvæg\b"], 1.40, "material"),
    ("brick_walls", [r"\bmursten\b", r"\bmur\b", r"\btegl\b"], 1.25, "material"),
    ("drywall", [r"\bgips\b", r"\bgipsvæg\b"], 0.90, "material"),
    ("old_building", [r"\bgammel\b", r"\bældre\b", r"\b19[0-5]\d\b"], 1.35, "building"),
    ("new_construction", [r"\bnybygg\b", r"\bnyt\s*hus\b"], 0.85, "building"),
    ("high_ceiling", [r"\bhøj[te]?\s*loft\b", r"\b[34]\s*meter\b"], 1.20, "access"),
    ("attic", [r"\btag\s*etage\b", r"\bloft\b", r"\bskrå"], 1.15, "access"),
    ("crawl_space", [r"\bkrybekælder\b", r"\bkravle\b"], 1.30, "access"),
    ("panel_upgrade", [r"\b(ny|udskift|opgradér?)\s*tavle\b", r"\beltavle\b"], 1.25, "electrical"),
]

RISK_PATTERNS = [
    {
        "code": "old_wiring",
        "patterns": [r"\bgammel\s*(el|installation)\b", r"\bældre\s*(el|ledning)\b"],
        "severity": "high",
        "type": "electrical",
        "title": "Ældre installation",
        "description": "Eksisterende installation kan kræve udskiftning. Forbehold for uforudsete udfordringer.",
    },
    {
        "code": "unknown_scope",
        "patterns": [r"\bca\.?\b", r"\bcirka\b", r"\bomkring\b", r"\bved\s*ikke\b"],
        "severity": "medium",
        "type": "scope",
        "title": "Ukendt omfang",
        "description": "Præcist omfang ukendt. Anbefaler besigtigelse før endelig pris.",
    },
    {
        "code": "panel_capacity",
        "patterns": [r"\bfuldudnyttet\b", r"\bikke\s*plads\b", r"\bmange\s*grupper\b"],
        "severity": "high",
        "type": "electrical",
        "title": "Tavlekapacitet",
        "description": "Eksisterende tavle kan være utilstrækkelig. Mulig tavleudvidelse nødvendig.",
    },
    {
        "code": "grounding",
        "patterns": [r"\bjording\b", r"\bHFI\b", r"\bfejlstrøm"],
        "severity": "high",
        "type": "safety",
        "title": "Jording/HFI",
        "description": "Jordings- eller fejlstrømsforhold skal verificeres. Kan kræve opgradering.",
    },
    {
        "code": "outdoor_work",
        "patterns": [r"\budendørs\b", r"\bhave\b", r"\bfacade\b"],
        "severity": "low",
        "type": "timeline",
        "title": "Udendørs arbejde",
        "description": "Udendørs arbejde er vejrafhængigt. Tidsplan kan påvirkes af vejrforhold.",
    },
    {
        "code": "renovation",
        "patterns": [r"\brenovering\b", r"\bombygning\b", r"\bistandsæt"],
        "severity": "medium",
        "type": "scope",
        "title": "Renoveringsarbejde",
        "description": "Renoveringsarbejde kan afsløre skjulte forhold. Forbehold for uforudsete udgifter.",
    },
]

RISK_SEVERITY_SCORES = {"low": 1, "medium": 2, "high": 3, "critical": 4}


# ============== Result ==============

@dataclass
class ProjectInterpretation:
    raw_description: str
    building_type: str
    building_size_m2: Optional[int]
    building_age_years: Optional[int]
    rooms: List[Dict[str, str]]
    electrical_points: Dict[str, int]
    cable_requirements: Dict[str, int]
    panel_requirements: Dict[str, Any]
    complexity_score: int
    complexity_factors: List[Dict[str, Any]]
    risk_score: int
    risk_factors: List[Dict[str, Any]]
    ai_model: str = INTERPRETER_MODEL
    ai_confidence: float = 0
    interpretation_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InterpretationResult:
    interpretation: ProjectInterpretation
    confidence: float
    warnings: List[str] = field(default_factory=list)


# ============== Detection ==============

def _search(pattern: str, text: str) -> Optional[re.Match]:
    return re.search(pattern, text, re.IGNORECASE)


def detect_building_type(text: str) -> str:
    for building_type, patterns in BUILDING_TYPE_PATTERNS:
        if any(_search(p, text) for p in patterns):
            return building_type
    return "unknown"


def detect_building_size(text: str) -> Optional[int]:
    for pattern in SIZE_PATTERNS:
        match = _search(pattern, text)
        if match:
            return int(match.group(1))
    return None


def detect_building_age(text: str, current_year: Optional[int] = None) -> Optional[int]:
    """Age from an explicit year, else from keywords like 'gammelt hus'"""
    match = re.search(YEAR_PATTERN, text)
    if match:
        return (current_year or datetime.now().year) - int(match.group(1))

    for pattern, age in AGE_KEYWORDS:
        if _search(pattern, text):
            return age
    return None


def detect_rooms(text: str) -> List[Dict[str, str]]:
    rooms = []

    for room_type, patterns, _defaults in ROOM_PATTERNS:
        for pattern in patterns:
            if not _search(pattern, text):
                continue
            quantity = _search(r"(\d+)\s*" + pattern, text)
            count = int(quantity.group(1)) if quantity else 1
            for i in range(count):
                name = f"{room_type}_{i + 1}" if room_type == "bedroom" and count > 1 else room_type
                rooms.append({"name": name, "type": room_type})
            break

    if not rooms:
        rooms.append({"name": "main", "type": "other"})
    return rooms


def detect_electrical_points(text: str, rooms: List[Dict[str, str]]) -> Dict[str, int]:
    """
    Explicit counts from the text; when fewer than 10 points are found the
    room defaults are added on top.
    """
    points: Dict[str, int] = {}

    for code, pattern in ELECTRICAL_PATTERNS:
        match = _search(pattern, text)
        if not match:
            continue
        value = match.group(1)
        if value and value.isdigit():
            points[code] = points.get(code, 0) + int(value)
        elif code == "ev_charger":
            points[code] = 1

    if _search(EV_MENTION_PATTERN, text) and not points.get("ev_charger"):
        points["ev_charger"] = 1

    if sum(points.values()) < 10:
        defaults_by_type = {room_type: defaults for room_type, _p, defaults in ROOM_PATTERNS}
        for room in rooms:
            for key, value in defaults_by_type.get(room["type"], {}).items():
                points[key] = points.get(key, 0) + value

    return points


def estimate_cable_requirements(points: Dict[str, int], size_m2: Optional[int]) -> Dict[str, int]:
    """Cable metres per type; light and outlet runs scale with building size"""
    size_factor = (size_m2 or 100) / 100

    light_points = points.get("spots", 0) + points.get("ceiling_lights", 0) + points.get("outdoor_lights", 0)
    power_points = points.get("outlets", 0) + points.get("double_outlets", 0)
    heavy_points = points.get("power_16a", 0) + points.get("power_32a", 0) + points.get("ev_charger", 0)

    return {
        "nym_1_5mm": round_half_up(light_points * 8 * size_factor),
        "nym_2_5mm": round_half_up(power_points * 6 * size_factor),
        "nym_4mm": round_half_up(heavy_points * 10),
        "nym_6mm": 15 if points.get("ev_charger") else 0,
        "nym_10mm": round_half_up(points["power_32a"] * 12) if points.get("power_32a") else 0,
        "outdoor_cable": round_half_up(points.get("outdoor_lights", 0) * 12),
        "data_cable": round_half_up(points.get("data_outlets", 0) * 10),
    }


def estimate_panel_requirements(points: Dict[str, int], building_age: Optional[int]) -> Dict[str, Any]:
    light_groups = math.ceil((points.get("spots", 0) + points.get("ceiling_lights", 0)) / 8)
    outlet_groups = math.ceil((points.get("outlets", 0) + points.get("double_outlets", 0)) / 6)
    heavy_groups = points.get("power_16a", 0) + points.get("power_32a", 0) + points.get("ev_charger", 0)
    data_groups = 1 if points.get("data_outlets") else 0

    # Two spare groups
    required_groups = light_groups + outlet_groups + heavy_groups + data_groups + 2

    required_amperage = 25
    if points.get("ev_charger"):
        required_amperage = max(required_amperage, 32)
    if points.get("power_32a"):
        required_amperage = max(required_amperage, 50)
    if required_groups > 12:
        required_amperage = max(required_amperage, 40)

    return {
        "upgrade_needed": required_groups > 10 or (building_age or 0) > 40,
        "required_groups": required_groups,
        "required_amperage": required_amperage,
        "new_panel_needed": required_groups > 16 or required_amperage > 40,
    }


def detect_complexity_factors(text: str) -> List[Dict[str, Any]]:
    factors = []
    for code, patterns, multiplier, category in COMPLEXITY_PATTERNS:
        for pattern in patterns:
            match = _search(pattern, text)
            if match:
                factors.append({
                    "code": code,
                    "name": code.replace("_", " "),
                    "category": category,
                    "multiplier": multiplier,
                    "detected_from": match.group(0),
                })
                break
    return factors


def calculate_complexity_score(factors: List[Dict[str, Any]]) -> int:
    """1-5 from the average multiplier, 3 when nothing was detected"""
    if not factors:
        return 3

    avg = sum(f["multiplier"] for f in factors) / len(factors)
    if avg <= 0.90:
        return 1
    if avg <= 1.00:
        return 2
    if avg <= 1.15:
        return 3
    if avg <= 1.30:
        return 4
    return 5


def detect_risk_factors(
    text: str,
    building_age_years: Optional[int],
    panel_requirements: Dict[str, Any],
) -> List[Dict[str, Any]]:
    risks = []

    for risk in RISK_PATTERNS:
        if any(_search(p, text) for p in risk["patterns"]):
            risks.append({
                "type": risk["type"],
                "code": risk["code"],
                "title": risk["title"],
                "description": risk["description"],
                "severity": risk["severity"],
            })

    if (building_age_years or 0) > 50 and not any(r["code"] == "old_wiring" for r in risks):
        risks.append({
            "type": "electrical",
            "code": "old_wiring_inferred",
            "title": "Ældre bygning",
            "description": "Bygningen er over 50 år gammel. Eksisterende installation bør gennemgås.",
            "severity": "medium",
        })

    if panel_requirements.get("new_panel_needed"):
        risks.append({
            "type": "electrical",
            "code": "panel_upgrade_required",
            "title": "Ny tavle nødvendig",
            "description": "Omfanget kræver ny eller udvidet eltavle.",
            "severity": "medium",
        })

    if len(text.split()) < 10:
        risks.append({
            "type": "scope",
            "code": "minimal_description",
            "title": "Begrænset beskrivelse",
            "description": "Projektbeskrivelsen er kort. Anbefaler uddybning eller besigtigelse.",
            "severity": "medium",
        })

    return risks


def calculate_risk_score(risks: List[Dict[str, Any]]) -> int:
    if not risks:
        return 1

    avg = sum(RISK_SEVERITY_SCORES[r["severity"]] for r in risks) / len(risks)
    if avg <= 1.5:
        return 1
    if avg <= 2.0:
        return 2
    if avg <= 2.5:
        return 3
    if avg <= 3.0:
        return 4
    return 5


def calculate_confidence(interpretation: ProjectInterpretation) -> float:
    score = 0.5

    if interpretation.building_type != "unknown":
        score += 0.1
    if interpretation.building_size_m2:
        score += 0.1
    if len(interpretation.rooms) > 1:
        score += 0.1
    if len(interpretation.electrical_points) > 3:
        score += 0.1
    if interpretation.complexity_factors:
        score += 0.05
    if interpretation.risk_factors:
        score += 0.05

    return min(round(score, 2), 0.95)


def interpret_project(description: str, current_year: Optional[int] = None) -> InterpretationResult:
    """Interpret a project description"""
    started = time.monotonic()
    warnings = []
    text = description.strip()

    if len(text) < 10:
        warnings.append("Projektbeskrivelsen er meget kort. Resultatet kan være upræcist.")

    building_type = detect_building_type(text)
    building_size = detect_building_size(text)
    building_age = detect_building_age(text, current_year)
    rooms = detect_rooms(text)
    points = detect_electrical_points(text, rooms)
    panel_requirements = estimate_panel_requirements(points, building_age)
    complexity_factors = detect_complexity_factors(text)
    risk_factors = detect_risk_factors(text, building_age, panel_requirements)

    interpretation = ProjectInterpretation(
        raw_description=description,
        building_type=building_type,
        building_size_m2=building_size,
        building_age_years=building_age,
        rooms=rooms,
        electrical_points=points,
        cable_requirements=estimate_cable_requirements(points, building_size),
        panel_requirements=panel_requirements,
        complexity_score=calculate_complexity_score(complexity_factors),
        complexity_factors=complexity_factors,
        risk_score=calculate_risk_score(risk_factors),
        risk_factors=risk_factors,
        interpretation_time_ms=int((time.monotonic() - started) * 1000),
    )

    confidence = calculate_confidence(interpretation)
    interpretation.ai_confidence = confidence

    if building_type == "unknown":
        warnings.append("Bygningstype kunne ikke detekteres. Antager standard bolig.")
    if not building_size:
        warnings.append("Bygningsstørrelse ikke fundet. Bruger standardestimater.")

    return InterpretationResult(interpretation=interpretation, confidence=confidence, warnings=warnings)

"""
Project Risk Analysis

Risk rules over an interpreted project (and optionally its price):
overall 1-5 score, inspection flag, offer reservations for the customer
and internal notes for staff.
"""

import re
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, List, Any, Callable

from elta.estimation.interpreter import ProjectInterpretation
from elta.estimation.calculation_engine import PriceCalculation


@dataclass
class ProjectRiskRule:
    code: str
    check: Callable[..., bool]
    type: str
    title: str
    description: str
    severity: str
    offer_text: Optional[str] = None
    internal_note: Optional[str] = None
    recommendation: Optional[str] = None

    def as_risk(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
        }


@dataclass
class ProjectRiskAnalysis:
    risks: List[Dict[str, Any]]
    overall_score: int
    summary: str
    offer_reservations: List[str] = field(default_factory=list)
    internal_notes: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    requires_inspection: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _point_total(i: ProjectInterpretation) -> int:
    p = i.electrical_points
    keys = ("outlets", "double_outlets", "switches", "spots", "ceiling_lights", "outdoor_lights")
    return sum(p.get(k, 0) for k in keys)


def _age(i: ProjectInterpretation) -> int:
    return i.building_age_years or 0


PROJECT_RISK_RULES: List[ProjectRiskRule] = [
    # Building age
    ProjectRiskRule(
        code="old_building_pre_1970",
        check=lambda i: _age(i) > 55,
        type="electrical",
        title="Ældre bygning (før 1970)",
        description="Bygningen er fra før 1970. El-installation kan være forældet og kræve udskiftning.",
        severity="high",
        offer_text="OBS: Ældre installation. Forbehold for nødvendige opgraderinger af eksisterende el.",
        internal_note="RISIKO: Bygning før 1970 - check for aluminium-ledninger, manglende jord, og forældet tavle.",
        recommendation="Anbefal grundig besigtigelse før endelig pris.",
    ),
    ProjectRiskRule(
        code="old_building_1970_1990",
        check=lambda i: 35 <= _age(i) <= 55,
        type="electrical",
        title="Ældre bygning (1970-1990)",
        description="Bygningen er 35-55 år gammel. Eksisterende installation bør gennemgås.",
        severity="medium",
        offer_text="Bemærk: Eksisterende installation gennemgås ved opstart. Eventuelle afvigelser aftales.",
        internal_note="Check: Installation fra 1970-90 periode. Ofte utilstrækkelig kapacitet.",
    ),
    # Panel
    ProjectRiskRule(
        code="panel_upgrade_needed",
        check=lambda i: i.panel_requirements.get("upgrade_needed") is True,
        type="electrical",
        title="Tavleudvidelse nødvendig",
        description="Projektets omfang kræver udvidelse af eksisterende eltavle.",
        severity="medium",
        offer_text="Inkl. nødvendig tavleudvidelse for at rumme nye grupper.",
        internal_note="Husk at inkludere tavlearbejde i pris. Check kapacitet ved besigtigelse.",
    ),
    ProjectRiskRule(
        code="new_panel_needed",
        check=lambda i: i.panel_requirements.get("new_panel_needed") is True,
        type="electrical",
        title="Ny eltavle nødvendig",
        description="Eksisterende tavle er utilstrækkelig. Ny tavle skal installeres.",
        severity="high",
        offer_text="OBS: Ny eltavle er inkluderet i tilbuddet. Eksisterende tavle udskiftes.",
        internal_note="VIGTIGT: Ny tavle påkrævet. Check ampere-behov og net-tilslutning.",
        recommendation="Verificer med netselskab om hovedsikring er tilstrækkelig.",
    ),
    # Scope
    ProjectRiskRule(
        code="large_scope",
        check=lambda i: _point_total(i) > 50,
        type="scope",
        title="Stort projekt",
        description="Projektet har mere end 50 elpunkter. Større projekter har højere kompleksitet.",
        severity="medium",
        internal_note="Stort projekt (50+ punkter). Overvej faseopdeling og ekstra buffer.",
        recommendation="Opdel evt. i etaper for bedre risikostyring.",
    ),
    ProjectRiskRule(
        code="minimal_description",
        check=lambda i: len(i.raw_description.split()) < 15,
        type="scope",
        title="Begrænset projektbeskrivelse",
        description="Projektbeskrivelsen er kort. Det faktiske omfang kan afvige.",
        severity="medium",
        offer_text="Tilbud baseret på oplyst omfang. Ændringer faktureres efter regning.",
        internal_note="Meget kort beskrivelse. Indhent flere detaljer før endelig pris.",
        recommendation="Kontakt kunde for uddybning eller aftal besigtigelse.",
    ),
    ProjectRiskRule(
        code="vague_quantities",
        check=lambda i: bool(re.search(r"\bca\.?\b|\bcirka\b|\bomkring\b", i.raw_description, re.IGNORECASE)),
        type="scope",
        title="Upræcise mængder",
        description="Beskrivelsen indeholder \"ca.\" eller \"omkring\". Præcist omfang ukendt.",
        severity="low",
        offer_text="Endelige mængder afklares ved opstart. Afvigelser faktureres efter aftale.",
        internal_note="Upræcise mængder i beskrivelse. Afstem ved besigtigelse.",
    ),
    # Complexity
    ProjectRiskRule(
        code="high_complexity",
        check=lambda i: i.complexity_score >= 4,
        type="scope",
        title="Høj kompleksitet",
        description="Projektet har høj kompleksitet grundet bygningstype eller adgangsforhold.",
        severity="medium",
        internal_note="Kompleksitetsscore 4+. Ekstra tid allokeret i beregning.",
    ),
    ProjectRiskRule(
        code="concrete_walls",
        check=lambda i: any(f["code"] == "concrete_walls" for f in i.complexity_factors),
        type="structural",
        title="Betonkonstruktion",
        description="Arbejde i beton er mere tidskrævende og kræver specielt udstyr.",
        severity="low",
        offer_text="Bemærk: Arbejde i betonkonstruktion. Ekstra tid for boring/fræsning indregnet.",
        internal_note="Beton påvist. Medbring korrekt boreudstyr og forvent længere tid.",
    ),
    # Safety
    ProjectRiskRule(
        code="grounding_mentioned",
        check=lambda i: bool(re.search(r"\bjording\b|\bjord\b|\bHFI\b", i.raw_description, re.IGNORECASE)),
        type="safety",
        title="Jordingsproblematik",
        description="Jording er nævnt i beskrivelsen. Eksisterende jordforhold skal verificeres.",
        severity="high",
        offer_text="OBS: Jordforhold verificeres ved opstart. Forbehold for nødvendig opgradering.",
        internal_note="SIKKERHED: Jording nævnt. Udfør måling af jordmodstand ved opstart.",
        recommendation="Udfør el-eftersyn før prisgaranti.",
    ),
    ProjectRiskRule(
        code="outdoor_work",
        check=lambda i: i.electrical_points.get("outdoor_lights", 0) > 3,
        type="timeline",
        title="Væsentligt udendørs arbejde",
        description="Projektet inkluderer betydeligt udendørs arbejde. Vejrafhængigt.",
        severity="low",
        offer_text="Udendørs arbejde er vejrafhængigt. Tidsplan kan påvirkes af vejrforhold.",
        internal_note="Planlæg udendørs arbejde efter vejrudsigt.",
    ),
    # Power / EV
    ProjectRiskRule(
        code="ev_charger",
        check=lambda i: i.electrical_points.get("ev_charger", 0) > 0,
        type="electrical",
        title="Elbillader installation",
        description="Elbillader kræver ofte tavleudvidelse og eventuelt ny hovedsikring.",
        severity="medium",
        offer_text="Elbillader-installation. Forbehold for evt. opgradering af hovedsikring.",
        internal_note="EV-lader: Check hovedsikring og kabelføring til ladepunkt.",
        recommendation="Kontakt netselskab vedr. kapacitet hvis 11kW+ lader.",
    ),
    ProjectRiskRule(
        code="heavy_power",
        check=lambda i: i.electrical_points.get("power_32a", 0) > 1,
        type="electrical",
        title="Kraftinstallation",
        description="Flere 32A installationer. Kræver særlig opmærksomhed på kapacitet.",
        severity="medium",
        internal_note="Flere 32A punkter. Verificer tavlekapacitet.",
    ),
]

PRICE_RISK_RULES: List[ProjectRiskRule] = [
    ProjectRiskRule(
        code="low_margin",
        check=lambda i, p: (p.margin_percentage or 25) < 20,
        type="pricing",
        title="Lav margin",
        description="Marginprocenten er under 20%. Risiko for utilstrækkelig dækning.",
        severity="high",
        internal_note="ADVARSEL: Margin under 20%. Overvej at øge eller afklare med ledelse.",
        recommendation="Øg margin til minimum 20% eller få godkendelse.",
    ),
    ProjectRiskRule(
        code="small_project",
        check=lambda i, p: (p.total_price or 0) < 5000,
        type="pricing",
        title="Lille projekt",
        description="Projektet er under 5.000 kr. Overvej om det er rentabelt.",
        severity="low",
        internal_note="Lille projekt. Overvej minimumspris/kørselsgebyr.",
    ),
]

# Severity doubles as its own weight
SEVERITY_SCORES = {"low": 1, "medium": 2, "high": 3, "critical": 5}

SCORE_DESCRIPTIONS = {
    1: "Lavt risikoniveau",
    2: "Normalt risikoniveau",
    3: "Moderat risikoniveau",
    4: "Forhøjet risikoniveau",
    5: "Højt risikoniveau",
}


def calculate_overall_risk_score(risks: List[Dict[str, Any]]) -> int:
    if not risks:
        return 1

    scores = [SEVERITY_SCORES[r["severity"]] for r in risks]
    avg = sum(s * s for s in scores) / sum(scores)

    if avg <= 1.2:
        return 1
    if avg <= 1.8:
        return 2
    if avg <= 2.5:
        return 3
    if avg <= 3.5:
        return 4
    return 5


def generate_risk_summary(risks: List[Dict[str, Any]], score: int) -> str:
    if not risks:
        return "Ingen væsentlige risici identificeret. Standard projekt."

    counts = [
        (sum(1 for r in risks if r["severity"] == "critical"), "kritiske"),
        (sum(1 for r in risks if r["severity"] == "high"), "høje"),
        (sum(1 for r in risks if r["severity"] == "medium"), "moderate"),
    ]
    parts = [f"{count} {label}" for count, label in counts if count > 0]
    risk_text = ", ".join(parts) + " risici" if parts else "lave risici"

    return f"{SCORE_DESCRIPTIONS[score]} ({len(risks)} fund: {risk_text})."


def analyze_risks(
    interpretation: ProjectInterpretation,
    price: Optional[PriceCalculation] = None
) -> ProjectRiskAnalysis:
    risks: List[Dict[str, Any]] = []
    offer_reservations: List[str] = []
    internal_notes: List[str] = []
    recommendations: List[str] = []

    for rule in PROJECT_RISK_RULES:
        if rule.check(interpretation):
            risks.append(rule.as_risk())
            if rule.offer_text:
                offer_reservations.append(rule.offer_text)
            if rule.internal_note:
                internal_notes.append(rule.internal_note)
            if rule.recommendation:
                recommendations.append(rule.recommendation)

    # Price rules never produce customer-facing reservations
    if price is not None:
        for rule in PRICE_RISK_RULES:
            if rule.check(interpretation, price):
                risks.append(rule.as_risk())
                if rule.internal_note:
                    internal_notes.append(rule.internal_note)
                if rule.recommendation:
                    recommendations.append(rule.recommendation)

    known_codes = {r["code"] for r in risks}
    for risk in interpretation.risk_factors:
        if risk["code"] not in known_codes:
            risks.append(risk)
            known_codes.add(risk["code"])

    overall_score = calculate_overall_risk_score(risks)
    requires_inspection = (
        any(r["severity"] in ("critical", "high") for r in risks)
        or overall_score >= 4
        or interpretation.ai_confidence < 0.6
    )

    return ProjectRiskAnalysis(
        risks=risks,
        overall_score=overall_score,
        summary=generate_risk_summary(risks, overall_score),
        offer_reservations=offer_reservations,
        internal_notes=internal_notes,
        recommendations=recommendations,
        requires_inspection=requires_inspection,
    )


def generate_offer_reservations(analysis: ProjectRiskAnalysis) -> str:
    if not analysis.offer_reservations:
        return "Tilbuddet er baseret på de oplyste forhold. Uforudsete forhold faktureres efter regning."

    lines = ["Forbehold:", ""]
    lines += [f"• {r}" for r in analysis.offer_reservations]
    lines += ["", "Generelt forbehold for uforudsete forhold."]
    return "\n".join(lines)


def generate_internal_notes(analysis: ProjectRiskAnalysis) -> str:
    if not analysis.internal_notes:
        return "Ingen særlige bemærkninger."
    return "\n\n".join(analysis.internal_notes)

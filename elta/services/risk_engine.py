"""
Offer Risk & OBS Engine

Rule-based detection of technical, safety, time, margin, access and scope
risks for an offer. Produces internal risks, customer-visible OBS points
and margin guidance.

Input is a dict with any of:
    calculation_id, building_type, building_age_years, has_bathroom_work,
    has_outdoor_work, component_count, rooms, margin_percentage, total_price
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, List, Any, Callable

from elta.models.enums import RiskSeverity


@dataclass
class RiskRule:
    code: str
    name: str
    category: str  # technical, safety, time, margin, access, scope, legal
    severity: str
    check: Callable[[Dict[str, Any]], bool]
    title: str
    description: str
    recommendation: Optional[str]
    show_to_customer: bool
    customer_message: Optional[str] = None


@dataclass
class RiskAssessment:
    category: str
    severity: str
    title: str
    description: str
    detection_rule: str
    confidence: float
    show_to_customer: bool
    recommendation: Optional[str] = None
    customer_message: Optional[str] = None
    calculation_id: Optional[str] = None


@dataclass
class RiskAnalysisResult:
    risks: List[RiskAssessment]
    overall_risk_level: str  # low, medium, high
    customer_visible_risks: List[RiskAssessment] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _rooms(ctx: Dict[str, Any]) -> int:
    return len(ctx.get("rooms") or [])


def _margin(ctx: Dict[str, Any]) -> float:
    value = ctx.get("margin_percentage")
    return 100 if value is None else value


RISK_RULES: List[RiskRule] = [
    # Technical
    RiskRule(
        code="RISK_OLD_WIRING",
        name="Gammel el-installation",
        category="technical",
        severity=RiskSeverity.MEDIUM.value,
        check=lambda ctx: (ctx.get("building_age_years") or 0) > 40,
        title="Potentielt forældet el-installation",
        description="Bygningen er over 40 år gammel. El-installationen kan være forældet og kræve ekstra vurdering.",
        recommendation="Anbefales: Gennemgå eltavle og eksisterende installation før arbejdet påbegyndes. "
                       "Overvej at tilbyde eltjek som tillægsydelse.",
        show_to_customer=True,
        customer_message="Ældre installation kan kræve ekstra gennemgang for at sikre kompatibilitet.",
    ),
    RiskRule(
        code="RISK_VERY_OLD",
        name="Meget gammel bygning",
        category="technical",
        severity=RiskSeverity.HIGH.value,
        check=lambda ctx: (ctx.get("building_age_years") or 0) > 60,
        title="Meget gammel el-installation",
        description="Bygningen er over 60 år gammel. Høj sandsynlighed for forældet installation, "
                    "potentielt stofledninger eller aluminium.",
        recommendation="KRAV: Grundig inspektion af eksisterende installation. Muligt behov for delvis eller "
                       "hel omkabling. Overvej ekstra buffer i tilbuddet.",
        show_to_customer=True,
        customer_message="Ældre installation kræver grundig vurdering. Der kan opstå behov for yderligere arbejde.",
    ),
    RiskRule(
        code="RISK_BATHROOM_IP",
        name="Vådrums-installation",
        category="safety",
        severity=RiskSeverity.MEDIUM.value,
        check=lambda ctx: ctx.get("has_bathroom_work") is True,
        title="Vådrums IP-krav",
        description="Arbejde i badeværelse kræver IP44/IP65 materiel og særlige installationsregler.",
        recommendation="Sikr at alle komponenter opfylder vådrumsklassificering. Verificér installationszoner.",
        show_to_customer=True,
        customer_message="Vådrumsinstallation udføres efter gældende sikkerhedsregler med godkendte komponenter.",
    ),
    RiskRule(
        code="RISK_OUTDOOR",
        name="Udendørs installation",
        category="technical",
        severity=RiskSeverity.LOW.value,
        check=lambda ctx: ctx.get("has_outdoor_work") is True,
        title="Udendørs installation",
        description="Udendørs arbejde kræver vejrbestandigt materiel og kan påvirkes af vejrforhold.",
        recommendation="Planlæg med hensyn til vejret. Sikr IP65+ klassificerede komponenter.",
        show_to_customer=True,
        customer_message="Udendørs installation med vejrbestandigt materiel.",
    ),
    RiskRule(
        code="RISK_COMMERCIAL",
        name="Erhvervsinstallation",
        category="legal",
        severity=RiskSeverity.MEDIUM.value,
        check=lambda ctx: ctx.get("building_type") in ("commercial", "industrial"),
        title="Erhvervs/industri krav",
        description="Erhvervs- og industriinstallationer har særlige krav til dokumentation og sikkerhed.",
        recommendation="Verificér krav til nødbelysning, brandalarmer og el-attest. Overvej højere sikkerhedsmargin.",
        show_to_customer=True,
        customer_message="Erhvervsinstallation udføres efter gældende lovkrav med fuld dokumentation.",
    ),

    # Time
    RiskRule(
        code="RISK_LARGE_PROJECT",
        name="Stort projekt",
        category="time",
        severity=RiskSeverity.LOW.value,
        check=lambda ctx: (ctx.get("component_count") or 0) > 20,
        title="Stort projekt - mange komponenter",
        description="Projektet indeholder mange komponenter, hvilket øger kompleksiteten.",
        recommendation="Overvej at opdele i faser. Indregn ekstra koordineringstid.",
        show_to_customer=False,
    ),
    RiskRule(
        code="RISK_COMPLEX_PROJECT",
        name="Komplekst projekt",
        category="time",
        severity=RiskSeverity.MEDIUM.value,
        check=lambda ctx: (ctx.get("component_count") or 0) > 40,
        title="Komplekst projekt - høj komponent-tæthed",
        description="Over 40 komponenter indikerer et komplekst projekt med højere risiko for forsinkelser.",
        recommendation="Anbefales: Buffer på 15-20% ekstra tid. Overvej faseopdeling med delleverancer.",
        show_to_customer=True,
        customer_message="Projektet opdeles eventuelt i faser for optimal kvalitet.",
    ),
    RiskRule(
        code="RISK_MULTI_ROOM",
        name="Fler-rums projekt",
        category="time",
        severity=RiskSeverity.INFO.value,
        check=lambda ctx: _rooms(ctx) > 3,
        title="Arbejde i flere rum",
        description="Projektet spænder over flere rum, hvilket kan kræve ekstra koordinering.",
        recommendation="Planlæg rum-for-rum arbejdsflow. Koordinér med evt. andre håndværkere.",
        show_to_customer=False,
    ),

    # Margin
    RiskRule(
        code="RISK_LOW_MARGIN",
        name="Lav margin",
        category="margin",
        severity=RiskSeverity.HIGH.value,
        check=lambda ctx: _margin(ctx) < 20,
        title="Lav fortjenestemargin",
        description="Marginen er under 20%, hvilket efterlader lille buffer til uforudsete udgifter.",
        recommendation="ADVARSEL: Overvej at hæve prisen eller reducere scope. Under 20% margin er risikabelt.",
        show_to_customer=False,
    ),
    RiskRule(
        code="RISK_VERY_LOW_MARGIN",
        name="Meget lav margin",
        category="margin",
        severity=RiskSeverity.CRITICAL.value,
        check=lambda ctx: _margin(ctx) < 10,
        title="Kritisk lav margin",
        description="Marginen er under 10%. Ved uforudsete problemer risikerer projektet at give underskud.",
        recommendation="KRITISK: Tilbuddet bør genovervejes. Under 10% margin er ikke bæredygtigt.",
        show_to_customer=False,
    ),
    RiskRule(
        code="RISK_HIGH_PRICE",
        name="Høj pris",
        category="margin",
        severity=RiskSeverity.INFO.value,
        check=lambda ctx: (ctx.get("total_price") or 0) > 100000,
        title="Større projekt - høj værdi",
        description="Projektet har en samlet værdi over 100.000 kr. Overvej kundens betalingsevne og evt. ratebetaling.",
        recommendation="Overvej: Tilbyd ratebetaling eller delbetaling. Sikr skriftlig kontrakt.",
        show_to_customer=False,
    ),

    # Access
    RiskRule(
        code="RISK_APARTMENT",
        name="Lejlighed/etagebolig",
        category="access",
        severity=RiskSeverity.LOW.value,
        check=lambda ctx: ctx.get("building_type") == "apartment",
        title="Lejlighedsinstallation",
        description="Arbejde i lejlighed kan have begrænsninger ift. adgang til fælles el-tavle.",
        recommendation="Afklar adgang til fælles eltavle på forhånd. Koordinér evt. med vicevært.",
        show_to_customer=True,
        customer_message="Adgang til eventuel fælles eltavle skal koordineres.",
    ),

    # Scope
    RiskRule(
        code="RISK_UNCLEAR_SCOPE",
        name="Uklart scope",
        category="scope",
        severity=RiskSeverity.MEDIUM.value,
        check=lambda ctx: (ctx.get("component_count") or 0) == 0 and _rooms(ctx) == 0,
        title="Uklart projekt-scope",
        description="Ingen komponenter eller rum er specificeret. Scopet kan være uklart.",
        recommendation="VIGTIGT: Afklar præcist scope med kunde før tilbud afgives. Overvej besigtigelse.",
        show_to_customer=False,
    ),
]

SEVERITY_WEIGHTS = {
    "critical": 5,
    "high": 4,
    "medium": 3,
    "low": 2,
    "info": 1,
}


def calculate_overall_risk_level(risks: List[RiskAssessment]) -> str:
    if not risks:
        return "low"

    high_count = sum(1 for r in risks if r.severity == "high")
    medium_count = sum(1 for r in risks if r.severity == "medium")

    if any(r.severity == "critical" for r in risks) or high_count >= 2:
        return "high"
    if high_count >= 1 or medium_count >= 3:
        return "medium"
    return "low"


def generate_recommendations(risks: List[RiskAssessment]) -> List[str]:
    codes = {r.detection_rule for r in risks}
    recommendations = []

    if codes & {"RISK_OLD_WIRING", "RISK_VERY_OLD"}:
        recommendations.append("Anbefales: Tilbyd eltjek/besigtigelse før tilbud afgives")
    if codes & {"RISK_LOW_MARGIN", "RISK_VERY_LOW_MARGIN"}:
        recommendations.append("Advarsel: Marginen er for lav. Gennemgå prissætning.")
    if "RISK_COMPLEX_PROJECT" in codes:
        recommendations.append("Overvej: Opdel projektet i faser for bedre styring")
    if "RISK_UNCLEAR_SCOPE" in codes:
        recommendations.append("Vigtigt: Afklar scope grundigt med kunden før tilbudsgivning")

    if calculate_overall_risk_level(risks) == "high":
        recommendations.append("Høj risiko: Overvej ekstra buffer (15-20%) i prissætningen")

    return recommendations


def assess_risk(context: Dict[str, Any]) -> RiskAnalysisResult:
    """Run all rules against an offer context, highest severity first"""
    risks = [
        RiskAssessment(
            calculation_id=context.get("calculation_id"),
            category=rule.category,
            severity=rule.severity,
            title=rule.title,
            description=rule.description,
            detection_rule=rule.code,
            confidence=0.9,
            recommendation=rule.recommendation,
            show_to_customer=rule.show_to_customer,
            customer_message=rule.customer_message,
        )
        for rule in RISK_RULES
        if rule.check(context)
    ]

    risks.sort(key=lambda r: SEVERITY_WEIGHTS[r.severity], reverse=True)

    return RiskAnalysisResult(
        risks=risks,
        overall_risk_level=calculate_overall_risk_level(risks),
        customer_visible_risks=[r for r in risks if r.show_to_customer],
        recommendations=generate_recommendations(risks),
    )


def quick_risk_check(context: Dict[str, Any]) -> Dict[str, Any]:
    """Risk badge: level, count and the top issue title"""
    result = assess_risk(context)
    return {
        "level": result.overall_risk_level,
        "count": len(result.risks),
        "top_issue": result.risks[0].title if result.risks else None,
    }


def get_offer_obs_points(context: Dict[str, Any]) -> List[str]:
    """Customer-safe OBS messages for the offer"""
    result = assess_risk(context)
    return [r.customer_message for r in result.customer_visible_risks if r.customer_message]


def get_recommended_margin(context: Dict[str, Any]) -> Dict[str, Any]:
    result = assess_risk(context)
    codes = {r.detection_rule for r in result.risks}

    minimum_margin = 15
    recommended_margin = 25
    reasons = []

    if "RISK_VERY_OLD" in codes:
        minimum_margin = max(minimum_margin, 25)
        recommended_margin = max(recommended_margin, 35)
        reasons.append("gammel bygning")

    if any(r.category == "safety" for r in result.risks):
        minimum_margin = max(minimum_margin, 20)
        recommended_margin = max(recommended_margin, 30)
        reasons.append("sikkerhedskrav")

    if result.overall_risk_level == "high":
        minimum_margin = max(minimum_margin, 22)
        recommended_margin = max(recommended_margin, 32)
        reasons.append("høj samlet risiko")

    if context.get("building_type") in ("commercial", "industrial"):
        minimum_margin = max(minimum_margin, 20)
        recommended_margin = max(recommended_margin, 28)
        reasons.append("erhverv/industri")

    return {
        "minimum_margin": minimum_margin,
        "recommended_margin": recommended_margin,
        "reason": f"Anbefalet pga: {', '.join(reasons)}" if reasons else "Standard margin for projektet",
    }


def get_risk_rules() -> List[Dict[str, Any]]:
    return [
        {
            "code": rule.code,
            "name": rule.name,
            "category": rule.category,
            "severity": rule.severity,
            "show_to_customer": rule.show_to_customer,
        }
        for rule in RISK_RULES
    ]

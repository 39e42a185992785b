"""
Offer Text Generator

Builds the Danish offer text for an auto-project: work description,
scope, materials, timeline, reservations and terms, plus the full
plain-text offer with a price summary.
"""

import re
from datetime import date
from dataclasses import dataclass, asdict
from typing import Optional, Dict, List, Any

from elta.estimation.interpreter import ProjectInterpretation
from elta.estimation.calculation_engine import AutoCalculation, format_currency, format_hours, estimate_workdays
from elta.estimation.risk_analysis import ProjectRiskAnalysis


COMPANY_NAME = "Elta Solar ApS"
LARGE_ORDER_THRESHOLD = 50000

BUILDING_DESCRIPTIONS = {
    "house": "villa/parcelhus",
    "apartment": "lejlighed",
    "commercial": "erhvervslokale",
    "industrial": "industribygning",
    "unknown": "bygning",
}

CATEGORY_NAMES = {
    "outlet": "Stikkontakter",
    "switch": "Afbrydere og dæmpere",
    "lighting": "Belysning",
    "power": "Kraftinstallation",
    "data": "Data og TV",
    "panel": "Tavlearbejde",
    "other": "Øvrige",
}


@dataclass
class OfferTextSections:
    work_description: str
    scope_description: str
    materials_description: str
    timeline_description: str
    reservations: str
    terms: str


@dataclass
class GeneratedOfferText:
    sections: OfferTextSections
    full_offer_text: str
    calculation_id: Optional[str] = None
    is_edited: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============== Helpers ==============

def get_building_description(interpretation: ProjectInterpretation) -> str:
    text = BUILDING_DESCRIPTIONS.get(interpretation.building_type, "bygning")
    if interpretation.building_size_m2:
        text += f" på {interpretation.building_size_m2} m²"
    return text


def group_components_by_category(components: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for component in components:
        grouped.setdefault(component.get("category") or "other", []).append(component)
    return grouped


def get_category_name(category: str) -> str:
    return CATEGORY_NAMES.get(category, category)


def _is_cable(material: Dict[str, Any]) -> bool:
    return "kabel" in material["name"].lower()


# ============== Sections ==============

def generate_work_description(interpretation: ProjectInterpretation, calculation: AutoCalculation) -> str:
    lines = [f"El-installation i {get_building_description(interpretation)}.", "", "Arbejdet omfatter:", ""]

    for category, components in group_components_by_category(calculation.components).items():
        items = ", ".join(f"{c['quantity']} stk. {c['name'].lower()}" for c in components)
        lines.append(f"• {get_category_name(category)}: {items}")

    if any(c.get("category") == "panel" for c in calculation.components):
        lines += ["", "Tavlearbejde indgår i projektet."]

    return "\n".join(lines)


def generate_scope_description(calculation: AutoCalculation) -> str:
    total_points = sum(c["quantity"] for c in calculation.components)
    lines = ["OMFANG", "------", f"Samlet antal elpunkter: {total_points} stk.", "", "Specificeret:"]

    for category, components in group_components_by_category(calculation.components).items():
        lines += ["", f"{get_category_name(category)}:"]
        lines += [f"  - {c['name']}: {c['quantity']} {c['unit']}" for c in components]

    cables = [m for m in calculation.materials if _is_cable(m)]
    if cables:
        lines += ["", "Kabelarbejde:"]
        lines += [f"  - {m['name']}: {m['quantity']} {m['unit']}" for m in cables]

    return "\n".join(lines)


def generate_materials_description(calculation: AutoCalculation) -> str:
    lines = ["MATERIALER", "----------", "Følgende materialer er inkluderet i tilbuddet:", ""]

    cables, fittings, other = [], [], []
    for material in calculation.materials:
        name = material["name"].lower()
        if "kabel" in name or "ledning" in name:
            cables.append(material)
        elif "kontakt" in name or "afbryder" in name or "spot" in name:
            fittings.append(material)
        else:
            other.append(material)

    for title, group in (("Kabler og ledninger:", cables), ("Komponenter:", fittings), ("Øvrige materialer:", other)):
        if group:
            lines.append(title)
            lines += [f"  • {m['name']} - {m['quantity']} {m['unit']}" for m in group]
            lines.append("")

    lines.append("Alle materialer er af professionel kvalitet.")
    lines.append("Materialespecifikationer kan ændres efter aftale.")
    return "\n".join(lines)


def generate_timeline_description(calculation: AutoCalculation) -> str:
    hours = calculation.time.total_hours
    workdays = estimate_workdays(hours)

    lines = [
        "TIDSPLAN",
        "--------",
        "",
        f"Estimeret arbejdstid: {format_hours(hours)}",
        f"Forventet varighed: {workdays} arbejdsdag{'e' if workdays > 1 else ''}",
        "",
    ]

    if calculation.time.breakdown:
        lines.append("Fordeling:")
        lines += [f"  • {item['description']}: {format_hours(item['hours'])}" for item in calculation.time.breakdown]
        lines.append("")

    lines += [
        "Tidsplanen er vejledende og afhænger af:",
        "  • Adgangsforhold på stedet",
        "  • Evt. koordinering med andre håndværkere",
        "  • Vejrforhold ved udendørs arbejde",
        "",
        "Præcis startdato aftales særskilt.",
    ]
    return "\n".join(lines)


def generate_reservations(risk_analysis: ProjectRiskAnalysis) -> str:
    lines = ["FORBEHOLD", "---------", ""]

    if risk_analysis.offer_reservations:
        lines += ["Særlige forbehold for dette projekt:", ""]
        lines += [f"• {r}" for r in risk_analysis.offer_reservations]
        lines.append("")

    lines += [
        "Generelle forbehold:",
        "",
        "• Tilbuddet forudsætter normal adgang til arbejdsstedet.",
        "• Skjulte forhold, der kræver ekstra arbejde, faktureres særskilt.",
        "• Tilbuddet omfatter ikke maler- eller tømrerarbejde.",
        "• El-attest (lovpligtig) udstedes ved projektets afslutning.",
    ]

    if risk_analysis.requires_inspection:
        lines += ["", "BEMÆRK: Besigtigelse anbefales før endelig ordrebekræftelse."]

    return "\n".join(lines)


def generate_terms(calculation: AutoCalculation) -> str:
    lines = ["BETINGELSER", "-----------", "", "Betaling:", "  • Betaling: 8 dage netto fra fakturadato"]

    if calculation.price.total_price > LARGE_ORDER_THRESHOLD:
        lines.append("  • Ved ordrer over 50.000 kr: 30% ved ordrebekræftelse, rest ved aflevering")

    lines += [
        "",
        "Tilbuddets gyldighed:",
        "  • Tilbuddet er gældende i 30 dage fra dato",
        "  • Priserne er ekskl. moms",
        "",
        "Garanti:",
        "  • 2 års garanti på udført arbejde",
        "  • Producentgaranti på materialer iht. producentens vilkår",
        "",
        "Ansvar og forsikring:",
        "  • Entreprisen udføres iht. gældende lovgivning",
        "  • Autoriseret elinstallatørvirksomhed",
        "  • Erhvervsansvarsforsikring tegnet",
    ]
    return "\n".join(lines)


def generate_full_offer_text(
    sections: OfferTextSections,
    calculation: AutoCalculation,
    customer_name: Optional[str] = None,
    project_address: Optional[str] = None,
    offer_date: Optional[date] = None
) -> str:
    heavy = "=" * 50
    light = "-" * 50
    price = calculation.price

    lines = [heavy, "TILBUD - EL-INSTALLATION", heavy, ""]
    if customer_name:
        lines.append(f"Til: {customer_name}")
    if project_address:
        lines.append(f"Adresse: {project_address}")
    lines.append(f"Dato: {(offer_date or date.today()).strftime('%d.%m.%Y')}")
    lines.append("")

    lines += [
        light,
        "TILBUDSPRIS",
        light,
        "",
        f"Materialer:     {format_currency(price.material_cost)}",
        f"Arbejdsløn:     {format_currency(price.labor_cost)}",
        f"                {'-' * 20}",
        f"Subtotal:       {format_currency(price.subtotal)}",
        "",
        f"TOTAL PRIS:     {format_currency(price.total_price)} ekskl. moms",
        "",
    ]

    for section in (
        sections.work_description,
        sections.scope_description,
        sections.materials_description,
        sections.timeline_description,
        sections.reservations,
        sections.terms,
    ):
        lines += [light, section, ""]

    lines += [heavy, "Med venlig hilsen", "", COMPANY_NAME, "Autoriseret elinstallatør", heavy]
    return "\n".join(lines)


def generate_offer_text(
    interpretation: ProjectInterpretation,
    calculation: AutoCalculation,
    risk_analysis: ProjectRiskAnalysis,
    customer_name: Optional[str] = None,
    project_address: Optional[str] = None,
    calculation_id: Optional[str] = None,
    offer_date: Optional[date] = None
) -> GeneratedOfferText:
    sections = OfferTextSections(
        work_description=generate_work_description(interpretation, calculation),
        scope_description=generate_scope_description(calculation),
        materials_description=generate_materials_description(calculation),
        timeline_description=generate_timeline_description(calculation),
        reservations=generate_reservations(risk_analysis),
        terms=generate_terms(calculation),
    )

    return GeneratedOfferText(
        sections=sections,
        full_offer_text=generate_full_offer_text(sections, calculation, customer_name, project_address, offer_date),
        calculation_id=calculation_id,
    )


def format_offer_section_for_display(section: str) -> str:
    """Plain offer text to markdown"""
    section = re.sub(r"^(.*):$", r"**\1:**", section, flags=re.MULTILINE)
    section = re.sub(r"^  • ", "- ", section, flags=re.MULTILINE)
    section = re.sub(r"^-{2,}$", "---", section, flags=re.MULTILINE)
    return re.sub(r"^={2,}$", "===", section, flags=re.MULTILINE)

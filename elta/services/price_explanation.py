"""
Price Explanation Engine

Customer-facing explanation of an offer price: summary, labor and
material shares, what is and is not included, guarantees, payment terms,
a category/room breakdown and an upsell comparison.

Template based, Danish output.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, List, Any

from elta.services.pricing import format_dkk, round_half_up


PROJECT_TYPE_LABELS = {
    "renovation": "renovering",
    "new_build": "nybyggeri",
    "extension": "tilbygning",
    "maintenance": "vedligeholdelse",
}

# Offers above this are paid in three installments
INSTALLMENT_THRESHOLD = 50000


@dataclass
class PriceComponent:
    name: str
    quantity: float = 1
    price: float = 0
    room: Optional[str] = None


@dataclass
class PriceExplanationInput:
    labor_cost: float
    material_cost: float
    total_price: float
    margin_percentage: float = 0
    components: List[PriceComponent] = field(default_factory=list)
    rooms: Optional[List[str]] = None
    project_type: Optional[str] = None
    building_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceExplanationInput":
        values = dict(data)
        values["components"] = [
            c if isinstance(c, PriceComponent) else PriceComponent(**c)
            for c in values.get("components") or []
        ]
        return cls(**values)

    @property
    def total_items(self) -> float:
        return sum(c.quantity for c in self.components)


@dataclass
class PriceExplanation:
    sections: Dict[str, Any]
    breakdown: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============== Formatting ==============

def _share(amount: float, total: float) -> float:
    """Percent of total, 0 when there is no total"""
    return amount / total * 100 if total > 0 else 0


def _percent(value: float) -> str:
    return f"{round_half_up(value)}%"


def _quantity(value: float) -> str:
    return f"{value:g}"


# ============== Sections ==============

def _summary(data: PriceExplanationInput) -> str:
    label = PROJECT_TYPE_LABELS.get(data.project_type or "", "el-installation")
    summary = f"Tilbuddet dækker {label}"

    if data.rooms:
        if len(data.rooms) == 1:
            summary += f" i {data.rooms[0].lower()}"
        else:
            summary += f" i {len(data.rooms)} rum"

    return summary + f" med {_quantity(data.total_items)} enheder fordelt på {len(data.components)} typer arbejde."


def _labor_explanation(data: PriceExplanationInput) -> str:
    share = _share(data.labor_cost, data.total_price)
    text = f"Arbejdsløn udgør {format_dkk(data.labor_cost)} ({_percent(share)} af totalprisen). "

    if share > 60:
        return text + "Denne type arbejde er primært arbejdstid, da installationen kræver faglig ekspertise."
    if share > 40:
        return text + "Prisen er fordelt mellem materialer og kvalificeret installation."
    return text + "Materialerne udgør størstedelen af prisen, mens installationen er effektiv."


def _material_explanation(data: PriceExplanationInput) -> str:
    share = _share(data.material_cost, data.total_price)
    return (
        f"Materialer udgør {format_dkk(data.material_cost)} ({_percent(share)} af totalprisen). "
        "Alle materialer er af professionel kvalitet og leveres af anerkendte leverandører."
    )


def _value_propositions(data: PriceExplanationInput) -> List[str]:
    propositions = [
        "Autoriseret el-installatør med fuldt ansvar",
        "Udvidet garanti på udført arbejde",
        "Professionelle materialer fra anerkendte leverandører",
    ]
    if data.building_type in ("house", "apartment"):
        propositions.append("Minimal gene i hjemmet - vi rydder op efter os")
    if len(data.components) > 5:
        propositions.append("Samlet pris for hele projektet - ingen skjulte omkostninger")
    return propositions


def _whats_included(data: PriceExplanationInput) -> List[str]:
    included = [
        f"{_quantity(c.quantity)}x {c.name}" if c.quantity > 1 else c.name
        for c in data.components
    ]
    return included + [
        "Alle nødvendige materialer",
        "Professionel installation",
        "Oprydning efter arbejdet",
        "Garanti på udført arbejde",
    ]


def _whats_not_included(data: PriceExplanationInput) -> List[str]:
    excluded = [
        "Evt. nødvendig forstærkning af eksisterende installation",
        "Udbedring af skjulte fejl i eksisterende el",
        "Malearbejde efter installationen",
        "Tilladelser og gebyrer (hvis påkrævet)",
    ]
    if data.building_type == "apartment":
        excluded.append("Arbejde på fælles el-tavle (koordineres separat)")
    return excluded


QUALITY_GUARANTEES = [
    "2 års garanti på alt udført arbejde",
    "Alle materialer har fabriksgaranti",
    "Autoriseret el-installatør med lovpligtig ansvarsforsikring",
    "Elinstallationsrapport udleveres ved afslutning",
]


def payment_terms(total_price: float) -> str:
    if total_price > INSTALLMENT_THRESHOLD:
        return ("Betaling: 30% ved accept, 40% ved påbegyndelse, 30% ved afslutning. "
                "Faktura fremsendes med 8 dages betalingsfrist.")
    return "Betaling: Faktura fremsendes ved afslutning af arbejdet med 8 dages betalingsfrist."


# ============== Breakdown ==============

def _category_breakdown(data: PriceExplanationInput) -> List[Dict[str, Any]]:
    categories = [
        {
            "name": "Arbejdsløn",
            "amount": data.labor_cost,
            "percentage": _share(data.labor_cost, data.total_price),
            "description": "Installation og montering af autoriseret elektriker",
        },
        {
            "name": "Materialer",
            "amount": data.material_cost,
            "percentage": _share(data.material_cost, data.total_price),
            "description": "Kvalitetskomponenter fra anerkendte leverandører",
        },
    ]

    # Overhead only shown when it is more than rounding
    direct = data.labor_cost + data.material_cost
    if data.total_price > direct * 1.01:
        overhead = data.total_price - direct
        categories.append({
            "name": "Administration & garanti",
            "amount": overhead,
            "percentage": _share(overhead, data.total_price),
            "description": "Inkluderer garanti, forsikring og projektkoordinering",
        })

    return categories


def _room_breakdown(data: PriceExplanationInput) -> Optional[List[Dict[str, Any]]]:
    if not data.rooms:
        return None

    rooms = {name: {"name": name, "amount": 0.0, "component_count": 0} for name in data.rooms}
    for component in data.components:
        room = rooms.get(component.room or "")
        if room:
            room["amount"] += component.price
            room["component_count"] += 1

    return sorted(rooms.values(), key=lambda r: r["amount"], reverse=True)


# ============== Public API ==============

def generate_price_explanation(data: PriceExplanationInput) -> PriceExplanation:
    sections = {
        "summary": _summary(data),
        "labor_explanation": _labor_explanation(data),
        "material_explanation": _material_explanation(data),
        "value_propositions": _value_propositions(data),
        "whats_included": _whats_included(data),
        "whats_not_included": _whats_not_included(data),
        "quality_guarantees": list(QUALITY_GUARANTEES),
        "payment_terms": payment_terms(data.total_price),
    }
    breakdown = {
        "categories": _category_breakdown(data),
        "rooms": _room_breakdown(data),
        "material_items": data.total_items,
    }
    return PriceExplanation(sections=sections, breakdown=breakdown)


def _labor_share(data: PriceExplanationInput) -> int:
    return round_half_up(_share(data.labor_cost, data.total_price))


def generate_simple_summary(data: PriceExplanationInput) -> str:
    labor = _labor_share(data)
    return "\n".join([
        f"Den samlede pris på {format_dkk(data.total_price)} inkluderer alt: "
        f"materialer ({100 - labor}%) og professionel installation ({labor}%).",
        "Arbejdet udføres af autoriseret el-installatør med fuld garanti.",
        "Alle materialer er professionel kvalitet fra anerkendte leverandører.",
    ])


def generate_bullet_summary(data: PriceExplanationInput) -> List[str]:
    labor = _labor_share(data)
    return [
        f"Samlet pris: {format_dkk(data.total_price)} inkl. moms",
        f"{_quantity(data.total_items)} enheder fordelt på {len(data.components)} typer installation",
        f"Materialer: {format_dkk(data.material_cost)} ({100 - labor}%)",
        f"Installation: {format_dkk(data.labor_cost)} ({labor}%)",
        "Alt arbejde udføres af autoriseret el-installatør",
        "Inkl. garanti og professionelle materialer",
    ]


def generate_price_comparison(
    data: PriceExplanationInput,
    upgrades: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Standard tier, plus a Premium tier with all upgrades when any are given"""
    base_names = [c.name for c in data.components]
    tiers = [{
        "tier": "Standard",
        "price": data.total_price,
        "includes": base_names,
        "recommended": True,
    }]

    if upgrades:
        tiers.append({
            "tier": "Premium",
            "price": data.total_price + sum(u.get("price_addition", 0) for u in upgrades),
            "includes": base_names + [u["name"] for u in upgrades],
            "recommended": False,
        })

    return tiers

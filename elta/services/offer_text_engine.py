"""
Offer Text Engine

Assembles offer texts from offer_text_templates rows: technical scope,
installation notes, OBS points, warranty and terms.

Template scopes form a hierarchy (component > category > room_type >
global); more specific and higher priority templates win when several
share the same key and scope.
"""

import re
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, List, Any

from elta.services.pricing import format_dkk


SCOPE_SCORES = {
    "component": 40,
    "category": 30,
    "room_type": 20,
    "global": 10,
}

KEY_SECTIONS = {
    "description": "technical_scope",
    "technical_note": "technical_scope",
    "obs_point": "obs_points",
    "warranty": "warranty_notes",
    "warranty_note": "warranty_notes",
    "installation_note": "installation_notes",
    "terms": "terms",
}


@dataclass
class OfferTextContext:
    component_codes: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    room_types: List[str] = field(default_factory=list)
    room_count: int = 0
    building_profile: Optional[str] = None
    building_age_years: Optional[int] = None
    building_type: Optional[str] = None
    total_price: Optional[float] = None
    component_count: Optional[int] = None
    has_bathroom_work: bool = False
    has_outdoor_work: bool = False


@dataclass
class AssembledOfferTexts:
    technical_scope: List[str] = field(default_factory=list)
    obs_points: List[str] = field(default_factory=list)
    warranty_notes: List[str] = field(default_factory=list)
    installation_notes: List[str] = field(default_factory=list)
    terms: List[str] = field(default_factory=list)
    all_texts: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def evaluate_conditions(conditions: Optional[Dict[str, Any]], context: OfferTextContext) -> bool:
    """Templates without conditions always match"""
    if not conditions:
        return True

    count = context.component_count or 0
    if conditions.get("min_quantity") is not None and count < conditions["min_quantity"]:
        return False
    if conditions.get("max_quantity") is not None and count > conditions["max_quantity"]:
        return False

    profiles = conditions.get("building_profiles")
    if profiles and context.building_profile not in profiles:
        return False

    room_types = conditions.get("room_types")
    if room_types and not any(rt in room_types for rt in context.room_types):
        return False

    codes = conditions.get("component_codes")
    if codes and not any(cc in codes for cc in context.component_codes):
        return False

    return True


def calculate_relevance_score(template: Dict[str, Any]) -> int:
    score = (template.get("priority") or 0) * 10
    score += SCOPE_SCORES.get(template.get("scope_type"), 0)

    conditions = template.get("conditions") or {}
    active = [
        v for v in conditions.values()
        if v is not None and (len(v) > 0 if isinstance(v, list) else True)
    ]
    score += len(active) * 5

    if template.get("is_required"):
        score += 5
    return score


def substitute_variables(text: str, context: OfferTextContext) -> str:
    """Fill {{placeholders}}, English and Danish names"""
    replacements = {
        "room_count": str(context.room_count),
        "antal_rum": str(context.room_count),
        "component_count": str(context.component_count or 0),
        "antal_komponenter": str(context.component_count or 0),
    }
    if context.total_price:
        price = format_dkk(context.total_price, 0)
        replacements["total_price"] = price
        replacements["samlet_pris"] = price
    if context.building_type:
        replacements["building_type"] = context.building_type
        replacements["bygningstype"] = context.building_type
    if context.room_types:
        rooms = ", ".join(context.room_types)
        replacements["room_types"] = rooms
        replacements["rumtyper"] = rooms

    return re.sub(
        r"\{\{(\w+)\}\}",
        lambda m: replacements.get(m.group(1), m.group(0)),
        text,
    )


def assemble_offer_texts(templates: List[Dict[str, Any]], context: OfferTextContext) -> AssembledOfferTexts:
    """
    Select, deduplicate and fill templates for an offer.

    One template per (template_key, scope_id) survives: the highest scored,
    except that a required template always takes the slot.
    """
    scored = sorted(
        (
            (t, calculate_relevance_score(t))
            for t in templates
            if t.get("is_active", True) and evaluate_conditions(t.get("conditions"), context)
        ),
        key=lambda pair: pair[1],
        reverse=True,
    )

    selected: Dict[str, Dict[str, Any]] = {}
    for template, _score in scored:
        key = f"{template.get('template_key')}-{template.get('scope_id') or 'global'}"
        if template.get("is_required") or key not in selected:
            selected[key] = template

    result = AssembledOfferTexts()
    for template in selected.values():
        content = substitute_variables(template.get("content", ""), context)
        result.all_texts.append({
            "key": template.get("template_key"),
            "title": template.get("title"),
            "content": content,
            "scope": template.get("scope_type"),
            "source_id": template.get("id"),
        })

        section = KEY_SECTIONS.get(template.get("template_key"))
        if section:
            getattr(result, section).append(content)

    return result


def generate_offer_content(templates: List[Dict[str, Any]], context: OfferTextContext) -> Dict[str, List[str]]:
    """Offer content as stored on the offer row"""
    assembled = assemble_offer_texts(templates, context)
    return {
        "technical_scope": assembled.technical_scope,
        "exclusions": [],
        "assumptions": [],
        "obs_points": assembled.obs_points,
        "warranty_notes": assembled.warranty_notes,
    }


def _by_priority(templates: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(templates, key=lambda t: t.get("priority") or 0, reverse=True)


def get_default_templates(templates: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Required or high priority (>= 5) global templates"""
    return _by_priority([
        t for t in templates
        if t.get("is_active", True) and t.get("scope_type") == "global"
        and (t.get("is_required") or (t.get("priority") or 0) >= 5)
    ])


def get_component_templates(templates: List[Dict[str, Any]], component_codes: List[str]) -> List[Dict[str, Any]]:
    return _by_priority([
        t for t in templates
        if t.get("is_active", True) and t.get("scope_type") == "component"
        and t.get("scope_id") and t["scope_id"] in component_codes
    ])


def get_room_templates(templates: List[Dict[str, Any]], room_types: List[str]) -> List[Dict[str, Any]]:
    return _by_priority([
        t for t in templates
        if t.get("is_active", True) and t.get("scope_type") == "room_type"
        and t.get("scope_id") and t["scope_id"] in room_types
    ])


def merge_offer_texts(existing: Optional[Dict[str, Any]], generated: Dict[str, Any]) -> Dict[str, Any]:
    """Keep user-edited sections, fill empty ones from generated content"""
    if not existing:
        return generated

    merged = {
        key: existing.get(key) or generated.get(key, [])
        for key in ("technical_scope", "exclusions", "assumptions", "obs_points", "warranty_notes")
    }
    merged["optional_upgrades"] = existing.get("optional_upgrades")
    return merged

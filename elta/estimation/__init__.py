"""
Auto-Project Estimation

Free-text project description to components, time, price, risks and
offer text.
"""

from .interpreter import interpret_project, ProjectInterpretation, InterpretationResult
from .component_matcher import match_components, MatchingResult
from .calculation_engine import calculate_project, calculate_time, calculate_price, format_currency, format_hours
from .risk_analysis import analyze_risks, generate_offer_reservations, generate_internal_notes
from .offer_generator import generate_offer_text
from .auto_project import analyze_project, quick_analyze

__all__ = [
    "interpret_project",
    "ProjectInterpretation",
    "InterpretationResult",
    "match_components",
    "MatchingResult",
    "calculate_project",
    "calculate_time",
    "calculate_price",
    "format_currency",
    "format_hours",
    "analyze_risks",
    "generate_offer_reservations",
    "generate_internal_notes",
    "generate_offer_text",
    "analyze_project",
    "quick_analyze",
]

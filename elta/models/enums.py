"""
Status Codes and Enums

Standardized values stored in the CRM database and used by the calculation
engines. Labels are the Danish texts shown to users.
"""

from enum import Enum


class LeadStatus(str, Enum):
    """Lead pipeline stages"""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"

    @classmethod
    def to_label(cls, status: str) -> str:
        labels = {
            "new": "Ny",
            "contacted": "Kontaktet",
            "qualified": "Kvalificeret",
            "proposal": "Tilbud sendt",
            "negotiation": "Forhandling",
            "won": "Vundet",
            "lost": "Tabt",
        }
        return labels.get(status, f"Ukendt ({status})")


class OfferStatus(str, Enum):
    """Offer (tilbud) lifecycle"""
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @classmethod
    def to_label(cls, status: str) -> str:
        labels = {
            "draft": "Kladde",
            "sent": "Sendt",
            "viewed": "Set",
            "accepted": "Accepteret",
            "rejected": "Afvist",
            "expired": "Udløbet",
        }
        return labels.get(status, f"Ukendt ({status})")


class ProjectStatus(str, Enum):
    """Project lifecycle"""
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def to_label(cls, status: str) -> str:
        labels = {
            "planning": "Planlægning",
            "active": "Aktiv",
            "on_hold": "På hold",
            "completed": "Afsluttet",
            "cancelled": "Annulleret",
        }
        return labels.get(status, f"Ukendt ({status})")


class CustomerTier(str, Enum):
    """Customer price tiers"""
    STANDARD = "standard"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"

    @classmethod
    def to_label(cls, tier: str) -> str:
        labels = {
            "standard": "Standard",
            "silver": "Sølv",
            "gold": "Guld",
            "platinum": "Platin",
        }
        return labels.get(tier, tier)


class DBLevel(str, Enum):
    """Contribution margin (dækningsbidrag) traffic light"""
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"

    @classmethod
    def to_label(cls, level: str) -> str:
        labels = {"green": "Godt", "yellow": "OK", "red": "Lavt"}
        return labels.get(level, level)


class Phase(str, Enum):
    """Supply phase"""
    SINGLE = "1-phase"
    THREE = "3-phase"


class InstallationMethod(str, Enum):
    """IEC 60364-5-52 reference installation methods"""
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C = "C"
    E = "E"
    F = "F"


class LoadCategory(str, Enum):
    """Electrical load categories used for diversity factors"""
    LIGHTING = "lighting"
    SOCKET_OUTLET = "socket_outlet"
    FIXED_APPLIANCE = "fixed_appliance"
    MOTOR = "motor"
    HEATING = "heating"
    COOKING = "cooking"
    EV_CHARGER = "ev_charger"
    DATA_EQUIPMENT = "data_equipment"

    @classmethod
    def to_label(cls, category: str) -> str:
        labels = {
            "lighting": "Belysning",
            "socket_outlet": "Stikkontakter",
            "fixed_appliance": "Faste installationer",
            "motor": "Motorer",
            "heating": "Opvarmning",
            "cooking": "Madlavning",
            "ev_charger": "Elbil-lader",
            "data_equipment": "Data/IT",
        }
        return labels.get(category, category)


class RiskSeverity(str, Enum):
    """Severity of a detected project risk"""
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def to_label(cls, severity: str) -> str:
        labels = {
            "info": "Info",
            "low": "Lav",
            "medium": "Middel",
            "high": "Høj",
            "critical": "Kritisk",
        }
        return labels.get(severity, severity)


class BuildingType(str, Enum):
    """Building types recognised by the project interpreter"""
    HOUSE = "house"
    APARTMENT = "apartment"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    SUMMER_HOUSE = "summer_house"
    UNKNOWN = "unknown"

    @classmethod
    def to_label(cls, building_type: str) -> str:
        labels = {
            "house": "Hus",
            "apartment": "Lejlighed",
            "commercial": "Erhverv",
            "industrial": "Industri",
            "summer_house": "Sommerhus",
            "unknown": "Ukendt",
        }
        return labels.get(building_type, building_type)


class SyncStatus(str, Enum):
    """Supplier sync job status"""
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

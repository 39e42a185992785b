"""
Supplier Adapters

One adapter per wholesaler. An adapter knows the supplier's file layout
(encoding, delimiter, column names), normalizes SKUs, maps supplier
categories to internal ones and adds supplier-specific row checks.

Adapters are looked up by supplier code through the registry.
"""

import re
import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, List, Any, Callable, Union

from elta.sync.import_engine import (
    ImportEngine,
    ImportConfig,
    ParsedRow,
    ColumnMappings,
    detect_column_mappings,
    parse_danish_number,
    decode_file_content,
)

logger = logging.getLogger(__name__)


@dataclass
class SupplierAdapterInfo:
    code: str
    name: str
    description: str
    website: str
    default_encoding: str
    default_delimiter: str = ";"
    supported_formats: List[str] = field(default_factory=lambda: ["csv"])
    features: List[str] = field(default_factory=list)


class BaseSupplierAdapter:
    """Shared import behaviour, subclasses supply mappings and SKU rules"""

    info: SupplierAdapterInfo
    column_mappings: ColumnMappings = {}
    category_map: Dict[str, str] = {}

    def get_default_config(self) -> ImportConfig:
        return ImportConfig(
            column_mappings=dict(self.column_mappings),
            delimiter=self.info.default_delimiter,
            encoding=self.info.default_encoding,
        )

    def normalize_sku(self, raw_sku: str) -> str:
        return raw_sku.strip()

    def map_category(self, category: Optional[str], sub_category: Optional[str] = None) -> str:
        """Exact, then substring on category, then substring on subcategory"""
        if not category:
            return "Andet"

        if category in self.category_map:
            return self.category_map[category]

        for candidate in (category, sub_category):
            if not candidate:
                continue
            for key, value in self.category_map.items():
                if key.lower() in candidate.lower():
                    return value

        return category

    def parse_price(self, value: str) -> Optional[float]:
        return parse_danish_number(value)

    def transform_row(self, row: ParsedRow) -> ParsedRow:
        parsed = dict(row.parsed)
        parsed["sku"] = self.normalize_sku(parsed["sku"])
        parsed["category"] = (
            self.map_category(parsed["category"], parsed.get("sub_category"))
            if parsed.get("category") else None
        )
        return replace(row, parsed=parsed, warnings=list(row.warnings))

    def build_config(self, overrides: Optional[Dict[str, Any]] = None) -> ImportConfig:
        config = self.get_default_config()
        overrides = dict(overrides or {})
        mappings = overrides.pop("column_mappings", None) or {}
        config = replace(config, **overrides)
        config.column_mappings = {**config.column_mappings, **mappings}
        return config

    def parse_file(self, content: Union[bytes, str], overrides: Optional[Dict[str, Any]] = None) -> List[ParsedRow]:
        config = self.build_config(overrides)
        if isinstance(content, bytes):
            content = decode_file_content(content, config.encoding)

        rows = ImportEngine(config).parse_csv(content)
        return [self.transform_row(row) for row in rows]

    def detect_mappings(self, headers: List[str]) -> Dict[str, int]:
        return detect_column_mappings(headers, self.column_mappings)

    def validate_row(self, row: ParsedRow) -> List[str]:
        errors = []
        parsed = row.parsed
        if not (parsed.get("sku") or "").strip():
            errors.append("Manglende varenummer (SKU)")
        if not (parsed.get("name") or "").strip():
            errors.append("Manglende produktnavn")
        if parsed.get("cost_price") is not None and parsed["cost_price"] < 0:
            errors.append("Negativ kostpris")
        if parsed.get("list_price") is not None and parsed["list_price"] < 0:
            errors.append("Negativ listepris")
        return errors

    def supports_api_sync(self) -> bool:
        return False

    def supports_ftp_sync(self) -> bool:
        return False


# ============== AO ==============

AO_COLUMN_MAPPINGS: ColumnMappings = {
    "sku": "Varenummer",
    "name": "Beskrivelse",
    "cost_price": "Indkøbspris",
    "list_price": "Vejl. udsalgspris",
    "gross_price": "Bruttopris",
    "discount_pct": "Rabat%",
    "unit": "Enhed",
    "category": "Varegruppe",
    "ean": "EAN",
    "manufacturer": "Leverandør",
}

AO_CATEGORY_MAP = {
    # Installation
    "Installationsmateriel": "Installation",
    "Stikdåser": "Stikdåser",
    "Kontakter": "Kontakter",
    "Afbrydere": "Afbrydere",
    "Dåser": "Installation",
    "Kabelkanaler": "Kabelføring",
    "Kabelrør": "Kabelføring",
    "Rør og tilbehør": "Kabelføring",
    "Tavlekomponenter": "Tavler",
    "Tavler": "Tavler",
    "Klemmrækker": "Tavler",
    "DIN-skinner": "Tavler",
    # Lighting
    "Belysning": "Belysning",
    "LED-belysning": "LED Belysning",
    "Lyskilder": "Lyskilder",
    "Armaturer": "Armaturer",
    "Spots": "Belysning",
    "Udendørsbelysning": "Belysning",
    # Cables
    "Ledninger": "Kabler",
    "Installationskabler": "Kabler",
    "Stærkstrømskabler": "Kabler",
    "Svagstrømskabler": "Kabler",
    "Datakabling": "Kabler",
    "Flexledninger": "Kabler",
    # Protection
    "Sikkerhed": "Sikkerhed",
    "Fejlstrømsafbrydere": "Sikkerhed",
    "Sikringer": "Sikringer",
    "Automatsikringer": "Automatsikringer",
    "Overspændingsbeskyttelse": "Sikkerhed",
    "Jordforbindelse": "Sikkerhed",
    # Solar / energy
    "Solceller": "Solceller",
    "Solcellepaneler": "Solceller",
    "Invertere": "Invertere",
    "Batterilagring": "Energilagring",
    "Elbil-ladning": "Elbil",
    "Ladestandere": "Elbil",
    # Smart home
    "Smarthome": "Smart Home",
    "KNX": "Smart Home",
    "Zigbee": "Smart Home",
    # Tools
    "Værktøj": "Værktøj",
    "Måleudstyr": "Værktøj",
    "Elværktøj": "Værktøj",
}

AO_SKU_PATTERN = re.compile(r"^[A-Za-z0-9\-_.]+$")


class AOAdapter(BaseSupplierAdapter):
    info = SupplierAdapterInfo(
        code="AO",
        name="AO",
        description="Dansk el-grossist - En af Danmarks største el-grossister",
        website="https://www.ao.dk",
        default_encoding="iso-8859-1",
        features=[
            "CSV import med semikolon-separator",
            "Dansk talformat (1.234,56)",
            "ISO-8859-1 encoding med UTF-8 fallback",
            "Automatisk kategori-mapping",
            "SKU-normalisering (fjerner AO-præfiks og ledende nuller)",
        ],
    )
    column_mappings = AO_COLUMN_MAPPINGS
    category_map = AO_CATEGORY_MAP

    def normalize_sku(self, raw_sku: str) -> str:
        sku = raw_sku.strip()
        if sku.startswith("AO-"):
            sku = sku[3:]
        # Leading zeros go, at least one digit stays
        return re.sub(r"^0+(?=\d)", "", sku)

    def parse_file(self, content: Union[bytes, str], overrides: Optional[Dict[str, Any]] = None) -> List[ParsedRow]:
        """Retry as UTF-8 when more than half the rows lose their SKU"""
        rows = super().parse_file(content, overrides)
        if not rows:
            return rows

        empty = _count_empty_skus(rows)
        if empty / len(rows) > 0.5:
            fallback = super().parse_file(content, {**(overrides or {}), "encoding": "utf-8"})
            if _count_empty_skus(fallback) < empty:
                logger.info("[AO] Using UTF-8 fallback encoding")
                return fallback

        return rows

    def transform_row(self, row: ParsedRow) -> ParsedRow:
        row = super().transform_row(row)
        parsed = row.parsed
        gross = parsed.get("gross_price")

        if parsed.get("cost_price") is None and gross and gross > 0 and parsed.get("discount_pct") is None:
            row.warnings.append("Kun bruttopris fundet uden rabat% - kan ikke beregne nettopris automatisk")

        # 1% slack for rounding
        if parsed.get("cost_price") is not None and gross is not None and parsed["cost_price"] > gross * 1.01:
            row.warnings.append("Nettopris er højere end bruttopris - kontrollér prisdata")

        return row

    def validate_row(self, row: ParsedRow) -> List[str]:
        errors = super().validate_row(row)
        sku = row.parsed.get("sku")
        if sku and not AO_SKU_PATTERN.match(sku):
            errors.append("Ugyldigt AO varenummer-format")
        if row.parsed.get("cost_price") == 0:
            row.warnings.append("Kostpris er 0 - kontrollér venligst")
        return errors

    def supports_ftp_sync(self) -> bool:
        return True


def _count_empty_skus(rows: List[ParsedRow]) -> int:
    return len([r for r in rows if not (r.parsed.get("sku") or "").strip()])


# ============== Lemvigh-Müller ==============

LM_COLUMN_MAPPINGS: ColumnMappings = {
    "sku": "Artikelnr",
    "name": "Artikelbenævnelse",
    "cost_price": "Nettopris",
    "list_price": "Listepris",
    "unit": "Enhed",
    "category": "Hovedgruppe",
    "sub_category": "Undergruppe",
    "manufacturer": "Leverandør",
    "ean": "EAN",
}

LM_CATEGORY_MAP = {
    "El-installation": "Installation",
    "Installationsmateriel": "Installation",
    "El-artikler": "El-artikler",
    "Stikdåser og kontakter": "Installation",
    "Dåser og bøsninger": "Installation",
    "Kabelkanaler": "Kabelføring",
    "Kabelrør": "Kabelføring",
    "Kabelstiger": "Kabelføring",
    "Tavler og komponenter": "Tavler",
    "Belysning": "Belysning",
    "Lyskilder": "Lyskilder",
    "LED": "LED Belysning",
    "Armaturer": "Armaturer",
    "Nødbelysning": "Belysning",
    "Kabler": "Kabler",
    "Ledninger": "Kabler",
    "Installationsledning": "Kabler",
    "Datakabler": "Kabler",
    "Fiberoptik": "Kabler",
    "Sikringer": "Sikringer",
    "Automater": "Automatsikringer",
    "HPFI": "Sikkerhed",
    "Fejlstrøm": "Sikkerhed",
    "Overspændingsbeskyttelse": "Sikkerhed",
    "Jordforbindelse": "Sikkerhed",
    "Industri": "Industri",
    "Automation": "Automation",
    "Styringsudstyr": "Automation",
    "Frekvensomformere": "Automation",
    "PLC": "Automation",
    "Motorer": "Industri",
    "Sol og energi": "Solceller",
    "Solceller": "Solceller",
    "Inverter": "Invertere",
    "Batterier": "Energilagring",
    "Elbil-ladestandere": "Elbil",
    "VVS": "VVS",
    "Rør": "VVS",
    "Pumper": "VVS",
    "Ventilation": "VVS",
    "Varme": "VVS",
    "Varmepumper": "Varmepumper",
    "Smarthome": "Smart Home",
    "KNX": "Smart Home",
    "Værktøj": "Værktøj",
    "Håndværktøj": "Værktøj",
    "El-værktøj": "Værktøj",
    "Måleudstyr": "Værktøj",
    "Sikkerhedsudstyr": "Personlig sikkerhed",
}

LM_MAX_SKU_LENGTH = 20


class LMAdapter(BaseSupplierAdapter):
    info = SupplierAdapterInfo(
        code="LM",
        name="Lemvigh-Müller",
        description="Dansk el-grossist og teknisk handel - Bredeste sortiment i Danmark",
        website="https://www.lfrm.dk",
        default_encoding="utf-8",
        supported_formats=["csv", "xml"],
        features=[
            "CSV import med semikolon-separator",
            "Dansk talformat (1.234,56)",
            "UTF-8 encoding",
            "Hovedgruppe og undergruppe-mapping",
            "SKU-normalisering",
        ],
    )
    column_mappings = LM_COLUMN_MAPPINGS
    category_map = LM_CATEGORY_MAP

    def normalize_sku(self, raw_sku: str) -> str:
        sku = re.sub(r"\s+", "", raw_sku.strip())
        if sku.startswith("LM-") or sku.startswith("LM_"):
            sku = sku[3:]
        return sku

    def map_category(self, category: Optional[str], sub_category: Optional[str] = None) -> str:
        """Hovedgruppe > Undergruppe first, then the main group, then the subgroup"""
        if not category:
            return "Andet"

        if sub_category and f"{category} > {sub_category}" in self.category_map:
            return self.category_map[f"{category} > {sub_category}"]
        if category in self.category_map:
            return self.category_map[category]
        for key, value in self.category_map.items():
            if key.lower() in category.lower():
                return value

        if sub_category:
            if sub_category in self.category_map:
                return self.category_map[sub_category]
            for key, value in self.category_map.items():
                if key.lower() in sub_category.lower():
                    return value

        return category

    def validate_row(self, row: ParsedRow) -> List[str]:
        errors = super().validate_row(row)
        if row.parsed.get("sku") and len(row.parsed["sku"]) > LM_MAX_SKU_LENGTH:
            errors.append("Artikelnummer er for langt (max 20 tegn)")
        return errors

    def supports_api_sync(self) -> bool:
        return True

    def supports_ftp_sync(self) -> bool:
        return True


# ============== Registry ==============

class SupplierAdapterRegistry:
    """Supplier code (case-insensitive) -> adapter factory"""

    def __init__(self):
        self._factories: Dict[str, Callable[[], BaseSupplierAdapter]] = {}

    def register(self, code: str, factory: Callable[[], BaseSupplierAdapter]) -> None:
        self._factories[code.upper()] = factory

    def get(self, code: Optional[str]) -> Optional[BaseSupplierAdapter]:
        factory = self._factories.get((code or "").upper())
        return factory() if factory else None

    def has(self, code: str) -> bool:
        return code.upper() in self._factories

    def codes(self) -> List[str]:
        return list(self._factories)

    def all_info(self) -> List[SupplierAdapterInfo]:
        return [factory().info for factory in self._factories.values()]


adapter_registry = SupplierAdapterRegistry()
adapter_registry.register("AO", AOAdapter)
adapter_registry.register("LM", LMAdapter)

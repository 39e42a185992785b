"""
Supplier File Import Engine

Parses supplier price files (semicolon CSV, Danish number format) with
configurable column mappings, validates rows and computes price changes.
"""

import csv
import re
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Any, Union


MAX_SKU_LENGTH = 100
MAX_NAME_LENGTH = 500
MAX_PRICE = 10_000_000
UTF8_BOM = b"\xef\xbb\xbf"

ColumnMappings = Dict[str, Union[str, int]]

# (field, header fragments matched with "in", exact header names)
HEADER_PATTERNS = [
    ("sku", ["varenr", "artikelnr", "sku"], []),
    ("name", ["beskriv", "benævn"], ["navn", "name"]),
    ("cost_price", ["indkøb", "kostpris"], ["nettopris"]),
    ("gross_price", ["bruttopris"], ["brutto"]),
    ("discount_pct", ["rabat"], ["discount", "rabat%"]),
    ("list_price", ["vejl", "liste", "udsalg"], []),
    ("unit", [], ["enhed", "unit"]),
    ("category", ["varegruppe", "hovedgruppe", "kategori"], []),
    ("sub_category", ["undergruppe", "subkat"], []),
    ("manufacturer", ["leverandør", "fabrikant", "manufacturer"], []),
    ("ean", ["stregkode", "barcode"], ["ean"]),
]


@dataclass
class ImportConfig:
    column_mappings: ColumnMappings = field(default_factory=dict)
    delimiter: str = ";"
    encoding: str = "utf-8"
    skip_header_rows: int = 0
    decimal_separator: str = ","


@dataclass
class ParsedRow:
    row_number: int
    raw: Dict[str, str]
    parsed: Dict[str, Any]
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    is_valid: bool = False
    existing_product_id: Optional[str] = None
    is_update: bool = False


@dataclass
class PriceChange:
    sku: str
    product_name: str
    old_cost_price: Optional[float]
    new_cost_price: Optional[float]
    change_percentage: float
    supplier_product_id: Optional[str] = None
    old_list_price: Optional[float] = None
    new_list_price: Optional[float] = None


@dataclass
class ImportResult:
    batch_id: Optional[str]
    total_rows: int
    new_products: int
    updated_products: int
    skipped_rows: int
    status: str
    errors: List[Dict[str, Any]] = field(default_factory=list)
    price_changes: List[PriceChange] = field(default_factory=list)


# ============== Parsing ==============

def parse_danish_number(value: Optional[str]) -> Optional[float]:
    """'1.234,56' -> 1234.56. Plain '12.5' is left as is."""
    if value is None or not value.strip():
        return None

    cleaned = value.strip()
    if "," in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".", 1)

    # Leading numeric part, like parseFloat
    match = re.match(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", cleaned)
    return float(match.group(0)) if match else None


def parse_csv_line(line: str, delimiter: str = ";") -> List[str]:
    """Split one CSV line, honoring quotes and "" escapes"""
    row = next(csv.reader([line], delimiter=delimiter), [])
    return [value.strip() for value in row] or [""]


def split_lines(content: str) -> List[str]:
    content = content.lstrip("\ufeff")
    return [line for line in re.split(r"\r?\n", content) if line.strip()]


def decode_file_content(data: bytes, encoding: str) -> str:
    """Decode with the configured encoding, UTF-8 when it is unknown. A UTF-8 BOM is dropped."""
    if data.startswith(UTF8_BOM):
        data = data[len(UTF8_BOM):]
        encoding = "utf-8"
    try:
        return data.decode(encoding)
    except LookupError:
        return data.decode("utf-8", errors="replace")


# ============== Column Mapping ==============

def detect_column_mappings(headers: List[str], known_mappings: Optional[ColumnMappings] = None) -> Dict[str, int]:
    """
    Header row -> field indices.

    Known mappings (field -> header name) are matched exactly, then by
    substring, then the common Danish wholesaler header names are tried.
    """
    detected: Dict[str, int] = {}
    reverse = {
        value.lower(): key
        for key, value in (known_mappings or {}).items()
        if isinstance(value, str)
    }

    for index, header in enumerate(headers):
        normalized = header.lower().strip()

        if normalized in reverse:
            detected[reverse[normalized]] = index
            continue

        partial = next(
            (key for known, key in reverse.items() if known in normalized or normalized in known),
            None,
        )
        if partial:
            detected[partial] = index
            continue

        if normalized == "netto" and "cost_price" not in detected:
            detected["cost_price"] = index
            continue

        for field_key, fragments, exact in HEADER_PATTERNS:
            if normalized in exact or any(f in normalized for f in fragments):
                detected[field_key] = index
                break

    return detected


# ============== Validation ==============

def validate_sku(sku: str) -> bool:
    return 0 < len(sku) <= MAX_SKU_LENGTH


def validate_name(name: str) -> bool:
    return 0 < len(name) <= MAX_NAME_LENGTH


def validate_price(price: Optional[float]) -> bool:
    if price is None:
        return True
    return 0 <= price < MAX_PRICE


def validate_parsed_row(parsed: Dict[str, Any]) -> List[str]:
    errors = []
    if not validate_sku(parsed["sku"]):
        errors.append("Ugyldigt varenummer")
    if not validate_name(parsed["name"]):
        errors.append("Ugyldigt produktnavn")
    if not validate_price(parsed.get("cost_price")):
        errors.append("Ugyldig kostpris")
    if not validate_price(parsed.get("list_price")):
        errors.append("Ugyldig listepris")
    return errors


def calculate_price_change(old_price: Optional[float], new_price: float) -> float:
    if not old_price:
        return 0
    return (new_price - old_price) / old_price * 100


# ============== Engine ==============

class ImportEngine:
    """Parses one supplier file according to an ImportConfig"""

    def __init__(self, config: ImportConfig):
        self.config = config

    def get_headers(self, content: str) -> List[str]:
        lines = split_lines(content)
        skip = self.config.skip_header_rows
        if len(lines) <= skip:
            return []
        return parse_csv_line(lines[skip], self.config.delimiter)

    def normalize_column_mappings(self, headers: List[str]) -> Dict[str, int]:
        """Header-name mappings -> column indices"""
        header_lower = [h.lower().strip() for h in headers]
        normalized = {}

        for key, value in self.config.column_mappings.items():
            if isinstance(value, int):
                normalized[key] = value
            elif isinstance(value, str) and value.lower().strip() in header_lower:
                normalized[key] = header_lower.index(value.lower().strip())

        return normalized

    def parse_row_values(self, values: List[str], mappings: Dict[str, int]) -> Dict[str, Any]:
        def get(key: str) -> str:
            index = mappings.get(key)
            if index is None or index >= len(values):
                return ""
            return values[index] or ""

        gross_price = parse_danish_number(get("gross_price"))
        discount_pct = parse_danish_number(get("discount_pct"))
        cost_price = parse_danish_number(get("cost_price"))

        # Net price from gross price and discount when no cost column
        if cost_price is None and gross_price and gross_price > 0 and discount_pct is not None:
            cost_price = round(gross_price * (1 - discount_pct / 100), 2)

        min_qty = get("min_order_quantity")

        return {
            "sku": get("sku").strip(),
            "name": get("name").strip(),
            "cost_price": cost_price,
            "list_price": parse_danish_number(get("list_price")),
            "gross_price": gross_price,
            "discount_pct": discount_pct,
            "unit": get("unit").strip() or "stk",
            "category": get("category").strip() or None,
            "sub_category": get("sub_category").strip() or None,
            "manufacturer": get("manufacturer").strip() or None,
            "ean": get("ean").strip() or None,
            "min_order_quantity": (int(min_qty) if min_qty.strip().isdigit() and int(min_qty) else 1) if min_qty else None,
        }

    def parse_csv(self, content: str) -> List[ParsedRow]:
        lines = split_lines(content)
        skip = self.config.skip_header_rows
        if len(lines) <= skip:
            return []

        headers = parse_csv_line(lines[skip], self.config.delimiter)
        mappings = self.normalize_column_mappings(headers)

        rows = []
        for i in range(skip + 1, len(lines)):
            values = parse_csv_line(lines[i], self.config.delimiter)
            parsed = self.parse_row_values(values, mappings)
            rows.append(ParsedRow(
                row_number=i + 1,
                raw={h: values[idx] if idx < len(values) else "" for idx, h in enumerate(headers)},
                parsed=parsed,
                errors=validate_parsed_row(parsed),
            ))
        return rows

    def validate_rows(self, rows: List[ParsedRow], existing_products: Dict[str, str]) -> List[ParsedRow]:
        """Mark rows valid and match them against existing SKU -> product id"""
        for row in rows:
            row.is_valid = not row.errors
            row.existing_product_id = existing_products.get(row.parsed["sku"])
            row.is_update = row.existing_product_id is not None
        return rows


def create_import_result(
    batch_id: Optional[str],
    rows: List[ParsedRow],
    price_changes: List[PriceChange],
    status: str
) -> ImportResult:
    valid = [r for r in rows if r.is_valid]
    return ImportResult(
        batch_id=batch_id,
        total_rows=len(rows),
        new_products=len([r for r in valid if not r.is_update]),
        updated_products=len([r for r in valid if r.is_update]),
        skipped_rows=len(rows) - len(valid),
        status=status,
        errors=[
            {"row": r.row_number, "message": message}
            for r in rows if not r.is_valid
            for message in r.errors
        ],
        price_changes=price_changes,
    )

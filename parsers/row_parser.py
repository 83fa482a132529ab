"""
Row parser for seller bulk uploads.

Turns one raw spreadsheet row (column -> cell value) into a ParsedRow or a
list of field errors. Never both: a row with any required-field problem
produces no parsed data at all.

Recognized columns:
    Product Name, Category, Brand, SKU, Base Price (MWK), Stock Quantity,
    Condition, Description
plus either "Spec: <Name>" columns (electronics template) or numbered
Label_<n> / Value_<n> pairs (general template).
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union
import re
import structlog

import pandas as pd

from models.bulk_upload import Condition, ErrorKind, RowError, TemplateType
from utils.pricing import calculate_display_price
from utils.text_utils import normalize_product_name, normalize_spec_key

logger = structlog.get_logger(__name__)


# Column names
COL_PRODUCT_NAME = "Product Name"
COL_CATEGORY = "Category"
COL_BRAND = "Brand"
COL_SKU = "SKU"
COL_BASE_PRICE = "Base Price (MWK)"
COL_STOCK = "Stock Quantity"
COL_CONDITION = "Condition"
COL_DESCRIPTION = "Description"

BASE_COLUMNS = [
    COL_PRODUCT_NAME,
    COL_CATEGORY,
    COL_BRAND,
    COL_SKU,
    COL_BASE_PRICE,
    COL_STOCK,
    COL_CONDITION,
    COL_DESCRIPTION,
]

SPEC_PREFIX = "Spec:"
LABEL_RE = re.compile(r"^Label_(\d+)$")
VALUE_RE = re.compile(r"^Value_(\d+)$")


# ===================
# RAW ROW CLASSIFICATION
# ===================

@dataclass(frozen=True)
class ElectronicsRow:
    """Row using "Spec: <Name>" attribute columns."""
    values: dict[str, Any]
    attributes: dict[str, str]
    template_type: TemplateType = TemplateType.ELECTRONICS


@dataclass(frozen=True)
class GeneralRow:
    """Row using Label_n / Value_n attribute pairs."""
    values: dict[str, Any]
    attributes: dict[str, str]
    template_type: TemplateType = TemplateType.GENERAL


@dataclass(frozen=True)
class UnrecognizedRow:
    """Row with no attribute columns; template decided from its category later."""
    values: dict[str, Any]
    attributes: dict[str, str] = field(default_factory=dict)
    template_type: TemplateType = TemplateType.AUTO


RawRow = Union[ElectronicsRow, GeneralRow, UnrecognizedRow]


def is_blank(value: Any) -> bool:
    """True for None, NaN/NaT and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return True
    return False


def cell_text(value: Any) -> str:
    """Cell value as trimmed text; whole floats lose their ".0"."""
    if is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def sanitize_raw_data(raw: dict) -> dict[str, Any]:
    """Copy of the raw row that is safe to store as JSON."""
    clean: dict[str, Any] = {}
    for key, value in raw.items():
        if is_blank(value):
            clean[str(key)] = None
        elif hasattr(value, "item") and not isinstance(value, (str, bytes)):
            # numpy scalars from pandas
            clean[str(key)] = value.item()
        elif isinstance(value, (str, int, float, bool)):
            clean[str(key)] = value
        else:
            clean[str(key)] = str(value)
    return clean


def classify_raw_row(raw: dict) -> RawRow:
    """
    Decide the row's template once, extracting its attribute map.

    "Spec:" columns win over Label/Value pairs when a row carries both.
    """
    keys = [str(k) for k in raw.keys()]

    if any(k.startswith(SPEC_PREFIX) for k in keys):
        attributes: dict[str, str] = {}
        for key, value in raw.items():
            key = str(key)
            if not key.startswith(SPEC_PREFIX) or is_blank(value):
                continue
            spec_key = normalize_spec_key(key[len(SPEC_PREFIX):])
            if spec_key:
                attributes[spec_key] = cell_text(value)
        return ElectronicsRow(values=raw, attributes=attributes)

    label_numbers = sorted(
        int(m.group(1)) for m in (LABEL_RE.match(k) for k in keys) if m
    )
    has_values = any(VALUE_RE.match(k) for k in keys)
    if label_numbers or has_values:
        attributes = {}
        for n in label_numbers:
            label = cell_text(raw.get(f"Label_{n}"))
            value = cell_text(raw.get(f"Value_{n}"))
            if not label or not value:
                continue
            spec_key = normalize_spec_key(label)
            if spec_key:
                attributes[spec_key] = value
        return GeneralRow(values=raw, attributes=attributes)

    return UnrecognizedRow(values=raw)


# ===================
# PARSE RESULTS
# ===================

@dataclass
class ParsedRow:
    """Successfully parsed row, ready to stage."""
    row_number: int
    product_name: str
    normalized_name: str
    base_price: Decimal
    display_price: int
    stock_quantity: int
    condition: Condition
    template_type: TemplateType
    attributes: dict[str, str] = field(default_factory=dict)
    category_name: Optional[str] = None
    brand: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None

    def to_record(self) -> dict:
        """Columns for the staging table."""
        return {
            "product_name": self.product_name,
            "normalized_name": self.normalized_name,
            "category_name": self.category_name,
            "brand": self.brand,
            "sku": self.sku,
            "base_price": float(self.base_price),
            "display_price": self.display_price,
            "stock_quantity": self.stock_quantity,
            "condition": self.condition.value,
            "description": self.description,
            "attributes": self.attributes,
            "template_type": self.template_type.value,
        }


@dataclass
class RowParseResult:
    """Outcome of parsing one row."""
    row_number: int
    raw_data: dict[str, Any]
    template_type: TemplateType = TemplateType.AUTO
    parsed: Optional[ParsedRow] = None
    errors: list[RowError] = field(default_factory=list)
    blank: bool = False

    @property
    def success(self) -> bool:
        """True if the row parsed without errors."""
        return self.parsed is not None and not self.errors


# ===================
# FIELD PARSERS
# ===================

def _to_decimal(value: Any) -> Optional[Decimal]:
    if is_blank(value) or isinstance(value, bool):
        return None
    text = str(value).replace(",", "").strip()
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return number


def parse_price(value: Any) -> Optional[Decimal]:
    """Positive price, thousands separators allowed. None if invalid."""
    number = _to_decimal(value)
    if number is None or number <= 0:
        return None
    return number


def parse_stock(value: Any) -> Optional[int]:
    """Non-negative whole number ("5", 5, 5.0, "1,200"). None if invalid."""
    number = _to_decimal(value)
    if number is None or number < 0 or number != number.to_integral_value():
        return None
    return int(number)


def parse_condition(value: Any) -> Condition:
    """
    Map a condition cell to a Condition.

    Lenient: blank or unknown values become NEW instead of failing the row.
    """
    text = cell_text(value).upper()
    if not text:
        return Condition.NEW
    text = re.sub(r"[\s-]+", "_", text)
    try:
        return Condition(text)
    except ValueError:
        logger.debug("condition_defaulted", provided=text)
        return Condition.NEW


def _optional_text(value: Any) -> Optional[str]:
    text = cell_text(value)
    return text or None


# ===================
# ROW PARSING
# ===================

def parse_row(raw: dict, row_number: int) -> RowParseResult:
    """
    Parse one raw row.

    Args:
        raw: Column -> cell value
        row_number: 1-based row number within the upload

    Returns:
        RowParseResult with either parsed data or errors (or blank=True)
    """
    raw_data = sanitize_raw_data(raw)

    if all(is_blank(v) for v in raw.values()):
        return RowParseResult(row_number=row_number, raw_data=raw_data, blank=True)

    classified = classify_raw_row(raw)
    errors: list[RowError] = []

    product_name = cell_text(raw.get(COL_PRODUCT_NAME))
    if not product_name:
        errors.append(RowError(
            row=row_number,
            field="Product Name",
            message="Product name is required",
            kind=ErrorKind.PARSE,
        ))

    base_price = parse_price(raw.get(COL_BASE_PRICE))
    if base_price is None:
        errors.append(RowError(
            row=row_number,
            field="Base Price",
            message="Base price must be a positive number",
            kind=ErrorKind.PARSE,
        ))

    stock_quantity = parse_stock(raw.get(COL_STOCK))
    if stock_quantity is None:
        errors.append(RowError(
            row=row_number,
            field="Stock Quantity",
            message="Stock quantity must be a non-negative integer",
            kind=ErrorKind.PARSE,
        ))

    if errors:
        return RowParseResult(
            row_number=row_number,
            raw_data=raw_data,
            template_type=classified.template_type,
            errors=errors,
        )

    sku = _optional_text(raw.get(COL_SKU))
    parsed = ParsedRow(
        row_number=row_number,
        product_name=product_name,
        normalized_name=normalize_product_name(product_name),
        base_price=base_price,
        display_price=calculate_display_price(base_price),
        stock_quantity=stock_quantity,
        condition=parse_condition(raw.get(COL_CONDITION)),
        template_type=classified.template_type,
        attributes=dict(classified.attributes),
        category_name=_optional_text(raw.get(COL_CATEGORY)),
        brand=_optional_text(raw.get(COL_BRAND)),
        sku=sku.upper() if sku else None,
        description=_optional_text(raw.get(COL_DESCRIPTION)),
    )

    return RowParseResult(
        row_number=row_number,
        raw_data=raw_data,
        template_type=classified.template_type,
        parsed=parsed,
    )


def parse_rows(raw_rows: list[dict], first_row_number: int = 1) -> list[RowParseResult]:
    """
    Parse a sequence of rows, dropping blank ones.

    Row numbers are assigned by position, so a blank row still uses up
    its number and later rows keep their spreadsheet position.
    """
    results = []
    for index, raw in enumerate(raw_rows):
        result = parse_row(raw, first_row_number + index)
        if not result.blank:
            results.append(result)

    logger.info(
        "rows_parsed",
        total=len(raw_rows),
        parsed=sum(1 for r in results if r.success),
        with_errors=sum(1 for r in results if r.errors),
    )
    return results


def records_from_dataframe(df: pd.DataFrame) -> list[dict]:
    """Convert a sheet read by pandas into raw rows for parse_rows."""
    df = df.rename(columns=lambda c: str(c).strip())
    return df.to_dict(orient="records")

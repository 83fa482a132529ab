"""
Unit tests for the bulk upload row parser.

Run: pytest tests/unit/test_row_parser.py -v
"""

from decimal import Decimal

import pandas as pd
import pytest

from models.bulk_upload import Condition, ErrorKind, TemplateType
from parsers.row_parser import (
    ElectronicsRow,
    GeneralRow,
    UnrecognizedRow,
    cell_text,
    classify_raw_row,
    parse_condition,
    parse_price,
    parse_row,
    parse_rows,
    parse_stock,
    records_from_dataframe,
    sanitize_raw_data,
)
from tests.factories import RawRowFactory


class TestClassifyRawRow:
    """Tests for classify_raw_row()"""

    def test_spec_columns_make_electronics_row(self):
        """Should extract normalized keys from "Spec:" columns."""
        raw = RawRowFactory.electronics()

        result = classify_raw_row(raw)

        assert isinstance(result, ElectronicsRow)
        assert result.template_type == TemplateType.ELECTRONICS
        assert result.attributes == {
            "ram": "8GB",
            "storage": "128GB",
            "screen_size": "6.4 inches",
            "battery": "5000mAh",
        }

    def test_blank_spec_cells_are_dropped(self):
        raw = RawRowFactory.electronics(**{"Spec: Battery": None, "Spec: Camera": "  "})

        result = classify_raw_row(raw)

        assert "battery" not in result.attributes
        assert "camera" not in result.attributes

    def test_label_value_pairs_make_general_row(self):
        """Should pair Label_n with Value_n."""
        raw = RawRowFactory.general(Label_2="Size", Value_2="Queen")

        result = classify_raw_row(raw)

        assert isinstance(result, GeneralRow)
        assert result.attributes == {"material": "Cotton", "size": "Queen"}

    def test_label_without_value_is_skipped(self):
        raw = RawRowFactory.general(Label_2="Size", Value_2="")

        result = classify_raw_row(raw)

        assert result.attributes == {"material": "Cotton"}

    def test_spec_columns_win_over_label_pairs(self):
        """Row carrying both shapes is treated as electronics."""
        raw = RawRowFactory.electronics(Label_1="Colour", Value_1="Black")

        result = classify_raw_row(raw)

        assert isinstance(result, ElectronicsRow)
        assert "colour" not in result.attributes

    def test_no_attribute_columns_is_unrecognized(self):
        raw = RawRowFactory.create()

        result = classify_raw_row(raw)

        assert isinstance(result, UnrecognizedRow)
        assert result.template_type == TemplateType.AUTO
        assert result.attributes == {}


class TestFieldParsers:
    """Tests for parse_price(), parse_stock(), parse_condition()"""

    @pytest.mark.parametrize("value,expected", [
        (1350000, Decimal("1350000")),
        ("1,350,000", Decimal("1350000")),
        ("  2500.50 ", Decimal("2500.50")),
    ])
    def test_parse_price_accepts_positive_numbers(self, value, expected):
        assert parse_price(value) == expected

    @pytest.mark.parametrize("value", [0, -5, "abc", "", None, float("nan"), True])
    def test_parse_price_rejects_invalid(self, value):
        assert parse_price(value) is None

    @pytest.mark.parametrize("value,expected", [
        (5, 5),
        ("5", 5),
        (5.0, 5),
        ("1,200", 1200),
        (0, 0),
    ])
    def test_parse_stock_accepts_whole_numbers(self, value, expected):
        assert parse_stock(value) == expected

    @pytest.mark.parametrize("value", [-1, "2.5", "many", None])
    def test_parse_stock_rejects_invalid(self, value):
        assert parse_stock(value) is None

    @pytest.mark.parametrize("value,expected", [
        ("New", Condition.NEW),
        ("refurbished", Condition.REFURBISHED),
        ("Used - Good", Condition.USED_GOOD),
        ("used like new", Condition.USED_LIKE_NEW),
        ("", Condition.NEW),
        ("mint", Condition.NEW),
    ])
    def test_parse_condition_is_lenient(self, value, expected):
        assert parse_condition(value) == expected


class TestParseRow:
    """Tests for parse_row()"""

    def test_parses_electronics_row(self):
        """Samsung Galaxy A54 at 1,350,000 gets the marked-up display price."""
        raw = RawRowFactory.electronics(SKU="sgs-a54")

        result = parse_row(raw, row_number=2)

        assert result.success
        parsed = result.parsed
        assert parsed.row_number == 2
        assert parsed.product_name == "Samsung Galaxy A54"
        assert parsed.normalized_name == "samsung galaxy a54"
        assert parsed.base_price == Decimal("1350000")
        assert parsed.display_price == 1421010
        assert parsed.stock_quantity == 5
        assert parsed.sku == "SGS-A54"
        assert parsed.brand == "Samsung"
        assert parsed.category_name == "Smartphones"
        assert parsed.template_type == TemplateType.ELECTRONICS

    def test_missing_name_is_an_error(self):
        raw = RawRowFactory.create(**{"Product Name": "   "})

        result = parse_row(raw, row_number=3)

        assert not result.success
        assert result.parsed is None
        assert result.errors[0].field == "Product Name"
        assert result.errors[0].message == "Product name is required"
        assert result.errors[0].row == 3
        assert result.errors[0].kind == ErrorKind.PARSE

    def test_collects_every_field_error(self):
        """All required-field problems are reported, not just the first."""
        raw = RawRowFactory.create(**{
            "Product Name": "",
            "Base Price (MWK)": "free",
            "Stock Quantity": -3,
        })

        result = parse_row(raw, row_number=1)

        assert [e.field for e in result.errors] == ["Product Name", "Base Price", "Stock Quantity"]

    def test_errors_keep_template_type(self):
        raw = RawRowFactory.electronics(**{"Base Price (MWK)": 0})

        result = parse_row(raw, row_number=1)

        assert result.template_type == TemplateType.ELECTRONICS
        assert result.errors[0].message == "Base price must be a positive number"

    def test_blank_row_is_flagged(self):
        raw = {"Product Name": None, "Base Price (MWK)": "", "Stock Quantity": float("nan")}

        result = parse_row(raw, row_number=4)

        assert result.blank
        assert result.errors == []

    def test_to_record_has_staging_columns(self):
        result = parse_row(RawRowFactory.general(), row_number=1)

        record = result.parsed.to_record()

        assert record["condition"] == "NEW"
        assert record["template_type"] == "GENERAL"
        assert record["base_price"] == 25000.0
        assert record["display_price"] == 26315
        assert record["attributes"] == {"material": "Cotton"}


class TestParseRows:
    """Tests for parse_rows()"""

    def test_blank_rows_are_dropped_but_keep_their_number(self):
        rows = [
            RawRowFactory.create(),
            {"Product Name": "", "Base Price (MWK)": None},
            RawRowFactory.create(),
        ]

        results = parse_rows(rows)

        assert [r.row_number for r in results] == [1, 3]

    def test_first_row_number_offsets_numbering(self):
        rows = [RawRowFactory.create(), RawRowFactory.create()]

        results = parse_rows(rows, first_row_number=2)

        assert [r.row_number for r in results] == [2, 3]


class TestCellHelpers:
    """Tests for cell_text(), sanitize_raw_data(), records_from_dataframe()"""

    def test_cell_text_drops_float_suffix(self):
        assert cell_text(8.0) == "8"
        assert cell_text(6.4) == "6.4"
        assert cell_text(None) == ""

    def test_sanitize_raw_data_turns_nan_into_none(self):
        clean = sanitize_raw_data({"Brand": float("nan"), "Stock Quantity": 3, "Name": " x "})

        assert clean == {"Brand": None, "Stock Quantity": 3, "Name": " x "}

    def test_records_from_dataframe_strips_headers(self):
        df = pd.DataFrame({" Product Name ": ["Tecno Spark 20"], "Base Price (MWK)": [180000]})

        records = records_from_dataframe(df)

        assert records[0]["Product Name"] == "Tecno Spark 20"
        result = parse_rows(records)[0]
        assert result.errors[0].field == "Stock Quantity"

    def test_records_from_dataframe_rows_are_json_safe(self):
        df = pd.DataFrame({"Product Name": ["Kettle"], "Stock Quantity": [4], "Brand": [None]})

        raw = sanitize_raw_data(records_from_dataframe(df)[0])

        assert raw["Stock Quantity"] == 4
        assert type(raw["Stock Quantity"]) is int
        assert raw["Brand"] is None

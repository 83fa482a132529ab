"""
Unit tests for CorrectionService and error reason mapping.

Run: pytest tests/unit/test_correction_service.py -v
"""

from datetime import date

import pytest
from openpyxl import load_workbook

from exceptions import BatchNotFoundError
from models.bulk_upload import ErrorKind, RowError, TemplateType
from services.correction_service import (
    CorrectionService,
    correction_headers,
    generate_error_summary,
    map_to_error_code,
)
from tests.factories import BatchFactory, StagingRowFactory


def error(field, message, kind=ErrorKind.PARSE):
    return RowError(row=1, field=field, message=message, kind=kind)


class TestMapToErrorCode:
    """Tests for map_to_error_code()"""

    @pytest.mark.parametrize("field,message,kind,expected", [
        ("Base Price", "Base price must be a positive number", ErrorKind.PARSE, "INVALID_PRICE"),
        ("Base Price", "Base price is required", ErrorKind.PARSE, "MISSING_PRICE"),
        ("Stock Quantity", "Stock quantity must be a non-negative integer", ErrorKind.PARSE, "INVALID_STOCK"),
        ("Product Name", "Product name is required", ErrorKind.PARSE, "MISSING_PRODUCT_NAME"),
        ("Product Name", "Duplicate of row 2 in this upload", ErrorKind.DUPLICATE, "DUPLICATE_PRODUCT"),
        ("SKU", 'Duplicate: SKU "A" already exists in your shop', ErrorKind.DUPLICATE, "DUPLICATE_SKU"),
        ("SKU", "SKU too long", ErrorKind.PARSE, "INVALID_SKU"),
        ("SKU", 'Duplicate: SKU "LOWPRICE-01" already exists in your shop', ErrorKind.DUPLICATE, "DUPLICATE_SKU"),
        ("Product Name", 'Duplicate of "Spec Sheet Printer" in row 3', ErrorKind.DUPLICATE, "DUPLICATE_PRODUCT"),
        ("Base Price", "Price format not recognised", ErrorKind.PARSE, "MISSING_PRICE"),
        ("Notes", "price is required", ErrorKind.PARSE, "MISSING_PRICE"),
        ("Spec: RAM", "ram is required", ErrorKind.PARSE, "MISSING_TECH_SPECS"),
        ("Condition", "Unknown condition", ErrorKind.PARSE, "INVALID_CONDITION"),
        ("Category", "Unknown category", ErrorKind.PARSE, "INVALID_CATEGORY"),
        ("Attributes", "Invalid JSON", ErrorKind.PARSE, "INVALID_JSON_FORMAT"),
        ("file", "Could not open", ErrorKind.PARSE, "FILE_PARSE_ERROR"),
        ("commit", "Listing insert returned no data", ErrorKind.COMMIT, "SYSTEM_ERROR"),
        ("weird", "something", ErrorKind.PARSE, "UNKNOWN_ERROR"),
    ])
    def test_maps(self, field, message, kind, expected):
        assert map_to_error_code(error(field, message, kind)) == expected


class TestGenerateErrorSummary:
    """Tests for generate_error_summary()"""

    def test_joins_unique_reasons(self):
        errors = [
            error("Base Price", "Base price must be a positive number"),
            error("Base Price", "Base price must be a positive number"),
            error("Stock Quantity", "Stock quantity must be a non-negative integer"),
        ]

        result = generate_error_summary(errors)

        assert result == "Price must be a positive number; Stock quantity must be a non-negative number"

    def test_appends_missing_specs(self):
        result = generate_error_summary(
            [error("Product Name", "Product name is required")],
            missing_specs=["ram", "storage"]
        )

        assert result == "Product name is required; Missing specs: ram, storage"

    def test_only_missing_specs(self):
        assert generate_error_summary([], ["ram"]) == "Missing required specs: ram"

    def test_nothing_known(self):
        assert generate_error_summary([]) == "An unknown error occurred"
        assert generate_error_summary([], lang="ny") == "Vuto losadziwika linachitika"

    def test_chichewa(self):
        result = generate_error_summary([error("Base Price", "Base price must be a positive number")], lang="ny")

        assert result == "Mtengo uyenera kukhala nambala yabwino"


class TestCorrectionHeaders:
    """Tests for correction_headers()"""

    def test_electronics_columns(self):
        rows = [{"Spec: RAM": "8GB"}, {"Spec: Storage": "", "Spec: RAM": None}]

        headers = correction_headers(rows, TemplateType.ELECTRONICS)

        assert headers[0] == "Row_Reference"
        assert headers[1] == "Product Name"
        assert headers[9:] == ["Spec: RAM", "Spec: Storage", "Error_Reason", "Error_Reason_Chichewa"]

    def test_general_columns_only_used_pairs(self):
        rows = [{"Label_1": "Material", "Value_1": "Cotton"}, {"Label_3": "Size", "Value_3": "XL"}]

        headers = correction_headers(rows, TemplateType.GENERAL, include_secondary=False)

        assert headers[9:] == ["Label_1", "Value_1", "Label_3", "Value_3", "Error_Reason"]


@pytest.fixture
def failed_batch(mock_supabase):
    batch = BatchFactory.create(template_type="ELECTRONICS", file_name="phones.xlsx")
    rows = [
        StagingRowFactory.valid(batch["id"], row_number=1),
        StagingRowFactory.invalid(
            batch["id"],
            row_number=2,
            raw_data={"Product Name": "Galaxy A15", "Base Price (MWK)": "-1", "Spec: RAM": "4GB"},
        ),
        StagingRowFactory.create(
            batch["id"],
            row_number=3,
            validation_status="SKIPPED",
            raw_data={"Product Name": "Galaxy A15", "Base Price (MWK)": "250000", "Spec: RAM": "4GB"},
            missing_specs=["storage"],
            errors=[{
                "row": 3,
                "field": "Product Name",
                "message": "Duplicate of row 1 in this upload",
                "kind": "DUPLICATE",
            }],
        ),
    ]
    mock_supabase.set_table_data("bulk_uploads", [batch])
    mock_supabase.set_table_data("bulk_upload_staging", rows)
    return batch


class TestCorrectionService:
    """Tests for CorrectionService"""

    def test_generate_correction_data(self, mock_db, failed_batch):
        rows, summary = CorrectionService().generate_correction_data("shop-1", failed_batch["id"])

        assert [r["Row_Reference"] for r in rows] == [2, 3]
        assert rows[0]["Base Price (MWK)"] == "-1"
        assert rows[0]["Error_Reason"] == "Price must be a positive number"
        assert rows[1]["Error_Reason"] == (
            "This product already exists in your shop; Missing specs: storage"
        )
        assert rows[1]["Error_Reason_Chichewa"].startswith("Katundu ameneyu alipo kale")
        assert summary.total_error_rows == 2
        assert summary.invalid == 1
        assert summary.skipped == 1
        assert summary.error_breakdown == {
            "INVALID_PRICE": 1,
            "DUPLICATE_PRODUCT": 1,
            "MISSING_TECH_SPECS": 1,
        }

    def test_secondary_language_can_be_left_out(self, mock_db, failed_batch):
        rows, _ = CorrectionService().generate_correction_data(
            "shop-1", failed_batch["id"], include_secondary=False
        )

        assert rows[0]["Error_Reason_Chichewa"] == ""

    def test_unknown_batch(self, mock_db):
        with pytest.raises(BatchNotFoundError):
            CorrectionService().generate_correction_data("shop-1", "missing")

    def test_build_correction_table(self, mock_db, failed_batch):
        df, summary = CorrectionService().build_correction_table("shop-1", failed_batch["id"])

        assert list(df.columns)[-3:] == ["Spec: RAM", "Error_Reason", "Error_Reason_Chichewa"]
        assert len(df) == 2
        assert df.iloc[0]["Brand"] == ""
        assert df.iloc[1]["Spec: RAM"] == "4GB"

    def test_generate_correction_workbook(self, mock_db, failed_batch):
        output, file_name, summary = CorrectionService().generate_correction_workbook(
            "shop-1", failed_batch["id"]
        )

        assert file_name == f"phones_corrections_{date.today().isoformat()}.xlsx"
        wb = load_workbook(output)
        assert wb.sheetnames == ["Instructions", "Corrections"]
        sheet = wb["Corrections"]
        assert sheet.cell(row=1, column=1).value == "Row_Reference"
        assert sheet.cell(row=1, column=1).font.bold
        assert sheet.cell(row=2, column=1).value == 2
        instructions = [c.value for c in wb["Instructions"]["A"] if c.value]
        assert "CHILANKHULO CHA CHICHEWA:" in instructions

    def test_correction_preview_pages(self, mock_db, failed_batch):
        preview = CorrectionService().get_correction_preview("shop-1", failed_batch["id"], page=2, limit=1)

        assert preview.total == 2
        assert preview.total_pages == 2
        assert [r["Row_Reference"] for r in preview.rows] == [3]
        assert preview.has_prev
        assert not preview.has_next

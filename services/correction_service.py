"""
Correction service.

Builds the fix-and-re-upload export for a batch: every INVALID or SKIPPED
row with its original columns plus the reason it failed, in English and
Chichewa.
"""

from datetime import date
from io import BytesIO
from typing import Optional
import re

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
import pandas as pd
import structlog

from models.base import PaginationParams, total_pages
from models.bulk_upload import (
    CorrectionPreview,
    CorrectionSummary,
    ErrorKind,
    RowError,
    StagingRowResponse,
    TemplateType,
    UploadBatchResponse,
    ValidationStatus,
)
from parsers.row_parser import BASE_COLUMNS, SPEC_PREFIX
from services.staging_service import StagingService
from utils.error_messages import get_error_message

logger = structlog.get_logger(__name__)

ROW_REFERENCE = "Row_Reference"
ERROR_REASON = "Error_Reason"
ERROR_REASON_SECONDARY = "Error_Reason_Chichewa"
MAX_LABEL_PAIRS = 10


def map_to_error_code(error: RowError) -> str:
    """
    Derive a reason code from a structured row error.

    Uses the error's kind and field first and its message only to tell
    variants of the same field apart, so codes are stable for a given
    error record.
    """
    if error.kind == ErrorKind.COMMIT:
        return "SYSTEM_ERROR"

    field = (error.field or "").lower()
    message = (error.message or "").lower()

    if error.kind == ErrorKind.DUPLICATE:
        return "DUPLICATE_SKU" if "sku" in field else "DUPLICATE_PRODUCT"

    if "sku" in field:
        return "DUPLICATE_SKU" if "duplicate" in message else "INVALID_SKU"

    if "product" in field and "name" in field:
        if "exists" in message or "duplicate" in message:
            return "DUPLICATE_PRODUCT"
        return "MISSING_PRODUCT_NAME"

    if "price" in field:
        return "INVALID_PRICE" if "positive" in message else "MISSING_PRICE"

    if "stock" in field or "quantity" in field:
        return "INVALID_STOCK"

    if "spec" in field:
        return "MISSING_TECH_SPECS"

    if "condition" in field:
        return "INVALID_CONDITION"

    if "category" in field:
        return "INVALID_CATEGORY"

    if field == "file":
        return "FILE_PARSE_ERROR"

    # Unrecognised field: fall back to the message
    if "json" in message or "format" in message:
        return "INVALID_JSON_FORMAT"

    if "spec" in message:
        return "MISSING_TECH_SPECS"

    if "price" in message:
        return "INVALID_PRICE" if "positive" in message else "MISSING_PRICE"

    return "UNKNOWN_ERROR"


def generate_error_summary(
    errors: list[RowError],
    missing_specs: Optional[list[str]] = None,
    lang: str = "en"
) -> str:
    """
    One-line reason for a row, e.g. "Product name is required; Missing specs: ram".

    Repeated codes are reported once, in first-seen order.
    """
    missing_specs = missing_specs or []
    spec_list = ", ".join(missing_specs)

    if not errors:
        if missing_specs:
            return get_error_message("missing_required_specs", lang, specs=spec_list)
        return get_error_message("UNKNOWN_ERROR", lang)

    codes = list(dict.fromkeys(map_to_error_code(e) for e in errors))
    messages = [get_error_message(code, lang) for code in codes]

    if missing_specs:
        messages.append(get_error_message("missing_specs", lang, specs=spec_list))

    return "; ".join(messages)


def correction_headers(
    rows: list[dict],
    template_type: TemplateType,
    include_secondary: bool = True
) -> list[str]:
    """
    Column order for the correction table.

    Base columns first, then the template's attribute columns, then the
    error reasons.
    """
    headers = [ROW_REFERENCE] + BASE_COLUMNS

    spec_columns: list[str] = []
    for row in rows:
        for column in row:
            if column.lower().startswith(SPEC_PREFIX.lower()) and column not in spec_columns:
                spec_columns.append(column)

    if template_type == TemplateType.ELECTRONICS or (template_type == TemplateType.AUTO and spec_columns):
        headers += spec_columns
    else:
        for i in range(1, MAX_LABEL_PAIRS + 1):
            if any(row.get(f"Label_{i}") or row.get(f"Value_{i}") for row in rows):
                headers += [f"Label_{i}", f"Value_{i}"]

    headers.append(ERROR_REASON)
    if include_secondary:
        headers.append(ERROR_REASON_SECONDARY)
    return headers


class CorrectionService:
    """Correction exports for staged batches."""

    def __init__(self, staging: Optional[StagingService] = None):
        self.staging = staging or StagingService()

    def get_error_rows(self, shop_id: str, batch_id: str) -> tuple[UploadBatchResponse, list[StagingRowResponse]]:
        """
        INVALID and SKIPPED rows of a batch, in row order.

        Raises:
            BatchNotFoundError: Unknown batch for this shop
        """
        batch = self.staging.get_batch(shop_id, batch_id)
        rows = self.staging.get_rows(
            batch_id,
            statuses=[ValidationStatus.INVALID, ValidationStatus.SKIPPED]
        )
        return batch, rows

    def generate_correction_data(
        self,
        shop_id: str,
        batch_id: str,
        include_secondary: bool = True
    ) -> tuple[list[dict], CorrectionSummary]:
        """
        Correction rows and a summary of why they failed.

        Returns:
            Tuple of (rows, summary). Each row holds Row_Reference, the
            original columns, Error_Reason and Error_Reason_Chichewa.
        """
        _, error_rows = self.get_error_rows(shop_id, batch_id)
        return self._build_rows(batch_id, error_rows, include_secondary)

    def _build_rows(
        self,
        batch_id: str,
        error_rows: list[StagingRowResponse],
        include_secondary: bool
    ) -> tuple[list[dict], CorrectionSummary]:
        breakdown: dict[str, int] = {}
        rows = []

        for row in error_rows:
            for error in row.errors:
                code = map_to_error_code(error)
                breakdown[code] = breakdown.get(code, 0) + 1
            if row.missing_specs:
                breakdown["MISSING_TECH_SPECS"] = breakdown.get("MISSING_TECH_SPECS", 0) + 1

            rows.append({
                ROW_REFERENCE: row.row_number,
                **row.raw_data,
                ERROR_REASON: generate_error_summary(row.errors, row.missing_specs, "en"),
                ERROR_REASON_SECONDARY: (
                    generate_error_summary(row.errors, row.missing_specs, "ny")
                    if include_secondary else ""
                ),
            })

        summary = CorrectionSummary(
            batch_id=batch_id,
            total_error_rows=len(error_rows),
            invalid=sum(1 for r in error_rows if r.validation_status == ValidationStatus.INVALID),
            skipped=sum(1 for r in error_rows if r.validation_status == ValidationStatus.SKIPPED),
            error_breakdown=breakdown,
        )

        logger.info(
            "correction_data_generated",
            batch_id=batch_id,
            rows=len(rows),
            breakdown=breakdown
        )

        return rows, summary

    def build_correction_table(
        self,
        shop_id: str,
        batch_id: str,
        include_secondary: bool = True
    ) -> tuple[pd.DataFrame, CorrectionSummary]:
        """Correction rows as a DataFrame with template-aware column order."""
        batch, error_rows = self.get_error_rows(shop_id, batch_id)
        rows, summary = self._build_rows(batch_id, error_rows, include_secondary)

        headers = correction_headers(rows, batch.template_type, include_secondary)
        df = pd.DataFrame(rows, columns=headers)
        df = df.astype(object).where(pd.notna(df), "")
        return df, summary

    def generate_correction_workbook(
        self,
        shop_id: str,
        batch_id: str,
        include_secondary: bool = True
    ) -> tuple[BytesIO, str, CorrectionSummary]:
        """
        Excel workbook with an Instructions sheet and a Corrections sheet.

        Returns:
            Tuple of (file contents, suggested file name, summary)
        """
        batch = self.staging.get_batch(shop_id, batch_id)
        df, summary = self.build_correction_table(shop_id, batch_id, include_secondary)

        wb = Workbook()
        ws = wb.active
        ws.title = "Instructions"
        ws.column_dimensions["A"].width = 60

        instructions = [
            "CORRECTION FILE - Fix and Re-upload",
            "",
            "This file contains rows that failed validation.",
            "",
            "HOW TO FIX:",
            f'1. Review the "{ERROR_REASON}" column for each row',
            "2. Fix the highlighted issues in the data columns",
            f'3. Do NOT change the "{ROW_REFERENCE}" column',
            "4. Save and re-upload this file",
            "",
            "SUMMARY:",
            f"Total rows to fix: {summary.total_error_rows}",
            "",
            "ERROR BREAKDOWN:",
            *[f"- {code}: {count} rows" for code, count in summary.error_breakdown.items()],
        ]
        if include_secondary:
            instructions += [
                "",
                "CHILANKHULO CHA CHICHEWA:",
                f'Onetsetsani kolamu ya "{ERROR_REASON_SECONDARY}" kuti mumvetse vuto.',
            ]
        for line in instructions:
            ws.append([line])
        ws["A1"].font = Font(bold=True, size=14)

        data = wb.create_sheet("Corrections")
        headers = list(df.columns)
        data.append(headers)
        for values in df.itertuples(index=False):
            data.append(list(values))

        header_fill = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
        for cell in data[1]:
            cell.font = Font(bold=True)
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

        for index, header in enumerate(headers, start=1):
            letter = data.cell(row=1, column=index).column_letter
            data.column_dimensions[letter].width = 50 if "Error" in header else max(len(header) + 5, 15)

        output = BytesIO()
        wb.save(output)
        output.seek(0)

        stem = re.sub(r"\.[^.]+$", "", batch.file_name or "") or "upload"
        file_name = f"{stem}_corrections_{date.today().isoformat()}.xlsx"

        logger.info("correction_workbook_generated", batch_id=batch_id, rows=len(df))

        return output, file_name, summary

    def get_correction_preview(
        self,
        shop_id: str,
        batch_id: str,
        page: int = 1,
        limit: int = 20
    ) -> CorrectionPreview:
        """One page of correction rows with the full summary."""
        rows, summary = self.generate_correction_data(shop_id, batch_id)
        params = PaginationParams(page=page, page_size=limit)

        return CorrectionPreview(
            rows=rows[params.offset:params.offset + params.page_size],
            summary=summary,
            page=params.page,
            page_size=params.page_size,
            total=len(rows),
            total_pages=total_pages(len(rows), params.page_size),
        )


# Singleton instance for convenience
_correction_service: Optional[CorrectionService] = None

def get_correction_service() -> CorrectionService:
    """Get or create CorrectionService instance."""
    global _correction_service
    if _correction_service is None:
        _correction_service = CorrectionService()
    return _correction_service

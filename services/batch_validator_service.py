"""
Batch validator service.

Walks a batch's PENDING staging rows in row order and decides each row's
fate: INVALID (parse errors), SKIPPED (duplicate) or VALID, recording the
catalog match and spec check on the row.
"""

from collections import Counter
from typing import Optional
import structlog

from config import get_supabase_client
from exceptions import AppError, DatabaseError
from models.bulk_upload import (
    ErrorKind,
    RowError,
    StagingRowResponse,
    StagingSummary,
    TemplateType,
    ValidationStatus,
)
from models.catalog import ListingStatus
from services.product_matching_service import ProductMatchingService
from services.spec_rule_repository import is_tech_category
from services.spec_validator_service import SpecValidatorService
from services.staging_service import (
    StagingService,
    dominant_template,
    ensure_staging,
    utc_now,
)

logger = structlog.get_logger(__name__)

ID_CHUNK_SIZE = 200


def resolve_template(template_type: TemplateType, category_name: Optional[str]) -> TemplateType:
    """AUTO rows become ELECTRONICS for tech categories, GENERAL otherwise."""
    if template_type != TemplateType.AUTO:
        return template_type
    return TemplateType.ELECTRONICS if is_tech_category(category_name) else TemplateType.GENERAL


def summarize_rows(batch_id: str, rows: list[StagingRowResponse]) -> StagingSummary:
    """Batch counters derived from the rows themselves."""
    statuses = Counter(r.validation_status for r in rows)
    ready = [
        r for r in rows
        if r.validation_status in (ValidationStatus.VALID, ValidationStatus.COMMITTED)
    ]
    return StagingSummary(
        batch_id=batch_id,
        template_type=dominant_template([r.template_type for r in rows]),
        total_rows=len(rows),
        valid=len(ready),
        invalid=statuses[ValidationStatus.INVALID],
        skipped=statuses[ValidationStatus.SKIPPED],
        needs_specs=sum(1 for r in ready if r.target_listing_status == ListingStatus.NEEDS_SPECS),
        needs_images=sum(1 for r in ready if r.target_listing_status == ListingStatus.NEEDS_IMAGES),
        new_products=sum(1 for r in ready if r.will_create_product),
    )


class BatchValidatorService:
    """
    Row-by-row validation of a staged batch.

    Rows are handled strictly in ascending row number: within-batch
    duplicates are only detected against rows processed earlier.
    """

    def __init__(
        self,
        staging: Optional[StagingService] = None,
        matcher: Optional[ProductMatchingService] = None,
        spec_validator: Optional[SpecValidatorService] = None
    ):
        self.db = get_supabase_client()
        self.staging = staging or StagingService()
        self.matcher = matcher or ProductMatchingService()
        self.spec_validator = spec_validator or SpecValidatorService()

    # ===================
    # SHOP LOOKUPS
    # ===================

    def load_shop_listing_keys(self, shop_id: str) -> tuple[set[str], set[str]]:
        """
        Normalized product names and SKUs already listed by the shop.

        Returns:
            Tuple of (normalized names, upper-cased SKUs)
        """
        try:
            listings = (
                self.db.table("shop_products")
                .select("product_id, sku")
                .eq("shop_id", shop_id)
                .execute()
            ).data or []

            skus = {l["sku"].strip().upper() for l in listings if l.get("sku")}
            product_ids = list({l["product_id"] for l in listings if l.get("product_id")})

            names: set[str] = set()
            for start in range(0, len(product_ids), ID_CHUNK_SIZE):
                result = (
                    self.db.table("products")
                    .select("id, normalized_name")
                    .in_("id", product_ids[start:start + ID_CHUNK_SIZE])
                    .execute()
                )
                names.update(p["normalized_name"] for p in result.data or [] if p.get("normalized_name"))

            return names, skus

        except Exception as e:
            logger.error("load_shop_listings_failed", shop_id=shop_id, error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # VALIDATION
    # ===================

    def validate_batch(self, shop_id: str, batch_id: str) -> StagingSummary:
        """
        Validate every PENDING row of a STAGING batch and update its counters.

        Row problems never abort the batch; they are recorded on the row.

        Raises:
            BatchNotFoundError: Unknown batch
            BatchStateError: Batch is not STAGING
        """
        batch = self.staging.get_batch(shop_id, batch_id)
        ensure_staging(batch)

        rows = self.staging.get_rows(batch_id)
        existing_names, existing_skus = self.load_shop_listing_keys(shop_id)

        # Rows validated in an earlier pass still count as "earlier rows"
        seen_names: dict[str, int] = {}
        seen_skus: dict[str, int] = {}
        for row in rows:
            if row.validation_status in (ValidationStatus.VALID, ValidationStatus.COMMITTED):
                if row.normalized_name:
                    seen_names.setdefault(row.normalized_name, row.row_number)
                if row.sku:
                    seen_skus.setdefault(row.sku.upper(), row.row_number)

        pending = [r for r in rows if r.validation_status == ValidationStatus.PENDING]
        logger.info(
            "validating_batch",
            batch_id=batch_id,
            pending_rows=len(pending),
            existing_listings=len(existing_skus)
        )

        for row in sorted(pending, key=lambda r: r.row_number):
            self._validate_row(row, existing_names, existing_skus, seen_names, seen_skus)

        summary = summarize_rows(batch_id, self.staging.get_rows(batch_id))
        self.staging.update_batch(batch_id, {
            "template_type": summary.template_type.value,
            "total_rows": summary.total_rows,
            "valid": summary.valid,
            "invalid": summary.invalid,
            "skipped": summary.skipped,
            "needs_specs": summary.needs_specs,
            "needs_images": summary.needs_images,
            "new_products": summary.new_products,
        })

        logger.info(
            "batch_validated",
            batch_id=batch_id,
            valid=summary.valid,
            invalid=summary.invalid,
            skipped=summary.skipped,
            needs_specs=summary.needs_specs,
            new_products=summary.new_products
        )

        return summary

    def _validate_row(
        self,
        row: StagingRowResponse,
        existing_names: set[str],
        existing_skus: set[str],
        seen_names: dict[str, int],
        seen_skus: dict[str, int]
    ) -> ValidationStatus:
        now = utc_now().isoformat()

        if row.parse_errors or not row.normalized_name:
            updates = {"processed_at": now}
            if not row.parse_errors:
                # name made only of punctuation normalizes to nothing
                updates["errors"] = [e.model_dump(mode="json") for e in row.errors] + [
                    RowError(
                        row=row.row_number,
                        field="Product Name",
                        message="Product name is required",
                    ).model_dump(mode="json")
                ]
            self.staging.update_row(row, updates, ValidationStatus.INVALID)
            return ValidationStatus.INVALID

        duplicate = self._find_duplicate(row, existing_names, existing_skus, seen_names, seen_skus)
        if duplicate:
            errors = [e.model_dump(mode="json") for e in row.errors + [duplicate]]
            self.staging.update_row(
                row,
                {"errors": errors, "processed_at": now},
                ValidationStatus.SKIPPED
            )
            logger.debug("row_skipped_duplicate", row=row.row_number, field=duplicate.field)
            return ValidationStatus.SKIPPED

        seen_names[row.normalized_name] = row.row_number
        if row.sku:
            seen_skus[row.sku.upper()] = row.row_number

        updates = self._match_product(row)

        template_type = resolve_template(row.template_type, row.category_name)
        spec_result = self.spec_validator.validate_specs(row.category_name, row.attributes)

        updates.update({
            "template_type": template_type.value,
            "attributes": spec_result.normalized_values,
            "missing_specs": spec_result.missing_required,
            "invalid_specs": [s.model_dump(mode="json") for s in spec_result.invalid_specs],
            "target_listing_status": spec_result.target_status.value,
            "processed_at": now,
        })
        self.staging.update_row(row, updates, ValidationStatus.VALID)
        return ValidationStatus.VALID

    def _find_duplicate(
        self,
        row: StagingRowResponse,
        existing_names: set[str],
        existing_skus: set[str],
        seen_names: dict[str, int],
        seen_skus: dict[str, int]
    ) -> Optional[RowError]:
        sku = row.sku.upper() if row.sku else None

        if row.normalized_name in existing_names:
            return RowError(
                row=row.row_number,
                field="Product Name",
                message="Duplicate: This product already exists in your shop",
                kind=ErrorKind.DUPLICATE,
            )
        if sku and sku in existing_skus:
            return RowError(
                row=row.row_number,
                field="SKU",
                message=f'Duplicate: SKU "{row.sku}" already exists in your shop',
                kind=ErrorKind.DUPLICATE,
            )
        if row.normalized_name in seen_names:
            return RowError(
                row=row.row_number,
                field="Product Name",
                message=f"Duplicate of row {seen_names[row.normalized_name]} in this upload",
                kind=ErrorKind.DUPLICATE,
            )
        if sku and sku in seen_skus:
            return RowError(
                row=row.row_number,
                field="SKU",
                message=f'Duplicate: SKU "{row.sku}" is already used in row {seen_skus[sku]} of this upload',
                kind=ErrorKind.DUPLICATE,
            )
        return None

    def _match_product(self, row: StagingRowResponse) -> dict:
        try:
            match = self.matcher.find_match(
                product_name=row.product_name,
                normalized_name=row.normalized_name,
                brand=row.brand,
                category_name=row.category_name,
            )
        except AppError as e:
            logger.warning(
                "row_matching_failed",
                row=row.row_number,
                error=e.message
            )
            return {
                "matched_product_id": None,
                "will_create_product": True,
                "match_confidence": 0.0,
                "match_explanation": "Catalog matching unavailable; a new product will be created",
            }

        return {
            "matched_product_id": match.product_id if match.matched else None,
            "will_create_product": not match.matched,
            "match_confidence": match.confidence,
            "match_explanation": match.explanation,
        }


# Singleton instance for convenience
_batch_validator_service: Optional[BatchValidatorService] = None

def get_batch_validator_service() -> BatchValidatorService:
    """Get or create BatchValidatorService instance."""
    global _batch_validator_service
    if _batch_validator_service is None:
        _batch_validator_service = BatchValidatorService()
    return _batch_validator_service

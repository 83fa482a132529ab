"""
Staging service for bulk uploads.

Owns the bulk_uploads (batch) and bulk_upload_staging (row) tables:
creating batches from raw rows, reading them back for preview, guarded
row status updates and cancellation.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Optional
import structlog

from config import get_supabase_client, settings
from exceptions import (
    BatchAlreadyCommittedError,
    BatchCancelledError,
    BatchCommitInProgressError,
    BatchNotFoundError,
    DatabaseError,
    EmptyUploadError,
    InvalidStatusTransitionError,
    PendingBatchLimitError,
    UploadTooLargeError,
)
from models.base import PaginationParams, total_pages
from models.bulk_upload import (
    InvalidRowView,
    PreviewResponse,
    StagingRowResponse,
    StagingUploadResponse,
    TemplateType,
    UploadBatchResponse,
    UploadStatus,
    ValidationStatus,
    is_valid_row_transition,
)
from parsers.row_parser import RowParseResult, parse_rows

logger = structlog.get_logger(__name__)

INSERT_CHUNK_SIZE = 500

VALID_VIEW_STATUSES = [ValidationStatus.VALID.value, ValidationStatus.COMMITTED.value]
INVALID_VIEW_STATUSES = [ValidationStatus.INVALID.value, ValidationStatus.SKIPPED.value]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def dominant_template(template_types: list[TemplateType]) -> TemplateType:
    """Most common explicit template; AUTO when no row declared one."""
    explicit = [t for t in template_types if t != TemplateType.AUTO]
    if not explicit:
        return TemplateType.AUTO
    counts = Counter(explicit)
    # ties go to ELECTRONICS
    return max(counts, key=lambda t: (counts[t], t == TemplateType.ELECTRONICS))


def ensure_staging(batch: UploadBatchResponse) -> None:
    """
    Raise the specific state error if the batch is no longer editable.

    Raises:
        BatchCancelledError: Batch was cancelled
        BatchAlreadyCommittedError: Batch was committed
        BatchCommitInProgressError: A commit has claimed the batch
    """
    if batch.status == UploadStatus.CANCELLED:
        raise BatchCancelledError(batch.id)
    if batch.status == UploadStatus.COMPLETED:
        raise BatchAlreadyCommittedError(batch.id)
    if batch.commit_started_at is not None:
        raise BatchCommitInProgressError(batch.id)


class StagingService:
    """
    Staged upload storage.

    Every query is scoped by shop_id so a seller can only see their own
    batches.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.batches_table = "bulk_uploads"
        self.rows_table = "bulk_upload_staging"

    # ===================
    # BATCH READS
    # ===================

    def get_batch(self, shop_id: str, batch_id: str) -> UploadBatchResponse:
        """
        Get a batch owned by the shop.

        Raises:
            BatchNotFoundError: If the batch doesn't exist for this shop
        """
        try:
            result = (
                self.db.table(self.batches_table)
                .select("*")
                .eq("id", batch_id)
                .eq("shop_id", shop_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_batch_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise BatchNotFoundError(batch_id)

        return UploadBatchResponse(**result.data[0])

    def list_batches(
        self,
        shop_id: str,
        status: Optional[UploadStatus] = None
    ) -> list[UploadBatchResponse]:
        """Batches for a shop, newest first."""
        try:
            query = self.db.table(self.batches_table).select("*").eq("shop_id", shop_id)
            if status:
                query = query.eq("status", status.value)
            result = query.order("created_at", desc=True).execute()
            return [UploadBatchResponse(**row) for row in result.data]
        except Exception as e:
            logger.error("list_batches_failed", shop_id=shop_id, error=str(e))
            raise DatabaseError("select", str(e))

    def count_pending_batches(self, shop_id: str) -> int:
        """Batches of this shop still in STAGING."""
        try:
            result = (
                self.db.table(self.batches_table)
                .select("id", count="exact")
                .eq("shop_id", shop_id)
                .eq("status", UploadStatus.STAGING.value)
                .execute()
            )
            return result.count or 0
        except Exception as e:
            logger.error("count_pending_batches_failed", shop_id=shop_id, error=str(e))
            raise DatabaseError("count", str(e))

    def update_batch(self, batch_id: str, updates: dict) -> None:
        try:
            (
                self.db.table(self.batches_table)
                .update(updates)
                .eq("id", batch_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_batch_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("update", str(e))

    # ===================
    # STAGING
    # ===================

    def stage_upload(
        self,
        shop_id: str,
        raw_rows: list[dict],
        seller_id: Optional[str] = None,
        file_name: Optional[str] = None,
        first_row_number: int = 1
    ) -> StagingUploadResponse:
        """
        Create a STAGING batch and store one PENDING row per source row.

        Rows with parse errors are stored too, carrying their errors, so the
        seller can see and fix them.

        Args:
            shop_id: Uploading shop
            raw_rows: Column -> value maps from the spreadsheet
            seller_id: Uploading user
            file_name: Original file name
            first_row_number: Number of the first data row (2 if counting a header)

        Returns:
            StagingUploadResponse

        Raises:
            EmptyUploadError: No non-blank rows
            UploadTooLargeError: More rows than max_rows_per_upload
            PendingBatchLimitError: Shop already has too many STAGING batches
        """
        if not raw_rows:
            raise EmptyUploadError()
        if len(raw_rows) > settings.max_rows_per_upload:
            raise UploadTooLargeError(len(raw_rows), settings.max_rows_per_upload)

        results = parse_rows(raw_rows, first_row_number=first_row_number)
        if not results:
            raise EmptyUploadError()

        pending = self.count_pending_batches(shop_id)
        if pending >= settings.max_pending_batches_per_shop:
            logger.warning(
                "pending_batch_limit_reached",
                shop_id=shop_id,
                pending=pending
            )
            raise PendingBatchLimitError(shop_id, settings.max_pending_batches_per_shop)

        template_type = dominant_template([r.template_type for r in results])
        batch_id = self._create_batch(shop_id, seller_id, file_name, template_type, len(results))

        try:
            self._insert_rows(shop_id, batch_id, results)
        except Exception as e:
            logger.error("stage_rows_failed", batch_id=batch_id, error=str(e))
            # half-staged batches would count against the pending cap
            self.db.table(self.rows_table).delete().eq("batch_id", batch_id).execute()
            self.db.table(self.batches_table).delete().eq("id", batch_id).execute()
            raise DatabaseError("insert", str(e))

        with_errors = sum(1 for r in results if r.errors)

        logger.info(
            "upload_staged",
            batch_id=batch_id,
            shop_id=shop_id,
            rows=len(results),
            rows_with_parse_errors=with_errors,
            template_type=template_type.value
        )

        return StagingUploadResponse(
            batch_id=batch_id,
            status=UploadStatus.STAGING,
            total_rows=len(results),
            staged_rows=len(results),
            rows_with_parse_errors=with_errors,
        )

    def _create_batch(
        self,
        shop_id: str,
        seller_id: Optional[str],
        file_name: Optional[str],
        template_type: TemplateType,
        total_rows: int
    ) -> str:
        try:
            result = (
                self.db.table(self.batches_table)
                .insert({
                    "shop_id": shop_id,
                    "seller_id": seller_id,
                    "file_name": file_name,
                    "template_type": template_type.value,
                    "status": UploadStatus.STAGING.value,
                    "total_rows": total_rows,
                    "created_at": utc_now().isoformat(),
                })
                .execute()
            )
            return result.data[0]["id"]
        except Exception as e:
            logger.error("create_batch_failed", shop_id=shop_id, error=str(e))
            raise DatabaseError("insert", str(e))

    def _insert_rows(self, shop_id: str, batch_id: str, results: list[RowParseResult]) -> None:
        now = utc_now().isoformat()
        records = []
        for result in results:
            record = {
                "batch_id": batch_id,
                "shop_id": shop_id,
                "row_number": result.row_number,
                "raw_data": result.raw_data,
                "template_type": result.template_type.value,
                "validation_status": ValidationStatus.PENDING.value,
                "errors": [e.model_dump(mode="json") for e in result.errors],
                "created_at": now,
            }
            if result.parsed:
                record.update(result.parsed.to_record())
            records.append(record)

        for start in range(0, len(records), INSERT_CHUNK_SIZE):
            self.db.table(self.rows_table).insert(records[start:start + INSERT_CHUNK_SIZE]).execute()

    # ===================
    # ROWS
    # ===================

    def get_rows(
        self,
        batch_id: str,
        statuses: Optional[list[ValidationStatus]] = None
    ) -> list[StagingRowResponse]:
        """Rows of a batch in ascending row order."""
        try:
            query = self.db.table(self.rows_table).select("*").eq("batch_id", batch_id)
            if statuses:
                query = query.in_("validation_status", [s.value for s in statuses])
            result = query.order("row_number").execute()
            return [StagingRowResponse(**row) for row in result.data]
        except Exception as e:
            logger.error("get_rows_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("select", str(e))

    def update_row(
        self,
        row: StagingRowResponse,
        updates: dict,
        new_status: Optional[ValidationStatus] = None
    ) -> None:
        """
        Persist row changes, moving its status forward if requested.

        The update only applies while the row still has the status it was
        read with, so two writers cannot both move it.

        Raises:
            InvalidStatusTransitionError: If new_status is not reachable
        """
        updates = dict(updates)
        if new_status is not None:
            if not is_valid_row_transition(row.validation_status, new_status):
                raise InvalidStatusTransitionError(
                    row.validation_status.value, new_status.value
                )
            updates["validation_status"] = new_status.value

        try:
            result = (
                self.db.table(self.rows_table)
                .update(updates)
                .eq("id", row.id)
                .eq("validation_status", row.validation_status.value)
                .execute()
            )
        except Exception as e:
            logger.error("update_row_failed", row_id=row.id, error=str(e))
            raise DatabaseError("update", str(e))

        if new_status is not None and not result.data:
            raise InvalidStatusTransitionError(row.validation_status.value, new_status.value)

    def count_rows(self, batch_id: str, statuses: list[str]) -> int:
        try:
            result = (
                self.db.table(self.rows_table)
                .select("id", count="exact")
                .eq("batch_id", batch_id)
                .in_("validation_status", statuses)
                .execute()
            )
        except Exception as e:
            logger.error("count_rows_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("count", str(e))
        return result.count or 0

    # ===================
    # PREVIEW
    # ===================

    def get_preview(
        self,
        shop_id: str,
        batch_id: str,
        page: int = 1,
        show_invalid: bool = False,
        page_size: Optional[int] = None
    ) -> PreviewResponse:
        """
        One page of valid rows, or of invalid/skipped rows.

        Read-only.
        """
        batch = self.get_batch(shop_id, batch_id)
        params = PaginationParams(page=page, page_size=page_size or settings.preview_page_size)
        statuses = INVALID_VIEW_STATUSES if show_invalid else VALID_VIEW_STATUSES

        try:
            result = (
                self.db.table(self.rows_table)
                .select("*", count="exact")
                .eq("batch_id", batch_id)
                .in_("validation_status", statuses)
                .order("row_number")
                .range(params.offset, params.end)
                .execute()
            )
        except Exception as e:
            logger.error("get_preview_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("select", str(e))

        rows = [StagingRowResponse(**row) for row in result.data]
        total = result.count or 0

        preview = PreviewResponse(
            batch=batch,
            show_invalid=show_invalid,
            page=params.page,
            page_size=params.page_size,
            total=total,
            total_pages=total_pages(total, params.page_size),
        )
        if show_invalid:
            preview.invalid_rows = [
                InvalidRowView(
                    row_number=r.row_number,
                    validation_status=r.validation_status,
                    product_name=r.product_name,
                    raw_data=r.raw_data,
                    errors=r.errors,
                )
                for r in rows
            ]
        else:
            preview.valid_rows = rows

        return preview

    # ===================
    # CANCEL
    # ===================

    def cancel_batch(self, shop_id: str, batch_id: str) -> UploadBatchResponse:
        """
        Cancel a STAGING batch and delete its staging rows.

        Raises:
            BatchNotFoundError: Unknown batch
            BatchStateError: Batch is cancelled, committed or being committed
        """
        batch = self.get_batch(shop_id, batch_id)
        ensure_staging(batch)

        now = utc_now()
        try:
            result = (
                self.db.table(self.batches_table)
                .update({
                    "status": UploadStatus.CANCELLED.value,
                    "cancelled_at": now.isoformat(),
                })
                .eq("id", batch_id)
                .eq("status", UploadStatus.STAGING.value)
                .is_("commit_started_at", "null")
                .execute()
            )
        except Exception as e:
            logger.error("cancel_batch_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            # Lost a race with a commit or another cancel
            ensure_staging(self.get_batch(shop_id, batch_id))
            raise BatchCommitInProgressError(batch_id)

        try:
            self.db.table(self.rows_table).delete().eq("batch_id", batch_id).execute()
        except Exception as e:
            logger.error("delete_staging_rows_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("batch_cancelled", batch_id=batch_id, shop_id=shop_id)

        return batch.model_copy(update={
            "status": UploadStatus.CANCELLED,
            "cancelled_at": now,
        })


# Singleton instance for convenience
_staging_service: Optional[StagingService] = None

def get_staging_service() -> StagingService:
    """Get or create StagingService instance."""
    global _staging_service
    if _staging_service is None:
        _staging_service = StagingService()
    return _staging_service

"""
Commit service.

Turns the VALID rows of a staged batch into catalog products and shop
listings. Rows are committed one at a time: a failing row is recorded and
counted, and the rest of the batch carries on.
"""

from datetime import date
from typing import Optional
import structlog

from config import get_supabase_client
from exceptions import (
    BatchCommitInProgressError,
    DatabaseError,
    ListingSKUExistsError,
    ShopNotFoundError,
)
from integrations.notifications import CommitNotifier, notify_safely
from models.bulk_upload import (
    CommitSummary,
    CommittedListing,
    ErrorKind,
    RowError,
    StagingRowResponse,
    UploadBatchResponse,
    UploadStatus,
    ValidationStatus,
)
from models.catalog import ListingStatus, ProductStatus
from services.sku_service import SkuService
from services.staging_service import StagingService, ensure_staging, utc_now
from utils.pricing import calculate_display_price
from utils.text_utils import significant_words

logger = structlog.get_logger(__name__)


class RowCommitError(Exception):
    """A single row could not be committed."""
    pass


class CommitService:
    """
    Batch commit engine.

    Only one commit can run per batch: the commit claims the batch by
    setting commit_started_at while it is still STAGING and unclaimed.
    """

    def __init__(
        self,
        staging: Optional[StagingService] = None,
        sku_service: Optional[SkuService] = None,
        notifier: Optional[CommitNotifier] = None
    ):
        self.db = get_supabase_client()
        self.staging = staging or StagingService()
        self.sku_service = sku_service or SkuService()
        self.notifier = notifier
        self.products_table = "products"
        self.listings_table = "shop_products"
        self.shops_table = "shops"

    # ===================
    # LOOKUPS
    # ===================

    def get_shop_name(self, shop_id: str) -> Optional[str]:
        """
        Raises:
            ShopNotFoundError: If the shop doesn't exist
        """
        try:
            result = (
                self.db.table(self.shops_table)
                .select("id, name")
                .eq("id", shop_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_shop_failed", shop_id=shop_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise ShopNotFoundError(shop_id)
        return result.data[0].get("name")

    # ===================
    # COMMIT
    # ===================

    def commit_batch(
        self,
        shop_id: str,
        batch_id: str,
        on_date: Optional[date] = None
    ) -> CommitSummary:
        """
        Commit every VALID row of a STAGING batch and complete the batch.

        Args:
            shop_id: Owning shop
            batch_id: Batch to commit
            on_date: Date used in generated SKUs (defaults to today)

        Returns:
            CommitSummary with counters, created listings and row failures

        Raises:
            BatchNotFoundError: Unknown batch
            BatchCancelledError: Batch was cancelled
            BatchAlreadyCommittedError: Batch was already committed
            BatchCommitInProgressError: Another commit holds the batch
            ShopNotFoundError: Shop record is missing
            DatabaseError: A read or write after the claim failed; the claim
                is undone first (see _release_claim)
        """
        batch = self.staging.get_batch(shop_id, batch_id)
        ensure_staging(batch)
        shop_name = self.get_shop_name(shop_id)

        claimed_at = self._claim(shop_id, batch_id)
        logger.info("batch_commit_started", batch_id=batch_id, shop_id=shop_id)

        listings: list[CommittedListing] = []
        failures: list[RowError] = []
        try:
            summary = self._commit_rows(shop_id, batch, shop_name, on_date, listings, failures)
        except Exception:
            self._release_claim(batch_id, claimed_at, listings, failures)
            raise

        logger.info(
            "batch_committed",
            batch_id=batch_id,
            committed=summary.committed,
            failed=summary.failed,
            new_products=summary.new_products
        )

        notify_safely(self.notifier, summary)
        return summary

    def _commit_rows(
        self,
        shop_id: str,
        batch: UploadBatchResponse,
        shop_name: Optional[str],
        on_date: Optional[date],
        listings: list[CommittedListing],
        failures: list[RowError]
    ) -> CommitSummary:
        batch_id = batch.id
        rows = self.staging.get_rows(batch_id, statuses=[ValidationStatus.VALID])

        for row in sorted(rows, key=lambda r: r.row_number):
            try:
                listings.append(
                    self._commit_row(shop_id, batch.seller_id, shop_name, batch_id, row, on_date)
                )
            except Exception as e:
                failure = RowError(
                    row=row.row_number,
                    field="commit",
                    message=getattr(e, "message", None) or str(e),
                    kind=ErrorKind.COMMIT,
                )
                failures.append(failure)
                logger.error(
                    "row_commit_failed",
                    batch_id=batch_id,
                    row=row.row_number,
                    error=failure.message
                )
                self._record_failure(row, failure)

        completed_at = utc_now()
        summary = CommitSummary(
            batch_id=batch_id,
            shop_id=shop_id,
            committed=len(listings),
            skipped=self.staging.count_rows(batch_id, [ValidationStatus.SKIPPED.value]),
            invalid=self.staging.count_rows(batch_id, [ValidationStatus.INVALID.value]),
            failed=len(failures),
            new_products=sum(1 for l in listings if l.is_new_product),
            needs_specs=sum(1 for l in listings if l.listing_status == ListingStatus.NEEDS_SPECS),
            needs_images=sum(1 for l in listings if l.listing_status == ListingStatus.NEEDS_IMAGES),
            listings=listings,
            failures=failures,
            completed_at=completed_at,
        )

        self.staging.update_batch(batch_id, {
            "status": UploadStatus.COMPLETED.value,
            "committed": summary.committed,
            "skipped": summary.skipped,
            "invalid": summary.invalid,
            "failed": summary.failed,
            "new_products": summary.new_products,
            "needs_specs": summary.needs_specs,
            "needs_images": summary.needs_images,
            "completed_at": completed_at.isoformat(),
        })
        return summary

    def _claim(self, shop_id: str, batch_id: str) -> str:
        claimed_at = utc_now().isoformat()
        try:
            result = (
                self.db.table(self.staging.batches_table)
                .update({"commit_started_at": claimed_at})
                .eq("id", batch_id)
                .eq("status", UploadStatus.STAGING.value)
                .is_("commit_started_at", "null")
                .execute()
            )
        except Exception as e:
            logger.error("claim_batch_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            logger.warning("batch_commit_claim_lost", batch_id=batch_id)
            ensure_staging(self.staging.get_batch(shop_id, batch_id))
            raise BatchCommitInProgressError(batch_id)
        return claimed_at

    def _release_claim(
        self,
        batch_id: str,
        claimed_at: str,
        listings: list[CommittedListing],
        failures: list[RowError]
    ) -> None:
        """
        Undo a claim after the commit broke off part way.

        With nothing committed the batch goes back to plain STAGING so it can
        be committed again or cancelled. Once listings exist the batch is
        completed with what was committed, since those rows can't be replayed.
        """
        if listings:
            updates = {
                "status": UploadStatus.COMPLETED.value,
                "committed": len(listings),
                "failed": len(failures),
                "new_products": sum(1 for l in listings if l.is_new_product),
                "needs_specs": sum(1 for l in listings if l.listing_status == ListingStatus.NEEDS_SPECS),
                "needs_images": sum(1 for l in listings if l.listing_status == ListingStatus.NEEDS_IMAGES),
                "completed_at": utc_now().isoformat(),
            }
            event = "batch_commit_completed_after_error"
        else:
            updates = {"commit_started_at": None}
            event = "batch_commit_claim_released"

        try:
            (
                self.db.table(self.staging.batches_table)
                .update(updates)
                .eq("id", batch_id)
                .eq("commit_started_at", claimed_at)
                .execute()
            )
        except Exception as e:
            # The cleanup sweep recovers claims left behind here
            logger.error("release_commit_claim_failed", batch_id=batch_id, error=str(e))
            return

        logger.warning(event, batch_id=batch_id, committed=len(listings))

    def _commit_row(
        self,
        shop_id: str,
        seller_id: Optional[str],
        shop_name: Optional[str],
        batch_id: str,
        row: StagingRowResponse,
        on_date: Optional[date]
    ) -> CommittedListing:
        product_id = row.matched_product_id
        is_new_product = False

        if not product_id:
            if not row.will_create_product or not row.normalized_name:
                raise RowCommitError("Row has no matched product and cannot create one")
            product_id = self._create_product(row, seller_id)
            is_new_product = True

        try:
            if row.sku:
                if self.sku_service.sku_exists(shop_id, row.sku):
                    raise ListingSKUExistsError(row.sku)
                sku = row.sku
            else:
                sku = self.sku_service.generate_sku(shop_id, shop_name, on_date)

            listing_status = row.target_listing_status or ListingStatus.NEEDS_IMAGES
            listing_id = self._create_listing(
                shop_id, batch_id, product_id, sku, listing_status, row
            )
        except Exception:
            if is_new_product:
                self._discard_product(product_id)
            raise

        self.staging.update_row(
            row,
            {"matched_product_id": product_id, "processed_at": utc_now().isoformat()},
            ValidationStatus.COMMITTED
        )

        logger.debug(
            "row_committed",
            row=row.row_number,
            listing_id=listing_id,
            sku=sku,
            new_product=is_new_product
        )

        return CommittedListing(
            listing_id=listing_id,
            product_id=product_id,
            product_name=row.product_name,
            sku=sku,
            listing_status=listing_status,
            is_new_product=is_new_product,
        )

    def _create_product(self, row: StagingRowResponse, seller_id: Optional[str]) -> str:
        """New catalog product awaiting approval."""
        result = (
            self.db.table(self.products_table)
            .insert({
                "name": row.product_name,
                "normalized_name": row.normalized_name,
                "brand": row.brand,
                "category_name": row.category_name,
                "keywords": significant_words(row.normalized_name),
                "status": ProductStatus.PENDING.value,
                "is_verified": False,
                "created_by": seller_id,
                "created_at": utc_now().isoformat(),
            })
            .execute()
        )
        if not result.data:
            raise RowCommitError("Product insert returned no data")
        return result.data[0]["id"]

    def _discard_product(self, product_id: str) -> None:
        try:
            self.db.table(self.products_table).delete().eq("id", product_id).execute()
        except Exception as e:
            logger.warning("discard_product_failed", product_id=product_id, error=str(e))

    def _create_listing(
        self,
        shop_id: str,
        batch_id: str,
        product_id: str,
        sku: str,
        listing_status: ListingStatus,
        row: StagingRowResponse
    ) -> str:
        display_price = row.display_price
        if display_price is None:
            display_price = calculate_display_price(row.base_price)

        result = (
            self.db.table(self.listings_table)
            .insert({
                "shop_id": shop_id,
                "product_id": product_id,
                "sku": sku,
                "base_price": row.base_price,
                "price": display_price,
                "stock_quantity": row.stock_quantity or 0,
                "condition": row.condition.value if row.condition else None,
                "shop_description": row.description,
                "specs": row.attributes,
                "images": [],
                "listing_status": listing_status.value,
                "bulk_upload_id": batch_id,
                "created_at": utc_now().isoformat(),
            })
            .execute()
        )
        if not result.data:
            raise RowCommitError("Listing insert returned no data")
        return result.data[0]["id"]

    def _record_failure(self, row: StagingRowResponse, failure: RowError) -> None:
        """Attach a commit error to the row; it stays VALID."""
        try:
            self.staging.update_row(row, {
                "errors": [e.model_dump(mode="json") for e in row.errors + [failure]],
                "processed_at": utc_now().isoformat(),
            })
        except Exception as e:
            logger.warning("record_commit_failure_failed", row=row.row_number, error=str(e))


# Singleton instance for convenience
_commit_service: Optional[CommitService] = None

def get_commit_service() -> CommitService:
    """Get or create CommitService instance."""
    global _commit_service
    if _commit_service is None:
        _commit_service = CommitService()
    return _commit_service

"""
Retention cleanup for staged uploads.

Runs independently of any in-flight batch (see scripts/cleanup_staging.py):
- staging rows older than staging_retention_days are deleted, except
  COMMITTED rows, which stay as the record of where a listing came from;
- STAGING batches nobody committed or cancelled within
  abandoned_batch_hours are cancelled and lose their rows;
- commit claims older than stale_commit_claim_hours are released.
"""

from datetime import datetime, timedelta
from typing import Optional
import structlog

from config import get_admin_client, get_supabase_client, settings
from exceptions import DatabaseError
from models.bulk_upload import CleanupResult, UploadStatus, ValidationStatus
from services.staging_service import utc_now

logger = structlog.get_logger(__name__)


class CleanupService:
    """Deletes expired staging data."""

    def __init__(self):
        self.db = get_admin_client() or get_supabase_client()
        self.batches_table = "bulk_uploads"
        self.rows_table = "bulk_upload_staging"

    def _cutoffs(self, now: Optional[datetime]) -> tuple[str, str]:
        now = now or utc_now()
        rows_cutoff = now - timedelta(days=settings.staging_retention_days)
        batch_cutoff = now - timedelta(hours=settings.abandoned_batch_hours)
        return rows_cutoff.isoformat(), batch_cutoff.isoformat()

    def _claim_cutoff(self, now: Optional[datetime]) -> str:
        return ((now or utc_now()) - timedelta(hours=settings.stale_commit_claim_hours)).isoformat()

    def cleanup_expired_staging(self, now: Optional[datetime] = None) -> int:
        """
        Delete uncommitted staging rows past the retention window.

        Returns:
            Number of rows deleted
        """
        rows_cutoff, _ = self._cutoffs(now)
        try:
            result = (
                self.db.table(self.rows_table)
                .delete()
                .lt("created_at", rows_cutoff)
                .neq("validation_status", ValidationStatus.COMMITTED.value)
                .execute()
            )
        except Exception as e:
            logger.error("cleanup_expired_staging_failed", error=str(e))
            raise DatabaseError("delete", str(e))

        deleted = len(result.data or [])
        logger.info("expired_staging_deleted", rows=deleted, cutoff=rows_cutoff)
        return deleted

    def cancel_abandoned_batches(self, now: Optional[datetime] = None) -> int:
        """
        Cancel unclaimed STAGING batches older than abandoned_batch_hours.

        A batch claimed by a commit in the meantime is left alone.

        Returns:
            Number of batches cancelled
        """
        _, batch_cutoff = self._cutoffs(now)
        cancelled_at = (now or utc_now()).isoformat()

        try:
            result = (
                self.db.table(self.batches_table)
                .select("id, shop_id")
                .eq("status", UploadStatus.STAGING.value)
                .is_("commit_started_at", "null")
                .lt("created_at", batch_cutoff)
                .execute()
            )
        except Exception as e:
            logger.error("find_abandoned_batches_failed", error=str(e))
            raise DatabaseError("select", str(e))

        cancelled = 0
        for batch in result.data or []:
            try:
                updated = (
                    self.db.table(self.batches_table)
                    .update({
                        "status": UploadStatus.CANCELLED.value,
                        "cancelled_at": cancelled_at,
                    })
                    .eq("id", batch["id"])
                    .eq("status", UploadStatus.STAGING.value)
                    .is_("commit_started_at", "null")
                    .execute()
                )
                if not updated.data:
                    continue
                self.db.table(self.rows_table).delete().eq("batch_id", batch["id"]).execute()
                cancelled += 1
            except Exception as e:
                logger.error("cancel_abandoned_batch_failed", batch_id=batch["id"], error=str(e))
                raise DatabaseError("update", str(e))

        logger.info("abandoned_batches_cancelled", batches=cancelled, cutoff=batch_cutoff)
        return cancelled

    def release_stale_claims(self, now: Optional[datetime] = None) -> int:
        """
        Recover STAGING batches whose commit claim is older than
        stale_commit_claim_hours.

        Such a claim belongs to a commit that died before it could finish or
        release the batch. A batch with COMMITTED rows is completed with that
        count; any other batch drops the claim and goes back to STAGING, where
        it can be committed again or cancelled.

        Returns:
            Number of batches recovered
        """
        claim_cutoff = self._claim_cutoff(now)

        try:
            result = (
                self.db.table(self.batches_table)
                .select("id, commit_started_at")
                .eq("status", UploadStatus.STAGING.value)
                .lt("commit_started_at", claim_cutoff)
                .execute()
            )
        except Exception as e:
            logger.error("find_stale_claims_failed", error=str(e))
            raise DatabaseError("select", str(e))

        released = 0
        for batch in result.data or []:
            try:
                committed = (
                    self.db.table(self.rows_table)
                    .select("id", count="exact")
                    .eq("batch_id", batch["id"])
                    .eq("validation_status", ValidationStatus.COMMITTED.value)
                    .execute()
                ).count or 0

                if committed:
                    updates = {
                        "status": UploadStatus.COMPLETED.value,
                        "committed": committed,
                        "completed_at": (now or utc_now()).isoformat(),
                    }
                else:
                    updates = {"commit_started_at": None}

                updated = (
                    self.db.table(self.batches_table)
                    .update(updates)
                    .eq("id", batch["id"])
                    .eq("commit_started_at", batch["commit_started_at"])
                    .execute()
                )
            except Exception as e:
                logger.error("release_stale_claim_failed", batch_id=batch["id"], error=str(e))
                raise DatabaseError("update", str(e))

            if updated.data:
                released += 1
                logger.warning(
                    "stale_commit_claim_released",
                    batch_id=batch["id"],
                    committed=committed
                )

        return released

    def get_cleanup_stats(self, now: Optional[datetime] = None) -> dict:
        """What a sweep at `now` would remove, without removing anything."""
        rows_cutoff, batch_cutoff = self._cutoffs(now)
        try:
            expired = (
                self.db.table(self.rows_table)
                .select("id", count="exact")
                .lt("created_at", rows_cutoff)
                .neq("validation_status", ValidationStatus.COMMITTED.value)
                .execute()
            )
            abandoned = (
                self.db.table(self.batches_table)
                .select("id", count="exact")
                .eq("status", UploadStatus.STAGING.value)
                .is_("commit_started_at", "null")
                .lt("created_at", batch_cutoff)
                .execute()
            )
            stale = (
                self.db.table(self.batches_table)
                .select("id", count="exact")
                .eq("status", UploadStatus.STAGING.value)
                .lt("commit_started_at", self._claim_cutoff(now))
                .execute()
            )
        except Exception as e:
            logger.error("cleanup_stats_failed", error=str(e))
            raise DatabaseError("count", str(e))

        return {
            "expired_rows": expired.count or 0,
            "abandoned_batches": abandoned.count or 0,
            "stale_claims": stale.count or 0,
            "rows_cutoff": rows_cutoff,
            "batch_cutoff": batch_cutoff,
        }

    def run(self, now: Optional[datetime] = None) -> CleanupResult:
        """Release stale commit claims, cancel abandoned batches, then delete expired rows."""
        now = now or utc_now()
        released = self.release_stale_claims(now)
        cancelled = self.cancel_abandoned_batches(now)
        deleted = self.cleanup_expired_staging(now)
        return CleanupResult(
            deleted_rows=deleted,
            cancelled_batches=cancelled,
            released_claims=released,
            ran_at=now
        )


# Singleton instance for convenience
_cleanup_service: Optional[CleanupService] = None

def get_cleanup_service() -> CleanupService:
    """Get or create CleanupService instance."""
    global _cleanup_service
    if _cleanup_service is None:
        _cleanup_service = CleanupService()
    return _cleanup_service

"""
Unit tests for CleanupService.

Run: pytest tests/unit/test_cleanup_service.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from config import settings
from exceptions import DatabaseError
from models.bulk_upload import UploadStatus
from services.cleanup_service import CleanupService
from services.staging_service import StagingService
from tests.factories import BatchFactory, StagingRowFactory, days_ago


NOW = datetime(2026, 1, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def aged_uploads(mock_supabase):
    """
    Batches and rows of different ages:
    - old: COMPLETED 10 days ago, one COMMITTED and one INVALID row
    - abandoned: STAGING for 3 days, never claimed
    - claimed: STAGING for 3 days, commit in progress
    - fresh: STAGING since an hour ago
    """
    batches = {
        "old": BatchFactory.create(id="old", status="COMPLETED", created_at=days_ago(10, NOW)),
        "abandoned": BatchFactory.create(id="abandoned", created_at=days_ago(3, NOW)),
        "claimed": BatchFactory.create(
            id="claimed",
            created_at=days_ago(3, NOW),
            commit_started_at=days_ago(0.1, NOW),
        ),
        "fresh": BatchFactory.create(id="fresh", created_at=days_ago(1 / 24, NOW)),
    }
    rows = [
        StagingRowFactory.create("old", row_number=1, validation_status="COMMITTED", created_at=days_ago(10, NOW)),
        StagingRowFactory.invalid("old", row_number=2, created_at=days_ago(10, NOW)),
        StagingRowFactory.valid("abandoned", row_number=1, created_at=days_ago(3, NOW)),
        StagingRowFactory.valid("claimed", row_number=1, created_at=days_ago(3, NOW)),
        StagingRowFactory.create("fresh", row_number=1, created_at=days_ago(1 / 24, NOW)),
    ]
    mock_supabase.set_table_data("bulk_uploads", list(batches.values()))
    mock_supabase.set_table_data("bulk_upload_staging", rows)
    return batches


def statuses(mock_supabase) -> dict:
    return {b["id"]: b["status"] for b in mock_supabase.get_table_data("bulk_uploads")}


def remaining_rows(mock_supabase) -> list:
    return sorted(
        (r["batch_id"], r["row_number"]) for r in mock_supabase.get_table_data("bulk_upload_staging")
    )


class TestCleanupExpiredStaging:
    """Tests for CleanupService.cleanup_expired_staging()"""

    def test_deletes_old_uncommitted_rows(self, mock_db, mock_supabase, aged_uploads):
        deleted = CleanupService().cleanup_expired_staging(NOW)

        assert deleted == 1
        assert ("old", 1) in remaining_rows(mock_supabase)
        assert ("old", 2) not in remaining_rows(mock_supabase)

    def test_retention_window_from_settings(self, mock_db, mock_supabase, aged_uploads, monkeypatch):
        monkeypatch.setattr(settings, "staging_retention_days", 2)

        deleted = CleanupService().cleanup_expired_staging(NOW)

        assert deleted == 3
        assert remaining_rows(mock_supabase) == [("fresh", 1), ("old", 1)]

    def test_failure_raises_database_error(self, mock_db, mock_supabase):
        mock_supabase.fail("bulk_upload_staging", "delete")

        with pytest.raises(DatabaseError):
            CleanupService().cleanup_expired_staging(NOW)


class TestCancelAbandonedBatches:
    """Tests for CleanupService.cancel_abandoned_batches()"""

    def test_cancels_only_unclaimed_old_batches(self, mock_db, mock_supabase, aged_uploads):
        cancelled = CleanupService().cancel_abandoned_batches(NOW)

        assert cancelled == 1
        assert statuses(mock_supabase) == {
            "old": "COMPLETED",
            "abandoned": "CANCELLED",
            "claimed": "STAGING",
            "fresh": "STAGING",
        }
        abandoned = [b for b in mock_supabase.get_table_data("bulk_uploads") if b["id"] == "abandoned"][0]
        assert abandoned["cancelled_at"] == NOW.isoformat()

    def test_rows_of_cancelled_batch_removed(self, mock_db, mock_supabase, aged_uploads):
        CleanupService().cancel_abandoned_batches(NOW)

        assert "abandoned" not in {batch_id for batch_id, _ in remaining_rows(mock_supabase)}
        assert ("claimed", 1) in remaining_rows(mock_supabase)

    def test_nothing_to_cancel(self, mock_db, mock_supabase, aged_uploads):
        assert CleanupService().cancel_abandoned_batches(NOW - timedelta(days=2)) == 0


class TestReleaseStaleClaims:
    """Tests for CleanupService.release_stale_claims()"""

    @pytest.fixture
    def stuck_batches(self, mock_supabase):
        """
        - dead_empty: claimed a day ago, nothing committed
        - dead_partial: claimed a day ago, one row COMMITTED
        - live: claimed an hour ago
        """
        batches = [
            BatchFactory.create(id="dead_empty", created_at=days_ago(1, NOW), commit_started_at=days_ago(1, NOW)),
            BatchFactory.create(id="dead_partial", created_at=days_ago(1, NOW), commit_started_at=days_ago(1, NOW)),
            BatchFactory.create(id="live", created_at=days_ago(1, NOW), commit_started_at=days_ago(1 / 24, NOW)),
        ]
        rows = [
            StagingRowFactory.valid("dead_empty", row_number=1, created_at=days_ago(1, NOW)),
            StagingRowFactory.create("dead_partial", row_number=1, validation_status="COMMITTED", created_at=days_ago(1, NOW)),
            StagingRowFactory.valid("dead_partial", row_number=2, created_at=days_ago(1, NOW)),
            StagingRowFactory.valid("live", row_number=1, created_at=days_ago(1, NOW)),
        ]
        mock_supabase.set_table_data("bulk_uploads", batches)
        mock_supabase.set_table_data("bulk_upload_staging", rows)

    def batch(self, mock_supabase, batch_id: str) -> dict:
        return [b for b in mock_supabase.get_table_data("bulk_uploads") if b["id"] == batch_id][0]

    def test_releases_claims_past_the_window(self, mock_db, mock_supabase, stuck_batches):
        released = CleanupService().release_stale_claims(NOW)

        assert released == 2
        assert self.batch(mock_supabase, "live")["commit_started_at"] == days_ago(1 / 24, NOW)

    def test_claim_with_nothing_committed_goes_back_to_staging(self, mock_db, mock_supabase, stuck_batches):
        CleanupService().release_stale_claims(NOW)

        batch = self.batch(mock_supabase, "dead_empty")
        assert batch["status"] == "STAGING"
        assert batch["commit_started_at"] is None

    def test_claim_with_committed_rows_completes_batch(self, mock_db, mock_supabase, stuck_batches):
        CleanupService().release_stale_claims(NOW)

        batch = self.batch(mock_supabase, "dead_partial")
        assert batch["status"] == "COMPLETED"
        assert batch["committed"] == 1
        assert batch["completed_at"] == NOW.isoformat()

    def test_window_from_settings(self, mock_db, mock_supabase, stuck_batches, monkeypatch):
        monkeypatch.setattr(settings, "stale_commit_claim_hours", 48)

        assert CleanupService().release_stale_claims(NOW) == 0

    def test_released_batch_can_be_cancelled(self, mock_db, mock_supabase, stuck_batches):
        CleanupService().release_stale_claims(NOW)

        result = StagingService().cancel_batch("shop-1", "dead_empty")

        assert result.status == UploadStatus.CANCELLED

    def test_run_reports_released_claims(self, mock_db, mock_supabase, stuck_batches):
        result = CleanupService().run(NOW)

        assert result.released_claims == 2
        assert CleanupService().get_cleanup_stats(NOW)["stale_claims"] == 0


class TestStatsAndRun:
    """Tests for get_cleanup_stats() and run()"""

    def test_stats_do_not_modify(self, mock_db, mock_supabase, aged_uploads):
        stats = CleanupService().get_cleanup_stats(NOW)

        assert stats["expired_rows"] == 1
        assert stats["abandoned_batches"] == 1
        assert stats["rows_cutoff"] == (NOW - timedelta(days=7)).isoformat()
        assert stats["batch_cutoff"] == (NOW - timedelta(hours=48)).isoformat()
        assert len(mock_supabase.get_table_data("bulk_upload_staging")) == 5

    def test_run(self, mock_db, mock_supabase, aged_uploads):
        result = CleanupService().run(NOW)

        assert result.cancelled_batches == 1
        assert result.deleted_rows == 1
        assert result.ran_at == NOW
        assert remaining_rows(mock_supabase) == [("claimed", 1), ("fresh", 1), ("old", 1)]

    def test_run_twice_is_a_no_op(self, mock_db, mock_supabase, aged_uploads):
        service = CleanupService()
        service.run(NOW)

        result = service.run(NOW)

        assert result.cancelled_batches == 0
        assert result.deleted_rows == 0

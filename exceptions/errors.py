"""
Custom exception classes for the listing import pipeline.

Row-level problems (parse errors, duplicates, commit failures) are recorded
on staging rows as data. Only the errors below reach callers.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "BATCH_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP-style status code for the outer API layer
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DuplicateError(ConflictError):
    """Duplicate resource (409)."""

    def __init__(
        self,
        resource: str,
        field: str,
        value: str
    ):
        super().__init__(
            code=f"{resource.upper()}_{field.upper()}_EXISTS",
            message=f"{resource} with this {field} already exists",
            details={field: value}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# BATCH ERRORS
# ===================

class BatchNotFoundError(NotFoundError):
    """Upload batch not found (or not owned by the shop)."""

    def __init__(self, batch_id: str):
        super().__init__(
            resource="Upload batch",
            identifier=batch_id,
            code="BATCH_NOT_FOUND"
        )


class ShopNotFoundError(NotFoundError):
    """Shop not found."""

    def __init__(self, shop_id: str):
        super().__init__(
            resource="Shop",
            identifier=shop_id,
            code="SHOP_NOT_FOUND"
        )


class BatchStateError(ConflictError):
    """
    Operation not allowed in the batch's current status.

    Subclasses name the exact precondition that failed so callers can
    tell a cancelled batch from one that was already committed.
    """

    def __init__(
        self,
        batch_id: str,
        status: str,
        message: Optional[str] = None,
        code: str = "BATCH_INVALID_STATE"
    ):
        super().__init__(
            code=code,
            message=message or f"Batch is {status} and cannot be modified",
            details={"batch_id": batch_id, "status": status}
        )
        self.batch_id = batch_id
        self.status = status


class BatchAlreadyCommittedError(BatchStateError):
    """Batch was already committed."""

    def __init__(self, batch_id: str):
        super().__init__(
            batch_id=batch_id,
            status="COMPLETED",
            message="Batch has already been committed",
            code="BATCH_ALREADY_COMMITTED"
        )


class BatchCancelledError(BatchStateError):
    """Batch was cancelled."""

    def __init__(self, batch_id: str):
        super().__init__(
            batch_id=batch_id,
            status="CANCELLED",
            message="Batch has been cancelled",
            code="BATCH_CANCELLED"
        )


class BatchCommitInProgressError(BatchStateError):
    """Another commit already claimed this batch."""

    def __init__(self, batch_id: str):
        super().__init__(
            batch_id=batch_id,
            status="STAGING",
            message="A commit is already running for this batch",
            code="BATCH_COMMIT_IN_PROGRESS"
        )


class PendingBatchLimitError(ConflictError):
    """Shop already has the maximum number of staged batches."""

    def __init__(self, shop_id: str, limit: int):
        super().__init__(
            code="PENDING_BATCH_LIMIT",
            message=f"You already have {limit} uploads awaiting review. "
                    "Commit or cancel one before uploading again.",
            details={"shop_id": shop_id, "limit": limit}
        )


class UploadTooLargeError(ValidationError):
    """Upload has more rows than allowed."""

    def __init__(self, row_count: int, limit: int):
        super().__init__(
            code="UPLOAD_TOO_LARGE",
            message=f"Upload has {row_count} rows; the maximum is {limit}",
            details={"rows": row_count, "limit": limit}
        )


class EmptyUploadError(ValidationError):
    """Upload contains no data rows."""

    def __init__(self):
        super().__init__(
            code="EMPTY_UPLOAD",
            message="Upload contains no product rows"
        )


class InvalidStatusTransitionError(ValidationError):
    """Invalid staging row status transition."""

    def __init__(self, current_status: str, new_status: str):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot transition from {current_status} to {new_status}",
            details={
                "current_status": current_status,
                "new_status": new_status,
                "reason": "Row status can only move forward, and COMMITTED is terminal"
            }
        )


# ===================
# COMMIT ERRORS
# ===================

class ListingSKUExistsError(DuplicateError):
    """Listing SKU already used in the shop."""

    def __init__(self, sku: str):
        super().__init__(
            resource="Listing",
            field="sku",
            value=sku
        )


class SkuGenerationError(AppError):
    """No free SKU found within the attempt budget."""

    def __init__(self, shop_id: str, attempts: int):
        super().__init__(
            code="SKU_GENERATION_FAILED",
            message=f"Could not generate a unique SKU after {attempts} attempts",
            status_code=500,
            details={"shop_id": shop_id, "attempts": attempts}
        )

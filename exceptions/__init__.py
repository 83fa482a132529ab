"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DuplicateError,
    DatabaseError,

    # Batches
    BatchNotFoundError,
    ShopNotFoundError,
    BatchStateError,
    BatchAlreadyCommittedError,
    BatchCancelledError,
    BatchCommitInProgressError,
    PendingBatchLimitError,
    UploadTooLargeError,
    EmptyUploadError,
    InvalidStatusTransitionError,

    # Commit
    ListingSKUExistsError,
    SkuGenerationError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DuplicateError",
    "DatabaseError",

    # Batches
    "BatchNotFoundError",
    "ShopNotFoundError",
    "BatchStateError",
    "BatchAlreadyCommittedError",
    "BatchCancelledError",
    "BatchCommitInProgressError",
    "PendingBatchLimitError",
    "UploadTooLargeError",
    "EmptyUploadError",
    "InvalidStatusTransitionError",

    # Commit
    "ListingSKUExistsError",
    "SkuGenerationError",
]

"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    PaginationParams,
    total_pages,
)
from models.catalog import (
    ProductStatus,
    ListingStatus,
    MATCHABLE_STATUSES,
    BaseProductResponse,
    ListingResponse,
)
from models.bulk_upload import (
    TemplateType,
    UploadStatus,
    ValidationStatus,
    Condition,
    ErrorKind,
    RowError,
    is_valid_row_transition,
    UploadBatchResponse,
    StagingUploadResponse,
    StagingSummary,
    StagingRowResponse,
    InvalidRowView,
    PreviewResponse,
    CommittedListing,
    CommitSummary,
    CorrectionSummary,
    CorrectionPreview,
    CleanupResult,
)
from models.spec_rule import (
    ConstraintType,
    SpecConstraint,
    SpecRule,
    InvalidSpec,
    SpecValidationResult,
    MissingSpecSummary,
)
from models.matching import (
    MatchType,
    MatchCandidate,
    ProductMatchResult,
)

__all__ = [
    # Base
    "BaseSchema",
    "PaginationParams",
    "total_pages",

    # Catalog
    "ProductStatus",
    "ListingStatus",
    "MATCHABLE_STATUSES",
    "BaseProductResponse",
    "ListingResponse",

    # Uploads
    "TemplateType",
    "UploadStatus",
    "ValidationStatus",
    "Condition",
    "ErrorKind",
    "RowError",
    "is_valid_row_transition",
    "UploadBatchResponse",
    "StagingUploadResponse",
    "StagingSummary",
    "StagingRowResponse",
    "InvalidRowView",
    "PreviewResponse",
    "CommittedListing",
    "CommitSummary",
    "CorrectionSummary",
    "CorrectionPreview",
    "CleanupResult",

    # Spec rules
    "ConstraintType",
    "SpecConstraint",
    "SpecRule",
    "InvalidSpec",
    "SpecValidationResult",
    "MissingSpecSummary",

    # Matching
    "MatchType",
    "MatchCandidate",
    "ProductMatchResult",
]

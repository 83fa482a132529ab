"""
Upload batch and staging row schemas.

A batch moves STAGING -> COMPLETED | CANCELLED. Each staged row moves
PENDING -> VALID | INVALID | SKIPPED, and only VALID rows may become
COMMITTED.
"""

from pydantic import Field, field_validator
from typing import Any, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema
from models.catalog import ListingStatus
from models.spec_rule import InvalidSpec


class TemplateType(str, Enum):
    """Column schema of an upload."""
    ELECTRONICS = "ELECTRONICS"  # "Spec: <Name>" columns
    GENERAL = "GENERAL"          # Label_n / Value_n pairs
    AUTO = "AUTO"                # decided from the category during validation


class UploadStatus(str, Enum):
    """Upload batch lifecycle."""
    STAGING = "STAGING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ValidationStatus(str, Enum):
    """Staging row lifecycle."""
    PENDING = "PENDING"
    VALID = "VALID"
    INVALID = "INVALID"
    SKIPPED = "SKIPPED"
    COMMITTED = "COMMITTED"


class Condition(str, Enum):
    """Listing condition values accepted from uploads."""
    NEW = "NEW"
    REFURBISHED = "REFURBISHED"
    USED_LIKE_NEW = "USED_LIKE_NEW"
    USED_GOOD = "USED_GOOD"
    USED_FAIR = "USED_FAIR"


class ErrorKind(str, Enum):
    """Where a row-level error came from."""
    PARSE = "PARSE"
    DUPLICATE = "DUPLICATE"
    COMMIT = "COMMIT"


# Allowed next states per row status
ROW_TRANSITIONS = {
    ValidationStatus.PENDING: {
        ValidationStatus.VALID,
        ValidationStatus.INVALID,
        ValidationStatus.SKIPPED,
    },
    ValidationStatus.VALID: {ValidationStatus.COMMITTED},
    ValidationStatus.INVALID: set(),
    ValidationStatus.SKIPPED: set(),
    ValidationStatus.COMMITTED: set(),
}


def is_valid_row_transition(current: ValidationStatus, new: ValidationStatus) -> bool:
    """
    Check if a staging row status transition is valid.

    Rules:
    - PENDING can become VALID, INVALID or SKIPPED
    - Only VALID can become COMMITTED
    - INVALID, SKIPPED and COMMITTED are terminal
    """
    return ValidationStatus(new) in ROW_TRANSITIONS[ValidationStatus(current)]


# ===================
# ROW ERRORS
# ===================

class RowError(BaseSchema):
    """One structured problem attached to a staging row."""
    row: int = Field(..., ge=1)
    field: str
    message: str
    kind: ErrorKind = ErrorKind.PARSE


# ===================
# BATCH SCHEMAS
# ===================

class UploadBatchResponse(BaseSchema):
    """Upload batch as stored in bulk_uploads."""

    id: str
    shop_id: str
    seller_id: Optional[str] = None
    file_name: Optional[str] = None
    template_type: TemplateType = TemplateType.AUTO
    status: UploadStatus = UploadStatus.STAGING

    total_rows: int = 0
    valid: int = 0
    invalid: int = 0
    skipped: int = 0
    committed: int = 0
    failed: int = 0
    needs_specs: int = 0
    needs_images: int = 0
    new_products: int = 0

    created_at: Optional[datetime] = None
    commit_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class StagingUploadResponse(BaseSchema):
    """Result of staging an upload."""
    batch_id: str
    status: UploadStatus
    total_rows: int
    staged_rows: int
    rows_with_parse_errors: int


class StagingSummary(BaseSchema):
    """Counters written onto the batch after validation."""
    batch_id: str
    template_type: TemplateType
    total_rows: int = 0
    valid: int = 0
    invalid: int = 0
    skipped: int = 0
    needs_specs: int = 0
    needs_images: int = 0
    new_products: int = 0


# ===================
# STAGING ROW SCHEMAS
# ===================

class StagingRowResponse(BaseSchema):
    """Staging row as stored in bulk_upload_staging."""

    id: Optional[str] = None
    batch_id: str
    shop_id: Optional[str] = None
    row_number: int = Field(..., ge=1)
    raw_data: dict[str, Any] = Field(default_factory=dict)

    product_name: Optional[str] = None
    normalized_name: Optional[str] = None
    category_name: Optional[str] = None
    brand: Optional[str] = None
    sku: Optional[str] = None
    base_price: Optional[float] = None
    display_price: Optional[int] = None
    stock_quantity: Optional[int] = None
    condition: Optional[Condition] = None
    description: Optional[str] = None
    attributes: dict[str, str] = Field(default_factory=dict)
    template_type: TemplateType = TemplateType.AUTO

    validation_status: ValidationStatus = ValidationStatus.PENDING
    errors: list[RowError] = Field(default_factory=list)
    matched_product_id: Optional[str] = None
    will_create_product: bool = False
    match_confidence: Optional[float] = None
    match_explanation: Optional[str] = None
    missing_specs: list[str] = Field(default_factory=list)
    invalid_specs: list[InvalidSpec] = Field(default_factory=list)
    target_listing_status: Optional[ListingStatus] = None

    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    @field_validator("raw_data", "attributes", "errors", "missing_specs", "invalid_specs", mode="before")
    @classmethod
    def none_to_empty(cls, v, info):
        """Nullable JSON columns come back as None."""
        if v is None:
            return {} if info.field_name in ("raw_data", "attributes") else []
        return v

    @property
    def parse_errors(self) -> list[RowError]:
        return [e for e in self.errors if e.kind == ErrorKind.PARSE]


class InvalidRowView(BaseSchema):
    """Preview entry for an invalid or skipped row."""
    row_number: int
    validation_status: ValidationStatus
    product_name: Optional[str] = None
    raw_data: dict[str, Any] = Field(default_factory=dict)
    errors: list[RowError] = Field(default_factory=list)


class PreviewResponse(BaseSchema):
    """One page of the staging preview."""
    batch: UploadBatchResponse
    show_invalid: bool = False
    valid_rows: list[StagingRowResponse] = Field(default_factory=list)
    invalid_rows: list[InvalidRowView] = Field(default_factory=list)
    page: int = 1
    page_size: int = 50
    total: int = 0
    total_pages: int = 0


# ===================
# COMMIT SCHEMAS
# ===================

class CommittedListing(BaseSchema):
    """Listing created by a commit."""
    listing_id: str
    product_id: str
    product_name: str
    sku: str
    listing_status: ListingStatus
    is_new_product: bool = False


class CommitSummary(BaseSchema):
    """Final result of committing a batch, also handed to notifiers."""
    batch_id: str
    shop_id: str
    committed: int = 0
    skipped: int = 0
    invalid: int = 0
    failed: int = 0
    new_products: int = 0
    needs_specs: int = 0
    needs_images: int = 0
    listings: list[CommittedListing] = Field(default_factory=list)
    failures: list[RowError] = Field(default_factory=list)
    completed_at: Optional[datetime] = None


# ===================
# CORRECTION / CLEANUP
# ===================

class CorrectionSummary(BaseSchema):
    """Overview of rows that need fixing before re-upload."""
    batch_id: str
    total_error_rows: int = 0
    invalid: int = 0
    skipped: int = 0
    error_breakdown: dict[str, int] = Field(default_factory=dict)


class CorrectionPreview(BaseSchema):
    """One page of correction rows."""
    rows: list[dict[str, Any]] = Field(default_factory=list)
    summary: CorrectionSummary
    page: int = 1
    page_size: int = 20
    total: int = 0
    total_pages: int = 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class CleanupResult(BaseSchema):
    """Outcome of a retention sweep."""
    deleted_rows: int = 0
    cancelled_batches: int = 0
    released_claims: int = 0
    ran_at: datetime

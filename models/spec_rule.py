"""
Category spec rules and validation results.
"""

from pydantic import Field, field_validator
from typing import Optional
from enum import Enum

from models.base import BaseSchema
from models.catalog import ListingStatus


class ConstraintType(str, Enum):
    NUMBER = "number"
    BOOLEAN = "boolean"
    PATTERN = "pattern"
    ENUM = "enum"
    TEXT = "text"
    STRING = "string"


class SpecConstraint(BaseSchema):
    """Check applied to one spec value."""
    type: ConstraintType = ConstraintType.TEXT
    pattern: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    enum: list[str] = Field(default_factory=list)


class SpecRule(BaseSchema):
    """Required and optional specs for a tech category."""
    id: Optional[str] = None
    category_id: Optional[str] = None
    category_name: str
    required_specs: list[str] = Field(default_factory=list)
    optional_specs: list[str] = Field(default_factory=list)
    spec_labels: dict[str, str] = Field(default_factory=dict)
    spec_validations: dict[str, SpecConstraint] = Field(default_factory=dict)
    is_active: bool = True

    @field_validator(
        "required_specs", "optional_specs", "spec_labels", "spec_validations",
        mode="before"
    )
    @classmethod
    def none_to_empty(cls, v, info):
        """Nullable JSON columns come back as None."""
        if v is None:
            return {} if info.field_name in ("spec_labels", "spec_validations") else []
        return v


class InvalidSpec(BaseSchema):
    spec: str
    error: str


class SpecValidationResult(BaseSchema):
    """Outcome of checking one row's specs against its category."""
    is_tech_category: bool
    rule_name: Optional[str] = None
    missing_required: list[str] = Field(default_factory=list)
    invalid_specs: list[InvalidSpec] = Field(default_factory=list)
    normalized_values: dict[str, str] = Field(default_factory=dict)
    target_status: ListingStatus = ListingStatus.NEEDS_IMAGES

    @property
    def is_valid(self) -> bool:
        return not self.missing_required and not self.invalid_specs


class MissingSpecSummary(BaseSchema):
    """Completion overview for a row's required specs."""
    is_tech_category: bool = False
    required: list[str] = Field(default_factory=list)
    provided: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    missing_labels: list[str] = Field(default_factory=list)
    percent_complete: int = 100

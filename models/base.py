"""
Base schemas shared by all pipeline models.
"""

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class PaginationParams(BaseModel):
    """Page request for preview and correction views."""
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1, le=500)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def end(self) -> int:
        """Inclusive end index for Supabase .range()."""
        return self.offset + self.page_size - 1


def total_pages(total: int, page_size: int) -> int:
    """Ceiling division, zero when there is nothing to page."""
    if total <= 0 or page_size <= 0:
        return 0
    return (total + page_size - 1) // page_size

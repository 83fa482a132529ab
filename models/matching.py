"""
Product matching schemas.
"""

from pydantic import Field
from typing import Optional
from enum import Enum

from models.base import BaseSchema


class MatchType(str, Enum):
    """Which matching step produced a candidate."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    BRAND_CATEGORY = "brand_category"
    KEYWORD = "keyword"
    NONE = "none"


class MatchCandidate(BaseSchema):
    """Scored catalog candidate."""
    product_id: str
    name: str
    normalized_name: Optional[str] = None
    brand: Optional[str] = None
    category_name: Optional[str] = None
    is_verified: bool = False
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    final_score: float = Field(default=0.0, ge=0.0, le=1.0)
    match_type: MatchType = MatchType.FUZZY


class ProductMatchResult(BaseSchema):
    """Matcher decision for one product name."""
    matched: bool = False
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    is_verified: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    match_type: MatchType = MatchType.NONE
    will_create_new: bool = True
    explanation: str = ""
    candidates: list[MatchCandidate] = Field(default_factory=list)

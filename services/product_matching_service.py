"""
Product matching service.

Decides whether an uploaded product name refers to an existing catalog
product so that bulk uploads don't flood the catalog with duplicates.

Steps:
    1. Exact match on normalized name (verified exact match returns at once)
    2. Fuzzy match (database trigram function, local trigram fallback)
    3. Brand + category match
    4. Keyword / alias match
"""

from typing import Optional
import structlog

from config import get_supabase_client, settings
from exceptions import DatabaseError
from models.catalog import MATCHABLE_STATUSES, ProductStatus
from models.matching import MatchCandidate, MatchType, ProductMatchResult
from utils.text_utils import (
    extract_brand,
    normalize_product_name,
    significant_words,
    trigram_similarity,
)

logger = structlog.get_logger(__name__)


# Score boosts
VERIFIED_BOOST = 0.15
EXACT_MATCH_BOOST = 0.10
BRAND_MATCH_BOOST = 0.05
CATEGORY_MATCH_BOOST = 0.05

# Fuzzy candidates below (threshold - margin) are discarded
FUZZY_FLOOR_MARGIN = 0.15


def calculate_final_score(
    similarity: float,
    is_verified: bool,
    match_type: MatchType,
    brand_matches: bool,
    category_matches: bool
) -> float:
    """Similarity plus boosts, capped at 1.0."""
    score = similarity
    if is_verified:
        score += VERIFIED_BOOST
    if match_type == MatchType.EXACT:
        score += EXACT_MATCH_BOOST
    if brand_matches:
        score += BRAND_MATCH_BOOST
    if category_matches:
        score += CATEGORY_MATCH_BOOST
    return min(score, 1.0)


def _same_text(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def rank_candidates(candidates: list[MatchCandidate]) -> list[MatchCandidate]:
    """Sort by final score (verified first on ties) and drop repeated ids."""
    ordered = sorted(
        candidates,
        key=lambda c: (-c.final_score, 0 if c.is_verified else 1)
    )
    seen: set[str] = set()
    unique = []
    for candidate in ordered:
        if candidate.product_id in seen:
            continue
        seen.add(candidate.product_id)
        unique.append(candidate)
    return unique


class ProductMatchingService:
    """
    Catalog matching for uploaded rows.

    Only APPROVED and PENDING products that were not merged into another
    product are considered.
    """

    def __init__(self, threshold: Optional[float] = None):
        self.db = get_supabase_client()
        self.table = "products"
        self.threshold = settings.fuzzy_match_threshold if threshold is None else threshold
        self.max_candidates = settings.max_candidates_per_step
        self.pool_size = settings.local_fuzzy_pool_size

    # ===================
    # QUERY HELPERS
    # ===================

    def _active_products(self):
        return (
            self.db.table(self.table)
            .select("*")
            .in_("status", MATCHABLE_STATUSES)
            .is_("merged_into_id", "null")
        )

    def _candidate(
        self,
        product: dict,
        similarity: float,
        match_type: MatchType,
        brand: Optional[str],
        category_name: Optional[str]
    ) -> MatchCandidate:
        is_verified = product.get("status") == ProductStatus.APPROVED.value
        similarity = max(0.0, min(float(similarity), 1.0))
        return MatchCandidate(
            product_id=product["id"],
            name=product.get("name") or "",
            normalized_name=product.get("normalized_name"),
            brand=product.get("brand"),
            category_name=product.get("category_name"),
            is_verified=is_verified,
            similarity=similarity,
            final_score=calculate_final_score(
                similarity,
                is_verified,
                match_type,
                _same_text(brand, product.get("brand")),
                _same_text(category_name, product.get("category_name")),
            ),
            match_type=match_type,
        )

    # ===================
    # MATCHING STEPS
    # ===================

    def _exact_matches(self, normalized_name, brand, category_name) -> list[MatchCandidate]:
        result = (
            self._active_products()
            .eq("normalized_name", normalized_name)
            .limit(self.max_candidates)
            .execute()
        )
        return [
            self._candidate(p, 1.0, MatchType.EXACT, brand, category_name)
            for p in (result.data or [])
        ]

    def _fuzzy_matches(self, normalized_name, brand, category_name) -> list[MatchCandidate]:
        floor = self.threshold - FUZZY_FLOOR_MARGIN

        try:
            result = self.db.rpc(
                "match_products_trgm",
                {
                    "query_name": normalized_name,
                    "min_similarity": floor,
                    "match_limit": self.max_candidates,
                }
            ).execute()
            rows = result.data or []
            return [
                self._candidate(p, p.get("similarity") or 0.0, MatchType.FUZZY, brand, category_name)
                for p in rows
                if (p.get("similarity") or 0.0) >= floor
                and p.get("status") in MATCHABLE_STATUSES
                and not p.get("merged_into_id")
            ]
        except Exception as e:
            logger.info(
                "trigram_function_unavailable",
                error=str(e),
                fallback="local"
            )

        return self._local_fuzzy_matches(normalized_name, brand, category_name, floor)

    def _local_fuzzy_matches(self, normalized_name, brand, category_name, floor) -> list[MatchCandidate]:
        keywords = [w for w in normalized_name.split(" ") if len(w) > 2]
        if not keywords:
            return []

        pool: dict[str, dict] = {}
        for keyword in keywords:
            if len(pool) >= self.pool_size:
                break
            result = (
                self._active_products()
                .ilike("normalized_name", f"%{keyword}%")
                .limit(self.pool_size)
                .execute()
            )
            for product in result.data or []:
                if len(pool) >= self.pool_size:
                    break
                pool.setdefault(product["id"], product)

        candidates = []
        for product in pool.values():
            similarity = trigram_similarity(normalized_name, product.get("normalized_name") or "")
            if similarity >= floor:
                candidates.append(
                    self._candidate(product, similarity, MatchType.FUZZY, brand, category_name)
                )
        return candidates

    def _brand_category_matches(self, normalized_name, brand, category_name) -> list[MatchCandidate]:
        result = (
            self._active_products()
            .ilike("brand", brand)
            .ilike("category_name", category_name)
            .limit(self.max_candidates)
            .execute()
        )
        return [
            self._candidate(
                p,
                trigram_similarity(normalized_name, p.get("normalized_name") or ""),
                MatchType.BRAND_CATEGORY,
                brand,
                category_name,
            )
            for p in (result.data or [])
        ]

    def _keyword_matches(self, normalized_name, words, brand, category_name) -> list[MatchCandidate]:
        found: dict[str, dict] = {}
        for column in ("keywords", "aliases"):
            result = (
                self._active_products()
                .overlaps(column, words)
                .limit(self.max_candidates)
                .execute()
            )
            for product in result.data or []:
                found.setdefault(product["id"], product)

        return [
            self._candidate(
                p,
                trigram_similarity(normalized_name, p.get("normalized_name") or ""),
                MatchType.KEYWORD,
                brand,
                category_name,
            )
            for p in found.values()
        ]

    # ===================
    # PUBLIC API
    # ===================

    def find_match(
        self,
        product_name: str,
        normalized_name: Optional[str] = None,
        brand: Optional[str] = None,
        category_name: Optional[str] = None,
        keywords: Optional[list[str]] = None
    ) -> ProductMatchResult:
        """
        Find the catalog product an uploaded name refers to.

        Args:
            product_name: Name as uploaded
            normalized_name: Precomputed normalized name
            brand: Brand from the upload (guessed from the name if absent)
            category_name: Category from the upload
            keywords: Extra keywords to use in the keyword step

        Returns:
            ProductMatchResult; matched=False means a new product should be created

        Raises:
            DatabaseError: If catalog queries fail
        """
        normalized = normalized_name or normalize_product_name(product_name)
        brand = brand or extract_brand(product_name)

        if not normalized:
            return ProductMatchResult(explanation="Product name is empty")

        logger.debug(
            "matching_product",
            normalized_name=normalized,
            brand=brand,
            category=category_name
        )

        try:
            candidates = self._exact_matches(normalized, brand, category_name)

            verified_exact = next((c for c in candidates if c.is_verified), None)
            if verified_exact:
                logger.debug("verified_exact_match", product_id=verified_exact.product_id)
                return ProductMatchResult(
                    matched=True,
                    product_id=verified_exact.product_id,
                    product_name=verified_exact.name,
                    is_verified=True,
                    confidence=100.0,
                    match_type=MatchType.EXACT,
                    will_create_new=False,
                    explanation="Exact match found on verified product",
                    candidates=candidates,
                )

            candidates.extend(self._fuzzy_matches(normalized, brand, category_name))

            if brand and category_name:
                candidates.extend(self._brand_category_matches(normalized, brand, category_name))

            words = significant_words(normalized) + [k.lower() for k in (keywords or []) if k]
            if words:
                candidates.extend(self._keyword_matches(normalized, words, brand, category_name))

        except Exception as e:
            logger.error(
                "product_matching_failed",
                normalized_name=normalized,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        return self._select_best(rank_candidates(candidates))

    def _select_best(self, candidates: list[MatchCandidate]) -> ProductMatchResult:
        if not candidates:
            return ProductMatchResult(
                explanation="No matching products found in catalog",
            )

        best = candidates[0]
        confidence = round(best.final_score * 100, 1)

        if best.final_score < self.threshold and best.match_type != MatchType.EXACT:
            return ProductMatchResult(
                matched=False,
                confidence=confidence,
                will_create_new=True,
                explanation=(
                    f'Best match "{best.name}" below threshold '
                    f"({confidence:.1f}% < {self.threshold * 100:.0f}%)"
                ),
                candidates=candidates,
            )

        return ProductMatchResult(
            matched=True,
            product_id=best.product_id,
            product_name=best.name,
            is_verified=best.is_verified,
            confidence=confidence,
            match_type=best.match_type,
            will_create_new=False,
            explanation=(
                f"Matched via {best.match_type.value}"
                f"{' (verified)' if best.is_verified else ''}"
                f" with {confidence:.1f}% confidence"
            ),
            candidates=candidates,
        )


# Singleton instance for convenience
_product_matching_service: Optional[ProductMatchingService] = None

def get_product_matching_service() -> ProductMatchingService:
    """Get or create ProductMatchingService instance."""
    global _product_matching_service
    if _product_matching_service is None:
        _product_matching_service = ProductMatchingService()
    return _product_matching_service

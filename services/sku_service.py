"""
SKU service.

Generated SKUs look like MYSHOP-20260115-007: a six character shop code,
the commit date and a per-shop-per-day sequence number.
"""

from datetime import date
from typing import Optional
import re
import structlog

from config import get_supabase_client, settings
from exceptions import DatabaseError, SkuGenerationError

logger = structlog.get_logger(__name__)

SHOP_CODE_LENGTH = 6


def shop_code(shop_name: Optional[str]) -> str:
    """
    First six alphanumerics of the upper-cased shop name, padded with X.

    Examples:
        "Tech Hub Lilongwe" -> "TECHHU"
        "A1" -> "A1XXXX"
    """
    letters = re.sub(r"[^A-Z0-9]", "", (shop_name or "").upper())
    return letters[:SHOP_CODE_LENGTH].ljust(SHOP_CODE_LENGTH, "X")


def date_code(on_date: date) -> str:
    return on_date.strftime("%Y%m%d")


def format_sku(code: str, day: str, sequence: int) -> str:
    return f"{code}-{day}-{sequence:03d}"


class SkuService:
    """
    SKU checks and generation for shop listings.

    The sequence comes from an atomic per-shop-per-day counter, so each
    call gets a value no other caller gets. Values already taken by a
    listing (e.g. a seller-supplied SKU) are skipped.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.listings_table = "shop_products"
        self.sequences_table = "sku_sequences"

    def sku_exists(self, shop_id: str, sku: str) -> bool:
        """Check whether the shop already has a listing with this SKU."""
        try:
            result = (
                self.db.table(self.listings_table)
                .select("id")
                .eq("shop_id", shop_id)
                .eq("sku", sku)
                .limit(1)
                .execute()
            )
            return bool(result.data)
        except Exception as e:
            logger.error("sku_lookup_failed", shop_id=shop_id, sku=sku, error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # SEQUENCE
    # ===================

    def next_sequence(self, shop_id: str, day: str) -> int:
        """
        Reserve the next sequence value for a shop and day.

        Uses the next_sku_sequence database function; falls back to a
        read-then-write on sku_sequences when the function is missing.
        """
        try:
            result = self.db.rpc(
                "next_sku_sequence",
                {"shop_id": shop_id, "date_code": day}
            ).execute()
            if result.data is not None:
                value = result.data[0] if isinstance(result.data, list) else result.data
                if isinstance(value, dict):
                    key = "last_value" if value.get("last_value") is not None else "next_sku_sequence"
                    value = value.get(key)
                return int(value)
        except Exception as e:
            logger.debug("sku_sequence_rpc_unavailable", error=str(e))

        return self._next_sequence_from_table(shop_id, day)

    def _next_sequence_from_table(self, shop_id: str, day: str) -> int:
        try:
            result = (
                self.db.table(self.sequences_table)
                .select("*")
                .eq("shop_id", shop_id)
                .eq("date_code", day)
                .limit(1)
                .execute()
            )

            if result.data:
                value = int(result.data[0]["last_value"]) + 1
                (
                    self.db.table(self.sequences_table)
                    .update({"last_value": value})
                    .eq("shop_id", shop_id)
                    .eq("date_code", day)
                    .execute()
                )
            else:
                value = 1
                (
                    self.db.table(self.sequences_table)
                    .insert({"shop_id": shop_id, "date_code": day, "last_value": value})
                    .execute()
                )
            return value

        except Exception as e:
            logger.error("sku_sequence_failed", shop_id=shop_id, date_code=day, error=str(e))
            raise DatabaseError("update", str(e))

    # ===================
    # GENERATION
    # ===================

    def generate_sku(
        self,
        shop_id: str,
        shop_name: Optional[str],
        on_date: Optional[date] = None
    ) -> str:
        """
        Generate an unused SKU for the shop.

        Each retry takes a fresh sequence value, so candidates strictly
        increase.

        Raises:
            SkuGenerationError: No free value within max_sku_attempts
        """
        code = shop_code(shop_name)
        day = date_code(on_date or date.today())

        last = 0
        for _ in range(settings.max_sku_attempts):
            sequence = self.next_sequence(shop_id, day)
            if sequence <= last:
                # counter row was reset underneath us
                sequence = last + 1
            last = sequence

            sku = format_sku(code, day, sequence)
            if not self.sku_exists(shop_id, sku):
                return sku
            logger.debug("sku_taken", shop_id=shop_id, sku=sku)

        logger.error(
            "sku_generation_exhausted",
            shop_id=shop_id,
            attempts=settings.max_sku_attempts
        )
        raise SkuGenerationError(shop_id, settings.max_sku_attempts)


# Singleton instance for convenience
_sku_service: Optional[SkuService] = None

def get_sku_service() -> SkuService:
    """Get or create SkuService instance."""
    global _sku_service
    if _sku_service is None:
        _sku_service = SkuService()
    return _sku_service

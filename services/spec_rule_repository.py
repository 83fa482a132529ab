"""
Spec rule repository.

Loads tech_spec_rules into a time-boxed in-memory cache. Each validator
owns its own repository; call refresh() after editing rules or
invalidate() to force a reload on next use.
"""

import re
import time
from typing import Callable, Optional
import structlog

from config import get_supabase_client, settings
from models.spec_rule import SpecRule

logger = structlog.get_logger(__name__)


# Keyword list used to decide whether a category is "tech"
TECH_CATEGORIES = [
    "smartphones", "phones", "mobile phones",
    "laptops", "notebooks", "computers",
    "tablets", "ipads",
    "tvs", "televisions",
    "cameras", "dslr",
    "gaming consoles", "consoles",
    "smartwatches", "wearables",
    "headphones", "earbuds", "speakers",
    "monitors", "printers", "routers", "networking",
]

# Built-in requirements used when no database rule applies
DEFAULT_SPEC_REQUIREMENTS = {
    "smartphones": {
        "required": ["ram", "storage", "screen_size"],
        "optional": ["color", "battery", "camera", "warranty", "weight"],
    },
    "phones": {
        "required": ["ram", "storage", "screen_size"],
        "optional": ["color", "battery", "camera", "warranty"],
    },
    "laptops": {
        "required": ["ram", "storage", "processor", "screen_size"],
        "optional": ["color", "graphics", "os", "warranty", "weight", "battery_life"],
    },
    "notebooks": {
        "required": ["ram", "storage", "processor", "screen_size"],
        "optional": ["color", "graphics", "os", "warranty", "weight"],
    },
    "tablets": {
        "required": ["ram", "storage", "screen_size"],
        "optional": ["color", "battery", "warranty", "weight", "cellular"],
    },
    "tvs": {
        "required": ["screen_size", "resolution"],
        "optional": ["smart_tv", "refresh_rate", "warranty", "hdr"],
    },
    "cameras": {
        "required": ["megapixels"],
        "optional": ["sensor_type", "lens_mount", "video_resolution", "warranty"],
    },
    "smartwatches": {
        "required": ["display_type"],
        "optional": ["battery_life", "water_resistance", "warranty", "os"],
    },
    "headphones": {
        "required": ["type"],
        "optional": ["wireless", "noise_cancellation", "battery_life", "warranty"],
    },
}


def _category_matches(tech: str, normalized: str) -> bool:
    if tech in normalized:
        return True
    # contained-by must start on a word: "laptop" fits "laptops", "books" never fits "notebooks"
    return re.search(rf"(?:^|\s){re.escape(normalized)}", tech) is not None


def is_tech_category(category_name: Optional[str]) -> bool:
    """
    Check if a category name refers to a tech category.

    Containment works both ways: "Smartphones & Tablets" contains
    "smartphones", and the singular "Laptop" starts the word "laptops".
    The contained-by direction only counts from the start of a word, so
    "Books" is not read as "notebooks".
    """
    if not category_name:
        return False
    normalized = category_name.lower().strip()
    if not normalized:
        return False
    return any(_category_matches(tech, normalized) for tech in TECH_CATEGORIES)


def default_rule_for(category_name: Optional[str]) -> Optional[SpecRule]:
    """Built-in rule for the first tech keyword the category matches."""
    if not category_name:
        return None
    normalized = category_name.lower().strip()
    if not normalized:
        return None

    for tech in TECH_CATEGORIES:
        if _category_matches(tech, normalized):
            specs = DEFAULT_SPEC_REQUIREMENTS.get(tech)
            if specs:
                return SpecRule(
                    id=f"default-{tech}",
                    category_name=tech,
                    required_specs=specs["required"],
                    optional_specs=specs["optional"],
                )
    return None


class SpecRuleRepository:
    """
    Cached access to category spec rules.

    Rules come from the tech_spec_rules table. When the table is empty or
    unreachable the built-in defaults are used instead.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.db = get_supabase_client()
        self.table = "tech_spec_rules"
        self.ttl_seconds = settings.spec_rule_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._by_id: dict[str, SpecRule] = {}
        self._by_name: dict[str, SpecRule] = {}
        self._loaded_at: Optional[float] = None
        self.using_defaults = False

    # ===================
    # CACHE CONTROL
    # ===================

    @property
    def is_stale(self) -> bool:
        if self._loaded_at is None:
            return True
        return self._clock() - self._loaded_at > self.ttl_seconds

    def invalidate(self) -> None:
        """Drop cached rules; the next lookup reloads them."""
        self._loaded_at = None
        logger.debug("spec_rules_invalidated")

    def refresh(self) -> int:
        """
        Reload rules now.

        Returns:
            Number of rules loaded
        """
        self._by_id = {}
        self._by_name = {}

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("is_active", True)
                .execute()
            )
            rules = [SpecRule(**row) for row in (result.data or [])]
        except Exception as e:
            logger.warning(
                "spec_rules_load_failed",
                error=str(e),
                fallback="defaults"
            )
            rules = []

        if rules:
            self.using_defaults = False
            for rule in rules:
                if rule.category_id:
                    self._by_id[rule.category_id] = rule
                self._by_name[rule.category_name.lower().strip()] = rule
        else:
            self.using_defaults = True
            for category, specs in DEFAULT_SPEC_REQUIREMENTS.items():
                self._by_name[category] = SpecRule(
                    id=f"default-{category}",
                    category_name=category,
                    required_specs=specs["required"],
                    optional_specs=specs["optional"],
                )

        self._loaded_at = self._clock()

        logger.info(
            "spec_rules_loaded",
            count=len(self._by_name),
            using_defaults=self.using_defaults
        )
        return len(self._by_name)

    def _ensure_loaded(self) -> None:
        if self.is_stale:
            self.refresh()

    # ===================
    # LOOKUP
    # ===================

    def get_rule(
        self,
        category_id: Optional[str] = None,
        category_name: Optional[str] = None
    ) -> Optional[SpecRule]:
        """
        Find the rule for a category.

        Order: category id, exact name, partial name, then built-in
        defaults by tech keyword.
        """
        self._ensure_loaded()

        if category_id and category_id in self._by_id:
            return self._by_id[category_id]

        if category_name:
            normalized = category_name.lower().strip()
            if normalized in self._by_name:
                return self._by_name[normalized]

            if normalized:
                for key, rule in self._by_name.items():
                    if key in normalized or normalized in key:
                        return rule

        return default_rule_for(category_name)

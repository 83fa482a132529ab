"""
Spec validator service.

Decides which specs a category requires, normalizes provided values and
recommends the listing status a committed row should start in.
"""

import re
from typing import Optional
import structlog

from models.catalog import ListingStatus
from models.spec_rule import (
    ConstraintType,
    InvalidSpec,
    MissingSpecSummary,
    SpecConstraint,
    SpecRule,
    SpecValidationResult,
)
from services.spec_rule_repository import SpecRuleRepository, is_tech_category
from utils.spec_normalizers import normalize_spec_values
from utils.text_utils import normalize_spec_key

logger = structlog.get_logger(__name__)

_TRUE_VALUES = {"true", "yes", "y", "1"}
_FALSE_VALUES = {"false", "no", "n", "0"}


def validate_spec_value(spec_key: str, value: str, constraint: SpecConstraint) -> Optional[str]:
    """
    Check one value against its constraint.

    Returns:
        Error message, or None if the value is acceptable
    """
    if constraint.type == ConstraintType.NUMBER:
        digits = re.sub(r"[^\d.\-]", "", value)
        try:
            number = float(digits)
        except ValueError:
            return f"{spec_key} must be a number"
        if constraint.min is not None and number < constraint.min:
            return f"{spec_key} must be at least {constraint.min:g}"
        if constraint.max is not None and number > constraint.max:
            return f"{spec_key} must be at most {constraint.max:g}"

    if constraint.type == ConstraintType.BOOLEAN:
        if value.strip().lower() not in _TRUE_VALUES | _FALSE_VALUES:
            return f"{spec_key} must be yes or no"

    if constraint.pattern:
        try:
            if not re.search(constraint.pattern, value, re.IGNORECASE):
                return f"{spec_key} has invalid format"
        except re.error as e:
            # Bad pattern in the rule table is an admin problem, not the seller's
            logger.warning("spec_pattern_invalid", spec=spec_key, error=str(e))

    if constraint.enum:
        allowed = [e.lower().strip() for e in constraint.enum]
        if value.lower().strip() not in allowed:
            return f"{spec_key} must be one of: {', '.join(constraint.enum)}"

    return None


class SpecValidatorService:
    """
    Category spec validation.

    Owns a SpecRuleRepository, so rule caching is per validator instance.
    """

    def __init__(self, rules: Optional[SpecRuleRepository] = None):
        self.rules = rules or SpecRuleRepository()

    def is_tech_category(self, category_name: Optional[str]) -> bool:
        return is_tech_category(category_name)

    def get_rule(
        self,
        category_name: Optional[str],
        category_id: Optional[str] = None
    ) -> Optional[SpecRule]:
        """Rule for a tech category, None for everything else."""
        if not is_tech_category(category_name):
            return None
        return self.rules.get_rule(category_id=category_id, category_name=category_name)

    # ===================
    # VALIDATION
    # ===================

    def validate_specs(
        self,
        category_name: Optional[str],
        attributes: Optional[dict],
        category_id: Optional[str] = None
    ) -> SpecValidationResult:
        """
        Validate a row's attributes against its category.

        Non-tech categories always pass. Tech categories report missing
        required specs and values failing their constraints; either one
        routes the listing to NEEDS_SPECS.

        Args:
            category_name: Category from the upload
            attributes: Attribute map (keys need not be normalized)
            category_id: Catalog category id, when known

        Returns:
            SpecValidationResult
        """
        normalized = normalize_spec_values(attributes)

        if not is_tech_category(category_name):
            return SpecValidationResult(
                is_tech_category=False,
                normalized_values=normalized,
                target_status=ListingStatus.NEEDS_IMAGES,
            )

        rule = self.rules.get_rule(category_id=category_id, category_name=category_name)
        if rule is None:
            logger.debug("spec_rule_not_found", category=category_name)
            return SpecValidationResult(
                is_tech_category=True,
                normalized_values=normalized,
                target_status=ListingStatus.NEEDS_IMAGES,
            )

        missing: list[str] = []
        invalid: list[InvalidSpec] = []
        required_keys = [normalize_spec_key(s) for s in rule.required_specs]

        for spec, key in zip(rule.required_specs, required_keys):
            value = normalized.get(key)
            if not value or not value.strip():
                missing.append(spec)
                continue
            constraint = rule.spec_validations.get(key)
            if constraint:
                error = validate_spec_value(key, value, constraint)
                if error:
                    invalid.append(InvalidSpec(spec=key, error=error))

        # Optional specs are only checked when provided
        for key, value in normalized.items():
            if key in required_keys:
                continue
            constraint = rule.spec_validations.get(key)
            if constraint:
                error = validate_spec_value(key, value, constraint)
                if error:
                    invalid.append(InvalidSpec(spec=key, error=error))

        target = (
            ListingStatus.NEEDS_SPECS if missing or invalid
            else ListingStatus.NEEDS_IMAGES
        )

        return SpecValidationResult(
            is_tech_category=True,
            rule_name=rule.category_name,
            missing_required=missing,
            invalid_specs=invalid,
            normalized_values=normalized,
            target_status=target,
        )

    def has_all_required_specs(
        self,
        category_name: Optional[str],
        attributes: Optional[dict],
        category_id: Optional[str] = None
    ) -> bool:
        return not self.validate_specs(category_name, attributes, category_id).missing_required

    # ===================
    # LABELS / SUMMARIES
    # ===================

    def get_required_specs(
        self,
        category_name: Optional[str],
        category_id: Optional[str] = None
    ) -> list[str]:
        rule = self.get_rule(category_name, category_id)
        return list(rule.required_specs) if rule else []

    def get_spec_labels(
        self,
        category_name: Optional[str],
        spec_keys: list[str],
        category_id: Optional[str] = None
    ) -> dict[str, str]:
        """
        Human-readable labels for spec keys.

        Uses the rule's labels where defined, otherwise title-cases the
        key ("screen_size" -> "Screen Size").
        """
        rule = self.get_rule(category_name, category_id)
        labels = {}
        for key in spec_keys:
            normalized_key = normalize_spec_key(key)
            if rule and normalized_key in rule.spec_labels:
                labels[key] = rule.spec_labels[normalized_key]
            else:
                labels[key] = key.replace("_", " ").title()
        return labels

    def get_missing_summary(
        self,
        category_name: Optional[str],
        attributes: Optional[dict],
        category_id: Optional[str] = None
    ) -> MissingSpecSummary:
        """How complete a row's required specs are, as a percentage."""
        rule = self.get_rule(category_name, category_id)
        if rule is None:
            return MissingSpecSummary(
                is_tech_category=is_tech_category(category_name),
                percent_complete=100,
            )

        normalized = normalize_spec_values(attributes)
        missing = [
            spec for spec in rule.required_specs
            if not normalized.get(normalize_spec_key(spec))
        ]
        provided = [spec for spec in rule.required_specs if spec not in missing]
        labels = self.get_spec_labels(category_name, missing, category_id)

        total = len(rule.required_specs)
        percent = round(len(provided) / total * 100) if total else 100

        return MissingSpecSummary(
            is_tech_category=True,
            required=list(rule.required_specs),
            provided=provided,
            missing=missing,
            missing_labels=[labels.get(s, s) for s in missing],
            percent_complete=percent,
        )


# Singleton instance for convenience
_spec_validator_service: Optional[SpecValidatorService] = None

def get_spec_validator_service() -> SpecValidatorService:
    """Get or create SpecValidatorService instance."""
    global _spec_validator_service
    if _spec_validator_service is None:
        _spec_validator_service = SpecValidatorService()
    return _spec_validator_service

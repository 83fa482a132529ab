"""
Business logic services.

Each service handles one stage of the listing import pipeline.
"""

from services.spec_rule_repository import SpecRuleRepository, is_tech_category
from services.spec_validator_service import SpecValidatorService, get_spec_validator_service
from services.product_matching_service import ProductMatchingService, get_product_matching_service
from services.staging_service import StagingService, get_staging_service
from services.batch_validator_service import BatchValidatorService, get_batch_validator_service
from services.correction_service import CorrectionService, get_correction_service
from services.sku_service import SkuService, get_sku_service
from services.commit_service import CommitService, get_commit_service
from services.cleanup_service import CleanupService, get_cleanup_service

__all__ = [
    "SpecRuleRepository",
    "is_tech_category",
    "SpecValidatorService",
    "get_spec_validator_service",
    "ProductMatchingService",
    "get_product_matching_service",
    "StagingService",
    "get_staging_service",
    "BatchValidatorService",
    "get_batch_validator_service",
    "CorrectionService",
    "get_correction_service",
    "SkuService",
    "get_sku_service",
    "CommitService",
    "get_commit_service",
    "CleanupService",
    "get_cleanup_service",
]

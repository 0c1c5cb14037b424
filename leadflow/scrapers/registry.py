"""
Adapter registry: MapperType -> adapter class.

Scraper rows name a mapper_type; get_adapter() resolves it once and builds
the adapter with the row's provider_config.
"""
import logging
from typing import Dict, List, Any

from leadflow.scrapers.base import ProviderAdapter, MapperType
from leadflow.scrapers.apify import LeadScraperAdapter
from leadflow.scrapers.contacts import LeadsFinderAdapter, LinkedInCompanyEmployeesAdapter, BulkEmailFinderAdapter
from leadflow.scrapers.posts import LinkedInCompanyPostsAdapter, LinkedInProfilePostsAdapter
from leadflow.scrapers.email_validator import EasyBulkEmailValidatorAdapter
from leadflow.scrapers.reviews import TrustpilotReviewsAdapter
from leadflow.scrapers.seo import PageSpeedSeoAdapter

logger = logging.getLogger('scrapers.registry')


# ── Adapter registry ─────────────────────────────────────────────────────────

ADAPTERS: Dict[MapperType, type] = {
    MapperType.APIFY: LeadScraperAdapter,
    MapperType.LEADS_FINDER: LeadsFinderAdapter,
    MapperType.LINKEDIN_COMPANY_EMPLOYEES: LinkedInCompanyEmployeesAdapter,
    MapperType.BULK_EMAIL_FINDER: BulkEmailFinderAdapter,
    MapperType.LINKEDIN_COMPANY_POSTS: LinkedInCompanyPostsAdapter,
    MapperType.LINKEDIN_PROFILE_POSTS: LinkedInProfilePostsAdapter,
    MapperType.EMAIL_VALIDATOR: EasyBulkEmailValidatorAdapter,
    MapperType.TRUSTPILOT_REVIEWS: TrustpilotReviewsAdapter,
    MapperType.PAGESPEED_SEO: PageSpeedSeoAdapter,
}


def get_adapter(mapper_type, provider_config: Dict[str, Any] = None, **deps) -> ProviderAdapter:
    """
    Build the adapter for `mapper_type` (MapperType or its string value).

    `deps` are passed to the constructor (mapper, client, ...). Raises
    ValidationError for unknown mapper types.
    """
    mapper_type = MapperType.parse(mapper_type)
    adapter_cls = ADAPTERS[mapper_type]
    return adapter_cls(provider_config or {}, **deps)


def get_catalog_info() -> List[Dict[str, Any]]:
    """Capabilities of every registered adapter, for the /api/scrapers listing."""
    from leadflow.pipeline.run_config import get_cost_per_thousand, get_max_batch_size

    return [
        {
            'mapperType': mapper_type.value,
            'capability': cls.capability.value,
            'provider': cls.provider,
            'description': cls.description,
            'maxBatchSize': cls.max_batch_size or get_max_batch_size(mapper_type.value),
            'costPerThousand': get_cost_per_thousand(mapper_type.value),
        }
        for mapper_type, cls in ADAPTERS.items()
    ]

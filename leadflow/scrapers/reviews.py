"""Trustpilot review crawler."""
import logging
from typing import Dict, Any, Optional

from leadflow.errors import ValidationError
from leadflow.pipeline.normalize import clean_str, parse_date, extract_domain
from leadflow.scrapers.apify import ApifyAdapter
from leadflow.scrapers.base import MappingResult, Capability, MapperType

logger = logging.getLogger('scrapers.reviews')

TRUSTPILOT_REVIEW_URL = 'https://www.trustpilot.com/review/{domain}'


def trustpilot_url(domain_or_url: Any) -> Optional[str]:
    """Review page URL for a company domain; Trustpilot URLs pass through."""
    value = clean_str(domain_or_url)
    if not value:
        return None
    if 'trustpilot.com/review/' in value:
        return value
    domain = extract_domain(value)
    return TRUSTPILOT_REVIEW_URL.format(domain=domain.lower()) if domain else None


class TrustpilotReviewsAdapter(ApifyAdapter):
    mapper_type = MapperType.TRUSTPILOT_REVIEWS
    capability = Capability.REVIEW_CRAWLER
    description = 'Trustpilot reviews of a company'

    def build_input(self, params: Dict[str, Any]) -> Dict[str, Any]:
        from leadflow.pipeline.run_config import get_provider_setting

        urls = params.get('startUrls')
        if isinstance(urls, str):
            urls = [urls]
        urls = [u for u in (trustpilot_url(u) for u in urls or []) if u]
        if not urls:
            raise ValidationError("At least one Trustpilot URL is required in startUrls")
        max_items = params.get('maxItems') or get_provider_setting(self.mapper_type.value, 'default_max_items', 100)
        return {'startUrls': urls, 'maxItems': int(max_items)}

    def map_to_leads(self, items, collection_id, user_id, options=None) -> MappingResult:
        company_id = (options or {}).get('company_id')
        if not company_id:
            raise ValidationError("company_id is required to map reviews")
        return self.mapper.map_company_reviews(items, company_id, normalize=normalize_review)


def normalize_review(raw: Any) -> Optional[Dict[str, Any]]:
    """Rows without a string id or a numeric rating carry nothing to store."""
    if not isinstance(raw, dict):
        return None
    review_id = raw.get('id')
    rating = raw.get('rating')
    if not isinstance(review_id, str) or not review_id:
        return None
    if isinstance(rating, bool) or not isinstance(rating, (int, float)):
        return None
    return {
        'trustpilot_id': review_id,
        'rating': rating,
        'title': clean_str(raw.get('title')),
        'body': clean_str(raw.get('body')),
        'published_at': parse_date(raw.get('publishedDate')),
    }

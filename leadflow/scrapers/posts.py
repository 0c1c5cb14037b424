"""
LinkedIn post crawlers (company pages and member profiles).

One run per distinct target URL; the orchestrator fans the result out to
every lead sharing that URL through options['lead_ids'].
"""
import logging
from typing import Dict, Any, Optional

from leadflow.errors import MappingError, ValidationError
from leadflow.pipeline.normalize import clean_str, first_of, parse_date, parse_int, parse_linkedin_url
from leadflow.scrapers.apify import ApifyAdapter
from leadflow.scrapers.base import MappingResult, Capability, MapperType

logger = logging.getLogger('scrapers.posts')


class _PostCrawlerAdapter(ApifyAdapter):
    capability = Capability.POST_CRAWLER

    # Param name carrying the target URL(s), besides targetUrls
    target_param: str = ''

    def build_input(self, params: Dict[str, Any]) -> Dict[str, Any]:
        from leadflow.pipeline.run_config import get_provider_setting

        targets = params.get('targetUrls') or params.get(self.target_param)
        if isinstance(targets, str):
            targets = [targets]
        targets = [t for t in (parse_linkedin_url(t) for t in targets or []) if t]
        if not targets:
            raise ValidationError("At least one LinkedIn URL is required in targetUrls")

        actor_input = {
            'targetUrls': targets,
            'maxPosts': params.get('maxPosts') or get_provider_setting(self.mapper_type.value, 'default_max_posts', 10),
            'includeQuotePosts': bool(params.get('includeQuotePosts', False)),
            'includeReposts': bool(params.get('includeReposts', False)),
            'scrapeComments': bool(params.get('scrapeComments', False)),
            'scrapeReactions': bool(params.get('scrapeReactions', False)),
        }
        for key in ('postedLimit', 'postedDateLimit', 'maxComments', 'maxReactions'):
            if params.get(key) is not None:
                actor_input[key] = params[key]
        return actor_input


class LinkedInCompanyPostsAdapter(_PostCrawlerAdapter):
    mapper_type = MapperType.LINKEDIN_COMPANY_POSTS
    description = 'Recent posts of LinkedIn company pages'
    target_param = 'organizationLinkedinUrl'

    def map_to_leads(self, items, collection_id, user_id, options=None) -> MappingResult:
        options = options or {}
        target_url = parse_linkedin_url(options.get('target_url'))
        return self.mapper.map_company_posts(
            items, target_url,
            lead_ids=options.get('lead_ids') or [],
            company_id=options.get('company_id'),
            force=bool(options.get('force_enrichment')),
            normalize=normalize_post,
        )


class LinkedInProfilePostsAdapter(_PostCrawlerAdapter):
    mapper_type = MapperType.LINKEDIN_PROFILE_POSTS
    description = 'Recent posts of LinkedIn member profiles'
    target_param = 'profileLinkedinUrl'

    def map_to_leads(self, items, collection_id, user_id, options=None) -> MappingResult:
        options = options or {}
        target_url = parse_linkedin_url(options.get('target_url'))
        return self.mapper.map_lead_posts(
            items, target_url,
            lead_ids=options.get('lead_ids') or [],
            force=bool(options.get('force_enrichment')),
            normalize=normalize_post,
        )


def normalize_post(data: Any) -> Dict[str, Any]:
    """Raw crawler post -> post dict. post_url may be None (caller skips it)."""
    if not isinstance(data, dict):
        raise MappingError("Post item is not an object")

    posted_at = data.get('postedAt') if isinstance(data.get('postedAt'), dict) else {}
    posted = parse_date(posted_at.get('date')) or parse_date(posted_at.get('timestamp')) \
        or parse_date(first_of(data, 'posted_date', 'postedDate', 'date'))

    author = data.get('author')
    author_name = clean_str(author.get('name')) if isinstance(author, dict) else clean_str(author)

    engagement = data.get('engagement') if isinstance(data.get('engagement'), dict) else {}
    reactions = _sum_reactions(engagement.get('reactions'))
    if reactions is None:
        reactions = parse_int(first_of(data, 'reactions', 'reaction'))
    likes = parse_int(engagement.get('likes'))
    if likes is None:
        likes = parse_int(first_of(data, 'likes', 'like'))

    return {
        'post_url': clean_str(first_of(data, 'linkedinUrl', 'post_url', 'postUrl', 'url')),
        'posted_date': posted,
        'language': clean_str(data.get('language')),
        'author': author_name,
        'text': clean_str(first_of(data, 'content', 'text')),
        'reactions': reactions,
        'likes': likes,
        'organization_linkedin_url': parse_linkedin_url(
            first_of(data, 'organizationLinkedinUrl', 'organization_linkedin_url')),
    }


def _sum_reactions(reactions: Any) -> Optional[int]:
    if isinstance(reactions, (int, float)) and not isinstance(reactions, bool):
        return int(reactions)
    if not isinstance(reactions, list):
        return None
    return sum(parse_int(r.get('count')) or 0 for r in reactions if isinstance(r, dict))

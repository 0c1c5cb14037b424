"""
Google PageSpeed Insights SEO analysis.

PageSpeed answers synchronously, so execute() performs the whole analysis
and returns an already-terminal run; get_status/get_results read the
in-memory result. The RunController treats it like any other provider.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional

import requests

from leadflow.config import GOOGLE_PAGESPEED_API_KEY, PAGESPEED_API_URL, HTTP_TIMEOUT
from leadflow.errors import ProviderError, RateLimitError, ValidationError
from leadflow.pipeline.normalize import clean_str
from leadflow.scrapers.base import (
    ProviderAdapter, ProviderRun, RunStatus, MappingResult, EntityTouch, Capability, MapperType,
)

logger = logging.getLogger('scrapers.seo')

# Lighthouse audits kept with the analysis
SEO_AUDIT_IDS = (
    'meta-description',
    'document-title',
    'link-text',
    'crawlable-anchors',
    'robots-txt',
    'canonical',
    'is-crawlable',
    'font-size',
    'image-alt',
    'tap-targets',
)

CATEGORIES = ('performance', 'accessibility', 'best-practices', 'seo')

# PageSpeed runs a full Lighthouse audit; allow well beyond the default timeout
PAGESPEED_TIMEOUT = max(HTTP_TIMEOUT, 60)


def normalize_website_url(url: Any) -> Optional[str]:
    cleaned = clean_str(url)
    if not cleaned:
        return None
    if not cleaned.startswith(('http://', 'https://')):
        return f'https://{cleaned}'
    return cleaned


def _to_score(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return round(value * 100)


def extract_seo_data(payload: Dict[str, Any], url: str, strategy: str) -> Dict[str, Any]:
    lighthouse = payload.get('lighthouseResult') or {}
    categories = lighthouse.get('categories') or {}
    audit_map = lighthouse.get('audits') or {}

    audits = {}
    for audit_id in SEO_AUDIT_IDS:
        audit = audit_map.get(audit_id)
        if audit and isinstance(audit.get('score'), (int, float)):
            audits[audit_id] = {'score': audit['score'], 'title': audit.get('title')}

    return {
        'url': url,
        'strategy': strategy,
        'score': _to_score((categories.get('seo') or {}).get('score')) or 0,
        'performance': _to_score((categories.get('performance') or {}).get('score')),
        'accessibility': _to_score((categories.get('accessibility') or {}).get('score')),
        'bestPractices': _to_score((categories.get('best-practices') or {}).get('score')),
        'audits': audits,
    }


class PageSpeedSeoAdapter(ProviderAdapter):
    mapper_type = MapperType.PAGESPEED_SEO
    capability = Capability.SEO_CRAWLER
    provider = 'google'
    description = 'SEO score and key audits from Google PageSpeed Insights'

    def __init__(self, provider_config: Dict[str, Any] = None, mapper=None,
                 http: requests.Session = None, api_key: str = None):
        super().__init__(provider_config, mapper)
        self._http = http
        self.api_key = api_key or GOOGLE_PAGESPEED_API_KEY
        self._results: Dict[str, Dict[str, Any]] = {}

    @property
    def http(self) -> requests.Session:
        if self._http is None:
            from leadflow.extensions import get_http_session
            self._http = get_http_session()
        return self._http

    def execute(self, params: Dict[str, Any]) -> ProviderRun:
        from leadflow.pipeline.run_config import get_provider_setting

        url = normalize_website_url((params or {}).get('url'))
        if not url:
            raise ValidationError("A website URL is required for SEO analysis")
        strategy = (params.get('strategy')
                    or self.provider_config.get('strategy')
                    or get_provider_setting(self.mapper_type.value, 'strategy', 'mobile'))
        if strategy not in ('mobile', 'desktop'):
            raise ValidationError(f"Unknown PageSpeed strategy '{strategy}'")

        started = datetime.now(timezone.utc)
        payload = self._fetch(url, strategy)
        run_id = f'pagespeed-{uuid.uuid4().hex[:12]}'
        self._results[run_id] = extract_seo_data(payload, url, strategy)
        logger.info("PageSpeed %s analysis of %s: score %s", strategy, url,
                    self._results[run_id]['score'], extra={'run_id': run_id})
        return ProviderRun(id=run_id, status=RunStatus.SUCCEEDED,
                           started_at=started, finished_at=datetime.now(timezone.utc))

    def get_status(self, run_id: str) -> RunStatus:
        if run_id not in self._results:
            raise ProviderError(f"Unknown PageSpeed run {run_id}", run_id=run_id)
        return RunStatus.SUCCEEDED

    def get_results(self, run_id: str) -> List[Dict[str, Any]]:
        if run_id not in self._results:
            raise ProviderError(f"Unknown PageSpeed run {run_id}", run_id=run_id)
        return [self._results[run_id]]

    def map_to_leads(self, items, collection_id, user_id, options=None) -> MappingResult:
        company_id = (options or {}).get('company_id')
        if not company_id:
            raise ValidationError("company_id is required to store an SEO analysis")
        if not items:
            result = MappingResult()
            result.entities.append(EntityTouch('company', company_id, False, 0))
            return result
        return self.mapper.apply_seo_analysis(company_id, items[0])

    def _fetch(self, url: str, strategy: str) -> Dict[str, Any]:
        params = [('url', url), ('strategy', strategy)] + [('category', c) for c in CATEGORIES]
        if self.api_key:
            params.append(('key', self.api_key))
        try:
            resp = self.http.get(PAGESPEED_API_URL, params=params, timeout=PAGESPEED_TIMEOUT)
        except requests.RequestException as e:
            raise ProviderError(f"PageSpeed request failed: {e}")

        if resp.status_code == 429:
            raise RateLimitError("PageSpeed rate limit reached")
        if not resp.ok:
            raise ProviderError(f"PageSpeed returned {resp.status_code}: {resp.text[:200]}")
        try:
            payload = resp.json()
        except ValueError:
            raise ProviderError("PageSpeed returned invalid JSON")

        captcha = payload.get('captchaResult')
        if captcha and captcha != 'CAPTCHA_NOT_NEEDED':
            raise ProviderError("PageSpeed requires a captcha, try again later")
        return payload

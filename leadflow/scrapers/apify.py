"""
Apify actor adapters.

ApifyAdapter drives actors through apify_client: start an actor run, read
the run, iterate its default dataset, read its cost. Every Apify-backed
capability subclasses it and only adds input translation and item
normalization.
"""
import logging
from typing import Dict, List, Any, Optional

from leadflow.config import APIFY_API_TOKEN, APIFY_API_URL, APIFY_MAX_RETRIES, HTTP_TIMEOUT
from leadflow.errors import ProviderError, RateLimitError, ValidationError
from leadflow.pipeline.normalize import (
    clean_str, first_of, parse_functional, parse_linkedin_url, parse_phone_numbers, parse_int,
    parse_date,
)
from leadflow.scrapers.base import (
    ProviderAdapter, ProviderRun, RunStatus, MappingResult, Capability, MapperType,
)

logger = logging.getLogger('scrapers.apify')


class ApifyAdapter(ProviderAdapter):
    """Shared Apify plumbing. Subclasses implement build_input() and map_to_leads()."""
    provider = 'apify'

    def __init__(self, provider_config: Dict[str, Any] = None, mapper=None,
                 client=None, token: str = None):
        super().__init__(provider_config, mapper)
        self._client = client
        self.token = token or APIFY_API_TOKEN
        self._datasets: Dict[str, str] = {}

    @property
    def client(self):
        if self._client is None:
            if not self.token:
                raise ProviderError("APIFY_API_TOKEN is not set")
            from apify_client import ApifyClient
            self._client = ApifyClient(self.token, api_url=APIFY_API_URL,
                                       max_retries=APIFY_MAX_RETRIES, timeout_secs=int(HTTP_TIMEOUT))
        return self._client

    @property
    def actor_id(self) -> str:
        from leadflow.pipeline.run_config import get_default_actor
        actor = self.provider_config.get('actorId') or get_default_actor(self.mapper_type.value)
        if not actor:
            raise ValidationError(f"Scraper '{self.mapper_type.value}' has no actorId configured")
        # Apify accepts "user~actor" as the actor id
        return actor.replace('/', '~')

    # ------------------------------------------------------------------
    # Input translation
    # ------------------------------------------------------------------

    def build_input(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Provider-specific actor input. Raises ValidationError on bad params."""
        return _drop_empty(params)

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def execute(self, params: Dict[str, Any]) -> ProviderRun:
        actor_input = self.build_input(dict(params or {}))
        actor_id = self.actor_id
        data = self._call(f'start {actor_id}', lambda client: client.actor(actor_id).start(run_input=actor_input))
        run = _to_provider_run(data)
        if run.dataset_id:
            self._datasets[run.id] = run.dataset_id
        logger.info("Started actor %s run %s (%s)", actor_id, run.id, run.status.value,
                    extra={'run_id': run.id})
        return run

    def get_status(self, run_id: str) -> RunStatus:
        run = _to_provider_run(self._get_run(run_id))
        if run.dataset_id:
            self._datasets[run_id] = run.dataset_id
        return run.status

    def get_results(self, run_id: str) -> List[Dict[str, Any]]:
        dataset_id = self._datasets.get(run_id)
        if not dataset_id:
            dataset_id = _to_provider_run(self._get_run(run_id)).dataset_id
        if not dataset_id:
            raise ProviderError(f"No dataset found for run {run_id}", run_id=run_id)

        items = self._call(f'dataset {dataset_id}',
                           lambda client: list(client.dataset(dataset_id).iterate_items(clean=True)))
        logger.info("Fetched %d items for run %s", len(items), run_id, extra={'run_id': run_id})
        return items

    def get_cost(self, run_id: str) -> Optional[Dict[str, Any]]:
        """usageTotalUsd, falling back to the sum of the usageUsd breakdown."""
        data = self._get_run(run_id)
        usage = data.get('usageUsd') or None
        cost = data.get('usageTotalUsd')
        if cost is None and usage:
            cost = sum(v for v in usage.values() if isinstance(v, (int, float)))
        return {
            'cost_usd': cost,
            'usage_details': usage,
            'started_at': parse_date(data.get('startedAt')),
            'finished_at': parse_date(data.get('finishedAt')),
        }

    # ------------------------------------------------------------------
    # Client calls
    # ------------------------------------------------------------------

    def _get_run(self, run_id: str) -> Dict[str, Any]:
        data = self._call(f'run {run_id}', lambda client: client.run(run_id).get())
        if not data:
            raise ProviderError(f"Apify run {run_id} not found", run_id=run_id)
        return data

    def _call(self, what: str, fn):
        """Run one client call. ApifyApiError 429 becomes RateLimitError, any other failure ProviderError."""
        client = self.client
        try:
            return fn(client)
        except Exception as e:
            status = getattr(e, 'status_code', None)
            if status == 429:
                logger.warning("Apify rate limited on %s", what)
                raise RateLimitError(f"Apify rate limited on {what}")
            detail = f" ({status})" if status else ''
            raise ProviderError(f"Apify {what} failed{detail}: {e}")


# ============================================================================
# APOLLO-STYLE LEAD SCRAPER
# ============================================================================

# Person functions accepted by the Apollo lead scraper actor
PERSON_FUNCTIONS = {
    'Accounting', 'Administrative', 'Arts & Design', 'Business Development', 'Consulting',
    'Data Science', 'Education', 'Engineering', 'Entrepreneurship', 'Finance',
    'Human Resources', 'Information Technology', 'Legal', 'Marketing',
    'Media & Communications', 'Operations', 'Product Management', 'Research', 'Sales', 'Support',
}

# Form values that the actor knows under another name
PERSON_FUNCTION_MAP = {
    'Customer Success': 'Support',
}

# Filters whose actor-side default is already what an unset value means
_DEFAULT_MATCH_MODES = {
    'companyNameMatchMode': 'phrase',
    'companyDomainMatchMode': 'contains',
}

_INTERNAL_PARAMS = {'collectionId', 'scraperId', 'companyId', 'leadId'}


def map_person_functions(values: List[str]) -> List[str]:
    mapped = []
    for value in values or []:
        value = PERSON_FUNCTION_MAP.get(value, value)
        if value in PERSON_FUNCTIONS and value not in mapped:
            mapped.append(value)
    return mapped


class LeadScraperAdapter(ApifyAdapter):
    mapper_type = MapperType.APIFY
    capability = Capability.CONTACT_FINDER
    description = 'Apollo / ZoomInfo / Lusha lead scraper'

    def build_input(self, params: Dict[str, Any]) -> Dict[str, Any]:
        actor_input = {}
        if 'totalResults' in params and not params.get('targetUrls'):
            actor_input['totalResults'] = params.get('totalResults') or 100
        if params.get('hasPhone') is not True:
            params.pop('hasPhone', None)
        for key, default in _DEFAULT_MATCH_MODES.items():
            if params.get(key) == default:
                params.pop(key)
        for key in ('personFunctionIncludes', 'personFunctionExcludes'):
            if key in params:
                mapped = map_person_functions(params.pop(key))
                if mapped:
                    actor_input[key] = mapped

        for key, value in params.items():
            if key in actor_input or key in _INTERNAL_PARAMS or key == 'totalResults':
                continue
            actor_input[key] = value
        return _drop_empty(actor_input)

    def map_to_leads(self, items, collection_id, user_id, options=None) -> MappingResult:
        return self.mapper.map_contacts(items, collection_id, user_id, normalize=normalize_lead_item)


def normalize_lead_item(data: Any) -> Optional[Dict[str, Any]]:
    """Apollo-style item (org* company fields) -> contact dict."""
    if not isinstance(data, dict):
        return None
    company = {
        'name': data.get('orgName'),
        'domain': data.get('orgDomain'),
        'website': data.get('orgWebsite'),
        'linkedin_url': data.get('orgLinkedinUrl'),
        'industry': clean_str(data.get('orgIndustry')),
        'size': clean_str(data.get('orgSize')),
        'description': clean_str(data.get('orgDescription')),
        'technologies': clean_str(data.get('orgTechnologies')),
        'founded_year': parse_int(data.get('orgFoundedYear')),
        'city': clean_str(data.get('orgCity')),
        'state': clean_str(data.get('orgState')),
        'country': clean_str(data.get('orgCountry')),
    }
    has_company = any(company[k] for k in ('name', 'domain', 'website', 'linkedin_url'))
    return {
        'first_name': clean_str(data.get('firstName')),
        'last_name': clean_str(data.get('lastName')),
        'full_name': clean_str(data.get('fullName')),
        'position': clean_str(data.get('position')),
        'headline': clean_str(data.get('headline')),
        'seniority': clean_str(data.get('seniority')),
        'functional': parse_functional(data.get('functional')),
        'linkedin_url': parse_linkedin_url(data.get('linkedinUrl')),
        'email': data.get('email'),
        'email_certainty': clean_str(data.get('emailCertainty')),
        'personal_email': clean_str(data.get('personalEmail')),
        'phone_numbers': parse_phone_numbers(data.get('phoneNumbers'), data.get('phone')),
        'city': clean_str(data.get('city')),
        'state': clean_str(data.get('state')),
        'country': clean_str(data.get('country')),
        'company': company if has_company else None,
    }


# ============================================================================
# HELPERS
# ============================================================================

def _drop_empty(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None, blank strings and empty lists; actors treat absent as unset."""
    cleaned = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if isinstance(value, (list, tuple, dict)) and not value:
            continue
        cleaned[key] = value
    return cleaned


def _to_provider_run(data: Any) -> ProviderRun:
    if not isinstance(data, dict) or not data.get('id'):
        raise ProviderError("Apify returned a run without an id")
    return ProviderRun(
        id=data['id'],
        status=RunStatus.parse(data.get('status')),
        started_at=parse_date(data.get('startedAt')),
        finished_at=parse_date(data.get('finishedAt')),
        dataset_id=first_of(data, 'defaultDatasetId'),
    )

"""
Provider adapter contract.

Every provider capability implements ProviderAdapter: submit a job, read its
status, fetch its results, and map those results onto Lead/Company rows. The
RunController and the orchestration layer only ever see this interface;
provider wire formats stay inside the concrete adapter modules.
"""
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any, Optional

from leadflow.errors import ProviderError, ValidationError

logger = logging.getLogger('scrapers.base')


class RunStatus(str, enum.Enum):
    QUEUED = 'QUEUED'
    RUNNING = 'RUNNING'
    SUCCEEDED = 'SUCCEEDED'
    FAILED = 'FAILED'
    ABORTED = 'ABORTED'
    TIMED_OUT = 'TIMED-OUT'

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def classification(self) -> Optional[str]:
        """Caller-facing failure class, None for non-failures."""
        return _CLASSIFICATIONS.get(self)

    @classmethod
    def parse(cls, value: Any) -> 'RunStatus':
        """Map a provider status string onto RunStatus."""
        if isinstance(value, RunStatus):
            return value
        key = str(value or '').strip().upper().replace('_', '-')
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return cls(key)
        except ValueError:
            raise ProviderError(f"Unknown provider status '{value}'")


_TERMINAL = {RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.ABORTED, RunStatus.TIMED_OUT}

_CLASSIFICATIONS = {
    RunStatus.FAILED: 'failed',
    RunStatus.ABORTED: 'aborted',
    RunStatus.TIMED_OUT: 'timed-out',
}

# Provider transitional states that are still in flight
_ALIASES = {
    'READY': RunStatus.QUEUED,
    'PENDING': RunStatus.QUEUED,
    'TIMING-OUT': RunStatus.RUNNING,
    'ABORTING': RunStatus.RUNNING,
}


class Capability(str, enum.Enum):
    CONTACT_FINDER = 'contact_finder'
    POST_CRAWLER = 'post_crawler'
    EMAIL_VALIDATOR = 'email_validator'
    SEO_CRAWLER = 'seo_crawler'
    REVIEW_CRAWLER = 'review_crawler'


class MapperType(str, enum.Enum):
    APIFY = 'apify'
    LEADS_FINDER = 'leads-finder'
    LINKEDIN_COMPANY_EMPLOYEES = 'linkedin-company-employees'
    BULK_EMAIL_FINDER = 'bulk-email-finder'
    LINKEDIN_COMPANY_POSTS = 'linkedin-company-posts'
    LINKEDIN_PROFILE_POSTS = 'linkedin-profile-posts'
    EMAIL_VALIDATOR = 'easy-bulk-email-validator'
    TRUSTPILOT_REVIEWS = 'trustpilot-reviews'
    PAGESPEED_SEO = 'pagespeed-seo'

    @classmethod
    def parse(cls, value: str) -> 'MapperType':
        if isinstance(value, MapperType):
            return value
        try:
            return cls(str(value or '').strip().lower())
        except ValueError:
            supported = ', '.join(m.value for m in cls)
            raise ValidationError(f"Unsupported mapper type '{value}'. Supported: {supported}")


@dataclass
class ProviderRun:
    """What execute() hands back: the provider's job id and first status."""
    id: str
    status: RunStatus
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    dataset_id: Optional[str] = None


@dataclass
class EntityTouch:
    """One entity a mapping call attempted, for the usage ledger."""
    entity_type: str
    entity_id: int
    has_result: bool
    item_count: int = 0


@dataclass
class MappingResult:
    """Uniform output from every map_to_leads() call."""
    created: int = 0
    skipped: int = 0
    errors: int = 0
    enriched: int = 0
    no_posts: int = 0
    entities: List[EntityTouch] = field(default_factory=list)

    def merge(self, other: 'MappingResult') -> 'MappingResult':
        self.created += other.created
        self.skipped += other.skipped
        self.errors += other.errors
        self.enriched += other.enriched
        self.no_posts += other.no_posts
        self.entities.extend(other.entities)
        return self

    def to_metrics(self) -> Dict[str, int]:
        return {
            'created': self.created,
            'skipped': self.skipped,
            'errors': self.errors,
            'enriched': self.enriched,
            'noPosts': self.no_posts,
        }


class ProviderAdapter(ABC):
    """
    Base class for all provider adapters.

    Subclasses pin `mapper_type` and `capability`; the registry builds them
    from a Scraper row once, so nothing downstream inspects adapter attributes
    to find out what it can do.
    """
    mapper_type: MapperType = None
    capability: Capability = None

    # Catalog metadata
    provider: str = ''
    description: str = ''
    max_batch_size: Optional[int] = None

    def __init__(self, provider_config: Dict[str, Any] = None, mapper=None):
        self.provider_config = dict(provider_config or {})
        self._mapper = mapper

    @property
    def mapper(self):
        """EntityMapper used by map_to_leads(); built on first use if not injected."""
        if self._mapper is None:
            from leadflow.pipeline.mapper import EntityMapper
            self._mapper = EntityMapper()
        return self._mapper

    @abstractmethod
    def execute(self, params: Dict[str, Any]) -> ProviderRun:
        """
        Submit a job.

        Raises:
            ValidationError: params are malformed (nothing was sent).
            RateLimitError:  provider answered 429.
            ProviderError:   provider rejected the job or is unreachable.
        """
        ...

    @abstractmethod
    def get_status(self, run_id: str) -> RunStatus:
        """Single point-in-time status read. Safe to call repeatedly."""
        ...

    @abstractmethod
    def get_results(self, run_id: str) -> List[Dict[str, Any]]:
        """Full result set of a successful run; [] when nothing was found."""
        ...

    @abstractmethod
    def map_to_leads(self, items: List[Dict[str, Any]], collection_id: Optional[int],
                     user_id: int, options: Dict[str, Any] = None) -> MappingResult:
        """Normalize provider items and hand them to the EntityMapper."""
        ...

    def get_cost(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Optional: provider-reported cost for a finished run."""
        return None

    def estimate_cost(self, count: int) -> float:
        """Rough cost of `count` result items, from run_config.yaml rates."""
        from leadflow.pipeline.run_config import get_cost_per_thousand
        return round(get_cost_per_thousand(self.mapper_type.value) * count / 1000.0, 4)

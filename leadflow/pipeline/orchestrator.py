"""
Orchestration flows behind the HTTP endpoints.

Every flow follows the same shape:

    validate input (ValidationError / NotFoundError, nothing submitted)
      -> RunController.run()           one provider job per batch / target URL
      -> adapter.map_to_leads()        EntityMapper writes
      -> UsageRecorder.record_touches  one usage row per entity attempted

and returns the metrics dict
    {created, skipped, errors, enriched, noPosts, totalFound, duration, runIds}.

Fan-out flows (collection posts, email batches) keep going when one job
fails: the targeted entities get a has_result=False usage row and count as
errors. A RateLimitError always stops the flow.
"""
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

from leadflow.config import POST_ENRICHED
from leadflow.database import get_session
from leadflow.errors import NotFoundError, PipelineError, RateLimitError, ValidationError
from leadflow.models.collection import Collection, LeadCollection
from leadflow.models.company import Company
from leadflow.models.lead import Lead
from leadflow.models.scraper import Scraper
from leadflow.models.scraper_run import ScraperRun
from leadflow.pipeline.mapper import EntityMapper
from leadflow.pipeline.normalize import chunked, extract_domain, normalize_email, parse_linkedin_url
from leadflow.pipeline.run_config import get_max_batch_size
from leadflow.pipeline.run_controller import RunController
from leadflow.scrapers.base import Capability, EntityTouch, MapperType, MappingResult, ProviderAdapter, RunStatus
from leadflow.scrapers.contacts import person_key
from leadflow.scrapers.registry import get_adapter
from leadflow.scrapers.reviews import trustpilot_url
from leadflow.services.usage import UsageRecorder

logger = logging.getLogger('pipeline.orchestrator')

DEFAULT_EMAIL_FINDER_BATCH = 500
DEFAULT_VALIDATOR_BATCH = 1000


class Orchestrator:

    def __init__(self, session_factory: Callable = None, recorder: UsageRecorder = None,
                 mapper: EntityMapper = None, adapter_factory: Callable = None,
                 sleep: Callable[[float], None] = time.sleep, clock: Callable[[], float] = time.monotonic,
                 poll_interval: float = None, max_seconds: float = None):
        self.session_factory = session_factory or get_session
        self.recorder = recorder or UsageRecorder(self.session_factory)
        self.mapper = mapper or EntityMapper(self.session_factory)
        self.adapter_factory = adapter_factory or get_adapter
        self.sleep = sleep
        self.clock = clock
        self.poll_interval = poll_interval
        self.max_seconds = max_seconds

    # ── Lookups ──────────────────────────────────────────────────────────────

    def resolve_scraper(self, scraper_id: Optional[int], capability: Capability,
                        mapper_types: Tuple[MapperType, ...] = ()) -> Tuple[Scraper, ProviderAdapter]:
        """
        Load an active scraper and build its adapter.

        Without scraper_id the first active scraper of the wanted
        capability / mapper type is used.
        """
        session = self.session_factory()
        try:
            if scraper_id is not None:
                scraper = session.get(Scraper, scraper_id)
                if scraper is None:
                    raise NotFoundError(f"Scraper {scraper_id} not found")
                if not scraper.is_active:
                    raise ValidationError(f"Scraper {scraper_id} is not active")
                candidates = [scraper]
            else:
                candidates = session.query(Scraper).filter(Scraper.is_active.is_(True)).order_by(Scraper.id).all()
            session.expunge_all()
        finally:
            session.close()

        for scraper in candidates:
            try:
                mapper_type = MapperType.parse(scraper.mapper_type)
            except ValidationError:
                if scraper_id is not None:
                    raise
                logger.warning("Skipping scraper %s with unknown mapper type '%s'", scraper.id,
                               scraper.mapper_type, extra={'scraper_id': scraper.id})
                continue
            if mapper_types and mapper_type not in mapper_types:
                continue
            adapter = self.adapter_factory(mapper_type, scraper.provider_config or {}, mapper=self.mapper)
            if adapter.capability == capability:
                return scraper, adapter

        wanted = ', '.join(m.value for m in mapper_types) or capability.value
        if scraper_id is not None:
            raise ValidationError(f"Scraper {scraper_id} cannot be used here (needs {wanted})")
        raise ValidationError(f"No active scraper available for {wanted}")

    def _load_collection(self, session, collection_id: int, user_id: int) -> Collection:
        collection = session.get(Collection, collection_id)
        if collection is None or collection.user_id != user_id:
            raise NotFoundError(f"Collection {collection_id} not found")
        return collection

    def _load_company(self, session, company_id: int) -> Company:
        company = session.get(Company, company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found")
        return company

    def _collection_leads(self, session, collection_id: int, user_id: int) -> List[Lead]:
        return (session.query(Lead)
                .join(LeadCollection, LeadCollection.lead_id == Lead.id)
                .filter(LeadCollection.collection_id == collection_id, Lead.user_id == user_id)
                .order_by(Lead.id).all())

    def _controller(self, adapter: ProviderAdapter) -> RunController:
        return RunController(adapter, recorder=self.recorder, poll_interval=self.poll_interval,
                             max_seconds=self.max_seconds, sleep=self.sleep, clock=self.clock)

    # ── Shared run + map step ────────────────────────────────────────────────

    def _run_and_map(self, scraper: Scraper, adapter: ProviderAdapter, params: Dict[str, Any],
                     user_id: int, source: str, options: Dict[str, Any] = None,
                     collection_id: int = None, company_id: int = None, lead_id: int = None,
                     targets: List[EntityTouch] = (), retry_on_rate_limit: bool = False):
        """
        One provider job end to end. Returns (run_id, item_count, MappingResult).

        `targets` are the entities this job was meant to enrich; any that the
        mapping did not touch get a has_result=False usage row.
        """
        try:
            outcome = self._controller(adapter).run(
                params, user_id=user_id, source=source, scraper_id=scraper.id,
                collection_id=collection_id, company_id=company_id, lead_id=lead_id,
                retry_on_rate_limit=retry_on_rate_limit,
            )
        except PipelineError as e:
            if e.run_id:
                self._record_misses(targets, [], scraper, user_id, source, e.run_id, params)
            raise

        try:
            result = adapter.map_to_leads(outcome.items, collection_id, user_id, options or {})
        except Exception:
            logger.error("Mapping %d items of run %s failed", len(outcome.items), outcome.run_id,
                         extra={'run_id': outcome.run_id, 'scraper_id': scraper.id, 'user_id': user_id})
            self._record_misses(targets, [], scraper, user_id, source, outcome.run_id, params)
            raise
        self.recorder.record_touches(result.entities, scraper.id, user_id, source,
                                     run_id=outcome.run_id, config_used=params)
        self._record_misses(targets, result.entities, scraper, user_id, source, outcome.run_id, params)
        return outcome.run_id, len(outcome.items), result

    def _record_misses(self, targets, touched, scraper, user_id, source, run_id, params):
        seen = {(t.entity_type, t.entity_id) for t in touched}
        misses = [t for t in targets if (t.entity_type, t.entity_id) not in seen]
        if misses:
            self.recorder.record_touches(misses, scraper.id, user_id, source, run_id=run_id,
                                         config_used=params)

    def _metrics(self, result: MappingResult, total_found: int, started: float,
                 run_ids: List[str]) -> Dict[str, Any]:
        metrics = result.to_metrics()
        metrics.update({
            'totalFound': total_found,
            'duration': round(self.clock() - started, 3),
            'runIds': run_ids,
        })
        return metrics

    # ── Contact finders into a collection ────────────────────────────────────

    def scrape_to_collection(self, scraper_id: int, collection_id: int, user_id: int,
                             params: Dict[str, Any]) -> Dict[str, Any]:
        started = self.clock()
        if collection_id is None:
            raise ValidationError("collectionId is required")
        session = self.session_factory()
        try:
            self._load_collection(session, collection_id, user_id)
        finally:
            session.close()

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.CONTACT_FINDER)
        logger.info("Scraping with %s into collection %s", scraper.name, collection_id,
                    extra={'scraper_id': scraper.id, 'user_id': user_id, 'collection_id': collection_id})
        run_id, found, result = self._run_and_map(
            scraper, adapter, params, user_id, 'scraping',
            options={}, collection_id=collection_id,
        )
        return self._metrics(result, found, started, [run_id])

    # ── Post crawlers ────────────────────────────────────────────────────────

    def enrich_collection_posts(self, collection_id: int, user_id: int, scraper_id: int = None,
                                params: Dict[str, Any] = None, force: bool = False) -> Dict[str, Any]:
        """One post-crawler job per distinct LinkedIn URL among the collection's leads."""
        started = self.clock()
        params = dict(params or {})
        scraper, adapter = self.resolve_scraper(scraper_id, Capability.POST_CRAWLER)
        company_posts = adapter.mapper_type == MapperType.LINKEDIN_COMPANY_POSTS

        session = self.session_factory()
        try:
            self._load_collection(session, collection_id, user_id)
            groups = self._post_targets(session, collection_id, user_id, company_posts, force)
        finally:
            session.close()

        source = 'enrich_collection'
        result = MappingResult()
        run_ids, found = [], 0
        for url, (lead_ids, company_id) in groups.items():
            targets = [EntityTouch('lead', lead_id, False, 0) for lead_id in lead_ids]
            options = {'target_url': url, 'lead_ids': lead_ids, 'company_id': company_id,
                       'force_enrichment': force}
            try:
                run_id, count, mapped = self._run_and_map(
                    scraper, adapter, dict(params, targetUrls=[url]), user_id, source,
                    options=options, collection_id=collection_id, targets=targets,
                )
            except RateLimitError:
                raise
            except PipelineError as e:
                logger.warning("Post enrichment of %s failed: %s", url, e,
                               extra={'run_id': e.run_id, 'collection_id': collection_id})
                result.errors += len(lead_ids)
                if e.run_id:
                    run_ids.append(e.run_id)
                continue
            run_ids.append(run_id)
            found += count
            result.merge(mapped)

        logger.info("Collection %s post enrichment: %d targets, %d jobs", collection_id,
                    len(groups), len(run_ids), extra={'collection_id': collection_id})
        return self._metrics(result, found, started, run_ids)

    def _post_targets(self, session, collection_id: int, user_id: int, company_posts: bool,
                      force: bool) -> 'OrderedDict[str, Tuple[List[int], Optional[int]]]':
        groups: 'OrderedDict[str, Tuple[List[int], Optional[int]]]' = OrderedDict()
        status_field = 'company_linkedin_post' if company_posts else 'person_linkedin_post'
        for lead in self._collection_leads(session, collection_id, user_id):
            if getattr(lead, status_field) == POST_ENRICHED and not force:
                continue
            company_id = None
            if company_posts:
                company = session.get(Company, lead.company_id) if lead.company_id else None
                url = parse_linkedin_url(company.linkedin_url) if company else None
                company_id = company.id if company else None
            else:
                url = parse_linkedin_url(lead.linkedin_url)
            if not url:
                continue
            lead_ids, _ = groups.setdefault(url, ([], company_id))
            lead_ids.append(lead.id)
        return groups

    def enrich_company_posts(self, company_id: int, user_id: int, scraper_id: int = None,
                             params: Dict[str, Any] = None, force: bool = False) -> Dict[str, Any]:
        """Company posts for one company; every lead of the user at that LinkedIn URL is updated."""
        started = self.clock()
        session = self.session_factory()
        try:
            company = self._load_company(session, company_id)
            url = parse_linkedin_url(company.linkedin_url)
            if not url:
                raise ValidationError(f"Company {company_id} has no LinkedIn URL")
            lead_ids = [lead_id for (lead_id,) in (
                session.query(Lead.id).join(Company, Company.id == Lead.company_id)
                .filter(Company.linkedin_url == company.linkedin_url, Lead.user_id == user_id)
                .order_by(Lead.id).all())]
        finally:
            session.close()

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.POST_CRAWLER,
                                                (MapperType.LINKEDIN_COMPANY_POSTS,))
        options = {'target_url': url, 'lead_ids': lead_ids, 'company_id': company_id,
                   'force_enrichment': force}
        run_id, found, result = self._run_and_map(
            scraper, adapter, dict(params or {}, targetUrls=[url]), user_id, 'enrich_company',
            options=options, company_id=company_id,
            targets=[EntityTouch('company', company_id, False, 0)],
        )
        return self._metrics(result, found, started, [run_id])

    # ── Company employees ────────────────────────────────────────────────────

    def scrape_company_employees(self, company_id: int, user_id: int, scraper_id: int = None,
                                 params: Dict[str, Any] = None, collection_id: int = None) -> Dict[str, Any]:
        started = self.clock()
        session = self.session_factory()
        try:
            company = self._load_company(session, company_id)
            url = parse_linkedin_url(company.linkedin_url)
            if not url:
                raise ValidationError(f"Company {company_id} has no LinkedIn URL")
            if collection_id is not None:
                self._load_collection(session, collection_id, user_id)
        finally:
            session.close()

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.CONTACT_FINDER,
                                                (MapperType.LINKEDIN_COMPANY_EMPLOYEES,))
        run_id, found, result = self._run_and_map(
            scraper, adapter, dict(params or {}, companies=[url]), user_id, 'enrich_employees',
            options={'company_id': company_id}, collection_id=collection_id, company_id=company_id,
        )
        self.recorder.record_entity_usage('company', company_id, scraper.id, user_id, 'enrich_employees',
                                          has_result=found > 0, item_count=found, run_id=run_id,
                                          config_used=params)
        return self._metrics(result, found, started, [run_id])

    # ── Email finder / validator ─────────────────────────────────────────────

    def find_collection_emails(self, collection_id: int, user_id: int, scraper_id: int = None,
                               params: Dict[str, Any] = None) -> Dict[str, Any]:
        """Bulk email lookup for the collection's leads that have a name and company domain but no email."""
        started = self.clock()
        session = self.session_factory()
        try:
            self._load_collection(session, collection_id, user_id)
            people, person_index = [], {}
            for lead in self._collection_leads(session, collection_id, user_id):
                if lead.email or not (lead.first_name and lead.last_name) or not lead.company_id:
                    continue
                company = session.get(Company, lead.company_id)
                if company is None:
                    continue
                domain = extract_domain(company.domain) or extract_domain(company.website)
                if not domain:
                    continue
                key = person_key(lead.first_name, lead.last_name, domain)
                if key in person_index:
                    continue
                person_index[key] = lead.id
                people.append(f"{lead.first_name.strip()}, {lead.last_name.strip()}, {domain}")
        finally:
            session.close()

        if not people:
            raise ValidationError("No leads with a name and company domain are missing an email")

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.CONTACT_FINDER,
                                                (MapperType.BULK_EMAIL_FINDER,))
        batch_size = get_max_batch_size(adapter.mapper_type.value) or DEFAULT_EMAIL_FINDER_BATCH
        entries = list(zip(people, person_index.values()))
        return self._batched(scraper, adapter, entries, batch_size, user_id, collection_id,
                             'enrich_emails_collection', started,
                             build=lambda batch: (dict(params or {}, people=[p for p, _ in batch]),
                                                  {'person_index': person_index}))

    def verify_collection_emails(self, collection_id: int, user_id: int, scraper_id: int = None,
                                 params: Dict[str, Any] = None) -> Dict[str, Any]:
        """Validate every lead email in the collection, at most 1000 addresses per job."""
        started = self.clock()
        session = self.session_factory()
        try:
            self._load_collection(session, collection_id, user_id)
            email_index: Dict[str, int] = {}
            for lead in self._collection_leads(session, collection_id, user_id):
                email = normalize_email(lead.email)
                if email and email not in email_index:
                    email_index[email] = lead.id
        finally:
            session.close()

        if not email_index:
            raise ValidationError("No lead in this collection has an email to verify")

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.EMAIL_VALIDATOR)
        batch_size = min(adapter.max_batch_size or DEFAULT_VALIDATOR_BATCH,
                         get_max_batch_size(adapter.mapper_type.value) or DEFAULT_VALIDATOR_BATCH)
        entries = list(email_index.items())
        return self._batched(scraper, adapter, entries, batch_size, user_id, collection_id,
                             'verify_emails_collection', started,
                             build=lambda batch: (dict(params or {}, emails=[e for e, _ in batch]),
                                                  {'email_index': dict(batch)}))

    def _batched(self, scraper, adapter, entries: List[Tuple[str, int]], batch_size: int, user_id: int,
                 collection_id: int, source: str, started: float, build: Callable) -> Dict[str, Any]:
        """Run one job per batch of (input, lead_id) entries; failed batches count as errors."""
        result = MappingResult()
        run_ids, found = [], 0
        for batch in chunked(entries, batch_size):
            job_params, options = build(batch)
            targets = [EntityTouch('lead', lead_id, False, 0) for _, lead_id in batch]
            try:
                run_id, count, mapped = self._run_and_map(
                    scraper, adapter, job_params, user_id, source, options=options,
                    collection_id=collection_id, targets=targets,
                )
            except RateLimitError:
                raise
            except ValidationError:
                raise
            except PipelineError as e:
                logger.warning("%s batch of %d failed: %s", source, len(batch), e,
                               extra={'run_id': e.run_id, 'collection_id': collection_id})
                result.errors += len(batch)
                if e.run_id:
                    run_ids.append(e.run_id)
                continue
            run_ids.append(run_id)
            found += count
            result.merge(mapped)
        return self._metrics(result, found, started, run_ids)

    # ── Single lead ──────────────────────────────────────────────────────────

    def _load_lead(self, session, lead_id: int, user_id: int) -> Lead:
        lead = session.get(Lead, lead_id)
        if lead is None or lead.user_id != user_id:
            raise NotFoundError(f"Lead {lead_id} not found")
        return lead

    def _lead_fields(self, lead_id: int, *names: str) -> Dict[str, Any]:
        session = self.session_factory()
        try:
            lead = session.get(Lead, lead_id)
            return {name: getattr(lead, name, None) if lead else None for name in names}
        finally:
            session.close()

    def enrich_lead_posts(self, lead_id: int, user_id: int, scraper_id: int = None,
                          params: Dict[str, Any] = None, force: bool = False) -> Dict[str, Any]:
        """
        Posts for one lead: its own profile, or its company's page when the
        scraper is a company-posts crawler.
        """
        started = self.clock()
        session = self.session_factory()
        try:
            lead = self._load_lead(session, lead_id, user_id)
            company = session.get(Company, lead.company_id) if lead.company_id else None
            profile_url = parse_linkedin_url(lead.linkedin_url)
            company_url = parse_linkedin_url(company.linkedin_url) if company else None
            statuses = {'person': lead.person_linkedin_post, 'company': lead.company_linkedin_post}
        finally:
            session.close()

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.POST_CRAWLER)
        company_posts = adapter.mapper_type == MapperType.LINKEDIN_COMPANY_POSTS
        url = company_url if company_posts else profile_url
        if not url:
            what = "company LinkedIn URL" if company_posts else "LinkedIn URL"
            raise ValidationError(f"Lead {lead_id} has no {what}")
        if statuses['company' if company_posts else 'person'] == POST_ENRICHED and not force:
            raise ValidationError(f"Lead {lead_id} already has its posts; pass forceEnrichment to fetch them again")

        company_id = company.id if company_posts else None
        options = {'target_url': url, 'lead_ids': [lead_id], 'company_id': company_id,
                   'force_enrichment': force}
        run_id, found, result = self._run_and_map(
            scraper, adapter, dict(params or {}, targetUrls=[url]), user_id, 'enrich_lead',
            options=options, company_id=company_id, lead_id=lead_id,
            targets=[EntityTouch('lead', lead_id, False, 0)],
        )
        return self._metrics(result, found, started, [run_id])

    def find_lead_email(self, lead_id: int, user_id: int, scraper_id: int = None,
                        params: Dict[str, Any] = None) -> Dict[str, Any]:
        """Email finder for one lead with a name, a company domain and no email yet."""
        started = self.clock()
        session = self.session_factory()
        try:
            lead = self._load_lead(session, lead_id, user_id)
            if lead.email:
                raise ValidationError(f"Lead {lead_id} already has an email")
            if not (lead.first_name and lead.last_name):
                raise ValidationError(f"Lead {lead_id} needs a first and last name to find its email")
            company = session.get(Company, lead.company_id) if lead.company_id else None
            domain = (extract_domain(company.domain) or extract_domain(company.website)) if company else None
            if not domain:
                raise ValidationError(f"Lead {lead_id} has no company domain")
            membership = (session.query(LeadCollection.collection_id)
                          .filter(LeadCollection.lead_id == lead_id)
                          .order_by(LeadCollection.id).first())
            if membership is None:
                raise ValidationError(f"Lead {lead_id} is not in any collection")
            collection_id = membership[0]
            person = f"{lead.first_name.strip()}, {lead.last_name.strip()}, {domain}"
            person_index = {person_key(lead.first_name, lead.last_name, domain): lead_id}
        finally:
            session.close()

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.CONTACT_FINDER,
                                                (MapperType.BULK_EMAIL_FINDER,))
        run_id, found, result = self._run_and_map(
            scraper, adapter, dict(params or {}, people=[person]), user_id, 'find_email',
            options={'person_index': person_index}, collection_id=collection_id, lead_id=lead_id,
            targets=[EntityTouch('lead', lead_id, False, 0)],
        )
        metrics = self._metrics(result, found, started, [run_id])
        fields = self._lead_fields(lead_id, 'email', 'email_certainty')
        metrics.update({'email': fields['email'], 'emailCertainty': fields['email_certainty']})
        return metrics

    def verify_lead_email(self, lead_id: int, user_id: int, scraper_id: int = None,
                          params: Dict[str, Any] = None) -> Dict[str, Any]:
        started = self.clock()
        session = self.session_factory()
        try:
            email = normalize_email(self._load_lead(session, lead_id, user_id).email)
        finally:
            session.close()
        if not email:
            raise ValidationError(f"Lead {lead_id} has no email to verify")

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.EMAIL_VALIDATOR)
        run_id, found, result = self._run_and_map(
            scraper, adapter, dict(params or {}, emails=[email]), user_id, 'verify_email',
            options={'email_index': {email: lead_id}}, lead_id=lead_id,
            targets=[EntityTouch('lead', lead_id, False, 0)],
        )
        metrics = self._metrics(result, found, started, [run_id])
        fields = self._lead_fields(lead_id, 'email_verify_status', 'validated')
        metrics.update({'emailVerifyStatus': fields['email_verify_status'], 'validated': fields['validated']})
        return metrics

    # ── Company-level crawlers ───────────────────────────────────────────────

    def scrape_company_reviews(self, company_id: int, user_id: int, scraper_id: int = None,
                               params: Dict[str, Any] = None) -> Dict[str, Any]:
        started = self.clock()
        params = dict(params or {})
        session = self.session_factory()
        try:
            company = self._load_company(session, company_id)
            start_urls = params.get('startUrls') or [
                trustpilot_url(company.domain) or trustpilot_url(company.website)]
        finally:
            session.close()
        start_urls = [u for u in start_urls if u]
        if not start_urls:
            raise ValidationError(f"Company {company_id} has no domain to find its Trustpilot page")

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.REVIEW_CRAWLER)
        run_id, found, result = self._run_and_map(
            scraper, adapter, dict(params, startUrls=start_urls), user_id, 'trustpilot',
            options={'company_id': company_id}, company_id=company_id,
            targets=[EntityTouch('company', company_id, False, 0)],
        )
        return self._metrics(result, found, started, [run_id])

    def analyze_company_seo(self, company_id: int, user_id: int, scraper_id: int = None,
                            params: Dict[str, Any] = None) -> Dict[str, Any]:
        started = self.clock()
        params = dict(params or {})
        session = self.session_factory()
        try:
            company = self._load_company(session, company_id)
            url = params.get('url') or company.website or company.domain
        finally:
            session.close()
        if not url:
            raise ValidationError(f"Company {company_id} has no website to analyze")

        scraper, adapter = self.resolve_scraper(scraper_id, Capability.SEO_CRAWLER)
        run_id, found, result = self._run_and_map(
            scraper, adapter, dict(params, url=url), user_id, 'seo',
            options={'company_id': company_id}, company_id=company_id,
            targets=[EntityTouch('company', company_id, False, 0)],
        )
        return self._metrics(result, found, started, [run_id])

    # ── Cost ledger backfill ─────────────────────────────────────────────────

    def backfill_run_costs(self, user_id: int, limit: int = 100) -> Dict[str, int]:
        """
        Fetch the provider cost of the user's finished runs that have none yet.

        Runs of deleted or unknown scrapers are skipped. A RateLimitError stops
        the backfill; any other provider error counts against that run only.
        """
        terminal = [status.value for status in RunStatus if status.is_terminal]
        session = self.session_factory()
        try:
            rows = (session.query(ScraperRun.run_id, Scraper.mapper_type, Scraper.provider_config)
                    .outerjoin(Scraper, Scraper.id == ScraperRun.scraper_id)
                    .filter(ScraperRun.user_id == user_id, ScraperRun.cost_usd.is_(None),
                            ScraperRun.status.in_(terminal))
                    .order_by(ScraperRun.id).limit(limit).all())
        finally:
            session.close()

        counts = {'processed': 0, 'updated': 0, 'skipped': 0, 'errors': 0}
        for run_id, mapper_type, provider_config in rows:
            counts['processed'] += 1
            if not mapper_type:
                counts['skipped'] += 1
                continue
            try:
                adapter = self.adapter_factory(mapper_type, provider_config or {}, mapper=self.mapper)
                cost = self.recorder.fetch_cost(adapter, run_id)
            except RateLimitError:
                raise
            except PipelineError as e:
                logger.warning("Cost backfill for run %s failed: %s", run_id, e, extra={'run_id': run_id})
                counts['errors'] += 1
                continue
            if cost and cost.get('cost_usd') is not None:
                counts['updated'] += 1
            else:
                counts['skipped'] += 1

        logger.info("Cost backfill for user %s: %d runs, %d updated", user_id, counts['processed'],
                    counts['updated'], extra={'user_id': user_id})
        return counts

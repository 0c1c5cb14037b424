"""
EntityMapper: turns normalized provider records into Lead/Company rows.

Rules enforced here and nowhere else:
  - Company resolution OR-matches name / domain / LinkedIn URL, first match
    wins, otherwise inserts. A concurrent insert of the same company is
    absorbed by re-reading after the unique-constraint violation.
  - A lead is the same entity as an existing lead of the same user in the
    target collection when they share a normalized email or a LinkedIn URL.
    Duplicates are counted as skipped; their empty fields are filled in.
  - Enrichment flows (posts, email verification, reviews, SEO) only move
    status fields on existing rows.
  - Every item is its own transaction. A failing item is rolled back,
    counted in `errors`, and the batch continues.

The mapper never computes or stores scores; see pipeline/scoring.py.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from leadflow.config import POST_ENRICHED, POST_NO_POSTS
from leadflow.database import get_session
from leadflow.errors import MappingError
from leadflow.models.collection import LeadCollection
from leadflow.models.company import Company, CompanyPost, CompanyReview
from leadflow.models.lead import Lead, LeadPost
from leadflow.pipeline.normalize import (
    clean_str, extract_domain, normalize_email, parse_linkedin_url, parse_int, is_better_certainty,
)
from leadflow.scrapers.base import EntityTouch, MappingResult

logger = logging.getLogger('pipeline.mapper')

CREATED = 'created'
MERGED = 'merged'
DUPLICATE = 'duplicate'

# Lead columns filled from a contact record only while still empty
_FILL_FIELDS = (
    'first_name', 'last_name', 'full_name', 'position', 'headline', 'seniority',
    'functional', 'linkedin_url', 'personal_email', 'phone_numbers', 'city', 'state', 'country',
)

_COMPANY_FIELDS = (
    'website', 'industry', 'size', 'description', 'technologies', 'founded_year',
    'city', 'state', 'country',
)

# Verification results as stored on leads
EMAIL_VERIFY_STATUS = {
    'valid': 'ok',
    'invalid': 'invalid',
    'catch_all': 'ok_for_all',
    'accept_all': 'ok_for_all',
}


def _now():
    return datetime.now(timezone.utc)


class EntityMapper:
    """Mapping, dedup and enrichment-status writes against one session factory."""

    def __init__(self, session_factory: Callable = None):
        self.session_factory = session_factory or get_session

    # ── Company resolution ───────────────────────────────────────────────────

    def find_company(self, session, name: str = None, domain: str = None,
                     linkedin_url: str = None) -> Optional[Company]:
        conditions = []
        if name:
            conditions.append(func.lower(Company.name) == name.lower())
        if domain:
            conditions.append(func.lower(Company.domain) == domain.lower())
        if linkedin_url:
            conditions.append(Company.linkedin_url == linkedin_url)
        if not conditions:
            return None
        return session.query(Company).filter(or_(*conditions)).order_by(Company.id).first()

    def resolve_company(self, session, name: Any = None, domain: Any = None,
                        linkedin_url: Any = None, website: Any = None, **attrs) -> Optional[Company]:
        """
        Find or create the company described by name/domain/LinkedIn URL.

        Must run before anything else is pending in the session: a lost insert
        race rolls the session back to re-read the winner's row.
        """
        name = clean_str(name)
        website = clean_str(website)
        domain = extract_domain(domain) or extract_domain(website)
        linkedin_url = parse_linkedin_url(linkedin_url)

        if not name and domain:
            label = domain.split('.')[0]
            name = label[:1].upper() + label[1:]

        existing = self.find_company(session, name, domain, linkedin_url)
        if existing is not None or not name:
            return existing

        values = {k: v for k, v in attrs.items() if k in _COMPANY_FIELDS and v not in (None, '')}
        company = Company(name=name, domain=domain, website=website, linkedin_url=linkedin_url, **values)
        session.add(company)
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            logger.info("Company '%s' inserted concurrently, re-reading", name)
            existing = self.find_company(session, name, domain, linkedin_url)
            if existing is None:
                raise
            return existing
        return company

    # ── Lead dedup ───────────────────────────────────────────────────────────

    def _lead_scope(self, session, user_id: int, collection_id: Optional[int]):
        query = session.query(Lead).filter(Lead.user_id == user_id)
        if collection_id is not None:
            query = query.join(LeadCollection, LeadCollection.lead_id == Lead.id).filter(
                LeadCollection.collection_id == collection_id)
        return query

    def find_duplicate(self, session, user_id: int, collection_id: Optional[int],
                       email: str = None, linkedin_url: str = None) -> Optional[Lead]:
        conditions = []
        if email:
            conditions.append(func.lower(func.trim(Lead.email)) == email)
        if linkedin_url:
            conditions.append(Lead.linkedin_url == linkedin_url)
        if not conditions:
            return None
        return (self._lead_scope(session, user_id, collection_id)
                .filter(or_(*conditions)).order_by(Lead.id).first())

    def _find_by_name(self, session, user_id: int, collection_id: Optional[int],
                      contact: Dict, company: Optional[Company]) -> Optional[Lead]:
        """Name (+ company) identity for records without email or LinkedIn URL, or flagged match_by_name."""
        full_name = contact.get('full_name')
        if not full_name:
            return None
        if contact.get('match_by_name') and company is None:
            return None
        query = self._lead_scope(session, user_id, collection_id).filter(
            func.lower(Lead.full_name) == full_name.lower())
        if company is not None:
            query = query.filter(Lead.company_id == company.id)
        return query.order_by(Lead.id).first()

    # ── Contacts ─────────────────────────────────────────────────────────────

    def map_contacts(self, items: Iterable[Any], collection_id: Optional[int], user_id: int,
                     normalize: Callable[[Any], Optional[Dict]]) -> MappingResult:
        """
        Map contact-finder items onto leads.

        `normalize` turns one raw item into a contact dict (see
        scrapers/contacts.py for the keys) or None when the item carries
        nothing usable. It raises MappingError for malformed items.
        """
        result = MappingResult()
        session = self.session_factory()
        try:
            for index, item in enumerate(items):
                try:
                    contact = normalize(item)
                    if contact is None:
                        result.skipped += 1
                        continue
                    outcome, lead = self._upsert_contact(session, contact, collection_id, user_id)
                    session.commit()
                except Exception:
                    session.rollback()
                    result.errors += 1
                    logger.warning("Item %d could not be mapped", index, exc_info=True)
                    continue

                if outcome == CREATED:
                    result.created += 1
                else:
                    result.skipped += 1
                    if outcome == MERGED:
                        result.enriched += 1
                if contact.get('lead_id'):
                    result.entities.append(EntityTouch('lead', lead.id, has_result=True, item_count=1))
        finally:
            session.close()

        logger.info("Mapped %d contacts: %d created, %d skipped, %d enriched, %d errors",
                    result.created + result.skipped + result.errors,
                    result.created, result.skipped, result.enriched, result.errors)
        return result

    def _upsert_contact(self, session, contact: Dict, collection_id: Optional[int], user_id: int):
        company = None
        if contact.get('company'):
            company = self.resolve_company(session, **contact['company'])

        contact = dict(contact)
        contact['email'] = normalize_email(contact.get('email'))
        contact['linkedin_url'] = parse_linkedin_url(contact.get('linkedin_url'))
        if not contact.get('full_name') and contact.get('first_name') and contact.get('last_name'):
            contact['full_name'] = f"{contact['first_name']} {contact['last_name']}".strip()

        existing = None
        if contact.get('lead_id'):
            existing = self._lead_scope(session, user_id, collection_id).filter(
                Lead.id == contact['lead_id']).first()
        if existing is None:
            existing = self.find_duplicate(session, user_id, collection_id,
                                           contact['email'], contact['linkedin_url'])
        if existing is None and (contact.get('match_by_name')
                                 or not (contact['email'] or contact['linkedin_url'])):
            existing = self._find_by_name(session, user_id, collection_id, contact, company)

        if existing is not None:
            changed = self._merge_lead(existing, contact, company)
            return (MERGED if changed else DUPLICATE), existing

        if not (contact['email'] or contact['linkedin_url'] or contact.get('full_name')):
            raise MappingError("Contact has no email, LinkedIn URL or name")

        lead = Lead(user_id=user_id, company_id=company.id if company else None,
                    email=contact['email'], email_certainty=contact.get('email_certainty'))
        for name in _FILL_FIELDS:
            if contact.get(name) not in (None, ''):
                setattr(lead, name, contact[name])
        session.add(lead)
        session.flush()
        if collection_id is not None:
            session.add(LeadCollection(lead_id=lead.id, collection_id=collection_id))
        return CREATED, lead

    def _merge_lead(self, lead: Lead, contact: Dict, company: Optional[Company]) -> bool:
        """Fill empty fields; replace the email only with an equal-or-better certainty."""
        changed = False
        for name in _FILL_FIELDS:
            value = contact.get(name)
            if value not in (None, '') and not getattr(lead, name):
                setattr(lead, name, value)
                changed = True

        email = contact.get('email')
        certainty = contact.get('email_certainty')
        if email and (not lead.email or is_better_certainty(certainty, lead.email_certainty)):
            if lead.email != email:
                lead.email = email
                changed = True
            if certainty and lead.email_certainty != certainty:
                lead.email_certainty = certainty
                changed = True

        if company is not None and not lead.company_id:
            lead.company_id = company.id
            changed = True
        if changed:
            lead.updated_at = _now()
        return changed

    # ── Posts ────────────────────────────────────────────────────────────────

    def map_company_posts(self, posts: Iterable[Any], target_url: str, lead_ids: List[int] = (),
                          company_id: int = None, force: bool = False,
                          normalize: Callable[[Any], Dict] = None) -> MappingResult:
        """
        Store company posts for one organization URL and move every lead in
        `lead_ids` to enriched / no-posts.
        """
        result = MappingResult()
        session = self.session_factory()
        try:
            known = 0
            for index, raw in enumerate(posts):
                try:
                    post = normalize(raw) if normalize else raw
                    if not post.get('post_url'):
                        result.skipped += 1
                        continue
                    if session.query(CompanyPost).filter_by(post_url=post['post_url']).first():
                        result.skipped += 1
                        known += 1
                        continue
                    session.add(CompanyPost(
                        company_id=company_id,
                        organization_linkedin_url=post.get('organization_linkedin_url') or target_url,
                        **_post_columns(post),
                    ))
                    session.commit()
                    result.created += 1
                except Exception:
                    session.rollback()
                    result.errors += 1
                    logger.warning("Company post %d for %s could not be mapped", index, target_url, exc_info=True)

            has_posts = (result.created + known) > 0
            self._set_post_status(session, result, lead_ids, 'company_linkedin_post', has_posts, force,
                                  item_count=result.created + known)
            if company_id:
                result.entities.append(EntityTouch('company', company_id, has_posts, result.created + known))
        finally:
            session.close()
        return result

    def map_lead_posts(self, posts: Iterable[Any], target_url: str, lead_ids: List[int],
                       force: bool = False, normalize: Callable[[Any], Dict] = None) -> MappingResult:
        """Store the posts of one person URL for every lead sharing it."""
        result = MappingResult()
        session = self.session_factory()
        try:
            parsed = []
            for index, raw in enumerate(posts):
                try:
                    post = normalize(raw) if normalize else raw
                    if not isinstance(post, dict):
                        raise MappingError(f"Lead post {index} is not an object")
                    if not post.get('post_url'):
                        result.skipped += 1
                        continue
                except Exception:
                    result.errors += 1
                    logger.warning("Lead post %d for %s is malformed", index, target_url, exc_info=True)
                    continue
                parsed.append(post)

            has_posts = bool(parsed)
            for lead_id in lead_ids:
                for post in parsed:
                    try:
                        exists = session.query(LeadPost).filter_by(lead_id=lead_id, post_url=post['post_url']).first()
                        if exists:
                            result.skipped += 1
                            continue
                        session.add(LeadPost(lead_id=lead_id, linkedin_url=target_url, **_post_columns(post)))
                        session.commit()
                        result.created += 1
                    except Exception:
                        session.rollback()
                        result.errors += 1
                        logger.warning("Lead post for lead %s could not be stored", lead_id, exc_info=True)

            self._set_post_status(session, result, lead_ids, 'person_linkedin_post', has_posts, force,
                                  item_count=len(parsed))
        finally:
            session.close()
        return result

    def _set_post_status(self, session, result: MappingResult, lead_ids, field_name: str,
                         has_posts: bool, force: bool, item_count: int):
        if not lead_ids:
            return
        status = POST_ENRICHED if has_posts else POST_NO_POSTS
        try:
            for lead in session.query(Lead).filter(Lead.id.in_(list(lead_ids))).order_by(Lead.id):
                if getattr(lead, field_name) == POST_ENRICHED and not force:
                    result.skipped += 1
                    continue
                setattr(lead, field_name, status)
                lead.updated_at = _now()
                if has_posts:
                    result.enriched += 1
                else:
                    result.no_posts += 1
                result.entities.append(EntityTouch('lead', lead.id, has_posts, item_count))
            session.commit()
        except Exception:
            session.rollback()
            result.errors += len(lead_ids)
            logger.error("Could not update %s for leads %s", field_name, list(lead_ids), exc_info=True)

    # ── Email verification ───────────────────────────────────────────────────

    def apply_email_verification(self, rows: Iterable[Any], email_index: Dict[str, int]) -> MappingResult:
        """Write validator verdicts onto the leads named by `email_index`."""
        result = MappingResult()
        session = self.session_factory()
        try:
            for index, row in enumerate(rows):
                try:
                    if not isinstance(row, dict):
                        raise MappingError(f"Validator row {index} is not an object")
                    email = normalize_email(row.get('email'))
                    lead_id = email_index.get(email) if email else None
                    lead = session.get(Lead, lead_id) if lead_id else None
                    if lead is None:
                        result.skipped += 1
                        continue
                    verdict = (clean_str(row.get('email_result')) or 'unknown').lower()
                    lead.email_verify_status = EMAIL_VERIFY_STATUS.get(verdict, verdict)
                    lead.email_verified_at = _now()
                    lead.validated = verdict == 'valid'
                    if verdict == 'valid':
                        lead.email_certainty = 'sure'
                    session.commit()
                    result.enriched += 1
                    result.entities.append(EntityTouch('lead', lead.id, verdict == 'valid', 1))
                except Exception:
                    session.rollback()
                    result.errors += 1
                    logger.warning("Validator row %d could not be applied", index, exc_info=True)
        finally:
            session.close()
        return result

    # ── Company-level enrichment ─────────────────────────────────────────────

    def map_company_reviews(self, rows: Iterable[Any], company_id: int,
                            normalize: Callable[[Any], Optional[Dict]]) -> MappingResult:
        result = MappingResult()
        session = self.session_factory()
        found = 0
        try:
            for index, raw in enumerate(rows):
                try:
                    review = normalize(raw)
                    if review is None:
                        result.skipped += 1
                        continue
                    found += 1
                    exists = session.query(CompanyReview).filter_by(
                        company_id=company_id, trustpilot_id=review['trustpilot_id']).first()
                    if exists:
                        result.skipped += 1
                        continue
                    session.add(CompanyReview(company_id=company_id, **review))
                    session.commit()
                    result.created += 1
                except Exception:
                    session.rollback()
                    result.errors += 1
                    logger.warning("Review %d for company %s could not be mapped", index, company_id, exc_info=True)
        finally:
            session.close()
        result.entities.append(EntityTouch('company', company_id, found > 0, found))
        return result

    def apply_seo_analysis(self, company_id: int, seo: Dict[str, Any]) -> MappingResult:
        result = MappingResult()
        session = self.session_factory()
        try:
            company = session.get(Company, company_id)
            if company is None:
                result.errors += 1
                return result
            company.seo_score = parse_int(seo.get('score'))
            company.seo_data = seo
            company.seo_analyzed_at = _now()
            session.commit()
            result.enriched += 1
            result.entities.append(EntityTouch('company', company_id, True, 1))
        except Exception:
            session.rollback()
            result.errors += 1
            logger.error("Could not store SEO analysis for company %s", company_id, exc_info=True)
        finally:
            session.close()
        return result

    def mark_employees_scraped(self, company_id: int) -> None:
        session = self.session_factory()
        try:
            company = session.get(Company, company_id)
            if company is not None:
                company.employees_scraped = True
                company.employees_scraped_at = _now()
                session.commit()
        except Exception:
            session.rollback()
            logger.error("Could not flag employees scraped for company %s", company_id, exc_info=True)
        finally:
            session.close()


def _post_columns(post: Dict) -> Dict:
    return {
        'post_url': post['post_url'],
        'posted_date': post.get('posted_date'),
        'language': post.get('language'),
        'author': post.get('author'),
        'text': post.get('text'),
        'reactions': post.get('reactions'),
        'likes': post.get('likes'),
    }

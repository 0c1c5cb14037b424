"""
Completeness scores for leads and companies (0-10), computed at read time.

Scores are never stored: the mapper only fills fields, and these functions
weigh whichever fields are present. Each weight table sums to 10.
"""
import logging
from typing import Dict, Any, Optional

from sqlalchemy import exists

from leadflow.models.company import Company, CompanyPost, CompanyReview
from leadflow.models.lead import Lead, LeadPost

logger = logging.getLogger('pipeline.scoring')

MAX_SCORE = 10.0

LEAD_WEIGHTS = {
    'email': 2.0,
    'email_verified': 1.0,
    'linkedin_url': 1.0,
    'company_linkedin_url': 1.0,
    'first_name': 0.5,
    'last_name': 0.5,
    'position': 1.0,
    'company': 1.0,
    'lead_post': 0.5,
    'company_post': 0.5,
    'company_seo': 0.5,
    'company_reviews': 0.5,
}

COMPANY_WEIGHTS = {
    'name': 1.0,
    'linkedin_url': 2.0,
    'domain': 2.0,
    'website': 1.0,
    'seo': 2.0,
    'reviews': 1.0,
    'industry': 0.5,
    'size_or_location': 0.5,
}

SCORE_CATEGORIES = ('1-3', '4-6', '7-8', '9-10')


def _present(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None


def weighted_score(facts: Dict[str, bool], weights: Dict[str, float]) -> float:
    total = sum(weight for key, weight in weights.items() if facts.get(key))
    return min(MAX_SCORE, total)


def score_category(score: float) -> str:
    if score <= 3:
        return '1-3'
    if score <= 6:
        return '4-6'
    if score <= 8:
        return '7-8'
    return '9-10'


# ── Facts ────────────────────────────────────────────────────────────────────

def company_facts(session, company: Company) -> Dict[str, bool]:
    has_reviews = session.query(exists().where(CompanyReview.company_id == company.id)).scalar()
    return {
        'name': _present(company.name),
        'linkedin_url': _present(company.linkedin_url),
        'domain': _present(company.domain),
        'website': _present(company.website),
        'seo': company.seo_analyzed_at is not None,
        'reviews': bool(has_reviews),
        'industry': _present(company.industry),
        'size_or_location': any(_present(v) for v in (company.size, company.city, company.country)),
    }


def lead_facts(session, lead: Lead, company: Optional[Company] = None) -> Dict[str, bool]:
    if company is None and lead.company_id:
        company = session.get(Company, lead.company_id)
    has_lead_post = session.query(exists().where(LeadPost.lead_id == lead.id)).scalar()
    facts = {
        'email': _present(lead.email),
        'email_verified': _present(lead.email_verify_status),
        'linkedin_url': _present(lead.linkedin_url),
        'first_name': _present(lead.first_name),
        'last_name': _present(lead.last_name),
        'position': _present(lead.position),
        'company': company is not None,
        'lead_post': bool(has_lead_post),
        'company_linkedin_url': False,
        'company_post': False,
        'company_seo': False,
        'company_reviews': False,
    }
    if company is not None:
        facts['company_linkedin_url'] = _present(company.linkedin_url)
        facts['company_post'] = bool(session.query(
            exists().where(CompanyPost.company_id == company.id)).scalar())
        facts['company_seo'] = company.seo_analyzed_at is not None
        facts['company_reviews'] = bool(session.query(
            exists().where(CompanyReview.company_id == company.id)).scalar())
    return facts


# ── Public API ───────────────────────────────────────────────────────────────

def company_score(session, company: Company) -> float:
    return weighted_score(company_facts(session, company), COMPANY_WEIGHTS)


def lead_score(session, lead: Lead, company: Optional[Company] = None) -> float:
    return weighted_score(lead_facts(session, lead, company), LEAD_WEIGHTS)

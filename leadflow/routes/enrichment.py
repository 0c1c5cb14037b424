"""
Enrichment routes for collections, leads and companies.

All of them block until the provider jobs finish and answer with
{success, results: {created, skipped, errors, enriched, noPosts, totalFound, duration, runIds}}.
"""
from flask import Blueprint, jsonify

from leadflow.errors import NotFoundError
from leadflow.models.company import Company
from leadflow.models.lead import Lead
from leadflow.pipeline.scoring import company_score, lead_score, score_category
from leadflow.routes.helpers import (
    api_errors, current_user_id, get_orchestrator, get_session_factory, json_body, json_params, optional_int,
)

bp = Blueprint('enrichment', __name__)


def _ok(metrics):
    return jsonify({'success': True, 'results': metrics}), 200


# ── Collections ──────────────────────────────────────────────────────────────

@bp.route('/api/collections/<int:collection_id>/enrich', methods=['POST'])
@api_errors
def enrich_collection(collection_id):
    """LinkedIn posts for every lead of the collection (one job per distinct URL)."""
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().enrich_collection_posts(
        collection_id, user_id,
        scraper_id=optional_int(data, 'scraperId'),
        params=json_params(data),
        force=bool(data.get('forceEnrichment')),
    ))


@bp.route('/api/collections/<int:collection_id>/enrich-emails', methods=['POST'])
@api_errors
def enrich_collection_emails(collection_id):
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().find_collection_emails(
        collection_id, user_id, scraper_id=optional_int(data, 'scraperId'), params=json_params(data),
    ))


@bp.route('/api/collections/<int:collection_id>/verify-emails', methods=['POST'])
@api_errors
def verify_collection_emails(collection_id):
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().verify_collection_emails(
        collection_id, user_id, scraper_id=optional_int(data, 'scraperId'), params=json_params(data),
    ))


# ── Leads ────────────────────────────────────────────────────────────────────

@bp.route('/api/leads/<int:lead_id>/enrich', methods=['POST'])
@api_errors
def enrich_lead(lead_id):
    """LinkedIn posts for one lead (profile or company page, depending on the scraper)."""
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().enrich_lead_posts(
        lead_id, user_id,
        scraper_id=optional_int(data, 'scraperId'),
        params=json_params(data),
        force=bool(data.get('forceEnrichment')),
    ))


@bp.route('/api/leads/<int:lead_id>/find-email', methods=['POST'])
@api_errors
def find_lead_email(lead_id):
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().find_lead_email(
        lead_id, user_id, scraper_id=optional_int(data, 'scraperId'), params=json_params(data),
    ))


@bp.route('/api/leads/<int:lead_id>/verify-email', methods=['POST'])
@api_errors
def verify_lead_email(lead_id):
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().verify_lead_email(
        lead_id, user_id, scraper_id=optional_int(data, 'scraperId'), params=json_params(data),
    ))


# ── Companies ────────────────────────────────────────────────────────────────

@bp.route('/api/companies/<int:company_id>/enrich', methods=['POST'])
@api_errors
def enrich_company(company_id):
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().enrich_company_posts(
        company_id, user_id,
        scraper_id=optional_int(data, 'scraperId'),
        params=json_params(data),
        force=bool(data.get('forceEnrichment')),
    ))


@bp.route('/api/companies/<int:company_id>/employees', methods=['POST'])
@api_errors
def scrape_employees(company_id):
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().scrape_company_employees(
        company_id, user_id,
        scraper_id=optional_int(data, 'scraperId'),
        params=json_params(data),
        collection_id=optional_int(data, 'collectionId'),
    ))


@bp.route('/api/companies/<int:company_id>/trustpilot-reviews', methods=['POST'])
@api_errors
def scrape_reviews(company_id):
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().scrape_company_reviews(
        company_id, user_id, scraper_id=optional_int(data, 'scraperId'), params=json_params(data),
    ))


@bp.route('/api/companies/<int:company_id>/seo', methods=['POST'])
@api_errors
def analyze_seo(company_id):
    user_id = current_user_id()
    data = json_body()
    return _ok(get_orchestrator().analyze_company_seo(
        company_id, user_id, scraper_id=optional_int(data, 'scraperId'), params=json_params(data),
    ))


# ── Scores ───────────────────────────────────────────────────────────────────

@bp.route('/api/companies/<int:company_id>/score')
@api_errors
def get_company_score(company_id):
    current_user_id()
    session = get_session_factory()()
    try:
        company = session.get(Company, company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found")
        score = company_score(session, company)
    finally:
        session.close()
    return jsonify({'companyId': company_id, 'score': score, 'category': score_category(score)})


@bp.route('/api/leads/<int:lead_id>/score')
@api_errors
def get_lead_score(lead_id):
    user_id = current_user_id()
    session = get_session_factory()()
    try:
        lead = session.get(Lead, lead_id)
        if lead is None or lead.user_id != user_id:
            raise NotFoundError(f"Lead {lead_id} not found")
        score = lead_score(session, lead)
    finally:
        session.close()
    return jsonify({'leadId': lead_id, 'score': score, 'category': score_category(score)})

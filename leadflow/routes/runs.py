"""
Ledger and catalog routes: scraper runs, cost backfill, per-source summary, scraper catalog.
"""
from flask import Blueprint, jsonify, request
from sqlalchemy import func

from leadflow.config import RUN_SOURCES
from leadflow.errors import ValidationError
from leadflow.models.scraper import Scraper
from leadflow.models.scraper_run import ScraperRun
from leadflow.routes.helpers import api_errors, current_user_id, get_orchestrator, get_session_factory
from leadflow.scrapers.registry import get_catalog_info

bp = Blueprint('runs', __name__)

MAX_LIMIT = 200


@bp.route('/api/scraper-runs')
@api_errors
def list_scraper_runs():
    """Runs of the current user, newest first. Filters: source, scraperId, limit."""
    user_id = current_user_id()
    source = request.args.get('source')
    if source and source not in RUN_SOURCES:
        raise ValidationError(f"Unknown source '{source}'")
    scraper_id = request.args.get('scraperId', type=int)
    limit = min(request.args.get('limit', 50, type=int) or 50, MAX_LIMIT)

    session = get_session_factory()()
    try:
        query = session.query(ScraperRun).filter(ScraperRun.user_id == user_id)
        if source:
            query = query.filter(ScraperRun.source == source)
        if scraper_id is not None:
            query = query.filter(ScraperRun.scraper_id == scraper_id)
        runs = query.order_by(ScraperRun.created_at.desc(), ScraperRun.id.desc()).limit(limit).all()
        return jsonify({'runs': [r.to_dict() for r in runs]})
    finally:
        session.close()


@bp.route('/api/scraper-runs/backfill', methods=['POST'])
@api_errors
def backfill_scraper_run_costs():
    """Fill in the provider cost of finished runs recorded without one. Query: limit (default 100)."""
    user_id = current_user_id()
    limit = min(request.args.get('limit', 100, type=int) or 100, MAX_LIMIT)
    result = get_orchestrator().backfill_run_costs(user_id, limit=limit)
    return jsonify({'success': True, 'result': result})


@bp.route('/api/scraper-runs/summary')
@api_errors
def scraper_runs_summary():
    """Run count, items and cost per source for the current user."""
    user_id = current_user_id()
    session = get_session_factory()()
    try:
        rows = (session.query(
                    ScraperRun.source,
                    func.count(ScraperRun.id),
                    func.coalesce(func.sum(ScraperRun.item_count), 0),
                    func.coalesce(func.sum(ScraperRun.cost_usd), 0.0),
                )
                .filter(ScraperRun.user_id == user_id)
                .group_by(ScraperRun.source)
                .order_by(ScraperRun.source)
                .all())
    finally:
        session.close()

    by_source = [
        {'source': source, 'runs': count, 'items': int(items), 'costUsd': round(float(cost), 4)}
        for source, count, items, cost in rows
    ]
    return jsonify({
        'bySource': by_source,
        'totalRuns': sum(s['runs'] for s in by_source),
        'totalItems': sum(s['items'] for s in by_source),
        'totalCostUsd': round(sum(s['costUsd'] for s in by_source), 4),
    })


@bp.route('/api/scrapers')
@api_errors
def list_scrapers():
    """Active scrapers, each with its adapter's capability and rates."""
    current_user_id()
    catalog = {entry['mapperType']: entry for entry in get_catalog_info()}
    session = get_session_factory()()
    try:
        scrapers = session.query(Scraper).filter(Scraper.is_active.is_(True)).order_by(Scraper.id).all()
        result = []
        for s in scrapers:
            info = catalog.get(s.mapper_type, {})
            result.append({
                'id': s.id,
                'name': s.name,
                'mapperType': s.mapper_type,
                'description': s.description or info.get('description', ''),
                'capability': info.get('capability'),
                'maxBatchSize': info.get('maxBatchSize'),
                'costPerThousand': info.get('costPerThousand'),
            })
        return jsonify({'scrapers': result})
    finally:
        session.close()

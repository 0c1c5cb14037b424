"""
Scraping routes: run a contact finder into a collection, read run status.
"""
from flask import Blueprint, jsonify

from leadflow.errors import NotFoundError
from leadflow.models.live_run import LiveRun
from leadflow.routes.helpers import (
    api_errors, current_user_id, get_orchestrator, get_session_factory, json_body, json_params, optional_int,
)

bp = Blueprint('scraping', __name__)


@bp.route('/api/scraping', methods=['POST'])
@api_errors
def start_scraping():
    """Run a contact-finder scraper and map its results into a collection. Blocks until done."""
    user_id = current_user_id()
    data = json_body()
    metrics = get_orchestrator().scrape_to_collection(
        scraper_id=optional_int(data, 'scraperId'),
        collection_id=optional_int(data, 'collectionId'),
        user_id=user_id,
        params=json_params(data),
    )
    return jsonify({'success': True, 'results': metrics}), 200


@bp.route('/api/scraping/status/<run_id>')
@api_errors
def scraping_status(run_id):
    """Live status while the owning request polls; ledger row afterwards."""
    user_id = current_user_id()
    run = LiveRun.load(run_id, session_factory=get_session_factory())
    if run is None or (run.user_id is not None and run.user_id != user_id):
        raise NotFoundError(f"Run {run_id} not found")
    return jsonify(run.to_dict())

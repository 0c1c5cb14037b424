"""Tests for leadflow.routes.scraping -- POST /api/scraping, run status."""
import json

from leadflow.errors import ProviderError, RateLimitError, RunTimeoutError, ValidationError
from leadflow.models.scraper_run import ScraperRun


# ---------------------------------------------------------------------------
# POST /api/scraping
# ---------------------------------------------------------------------------

class TestStartScraping:
    """POST /api/scraping blocks on the orchestrator and returns its metrics."""

    def test_requires_user_header(self, client, orchestrator):
        resp = client.post('/api/scraping', json={'collectionId': 1})
        assert resp.status_code == 401
        assert resp.json['classification'] == 'unauthenticated'
        orchestrator.scrape_to_collection.assert_not_called()

    def test_non_numeric_user_header(self, client):
        resp = client.post('/api/scraping', json={}, headers={'X-User-Id': 'abc'})
        assert resp.status_code == 401

    def test_returns_metrics(self, client, orchestrator, auth_headers):
        resp = client.post('/api/scraping', headers=auth_headers,
                           json={'scraperId': '3', 'collectionId': 7, 'params': {'maxItems': 10}})
        assert resp.status_code == 200
        assert resp.json['success'] is True
        assert resp.json['results']['created'] == 1
        assert resp.json['results']['runIds'] == ['run-1']
        orchestrator.scrape_to_collection.assert_called_once_with(
            scraper_id=3, collection_id=7, user_id=1, params={'maxItems': 10})

    def test_missing_body_is_empty_request(self, client, orchestrator, auth_headers):
        client.post('/api/scraping', headers=auth_headers)
        orchestrator.scrape_to_collection.assert_called_once_with(
            scraper_id=None, collection_id=None, user_id=1, params={})

    def test_non_object_body(self, client, auth_headers):
        resp = client.post('/api/scraping', headers=auth_headers, json=[1, 2])
        assert resp.status_code == 400

    def test_bad_scraper_id(self, client, auth_headers):
        resp = client.post('/api/scraping', headers=auth_headers, json={'scraperId': 'x'})
        assert resp.status_code == 400
        assert 'scraperId' in resp.json['error']

    def test_params_must_be_object(self, client, auth_headers):
        resp = client.post('/api/scraping', headers=auth_headers, json={'params': ['a']})
        assert resp.status_code == 400

    def test_validation_error_from_flow(self, client, orchestrator, auth_headers):
        orchestrator.scrape_to_collection.side_effect = ValidationError("Collection 7 not found")
        resp = client.post('/api/scraping', headers=auth_headers, json={'collectionId': 7})
        assert resp.status_code == 400
        assert resp.json == {'error': 'Collection 7 not found', 'classification': 'invalid'}

    def test_rate_limit_error(self, client, orchestrator, auth_headers):
        orchestrator.scrape_to_collection.side_effect = RateLimitError("slow down", retry_after=30)
        resp = client.post('/api/scraping', headers=auth_headers, json={})
        assert resp.status_code == 429
        assert resp.json['retryAfter'] == 30

    def test_timeout_carries_run_id(self, client, orchestrator, auth_headers):
        orchestrator.scrape_to_collection.side_effect = RunTimeoutError("still running", run_id='run-9')
        resp = client.post('/api/scraping', headers=auth_headers, json={})
        assert resp.status_code == 504
        assert resp.json['runId'] == 'run-9'

    def test_provider_error(self, client, orchestrator, auth_headers):
        orchestrator.scrape_to_collection.side_effect = ProviderError("bad gateway")
        resp = client.post('/api/scraping', headers=auth_headers, json={})
        assert resp.status_code == 502

    def test_unexpected_error_is_500(self, client, orchestrator, auth_headers):
        orchestrator.scrape_to_collection.side_effect = RuntimeError("boom")
        resp = client.post('/api/scraping', headers=auth_headers, json={})
        assert resp.status_code == 500
        assert resp.json == {'error': 'boom', 'classification': 'error'}


# ---------------------------------------------------------------------------
# GET /api/scraping/status/<run_id>
# ---------------------------------------------------------------------------

class TestScrapingStatus:

    def test_live_snapshot(self, client, mock_redis, auth_headers):
        mock_redis.get.return_value = json.dumps({'runId': 'run-1', 'status': 'RUNNING', 'userId': 1,
                                                  'attempts': 2, 'source': 'scraping'})
        resp = client.get('/api/scraping/status/run-1', headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json['status'] == 'RUNNING'
        assert resp.json['attempts'] == 2
        mock_redis.get.assert_called_with('scrape_run:run-1')

    def test_other_users_run_is_hidden(self, client, mock_redis):
        mock_redis.get.return_value = json.dumps({'runId': 'run-1', 'status': 'RUNNING', 'userId': 1})
        resp = client.get('/api/scraping/status/run-1', headers={'X-User-Id': '2'})
        assert resp.status_code == 404

    def test_falls_back_to_ledger(self, client, db_session, auth_headers):
        db_session.add(ScraperRun(run_id='run-5', scraper_id=3, user_id=1, source='scraping',
                                  status='SUCCEEDED', item_count=12))
        db_session.commit()
        resp = client.get('/api/scraping/status/run-5', headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json['status'] == 'SUCCEEDED'
        assert resp.json['itemCount'] == 12

    def test_unknown_run(self, client, auth_headers):
        resp = client.get('/api/scraping/status/nope', headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json['classification'] == 'not-found'

    def test_requires_user_header(self, client):
        assert client.get('/api/scraping/status/run-1').status_code == 401

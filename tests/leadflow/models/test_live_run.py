"""Tests for leadflow.models.live_run -- Redis snapshot with ledger fallback."""
import json

import redis

from leadflow.config import RUN_TRACKER_TTL
from leadflow.models.live_run import LiveRun
from leadflow.models.scraper_run import ScraperRun


class TestSave:

    def test_writes_snapshot_and_index(self, mock_redis):
        run = LiveRun('run-1', status='RUNNING', scraper_id=3, user_id=1, source='seo').save()

        key, ttl, blob = mock_redis.setex.call_args.args
        assert key == 'scrape_run:run-1'
        assert ttl == RUN_TRACKER_TTL
        assert json.loads(blob)['status'] == 'RUNNING'
        name, mapping = mock_redis.zadd.call_args.args
        assert name == 'scrape_runs:list'
        assert list(mapping) == ['run-1']
        assert run.to_dict()['scraperId'] == 3

    def test_update_changes_fields(self, mock_redis):
        run = LiveRun('run-1').update('SUCCEEDED', attempts=4, item_count=20, bogus='ignored')
        assert (run.status, run.attempts, run.item_count) == ('SUCCEEDED', 4, 20)
        assert not hasattr(run, 'bogus')
        assert mock_redis.setex.call_count == 1

    def test_redis_error_is_logged_not_raised(self, mock_redis):
        mock_redis.setex.side_effect = redis.ConnectionError('refused')
        assert LiveRun('run-1').save().run_id == 'run-1'


class TestLoad:

    def test_from_redis(self, mock_redis):
        snapshot = LiveRun('run-1', status='RUNNING', user_id=1, attempts=2).to_dict()
        mock_redis.get.return_value = json.dumps(snapshot)
        run = LiveRun.load('run-1')
        assert run.to_dict() == snapshot

    def test_falls_back_to_ledger(self, mock_redis, session_factory, db_session):
        db_session.add(ScraperRun(run_id='run-2', scraper_id=3, user_id=1, source='scraping',
                                  status='FAILED', item_count=0))
        db_session.commit()
        run = LiveRun.load('run-2', session_factory=session_factory)
        assert (run.status, run.user_id, run.attempts) == ('FAILED', 1, 0)
        assert run.created_at

    def test_redis_down_still_reads_ledger(self, mock_redis, session_factory, db_session):
        mock_redis.get.side_effect = redis.ConnectionError('refused')
        db_session.add(ScraperRun(run_id='run-3', user_id=1, source='seo', status='SUCCEEDED', item_count=1))
        db_session.commit()
        assert LiveRun.load('run-3', session_factory=session_factory).item_count == 1

    def test_unknown(self, mock_redis, session_factory):
        assert LiveRun.load('missing', session_factory=session_factory) is None


class TestListRecent:

    def test_skips_expired_keys(self, mock_redis):
        live = json.dumps(LiveRun('run-2', status='RUNNING').to_dict())
        mock_redis.zrevrange.return_value = ['run-2', 'run-1']
        mock_redis.get.side_effect = lambda key: live if key == 'scrape_run:run-2' else None
        runs = LiveRun.list_recent(limit=5)
        assert [r.run_id for r in runs] == ['run-2']
        mock_redis.zrevrange.assert_called_once_with('scrape_runs:list', 0, 4)

    def test_redis_down(self, mock_redis):
        mock_redis.zrevrange.side_effect = redis.ConnectionError('refused')
        assert LiveRun.list_recent() == []

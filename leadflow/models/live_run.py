"""
LiveRun: Redis-backed snapshot of an in-flight provider run.

The RunController saves one on submission and after every poll so that
GET /api/scraping/status/<run_id> can answer while the request that owns the
run is still blocked in its poll loop. Finished runs fall back to the
scraper_runs ledger once the Redis key expires.

Keys:
    scrape_run:{run_id}   -> JSON blob of the snapshot (TTL)
    scrape_runs:list      -> sorted set of run ids by submission time
"""
import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import redis

from leadflow.config import RUN_TRACKER_TTL

logger = logging.getLogger('models.live_run')


def _redis():
    from leadflow import extensions
    return extensions.redis_client


class LiveRun:
    """Point-in-time view of a run: who started it, where the poll loop is."""

    def __init__(
        self,
        run_id: str,
        status: str = 'QUEUED',
        scraper_id: int = None,
        user_id: int = None,
        source: str = '',
        attempts: int = 0,
        item_count: int = 0,
    ):
        self.run_id = run_id
        self.status = status
        self.scraper_id = scraper_id
        self.user_id = user_id
        self.source = source
        self.attempts = attempts
        self.item_count = item_count
        self.created_at = datetime.now(timezone.utc).isoformat()
        self.updated_at = self.created_at
        self.error = ''

    def to_dict(self) -> Dict:
        return {
            'runId': self.run_id,
            'status': self.status,
            'scraperId': self.scraper_id,
            'userId': self.user_id,
            'source': self.source,
            'attempts': self.attempts,
            'itemCount': self.item_count,
            'error': self.error,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    def save(self) -> 'LiveRun':
        """Persist the snapshot. Tracking is best effort; Redis errors are logged."""
        self.updated_at = datetime.now(timezone.utc).isoformat()
        r = _redis()
        try:
            r.setex(f'scrape_run:{self.run_id}', RUN_TRACKER_TTL, json.dumps(self.to_dict()))
            r.zadd('scrape_runs:list', {self.run_id: datetime.fromisoformat(self.created_at).timestamp()})
        except redis.RedisError as e:
            logger.warning("Could not save live run %s: %s", self.run_id, e)
        return self

    def update(self, status: str = None, **kwargs) -> 'LiveRun':
        if status:
            self.status = status
        for k, v in kwargs.items():
            if hasattr(self, k):
                setattr(self, k, v)
        return self.save()

    @classmethod
    def _from_dict(cls, d: Dict) -> 'LiveRun':
        run = cls.__new__(cls)
        run.run_id = d['runId']
        run.status = d.get('status', '')
        run.scraper_id = d.get('scraperId')
        run.user_id = d.get('userId')
        run.source = d.get('source', '')
        run.attempts = d.get('attempts', 0)
        run.item_count = d.get('itemCount', 0)
        run.error = d.get('error', '')
        run.created_at = d.get('createdAt', '')
        run.updated_at = d.get('updatedAt', '')
        return run

    @classmethod
    def _from_ledger(cls, row) -> 'LiveRun':
        run = cls.__new__(cls)
        run.run_id = row.run_id
        run.status = row.status
        run.scraper_id = row.scraper_id
        run.user_id = row.user_id
        run.source = row.source
        run.attempts = 0
        run.item_count = row.item_count or 0
        run.error = ''
        run.created_at = row.created_at.isoformat() if row.created_at else ''
        run.updated_at = (row.finished_at or row.created_at).isoformat() if row.created_at else ''
        return run

    @classmethod
    def load(cls, run_id: str, session_factory=None) -> Optional['LiveRun']:
        """Load from Redis, falling back to the scraper_runs ledger."""
        try:
            data = _redis().get(f'scrape_run:{run_id}')
        except redis.RedisError as e:
            logger.warning("Redis unavailable for live run %s: %s", run_id, e)
            data = None
        if data:
            return cls._from_dict(json.loads(data))

        from leadflow.database import get_session
        from leadflow.models.scraper_run import ScraperRun
        session = (session_factory or get_session)()
        try:
            row = session.query(ScraperRun).filter_by(run_id=run_id).first()
            return cls._from_ledger(row) if row else None
        finally:
            session.close()

    @classmethod
    def list_recent(cls, limit: int = 20) -> List['LiveRun']:
        try:
            r = _redis()
            runs = []
            for run_id in r.zrevrange('scrape_runs:list', 0, limit - 1):
                data = r.get(f'scrape_run:{run_id}')
                if data:
                    runs.append(cls._from_dict(json.loads(data)))
            return runs
        except redis.RedisError as e:
            logger.warning("Redis unavailable for live run listing: %s", e)
            return []

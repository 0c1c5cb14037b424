"""
Shared client instances: Redis and the provider HTTP session.

Importing this module never opens a connection; redis.from_url() connects on
first command and requests sessions are created lazily.
"""
import logging

import redis
import requests

from leadflow.config import REDIS_URL

logger = logging.getLogger('leadflow.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)

# ── HTTP ──────────────────────────────────────────────────────────────────────
_http_session = None


def get_http_session() -> requests.Session:
    """Process-wide requests.Session for the plain HTTP providers (PageSpeed)."""
    global _http_session
    if _http_session is None:
        _http_session = requests.Session()
        _http_session.headers.update({'User-Agent': 'leadflow/1.0'})
    return _http_session

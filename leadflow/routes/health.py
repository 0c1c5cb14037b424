"""
Health check.
"""
import logging

import redis
from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from leadflow.routes.helpers import get_session_factory

logger = logging.getLogger('routes.health')

bp = Blueprint('health', __name__)


@bp.route('/health')
def health_check():
    """Database is required; Redis only backs live run status, so it degrades."""
    checks = {'database': 'ok', 'redis': 'ok'}

    session = get_session_factory()()
    try:
        session.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        logger.error("Health check: database unavailable: %s", e)
        checks['database'] = 'unavailable'
    finally:
        session.close()

    from leadflow import extensions
    try:
        extensions.redis_client.ping()
    except redis.RedisError as e:
        logger.warning("Health check: redis unavailable: %s", e)
        checks['redis'] = 'unavailable'

    healthy = checks['database'] == 'ok'
    return jsonify({'status': 'healthy' if healthy else 'unhealthy', 'checks': checks}), (200 if healthy else 503)

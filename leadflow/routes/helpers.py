"""
Request helpers shared by the API blueprints.
"""
import functools
import logging

from flask import current_app, jsonify, request

from leadflow.errors import PipelineError, ValidationError

logger = logging.getLogger('routes.helpers')

USER_HEADER = 'X-User-Id'


def current_user_id() -> int:
    """Authenticated user id, set by the auth proxy in front of the API."""
    value = request.headers.get(USER_HEADER, '').strip()
    if not value.isdigit():
        raise MissingUser()
    return int(value)


class MissingUser(PipelineError):
    http_status = 401
    classification = 'unauthenticated'

    def __init__(self):
        super().__init__(f"Missing or invalid {USER_HEADER} header")


def get_orchestrator():
    return current_app.extensions['leadflow.orchestrator']


def get_session_factory():
    return current_app.extensions['leadflow.session_factory']


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def optional_int(data: dict, key: str):
    value = data.get(key)
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{key}' must be an integer")


def json_params(data: dict) -> dict:
    params = data.get('params') or {}
    if not isinstance(params, dict):
        raise ValidationError("'params' must be an object")
    return params


def api_errors(view):
    """Turn PipelineErrors into their JSON shape; anything else is a logged 500."""
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except PipelineError as e:
            if e.http_status >= 500:
                logger.error("%s failed: %s", request.path, e, extra={'run_id': e.run_id})
            return jsonify(e.to_dict()), e.http_status
        except Exception as e:
            logger.error("%s failed", request.path, exc_info=True)
            return jsonify({'error': str(e), 'classification': 'error'}), 500
    return wrapper

"""
Structured logging configuration.

Called once from create_app(). Supports text (human-readable) and JSON formats
via LOG_FORMAT env var. LOG_LEVEL defaults to INFO.

Run-scoped context travels through `extra=`:

    logger.info("Run finished", extra={'run_id': run.id, 'scraper_id': 3})

The JSON formatter lifts those keys into the log entry.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone


CONTEXT_FIELDS = ('run_id', 'scraper_id', 'user_id', 'collection_id', 'company_id')


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for production log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_NOISY_LOGGERS = [
    'urllib3',
    'requests',
    'sqlalchemy.engine',
    'werkzeug',
]


def configure_logging(app=None):
    """
    Set up root logger with format/level from env vars. When `app` is given,
    its logger is routed through the same handler.

    Environment variables:
        LOG_LEVEL:  Python log level name (default: INFO)
        LOG_FORMAT: "text" (default) or "json"
    """
    level_name = os.getenv('LOG_LEVEL', 'INFO').upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.INFO

    log_format = os.getenv('LOG_FORMAT', 'text').lower()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if log_format == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))

    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        # app logger goes through the root handler only
        app.logger.handlers.clear()
        app.logger.propagate = True

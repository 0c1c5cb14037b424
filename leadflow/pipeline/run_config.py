"""
Run configuration loader: per-provider batch limits, default actors and rates.

YAML file with in-memory cache and hardcoded fallback if the file is missing.
Env vars in leadflow.config override the poll cadence and ceiling.
"""
import logging
import os
from typing import Optional

import yaml

from leadflow.config import RUN_POLL_INTERVAL_SECONDS, RUN_MAX_SECONDS

logger = logging.getLogger('pipeline.run_config')


_run_config = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'run': {
            'poll_interval_seconds': 5,
            'max_run_seconds': 1800,
        },
        'providers': {
            'apify':                      {'actor_id': 'pipelinelabs~lead-scraper-apollo-zoominfo-lusha-ppe', 'cost_per_thousand': 1.20},
            'leads-finder':               {'actor_id': 'code_crafter~leads-finder', 'cost_per_thousand': 1.50},
            'linkedin-company-employees': {'actor_id': 'harvestapi~linkedin-company-employees', 'cost_per_thousand': 8.00},
            'bulk-email-finder':          {'actor_id': 'icypeas_official~bulk-email-finder', 'cost_per_thousand': 10.00, 'max_batch_size': 500},
            'linkedin-company-posts':     {'actor_id': 'harvestapi~linkedin-company-posts', 'cost_per_thousand': 2.00, 'default_max_posts': 10},
            'linkedin-profile-posts':     {'actor_id': 'harvestapi~linkedin-profile-posts', 'cost_per_thousand': 2.00, 'default_max_posts': 10},
            'easy-bulk-email-validator':  {'actor_id': 'easyapi~bulk-email-validator', 'cost_per_thousand': 1.00, 'max_batch_size': 1000},
            'trustpilot-reviews':         {'actor_id': 'thewolves~trustpilot-reviews-scraper', 'cost_per_thousand': 0.50, 'default_max_items': 100},
            'pagespeed-seo':              {'cost_per_thousand': 0.0, 'strategy': 'mobile'},
        },
    }


def load_run_config() -> dict:
    """Load run config from YAML, with in-memory cache and hardcoded fallback."""
    global _run_config
    if _run_config is not None:
        return _run_config

    config_path = os.path.join(os.path.dirname(__file__), 'run_config.yaml')
    try:
        with open(config_path, 'r') as f:
            _run_config = yaml.safe_load(f)
        logger.info("Run config loaded from YAML (version=%s)", _run_config.get('version', '?'))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Run config YAML unavailable (%s), using defaults", e)
        _run_config = _default_config()

    return _run_config


def reset_run_config():
    """Drop the cache (tests, config reloads)."""
    global _run_config
    _run_config = None


def get_provider_setting(mapper_type: str, key: str, default=None):
    cfg = load_run_config()
    return cfg.get('providers', {}).get(mapper_type, {}).get(key, default)


def get_poll_interval() -> float:
    if os.getenv('RUN_POLL_INTERVAL_SECONDS'):
        return RUN_POLL_INTERVAL_SECONDS
    return float(load_run_config().get('run', {}).get('poll_interval_seconds', RUN_POLL_INTERVAL_SECONDS))


def get_max_run_seconds() -> float:
    if os.getenv('RUN_MAX_SECONDS'):
        return RUN_MAX_SECONDS
    return float(load_run_config().get('run', {}).get('max_run_seconds', RUN_MAX_SECONDS))


def get_max_batch_size(mapper_type: str) -> Optional[int]:
    return get_provider_setting(mapper_type, 'max_batch_size')


def get_default_actor(mapper_type: str) -> str:
    return get_provider_setting(mapper_type, 'actor_id', '')


def get_cost_per_thousand(mapper_type: str) -> float:
    return float(get_provider_setting(mapper_type, 'cost_per_thousand', 0.0))

"""
Centralized configuration: env vars, run tunables, status vocabularies.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Flask ─────────────────────────────────────────────────────────────────────
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-change-me')

# ── Providers ─────────────────────────────────────────────────────────────────
APIFY_API_TOKEN = os.getenv('APIFY_API_TOKEN')
APIFY_API_URL = os.getenv('APIFY_API_URL', 'https://api.apify.com/v2')
GOOGLE_PAGESPEED_API_KEY = os.getenv('GOOGLE_PAGESPEED_API_KEY')
PAGESPEED_API_URL = 'https://www.googleapis.com/pagespeedonline/v5/runPagespeed'

HTTP_TIMEOUT = float(os.getenv('HTTP_TIMEOUT', '30'))
APIFY_MAX_RETRIES = int(os.getenv('APIFY_MAX_RETRIES', '1'))

# ── Run lifecycle ─────────────────────────────────────────────────────────────
RUN_POLL_INTERVAL_SECONDS = float(os.getenv('RUN_POLL_INTERVAL_SECONDS', '5'))
RUN_MAX_SECONDS = float(os.getenv('RUN_MAX_SECONDS', str(30 * 60)))
RUN_TRACKER_TTL = int(os.getenv('RUN_TRACKER_TTL', str(86400 * 2)))
COST_FETCH_WORKERS = int(os.getenv('COST_FETCH_WORKERS', '2'))

# ── Run sources (calling context tag stored on every run) ────────────────────
RUN_SOURCES = [
    'scraping',
    'enrich_collection',
    'enrich_lead',
    'enrich_company',
    'enrich_employees',
    'enrich_emails_collection',
    'find_email',
    'verify_emails_collection',
    'verify_email',
    'trustpilot',
    'seo',
]

# ── Enrichment status values ─────────────────────────────────────────────────
POST_ENRICHED = 'enriched'
POST_NO_POSTS = 'no-posts'

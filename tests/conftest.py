"""Shared test fixtures."""
import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from leadflow.database import Base, import_models


@pytest.fixture
def db_engine(tmp_path):
    """File-backed SQLite engine with schema created (one file per test)."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}")
    import_models()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory handed to the components under test. Each call opens a new session."""
    return sessionmaker(bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    """Session for arranging and asserting. Call expire_all() before reading rows written elsewhere."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def mock_redis():
    """Mock Redis client. Returns a MagicMock with common Redis methods."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.setex.return_value = True
    mock.zadd.return_value = 1
    mock.zrevrange.return_value = []
    mock.ping.return_value = True
    with patch('leadflow.extensions.redis_client', mock):
        yield mock


@pytest.fixture
def orchestrator():
    """Orchestrator double for route tests; each flow returns canned metrics."""
    mock = MagicMock()
    metrics = {'created': 1, 'skipped': 0, 'errors': 0, 'enriched': 0, 'noPosts': 0,
               'totalFound': 1, 'duration': 0.1, 'runIds': ['run-1']}
    for name in ('scrape_to_collection', 'enrich_collection_posts', 'enrich_company_posts',
                 'scrape_company_employees', 'find_collection_emails', 'verify_collection_emails',
                 'scrape_company_reviews', 'analyze_company_seo', 'enrich_lead_posts',
                 'find_lead_email', 'verify_lead_email'):
        getattr(mock, name).return_value = dict(metrics)
    mock.backfill_run_costs.return_value = {'processed': 2, 'updated': 1, 'skipped': 1, 'errors': 0}
    return mock


@pytest.fixture
def app(session_factory, orchestrator, mock_redis):
    """Flask test app wired to the test database and the orchestrator double."""
    from leadflow import create_app
    app = create_app(orchestrator=orchestrator, session_factory=session_factory)
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def auth_headers():
    return {'X-User-Id': '1'}


# ── Row factories ────────────────────────────────────────────────────────────

@pytest.fixture
def make_collection(db_session):
    from leadflow.models.collection import Collection

    def _make(user_id=1, name='Prospects'):
        collection = Collection(user_id=user_id, name=name)
        db_session.add(collection)
        db_session.commit()
        return collection
    return _make


@pytest.fixture
def make_company(db_session):
    from leadflow.models.company import Company

    def _make(**overrides):
        defaults = dict(name='Acme', domain='acme.com', website='https://acme.com',
                        linkedin_url='https://www.linkedin.com/company/acme')
        defaults.update(overrides)
        company = Company(**defaults)
        db_session.add(company)
        db_session.commit()
        return company
    return _make


@pytest.fixture
def make_lead(db_session):
    """Lead factory; pass collection= to link it."""
    from leadflow.models.collection import LeadCollection
    from leadflow.models.lead import Lead

    def _make(collection=None, user_id=1, **fields):
        lead = Lead(user_id=user_id, **fields)
        db_session.add(lead)
        db_session.flush()
        if collection is not None:
            db_session.add(LeadCollection(lead_id=lead.id, collection_id=collection.id))
        db_session.commit()
        return lead
    return _make


@pytest.fixture
def make_scraper(db_session):
    from leadflow.models.scraper import Scraper

    def _make(mapper_type='apify', name=None, is_active=True, provider_config=None):
        scraper = Scraper(name=name or f'{mapper_type} scraper', mapper_type=mapper_type,
                          provider_config=provider_config or {'actorId': 'acme~actor'},
                          is_active=is_active)
        db_session.add(scraper)
        db_session.commit()
        return scraper
    return _make


# ── Provider doubles ─────────────────────────────────────────────────────────

class ScriptedProvider:
    """
    Script for adapters built by `scripted_adapters`.

    results:  one item list per execute() call, in order
    statuses: execute() call number (1-based) -> terminal status to report
    errors:   execute() call number -> exception raised from execute()
    """

    def __init__(self, results=None, statuses=None, errors=None):
        self.results = list(results or [])
        self.statuses = dict(statuses or {})
        self.errors = dict(errors or {})
        self.inputs = []
        self.items = {}

    def build_factory(self):
        from leadflow.scrapers.base import MapperType, ProviderRun, RunStatus
        from leadflow.scrapers.registry import ADAPTERS

        script = self

        def factory(mapper_type, provider_config=None, **deps):
            adapter_cls = ADAPTERS[MapperType.parse(mapper_type)]

            class Scripted(adapter_cls):
                def execute(self, params):
                    build_input = getattr(self, 'build_input', None)
                    script.inputs.append(build_input(dict(params)) if build_input else dict(params))
                    call_number = len(script.inputs)
                    if call_number in script.errors:
                        raise script.errors[call_number]
                    run_id = f'run-{call_number}'
                    index = call_number - 1
                    script.items[run_id] = script.results[index] if index < len(script.results) else []
                    status = RunStatus.parse(script.statuses.get(call_number, 'SUCCEEDED'))
                    return ProviderRun(id=run_id, status=status)

                def get_status(self, run_id):
                    return RunStatus.SUCCEEDED

                def get_results(self, run_id):
                    return script.items[run_id]

                def get_cost(self, run_id):
                    return None

            return Scripted(provider_config or {}, **deps)
        return factory


@pytest.fixture
def scripted_provider():
    return ScriptedProvider()


@pytest.fixture
def build_orchestrator(session_factory, scripted_provider, mock_redis):
    """Orchestrator on the test DB with scripted adapters, no sleeping, inline cost lookups."""
    from leadflow.pipeline.orchestrator import Orchestrator
    from leadflow.services.background import InlineRunner
    from leadflow.services.usage import UsageRecorder

    def _build(**overrides):
        kwargs = dict(
            session_factory=session_factory,
            recorder=UsageRecorder(session_factory, runner=InlineRunner()),
            adapter_factory=scripted_provider.build_factory(),
            sleep=lambda seconds: None,
            poll_interval=1,
            max_seconds=10,
        )
        kwargs.update(overrides)
        return Orchestrator(**kwargs)
    return _build

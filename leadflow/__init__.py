"""
Flask application factory.

Creates and configures the Flask app, wires the orchestrator and registers
all blueprints.
"""

from flask import Flask


def create_app(orchestrator=None, session_factory=None):
    """
    Create and configure the Flask application.

    `orchestrator` / `session_factory` replace the defaults (tests, scripts).
    """
    from leadflow.logging_config import configure_logging
    from leadflow.config import SECRET_KEY
    from leadflow.database import get_session, import_models

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = SECRET_KEY

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed outside this service; no create_all() here.
    import_models()

    session_factory = session_factory or get_session
    if orchestrator is None:
        from leadflow.pipeline.orchestrator import Orchestrator
        orchestrator = Orchestrator(session_factory=session_factory)
    app.extensions['leadflow.session_factory'] = session_factory
    app.extensions['leadflow.orchestrator'] = orchestrator

    # Register blueprints
    from leadflow.routes.health import bp as health_bp
    from leadflow.routes.scraping import bp as scraping_bp
    from leadflow.routes.enrichment import bp as enrichment_bp
    from leadflow.routes.runs import bp as runs_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(scraping_bp)
    app.register_blueprint(enrichment_bp)
    app.register_blueprint(runs_bp)

    return app

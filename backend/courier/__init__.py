# backend/courier/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, enable_sqlite_savepoints, migrate


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(app: Flask) -> None:
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    # Service modules log under "courier.*"; route code uses app.logger
    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    app.logger.setLevel(level)


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            enable_sqlite_savepoints(db.engine)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.parcels import parcels_bp
    from .routes.manifests import manifests_bp
    from .routes.ledger import ledger_bp
    from .routes.payroll import payroll_bp
    from .routes.sequences import sequences_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(parcels_bp)
    app.register_blueprint(manifests_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(payroll_bp)
    app.register_blueprint(sequences_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

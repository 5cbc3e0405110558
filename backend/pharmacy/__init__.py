# backend/pharmacy/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate, local_cache


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    local_cache.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.invoices import invoices_bp
    from .routes.credit_notes import credit_notes_bp
    from .routes.stock_takes import stock_takes_bp
    from .routes.activity import activity_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(credit_notes_bp)
    app.register_blueprint(stock_takes_bp)
    app.register_blueprint(activity_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

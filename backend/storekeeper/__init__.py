# backend/storekeeper/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Audit log subscribes to every domain event
    from .services.events import dispatcher, DomainEvent
    from .services.audit_service import record_event
    dispatcher.subscribe(DomainEvent, record_event)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sales import sales_bp
    from .routes.orders import orders_bp
    from .routes.purchases import purchases_bp
    from .routes.products import products_bp
    from .routes.debts import debts_bp
    from .routes.accounts import accounts_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(debts_bp)
    app.register_blueprint(accounts_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

# backend/tradesphere/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate
from .identity import CurrentUser, set_identity_provider


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Applied before extensions bind so tests can point at sqlite:///:memory:
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.partners import suppliers_bp, customers_bp
    from .routes.warehouses import warehouses_bp
    from .routes.stock import stock_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.sales_orders import sales_orders_bp
    from .routes.invoices import invoices_bp, payments_bp
    from .routes.batches import batches_bp, serials_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(warehouses_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(sales_orders_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(batches_bp)
    app.register_blueprint(serials_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


__all__ = ["create_app", "CurrentUser", "set_identity_provider"]

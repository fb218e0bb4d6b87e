# backend/scanbizz/__init__.py
from __future__ import annotations

import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("scanbizz").setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One service graph per process: the device has a single session
    from .services import EXTENSION_KEY, build_services
    from .services.local_storage import StorageError
    from .services.remote_store import RemoteStoreError
    app.extensions[EXTENSION_KEY] = build_services(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.sales import sales_bp
    from .routes.store import store_bp
    from .routes.analytics import analytics_bp
    from .routes.sync import sync_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(store_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(sync_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Re-enter the remembered identity (never past the PIN step)
    if app.config.get("RESTORE_SESSION_ON_START", True):
        with app.app_context():
            try:
                app.extensions[EXTENSION_KEY].session.restore()
            except (StorageError, RemoteStoreError) as exc:
                app.logger.warning("Session not restored on start: %s", exc)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

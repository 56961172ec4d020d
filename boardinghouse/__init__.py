# boardinghouse/__init__.py
from __future__ import annotations

import logging
import os
from typing import Any, Optional

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from .extensions import db, init_extensions


def _get_allowed_origins(app: Flask) -> list[str]:
    """Allowed CORS origins: local dev servers plus CORS_ALLOWED_ORIGINS."""
    default = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    extra = app.config.get("CORS_ALLOWED_ORIGINS", "")
    extra_list = [o.strip() for o in extra.split(",") if o.strip()]
    return sorted(set(default + extra_list))


def _configure_logging(app: Flask) -> None:
    """JSON logs to stdout, one object per line."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    app.logger.setLevel(level)
    root = logging.getLogger()
    root.setLevel(level)

    # avoid duplicate handlers in reloaders
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt='{"ts":"%(asctime)s","level":"%(levelname)s","msg":"%(message)s","name":"%(name)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)


def _configure_cors(app: Flask) -> None:
    CORS(
        app,
        resources={r"/api/*": {"origins": _get_allowed_origins(app)}},
        supports_credentials=True,
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        expose_headers=["Content-Type"],
        max_age=86400,
    )


def _configure_proxy(app: Flask) -> None:
    """Respect X-Forwarded-* from the reverse proxy."""
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore


def _register_blueprints(app: Flask) -> None:
    """Register all API blueprints under /api."""
    from .routes import BLUEPRINTS

    for bp in BLUEPRINTS:
        app.register_blueprint(bp, url_prefix=app.config["API_PREFIX"])
        app.logger.debug("Registered blueprint %s at %s", bp.name, app.config["API_PREFIX"])


def _init_billing(app: Flask, notification_sink=None) -> None:
    from .services.notifications import DatabaseNotificationSink
    from .services.scheduler import BillingScheduler

    app.extensions["notification_sink"] = notification_sink or DatabaseNotificationSink()
    app.extensions["billing_scheduler"] = BillingScheduler(app)


# --- Application Factory ------------------------------------------------------
def create_app(config_object: Optional[str | Any] = None, notification_sink=None) -> Flask:
    """
    Standard Flask application factory.

    `config_object` may be:
      - a config object
      - dotted path to a config class (e.g., "boardinghouse.config.TestingConfig")
      - None (then CONFIG_CLASS env or boardinghouse.config.Config)

    The background scheduler is built but not started; ``run.py`` starts it
    when SCHEDULER_ENABLED is set.
    """
    app = Flask(__name__, instance_relative_config=True)

    if config_object is None:
        config_object = os.getenv("CONFIG_CLASS", "boardinghouse.config.Config")

    if isinstance(config_object, str):
        module, _, cls = config_object.rpartition(".")
        if module:
            config_object = getattr(__import__(module, fromlist=[cls]), cls)
    app.config.from_object(config_object)
    app.config.setdefault("API_PREFIX", "/api")

    # Core middleware/logging/CORS
    _configure_logging(app)
    _configure_proxy(app)
    _configure_cors(app)

    # Init extensions & blueprints
    init_extensions(app)
    from . import models  # noqa: F401  register tables with the metadata
    _register_blueprints(app)
    _init_billing(app, notification_sink)

    from .errors import register_error_handlers
    from .cli import register_cli
    register_error_handlers(app)
    register_cli(app)

    @app.get("/")
    def root():
        return jsonify({"service": "boardinghouse-billing", "message": "See /api/health"}), 200

    return app


__all__ = ["create_app", "db"]

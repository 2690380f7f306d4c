import logging

import click
from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config
from .errors import register_error_handlers
from models import storage
from services.notifier import EXTENSION_KEY, build_notifier

API_PREFIX = "/api/v1"
API_VERSION = "1.0.0"

SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Mobile Workforce Authentication API",
        "version": API_VERSION,
        "description": "QR-based registration, email verification, mobile password, full and quick login, saved accounts.",
    },
    "basePath": "/",
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "in": "header",
            "name": "Authorization",
            "description": "Access token with the `Bearer ` prefix, e.g. \"Bearer eyJhbGciOi...\".",
        }
    },
}

# /swagger.json plus the UI at /apidocs/
SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: rule.rule.startswith(API_PREFIX),
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def _cors_origins(value: str):
    if value.strip() == "*":
        return "*"
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def create_app(config_name: str | None = None) -> Flask:
    """
    Application factory.

    config_name picks the config class ("dev", "test", "prod"); when omitted
    APP_ENV decides. Tests build one isolated app per test with create_app("test").
    """
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    logging.basicConfig(
        level=getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    CORS(app, resources={r"/*": {"origins": _cors_origins(app.config.get("CORS_ORIGINS", "*"))}})
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)
    register_error_handlers(app)

    storage.reload(app.config["DATABASE_URL"], echo=app.config.get("SQL_ECHO", False))
    app.extensions[EXTENSION_KEY] = build_notifier(app.config)

    from .auth import bp as auth_bp
    from .health import bp as health_bp
    from .saved_accounts import bp as saved_accounts_bp

    app.register_blueprint(health_bp, url_prefix=API_PREFIX)
    for blueprint in (auth_bp, saved_accounts_bp):
        app.register_blueprint(blueprint, url_prefix=f"{API_PREFIX}/auth")

    # scoped_session.remove() once the app context ends, so connections go back to the pool
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.cli.command("purge-expired")
    def purge_expired_command():
        """Delete spent refresh tokens, dead sessions and expired verification codes."""
        from services.housekeeping import purge_expired

        counts = purge_expired()
        click.echo(", ".join(f"{name}={count}" for name, count in counts.items()))

    @app.get("/")
    def root():
        return {
            "message": "Mobile Workforce Authentication API",
            "version": API_VERSION,
            "docs": "/apidocs/",
            "health": f"{API_PREFIX}/health",
        }, 200

    return app

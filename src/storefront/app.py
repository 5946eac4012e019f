import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

import click
from flask import Flask, g, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from storefront import db
from storefront.core.config import Config, load_config
from storefront.core.exceptions import BaseAPIException, DatabaseError
from storefront.routes import (
    admin_bp,
    cart_bp,
    categories_bp,
    checkout_bp,
    hero_banners_bp,
    orders_bp,
    payments_bp,
    products_bp,
)
from storefront.seed import seed

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )


def _stamped(body: dict) -> dict:
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    request_id = g.get("request_id")
    if request_id:
        body["request_id"] = request_id
    return body


def _error_body(code: str, message: str) -> dict:
    return _stamped({"success": False, "error": {"code": code, "message": message, "details": {}}})


def create_app(config: Optional[Config] = None) -> Flask:
    """
    Application factory.

    Tests pass their own Config (an in-memory database, a known JWT secret);
    everything else reads it from the environment.
    """
    config = config or load_config()
    _configure_logging(config.app.log_level)

    app = Flask(__name__)
    app.config["STOREFRONT"] = config
    app.config["DEBUG"] = config.app.debug
    db.init_engine(config.database)

    # ------------------------------------------------------------------ #
    # Request ids                                                          #
    # ------------------------------------------------------------------ #
    @app.before_request
    def assign_request_id():
        g.request_id = uuid.uuid4().hex[:8]

    @app.after_request
    def expose_request_id(response):
        request_id = g.get("request_id")
        if request_id:
            response.headers["X-Request-Id"] = request_id
        return response

    # ------------------------------------------------------------------ #
    # Blueprints, each domain registered under /api/v1/                    #
    # ------------------------------------------------------------------ #
    prefix = f"/api/{config.api.version}"
    app.register_blueprint(products_bp,     url_prefix=f"{prefix}/products")
    app.register_blueprint(categories_bp,   url_prefix=f"{prefix}/categories")
    app.register_blueprint(hero_banners_bp, url_prefix=f"{prefix}/hero-banners")
    app.register_blueprint(cart_bp,         url_prefix=f"{prefix}/cart")
    app.register_blueprint(checkout_bp,     url_prefix=f"{prefix}/checkout")
    app.register_blueprint(orders_bp,       url_prefix=f"{prefix}/orders")
    app.register_blueprint(payments_bp,     url_prefix=f"{prefix}/payments")
    app.register_blueprint(admin_bp,        url_prefix=f"{prefix}/admin")

    # ------------------------------------------------------------------ #
    # Error handlers, one JSON error envelope for everything               #
    # ------------------------------------------------------------------ #
    @app.errorhandler(BaseAPIException)
    def api_error(e: BaseAPIException):
        if e.status_code >= 500:
            logger.error(f"{e.error_code}: {e.internal_message}")
        else:
            logger.info(f"{e.error_code}: {e.internal_message}")
        return jsonify(_stamped(e.to_dict())), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        code = (e.name or "error").upper().replace(" ", "_")
        return jsonify(_error_body(code, str(e.description))), e.code

    @app.errorhandler(SQLAlchemyError)
    def db_error(e: SQLAlchemyError):
        return api_error(DatabaseError(f"{type(e).__name__}: {e}"))

    @app.errorhandler(Exception)
    def internal_error(e: Exception):
        logger.exception("unhandled error")
        return jsonify(_error_body("INTERNAL_ERROR", "An internal server error occurred.")), 500

    # ------------------------------------------------------------------ #
    # Health check                                                         #
    # ------------------------------------------------------------------ #
    @app.get("/health")
    @app.get(f"{prefix}/health")
    def health():
        """Liveness + readiness probe. Returns 503 if the database is unreachable."""
        reachable = db.check_connection()
        body = {
            "status": "ok" if reachable else "error",
            "database": "reachable" if reachable else "unreachable",
            "environment": config.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return jsonify(body), 200 if reachable else 503

    # ------------------------------------------------------------------ #
    # CLI                                                                  #
    # ------------------------------------------------------------------ #
    @app.cli.command("init-db")
    def init_db_command():
        """Create every table."""
        db.create_all()
        click.echo("Tables created.")

    @app.cli.command("seed")
    def seed_command():
        """Load sample catalog, banners, profiles and an order."""
        with db.get_session() as session:
            seed(session)
        click.echo("Seed data loaded.")

    return app


if __name__ == "__main__":
    application = create_app()
    settings = application.config["STOREFRONT"].app
    application.run(debug=settings.debug, host=settings.host, port=settings.port)

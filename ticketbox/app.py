# ticketbox/app.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from ticketbox.api import api, fail
from ticketbox.auth import TokenIssuer, login_manager
from ticketbox.config import Config
from ticketbox.errors import ApiError
from ticketbox.services import build_services
from ticketbox.services.payments import PaymentGateway, StripeGateway
from ticketbox.stores import build_store
from ticketbox.stores.interfaces import DocumentStore

logger = logging.getLogger("ticketbox")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))


def create_app(
    config_object=Config,
    store: Optional[DocumentStore] = None,
    payment_gateway: Optional[PaymentGateway] = None,
) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app.config["LOG_LEVEL"])

    if store is None:
        store = build_store(app.config)
    if payment_gateway is None and app.config["STRIPE_SECRET_KEY"]:
        payment_gateway = StripeGateway(
            app.config["STRIPE_SECRET_KEY"],
            currency=app.config["PAYMENT_CURRENCY"],
            max_network_retries=app.config["STRIPE_MAX_NETWORK_RETRIES"],
        )

    services = build_services(store, app.config, payment_gateway)
    app.extensions["ticketbox"] = services
    app.extensions["ticketbox_tokens"] = TokenIssuer(
        app.config["SECRET_KEY"], app.config["TOKEN_ALGORITHM"], app.config["TOKEN_EXPIRE_MINUTES"]
    )

    login_manager.init_app(app)
    app.register_blueprint(api)
    register_hooks(app)
    register_error_handlers(app)

    if app.config["SEED_DEFAULT_ADMIN"]:
        try:
            services.users.ensure_default_admin(
                app.config["DEFAULT_ADMIN_EMAIL"], app.config["DEFAULT_ADMIN_PASSWORD"]
            )
        except ApiError:
            logger.exception("Failed to ensure default admin user")

    logger.info(
        "ticketbox ready (store=%s, payment_mode=%s, gateway=%s)",
        type(store).__name__,
        services.payment_mode,
        type(payment_gateway).__name__ if payment_gateway else None,
    )
    return app


def register_hooks(app: Flask) -> None:
    # Attach a request id for debugging/traceability.
    @app.before_request
    def attach_request_id():
        rid = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.environ["request_id"] = rid

    @app.after_request
    def add_security_headers(resp: Response):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["X-Request-Id"] = request.environ.get("request_id", "")
        return resp


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        if err.status >= 500:
            logger.error("Request %s failed upstream: %s", request.environ.get("request_id", ""), err)
        return fail(err)

    @app.errorhandler(404)
    def handle_404(_):
        return jsonify({"ok": False, "error": "Not found.", "code": "not_found"}), 404

    @app.errorhandler(405)
    def handle_405(_):
        return jsonify({"ok": False, "error": "Method not allowed.", "code": "method_not_allowed"}), 405

    @app.errorhandler(Exception)
    def handle_exception(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify({"ok": False, "error": e.description, "code": "http_error"}), e.code
        rid = request.environ.get("request_id", "")
        logger.exception("Unhandled error (request_id=%s): %s", rid, e)
        return (
            jsonify(
                {
                    "ok": False,
                    "error": "Internal server error.",
                    "code": "internal_error",
                    "request_id": rid,
                }
            ),
            500,
        )

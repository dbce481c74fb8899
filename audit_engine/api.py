"""
HTTP surface: the current account balance behind HTTP basic auth.

Usage:
    app = create_app(tracker, ApiConfig())
    app.run(host=..., port=...)
"""
from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Optional

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash, generate_password_hash

from audit_engine.balance import BalanceTracker
from audit_engine.config import ApiConfig

logger = logging.getLogger(__name__)


def create_app(tracker: BalanceTracker, api_config: Optional[ApiConfig] = None) -> Flask:
    api_config = api_config or ApiConfig()
    password_hash = generate_password_hash(api_config.password)

    app = Flask(__name__)

    def requires_auth(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            auth = request.authorization
            if (
                auth is None
                or auth.username != api_config.username
                or not check_password_hash(password_hash, auth.password or "")
            ):
                resp = jsonify({"error": "Unauthorized"})
                resp.status_code = 401
                resp.headers["WWW-Authenticate"] = 'Basic realm="balance"'
                return resp
            return view(*args, **kwargs)
        return wrapper

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    @app.route("/api/v1/balance")
    @requires_auth
    def get_balance() -> Response:
        return jsonify({"availableBalance": tracker.formatted_balance()})

    @app.route("/health")
    def health() -> Response:
        return jsonify({"status": "ok"})

    # -----------------------------------------------------------------------
    # Error handling
    # -----------------------------------------------------------------------
    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException) -> Any:
        return jsonify({"error": exc.name, "message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception) -> Any:
        logger.exception("Error handling %s %s", request.method, request.path)
        return jsonify({"error": "Internal Server Error", "message": str(exc)}), 500

    return app

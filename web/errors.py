from __future__ import annotations

import logging

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException, MethodNotAllowed, NotFound, RequestEntityTooLarge

from core.config import AppConfig
from core.metrics import Metrics

from .middleware import current_request_id, is_api_path
from .routes import HOME_PAGE, send_page


logger = logging.getLogger(__name__)


def not_found_response(config: AppConfig) -> Response:
    """API paths get a JSON 404; pages get the home document with a 404."""

    if is_api_path(request.path):
        response = jsonify({"error": "Not found"})
    else:
        try:
            response = send_page(config.static_root, HOME_PAGE)
        except NotFound:
            logger.warning("Home page %s missing under %s", HOME_PAGE, config.static_root)
            response = Response("Not found", mimetype="text/plain")
    response.status_code = 404
    return response


def register_error_handlers(app: Flask, config: AppConfig, metrics: Metrics) -> None:
    @app.errorhandler(NotFound)
    @app.errorhandler(MethodNotAllowed)
    def _not_found(_exc: HTTPException):
        return not_found_response(config)

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(_exc: RequestEntityTooLarge):
        return jsonify({"error": "Payload too large"}), 413

    @app.errorhandler(Exception)
    def _unhandled(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        metrics.record_error()
        logger.error(
            "Unhandled error on %s %s [%s]",
            request.method,
            request.path,
            current_request_id(),
            exc_info=exc,
            extra={"req": {"method": request.method, "url": request.path, "id": current_request_id()}},
        )
        return jsonify({"error": "Internal Server Error"}), 500

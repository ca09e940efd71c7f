"""Per-request pipeline stages.

Stages are installed on the Flask app in a fixed order.  ``before_request``
hooks run in registration order and any of them may short-circuit by
returning a response; ``after_request`` hooks decorate whatever response
comes back, including error responses.
"""

from __future__ import annotations

import gzip
import logging
import time
import uuid
from typing import Optional

from flask import Flask, Response, g, jsonify, request
from flask_cors import CORS

from core.config import AppConfig
from core.metrics import Metrics

from .rate_limit import RateLimiter


logger = logging.getLogger(__name__)

API_PREFIX = "/api"
MAX_BODY_BYTES = 1024 * 1024
COMPRESSION_THRESHOLD = 1024

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

_COMPRESSIBLE_PREFIXES = ("text/",)
_COMPRESSIBLE_TYPES = {
    "application/json",
    "application/javascript",
    "application/xml",
    "image/svg+xml",
}


def is_api_path(path: str) -> bool:
    return path == API_PREFIX or path.startswith(API_PREFIX + "/")


def current_request_id() -> str:
    request_id = g.get("request_id")
    if request_id is None:
        incoming = (request.headers.get("X-Request-ID") or "").strip()
        request_id = incoming[:128] if incoming else uuid.uuid4().hex
        g.request_id = request_id
    return request_id


def client_key() -> str:
    return request.remote_addr or "unknown"


def _is_preflight() -> bool:
    return request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers


# 1. Security headers ---------------------------------------------------------


def install_security_headers(app: Flask) -> None:
    @app.after_request
    def _security_headers(response: Response) -> Response:
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


# 2. Compression --------------------------------------------------------------


def _compressible(mimetype: Optional[str]) -> bool:
    if not mimetype:
        return False
    return mimetype.startswith(_COMPRESSIBLE_PREFIXES) or mimetype in _COMPRESSIBLE_TYPES


def install_compression(app: Flask, *, threshold: int = COMPRESSION_THRESHOLD) -> None:
    @app.after_request
    def _compress(response: Response) -> Response:
        response.vary.add("Accept-Encoding")
        if "gzip" not in request.accept_encodings or request.method == "HEAD":
            return response
        if response.status_code != 200 or "Content-Encoding" in response.headers:
            return response
        if "Content-Range" in response.headers or not _compressible(response.mimetype):
            return response
        if response.content_length is not None and response.content_length < threshold:
            return response

        response.direct_passthrough = False
        body = response.get_data()
        if len(body) < threshold:
            return response
        response.set_data(gzip.compress(body, compresslevel=6))
        response.headers["Content-Encoding"] = "gzip"
        etag, _ = response.get_etag()
        if etag:
            response.set_etag(etag, weak=True)
        return response


# 3. Body parsing -------------------------------------------------------------


def parsed_body() -> Optional[dict]:
    return g.get("body")


def install_body_parser(app: Flask, *, max_bytes: int = MAX_BODY_BYTES) -> None:
    app.config["MAX_CONTENT_LENGTH"] = max_bytes

    @app.before_request
    def _parse_body():
        g.body = None
        if request.method not in ("POST", "PUT", "PATCH"):
            return None
        if request.is_json:
            data = request.get_json(silent=True)
            if data is None and request.get_data(cache=True).strip():
                logger.debug("Rejecting malformed JSON body on %s", request.path)
                return jsonify({"error": "Invalid input"}), 400
            g.body = data
        elif request.mimetype in ("application/x-www-form-urlencoded", "multipart/form-data"):
            g.body = request.form.to_dict()
        return None


# 4. CORS ---------------------------------------------------------------------


def install_cors(app: Flask, config: AppConfig) -> None:
    if not config.cors_enabled:
        return
    # Anchored so only /api and /api/... match, never /apiary.
    CORS(app, resources={rf"^{API_PREFIX}(/.*)?$": {"origins": "*"}}, send_wildcard=True)


# 5. Request logging ----------------------------------------------------------


def install_request_logging(app: Flask) -> None:
    @app.before_request
    def _log_start():
        g.request_started = time.perf_counter()
        logger.debug(
            "--> %s %s [%s]",
            request.method,
            request.path,
            current_request_id(),
            extra={"req": _request_fields()},
        )

    @app.after_request
    def _log_finish(response: Response) -> Response:
        request_id = current_request_id()
        started = g.get("request_started")
        elapsed_ms = (time.perf_counter() - started) * 1000 if started is not None else 0.0
        response.headers.setdefault("X-Request-ID", request_id)
        logger.info(
            "%s %s %s %.1fms [%s]",
            request.method,
            request.path,
            response.status_code,
            elapsed_ms,
            request_id,
            extra={
                "req": _request_fields(),
                "res": {"statusCode": response.status_code},
                "responseTime": round(elapsed_ms, 3),
            },
        )
        return response


def _request_fields() -> dict:
    return {"method": request.method, "url": request.full_path.rstrip("?"), "id": current_request_id()}


# 6. Rate limiting ------------------------------------------------------------


def install_rate_limiting(app: Flask, limiter: RateLimiter) -> None:
    @app.before_request
    def _rate_limit():
        if not is_api_path(request.path) or _is_preflight():
            return None
        result = limiter.hit(client_key())
        g.rate_limit = result
        if result.allowed:
            return None
        logger.warning(
            "Rate limit exceeded for %s on %s", client_key(), request.path,
            extra={"req": _request_fields()},
        )
        response = jsonify({"error": "Too many requests, please try again later."})
        response.status_code = 429
        response.headers["Retry-After"] = str(result.reset_seconds)
        return response

    @app.after_request
    def _rate_limit_headers(response: Response) -> Response:
        result = g.get("rate_limit")
        if result is None:
            return response
        response.headers["RateLimit-Policy"] = f"{result.limit};w={limiter.window_seconds}"
        response.headers["RateLimit-Limit"] = str(result.limit)
        response.headers["RateLimit-Remaining"] = str(result.remaining)
        response.headers["RateLimit-Reset"] = str(result.reset_seconds)
        return response


# 7. Request counting ---------------------------------------------------------


def install_request_counter(app: Flask, metrics: Metrics) -> None:
    @app.before_request
    def _count_request():
        if not _is_preflight():
            metrics.record_request()


def install_pipeline(app: Flask, config: AppConfig, metrics: Metrics, limiter: RateLimiter) -> None:
    """Install every stage in pipeline order."""

    install_security_headers(app)
    install_compression(app)
    install_body_parser(app)
    install_cors(app, config)
    install_request_logging(app)
    install_rate_limiting(app, limiter)
    install_request_counter(app, metrics)

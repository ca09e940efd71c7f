from __future__ import annotations

import logging
from pathlib import Path

from flask import Flask, Response, jsonify, request, send_from_directory

from core.config import AppConfig
from core.contact import InvalidSubmission, build_log_entry, utc_timestamp, validate_submission
from core.contact_log import ContactLog
from core.data_store import DataStore
from core.metrics import Metrics, process_memory

from .middleware import client_key, current_request_id, parsed_body


logger = logging.getLogger(__name__)

HOME_PAGE = "index.html"
PAGES = {
    "/": HOME_PAGE,
    "/about": "about.html",
    "/contact": "contact.html",
}


def send_page(static_root: Path, filename: str) -> Response:
    return send_from_directory(static_root, filename)


def register_routes(
    app: Flask,
    config: AppConfig,
    *,
    metrics: Metrics,
    store: DataStore,
    contact_log: ContactLog,
) -> None:
    """Attach every page, API and ops endpoint to ``app``."""

    static_root = config.static_root

    def _page_view(filename: str):
        def view() -> Response:
            return send_page(static_root, filename)

        return view

    for rule, filename in PAGES.items():
        endpoint = "page_" + (filename.rsplit(".", 1)[0])
        app.add_url_rule(rule, endpoint, _page_view(filename), methods=["GET"])

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "timestamp": utc_timestamp(), "uptime": metrics.uptime()}), 200

    @app.route("/api/data", methods=["GET"])
    def api_data():
        return jsonify(store.load_app_data())

    @app.route("/api/info", methods=["GET"])
    def api_info():
        data = store.load_app_data()
        return jsonify({"app": data.get("app"), "stats": data.get("stats")})

    @app.route("/api/contact", methods=["POST"])
    def api_contact():
        try:
            submission = validate_submission(parsed_body())
        except InvalidSubmission as exc:
            logger.debug("Contact submission rejected: %s [%s]", exc, current_request_id())
            return jsonify({"error": "Invalid input"}), 400

        entry = build_log_entry(
            submission,
            client_ip=client_key(),
            user_agent=request.headers.get("User-Agent"),
        )
        logger.info(
            "Contact submission [%s]",
            current_request_id(),
            extra={"contact": entry.to_dict()},
        )
        contact_log.append(entry)
        return jsonify({"success": True}), 201

    @app.route("/metrics", methods=["GET"])
    def metrics_view():
        snapshot = metrics.snapshot()
        return jsonify(
            {
                "requestCount": snapshot.request_count,
                "errorCount": snapshot.error_count,
                "memory": process_memory(),
                "uptime": snapshot.uptime,
            }
        )

    @app.route("/<path:filename>", methods=["GET"])
    def static_asset(filename: str):
        return send_from_directory(static_root, filename)

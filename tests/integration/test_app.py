from __future__ import annotations

import gzip
import json
import threading
from pathlib import Path

from core.metrics import Metrics
from core.types import FALLBACK_APP_DATA
from web.app import create_app


VALID_CONTACT = {"name": "Test", "email": "t@example.com", "message": "Hello"}


def _log_lines(path: Path) -> list[str]:
    if not path.exists():
        return []
    return path.read_text().splitlines()


def test_health_reports_ok_and_uptime(client):
    res = client.get("/health")

    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "ok"
    assert isinstance(body["uptime"], (int, float))
    assert body["uptime"] >= 0
    assert body["timestamp"].endswith("Z")


def test_home_page_served(client):
    res = client.get("/")

    assert res.status_code == 200
    assert "Sample DevOps App" in res.get_data(as_text=True)


def test_about_and_contact_pages(client):
    assert "About" in client.get("/about").get_data(as_text=True)
    assert "contactForm" in client.get("/contact").get_data(as_text=True)


def test_static_css_served_with_content_type(client):
    res = client.get("/css/style.css")

    assert res.status_code in (200, 304)
    assert res.mimetype == "text/css"


def test_api_data_returns_document(client):
    res = client.get("/api/data")

    assert res.status_code == 200
    body = res.get_json()
    assert body["app"]["name"] == "Test App"
    assert isinstance(body["items"], list)


def test_api_data_falls_back_when_file_missing(make_config, tmp_path):
    app = create_app(make_config(DATA_FILE_PATH=str(tmp_path / "missing.json")))

    res = app.test_client().get("/api/data")

    assert res.status_code == 200
    assert res.get_json() == FALLBACK_APP_DATA


def test_api_data_falls_back_when_file_corrupt(make_config, tmp_path):
    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json")
    app = create_app(make_config(DATA_FILE_PATH=str(corrupt)))

    body = app.test_client().get("/api/data").get_json()

    assert body["items"] == []
    assert body["app"] == FALLBACK_APP_DATA["app"]


def test_api_info_omits_items(client):
    res = client.get("/api/info")

    assert res.status_code == 200
    body = res.get_json()
    assert body["app"]["version"] == "2.0.0"
    assert body["stats"] == {"visits": 7}
    assert "items" not in body


def test_contact_rejects_empty_body(client, contact_log_path):
    res = client.post("/api/contact", json={})

    assert res.status_code == 400
    assert res.get_json() == {"error": "Invalid input"}
    assert _log_lines(contact_log_path) == []


def test_contact_rejects_bad_email(client, contact_log_path):
    res = client.post("/api/contact", json={**VALID_CONTACT, "email": "nope"})

    assert res.status_code == 400
    assert _log_lines(contact_log_path) == []


def test_contact_rejects_malformed_json(client, contact_log_path):
    res = client.post("/api/contact", data="{broken", content_type="application/json")

    assert res.status_code == 400
    assert _log_lines(contact_log_path) == []


def test_contact_accepts_valid_json(client, contact_log_path):
    res = client.post(
        "/api/contact",
        json=VALID_CONTACT,
        headers={"User-Agent": "pytest-agent"},
    )

    assert res.status_code == 201
    assert res.get_json() == {"success": True}
    lines = _log_lines(contact_log_path)
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["payload"] == VALID_CONTACT
    assert record["userAgent"] == "pytest-agent"
    assert record["clientIp"]


def test_contact_accepts_form_encoded(client, contact_log_path):
    res = client.post("/api/contact", data=VALID_CONTACT)

    assert res.status_code == 201
    assert len(_log_lines(contact_log_path)) == 1


def test_contact_succeeds_when_log_unwritable(make_config, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    app = create_app(make_config(CONTACT_LOG_PATH=str(blocker / "contact.log")))

    res = app.test_client().post("/api/contact", json=VALID_CONTACT)

    assert res.status_code == 201


def test_oversized_body_is_rejected(client):
    res = client.post(
        "/api/contact",
        data=json.dumps({**VALID_CONTACT, "message": "x" * (1024 * 1024 + 1)}),
        content_type="application/json",
    )

    assert res.status_code == 413
    assert res.get_json() == {"error": "Payload too large"}


def test_concurrent_contact_posts_each_write_one_line(app, contact_log_path):
    results: list[int] = []
    lock = threading.Lock()

    def submit(index: int) -> None:
        response = app.test_client().post(
            "/api/contact",
            json={"name": f"user{index}", "email": f"u{index}@example.com", "message": "hi " * 200},
        )
        with lock:
            results.append(response.status_code)

    threads = [threading.Thread(target=submit, args=(i,)) for i in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == [201] * 10
    lines = _log_lines(contact_log_path)
    assert len(lines) == 10
    assert sorted(json.loads(line)["payload"]["name"] for line in lines) == sorted(
        f"user{i}" for i in range(10)
    )


def test_metrics_counts_requests_monotonically(client):
    first = client.get("/metrics").get_json()
    client.get("/health")
    second = client.get("/metrics").get_json()

    assert second["requestCount"] >= first["requestCount"] + 2
    assert set(second["memory"]) == {"rss", "heapTotal", "heapUsed", "external"}
    assert second["errorCount"] == 0


def test_unknown_api_path_is_json_404(client):
    res = client.get("/api/does-not-exist")

    assert res.status_code == 404
    assert res.get_json() == {"error": "Not found"}


def test_unknown_page_gets_home_body(client):
    res = client.get("/some/client/route")

    assert res.status_code == 404
    assert "Sample DevOps App" in res.get_data(as_text=True)


def test_wrong_method_falls_through_to_not_found(client):
    res = client.delete("/api/data")

    assert res.status_code == 404
    assert res.get_json() == {"error": "Not found"}


def test_path_traversal_is_not_served(client):
    res = client.get("/../server.py")

    assert res.status_code == 404


def test_unhandled_error_becomes_generic_500(config):
    metrics = Metrics()
    app = create_app(config, metrics=metrics)

    @app.route("/explode")
    def explode():
        raise RuntimeError("secret internals")

    res = app.test_client().get("/explode")

    assert res.status_code == 500
    assert res.get_json() == {"error": "Internal Server Error"}
    assert "secret" not in res.get_data(as_text=True)
    assert metrics.error_count == 1


def test_security_headers_on_every_response(client):
    for path in ("/", "/api/data", "/api/missing"):
        headers = client.get(path).headers
        assert headers["X-Content-Type-Options"] == "nosniff"
        assert headers["X-Frame-Options"] == "SAMEORIGIN"
        assert "Content-Security-Policy" in headers


def test_request_id_is_echoed(client):
    res = client.get("/health", headers={"X-Request-ID": "abc-123"})

    assert res.headers["X-Request-ID"] == "abc-123"


def test_cors_only_on_api_paths(client):
    api = client.get("/api/data", headers={"Origin": "http://example.test"})
    page = client.get("/health", headers={"Origin": "http://example.test"})

    assert api.headers.get("Access-Control-Allow-Origin") == "*"
    assert "Access-Control-Allow-Origin" not in page.headers


def test_cors_does_not_leak_to_paths_sharing_the_api_prefix(client):
    res = client.get("/apiary", headers={"Origin": "http://example.test"})

    assert res.status_code == 404
    assert "Access-Control-Allow-Origin" not in res.headers


def test_cors_can_be_disabled(make_config):
    app = create_app(make_config(ENABLE_CORS="false"))

    res = app.test_client().get("/api/data", headers={"Origin": "http://example.test"})

    assert "Access-Control-Allow-Origin" not in res.headers


def test_gzip_when_negotiated(client):
    res = client.get("/css/style.css", headers={"Accept-Encoding": "gzip"})

    assert res.headers.get("Content-Encoding") == "gzip"
    assert b"--accent" in gzip.decompress(res.data)
    assert "Accept-Encoding" in res.headers.get("Vary", "")


def test_gzip_weakens_static_etag(client):
    plain = client.get("/css/style.css")
    packed = client.get("/css/style.css", headers={"Accept-Encoding": "gzip"})

    assert plain.headers["ETag"].startswith('"')
    assert packed.headers["ETag"] == "W/" + plain.headers["ETag"]


def test_no_gzip_without_negotiation(client):
    res = client.get("/css/style.css")

    assert "Content-Encoding" not in res.headers


def test_rate_limit_rejects_excess_api_requests(make_config):
    app = create_app(make_config(RATE_LIMIT_MAX="3", RATE_LIMIT_WINDOW_MS="60000"))
    client = app.test_client()

    statuses = [client.get("/api/info").status_code for _ in range(5)]

    assert statuses == [200, 200, 200, 429, 429]
    limited = client.get("/api/info")
    assert limited.headers["RateLimit-Limit"] == "3"
    assert limited.headers["RateLimit-Remaining"] == "0"
    assert "Retry-After" in limited.headers


def test_rate_limit_headers_and_page_paths_unlimited(make_config):
    app = create_app(make_config(RATE_LIMIT_MAX="1"))
    client = app.test_client()

    first = client.get("/api/info")
    assert first.headers["RateLimit-Limit"] == "1"
    assert first.headers["RateLimit-Remaining"] == "0"
    assert first.headers["RateLimit-Policy"] == "1;w=60"

    assert [client.get("/health").status_code for _ in range(3)] == [200, 200, 200]
    assert "RateLimit-Limit" not in client.get("/health").headers


def test_rate_limited_requests_are_not_counted(make_config):
    metrics = Metrics()
    app = create_app(make_config(RATE_LIMIT_MAX="1"), metrics=metrics)
    client = app.test_client()

    client.get("/api/info")
    client.get("/api/info")

    assert metrics.request_count == 1
    assert metrics.error_count == 0

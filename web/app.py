"""Flask application factory."""

from __future__ import annotations

from typing import Optional

from flask import Flask

from core.config import AppConfig
from core.contact_log import ContactLog
from core.data_store import DataStore
from core.metrics import Metrics

from .errors import register_error_handlers
from .middleware import install_pipeline
from .rate_limit import RateLimiter
from .routes import register_routes


def create_app(
    config: AppConfig,
    *,
    metrics: Optional[Metrics] = None,
    store: Optional[DataStore] = None,
    contact_log: Optional[ContactLog] = None,
    limiter: Optional[RateLimiter] = None,
) -> Flask:
    """Wire the pipeline, routes and error boundary around ``config``.

    Collaborators may be injected for tests; otherwise they are built from
    the configuration.  No socket is bound here.
    """

    metrics = metrics or Metrics()
    store = store or DataStore(config.data_file_path)
    contact_log = contact_log or ContactLog(config.contact_log_path)
    limiter = limiter or RateLimiter(config.rate_limit_max, config.rate_limit_window_ms)

    app = Flask(__name__, static_folder=None)
    app.json.sort_keys = False

    install_pipeline(app, config, metrics, limiter)
    register_routes(app, config, metrics=metrics, store=store, contact_log=contact_log)
    register_error_handlers(app, config, metrics)
    return app

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

import pytest

from core.config import AppConfig, load_config
from web.app import create_app


SAMPLE_DATA = {
    "app": {"name": "Test App", "version": "2.0.0", "features": ["one", "two"]},
    "items": [
        {"title": "First", "description": "The first item", "technologies": ["Python", "Flask"]},
    ],
    "stats": {"visits": 7},
}


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    path = tmp_path / "data" / "app-data.json"
    path.parent.mkdir()
    path.write_text(json.dumps(SAMPLE_DATA))
    return path


@pytest.fixture
def contact_log_path(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "contact.log"


@pytest.fixture
def make_config(data_file: Path, contact_log_path: Path) -> Callable[..., AppConfig]:
    def factory(**env: str) -> AppConfig:
        environ = {
            "DATA_FILE_PATH": str(data_file),
            "CONTACT_LOG_PATH": str(contact_log_path),
        }
        environ.update(env)
        return load_config(environ)

    return factory


@pytest.fixture
def config(make_config) -> AppConfig:
    return make_config()


@pytest.fixture
def app(config: AppConfig):
    return create_app(config)


@pytest.fixture
def client(app):
    return app.test_client()

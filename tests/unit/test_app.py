import json

import pytest

from app import create_app
from lookahead.config import AppConfig


@pytest.fixture
def client():
    app = create_app(AppConfig(app_env="development", default_lookahead_weeks=4, max_upload_mb=5))
    return app.server.test_client()


def test_health_reports_process_and_window_settings(client):
    response = client.get("/__/health")

    assert response.status_code == 200
    payload = json.loads(response.data)
    assert payload["status"] == "ok"
    assert payload["default_lookahead_weeks"] == 4
    assert payload["max_lookahead_weeks"] == 26
    assert payload["rss_mb"] > 0


def test_ready(client):
    response = client.get("/__/ready")
    assert response.status_code == 200
    assert json.loads(response.data) == {"status": "ok"}


def test_security_headers_are_added(client):
    response = client.get("/__/ready")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Referrer-Policy"] == "no-referrer"


def test_layout_is_rebuilt_per_page_load(monkeypatch):
    app = create_app(AppConfig(app_env="development", default_lookahead_weeks=4, max_upload_mb=5))

    monkeypatch.setattr("lookahead.layout.current_week_start", lambda: "2030-01-07")
    first = app.layout()
    monkeypatch.setattr("lookahead.layout.current_week_start", lambda: "2030-01-14")
    second = app.layout()

    assert callable(app.layout)
    assert _anchor_default(first) == "2030-01-07"
    assert _anchor_default(second) == "2030-01-14"


def _anchor_default(component):
    if getattr(component, "id", None) == "f-anchor":
        return component.date
    children = getattr(component, "children", None)
    if children is None or isinstance(children, str):
        return None
    for child in children if isinstance(children, (list, tuple)) else [children]:
        found = _anchor_default(child)
        if found is not None:
            return found
    return None

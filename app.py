"""Dash application entry point."""
from __future__ import annotations

import json
import logging
import os
import time

import dash_bootstrap_components as dbc
import psutil
from dash import Dash
from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman
from pythonjsonlogger import jsonlogger
from werkzeug.middleware.proxy_fix import ProxyFix

from lookahead.callbacks import register_callbacks
from lookahead.config import AppConfig, configure_logging
from lookahead.layout import build_layout


LOGGER = logging.getLogger(__name__)
STARTED_AT = time.time()


def _ensure_json_logging() -> None:
    """Attach a JSON formatter to the root logger if not already present."""

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if getattr(handler, "_is_json_handler", False):
            return

    json_handler = logging.StreamHandler()
    json_handler.setFormatter(jsonlogger.JsonFormatter())
    json_handler._is_json_handler = True  # type: ignore[attr-defined]
    root_logger.addHandler(json_handler)


CONFIG = AppConfig()
CONFIG.validate()


def _merge_csp_values(*groups: tuple[str, ...] | list[str]) -> list[str]:
    merged: list[str] = []
    seen: set[str] = set()
    for group in groups:
        for value in group:
            if value not in seen:
                seen.add(value)
                merged.append(value)
    return merged


def create_app(config: AppConfig | None = None) -> Dash:
    """Create and configure the Dash application instance."""

    active_config = config or CONFIG
    active_config.validate()
    configure_logging(active_config.log_level.upper())
    _ensure_json_logging()

    app_instance = Dash(__name__, external_stylesheets=[dbc.themes.BOOTSTRAP])
    app_instance.title = "Shop & Delivery Lookahead"

    def _serve_layout():
        # Built per page load so the default anchor follows the calendar.
        return build_layout(active_config)

    app_instance.layout = _serve_layout

    server = app_instance.server
    server.config["SECRET_KEY"] = active_config.secret_key
    server.config["SESSION_COOKIE_SECURE"] = True
    server.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    server.config["MAX_CONTENT_LENGTH"] = active_config.max_content_length

    if active_config.app_env == "production":
        if active_config.behind_proxy:
            server.wsgi_app = ProxyFix(server.wsgi_app, x_for=1, x_proto=1, x_host=1)

        # Strict CSP for prod; leave it OFF in dev to avoid blocking Dash inline JS.
        csp = {
            "default-src": ["'self'"],
            "img-src": ["'self'", "data:"],
            "style-src": ["'self'", "'unsafe-inline'"],
            "script-src": ["'self'", "'unsafe-inline'", "'unsafe-eval'"],
            "connect-src": ["'self'"],
            "font-src": ["'self'", "data:"],
        }

        csp["script-src"] = _merge_csp_values(csp["script-src"], active_config.csp_script_src)
        csp["style-src"] = _merge_csp_values(csp["style-src"], active_config.csp_style_src)
        csp["font-src"] = _merge_csp_values(csp["font-src"], active_config.csp_font_src)
        csp["connect-src"] = _merge_csp_values(csp["connect-src"], active_config.csp_connect_src)
        csp["img-src"] = _merge_csp_values(csp["img-src"], active_config.csp_img_src)

        csp_directives = {key: " ".join(values) for key, values in csp.items()}

        Talisman(
            server,
            force_https=active_config.enable_https,
            strict_transport_security=True,
            frame_options="DENY",
            content_security_policy=csp_directives,
        )

        Limiter(get_remote_address, app=server, default_limits=["120/minute"])

    @server.before_request
    def _capture_request_start() -> None:
        request.environ["request_start_time"] = time.perf_counter()

    @server.after_request
    def _log_request(response):  # type: ignore[override]
        start_time = request.environ.get("request_start_time")
        duration_ms = 0.0
        if start_time is not None:
            duration_ms = (time.perf_counter() - start_time) * 1000

        content_length = response.calculate_content_length() or 0
        log_data = {
            "event": "http_request",
            "path": request.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "content_length": content_length,
        }
        LOGGER.info("request", extra=log_data)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response

    @server.get("/__/health")
    def healthcheck():  # type: ignore[override]
        process = psutil.Process(os.getpid())
        rss_mb = process.memory_info().rss / (1024 * 1024)
        payload = {
            "status": "ok",
            "rss_mb": round(rss_mb, 2),
            "uptime_seconds": round(time.time() - STARTED_AT, 1),
            "app_env": active_config.app_env,
            "default_lookahead_weeks": active_config.default_lookahead_weeks,
            "max_lookahead_weeks": active_config.max_lookahead_weeks,
            "max_upload_mb": active_config.max_upload_mb,
        }
        return server.response_class(
            response=json.dumps(payload),
            status=200,
            mimetype="application/json",
        )

    @server.get("/__/ready")
    def readiness():  # type: ignore[override]
        # Nothing is preloaded; the process is ready once the layout exists.
        ready = app_instance.layout is not None
        payload = {"status": "ok" if ready else "unavailable"}
        return server.response_class(
            response=json.dumps(payload),
            status=200 if ready else 503,
            mimetype="application/json",
        )

    @server.errorhandler(403)
    def _forbidden(e): return {"error": "forbidden"}, 403

    @server.errorhandler(413)
    def _too_large(e): return {"error": f"upload exceeds {active_config.max_upload_mb} MB"}, 413

    @server.errorhandler(500)
    def _ise(e): return {"error": "internal server error"}, 500

    register_callbacks(app_instance, active_config)
    return app_instance


def main() -> None:
    """Run the Dash development server."""

    app.run(host="0.0.0.0", port=8050, debug=False)


app = create_app(CONFIG)
server = app.server


if __name__ == "__main__":
    main()

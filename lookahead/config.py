"""Application configuration and logging utilities."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass


_DEFAULT_CSP_SCRIPT_SRC = ("https://unpkg.com", "https://cdn.plot.ly")
_DEFAULT_CSP_STYLE_SRC = ("https://fonts.googleapis.com", "https://cdn.jsdelivr.net")
_DEFAULT_CSP_FONT_SRC = ("https://fonts.gstatic.com",)


def _parse_csv_env(name: str) -> tuple[str, ...]:
    """Parse a comma-separated environment variable into a tuple of values."""

    raw = os.getenv(name, "")
    if not raw:
        return ()
    parts: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip()
        if value:
            parts.append(value)
    return tuple(parts)


def _parse_int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        return default


@dataclass(frozen=True)
class AppConfig:
    """Immutable configuration sourced from environment variables or defaults."""

    # Security
    secret_key: str = os.getenv("SECRET_KEY", "change-me")

    # Runtime environment
    app_env: str = os.getenv("APP_ENV", "development")
    enable_https: bool = os.getenv("ENABLE_HTTPS", "0") == "1"
    behind_proxy: bool = os.getenv("BEHIND_PROXY", "0") == "1"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Lookahead window
    default_lookahead_weeks: int = _parse_int_env("LOOKAHEAD_WEEKS", 4)
    min_lookahead_weeks: int = 1
    max_lookahead_weeks: int = 26

    # Uploads
    max_upload_mb: int = _parse_int_env("MAX_UPLOAD_MB", 5)

    # CSP customisation
    csp_script_src: tuple[str, ...] = _DEFAULT_CSP_SCRIPT_SRC + _parse_csv_env("CSP_SCRIPT_SRC")
    csp_style_src: tuple[str, ...] = _DEFAULT_CSP_STYLE_SRC + _parse_csv_env("CSP_STYLE_SRC")
    csp_font_src: tuple[str, ...] = _DEFAULT_CSP_FONT_SRC + _parse_csv_env("CSP_FONT_SRC")
    csp_connect_src: tuple[str, ...] = _parse_csv_env("CSP_CONNECT_SRC")
    csp_img_src: tuple[str, ...] = _parse_csv_env("CSP_IMG_SRC")

    @property
    def max_content_length(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def clamp_weeks(self, value: object) -> int:
        """Coerce a lookahead length into the supported range.

        Blank, zero or non-numeric input falls back to the configured default
        before clamping, the same way the lookahead input box behaves.
        """

        try:
            weeks = int(float(value))  # type: ignore[arg-type]
        except (TypeError, ValueError, OverflowError):
            weeks = 0
        if not weeks:
            weeks = self.default_lookahead_weeks
        return max(self.min_lookahead_weeks, min(self.max_lookahead_weeks, weeks))

    def validate(self) -> None:
        """Ensure the lookahead bounds and upload limit are coherent."""

        if self.min_lookahead_weeks < 1 or self.min_lookahead_weeks > self.max_lookahead_weeks:
            raise ValueError(
                f"Lookahead bounds [{self.min_lookahead_weeks}, {self.max_lookahead_weeks}] are invalid."
            )
        if not self.min_lookahead_weeks <= self.default_lookahead_weeks <= self.max_lookahead_weeks:
            raise ValueError(
                f"LOOKAHEAD_WEEKS={self.default_lookahead_weeks} must lie within "
                f"[{self.min_lookahead_weeks}, {self.max_lookahead_weeks}]."
            )
        if self.max_upload_mb <= 0:
            raise ValueError(f"MAX_UPLOAD_MB must be positive, got {self.max_upload_mb}.")


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure root logging once for the application."""

    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.debug("Logging already configured; skipping reconfiguration.")
        return

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

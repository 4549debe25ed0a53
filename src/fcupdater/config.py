"""Runtime settings read from ``FCUPDATER_*`` environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _read_bounded_int(
    environ: Mapping[str, str], name: str, default: int, maximum: int | None = None
) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer); using %d", name, raw, default)
        return default
    if value <= 0:
        return default
    if maximum is not None and value > maximum:
        logger.warning("Clamping %s=%d to %d", name, value, maximum)
        return maximum
    return value


def _read_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() in _TRUTHY


def _read_timeout(environ: Mapping[str, str], name: str) -> float | None:
    """Seconds as a float; ``None`` means no limit (unset, blank, 0, invalid)."""
    raw = environ.get(name, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not a number); no timeout applied", name, raw)
        return None
    return value if value > 0 else None


@dataclass(frozen=True)
class Settings:
    source_header_scan_rows: int = 200
    master_header_scan_rows: int = 200
    changelog_header_scan_rows: int = 30
    changelog_header_scan_cols: int = 60
    changelog_style_template_row: int = 243
    cp949_strict: bool = False
    durability_strict: bool = False
    command_timeout: float | None = None
    decoder_timeout: float | None = None
    decoder_helper: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        helper = env.get("FCUPDATER_DECODER_HELPER", "").strip() or None
        return cls(
            source_header_scan_rows=_read_bounded_int(
                env, "FCUPDATER_SOURCE_HEADER_SCAN_ROWS", 200, 10_000
            ),
            master_header_scan_rows=_read_bounded_int(
                env, "FCUPDATER_MASTER_HEADER_SCAN_ROWS", 200, 20_000
            ),
            changelog_header_scan_rows=_read_bounded_int(
                env, "FCUPDATER_CHANGELOG_HEADER_SCAN_ROWS", 30, 1_000
            ),
            changelog_header_scan_cols=_read_bounded_int(
                env, "FCUPDATER_CHANGELOG_HEADER_SCAN_COLS", 60, 500
            ),
            changelog_style_template_row=_read_bounded_int(
                env, "FCUPDATER_CHANGELOG_STYLE_TEMPLATE_ROW", 243
            ),
            cp949_strict=_read_flag(env, "FCUPDATER_CP949_STRICT"),
            durability_strict=_read_flag(env, "FCUPDATER_DURABILITY_STRICT"),
            command_timeout=_read_timeout(env, "FCUPDATER_COMMAND_TIMEOUT_SECS"),
            decoder_timeout=_read_timeout(env, "FCUPDATER_DECODER_TIMEOUT_SECS"),
            decoder_helper=helper,
        )

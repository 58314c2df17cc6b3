"""
Centralized configuration for the analytics function.
All environment-derived settings are defined here and imported by modules.
"""
from __future__ import annotations

import os
from typing import Set

import yaml


def _load_yaml_defaults() -> dict:
    val = os.getenv("USE_CONFIG_YAML_LOCAL", "0").lower()
    if val not in ("1", "true", "yes", "y", "on"):
        return {}
    cfg_path = os.getenv("ANALYTICS_CONFIG_PATH") or os.path.join(
        os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "config.yaml"
    )
    if not os.path.exists(cfg_path):
        return {}
    try:
        with open(cfg_path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError):
        return {}
    d = dict(data.get("default", {}) or {})
    a = dict(data.get("analytics", {}) or {})
    merged = {}
    merged.update({str(k).upper(): v for k, v in d.items()})
    merged.update({str(k).upper(): v for k, v in a.items()})
    return merged


_YAML_DEFAULTS = _load_yaml_defaults()


def _getenv(key: str, default: str) -> str:
    v = os.getenv(key)
    if v is not None:
        return v
    if _YAML_DEFAULTS:
        yv = _YAML_DEFAULTS.get(key)
        if yv is not None:
            return str(yv)
    return default


def _env_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key)
    if val is None:
        val = str(_YAML_DEFAULTS.get(key)) if _YAML_DEFAULTS.get(key) is not None else None
        if val is None:
            return default
    return str(val).lower() in ("1", "true", "yes", "y", "on")


# ---------------------------------------------------------------------------
# Query engine
# ---------------------------------------------------------------------------
DEFAULT_LIMIT: int = int(_getenv("DEFAULT_LIMIT", "10"))
LIST_LIMIT: int = int(_getenv("LIST_LIMIT", "50"))
TYPE_SAMPLE_SIZE: int = int(_getenv("TYPE_SAMPLE_SIZE", "5"))

# ---------------------------------------------------------------------------
# Data sources
# ---------------------------------------------------------------------------
DATA_DIR: str = _getenv("DATA_DIR", os.path.join(os.getcwd(), "data"))
PAGE_SIZE: int = int(_getenv("PAGE_SIZE", "1000"))
MAX_ROWS: int = int(_getenv("MAX_ROWS", "50000"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = _getenv("LOG_LEVEL", "INFO").upper()
LOG_QUERIES: bool = _env_bool("LOG_QUERIES", False)

# CORS
ALLOWED_ORIGINS: Set[str] = {
    o.strip()
    for o in (_getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:5173,http://localhost:8080",
    ) or "").split(",")
    if o and o.strip()
}


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
def validate_config(logger=None) -> list[str]:
    """Validate key configuration values and optionally log warnings.

    Returns a list of warning messages.
    """
    issues: list[str] = []

    def _warn(msg: str) -> None:
        issues.append(msg)
        if logger is not None and hasattr(logger, "warning"):
            logger.warning(msg)

    for name, val in (
        ("DEFAULT_LIMIT", DEFAULT_LIMIT),
        ("LIST_LIMIT", LIST_LIMIT),
        ("TYPE_SAMPLE_SIZE", TYPE_SAMPLE_SIZE),
        ("PAGE_SIZE", PAGE_SIZE),
        ("MAX_ROWS", MAX_ROWS),
    ):
        if int(val) <= 0:
            _warn(f"{name} should be > 0 (got {val})")

    if MAX_ROWS and PAGE_SIZE > MAX_ROWS:
        _warn(f"PAGE_SIZE ({PAGE_SIZE}) exceeds MAX_ROWS ({MAX_ROWS}); a single page will be truncated.")
    if not os.path.isdir(DATA_DIR):
        _warn(f"DATA_DIR does not exist: {DATA_DIR} (datasetId lookups will fail).")
    if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        _warn(f"LOG_LEVEL unusual: {LOG_LEVEL}")

    return issues

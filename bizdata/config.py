"""
bizdata configuration. All environment variables in one place.

Read from environment at import time. Never hardcode secrets.
"""

from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    return int(raw) if raw.strip() else default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    return float(raw) if raw.strip() else default


class Settings:
    """Application settings from environment variables."""

    # Backend selection: "embedded" (SQLite) or "gateway" (PostgREST)
    BACKEND: str = os.environ.get("BIZDATA_BACKEND", "embedded")

    # Embedded engine
    SQLITE_PATH: str = os.environ.get("SQLITE_PATH", "bizdata.db")

    # Remote gateway
    GATEWAY_URL: str = os.environ.get("GATEWAY_URL", "")
    GATEWAY_API_KEY: str = os.environ.get("GATEWAY_API_KEY", "")

    # Per-call timeout, applied to every individual backend request
    BACKEND_TIMEOUT_SECONDS: float = _float_env("BACKEND_TIMEOUT_SECONDS", 30.0)

    # Pagination
    DEFAULT_PAGE_SIZE: int = _int_env("DEFAULT_PAGE_SIZE", 20)
    FETCH_ALL_PAGE_SIZE: int = _int_env("FETCH_ALL_PAGE_SIZE", 1000)
    GATEWAY_BATCH_SIZE: int = _int_env("GATEWAY_BATCH_SIZE", 1000)

    # Analytics
    AGGREGATION_CONCURRENCY: int = _int_env("AGGREGATION_CONCURRENCY", 8)
    DEFAULT_REORDER_LEVEL: int = _int_env("DEFAULT_REORDER_LEVEL", 10)

    @property
    def uses_gateway(self) -> bool:
        return self.BACKEND == "gateway"


# Singleton instance
settings = Settings()

if settings.BACKEND not in ("embedded", "gateway"):
    raise RuntimeError(f"BIZDATA_BACKEND must be 'embedded' or 'gateway', got {settings.BACKEND!r}")

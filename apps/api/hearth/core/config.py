"""
Process configuration (environment variables).

Defaults:
- APP_VERSION: 0.1.0
- RECORD_STORE: fs (fs|sql)
- BRANCH_MAX_DEPTH: 100
- BRANCH_MAX_MESSAGES: 10000
- PROVIDER_TIMEOUT_S: 120

Per-request application settings (active connection, persona, chat options)
live in the record store, see hearth.modules.settings.
"""
from __future__ import annotations

import os

DEFAULT_BRANCH_MAX_DEPTH = 100
DEFAULT_BRANCH_MAX_MESSAGES = 10_000
DEFAULT_PROVIDER_TIMEOUT_S = 120.0


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        v = int(raw)
    except ValueError:
        return default
    return v if v > 0 else default


def get_app_version() -> str:
    return os.getenv("APP_VERSION", "0.1.0")


def get_record_store_kind() -> str:
    v = (os.getenv("RECORD_STORE") or "fs").strip().lower()
    return v if v in ("fs", "sql") else "fs"


def get_branch_max_depth() -> int:
    return _int_env("BRANCH_MAX_DEPTH", DEFAULT_BRANCH_MAX_DEPTH)


def get_branch_max_messages() -> int:
    return _int_env("BRANCH_MAX_MESSAGES", DEFAULT_BRANCH_MAX_MESSAGES)


def get_provider_timeout() -> float:
    raw = os.getenv("PROVIDER_TIMEOUT_S")
    if not raw:
        return DEFAULT_PROVIDER_TIMEOUT_S
    try:
        return max(float(raw), 1.0)
    except ValueError:
        return DEFAULT_PROVIDER_TIMEOUT_S

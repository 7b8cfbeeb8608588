from __future__ import annotations

import os

from src.api.routers.titles_config import (
    ledger_node_identity,
    ledger_postgres_dsn,
    ledger_store_backend_name,
)

_PRODUCTION_PROFILE = "PRODUCTION"
_LOCAL_PROFILE = "LOCAL"


def app_persistence_profile_name() -> str:
    profile = os.getenv("APP_PERSISTENCE_PROFILE", _LOCAL_PROFILE).strip().upper()
    return _PRODUCTION_PROFILE if profile == _PRODUCTION_PROFILE else _LOCAL_PROFILE


def validate_persistence_profile_guardrails() -> None:
    ledger_node_identity()
    if app_persistence_profile_name() != _PRODUCTION_PROFILE:
        return
    if ledger_store_backend_name() != "POSTGRES":
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_LEDGER_POSTGRES")
    if not ledger_postgres_dsn():
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_LEDGER_POSTGRES_DSN")
    if not os.getenv("LEDGER_NODE_IDENTITY", "").strip():
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_LEDGER_NODE_IDENTITY")

import os
import warnings
from typing import cast

from src.api.routers.runtime_utils import env_positive_float
from src.core.titles.models import LedgerParty
from src.core.titles.store import DEFAULT_QUERY_TIMEOUT_SECONDS, LedgerContext, LedgerStore
from src.infrastructure.ledger import InMemoryLedgerStore, PostgresLedgerStore

DEFAULT_NODE_IDENTITY = "O=Conveyancer, L=London, C=GB"


def ledger_store_backend_name() -> str:
    backend = os.getenv("LEDGER_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend in {"POSTGRES", "IN_MEMORY"}:
        return backend
    warnings.warn(
        f"LEDGER_STORE_BACKEND value {backend!r} is not recognised; falling back to IN_MEMORY.",
        DeprecationWarning,
        stacklevel=2,
    )
    return "IN_MEMORY"


def ledger_postgres_dsn() -> str:
    return os.getenv("LEDGER_POSTGRES_DSN", "").strip()


def ledger_node_identity() -> LedgerParty:
    name = os.getenv("LEDGER_NODE_IDENTITY", "").strip() or DEFAULT_NODE_IDENTITY
    try:
        return LedgerParty.parse(name)
    except ValueError as exc:
        raise RuntimeError("LEDGER_NODE_IDENTITY_INVALID") from exc


def ledger_query_timeout_seconds() -> float:
    return env_positive_float("LEDGER_QUERY_TIMEOUT_SECONDS", DEFAULT_QUERY_TIMEOUT_SECONDS)


def ledger_listener_poll_seconds() -> float:
    return env_positive_float("LEDGER_LISTENER_POLL_SECONDS", 2.0)


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        TypeError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_store() -> LedgerStore:
    backend = ledger_store_backend_name()
    identity = ledger_node_identity()
    if backend == "POSTGRES":
        dsn = ledger_postgres_dsn()
        if not dsn:
            raise RuntimeError("LEDGER_POSTGRES_DSN_REQUIRED")
        try:
            return cast(
                LedgerStore,
                PostgresLedgerStore(
                    dsn=dsn,
                    identity=identity,
                    poll_interval_seconds=ledger_listener_poll_seconds(),
                ),
            )
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("LEDGER_POSTGRES_CONNECTION_FAILED") from exc
    return cast(LedgerStore, InMemoryLedgerStore(identity=identity))


def build_context(store: LedgerStore) -> LedgerContext:
    return LedgerContext(
        store=store,
        participant=store.node_identity(),
        query_timeout_seconds=ledger_query_timeout_seconds(),
    )

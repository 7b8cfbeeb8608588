import json
import threading
import uuid
from contextlib import closing
from datetime import datetime, timezone
from importlib.util import find_spec
from typing import Any, Iterator, Optional

from src.core.titles.models import LedgerEntityType, LedgerParty
from src.core.titles.store import (
    DEFAULT_QUERY_TIMEOUT_SECONDS,
    LedgerFeed,
    LedgerStateRecord,
    LedgerStoreError,
    LedgerStoreTimeoutError,
)
from src.infrastructure.postgres_migrations import apply_postgres_migrations


class PostgresLedgerStore:
    """Reads the ledger node's vault tables and writes workflow actions to its outbox."""

    def __init__(
        self,
        *,
        dsn: str,
        identity: LedgerParty,
        poll_interval_seconds: float = 2.0,
    ) -> None:
        if not dsn:
            raise RuntimeError("LEDGER_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("LEDGER_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._identity = identity
        self._poll_interval_seconds = poll_interval_seconds
        self._init_db()

    def query_unconsumed(
        self,
        *,
        entity_type: LedgerEntityType,
        participant: LedgerParty,
        timeout_seconds: float,
    ) -> list[LedgerStateRecord]:
        query = """
            SELECT
                storage_index,
                entity_type,
                state_json,
                recorded_at
            FROM ledger_states
            WHERE entity_type = %s
              AND state_status = 'UNCONSUMED'
              AND %s = ANY(participants)
            ORDER BY storage_index DESC
        """
        rows = self._fetchall(
            query, (entity_type, participant.x500_name), timeout_seconds=timeout_seconds
        )
        return [_to_record(row) for row in rows]

    def submit_workflow_action(self, *, action_type: str, arguments: dict[str, Any]) -> None:
        query = """
            INSERT INTO ledger_workflow_actions (
                action_id,
                action_type,
                arguments_json,
                submitted_at
            ) VALUES (%s, %s, %s, %s)
        """
        psycopg, _ = _import_psycopg()
        try:
            connection_cm = closing(self._connect(timeout_seconds=DEFAULT_QUERY_TIMEOUT_SECONDS))
            with connection_cm as connection:
                connection.execute(
                    query,
                    (
                        f"lwa_{uuid.uuid4().hex[:12]}",
                        action_type,
                        json.dumps(arguments, sort_keys=True),
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                connection.commit()
        except psycopg.errors.QueryCanceled as exc:
            raise LedgerStoreTimeoutError("LEDGER_QUERY_TIMEOUT") from exc
        except psycopg.Error as exc:
            raise LedgerStoreError("LEDGER_STORE_UNAVAILABLE") from exc

    def subscribe_live_updates(
        self, *, entity_type: LedgerEntityType, participant: LedgerParty
    ) -> LedgerFeed:
        snapshot = self.query_unconsumed(
            entity_type=entity_type,
            participant=participant,
            timeout_seconds=DEFAULT_QUERY_TIMEOUT_SECONDS,
        )
        high_water = self._fetchall(
            "SELECT COALESCE(MAX(storage_index), -1) AS max_index FROM ledger_states",
            (),
            timeout_seconds=DEFAULT_QUERY_TIMEOUT_SECONDS,
        )
        closed = threading.Event()
        start_after = int(high_water[0]["max_index"]) if high_water else -1
        return LedgerFeed(
            snapshot=snapshot,
            updates=self._poll_produced(
                entity_type=entity_type,
                participant=participant,
                start_after=start_after,
                closed=closed,
            ),
            close=closed.set,
        )

    def node_identity(self) -> LedgerParty:
        return self._identity.model_copy(deep=True)

    def network_map(self) -> list[LedgerParty]:
        rows = self._fetchall(
            "SELECT x500_name FROM ledger_network_map ORDER BY x500_name ASC",
            (),
            timeout_seconds=DEFAULT_QUERY_TIMEOUT_SECONDS,
        )
        return [LedgerParty.parse(str(row["x500_name"])) for row in rows]

    def _poll_produced(
        self,
        *,
        entity_type: LedgerEntityType,
        participant: LedgerParty,
        start_after: int,
        closed: threading.Event,
    ) -> Iterator[list[LedgerStateRecord]]:
        query = """
            SELECT
                storage_index,
                entity_type,
                state_json,
                recorded_at
            FROM ledger_states
            WHERE entity_type = %s
              AND %s = ANY(participants)
              AND storage_index > %s
            ORDER BY storage_index ASC
        """
        last_seen = start_after
        while not closed.is_set():
            rows = self._fetchall(
                query,
                (entity_type, participant.x500_name, last_seen),
                timeout_seconds=DEFAULT_QUERY_TIMEOUT_SECONDS,
            )
            if rows:
                batch = [_to_record(row) for row in rows]
                last_seen = batch[-1].storage_index
                yield batch
            closed.wait(self._poll_interval_seconds)

    def _fetchall(self, query: str, args: tuple, *, timeout_seconds: float) -> list[dict]:
        psycopg, _ = _import_psycopg()
        try:
            with closing(self._connect(timeout_seconds=timeout_seconds)) as connection:
                return list(connection.execute(query, args).fetchall())
        except psycopg.errors.QueryCanceled as exc:
            raise LedgerStoreTimeoutError("LEDGER_QUERY_TIMEOUT") from exc
        except psycopg.Error as exc:
            raise LedgerStoreError("LEDGER_STORE_UNAVAILABLE") from exc

    def _connect(self, *, timeout_seconds: float):
        psycopg, dict_row = _import_psycopg()
        statement_timeout_ms = max(int(timeout_seconds * 1000), 1)
        return psycopg.connect(
            self._dsn,
            row_factory=dict_row,
            connect_timeout=max(int(timeout_seconds), 1),
            options=f"-c statement_timeout={statement_timeout_ms}",
        )

    def _init_db(self) -> None:
        with closing(self._connect(timeout_seconds=DEFAULT_QUERY_TIMEOUT_SECONDS)) as connection:
            apply_postgres_migrations(connection=connection, namespace="ledger")


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row


def _to_record(row: dict) -> LedgerStateRecord:
    return LedgerStateRecord(
        entity_type=row["entity_type"],
        payload=json.loads(row["state_json"]),
        recorded_at=_optional_datetime(row["recorded_at"]),
        storage_index=int(row["storage_index"]),
    )


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)

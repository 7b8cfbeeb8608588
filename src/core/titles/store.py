from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator, Optional, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from src.core.titles.models import ENTITY_MODELS, LedgerEntityType, LedgerParty, VersionedRecord

S = TypeVar("S", bound=BaseModel)
K = TypeVar("K")

DEFAULT_QUERY_TIMEOUT_SECONDS = 10.0


class LedgerStoreError(Exception):
    pass


class LedgerStoreTimeoutError(LedgerStoreError):
    pass


@dataclass(frozen=True)
class LedgerStateRecord:
    entity_type: LedgerEntityType
    payload: dict[str, Any]
    recorded_at: Optional[datetime]
    storage_index: int


@dataclass
class LedgerFeed:
    snapshot: list[LedgerStateRecord]
    updates: Iterator[list[LedgerStateRecord]]
    close: Callable[[], None] = field(default=lambda: None)


class LedgerStore(Protocol):
    def query_unconsumed(
        self,
        *,
        entity_type: LedgerEntityType,
        participant: LedgerParty,
        timeout_seconds: float,
    ) -> list[LedgerStateRecord]: ...

    def submit_workflow_action(self, *, action_type: str, arguments: dict[str, Any]) -> None: ...

    def subscribe_live_updates(
        self, *, entity_type: LedgerEntityType, participant: LedgerParty
    ) -> LedgerFeed: ...

    def node_identity(self) -> LedgerParty: ...

    def network_map(self) -> list[LedgerParty]: ...


@dataclass(frozen=True)
class LedgerContext:
    """Explicit handle for one ledger identity talking to one store.

    Every adapter call receives the context instead of reaching for a
    module-level connection, so the participant and timeout a query runs
    under are always visible at the call site.
    """

    store: LedgerStore
    participant: LedgerParty
    query_timeout_seconds: float = DEFAULT_QUERY_TIMEOUT_SECONDS


def parse_state(entity_type: LedgerEntityType, payload: dict[str, Any]) -> BaseModel:
    model = ENTITY_MODELS.get(entity_type)
    if model is None:
        raise LedgerStoreError(f"LEDGER_ENTITY_TYPE_UNSUPPORTED:{entity_type}")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise LedgerStoreError(f"LEDGER_STATE_MALFORMED:{entity_type}") from exc


def fetch_records(
    context: LedgerContext,
    entity_type: LedgerEntityType,
    predicate: Optional[Callable[[S], bool]] = None,
    *,
    title_number: Optional[str] = None,
) -> list[VersionedRecord[S]]:
    """Return unconsumed records of ``entity_type`` visible to the context participant.

    Records keep the store order (descending storage index). ``title_number``
    is matched against the raw payload before validation, so only rows for
    that title are parsed. ``predicate`` is applied to the parsed states.
    """
    rows = context.store.query_unconsumed(
        entity_type=entity_type,
        participant=context.participant,
        timeout_seconds=context.query_timeout_seconds,
    )
    records: list[VersionedRecord[S]] = []
    for row in rows:
        if title_number is not None and row.payload.get("title_id") != title_number:
            continue
        state = parse_state(entity_type, row.payload)
        if predicate is not None and not predicate(state):
            continue
        records.append(VersionedRecord(state=state, recorded_at=row.recorded_at))
    return records


def group_records(
    records: Iterable[VersionedRecord[S]],
    index: Optional[Callable[[S], K]] = None,
) -> dict[K, list[VersionedRecord[S]]]:
    key_of = index or (lambda state: state.title_id)
    grouped: dict[K, list[VersionedRecord[S]]] = {}
    for record in records:
        grouped.setdefault(key_of(record.state), []).append(record)
    return grouped

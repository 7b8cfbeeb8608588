import queue
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Iterable, Iterator, Optional

from src.core.titles.models import LedgerEntityType, LedgerParty
from src.core.titles.store import LedgerFeed, LedgerStateRecord, LedgerStore

_CLOSED = object()


@dataclass
class _StoredState:
    record: LedgerStateRecord
    participants: frozenset[str]
    consumed: bool = False


@dataclass
class _Subscription:
    entity_type: LedgerEntityType
    participant: str
    updates: "queue.Queue[Any]"


class InMemoryLedgerStore(LedgerStore):
    def __init__(
        self,
        *,
        identity: LedgerParty,
        peers: Optional[Iterable[LedgerParty]] = None,
    ) -> None:
        self._lock = Lock()
        self._identity = identity
        self._peers = list(peers or [])
        self._states: list[_StoredState] = []
        self._actions: list[tuple[str, dict[str, Any]]] = []
        self._subscriptions: list[_Subscription] = []

    def record(
        self,
        entity_type: LedgerEntityType,
        payload: dict[str, Any],
        *,
        participants: Optional[Iterable[LedgerParty]] = None,
        recorded_at: Optional[datetime] = None,
    ) -> LedgerStateRecord:
        """Append a new version and consume the previous unconsumed one with the same linear id."""
        parties = participants if participants is not None else [self._identity]
        names = frozenset(party.x500_name for party in parties)
        with self._lock:
            linear_id = payload.get("linear_id")
            if linear_id is not None:
                for stored in self._states:
                    if (
                        not stored.consumed
                        and stored.record.entity_type == entity_type
                        and stored.record.payload.get("linear_id") == linear_id
                    ):
                        stored.consumed = True
            record = LedgerStateRecord(
                entity_type=entity_type,
                payload=deepcopy(payload),
                recorded_at=recorded_at,
                storage_index=len(self._states),
            )
            self._states.append(_StoredState(record=record, participants=names))
            subscribers = [
                subscription
                for subscription in self._subscriptions
                if subscription.entity_type == entity_type and subscription.participant in names
            ]
        for subscription in subscribers:
            subscription.updates.put([deepcopy(record)])
        return deepcopy(record)

    def query_unconsumed(
        self,
        *,
        entity_type: LedgerEntityType,
        participant: LedgerParty,
        timeout_seconds: float,
    ) -> list[LedgerStateRecord]:
        name = participant.x500_name
        with self._lock:
            rows = [
                stored.record
                for stored in self._states
                if not stored.consumed
                and stored.record.entity_type == entity_type
                and name in stored.participants
            ]
            rows = sorted(rows, key=lambda row: row.storage_index, reverse=True)
            return [deepcopy(row) for row in rows]

    def submit_workflow_action(self, *, action_type: str, arguments: dict[str, Any]) -> None:
        with self._lock:
            self._actions.append((action_type, deepcopy(arguments)))

    def submitted_actions(self) -> list[tuple[str, dict[str, Any]]]:
        with self._lock:
            return deepcopy(self._actions)

    def subscribe_live_updates(
        self, *, entity_type: LedgerEntityType, participant: LedgerParty
    ) -> LedgerFeed:
        subscription = _Subscription(
            entity_type=entity_type,
            participant=participant.x500_name,
            updates=queue.Queue(),
        )
        with self._lock:
            self._subscriptions.append(subscription)
        snapshot = self.query_unconsumed(
            entity_type=entity_type, participant=participant, timeout_seconds=0
        )

        def _close() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)
            subscription.updates.put(_CLOSED)

        return LedgerFeed(snapshot=snapshot, updates=_drain(subscription), close=_close)

    def publish_empty_update(self, entity_type: LedgerEntityType) -> None:
        with self._lock:
            subscribers = [s for s in self._subscriptions if s.entity_type == entity_type]
        for subscription in subscribers:
            subscription.updates.put([])

    def node_identity(self) -> LedgerParty:
        return self._identity.model_copy(deep=True)

    def network_map(self) -> list[LedgerParty]:
        return [party.model_copy(deep=True) for party in [self._identity, *self._peers]]


def _drain(subscription: _Subscription) -> Iterator[list[LedgerStateRecord]]:
    while True:
        batch = subscription.updates.get()
        if batch is _CLOSED:
            return
        yield batch

import logging
import threading
from typing import Callable, Optional

from src.core.titles.models import LedgerEntityType, LedgerParty
from src.core.titles.store import LedgerFeed, LedgerStateRecord, LedgerStore

logger = logging.getLogger(__name__)

RecordHandler = Callable[[LedgerStateRecord], None]


def log_produced_record(record: LedgerStateRecord) -> None:
    if record.entity_type == "INSTRUCT_CONVEYANCER":
        logger.info(
            "ledger.instruct_conveyancer.received",
            extra={
                "extra_fields": {
                    "storage_index": record.storage_index,
                    "title_number": record.payload.get("title_id"),
                }
            },
        )
        return
    logger.info(
        "ledger.update.unknown_state",
        extra={"extra_fields": {"entity_type": record.entity_type}},
    )


class LedgerUpdateListener:
    """Follows the live update feed for one entity type on a background thread.

    A failure while following the feed is logged and ends the listener; it
    never reaches request handling.
    """

    def __init__(
        self,
        *,
        store: LedgerStore,
        participant: LedgerParty,
        entity_type: LedgerEntityType = "INSTRUCT_CONVEYANCER",
        handler: Optional[RecordHandler] = None,
    ) -> None:
        self._store = store
        self._participant = participant
        self._entity_type = entity_type
        self._handler = handler or log_produced_record
        self._feed: Optional[LedgerFeed] = None
        self._thread: Optional[threading.Thread] = None
        self._stopping = threading.Event()
        self.failure: Optional[BaseException] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"ledger-listener-{self._entity_type.lower()}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stopping.set()
        if self._feed is not None:
            self._feed.close()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        try:
            self._feed = self._store.subscribe_live_updates(
                entity_type=self._entity_type, participant=self._participant
            )
            if self._stopping.is_set():
                self._feed.close()
            logger.info(
                "ledger.listener.started",
                extra={
                    "extra_fields": {
                        "entity_type": self._entity_type,
                        "snapshot_size": len(self._feed.snapshot),
                    }
                },
            )
            for batch in self._feed.updates:
                if self._stopping.is_set():
                    break
                self.process_batch(batch)
        except Exception as exc:
            self.failure = exc
            logger.exception(
                "ledger.listener.failed",
                extra={"extra_fields": {"entity_type": self._entity_type}},
            )
        finally:
            logger.info(
                "ledger.listener.stopped",
                extra={"extra_fields": {"entity_type": self._entity_type}},
            )

    def process_batch(self, batch: list[LedgerStateRecord]) -> None:
        if not batch:
            logger.warning(
                "ledger.update.empty",
                extra={"extra_fields": {"entity_type": self._entity_type}},
            )
            return
        logger.info(
            "ledger.update.received",
            extra={"extra_fields": {"entity_type": self._entity_type, "produced": len(batch)}},
        )
        for record in batch:
            self._handler(record)

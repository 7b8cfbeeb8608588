from src.infrastructure.ledger.in_memory import InMemoryLedgerStore
from src.infrastructure.ledger.postgres import PostgresLedgerStore

__all__ = ["InMemoryLedgerStore", "PostgresLedgerStore"]

from __future__ import annotations

from dataclasses import dataclass
from importlib.util import find_spec
from typing import Optional

from src.api.persistence_profile import (
    app_persistence_profile_name,
    validate_persistence_profile_guardrails,
)
from src.api.routers.titles_config import ledger_postgres_dsn
from src.infrastructure.postgres_migrations import (
    applied_migration_versions,
    expected_migration_versions,
)

LEDGER_MIGRATION_NAMESPACE = "ledger"


@dataclass(frozen=True)
class LedgerMigrationStatus:
    expected: list[str]
    applied: list[str]

    @property
    def missing(self) -> list[str]:
        return sorted(set(self.expected) - set(self.applied))

    @property
    def unknown(self) -> list[str]:
        """Versions recorded in the vault database that no checked-in file provides."""
        return sorted(set(self.applied) - set(self.expected))


def ledger_migration_status(dsn: Optional[str] = None) -> LedgerMigrationStatus:
    resolved_dsn = dsn or ledger_postgres_dsn()
    if not resolved_dsn:
        raise RuntimeError("CUTOVER_POSTGRES_DSN_REQUIRED")
    if find_spec("psycopg") is None:
        raise RuntimeError("CUTOVER_POSTGRES_DRIVER_MISSING")
    import psycopg
    from psycopg.rows import dict_row

    expected_versions = expected_migration_versions(namespace=LEDGER_MIGRATION_NAMESPACE)
    with psycopg.connect(resolved_dsn, row_factory=dict_row) as connection:
        applied_versions = applied_migration_versions(
            connection=connection, namespace=LEDGER_MIGRATION_NAMESPACE
        )
    return LedgerMigrationStatus(expected=expected_versions, applied=applied_versions)


def validate_cutover_migrations_applied() -> LedgerMigrationStatus:
    status = ledger_migration_status()
    if status.missing:
        raise RuntimeError(
            f"CUTOVER_MIGRATION_MISSING:{LEDGER_MIGRATION_NAMESPACE}:{status.missing[0]}"
        )
    return status


def validate_production_cutover_contract(
    *, check_migrations: bool
) -> Optional[LedgerMigrationStatus]:
    if app_persistence_profile_name() != "PRODUCTION":
        raise RuntimeError("CUTOVER_PROFILE_NOT_PRODUCTION")
    validate_persistence_profile_guardrails()
    if check_migrations:
        return validate_cutover_migrations_applied()
    return None

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

MIGRATIONS_ROOT = Path(__file__).with_name("postgres_migrations")


@dataclass(frozen=True)
class PostgresMigration:
    version: str
    sql_path: Path
    checksum: str


def apply_postgres_migrations(*, connection: Any, namespace: str) -> list[str]:
    """Apply pending forward-only migrations for ``namespace`` under an advisory lock.

    Returns the versions applied by this call. A checksum drift on an already
    applied version aborts the run and rolls back.
    """
    lock_key = _migration_lock_key(namespace=namespace)
    connection.execute("SELECT pg_advisory_lock(%s::bigint)", (lock_key,))
    try:
        return _apply_migrations_locked(connection=connection, namespace=namespace)
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.execute("SELECT pg_advisory_unlock(%s::bigint)", (lock_key,))


def expected_migration_versions(*, namespace: str) -> list[str]:
    versions = [migration.version for migration in load_migrations(namespace=namespace)]
    if not versions:
        raise RuntimeError(f"POSTGRES_MIGRATIONS_EMPTY:{namespace}")
    return versions


def applied_migration_versions(*, connection: Any, namespace: str) -> list[str]:
    exists_row = connection.execute(
        "SELECT to_regclass('public.schema_migrations') AS regclass"
    ).fetchone()
    if not exists_row or exists_row["regclass"] is None:
        raise RuntimeError("POSTGRES_SCHEMA_MIGRATIONS_TABLE_MISSING")
    return sorted(_applied_checksums(connection=connection, namespace=namespace))


def load_migrations(*, namespace: str) -> list[PostgresMigration]:
    namespace_path = MIGRATIONS_ROOT / namespace
    if not namespace_path.exists():
        raise RuntimeError(f"POSTGRES_MIGRATIONS_NAMESPACE_NOT_FOUND:{namespace}")
    migrations: list[PostgresMigration] = []
    for sql_path in sorted(namespace_path.glob("*.sql")):
        sql = sql_path.read_text(encoding="utf-8")
        migrations.append(
            PostgresMigration(
                version=sql_path.stem.split("_", maxsplit=1)[0],
                sql_path=sql_path,
                checksum=hashlib.sha256(sql.encode("utf-8")).hexdigest(),
            )
        )
    return migrations


def _apply_migrations_locked(*, connection: Any, namespace: str) -> list[str]:
    migrations = load_migrations(namespace=namespace)
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            namespace TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at TEXT NOT NULL
        )
        """
    )
    applied = _applied_checksums(connection=connection, namespace=namespace)
    newly_applied: list[str] = []
    for migration in migrations:
        existing_checksum = applied.get(migration.version)
        if existing_checksum is not None:
            if existing_checksum != migration.checksum:
                raise RuntimeError(
                    f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{migration.version}"
                )
            continue
        for statement in migration.sql_path.read_text(encoding="utf-8").split(";"):
            if statement.strip():
                connection.execute(statement.strip())
        connection.execute(
            """
            INSERT INTO schema_migrations (
                version,
                namespace,
                checksum,
                applied_at
            ) VALUES (%s, %s, %s, %s)
            """,
            (
                f"{namespace}:{migration.version}",
                namespace,
                migration.checksum,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        newly_applied.append(migration.version)
    connection.commit()
    return newly_applied


def _applied_checksums(*, connection: Any, namespace: str) -> dict[str, str]:
    rows = connection.execute(
        """
        SELECT version, checksum
        FROM schema_migrations
        WHERE namespace = %s
        ORDER BY version ASC
        """,
        (namespace,),
    ).fetchall()
    applied: dict[str, str] = {}
    prefix = f"{namespace}:"
    for row in rows:
        stored_version = str(row["version"])
        version = stored_version.removeprefix(prefix)
        checksum = str(row["checksum"])
        existing_checksum = applied.get(version)
        if existing_checksum is not None and existing_checksum != checksum:
            raise RuntimeError(f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{version}")
        applied[version] = checksum
    return applied


def _migration_lock_key(*, namespace: str) -> int:
    digest = hashlib.sha256(namespace.encode("utf-8")).digest()[:8]
    return int.from_bytes(digest, byteorder="big", signed=True)

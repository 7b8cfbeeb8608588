import argparse
import os
import sys
from importlib.util import find_spec
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Apply forward-only PostgreSQL migrations for the ledger vault store."
    )
    parser.add_argument(
        "--ledger-dsn",
        default=os.getenv("LEDGER_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN for the ledger vault.",
    )
    args = parser.parse_args()

    if not args.ledger_dsn:
        raise RuntimeError("POSTGRES_MIGRATION_DSN_REQUIRED:ledger")
    if find_spec("psycopg") is None:
        raise RuntimeError("POSTGRES_MIGRATION_DRIVER_MISSING")
    import psycopg
    from psycopg.rows import dict_row

    from src.infrastructure.postgres_migrations import apply_postgres_migrations

    with psycopg.connect(args.ledger_dsn, row_factory=dict_row) as connection:
        applied = apply_postgres_migrations(connection=connection, namespace="ledger")
    print(f"Applied migrations for namespace=ledger versions={applied}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

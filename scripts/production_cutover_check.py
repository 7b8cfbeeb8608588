import argparse
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _print_status(status) -> None:
    print(f"ledger migrations applied={status.applied or '-'}")
    print(f"ledger migrations missing={status.missing or '-'}")
    if status.unknown:
        print(f"ledger migrations unknown={status.unknown}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Validate the ledger vault persistence contract before a production cutover."
    )
    parser.add_argument(
        "--check-migrations",
        action="store_true",
        help="Require every checked-in ledger migration to be applied.",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help=(
            "Only report applied and missing ledger migration versions. "
            "Exits non-zero while any are missing."
        ),
    )
    parser.add_argument(
        "--ledger-dsn",
        default=os.getenv("LEDGER_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN for the ledger vault, used with --status.",
    )
    args = parser.parse_args(argv)

    from src.api.production_cutover_contract import (
        ledger_migration_status,
        validate_production_cutover_contract,
    )

    if args.status:
        status = ledger_migration_status(args.ledger_dsn or None)
        _print_status(status)
        return 1 if status.missing else 0

    status = validate_production_cutover_contract(check_migrations=args.check_migrations)
    if status is not None:
        _print_status(status)
    print("Ledger production cutover validation passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

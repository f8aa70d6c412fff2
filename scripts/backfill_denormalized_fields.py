"""
Re-derive every denormalized field (department/position/leave type/employee
names, role names, role permission maps) from its source of truth.

Safe to run at any time; a second run over consistent data writes nothing.

Usage:
  python scripts/backfill_denormalized_fields.py
  python scripts/backfill_denormalized_fields.py --dry-run
  python scripts/backfill_denormalized_fields.py --page-size 200
"""
import argparse
import json
import sys
from pathlib import Path

# Add project root so hr_access is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from hr_access.core.logging import setup_logging
from hr_access.db.session import build_store
from hr_access.services.backfill_service import run_backfill


def main():
    parser = argparse.ArgumentParser(description="Backfill denormalized fields")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
    parser.add_argument("--page-size", type=int, default=None, help="Documents fetched per query")
    args = parser.parse_args()

    setup_logging()
    # Inline so cascaded updates finish before the process exits
    store = build_store(mode="inline")
    summary = run_backfill(store, page_size=args.page_size, dry_run=args.dry_run)

    print(json.dumps(summary.to_dict(), indent=2))
    if args.dry_run:
        print("Dry run: nothing written.")
    else:
        print("Done.")
    return 1 if summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())

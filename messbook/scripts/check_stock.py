"""
Check stock items for totals that disagree with quantity x unit cost

Run after a PartialLedgerFailure or a hand edit of stockItems/sheet.csv:

    python -m messbook.scripts.check_stock            # report only
    python -m messbook.scripts.check_stock --fix      # rewrite bad items
"""
import argparse
from pathlib import Path
from messbook.core.config import settings
from messbook.core.logging_config import configure_logging
from messbook.services.ledger import LedgerCoordinator
from messbook.store.collection import Storage


def check_stock(data_root: Path, fix: bool = False) -> int:
    """Print inconsistent stock items; returns how many were found"""
    ledger = LedgerCoordinator(Storage(data_root))
    problems = ledger.reconcile_stock(fix=fix)

    if not problems:
        print("All stock items are consistent")
        return 0

    print(f"Found {len(problems)} inconsistent stock items")
    for p in problems:
        print(
            f"  {p['itemName']} ({p['id']}): qty={p['currentQuantity']} "
            f"unitCost={p['lastUnitCost']} totalCost={p['totalCost']} "
            f"expected={p['expectedTotalCost']}"
        )
    if fix:
        print("Fixed")
    return len(problems)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--data-root", type=Path, default=settings.data_root)
    parser.add_argument("--fix", action="store_true", help="rewrite inconsistent items")
    args = parser.parse_args(argv)

    configure_logging(settings.log_level)
    found = check_stock(args.data_root, fix=args.fix)
    return 1 if found and not args.fix else 0


if __name__ == "__main__":
    raise SystemExit(main())

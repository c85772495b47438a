#!/usr/bin/env python3
"""Household Budget CLI - monthly summary, bills, sealing and bank sync."""
import argparse
import sys
import logging
from pathlib import Path

from household_budget.api.budget_service import BudgetService
from household_budget.errors import BudgetError


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S"
    )


def _service(args) -> BudgetService:
    return BudgetService(db_path=Path(args.db) if args.db else None)


def cmd_summary(args):
    """Show the summary for a month."""
    with _service(args) as service:
        s = service.get_summary(args.month)

        print("=" * 50)
        print(f"BUDGET SUMMARY {s['month']}{'  (sealed)' if s['is_sealed'] else ''}")
        print("=" * 50)
        print(f"\nIncome:             ${s['income']:,.2f}")
        print(f"Bills expected:     ${s['bills_expected_total']:,.2f}"
              f"  ({s['bills_paid_count']}/{s['bills_total_count']} paid)")
        print(f"Everything else:    ${s['everything_else']:,.2f}")
        print(f"Savings target:     ${s['savings_target']:,.2f}")
        print(f"Remaining cash:     ${s['remaining_cash']:,.2f}")
        print(f"\nTransactions:       {s['transaction_count']}")
        print(f"Uncategorized:      {s['uncategorized_count']}")

        if s["fund_balances"]:
            print("\n" + "-" * 50)
            print("FUNDS")
            print("-" * 50)
            for f in s["fund_balances"]:
                print(f"  {f['name']:20s}  ${f['balance']:10,.2f}")

    return 0


def cmd_bills(args):
    """List bills for a month."""
    with _service(args) as service:
        bills = service.list_bills(args.month)

        if not bills:
            print("No bills for this month.")
            return 0

        for b in bills:
            status = "paid" if b["is_paid"] else "due"
            paid = f"${b['paid_amount']:,.2f}" if b["paid_amount"] is not None else "-"
            print(f"  {b['name']:20s}  ${b['expected_amount']:10,.2f}  {paid:>12s}  {status}")

    return 0


def cmd_copy_bills(args):
    """Copy last month's bills into a month."""
    with _service(args) as service:
        result = service.copy_last_month_bills(args.month)

        print(f"Copied bills from {result['previous_month']} to {result['month']}:")
        print(f"  Updated:  {result['updated']}")
        print(f"  Inserted: {result['inserted']}")
        print(f"  Deleted:  {result['deleted']}")

    return 0


def _parse_allocations(pairs):
    allocations = []
    for pair in pairs:
        fund_id, sep, amount = pair.partition("=")
        if not sep:
            raise BudgetError(f"Allocation must be FUND_ID=AMOUNT, got {pair!r}")
        allocations.append({"fund_id": fund_id, "amount": amount})
    return allocations


def cmd_seal(args):
    """Seal a month, allocating its savings into funds."""
    with _service(args) as service:
        if args.allocations:
            allocations = _parse_allocations(args.allocations)
        else:
            proposal = service.get_default_allocations(args.month)
            allocations = [
                {"fund_id": a["fund_id"], "amount": a["amount"]} for a in proposal["allocations"]
            ]

        result = service.seal_month(args.month, allocations)

        print(f"Sealed {result['month']}")
        for a in result["allocations"]:
            print(f"  {a['fund_id']:30s}  ${a['amount']:10,.2f}")

    return 0


def cmd_sync(args):
    """Import balances and transactions from SimpleFIN."""
    with _service(args) as service:
        result = service.sync()

        print("Sync complete:")
        print(f"  Accounts:      {result['accounts']}")
        print(f"  Transactions:  {result['transactions']}")
        for error in result["errors"]:
            print(f"  Bank error:    {error}")

    return 0


def cmd_serve(args):
    """Run the web API."""
    import uvicorn
    from household_budget.web import api

    if not args.db:
        uvicorn.run(api.app, host=args.host, port=args.port)
        return 0

    with _service(args) as service:
        api.app.dependency_overrides[api.get_service] = lambda: service
        uvicorn.run(api.app, host=args.host, port=args.port)
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Household Budget - monthly budget with bills, funds and month sealing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  household-budget summary --month 03/2026     Show the March 2026 summary
  household-budget bills                       List this month's bills
  household-budget copy-bills                  Copy last month's bills into this month
  household-budget seal 03/2026                Seal March with the suggested allocations
  household-budget seal 03/2026 fund-house=200 Seal March with explicit allocations
  household-budget sync                        Import from SimpleFIN
  household-budget serve                       Start the web API
"""
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--db", help="Path to SQLite database")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Summary command
    summary_parser = subparsers.add_parser("summary", help="Show monthly summary")
    summary_parser.add_argument("-m", "--month", help="MM/YYYY (default: current month)")
    summary_parser.set_defaults(func=cmd_summary)

    # Bills command
    bills_parser = subparsers.add_parser("bills", help="List bills for a month")
    bills_parser.add_argument("-m", "--month", help="MM/YYYY (default: current month)")
    bills_parser.set_defaults(func=cmd_bills)

    # Copy bills command
    copy_parser = subparsers.add_parser("copy-bills", help="Copy last month's bills")
    copy_parser.add_argument("-m", "--month", help="MM/YYYY to copy into (default: current month)")
    copy_parser.set_defaults(func=cmd_copy_bills)

    # Seal command
    seal_parser = subparsers.add_parser("seal", help="Seal a month")
    seal_parser.add_argument("month", help="MM/YYYY")
    seal_parser.add_argument("allocations", nargs="*", metavar="FUND_ID=AMOUNT",
                             help="Allocations (default: suggested split of savings)")
    seal_parser.set_defaults(func=cmd_seal)

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Sync accounts from SimpleFIN")
    sync_parser.set_defaults(func=cmd_sync)

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the web API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except BudgetError as e:
        print(f"Error: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import config
from app.services import LedgerService, Result
from backup import create_backup, export_to_json
from bootstrap import bootstrap_service
from domain.errors import DomainError
from domain.reports import goals_table, summary_table, transactions_table, wallets_table
from domain.validation import parse_report_period_end, parse_report_period_start
from utils.csv_utils import transactions_to_csv
from utils.excel_utils import ledger_to_xlsx
from utils.pdf_utils import ledger_to_pdf


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Personal ledger: wallets, goals, transactions and budget snapshots."
    )
    parser.add_argument(
        "--db-path",
        default=config.SQLITE_PATH,
        help="Path to the SQLite ledger (default: $LEDGER_DB_PATH or <project>/ledger.db)",
    )
    parser.add_argument("--owner", required=True, help="Owner id all operations are scoped to")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the default wallets for a new owner")
    sub.add_parser("wallets", help="List wallets with balances")

    wallet_add = sub.add_parser("wallet-add", help="Create a wallet")
    wallet_add.add_argument("name")
    wallet_add.add_argument("--type", default="cash")
    wallet_add.add_argument("--currency", default=None)
    wallet_add.add_argument("--opening-balance", default="0")

    wallet_set = sub.add_parser("wallet-set-balance", help="Override a wallet balance")
    wallet_set.add_argument("wallet_id", type=int)
    wallet_set.add_argument("balance")

    wallet_delete = sub.add_parser("wallet-delete", help="Delete a wallet")
    wallet_delete.add_argument("wallet_id", type=int)

    tx_add = sub.add_parser("tx-add", help="Record an income, expense or transfer")
    tx_add.add_argument("type", choices=["income", "expense", "transfer"])
    tx_add.add_argument("amount")
    tx_add.add_argument("category")
    tx_add.add_argument("--wallet", type=int, default=None)
    tx_add.add_argument("--to-wallet", type=int, default=None)
    tx_add.add_argument("--goal", type=int, default=None)
    tx_add.add_argument("--date", default=None, help="YYYY-MM-DD (default: today)")
    tx_add.add_argument("--description", default="")
    tx_add.add_argument("--request-id", default=None)

    tx_edit = sub.add_parser("tx-edit", help="Edit amount, category, description or date")
    tx_edit.add_argument("transaction_id", type=int)
    tx_edit.add_argument("--amount", default=None)
    tx_edit.add_argument("--category", default=None)
    tx_edit.add_argument("--description", default=None)
    tx_edit.add_argument("--date", default=None)

    tx_delete = sub.add_parser("tx-delete", help="Delete a transaction")
    tx_delete.add_argument("transaction_id", type=int)

    tx_list = sub.add_parser("transactions", help="Show recent transactions")
    tx_list.add_argument("--limit", type=int, default=10)

    goal_add = sub.add_parser("goal-add", help="Create a savings goal")
    goal_add.add_argument("title")
    goal_add.add_argument("target")
    goal_add.add_argument("--target-date", default=None)
    goal_add.add_argument("--frequency", default=None)
    goal_add.add_argument("--auto-contribution", default="0")

    contribute = sub.add_parser("contribute", help="Add (or withdraw) an amount to a goal")
    contribute.add_argument("goal_id", type=int)
    contribute.add_argument("amount")

    sub.add_parser("goals", help="List active goals and statistics")

    questionnaire = sub.add_parser("questionnaire", help="Submit monthly budget answers")
    questionnaire.add_argument("income")
    questionnaire.add_argument("rent")
    questionnaire.add_argument("shopping")
    questionnaire.add_argument("--other", default=None)

    summary = sub.add_parser("summary", help="Income/expense summary for a period")
    summary.add_argument("period", help="YYYY, YYYY-MM or YYYY-MM-DD")
    summary.add_argument("--until", default=None, help="Period end (default: end of period)")

    export = sub.add_parser("export", help="Export transactions to CSV, XLSX or PDF")
    export.add_argument("path")
    export.add_argument("--period", default=None)

    sub.add_parser("backup", help="Back up the database and export the owner to JSON")
    return parser.parse_args(argv)


def _unwrap(result: Result):
    if not result.ok:
        raise SystemExit(f"[{result.kind}] {result.error}")
    return result.data


def _period_bounds(period: str, until: str | None = None):
    return parse_report_period_start(period), parse_report_period_end(until or period)


def run_command(service: LedgerService, args: argparse.Namespace) -> int:
    owner = args.owner
    command = args.command

    if command == "init":
        print(wallets_table(_unwrap(service.bootstrap_account(owner))))
    elif command == "wallets":
        print(wallets_table(_unwrap(service.list_wallets(owner))))
    elif command == "wallet-add":
        wallet = _unwrap(
            service.create_wallet(
                owner,
                name=args.name,
                type=args.type,
                currency=args.currency,
                opening_balance=args.opening_balance,
            )
        )
        print(wallets_table([wallet]))
    elif command == "wallet-set-balance":
        wallet = _unwrap(service.override_wallet_balance(owner, args.wallet_id, args.balance))
        print(wallets_table([wallet]))
    elif command == "wallet-delete":
        _unwrap(service.delete_wallet(owner, args.wallet_id))
        print(f"Wallet {args.wallet_id} deleted")
    elif command == "tx-add":
        transaction = _unwrap(
            service.apply_transaction(
                owner,
                type=args.type,
                amount=args.amount,
                category=args.category,
                wallet_id=args.wallet,
                counterpart_wallet_id=args.to_wallet,
                goal_id=args.goal,
                date=args.date,
                description=args.description,
                request_id=args.request_id,
            )
        )
        print(transactions_table([transaction]))
    elif command == "tx-edit":
        transaction = _unwrap(
            service.edit_transaction(
                owner,
                args.transaction_id,
                amount=args.amount,
                category=args.category,
                description=args.description,
                date=args.date,
            )
        )
        print(transactions_table([transaction]))
    elif command == "tx-delete":
        _unwrap(service.delete_transaction(owner, args.transaction_id))
        print(f"Transaction {args.transaction_id} deleted")
    elif command == "transactions":
        print(transactions_table(_unwrap(service.recent_transactions(owner, args.limit))))
    elif command == "goal-add":
        goal = _unwrap(
            service.create_goal(
                owner,
                title=args.title,
                target_amount=args.target,
                target_date=args.target_date,
                frequency=args.frequency,
                auto_contribution=args.auto_contribution,
            )
        )
        print(goals_table([goal]))
    elif command == "contribute":
        print(goals_table([_unwrap(service.contribute(owner, args.goal_id, args.amount))]))
    elif command == "goals":
        print(goals_table(_unwrap(service.active_goals(owner))))
        stats = _unwrap(service.goals_stats(owner))
        print(
            f"Goals: {stats.total} total, {stats.active} active, {stats.completed} completed; "
            f"saved {stats.total_saved:.2f} of {stats.total_target:.2f}"
        )
    elif command == "questionnaire":
        snapshot = _unwrap(
            service.submit_budget_snapshot(
                owner,
                income=args.income,
                rent=args.rent,
                shopping=args.shopping,
                other=args.other,
            )
        )
        print(f"Snapshot {snapshot.id}: savings {snapshot.savings:.2f}")
        print(wallets_table(_unwrap(service.list_wallets(owner))))
    elif command == "summary":
        start, end = _period_bounds(args.period, args.until)
        summary = _unwrap(service.monthly_summary(owner, start, end))
        label = f"{start.isoformat()} .. {end.isoformat()}"
        print(summary_table(summary, label))
    elif command == "export":
        if args.period:
            start, end = _period_bounds(args.period)
            transactions = _unwrap(service.transactions_by_period(owner, start, end))
        else:
            transactions = service.repository.list_transactions(owner, newest_first=False)
            start = min((t.date for t in transactions), default=None)
            end = max((t.date for t in transactions), default=None)
        suffix = Path(args.path).suffix.lower()
        if suffix == ".csv":
            transactions_to_csv(transactions, args.path)
        elif suffix in (".xlsx", ".pdf"):
            if start is None:
                raise SystemExit("Nothing to export")
            summary = _unwrap(service.monthly_summary(owner, start, end))
            if suffix == ".xlsx":
                ledger_to_xlsx(transactions, summary, args.path)
            else:
                ledger_to_pdf(transactions, summary, args.path)
        else:
            raise SystemExit(f"Unsupported export format: {suffix or args.path}")
        print(f"Exported {len(transactions)} transactions to {args.path}")
    elif command == "backup":
        backup_path = create_backup(args.db_path)
        json_path = str(Path(config.BACKUP_DIR) / f"{owner}.json")
        export_to_json(service.repository, owner, json_path)
        print(f"Backup: {backup_path}\nJSON: {json_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    service = bootstrap_service(args.db_path)
    try:
        return run_command(service, args)
    except DomainError as exc:
        print(f"[{exc.kind}] {exc}", file=sys.stderr)
        return 2
    finally:
        service.repository.close()


if __name__ == "__main__":
    sys.exit(main())

"""Escrow CLI — command-line interface for the job escrow ledger.

Usage:
    python -m jobescrow.cli status
    python -m jobescrow.cli fund --account alice --amount 100
    python -m jobescrow.cli create-job --client alice --provider bob --total 100 --initial 30
    python -m jobescrow.cli release-initial --caller alice --job 0
    python -m jobescrow.cli complete --caller bob --job 0
    python -m jobescrow.cli release-final --caller alice --job 0
    python -m jobescrow.cli refund --caller alice --job 0
    python -m jobescrow.cli show --job 0
    python -m jobescrow.cli list --client alice

Settings are read from the environment, or from a .env file in the
working directory:
    JOBESCROW_CONFIG_DIR   directory holding escrow_params.json
    JOBESCROW_DATA_DIR     directory for state.json, balances.json, events.jsonl
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from jobescrow.config import DEFAULT_CONFIG_DIR, LedgerConfig
from jobescrow.escrow.transfer import BookTransfer
from jobescrow.persistence.event_log import EventLog
from jobescrow.persistence.state_store import StateStore
from jobescrow.service import EscrowService, ServiceResult


DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _make_service(config_dir: Path, data_dir: Path) -> EscrowService:
    """Create an EscrowService with durable persistence."""
    data_dir.mkdir(parents=True, exist_ok=True)
    return EscrowService(
        BookTransfer(storage_path=data_dir / "balances.json"),
        config=LedgerConfig.from_config_dir(config_dir),
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "state.json"),
    )


def _report(result: ServiceResult, message: str) -> int:
    if result.success:
        print(message.format(**result.data))
        return 0
    kind = f" [{result.error_kind.value}]" if result.error_kind else ""
    print(f"Failed{kind}: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_fund(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.fund_account(args.account, args.amount)
    return _report(result, "Funded {account}: balance {balance}")


def cmd_balance(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    print(f"{args.account}: {service.balance_of(args.account)}")
    return 0


def cmd_create_job(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    deposit = args.deposit if args.deposit is not None else args.initial
    result = service.create_job(
        client=args.client,
        provider=args.provider,
        total_payment=args.total,
        initial_payment=args.initial,
        deposited_value=deposit,
    )
    return _report(result, "Created job: {job_id}")


def cmd_release_initial(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.release_initial_payment(args.caller, args.job)
    return _report(result, "Released initial payment for job {job_id}")


def cmd_complete(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.mark_job_complete(args.caller, args.job)
    return _report(result, "Marked job {job_id} complete")


def cmd_release_final(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.release_final_payment(args.caller, args.job)
    return _report(result, "Released final payment for job {job_id}")


def cmd_refund(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    result = service.request_refund(args.caller, args.job)
    return _report(result, "Refunded initial payment for job {job_id}")


def cmd_show(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    job = service.get_job(args.job)
    if job is None:
        print(f"Failed [not_found]: Unknown job ID: {args.job}", file=sys.stderr)
        return 1
    print(json.dumps(job.to_dict(), indent=2))
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    jobs = service.list_jobs(client=args.client, provider=args.provider)
    print(json.dumps([j.to_dict() for j in jobs], indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobescrow",
        description="Two-tranche job escrow ledger",
    )
    parser.add_argument(
        "--config", type=Path,
        default=Path(os.getenv("JOBESCROW_CONFIG_DIR", str(DEFAULT_CONFIG_DIR))),
        help="Config directory",
    )
    parser.add_argument(
        "--data", type=Path,
        default=Path(os.getenv("JOBESCROW_DATA_DIR", str(DEFAULT_DATA))),
        help="Data directory",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show ledger status")

    p_fund = sub.add_parser("fund", help="Credit an account")
    p_fund.add_argument("--account", required=True)
    p_fund.add_argument("--amount", required=True)

    p_bal = sub.add_parser("balance", help="Show an account balance")
    p_bal.add_argument("--account", required=True)

    p_create = sub.add_parser("create-job", help="Open a job and deposit the initial payment")
    p_create.add_argument("--client", required=True)
    p_create.add_argument("--provider", required=True)
    p_create.add_argument("--total", required=True)
    p_create.add_argument("--initial", required=True)
    p_create.add_argument("--deposit", default=None, help="Defaults to --initial")

    for name, help_text in (
        ("release-initial", "Release the initial payment to the provider"),
        ("complete", "Mark a job complete (provider)"),
        ("release-final", "Release the final payment to the provider"),
        ("refund", "Refund the initial payment to the client"),
    ):
        p_op = sub.add_parser(name, help=help_text)
        p_op.add_argument("--caller", required=True)
        p_op.add_argument("--job", type=int, required=True)

    p_show = sub.add_parser("show", help="Show one job")
    p_show.add_argument("--job", type=int, required=True)

    p_list = sub.add_parser("list", help="List jobs")
    p_list.add_argument("--client", default=None)
    p_list.add_argument("--provider", default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "status": cmd_status,
        "fund": cmd_fund,
        "balance": cmd_balance,
        "create-job": cmd_create_job,
        "release-initial": cmd_release_initial,
        "complete": cmd_complete,
        "release-final": cmd_release_final,
        "refund": cmd_refund,
        "show": cmd_show,
        "list": cmd_list,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())

"""Presale CLI — command-line interface for the tier ledger.

Usage:
    python -m presale.cli status
    python -m presale.cli contribute --participant alice --amount 5
    python -m presale.cli participants --page 1 --page-size 10
    python -m presale.cli propose-increment --value 2
    python -m presale.cli apply-increment
    python -m presale.cli update-tier-limit --tier 2 --limit 90
    python -m presale.cli check-invariants
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path

from presale.models.sale import Tier
from presale.persistence.event_log import EventLog
from presale.persistence.state_store import StateStore
from presale.policy.params import SaleParams
from presale.service import PresaleService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _make_service(args: argparse.Namespace) -> PresaleService:
    """Create a PresaleService with durable persistence."""
    data_dir: Path = args.data
    data_dir.mkdir(parents=True, exist_ok=True)
    params = SaleParams.from_config_dir(args.config)
    return PresaleService(
        params,
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "state.json"),
    )


def _decimal_arg(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation as e:
        raise argparse.ArgumentTypeError(f"not a decimal amount: {value!r}") from e
    if not amount.is_finite():
        raise argparse.ArgumentTypeError(f"not a finite amount: {value!r}")
    return amount


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    kind = result.error_kind.value if result.error_kind else "Error"
    print(f"Failed ({kind}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _caller(args: argparse.Namespace, service: PresaleService) -> str:
    return args.caller or service.owner


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_contribute(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.deposit(args.participant, args.amount))


def cmd_participant(args: argparse.Namespace) -> int:
    service = _make_service(args)
    record = service.get_participant(args.id)
    print(json.dumps({"participant": args.id, **record.to_dict()}, indent=2))
    return 0


def cmd_participants(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.list_participants(args.page, args.page_size))


def cmd_propose_increment(args: argparse.Namespace) -> int:
    service = _make_service(args)
    delay = (
        timedelta(seconds=args.delay_seconds)
        if args.delay_seconds is not None else None
    )
    return _report(
        service.propose_increment(_caller(args, service), args.value, delay=delay)
    )


def cmd_apply_increment(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.apply_increment(_caller(args, service)))


def cmd_update_tier_limit(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(
        service.update_tier_limit(
            _caller(args, service), Tier.from_number(args.tier), args.limit,
        )
    )


def cmd_update_cap(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.update_individual_cap(_caller(args, service), args.cap))


def cmd_update_page_size(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.update_max_page_size(_caller(args, service), args.size))


def cmd_pause(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.pause(_caller(args, service)))


def cmd_resume(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.resume(_caller(args, service)))


def cmd_reset(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.reset_ledger(_caller(args, service)))


def cmd_transfer_ownership(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.transfer_ownership(_caller(args, service), args.new_owner))


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run structural checks on the config directory."""
    # Import and run the existing check_invariants tool
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="presale",
        description="Tiered presale ledger CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=DEFAULT_DATA,
        help="Path to data directory for state and events (default: data/)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show sale status")

    # contribute
    p_contrib = sub.add_parser("contribute", help="Contribute to the sale")
    p_contrib.add_argument("--participant", required=True, help="Participant ID")
    p_contrib.add_argument("--amount", required=True, type=_decimal_arg, help="Amount (Decimal)")

    # participant
    p_one = sub.add_parser("participant", help="Show one participant record")
    p_one.add_argument("--id", required=True, help="Participant ID")

    # participants
    p_list = sub.add_parser("participants", help="List participants page by page")
    p_list.add_argument("--page", type=int, default=1, help="Page number (1-based)")
    p_list.add_argument("--page-size", type=int, default=10, help="Records per page")

    # propose-increment
    p_prop = sub.add_parser("propose-increment", help="Propose a new increment")
    p_prop.add_argument("--value", required=True, type=_decimal_arg, help="New increment")
    p_prop.add_argument(
        "--delay-seconds", type=int,
        help="Timelock delay (default and minimum: configured timelock)",
    )
    p_prop.add_argument("--caller", help="Caller ID (default: configured owner)")

    # apply-increment
    p_apply = sub.add_parser("apply-increment", help="Apply the pending increment")
    p_apply.add_argument("--caller", help="Caller ID (default: configured owner)")

    # update-tier-limit
    p_tier = sub.add_parser("update-tier-limit", help="Change a tier's cumulative limit")
    p_tier.add_argument("--tier", required=True, type=int, choices=[1, 2, 3])
    p_tier.add_argument("--limit", required=True, type=_decimal_arg, help="New limit")
    p_tier.add_argument("--caller", help="Caller ID (default: configured owner)")

    # update-cap
    p_cap = sub.add_parser("update-cap", help="Change the individual cap (tiers 1-2)")
    p_cap.add_argument("--cap", required=True, type=_decimal_arg, help="New cap")
    p_cap.add_argument("--caller", help="Caller ID (default: configured owner)")

    # update-page-size
    p_size = sub.add_parser("update-page-size", help="Change the maximum page size")
    p_size.add_argument("--size", required=True, type=int, help="New maximum")
    p_size.add_argument("--caller", help="Caller ID (default: configured owner)")

    # pause / resume / reset
    for name, help_text in (
        ("pause", "Pause deposits"),
        ("resume", "Resume deposits"),
        ("reset", "Clear every participant record and re-open tier 1"),
    ):
        p_ctl = sub.add_parser(name, help=help_text)
        p_ctl.add_argument("--caller", help="Caller ID (default: configured owner)")

    # transfer-ownership
    p_own = sub.add_parser("transfer-ownership", help="Hand the owner role to another identity")
    p_own.add_argument("--new-owner", required=True, help="New owner ID")
    p_own.add_argument("--caller", help="Caller ID (default: configured owner)")

    # check-invariants
    sub.add_parser("check-invariants", help="Validate config parameters")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "status": cmd_status,
        "contribute": cmd_contribute,
        "participant": cmd_participant,
        "participants": cmd_participants,
        "propose-increment": cmd_propose_increment,
        "apply-increment": cmd_apply_increment,
        "update-tier-limit": cmd_update_tier_limit,
        "update-cap": cmd_update_cap,
        "update-page-size": cmd_update_page_size,
        "pause": cmd_pause,
        "resume": cmd_resume,
        "reset": cmd_reset,
        "transfer-ownership": cmd_transfer_ownership,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())

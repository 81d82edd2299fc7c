from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from .config import ConfigError, load_config, load_policy
from .core import TillCore
from .exceptions import ApiError, LedgerError
from .models_shift import CountType
from .session import TillSession
from .ui_errors import to_user_facing_error


async def _with_core(args: argparse.Namespace, action):
    config = load_config(args.env_file)
    session = TillSession(config, access_token=args.token, business_id=args.business_id)
    core = TillCore.from_session(
        session,
        cashier_id=args.cashier_id,
        business_id=args.business_id,
        policy=load_policy(args.env_file),
    )
    try:
        await core.shifts.refresh()
        return await action(core)
    finally:
        await session.aclose()


async def cmd_status(args: argparse.Namespace) -> dict:
    async def action(core: TillCore) -> dict:
        await core.shifts.check_overtime()
        return core.snapshot()

    return await _with_core(args, action)


async def cmd_count(args: argparse.Namespace) -> dict:
    async def action(core: TillCore) -> dict:
        count = await core.shifts.record_cash_count(args.counted, CountType(args.count_type), notes=args.notes)
        return count.model_dump(mode="json")

    return await _with_core(args, action)


async def cmd_reprint(args: argparse.Namespace) -> dict:
    async def action(core: TillCore) -> dict:
        outcome = await core.receipts.reprint(args.receipt_number)
        return {"receipt_number": outcome.receipt_number, "printed": outcome.printed, "message": outcome.message}

    return await _with_core(args, action)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Till ledger shift tools")
    parser.add_argument("--env-file", default=None)
    parser.add_argument("--cashier-id", required=True)
    parser.add_argument("--business-id", required=True)
    parser.add_argument("--token", default=None)
    parser.add_argument("--log-level", default="INFO")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status", help="print the shift snapshot")
    status_parser.set_defaults(func=cmd_status)

    count_parser = subparsers.add_parser("count", help="record a cash drawer count")
    count_parser.add_argument("counted")
    count_parser.add_argument("--count-type", default=CountType.SPOT.value, choices=[c.value for c in CountType])
    count_parser.add_argument("--notes", default=None)
    count_parser.set_defaults(func=cmd_count)

    reprint_parser = subparsers.add_parser("reprint", help="print a receipt again")
    reprint_parser.add_argument("receipt_number")
    reprint_parser.set_defaults(func=cmd_reprint)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        result = asyncio.run(args.func(args))
    except (ApiError, LedgerError) as exc:
        error = to_user_facing_error(exc)
        payload = {"error": error.message, "details": error.details, "trace_id": error.trace_id}
        print(json.dumps(payload), file=sys.stderr)
        return 1
    except ConfigError as exc:
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        return 2
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

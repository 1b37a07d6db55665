"""
Command line entry point.

    dicewager serve              run the Ledger Service
    dicewager sync               reconcile the local balance cache
    dicewager roll 100 -m 2      bet 100 at 2x
    dicewager roll --quick 0.5   bet half the balance
    dicewager reset              ask the ledger for a fresh balance
    dicewager history            recent ledger transactions
"""

import argparse
import asyncio
import sys

import uvicorn

from dicewager.config import AppConfig, save_config, settings
from dicewager.core import events
from dicewager.core.balance_store import MemoryBalanceStore
from dicewager.core.engine import BetResolution, WagerEngine, build_engine
from dicewager.core.exceptions import LedgerError, WagerError
from dicewager.core.ledger_client import LedgerClient
from dicewager.core.logger import get_logger, init_logging
from dicewager.core.money import format_money

logger = get_logger("cli")


def print_event(event: events.OutcomeEvent) -> None:
    if isinstance(event, events.RollResolved):
        if event.is_win:
            print(f"You won! Rolled a {event.roll}. Won {format_money(event.amount_delta)}")
        else:
            print(f"You lost! Rolled a {event.roll}. Lost {format_money(-event.amount_delta)}")
    elif isinstance(event, events.BetRejected):
        print(event.reason)
    elif isinstance(event, events.NetworkFailure):
        print("Error rolling dice" if event.context == "roll" else "Failed to reset balance")
    elif isinstance(event, events.BalanceReset):
        print(f"Balance reset to {format_money(event.new_balance)}!")


# ==================== Commands ====================

def cmd_serve(args, config: AppConfig) -> int:
    logger.info(f"Starting ledger on {args.host}:{args.port}")
    uvicorn.run(
        "dicewager.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def cmd_init_config(args, config: AppConfig) -> int:
    path = config.paths.get_config_path()
    if path.exists() and not args.force:
        print(f"{path} already exists, use --force to overwrite")
        return 1
    save_config(AppConfig(), path)
    print(f"Wrote default configuration to {path}")
    return 0


async def _with_engine(args, config: AppConfig, action) -> int:
    async with LedgerClient(config.client.ledger_url, timeout=config.client.timeout_seconds) as client:
        emitter = events.EventEmitter()
        emitter.subscribe(print_event)
        store = MemoryBalanceStore() if args.no_cache else None
        engine = build_engine(config, store=store, ledger=client, emitter=emitter)
        return await action(engine, client)


async def _sync(engine: WagerEngine, client: LedgerClient) -> int:
    balance = await engine.start()
    print(f"Balance: {format_money(balance)}")
    return 0


def _roll(args):
    async def action(engine: WagerEngine, client: LedgerClient) -> int:
        await engine.start()
        try:
            engine.select_multiplier(args.multiplier)
            if args.quick is not None:
                engine.quick_bet(args.quick)
            else:
                engine.bet_amount = args.amount or ""
        except (WagerError, ValueError) as e:
            print(e)
            return 2

        await engine.roll()
        print(f"Balance: {format_money(engine.balance)}")
        return 0 if engine.last_resolution == BetResolution.SETTLED else 1

    return action


async def _reset(engine: WagerEngine, client: LedgerClient) -> int:
    fresh = await engine.reset_balance()
    return 0 if fresh is not None else 1


def _history(args):
    async def action(engine: WagerEngine, client: LedgerClient) -> int:
        try:
            records = await client.history(limit=args.limit)
        except LedgerError as e:
            print(f"Could not load history: {e}")
            return 1
        for record in records:
            detail = ""
            if record.roll is not None:
                detail = f" bet {record.bet_amount} at {record.multiplier}x, rolled {record.roll}"
            print(
                f"{record.created_at}  {record.type:<6} {format_money(record.amount):>12}"
                f"  -> {format_money(record.balance_after)}{detail}"
            )
        return 0

    return action


# ==================== Parser ====================

def build_parser(config: AppConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dicewager", description="Dice Wager")
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Keep the balance cache in memory instead of on disk",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the Ledger Service")
    serve.add_argument("--host", default=config.server.host)
    serve.add_argument("--port", type=int, default=config.server.port)
    serve.add_argument("--reload", action="store_true", default=config.server.debug)

    init = sub.add_parser("init-config", help="Write a default config.json")
    init.add_argument("--force", action="store_true")

    sub.add_parser("sync", help="Reconcile the cached balance with the ledger")

    roll = sub.add_parser("roll", help="Place a bet")
    roll.add_argument("amount", nargs="?", help="Whole-number bet amount")
    roll.add_argument("-m", "--multiplier", type=int, default=config.ledger.multipliers[0])
    roll.add_argument(
        "--quick",
        type=float,
        choices=config.client.quick_bet_fractions,
        help="Bet a fraction of the balance instead of a fixed amount",
    )

    sub.add_parser("reset", help="Reset the balance")

    history = sub.add_parser("history", help="Show recent ledger transactions")
    history.add_argument("--limit", type=int, default=20)

    return parser


def main(argv=None, config: AppConfig = None) -> int:
    config = config or settings
    args = build_parser(config).parse_args(argv)

    init_logging(
        level=config.logging.level,
        log_to_file=config.logging.log_to_file,
        formatter=config.logging.formatter,
        log_file_path=config.paths.get_log_path(),
    )

    if args.command == "serve":
        return cmd_serve(args, config)
    if args.command == "init-config":
        return cmd_init_config(args, config)

    actions = {
        "sync": _sync,
        "roll": _roll(args),
        "reset": _reset,
        "history": _history(args),
    }
    return asyncio.run(_with_engine(args, config, actions[args.command]))


if __name__ == "__main__":
    sys.exit(main())

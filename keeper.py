#!/usr/bin/env python3
"""
epochkeeper: reward-cycle automation entrypoint.

Runs ONCE per trigger and exits. Designed to be fired by an external scheduler
(cron, Railway, systemd timer) on the cycle cadence.

Usage:
    python3 keeper.py [start|end|flush|status] [--verbose] [--config PATH] [--no-lock]

Modes:
    start   Start the next epoch once accumulation has elapsed (default)
    end     End the distribution period once it has elapsed
    flush   Pay out distribution remainders (not timer gated)
    status  Log cycle status, submit nothing

Exit codes: 0 on completed / not-yet-due / no-op, 1 on abort or fatal error.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from chain import ActionInvoker, CommunicationError, JsonRpcClient, RewardsContract
from config_env import ConfigError, KeeperConfig, load_keeper_config
from cycle_end import CycleEndDriver, FlushDriver, OneShotSettings, StatusReport
from epoch_start import EpochStartDriver, EpochStartSettings
from keeper_lock import acquire_keeper_lock, lock_path_for, release_keeper_lock
from keeper_utils import format_eth
from logging_utils import setup_logging
from outcomes import AbortKind, DriverOutcome

MODE_START = "start"
MODE_END = "end"
MODE_FLUSH = "flush"
MODE_STATUS = "status"
MODES = (MODE_START, MODE_END, MODE_FLUSH, MODE_STATUS)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reward cycle epoch automation (runs once, then exits)")
    parser.add_argument("mode", nargs="?", default=MODE_START, choices=MODES, help="Action to run (default: start)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", type=Path, default=None, help="Path to keeper.yaml")
    parser.add_argument("--no-lock", action="store_true", help="Skip the single-run lock")
    return parser


async def check_funds(invoker, cfg: KeeperConfig, log: logging.Logger) -> Optional[DriverOutcome]:
    """Pre-flight: None if the operating wallet can pay for the run, else an aborted outcome."""
    try:
        balance = await invoker.balance_wei()
    except CommunicationError as exc:
        log.error(f"❌ Balance read failed: {exc}")
        return DriverOutcome.aborted(str(exc), kind=AbortKind.COMMUNICATION_ERROR)
    log.info(f"Wallet: {invoker.address}")
    log.info(f"Balance: {format_eth(balance)} ETH")
    if balance < cfg.min_eth_balance_wei:
        cause = f"Need at least {format_eth(cfg.min_eth_balance_wei)} ETH, have {format_eth(balance)}"
        log.error(f"❌ {cause}")
        return DriverOutcome.aborted(cause, kind=AbortKind.INSUFFICIENT_FUNDS)
    return None


async def execute_mode(mode: str, cfg: KeeperConfig, reader, invoker, log: logging.Logger) -> DriverOutcome:
    """Pick the driver for *mode* and run it against the given collaborators."""
    if mode == MODE_STATUS:
        return await StatusReport(reader, log).run()

    if mode == MODE_END:
        return await CycleEndDriver(
            reader, invoker, log, OneShotSettings(gas_limit=cfg.gas_limits.end_cycle)
        ).run()

    if mode == MODE_FLUSH:
        return await FlushDriver(
            invoker, log, OneShotSettings(gas_limit=cfg.gas_limits.flush_distributions)
        ).run()

    insufficient = await check_funds(invoker, cfg, log)
    if insufficient is not None:
        return insufficient
    settings = EpochStartSettings(
        gas_limit=cfg.gas_limits.start_epoch,
        call_delay_sec=cfg.call_delay_sec,
        settle_delay_sec=cfg.settle_delay_sec,
        settle_attempts=cfg.settle_attempts,
        max_batches=cfg.max_batches,
        max_runtime_sec=cfg.max_runtime_sec,
    )
    return await EpochStartDriver(reader, invoker, log, settings).run()


async def run_with_chain(mode: str, cfg: KeeperConfig, log: logging.Logger) -> DriverOutcome:
    async with JsonRpcClient(cfg.rpc_url, log=log, timeout_sec=cfg.rpc_timeout_sec) as rpc:
        reader = RewardsContract(rpc, cfg.rewards_contract, log=log)
        invoker = ActionInvoker(
            rpc,
            cfg.rewards_contract,
            cfg.private_key,
            log=log,
            receipt_timeout_sec=cfg.receipt_timeout_sec,
            receipt_poll_sec=cfg.receipt_poll_sec,
        )
        return await execute_mode(mode, cfg, reader, invoker, log)


def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = build_parser().parse_args(argv)
    except SystemExit as exc:
        # argparse exits 2 on usage errors; the scheduler only knows 0 and 1.
        return 0 if exc.code in (0, None) else 1
    log = setup_logging("keeper", verbose=args.verbose)

    try:
        cfg = load_keeper_config(args.config)
    except ConfigError as exc:
        outcome = DriverOutcome.aborted(str(exc), kind=AbortKind.CONFIG_MISSING)
        log.error(f"❌ {outcome.describe()}")
        return outcome.exit_code

    lock_fh = None
    if not args.no_lock and args.mode != MODE_STATUS:
        lock_fh = acquire_keeper_lock(lock_path_for(cfg.runtime_dir, cfg.rewards_contract), log)
        if lock_fh is None:
            log.info("Another keeper run holds the lock for this contract; exiting.")
            return 0

    try:
        outcome = asyncio.run(run_with_chain(args.mode, cfg, log))
    except Exception as exc:
        log.error(f"❌ FATAL: {exc}")
        return 1
    finally:
        release_keeper_lock(lock_fh)

    log.info(f"Result [{args.mode}]: {outcome.describe()}")
    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())

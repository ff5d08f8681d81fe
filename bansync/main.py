"""Entry point for the BanSync service."""

import argparse
import os
import sys
from pathlib import Path
from typing import Optional, Tuple

import uvicorn
from fastapi import FastAPI

from common.logging_config import setup_logging
from bansync.api import create_app
from bansync.config import Config
from bansync.engine import SyncEngine
from bansync.events import EventBridge
from bansync.exceptions import BanSyncException
from bansync.host import InMemoryBanList
from bansync.scheduler import SyncScheduler
from bansync.store import create_store


def build_service(config: Config) -> Tuple[SyncEngine, EventBridge, InMemoryBanList, SyncScheduler]:
    """
    Wire store, host ban list, engine, event bridge and scheduler.

    Args:
        config: Loaded configuration

    Returns:
        (engine, bridge, host, scheduler)
    """
    store = create_store(config)
    host = InMemoryBanList(config.get_ban_list_path())
    engine = SyncEngine(store, host)
    bridge = EventBridge(engine)
    host.add_listener(bridge)
    scheduler = SyncScheduler(engine, push_delay=config.get_push_delay())
    return engine, bridge, host, scheduler


def build_app(config: Optional[Config] = None) -> FastAPI:
    config = config or Config()
    engine, _, host, scheduler = build_service(config)
    return create_app(engine, host, scheduler)


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bansync", description="Synchronize bans across servers")
    parser.add_argument("--config", type=Path, default=None, help="Path to the JSON configuration file")
    parser.add_argument("--once", action="store_true", help="Run a single sync cycle and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Start the sync service, or run one cycle with --once.
    """
    args = _parse_args(argv)
    log_level = 'DEBUG' if args.debug else os.getenv('LOG_LEVEL', 'INFO')
    logger = setup_logging('bansync', log_level=log_level)

    try:
        config = Config(args.config)
        engine, _, host, scheduler = build_service(config)
    except BanSyncException as e:
        logger.error(f"BanSync startup failed: {e}")
        return 1

    if args.once:
        try:
            diff = engine.run_cycle()
        finally:
            engine.unload()
        if engine.halted:
            return 1
        logger.info(f"Single cycle finished: {diff if diff is not None else 'aborted'}")
        return 0

    api_host, api_port = config.get_api_address()
    logger.info(f"BanSync API listening on {api_host}:{api_port}")
    uvicorn.run(create_app(engine, host, scheduler), host=api_host, port=api_port)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Delegation scanner entrypoint.

Long-running process that scans the ledger for delegation declarations,
checkpoints them into the delegation folder and keeps the endpoint
totals published for the relay server.
"""

import argparse
import asyncio
import os
import signal
import sys

import bittensor as bt
from dotenv import load_dotenv


def main() -> None:
    if os.environ.get("ENCOINS_TEST_MODE") != "true":
        load_dotenv()

    parser = argparse.ArgumentParser(description="ENCOINS relay delegation scanner")
    bt.logging.add_args(parser)
    parser.add_argument("--config", type=str, default=os.environ.get("ENCOINS_DELEGATION_CONFIG"))
    parser.add_argument("--delegation.folder", type=str, default=None)
    parser.add_argument("--delegation.frequency", type=int, default=None)
    parser.add_argument("--delegation.max_delay", type=int, default=None)
    parser.add_argument("--delegation.no_check_sig", action="store_true", default=False)
    args = parser.parse_args()

    from encoins_relay.config import load_config

    try:
        config = load_config(
            args.config,
            delegation_folder=getattr(args, "delegation.folder"),
            frequency=getattr(args, "delegation.frequency"),
            max_delay=getattr(args, "delegation.max_delay"),
            check_signature=False if getattr(args, "delegation.no_check_sig") else None,
        )
    except Exception as e:
        bt.logging.error({"delegation_config_error": str(e)})
        sys.exit(1)

    blockfrost_token = os.environ.get("BLOCKFROST_TOKEN", "")
    maestro_token = os.environ.get("MAESTRO_TOKEN", "")
    if not blockfrost_token:
        bt.logging.error("BLOCKFROST_TOKEN is required")
        sys.exit(1)
    if not maestro_token:
        bt.logging.error("MAESTRO_TOKEN is required")
        sys.exit(1)

    bt.logging.info({
        "delegation_config": {
            "network_id": config.network_id,
            "currency_symbol": config.delegation_currency_symbol,
            "token_name": config.delegation_token_name,
            "folder": config.delegation_folder,
            "frequency": config.frequency,
            "max_delay": config.max_delay,
            "check_signature": config.check_signature,
        }
    })

    from encoins_relay.delegation.cache import StateCache
    from encoins_relay.delegation.scanner import DelegationScanner
    from encoins_relay.delegation.source.http_client import (
        BlockfrostClient,
        IndexerEventSource,
        MaestroClient,
    )
    from encoins_relay.delegation.store.filesystem import FilesystemProgressStore

    source = IndexerEventSource(
        blockfrost=BlockfrostClient(config.network_id, blockfrost_token),
        maestro=MaestroClient(config.network_id, maestro_token),
        policy_id=config.delegation_currency_symbol,
        token_name=config.delegation_token_name,
    )
    store = FilesystemProgressStore(config.delegation_folder)
    cache = StateCache(max_delay=config.max_delay)
    scanner = DelegationScanner(
        source=source,
        store=store,
        cache=cache,
        policy_id=config.delegation_currency_symbol,
        token_name=config.delegation_token_name,
        frequency=config.frequency,
        check_signature=config.check_signature,
        max_concurrent_fetches=config.max_concurrent_fetches,
    )

    loop = asyncio.new_event_loop()

    def _signal_handler(sig, frame):
        bt.logging.info({"delegation": "shutdown_signal_received"})
        scanner.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    exit_code = 0
    try:
        loop.run_until_complete(scanner.run())
    except KeyboardInterrupt:
        bt.logging.info({"delegation": "keyboard_interrupt"})
    except Exception as e:
        bt.logging.error({"delegation": "fatal", "error": str(e)})
        exit_code = 1
    finally:
        loop.run_until_complete(source.close())
        loop.close()
        bt.logging.info({"delegation": "stopped"})
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Donation Ledger API

Main entry point: loads configuration, wires the ledger reader into the
FastAPI web server and runs it until interrupted.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# .env must be loaded before the package configures logging on import
load_dotenv(Path.cwd() / ".env")

from donation_backend.blockchain.endpoints import endpoint_pool_from_config
from donation_backend.donations.reader import LedgerReader
from donation_backend.utils.config import get_config_value, get_int, load_config
from donation_backend.utils.logger import get_logger
from donation_backend.web_server import DonationWebServer

logger = get_logger(__name__)


class DonationApiApp:
    """Owns the configuration, the ledger reader and the web server."""

    def __init__(self, config_file: Optional[str] = None):
        self.config = load_config(config_file)
        self.reader: Optional[LedgerReader] = None
        self.web_server: Optional[DonationWebServer] = None
        self._server_task: Optional[asyncio.Task] = None

    def _display_config_summary(self):
        logger.info("=" * 60)
        logger.info("CONFIGURATION SUMMARY")
        logger.info("=" * 60)
        for index, endpoint in enumerate(endpoint_pool_from_config(self.config)):
            role = "primary" if index == 0 else "fallback"
            logger.info(f"RPC {index} ({role}, {endpoint.transport.value}): {endpoint.url}")
        logger.info(f"Chain ID: {get_config_value(self.config, 'blockchain.chain_id', 'Not configured')}")
        logger.info(f"Contract: {get_config_value(self.config, 'blockchain.contract_address', 'Not configured')}")
        logger.info(f"RPC timeout: {get_config_value(self.config, 'blockchain.rpc_timeout')}s")
        logger.info("=" * 60)

    def initialize(self):
        self._display_config_summary()
        self.reader = LedgerReader.from_config(self.config)
        self.web_server = DonationWebServer(self.config, self.reader)

    async def start(self):
        if self.web_server is None:
            self.initialize()

        host = get_config_value(self.config, "server.host", "0.0.0.0")
        port = get_int(self.config, "server.port", 5000)

        self._server_task = asyncio.create_task(self.web_server.start(host=host, port=port))
        logger.info(f"API health: http://{host}:{port}/api/health")
        logger.info(f"Donations: http://{host}:{port}/api/donations")
        logger.info(f"Donation stats: http://{host}:{port}/api/donations/stats")
        await self._server_task

    def _handle_signal(self, signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        if self._server_task and not self._server_task.done():
            self._server_task.cancel()


async def main(config_file: Optional[str] = None):
    app = DonationApiApp(config_file)

    signal.signal(signal.SIGINT, app._handle_signal)
    signal.signal(signal.SIGTERM, app._handle_signal)

    try:
        await app.start()
    except asyncio.CancelledError:
        logger.info("Donation API cancelled")
    except Exception as e:
        logger.exception(f"Donation API failed: {e}")
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()

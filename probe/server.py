"""Probe server launcher: wires the components and runs them in one event loop."""

import asyncio
import copy
import signal
import sys
import time
from pathlib import Path
from typing import Any, Callable

from aiohttp import web

from probe.commands import CommandQueue
from probe.ingest import IngestionHandler
from probe.notifier import LoggingTransport, NotificationTransport, Notifier, TelegramTransport
from probe.registry import ClientRegistry, create_registry
from probe.shared.config import DEFAULT_CONFIG, load_config
from probe.shared.logger import configure_logging, get_logger
from probe.watchdog import WatchdogScanner
from probe.web import ProbeWebApp

logger = get_logger("server")


def create_transport(telegram_config: dict[str, Any]) -> NotificationTransport:
    bot_token = telegram_config.get("bot_token")
    if not bot_token:
        logger.warning("No Telegram bot token configured, notifications go to the log")
        return LoggingTransport()
    return TelegramTransport(bot_token, api_server=telegram_config.get("api_server"))


class ProbeServer:
    """Owns the registry, both background workers and the HTTP listener."""

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        registry: ClientRegistry | None = None,
        transport: NotificationTransport | None = None,
        clock: Callable[[], float] = time.time,
    ):
        config = config or DEFAULT_CONFIG
        self._config = config
        server_cfg = config.get("server", {})
        watchdog_cfg = config.get("watchdog", {})
        telegram_cfg = config.get("telegram", {})
        queue_size = config.get("queue_size", 1024)
        timeout = watchdog_cfg.get("timeout_seconds", 1200)

        self._bind = server_cfg.get("bind", "127.0.0.1")
        self._port = server_cfg.get("port", 11451)
        self._shutdown_event = asyncio.Event()
        self._runner: web.AppRunner | None = None
        self.failed = False

        self.registry = registry or create_registry(server_cfg)
        self.transport = transport or create_transport(telegram_cfg)
        self.watchdog_queue = CommandQueue("watchdog", maxsize=queue_size)
        self.notifier_queue = CommandQueue("notifier", maxsize=queue_size)

        self.notifier = Notifier(
            self.notifier_queue,
            self.transport,
            operator_id=telegram_cfg.get("owner", 0),
        )
        self.watchdog = WatchdogScanner(
            self.registry,
            self.watchdog_queue,
            self.notifier_queue,
            timeout_seconds=timeout,
            poll_interval=watchdog_cfg.get("poll_interval_seconds", 10),
            clock=clock,
        )
        self.handler = IngestionHandler(
            self.registry,
            self.watchdog_queue,
            self.notifier_queue,
            minimum_version=config.get("client", {}).get("minimum_version", "0"),
            clock=clock,
        )
        self.web = ProbeWebApp(
            self.handler,
            self.registry,
            token=server_cfg.get("token", ""),
            admin_token=server_cfg.get("admin_token"),
            timeout_seconds=timeout,
            clock=clock,
        )

    async def start(self) -> bool:
        """Run until a shutdown signal or a fatal watchdog error.

        Returns False if the watchdog failed.
        """
        if not self.web.token_configured:
            logger.warning("No server token configured, every probe request will be rejected")
        await self.registry.connect()
        self.notifier.start()
        watchdog_task = self.watchdog.start()

        self._runner = web.AppRunner(self.web.build())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._bind, self._port)
        await site.start()
        logger.info(f"Listening on {self._bind}:{self._port}")

        self._install_signal_handlers()
        shutdown = asyncio.create_task(self._shutdown_event.wait())
        done, _ = await asyncio.wait(
            {shutdown, watchdog_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if watchdog_task in done:
            self.failed = True
            logger.critical("Watchdog stopped unexpectedly, shutting down")
        shutdown.cancel()
        await self.stop()
        return not self.failed

    def request_shutdown(self):
        self._shutdown_event.set()

    async def stop(self):
        """Stop accepting requests, then drain and stop both workers."""
        logger.info("Shutting down...")
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        # Watchdog first: its last offline batch must reach the notifier queue.
        for worker in (self.watchdog, self.notifier):
            try:
                await worker.stop()
            except Exception as e:
                self.failed = True
                logger.error(f"Worker {worker.name} ended with error: {e}")

        await self.transport.close()
        await self.registry.close()
        logger.info("Probe server stopped")

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._shutdown_event.set)
            except NotImplementedError:
                pass  # Windows fallback below
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, lambda s, f: self._shutdown_event.set())


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    config_path = argv[0] if argv else "config.json"
    if Path(config_path).exists():
        config = load_config(config_path)
    elif argv:
        raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        logger.warning("No config.json found, using defaults")
        config = copy.deepcopy(DEFAULT_CONFIG)

    configure_logging(config.get("log_file"), config.get("log_level", "INFO"))
    server = ProbeServer(config)
    try:
        ok = asyncio.run(server.start())
    except KeyboardInterrupt:
        print("\nProbe server shutting down...")
        return 0
    return 0 if ok else 1
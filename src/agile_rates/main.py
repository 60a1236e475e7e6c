"""Agile Rates application entry point and lifecycle.

Startup sequence:
  config → logging → cache store → repository → orchestrator →
  dashboard → initial load → periodic refresh loop
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

import aiosqlite

from agile_rates.analysis.formatting import describe_status, format_price
from agile_rates.cache.rate_cache import RateCache
from agile_rates.cache.store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from agile_rates.config.manager import ConfigManager
from agile_rates.config.schema import AppConfig
from agile_rates.dashboard import DashboardState, RatesDashboard
from agile_rates.db.engine import close_db, init_db
from agile_rates.logging.context import bind_context, clear_context
from agile_rates.logging.structured import setup_logging
from agile_rates.orchestrator import AcquisitionOrchestrator, RateContext
from agile_rates.regions import parse_region
from agile_rates.tariff.base import RateRepository
from agile_rates.tariff.providers.octopus import OctopusRateRepository

logger = logging.getLogger(__name__)


class Application:
    """Wires the core components together and runs the refresh loop.

    ``config`` is read once when components are built. Later saves through
    the config manager take effect on the next start.
    """

    def __init__(
        self,
        config: AppConfig,
        config_manager: ConfigManager | None = None,
        repository: RateRepository | None = None,
    ) -> None:
        self.config = config
        self.config_manager = config_manager
        self._repository = repository
        self._db: aiosqlite.Connection | None = None
        self._stop_event = asyncio.Event()
        self._running = False
        self.dashboard: RatesDashboard | None = None

    async def _create_store(self) -> KeyValueStore:
        cache_cfg = self.config.cache
        if cache_cfg.backend == "sqlite":
            self._db = await init_db(cache_cfg.path)
            return SqliteKeyValueStore(self._db)
        return MemoryKeyValueStore(max_bytes=cache_cfg.max_bytes)

    def _save_region(self, region: str) -> None:
        # Persisted for the next start; the running components keep self.config.
        if self.config_manager is not None:
            self.config_manager.save_region(region)

    async def build(self) -> RatesDashboard:
        store = await self._create_store()
        cache = RateCache(store, self.config.cache)
        if self._repository is None:
            self._repository = OctopusRateRepository(self.config.api)
        context = RateContext(
            region=parse_region(self.config.dashboard.default_region),
            cache=cache,
        )
        orchestrator = AcquisitionOrchestrator(self._repository, context)
        self.dashboard = RatesDashboard(
            orchestrator, self.config, on_region_saved=self._save_region,
        )
        return self.dashboard

    async def start(self) -> None:
        """Build components, load once, then refresh until stopped."""
        logger.info("Starting Agile Rates")
        self._running = True
        self._stop_event.clear()
        dashboard = self.dashboard or await self.build()
        bind_context(service="agile-rates")

        state = await dashboard.load_data()
        log_state(state)
        await dashboard.run_periodic_refresh(self._stop_event)

    async def stop(self) -> None:
        if not self._running:
            return
        logger.info("Stopping Agile Rates")
        self._running = False
        self._stop_event.set()
        if self._repository is not None:
            await self._repository.close()
        if self._db is not None:
            await close_db(self._db)
            self._db = None
        clear_context()


def log_state(state: DashboardState) -> None:
    """One-line summary of a load, for headless runs."""
    if state.error or state.analysis is None:
        logger.error("%s", state.error)
        return
    stats = state.analysis.statistics
    logger.info(
        "Region %s %s: %s | range %s-%s, avg %s | %s%s",
        state.region.value,
        state.data_day,
        describe_status(state.current) if state.current else "",
        format_price(stats.min_price),
        format_price(stats.max_price),
        format_price(stats.avg_price),
        state.recommendation_text,
        " (stale)" if state.is_stale else "",
    )


def main() -> None:
    """Entry point for the application."""
    config_manager = ConfigManager(Path("config.defaults.yaml"), Path("config.yaml"))
    config = config_manager.load()

    setup_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_file=config.logging.file,
    )

    app = Application(config, config_manager)
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _request_stop() -> None:
        loop.call_soon_threadsafe(lambda: asyncio.ensure_future(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        pass
    finally:
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        loop.close()


if __name__ == "__main__":
    main()

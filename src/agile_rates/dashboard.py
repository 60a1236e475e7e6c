"""In-process facade for the UI collaborator.

The UI calls ``load_data``, ``select_region`` and ``select_duration`` and
renders the returned DashboardState. It never touches the cache or the
repository directly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from agile_rates.analysis.analyzer import (
    analyze_rates,
    calculate_delay_recommendation,
    get_current_slot_status,
)
from agile_rates.analysis.formatting import describe_recommendation
from agile_rates.analysis.models import (
    AnalysisResult,
    CurrentSlotStatus,
    DelayRecommendation,
)
from agile_rates.config.schema import AppConfig
from agile_rates.errors import InvalidRegionError
from agile_rates.orchestrator import AcquisitionOrchestrator, LoadFailure
from agile_rates.regions import Region
from agile_rates.timezone_utils import resolve_timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardState:
    """Everything the UI renders after a load. ``error`` is set on failure."""

    region: Region
    duration_hours: float
    analysis: AnalysisResult | None = None
    current: CurrentSlotStatus | None = None
    recommendation: DelayRecommendation | None = None
    recommendation_text: str = ""
    is_stale: bool = False
    source: str = ""
    data_day: str = ""
    last_updated: datetime | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.analysis is not None


class RatesDashboard:
    """Drives the orchestrator for user actions and background triggers."""

    def __init__(
        self,
        orchestrator: AcquisitionOrchestrator,
        config: AppConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        on_region_saved: Callable[[str], object] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._config = config or AppConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._on_region_saved = on_region_saved
        self._tz = resolve_timezone(self._config.analysis.display_timezone)
        self._duration = self._config.analysis.default_duration_hours
        self._state: DashboardState | None = None
        self._generation = 0
        self._applied_generation = 0

    @property
    def state(self) -> DashboardState | None:
        return self._state

    @property
    def region(self) -> Region:
        return self._orchestrator.context.region

    @property
    def duration_hours(self) -> float:
        return self._duration

    @property
    def is_online(self) -> bool:
        return self._orchestrator.context.online

    async def load_data(self, force_refresh: bool = False) -> DashboardState:
        """Load, analyse and publish the latest state.

        A load that completes after a newer one has already been applied
        returns its own state but does not replace the published one.
        """
        self._generation += 1
        generation = self._generation
        region = self.region

        result = await self._orchestrator.load(force_refresh)
        if isinstance(result, LoadFailure):
            state = DashboardState(
                region=region,
                duration_hours=self._duration,
                last_updated=self._state.last_updated if self._state else None,
                error=f"Unable to load pricing data: {result.reason}",
            )
        else:
            state = self._build_state(result.rates.slots, region)
            state = replace(
                state,
                is_stale=result.is_stale,
                source=result.source,
                data_day=result.rates.day.isoformat(),
                last_updated=self._clock(),
            )

        if generation >= self._applied_generation:
            self._applied_generation = generation
            self._state = state
        else:
            logger.debug("Discarding superseded load result (generation %d)", generation)
        return state

    async def select_region(self, code: str) -> DashboardState:
        """Switch region and force a fresh load. Invalid codes never reach the cache."""
        try:
            await self._orchestrator.context.change_region(code)
        except InvalidRegionError as e:
            logger.warning("Rejected region selection: %s", e)
            return DashboardState(
                region=self.region,
                duration_hours=self._duration,
                error=f"Failed to change region: {e}",
            )
        if self._on_region_saved is not None:
            self._on_region_saved(self.region.value)
        return await self.load_data(force_refresh=True)

    def select_duration(self, hours: float) -> DashboardState | None:
        """Change the appliance run time and recompute the recommendation only."""
        if hours <= 0:
            raise ValueError(f"Duration must be positive, got {hours}")
        self._duration = hours
        if self._state is None or self._state.analysis is None:
            return self._state
        recommendation = self._recommend(self._state.analysis)
        self._state = replace(
            self._state,
            duration_hours=hours,
            recommendation=recommendation,
            recommendation_text=describe_recommendation(recommendation),
        )
        return self._state

    def select_preset(self, name: str) -> DashboardState | None:
        presets = self._config.analysis.device_presets
        if name not in presets:
            raise KeyError(f"Unknown device preset: {name}")
        return self.select_duration(presets[name].duration_hours)

    async def set_online(self, online: bool) -> DashboardState | None:
        """Network state transition. Coming back online triggers a refresh."""
        was_online = self._orchestrator.context.online
        self._orchestrator.context.online = online
        if online and not was_online:
            logger.info("Back online, refreshing rates")
            return await self.load_data()
        if not online and was_online:
            logger.info("Gone offline, serving cached rates only")
        return self._state

    async def on_visible(self) -> DashboardState | None:
        if not self.is_online:
            return self._state
        return await self.load_data()

    async def run_periodic_refresh(self, stop_event: asyncio.Event) -> None:
        """Reload every refresh interval while online, until stop_event is set."""
        interval = self._config.dashboard.refresh_interval_seconds
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass
            if self.is_online:
                state = await self.load_data()
                if state.error:
                    logger.warning("Periodic refresh failed: %s", state.error)

    def _build_state(self, slots, region: Region) -> DashboardState:
        analysis_cfg = self._config.analysis
        analysis = analyze_rates(
            slots,
            tz=self._tz,
            count=analysis_cfg.ranking_count,
            cheap_fraction=analysis_cfg.cheap_fraction,
            expensive_fraction=analysis_cfg.expensive_fraction,
        )
        current = get_current_slot_status(
            slots,
            self._clock(),
            tz=self._tz,
            cheap_fraction=analysis_cfg.cheap_fraction,
            expensive_fraction=analysis_cfg.expensive_fraction,
        )
        recommendation = self._recommend(analysis)
        return DashboardState(
            region=region,
            duration_hours=self._duration,
            analysis=analysis,
            current=current,
            recommendation=recommendation,
            recommendation_text=describe_recommendation(recommendation),
        )

    def _recommend(self, analysis: AnalysisResult) -> DelayRecommendation:
        return calculate_delay_recommendation(
            analysis.slots,
            self._clock(),
            duration_hours=self._duration,
            margin=self._config.analysis.cheap_margin_pence,
            tz=self._tz,
        )

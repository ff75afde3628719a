"""
Market Odds Tracker
===================

Periodically revalues every open simulated position against live Gamma odds.

One cycle:
1. Load open positions from the store
2. Group them by market (one fetch per market, not per position)
3. Fetch + parse odds per market (paced, bounded concurrency, retried)
4. Revalue each position on that market and write it back, one row at a time
5. Roll each agent's unrealized P&L into its balance (optional)
6. Publish cycle statistics

Failure isolation: a market that cannot be fetched or a row that cannot be
written is logged and counted, never fatal. Only failing to load the
position list fails the whole cycle; the schedule keeps running either way.

Concurrency: at most one cycle runs at a time. A scheduled tick that finds
a cycle in flight is skipped (and counted), never queued.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from odds_tracker.core.config import Config
from odds_tracker.core.errors import FetchError, PersistenceError
from odds_tracker.core.gamma_client import GammaClient
from odds_tracker.core.status_reporter import StatusReporter, TrackerRunStats
from odds_tracker.core.structured_logger import StructuredLogger
from odds_tracker.revaluation.agent_balances import BalanceUpdater, sum_unrealized_by_agent
from odds_tracker.revaluation.market_grouper import group_by_market, index_by_id
from odds_tracker.revaluation.models import Position, utc_now
from odds_tracker.revaluation.persistence import PersistenceGateway
from odds_tracker.revaluation.position_report import build_position_report, log_position_report
from odds_tracker.revaluation.price_parser import parse_market_prices
from odds_tracker.revaluation.valuation import revalue

logger = logging.getLogger(__name__)


class OddsTracker:
    """
    Service object owning the revaluation schedule and its statistics.

    Construct once at startup and pass it to whatever exposes the control
    surface (HTTP route, CLI). Clock, wall time and sleep are injectable so
    tests can drive the schedule without real waiting.
    """

    def __init__(
        self,
        store,
        gamma: Optional[GammaClient] = None,
        reporter: Optional[StatusReporter] = None,
        interval_seconds: Optional[float] = None,
        concurrency: Optional[int] = None,
        revalue_balances: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        config = Config()
        self.store = store
        self.gamma = gamma or GammaClient()
        self.reporter = reporter or StatusReporter()
        self.gateway = PersistenceGateway(store, now=now)
        self.interval_seconds = _positive(
            "interval_seconds",
            config.TRACKER_INTERVAL_SECONDS if interval_seconds is None else interval_seconds,
        )
        self.concurrency = int(_positive(
            "concurrency",
            config.FETCH_CONCURRENCY if concurrency is None else concurrency,
        ))
        if revalue_balances is None:
            revalue_balances = config.REVALUE_AGENT_BALANCES
        self.balances = BalanceUpdater(store, now=now) if revalue_balances else None

        self._clock = clock
        self._now = now
        self._sleep = sleep

        self._cycle_lock = asyncio.Lock()
        self._schedule_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._cycle_tasks: Set[asyncio.Task] = set()

        self.s_logger = StructuredLogger(__name__, component="odds_tracker")

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._schedule_task is not None and not self._schedule_task.done()

    async def start(self, interval_seconds: Optional[float] = None) -> bool:
        """
        Begin periodic cycles; the first one runs immediately.
        Returns False (and changes nothing) if already active.
        """
        if self.is_active:
            logger.warning("⚠️ Odds tracker already running")
            return False

        if interval_seconds is not None:
            self.interval_seconds = _positive("interval_seconds", interval_seconds)

        self._stop_event = asyncio.Event()
        self._schedule_task = asyncio.create_task(
            self._run_schedule(self._stop_event, self.interval_seconds),
            name="OddsTrackerSchedule",
        )
        self.reporter.set_active(True)
        logger.info(f"🚀 Odds tracker started (every {self.interval_seconds:g}s)")
        return True

    async def stop(self) -> bool:
        """
        Stop scheduling new cycles. A cycle already in flight finishes
        normally. Returns False if the tracker was not active.
        """
        if not self.is_active:
            logger.debug("Odds tracker already stopped")
            return False

        self._stop_event.set()
        self._schedule_task.cancel()
        self._schedule_task = None
        self.reporter.set_active(False)
        logger.info("🛑 Odds tracker stopped")
        return True

    async def force_update(self) -> TrackerRunStats:
        """Run exactly one cycle now, independent of the schedule"""
        logger.info("🔧 Forcing odds tracker update...")
        return await self._run_cycle()

    force_refresh = force_update

    def status(self) -> dict:
        """Latest published stats; never waits for a cycle in flight"""
        return self.reporter.snapshot().to_dict()

    async def drain(self):
        """Wait for scheduled cycles that are still in flight"""
        if self._cycle_tasks:
            await asyncio.gather(*list(self._cycle_tasks), return_exceptions=True)

    async def close(self):
        await self.stop()
        await self.drain()
        await self.gamma.close()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _cycle_in_flight(self) -> bool:
        if self._cycle_lock.locked():
            return True
        return any(not task.done() for task in self._cycle_tasks)

    async def _run_schedule(self, stop_event: asyncio.Event, interval: float):
        try:
            while not stop_event.is_set():
                self._tick()
                await self._sleep(interval)
        except asyncio.CancelledError:
            logger.debug("Odds tracker schedule cancelled")

    def _tick(self):
        if self._cycle_in_flight():
            self.reporter.record_skipped_tick()
            return
        task = asyncio.create_task(self._scheduled_cycle(), name="OddsTrackerCycle")
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    async def _scheduled_cycle(self):
        try:
            await self._run_cycle()
        except Exception as e:
            # _execute_cycle already isolates failures; this only guards the schedule
            logger.error(f"❌ [Odds Tracker] Unexpected cycle failure: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _run_cycle(self) -> TrackerRunStats:
        async with self._cycle_lock:
            return await self._execute_cycle()

    async def _execute_cycle(self) -> TrackerRunStats:
        log = self.s_logger.with_new_correlation()
        started = self._clock()
        self.reporter.begin_cycle()
        log.info("🔄 [Odds Tracker] Updating position valuations...")

        try:
            loaded = await self.store.list_open_positions()
        except Exception as e:
            log.error(f"❌ [Odds Tracker] Failed to load open positions: {e}", exc_info=True)
            return self.reporter.fail_cycle(e, self._now(), self._elapsed_ms(started))

        positions = [p for p in loaded if p.is_open]
        by_id = index_by_id(positions)
        groups = group_by_market(positions)
        self.reporter.record_positions(len(positions), len(groups))
        marked: List[Tuple[str, float]] = []

        if not groups:
            log.info("📊 No open positions to revalue")
        else:
            log.info(f"📊 Found {len(positions)} open positions across {len(groups)} markets")
            semaphore = asyncio.Semaphore(self.concurrency)
            await asyncio.gather(*(
                self._revalue_market(market_id, [by_id[pid] for pid in ids], semaphore, marked, log)
                for market_id, ids in groups.items()
            ))

        if self.balances is not None and marked:
            updated, failed = await self.balances.apply(sum_unrealized_by_agent(marked))
            self.reporter.record_balances(updated, failed)

        stats = self.reporter.finish_cycle(self._now(), self._elapsed_ms(started))
        log.info(
            f"✅ [Odds Tracker] Updated {stats.updated_count}/{stats.total_positions} positions "
            f"({stats.unique_markets - stats.fetch_errors}/{stats.unique_markets} markets, "
            f"{stats.error_count} errors) in {stats.duration_ms:.0f}ms",
            extra_fields={"stats": stats.to_dict()},
        )
        log_position_report(build_position_report(positions, self._now()))
        return stats

    async def _revalue_market(
        self,
        market_id: str,
        positions: List[Position],
        semaphore: asyncio.Semaphore,
        marked: List[Tuple[str, float]],
        log: StructuredLogger,
    ):
        async with semaphore:
            try:
                payload = await self.gamma.fetch_market(market_id)
            except FetchError as e:
                self.reporter.record_fetch_error()
                log.error(f"❌ Failed to fetch odds for market {market_id}: {e}")
                return
            except Exception as e:
                self.reporter.record_fetch_error()
                log.error(f"❌ Unexpected error fetching market {market_id}: {e}", exc_info=True)
                return

        snapshot = parse_market_prices(market_id, payload, self._now())
        log.debug(
            f"📈 {market_id}: YES={snapshot.yes_price:.4f} NO={snapshot.no_price:.4f} "
            f"({snapshot.source_shape}, {len(positions)} positions)"
        )

        for position in positions:
            valuation = revalue(position, snapshot.odds)
            marked.append((position.agent_id, valuation.unrealized_pnl))
            try:
                written = await self.gateway.apply(position, snapshot, valuation)
            except PersistenceError as e:
                self.reporter.record_persist_error()
                log.error(f"❌ Failed to update position {position.id}: {e}")
                continue

            if written:
                self.reporter.record_update()
                position.current_odds = snapshot.odds
                position.expected_payout = valuation.expected_payout
                position.unrealized_pnl = valuation.unrealized_pnl

    def _elapsed_ms(self, started: float) -> float:
        return (self._clock() - started) * 1000.0


def _positive(name: str, value: float) -> float:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value

import asyncio
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from server_monitor.core.adapters.appliance import ApplianceAdapter
from server_monitor.core.adapters.base import AdapterReading, SourceAdapter
from server_monitor.core.models.telemetry import Snapshot
from server_monitor.core.processing.merge_engine import MergeEngine
from server_monitor.core.processing.trend_store import TrendSeries, TrendStore
from server_monitor.core.services.snapshot_cache import SnapshotCache

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION_INTERVAL_S = 1.0


class CollectionError(RuntimeError):
    """No snapshot could be produced: every configured source failed."""


class Collector:
    """
    Fixed-cadence tick: read every adapter, merge, publish to the cache and
    append to the trend store.

    Adapter reads are synchronous (psutil, the Docker socket), so the loop
    runs each cycle in a worker thread. The appliance adapter only returns
    the client's cached fragment and never blocks on the network.
    """

    def __init__(
        self,
        local: SourceAdapter,
        container: SourceAdapter,
        appliance: ApplianceAdapter,
        merge_engine: MergeEngine,
        trend_store: TrendStore,
        cache: SnapshotCache,
        interval: float = DEFAULT_COLLECTION_INTERVAL_S,
        clock: Callable[[], float] = time.time,
    ):
        self.local = local
        self.container = container
        self.appliance = appliance
        self.merge_engine = merge_engine
        self.trend_store = trend_store
        self.cache = cache
        self.interval = interval
        self.clock = clock

        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._collect_lock = threading.Lock()
        self._last_failed = False
        self._failure: Optional[str] = None

    def _adapters(self) -> List[SourceAdapter]:
        adapters = [self.local, self.container]
        if self.appliance.configured:
            adapters.append(self.appliance)
        return adapters

    def _read_all(self) -> Dict[str, AdapterReading]:
        readings: Dict[str, AdapterReading] = {}
        failures = []
        adapters = self._adapters()
        for adapter in adapters:
            try:
                readings[adapter.name] = adapter.read()
            except Exception as e:
                logger.error(f"Adapter '{adapter.name}' failed: {e}")
                failures.append(adapter.name)
                readings[adapter.name] = AdapterReading.unavailable(adapter.name)
        if len(failures) == len(adapters):
            raise CollectionError(f"All telemetry sources failed: {', '.join(failures)}")
        return readings

    def collect_once(self) -> Snapshot:
        """
        Run one collection cycle and publish its snapshot.

        Raises:
            CollectionError: every configured adapter raised.
        """
        with self._collect_lock:
            try:
                readings = self._read_all()
            except CollectionError as e:
                # The cached snapshot is stale from here until a cycle succeeds
                self._failure = str(e)
                raise
            timestamp = self.clock()
            snapshot = self.merge_engine.merge(
                local=readings[self.local.name].fragment,
                container=readings[self.container.name].fragment,
                appliance=readings.get(self.appliance.name, AdapterReading.unavailable(self.appliance.name)).fragment,
                timestamp=timestamp,
                appliance_hostname=self.appliance.hostname(),
            )
            self.cache.set(snapshot, timestamp)
            self.trend_store.record(snapshot, timestamp)
            self._failure = None
            return snapshot

    def get_current_snapshot(self) -> Snapshot:
        """
        Cached snapshot, collecting once synchronously if none exists yet.

        After a total failure the cached snapshot is not served: one more
        cycle is attempted and its CollectionError propagates.
        """
        if self._failure is not None:
            logger.info(f"Last collection failed ({self._failure}), retrying on demand")
            return self.collect_once()
        snapshot = self.cache.get()
        if snapshot is not None:
            return snapshot
        logger.info("No snapshot cached yet, collecting on demand")
        return self.collect_once()

    @property
    def failed(self) -> bool:
        return self._failure is not None

    def get_trends(self, window: Optional[float] = None) -> Dict[str, TrendSeries]:
        return self.trend_store.query(window=window, now=self.clock())

    # --- Background loop ---

    def start(self) -> None:
        if self.running:
            return
        self.running = True
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._collect_loop())
        logger.info(f"Collector started ({self.interval:.1f}s interval)")

    async def stop(self) -> None:
        self.running = False
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Collector stopped")

    async def _collect_loop(self) -> None:
        while self.running:
            start_tick = time.monotonic()
            try:
                await asyncio.to_thread(self.collect_once)
                if self._last_failed:
                    logger.info("Collection recovered")
                self._last_failed = False
            except CollectionError as e:
                if not self._last_failed:
                    logger.error(f"Collection cycle failed: {e}")
                self._last_failed = True
            except Exception as e:
                logger.exception(f"Unexpected error in collection cycle: {e}")

            elapsed = time.monotonic() - start_tick
            await asyncio.sleep(max(0.0, self.interval - elapsed))

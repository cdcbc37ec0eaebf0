"""
Prefetch Scheduler
Per-connection repeating collection on a fixed interval
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional
import structlog

logger = structlog.get_logger()

CollectFn = Callable[[str], Awaitable[Any]]


@dataclass
class PrefetchState:
    """Observable state of one scheduled key."""
    key: str
    interval_seconds: float
    is_active: bool = False
    run_count: int = 0
    error_count: int = 0
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    next_run_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "interval_seconds": self.interval_seconds,
            "is_active": self.is_active,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
        }


class PrefetchScheduler:
    """
    Owns a mapping from key (a connection id) to a repeating asyncio task.

    start() runs one collection immediately and then one per interval.
    start() and stop() are idempotent. Runs for the same key are serialized,
    so a manual trigger never overlaps a timer tick. Collection failures are
    recorded on the state and never propagate out of the timer task.

    State lives in memory only and is lost when the process restarts.
    """

    def __init__(self, collect: CollectFn):
        self._collect = collect
        self._tasks: Dict[str, asyncio.Task] = {}
        self._states: Dict[str, PrefetchState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def start(self, key: str, interval_seconds: float) -> PrefetchState:
        """Start collecting for a key. Must be called from a running event loop."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        state = self._states.get(key)
        if self.is_running(key):
            if state.interval_seconds == interval_seconds:
                return state
            self.stop(key)

        if state is None:
            state = PrefetchState(key=key, interval_seconds=interval_seconds)
            self._states[key] = state

        state.interval_seconds = interval_seconds
        state.is_active = True
        state.next_run_at = datetime.utcnow()
        self._tasks[key] = asyncio.create_task(self._run_forever(key))

        logger.info("prefetch_started", key=key, interval_seconds=interval_seconds)
        return state

    def stop(self, key: str) -> bool:
        """Cancel the timer for a key. Returns False when nothing was running."""
        task = self._tasks.pop(key, None)
        state = self._states.get(key)
        if state is not None:
            state.is_active = False
            state.next_run_at = None

        if task is None:
            return False

        task.cancel()
        logger.info("prefetch_stopped", key=key)
        return True

    async def shutdown(self) -> None:
        """Stop every key and wait until the cancelled tasks have finished."""
        tasks = list(self._tasks.values())
        for key in list(self._tasks.keys()):
            self.stop(key)
        await asyncio.gather(*tasks, return_exceptions=True)

    async def trigger(self, key: str) -> bool:
        """Run one collection now. Returns False for keys that are not active."""
        state = self._states.get(key)
        if state is None or not state.is_active:
            return False
        return await self._run_once(key)

    def update_config(
        self,
        key: str,
        interval_seconds: Optional[float] = None,
        enabled: Optional[bool] = None
    ) -> Optional[PrefetchState]:
        """
        Apply new settings to a key.

        The timer restarts only when the interval actually changed; enabling
        starts it and disabling stops it.
        """
        state = self._states.get(key)

        if enabled is False:
            self.stop(key)
            return state

        if enabled and not self.is_running(key):
            return self.start(key, interval_seconds or (state.interval_seconds if state else 0))

        if state is None or not state.is_active:
            return state

        if interval_seconds is not None and interval_seconds != state.interval_seconds:
            self.stop(key)
            return self.start(key, interval_seconds)

        return state

    def is_running(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def get_state(self, key: str) -> Optional[PrefetchState]:
        return self._states.get(key)

    def states(self) -> List[PrefetchState]:
        return list(self._states.values())

    async def _run_forever(self, key: str) -> None:
        state = self._states[key]
        while True:
            await self._run_once(key)
            state.next_run_at = datetime.utcnow() + timedelta(seconds=state.interval_seconds)
            await asyncio.sleep(state.interval_seconds)

    async def _run_once(self, key: str) -> bool:
        state = self._states[key]
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            try:
                await self._collect(key)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                state.error_count += 1
                state.last_error = str(e) or type(e).__name__
                logger.warning("prefetch_collection_failed", key=key, error=state.last_error)
                return False

            state.run_count += 1
            state.last_run_at = datetime.utcnow()
            state.last_error = None
            logger.debug("prefetch_collection_completed", key=key, run_count=state.run_count)
            return True

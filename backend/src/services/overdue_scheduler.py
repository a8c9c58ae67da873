"""
Daily scheduler for the overdue task scan.

The scheduler lives on the API event loop. Each scan pass runs in its own
worker thread with its own event loop and database session; the only thing
that crosses back is a stream of immutable scan events, posted onto a
bounded asyncio.Queue owned by the host loop. A consumer task on the host
logs the events and keeps the last terminal one.

Only one pass runs at a time. ``run_now`` refuses to start a pass while
another one is in progress.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from backend.src.config.settings import AppSettings, get_settings
from backend.src.db.database import SessionLocal
from backend.src.services.notification_service import NotificationService
from backend.src.services.overdue_scanner import (
    EventSink,
    OverdueTaskScanner,
    ScanEvent,
    ScanFailed,
    ScanProgress,
)
from backend.src.services.task_directory import SqlTaskDirectory
from backend.src.utils.logging_config import get_logger
from backend.src.utils.realtime import RealtimeHub


logger = get_logger("scheduler")

EVENT_QUEUE_SIZE = 100


def seconds_until_next_run(now: datetime, hour: int) -> float:
    """Seconds from ``now`` until the next ``hour``:00 (same clock as ``now``)."""
    next_run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def execute_scan_pass(
    on_event: EventSink,
    session_factory: Callable[[], Session] = SessionLocal,
    settings: Optional[AppSettings] = None,
    realtime_hub: Optional[RealtimeHub] = None,
    batch_size: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Run one scan pass with a fresh session and report through ``on_event``.

    A terminal event (summary or failure) is always emitted.

    Returns:
        Exit code: 0 on success, 1 on failure
    """
    settings = settings or get_settings()
    terminal_seen = False

    async def sink(event: ScanEvent) -> None:
        nonlocal terminal_seen
        terminal_seen = terminal_seen or event.terminal
        await on_event(event)

    db = None
    exit_code = 1
    try:
        db = session_factory()
        scanner = OverdueTaskScanner(
            directory=SqlTaskDirectory(db),
            notification_service=NotificationService.from_settings(db, settings, realtime_hub),
            batch_size=batch_size or settings.overdue_batch_size,
            on_event=sink,
        )
        await scanner.run(now)
        exit_code = 0
    except Exception as e:
        if not terminal_seen:
            logger.error(f"Overdue scan could not start: {e}", exc_info=True)
            await sink(ScanFailed("-", str(e) or type(e).__name__))
    finally:
        if db is not None:
            db.close()
    return exit_code


class OverdueTaskScheduler:
    """
    Runs the overdue scan daily at ``check_hour`` (UTC) and on demand.

    Args:
        session_factory: Creates the worker's own session
        settings: Application settings (VAPID, batch size, schedule)
        realtime_hub: Hub used by the real-time channel during scans
        queue_size: Capacity of the host-side event queue
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        settings: Optional[AppSettings] = None,
        realtime_hub: Optional[RealtimeHub] = None,
        queue_size: int = EVENT_QUEUE_SIZE,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.realtime_hub = realtime_hub
        self.queue_size = queue_size

        self.last_event: Optional[ScanEvent] = None
        self.last_exit_code: Optional[int] = None

        self._processing = False
        self._events: Optional["asyncio.Queue[ScanEvent]"] = None
        self._consumer: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the daily timer on the running loop."""
        if self.is_running:
            return
        self._ensure_consumer()
        self._shutdown_event = asyncio.Event()
        self._timer = asyncio.create_task(self._timer_loop())
        logger.info(
            "Overdue task scheduler started",
            extra={"check_hour": self.settings.overdue_check_hour},
        )

    async def stop(self) -> None:
        """Stop the timer and wait for an in-flight pass to finish."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()

        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        if self._current is not None and not self._current.done():
            # Worker threads cannot be cancelled; let the pass complete
            await asyncio.shield(self._current)

        if self._events is not None:
            await self._events.join()
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        logger.info("Overdue task scheduler stopped")

    # ------------------------------------------------------------------
    # Running passes
    # ------------------------------------------------------------------

    def run_now(self, now: Optional[datetime] = None, batch_size: Optional[int] = None) -> bool:
        """
        Start a pass in the background.

        Must be called from the host event loop.

        Returns:
            False if a pass is already in progress, True if one was started
        """
        if self._processing:
            logger.info("Overdue scan already in progress, skipping")
            return False
        self._processing = True
        self._current = asyncio.create_task(self._run_pass(now, batch_size))
        return True

    async def run_pass(self, now: Optional[datetime] = None, batch_size: Optional[int] = None) -> Optional[int]:
        """
        Run a pass and wait for it.

        Returns:
            Worker exit code, or None if a pass was already in progress
        """
        if not self.run_now(now, batch_size):
            return None
        return await self._current

    async def _run_pass(self, now: Optional[datetime], batch_size: Optional[int]) -> int:
        self._ensure_consumer()
        host_loop = asyncio.get_running_loop()
        events = self._events

        async def post_to_host(event: ScanEvent) -> None:
            # Runs on the worker loop; waits while the host queue is full
            future = asyncio.run_coroutine_threadsafe(events.put(event), host_loop)
            await asyncio.wrap_future(future)

        try:
            exit_code = await asyncio.to_thread(
                self._worker_main, post_to_host, now, batch_size
            )
            # Host-side bookkeeping once every posted event has been consumed
            await events.join()
            self.last_exit_code = exit_code
            return exit_code
        finally:
            self._processing = False

    def _worker_main(
        self,
        on_event: EventSink,
        now: Optional[datetime],
        batch_size: Optional[int],
    ) -> int:
        """Thread body: a private event loop around one scan pass."""
        return asyncio.run(execute_scan_pass(
            on_event,
            session_factory=self.session_factory,
            settings=self.settings,
            realtime_hub=self.realtime_hub,
            batch_size=batch_size,
            now=now,
        ))

    def _ensure_consumer(self) -> None:
        if self._events is None:
            self._events = asyncio.Queue(maxsize=self.queue_size)
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume_events())

    async def _consume_events(self) -> None:
        while True:
            event = await self._events.get()
            try:
                self._handle_event(event)
            finally:
                self._events.task_done()

    def _handle_event(self, event: ScanEvent) -> None:
        message = event.to_message()
        if isinstance(event, ScanProgress):
            logger.info("Overdue scan progress", extra={"scan_id": event.scan_id, **message})
        elif isinstance(event, ScanFailed):
            logger.error("Overdue scan failed", extra={"scan_id": event.scan_id, **message})
        else:
            logger.info("Overdue scan completed", extra={"scan_id": event.scan_id, **message})
        if event.terminal:
            self.last_event = event

    async def _timer_loop(self) -> None:
        while not self._shutdown_event.is_set():
            delay = seconds_until_next_run(datetime.utcnow(), self.settings.overdue_check_hour)
            logger.debug("Next overdue scan scheduled", extra={"in_seconds": int(delay)})
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            if self.run_now():
                try:
                    await self._current
                except Exception:
                    logger.error("Scheduled overdue scan crashed", exc_info=True)

"""
Periodic reporter.

Lifecycle: idle -> started (foreground | background) -> running, repeating
    send info (until it succeeds once) -> sleep(interval) -> send data -> send exceptions
until the process exits, or an error escapes the loop (crashed).
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from callwatch.core.exceptions import ConfigurationError, SchedulingFault
from callwatch.core.logging import logger, PerformanceLogger, SensitiveDataMasker
from callwatch.core.tracing import Trace
from callwatch.host import HostInfo, PROCESS_STARTED_AT
from callwatch.reporting.payloads import (
    DataPayload,
    ExceptionsPayload,
    InfoPayload,
    Payload,
    PingPayload,
    TracePayload,
)
from callwatch.reporting.router import DeliveryRouter
from callwatch.scm import ScmInfo
from callwatch.session import Session


class Reporter:
    """
    Flushes the session to the collector every interval.

    Policy when the info update has not succeeded yet: the interval's data and
    exceptions are discarded (session reset), not queued. This bounds memory
    while the collector is unreachable.

    Sends run on a small thread pool so a slow endpoint never delays the next
    interval; the info send is awaited so the gate reflects its real outcome.
    """

    def __init__(
        self,
        session: Session,
        router: DeliveryRouter,
        endpoints: Sequence[str],
        interval: float = 60,
        host: Optional[HostInfo] = None,
        scm: Optional[ScmInfo] = None,
        sleep: Callable[[float], None] = time.sleep,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.session = session
        self.router = router
        self.endpoints: List[str] = list(endpoints)
        self.interval = interval
        self.host = host or HostInfo()
        self.scm = scm
        self._sleep = sleep
        self._executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="callwatch-send"
        )
        self._masker = SensitiveDataMasker()
        self._perf = PerformanceLogger()

        self._started_at: Optional[datetime] = None
        self._background = False
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._info_update_sent = False

    @property
    def interval(self) -> float:
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ConfigurationError(
                f"Reporter interval must be positive, got {value!r}",
                context={"setting": "reporter.interval"},
            )
        self._interval = value

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at

    @property
    def started(self) -> bool:
        return self._started_at is not None

    @property
    def foreground(self) -> bool:
        return self.started and not self._background

    @property
    def background(self) -> bool:
        return self.started and self._background

    @property
    def alive(self) -> bool:
        """True while the loop runs (worker thread alive in background mode)."""
        if not self.started:
            return False
        if self._background:
            return self._thread is not None and self._thread.is_alive()
        return self._running

    @property
    def info_update_sent(self) -> bool:
        return self._info_update_sent

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, run_in_background: bool = True) -> None:
        """
        Start the loop; a no-op while already started and alive.

        In the foreground this call only returns when the loop crashes.
        """
        if self.alive:
            logger.debug("Reporter already running")
            return

        restarted = self.started
        if self._started_at is None:
            self._started_at = PROCESS_STARTED_AT
        self._background = run_in_background

        if run_in_background:
            self._thread = threading.Thread(
                target=self._run, args=(restarted,), name="callwatch-reporter", daemon=True
            )
            self._thread.start()
        else:
            self._run(restarted)

    def revive(self) -> None:
        """Restart a background reporter whose worker died; never a foreground one."""
        if not self.started or self.foreground:
            return
        if self._thread is None or not self._thread.is_alive():
            logger.warning("Reviving reporter thread")
            self.start(run_in_background=True)

    def _run(self, restarted: bool) -> None:
        logger.info(
            "Starting reporter",
            endpoints=[self._masker.mask(uri) for uri in self.endpoints],
            interval=self.interval,
            restarted=restarted,
        )
        self._running = True
        try:
            while True:
                self.send_info_update()
                self._sleep(self.interval)
                self.send_data_update()
                self.send_exceptions_update()
        except Exception as e:
            logger.critical("Reporter loop crashed", error=f"{type(e).__name__}: {e}")
            raise SchedulingFault(f"Reporter loop crashed: {e}", cause=e) from e
        finally:
            self._running = False

    # ------------------------------------------------------------------
    # Sends
    # ------------------------------------------------------------------

    def send_info_update(self) -> bool:
        """Send the info payload until it has succeeded once."""
        if self._info_update_sent:
            return True

        payload = InfoPayload.build(
            self.session.info, self._started_at or PROCESS_STARTED_AT, self.host, self.scm
        )
        logger.debug("Sending info", params=payload.params)
        self._info_update_sent = self._deliver(payload).result()
        return self._info_update_sent

    def send_data_update(self) -> Optional[Future]:
        """Ship the interval's samples, or discard them while info is unsent."""
        if not self._info_update_sent:
            self.session.reset()
            logger.warning("Discarding interval data")
            return None

        payload = DataPayload.build(self.session.data)
        logger.debug("Sending data", samples=len(payload.data))
        return self._deliver(payload)

    def send_exceptions_update(self) -> Optional[Future]:
        """Ship the interval's exceptions, or discard them while info is unsent."""
        if not self._info_update_sent:
            self.session.reset()
            logger.warning("Discarding interval exceptions")
            return None

        data = self.session.exception_data
        if not data:
            logger.debug("No exceptions for this interval")
            return None

        payload = ExceptionsPayload.build(data)
        logger.debug("Sending exceptions", exceptions=len(data))
        return self._deliver(payload)

    def send_trace(self, trace: Trace) -> Optional[Future]:
        """Ship a recorded trace asynchronously."""
        data = trace.data
        if not data:
            logger.debug("No trace to send")
            return None

        payload = TracePayload.build(data)
        logger.debug("Sending trace", trace_id=trace.id)
        return self._deliver(payload)

    def ping(self) -> bool:
        """Synchronous connectivity check."""
        payload = PingPayload.build(
            self.session.info, self._started_at or PROCESS_STARTED_AT, self.host, self.scm
        )
        with self._perf.measure("ping", endpoints=len(self.endpoints)):
            return self._store(payload)

    def _deliver(self, payload: Payload) -> Future:
        return self._executor.submit(self._store, payload)

    def _store(self, payload: Payload) -> bool:
        """Router call that never raises: delivery failures are not fatal to the loop."""
        try:
            return self.router.store(payload, self.endpoints)
        except Exception as e:
            logger.error(
                "Delivery failed",
                include_trace=True,
                kind=payload.kind,
                error=f"{type(e).__name__}: {e}",
            )
            return False

    def shutdown(self, wait: bool = True) -> None:
        """Release the send pool (pending sends finish when wait is True)."""
        self._executor.shutdown(wait=wait)

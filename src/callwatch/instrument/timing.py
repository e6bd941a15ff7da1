"""
Runtime side of interception.

Every wrapped call site funnels into TimingContext.dispatch() with the stable
offset of its handler. All per-call state (marker stack, reentrancy counters)
is thread-local; nothing here takes a lock.
"""

import threading
import time
from typing import Any, Callable, Dict, Hashable, List, Optional, TYPE_CHECKING

from callwatch.core.exceptions import HandlerError
from callwatch.core.logging import logger
from callwatch.core.tracing import current_trace
from callwatch.instrument.handlers import HandlerDescriptor, HandlerMode

if TYPE_CHECKING:
    from callwatch.instrument.registry import InterceptionRegistry
    from callwatch.session import Session


class TimingContext:
    """
    Executes one intercepted call according to its handler's mode.

    Three variants:
    - timing: push mark_as, time the call, pop, emit if the only_within gate allows
    - reentrant-timing: count nested entries per token, emit only for the outermost frame
    - exception-capturing: on error build a sample, record it in the session, re-raise

    The wrapped operation's result or error always propagates unchanged.
    """

    def __init__(
        self,
        registry: "InterceptionRegistry",
        session: Optional["Session"] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.registry = registry
        self.session = session
        self._clock = clock
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Thread-local state
    # ------------------------------------------------------------------

    def markers(self) -> List[str]:
        """This thread's marker stack."""
        markers = getattr(self._local, "markers", None)
        if markers is None:
            markers = self._local.markers = []
        return markers

    def counters(self) -> Dict[Hashable, int]:
        """This thread's reentrancy counters, keyed by token."""
        counters = getattr(self._local, "counters", None)
        if counters is None:
            counters = self._local.counters = {}
        return counters

    def within(self, marker: Optional[str]) -> bool:
        """True when no gate is set or the gating marker is active on this thread."""
        return marker is None or marker in self.markers()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(
        self,
        offset: int,
        receiver: Any,
        call: Callable[..., Any],
        args: tuple,
        kwargs: Dict[str, Any],
    ) -> Any:
        """Run call(*args, **kwargs) under the handler registered at offset."""
        descriptor = self.registry.handler(offset)
        if descriptor is None:
            # Cleared registry: the wrapper stays installed but does nothing
            return call(*args, **kwargs)

        trace = current_trace()
        if trace is None:
            return self._run(descriptor, receiver, call, args, kwargs)

        with trace.step(descriptor.label):
            return self._run(descriptor, receiver, call, args, kwargs)

    def _run(self, descriptor, receiver, call, args, kwargs):
        if descriptor.mode is HandlerMode.EXCEPTION_CAPTURING:
            return self.capture_exceptions(descriptor, receiver, call, args, kwargs)

        context = self.find_context(descriptor, receiver, args, kwargs)
        if descriptor.mode is HandlerMode.REENTRANT_TIMING:
            return self.reentrant_timing(descriptor, context, receiver, call, args, kwargs)
        return self.timing(descriptor, context, receiver, call, args, kwargs)

    def find_context(
        self, descriptor: HandlerDescriptor, receiver: Any, args: tuple, kwargs: Dict[str, Any]
    ) -> Any:
        """
        Resolve the measurement context through the associated metric.

        The metric is looked up on every call so a replaced context_finder takes
        effect without re-instrumenting.
        """
        if descriptor.metric_index is None:
            return []

        metric = self.registry.metric(descriptor.metric_index)
        if metric is None:
            return []

        try:
            return metric.context_finder(receiver, *args, **kwargs)
        except Exception as e:
            raise HandlerError(
                f"Context finder failed for {descriptor.label}: {e}",
                context={"offset": descriptor.offset, "metric": getattr(metric, "name", None)},
                cause=e,
            ) from e

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def timing(self, descriptor, context, receiver, call, args, kwargs):
        """Plain timing with optional marker push and only_within gate."""
        mark = descriptor.mark_as
        markers = self.markers()
        if mark:
            markers.append(mark)

        failed = False
        start = self._clock()
        try:
            return call(*args, **kwargs)
        except BaseException:
            failed = True
            raise
        finally:
            elapsed = self._clock() - start
            if mark:
                markers.pop()
            if self.within(descriptor.only_within):
                self._emit(descriptor, failed, (context, receiver, elapsed) + tuple(args), kwargs)

    def reentrant_timing(self, descriptor, context, receiver, call, args, kwargs):
        """
        Timing that emits once per outermost entry of a token.

        Each frame times itself; only the frame that brings the counter back to
        zero emits, so recursive chains produce the outer frame's wall-clock span.
        """
        token = descriptor.reentrant_token
        counters = self.counters()
        counters[token] = counters.get(token, 0) + 1

        failed = False
        start = self._clock()
        try:
            return call(*args, **kwargs)
        except BaseException:
            failed = True
            raise
        finally:
            elapsed = self._clock() - start
            counters[token] -= 1
            if counters[token] == 0:
                del counters[token]
                if self.within(descriptor.only_within):
                    self._emit(descriptor, failed, (context, receiver, elapsed) + tuple(args), kwargs)

    def capture_exceptions(self, descriptor, receiver, call, args, kwargs):
        """Record raised errors in the session and re-raise them untouched."""
        try:
            return call(*args, **kwargs)
        except Exception as error:
            try:
                sample = descriptor.callback(error, receiver, *args, **kwargs)
            except Exception as e:
                logger.error(
                    "Exception handler failed while capturing",
                    handler=descriptor.label,
                    error=str(e),
                    original=type(error).__name__,
                )
            else:
                self._record_exception(descriptor, error, sample)
            raise

    def _record_exception(self, descriptor: HandlerDescriptor, error: Exception, sample: Any) -> None:
        if self.session is None:
            logger.debug("No session attached, captured exception dropped", handler=descriptor.label)
            return
        try:
            self.session.add_exception(error, sample)
        except Exception as e:
            logger.error(
                "Could not record captured exception",
                handler=descriptor.label,
                error=f"{type(e).__name__}: {e}",
                original=type(error).__name__,
            )

    def _emit(
        self,
        descriptor: HandlerDescriptor,
        failed: bool,
        handler_args: tuple,
        handler_kwargs: Dict[str, Any],
    ) -> None:
        """
        Call the handler.

        A failing handler is a setup bug and raises HandlerError, unless the
        wrapped call already raised: that error must win, so the handler failure
        is only logged.
        """
        try:
            descriptor.callback(*handler_args, **handler_kwargs)
        except Exception as e:
            if failed:
                logger.error("Handler failed after wrapped call raised", handler=descriptor.label, error=str(e))
                return
            raise HandlerError(
                f"Handler {descriptor.label} raised {type(e).__name__}: {e}",
                context={"offset": descriptor.offset, "mode": descriptor.mode.value},
                cause=e,
            ) from e

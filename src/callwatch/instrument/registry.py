"""
Interception registry.

Central, append-only table of handlers addressed by integer offset. Wrappers
installed on call sites hold only their offset and resolve the handler on
every call through TimingContext.dispatch().
"""

import functools
import inspect
import itertools
import threading
from typing import Any, Callable, Dict, Hashable, List, Optional, Union, TYPE_CHECKING

from callwatch.core.exceptions import AttachmentError, BadTargetError
from callwatch.core.logging import logger
from callwatch.instrument.handlers import HandlerDescriptor, HandlerMode, Target
from callwatch.instrument.timing import TimingContext

if TYPE_CHECKING:
    from callwatch.session import Session


OFFSET_ATTRIBUTE = "__callwatch_offset__"


class InterceptionRegistry:
    """
    Registered handlers and the metrics they resolve context through.

    Guarantees:
    - Offsets are issued from a monotonic counter and never reused, clear() included
    - Registration never mutates an already-issued entry, so in-flight calls
      through older handlers are unaffected
    - clear() empties the tables but does NOT remove wrappers already installed;
      those call sites fall through to the original operation

    Usage:
    ```
    registry.add("shop.orders:OrderService#place", handler=on_time, metric=metric)
    registry.add("shop.db:Connection#execute", handler=on_time, reentrant_token="db")
    registry.add("shop.views:render", handler=on_time, mark_as="render")
    registry.add("shop.orders:OrderService#place", handler=sample, capture_exceptions=True)
    ```
    """

    def __init__(self, session: Optional["Session"] = None) -> None:
        self._lock = threading.Lock()
        self._handlers: Dict[int, HandlerDescriptor] = {}
        self._metrics: Dict[int, Any] = {}
        self._offsets = itertools.count()
        self._metric_indexes = itertools.count()
        self.timing = TimingContext(self, session)

    @property
    def session(self) -> Optional["Session"]:
        """Session receiving captured exceptions."""
        return self.timing.session

    @session.setter
    def session(self, session: Optional["Session"]) -> None:
        self.timing.session = session

    def __len__(self) -> int:
        return len(self._handlers)

    def handler(self, offset: int) -> Optional[HandlerDescriptor]:
        """Handler registered at offset, or None once cleared."""
        return self._handlers.get(offset)

    def metric(self, index: int) -> Any:
        """Metric registered at index, or None once cleared."""
        return self._metrics.get(index)

    def register(
        self,
        handler: Callable[..., Any],
        mode: Union[HandlerMode, str, None] = None,
        *,
        metric: Any = None,
        reentrant_token: Optional[Hashable] = None,
        only_within: Optional[str] = None,
        mark_as: Optional[str] = None,
        capture_exceptions: bool = False,
        name: Optional[str] = None,
    ) -> int:
        """
        Register a handler and return its offset.

        Without an explicit mode it is derived from the options:
        capture_exceptions -> exception-capturing, reentrant_token -> reentrant-timing,
        otherwise timing.
        """
        if mode is None:
            if capture_exceptions:
                mode = HandlerMode.EXCEPTION_CAPTURING
            elif reentrant_token is not None:
                mode = HandlerMode.REENTRANT_TIMING
            else:
                mode = HandlerMode.TIMING
        else:
            mode = HandlerMode(mode)

        if mode is HandlerMode.REENTRANT_TIMING and reentrant_token is None:
            raise ValueError("Reentrant timing requires a reentrant_token")

        with self._lock:
            metric_index = None
            if metric is not None:
                metric_index = next(self._metric_indexes)
                self._metrics[metric_index] = metric

            offset = next(self._offsets)
            self._handlers[offset] = HandlerDescriptor(
                offset=offset,
                callback=handler,
                mode=mode,
                mark_as=mark_as,
                only_within=only_within,
                metric_index=metric_index,
                reentrant_token=reentrant_token,
                name=name,
            )

        logger.debug("Handler registered", offset=offset, mode=mode.value, name=name)
        return offset

    def attach(self, target: Target, handler: Callable[..., Any], **options: Any) -> int:
        """
        Register handler and install a wrapper on target.

        Raises:
            AttachmentError: the call site cannot be wrapped
        """
        original = target.lookup()
        func = self._unwrap(target, original)
        options.setdefault("name", target.label)
        offset = self.register(handler, **options)

        try:
            wrapper = self._wrap(target, original, func, offset)
            setattr(target.owner, target.name, wrapper)
        except (TypeError, AttributeError) as e:
            with self._lock:
                self._handlers.pop(offset, None)
            raise AttachmentError(
                f"Could not attach to {target.label}: {e}", context={"target": target.label}, cause=e
            ) from e

        logger.info("Instrumented call site", target=target.label, offset=offset)
        return offset

    def add(
        self, *raw_targets: Union[str, Target], handler: Callable[..., Any], **options: Any
    ) -> List[int]:
        """
        Attach handler to every target of a batch.

        A malformed descriptor raises BadTargetError. Any other failure is logged
        and only that target is skipped.

        Returns:
            Offsets of the targets that were instrumented
        """
        offsets = []
        for raw_target in raw_targets:
            try:
                target = raw_target if isinstance(raw_target, Target) else Target.resolve(raw_target)
                offsets.append(self.attach(target, handler, **dict(options)))
            except BadTargetError:
                raise
            except AttachmentError as e:
                logger.error("Unable to instrument target", target=str(raw_target), error=e.message)
            except Exception as e:
                logger.error(
                    "Unable to instrument target",
                    include_trace=True,
                    target=str(raw_target),
                    error=f"{type(e).__name__}: {e}",
                )
        return offsets

    def clear(self) -> None:
        """
        Empty the handler and metric tables.

        Important: this does not de-instrument. Re-attach targets for fresh behavior.
        """
        with self._lock:
            handlers = len(self._handlers)
            self._handlers.clear()
            self._metrics.clear()
        logger.info("Interception registry cleared", handlers=handlers)

    @staticmethod
    def _unwrap(target: Target, original: Any) -> Callable[..., Any]:
        """The plain function behind original, or AttachmentError if it cannot be timed."""
        if isinstance(original, (classmethod, staticmethod)):
            func = original.__func__
        elif callable(original):
            func = original
        else:
            raise AttachmentError(f"{target.label} is not callable", context={"target": target.label})

        if inspect.iscoroutinefunction(func):
            raise AttachmentError(
                f"{target.label} is a coroutine function and cannot be timed synchronously",
                context={"target": target.label},
            )
        return func

    def _wrap(self, target: Target, original: Any, func: Callable[..., Any], offset: int) -> Any:
        """Build the wrapper matching the kind of attribute being replaced."""
        dispatch = self.timing.dispatch

        if isinstance(original, classmethod):

            @functools.wraps(func)
            def class_wrapper(cls, *args, **kwargs):
                return dispatch(offset, cls, functools.partial(func, cls), args, kwargs)

            setattr(class_wrapper, OFFSET_ATTRIBUTE, offset)
            return classmethod(class_wrapper)

        owner = target.owner

        if isinstance(original, staticmethod):

            @functools.wraps(func)
            def static_wrapper(*args, **kwargs):
                return dispatch(offset, owner, func, args, kwargs)

            setattr(static_wrapper, OFFSET_ATTRIBUTE, offset)
            return staticmethod(static_wrapper)

        if inspect.isclass(owner) and inspect.isfunction(func):

            @functools.wraps(func)
            def method_wrapper(receiver, *args, **kwargs):
                return dispatch(offset, receiver, functools.partial(func, receiver), args, kwargs)

            setattr(method_wrapper, OFFSET_ATTRIBUTE, offset)
            return method_wrapper

        @functools.wraps(func)
        def function_wrapper(*args, **kwargs):
            return dispatch(offset, owner, func, args, kwargs)

        setattr(function_wrapper, OFFSET_ATTRIBUTE, offset)
        return function_wrapper

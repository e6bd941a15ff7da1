"""
Detailed call-tree tracing.

Independent of the metric system: while a Trace is active on a thread, every
intercepted call records a nested step, producing a tree of timed calls that
the reporter can ship as a trace payload.
"""

import threading
import time
from contextlib import contextmanager
from typing import Dict, Any, List, Optional, Iterator

from callwatch.core.logging import AsyncLogger
from callwatch.core.id_generator import generate_id


_local = threading.local()


def current_trace() -> Optional["Trace"]:
    """The trace active on the calling thread, if any."""
    return getattr(_local, "trace", None)


class Trace:
    """
    Nested step recorder.

    Usage:
    ```
    trace = Trace("GET /orders")
    with trace.activate():
        handle_request()      # intercepted calls become steps
    reporter.send_trace(trace)
    ```
    """

    def __init__(self, context: Any = None) -> None:
        self.id = generate_id()
        self.context = context
        self.logger = AsyncLogger("tracing")
        self._root: Dict[str, Any] = {"name": "root", "children": []}
        self._stack: List[Dict[str, Any]] = [self._root]

    @contextmanager
    def activate(self) -> Iterator["Trace"]:
        """Make this the calling thread's current trace for the block."""
        previous = current_trace()
        _local.trace = self
        try:
            yield self
        finally:
            _local.trace = previous
            self.logger.debug("Trace finished", trace_id=self.id, steps=len(self._root["children"]))

    @contextmanager
    def step(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[None]:
        """
        Record a nested step around the block.

        Results and errors of the block pass through untouched; an error marks the
        step with its type name.
        """
        node: Dict[str, Any] = {"name": name, "children": []}
        if attributes:
            node["attributes"] = dict(attributes)
        self._stack[-1]["children"].append(node)
        self._stack.append(node)
        start = time.perf_counter()

        try:
            yield
        except BaseException as e:
            node["error"] = type(e).__name__
            raise
        finally:
            node["duration_ms"] = (time.perf_counter() - start) * 1000
            self._stack.pop()

    @property
    def data(self) -> Optional[Dict[str, Any]]:
        """Serializable trace tree, or None when no step was recorded."""
        if not self._root["children"]:
            return None
        return {"id": self.id, "context": self.context, "steps": self._root["children"]}

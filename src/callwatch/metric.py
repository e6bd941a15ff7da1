"""
Metric descriptors.

A metric is what the interception engine resolves measurement context
through; everything else about it belongs to configuration.
"""

from typing import Any, Callable, List, Optional, Union, TYPE_CHECKING

from callwatch.instrument.handlers import Target

if TYPE_CHECKING:
    from callwatch.instrument.registry import InterceptionRegistry
    from callwatch.session import Session


def no_context(receiver: Any, *args: Any, **kwargs: Any) -> List[Any]:
    """Default context finder: every call shares the empty context."""
    return []


class Metric:
    """
    A named measurement.

    context_finder(receiver, *args, **kwargs) -> context is looked up on every
    intercepted call, so it can be replaced after instrumentation.

    Example:
        metric = Metric("order_time", "Time to place an order",
                        context_finder=lambda service, order: ["region", order.region])
        metric.instrument(registry, session, "shop.orders:OrderService#place")
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        context_finder: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.name = name
        self.description = description
        self.context_finder = context_finder or no_context

    def __repr__(self) -> str:
        return f"Metric({self.name!r})"

    def timing_handler(self, session: "Session") -> Callable[..., None]:
        """Handler recording elapsed seconds into session under the resolved context."""

        def record(context: Any, receiver: Any, elapsed: float, *args: Any, **kwargs: Any) -> None:
            session.record(self.name, context, elapsed)

        record.__qualname__ = f"{self.name}.timing"
        return record

    def exception_handler(self) -> Callable[..., Any]:
        """Handler building the sample attached to a captured exception."""

        def sample(error: BaseException, receiver: Any, *args: Any, **kwargs: Any) -> Any:
            receiver_type = receiver if isinstance(receiver, type) else type(receiver)
            return {"metric": self.name, "receiver": receiver_type.__qualname__}

        sample.__qualname__ = f"{self.name}.exceptions"
        return sample

    def instrument(
        self,
        registry: "InterceptionRegistry",
        session: "Session",
        *targets: Union[str, Target],
        capture_exceptions: bool = False,
        **options: Any,
    ) -> List[int]:
        """
        Attach this metric to targets.

        Timing by default; capture_exceptions=True records raised errors instead.
        Remaining options (reentrant_token, mark_as, only_within) go to the registry.
        """
        session.add_metric(self)
        if capture_exceptions:
            return registry.add(
                *targets, handler=self.exception_handler(), capture_exceptions=True, **options
            )
        return registry.add(*targets, handler=self.timing_handler(session), metric=self, **options)

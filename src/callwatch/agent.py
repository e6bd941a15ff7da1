"""
Agent facade.

Wires configuration, the process-wide interception registry, the session and
the reporter together so an application needs only:

```
agent = Agent()
agent.add_metric(Metric("order_time"), "shop.orders:OrderService#place")
agent.start()
```
"""

import time
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from callwatch.core.config import Settings
from callwatch.core.logging import logger
from callwatch.core.tracing import Trace
from callwatch.host import HostInfo
from callwatch.instrument import InterceptionRegistry, Target, registry as default_registry
from callwatch.metric import Metric
from callwatch.reporting.reporter import Reporter
from callwatch.reporting.router import DeliveryRouter
from callwatch.scm import detect_scm
from callwatch.session import Session


class Agent:
    """One monitored process."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[InterceptionRegistry] = None,
        session: Optional[Session] = None,
        router: Optional[DeliveryRouter] = None,
        scm_path: Union[str, Path, None] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or Settings()
        self.session = session or Session()
        self.registry = registry or default_registry
        self.registry.session = self.session
        self.router = router or DeliveryRouter.from_settings(self.settings)
        self.reporter = Reporter(
            self.session,
            self.router,
            self.settings.update_locations,
            interval=self.settings.interval,
            host=HostInfo(),
            scm=detect_scm(scm_path),
            sleep=sleep,
        )

    def add_metric(self, metric: Metric, *targets: Union[str, Target], **options: Any) -> List[int]:
        """Instrument targets for metric; options as for Metric.instrument()."""
        offsets = metric.instrument(self.registry, self.session, *targets, **options)
        logger.info("Metric added", metric=metric.name, targets=len(targets), instrumented=len(offsets))
        return offsets

    def trace(self, context: Any = None) -> Trace:
        """New trace; activate it around a unit of work and hand it to send_trace()."""
        return Trace(context)

    def send_trace(self, trace: Trace):
        return self.reporter.send_trace(trace)

    def start(self, run_in_background: bool = True) -> None:
        self.reporter.start(run_in_background=run_in_background)

    def ping(self) -> bool:
        return self.reporter.ping()

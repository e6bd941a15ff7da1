"""
Callwatch - in-process call instrumentation.

Intercepts calls to chosen functions and methods, aggregates their timings and
captured exceptions per interval, and reports them to a collector.
"""

from callwatch._version import __version__, __version_info__

# Core components
from callwatch.core import (
    logger,
    Settings,
    generate_id,
    Trace,
    CallwatchError,
    ConfigurationError,
    AttachmentError,
    BadTargetError,
    HandlerError,
    TransportError,
    ProtocolRejection,
    SchedulingFault,
)

# Instrumentation
from callwatch.instrument import InterceptionRegistry, TimingContext, Target, HandlerMode, registry
from callwatch.metric import Metric
from callwatch.session import Session

# Reporting
from callwatch.reporting import DeliveryRouter, Reporter

from callwatch.agent import Agent

__all__ = [
    "__version__",
    "__version_info__",
    "logger",
    "Settings",
    "generate_id",
    "Trace",
    "CallwatchError",
    "ConfigurationError",
    "AttachmentError",
    "BadTargetError",
    "HandlerError",
    "TransportError",
    "ProtocolRejection",
    "SchedulingFault",
    "InterceptionRegistry",
    "TimingContext",
    "Target",
    "HandlerMode",
    "registry",
    "Metric",
    "Session",
    "DeliveryRouter",
    "Reporter",
    "Agent",
]

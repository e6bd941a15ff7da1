"""
Interception & timing engine.

Exports the process-wide registry used by metrics and the agent.
"""

from callwatch.instrument.handlers import HandlerDescriptor, HandlerMode, Target
from callwatch.instrument.registry import InterceptionRegistry, OFFSET_ATTRIBUTE
from callwatch.instrument.timing import TimingContext

# Process-wide registry; the agent attaches its session at startup
registry = InterceptionRegistry()

__all__ = [
    "HandlerDescriptor",
    "HandlerMode",
    "Target",
    "InterceptionRegistry",
    "TimingContext",
    "OFFSET_ATTRIBUTE",
    "registry",
]

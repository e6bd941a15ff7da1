"""
Callwatch core module.

Exports the fundamental agent components.
"""

# Configuration
from callwatch.core.config import Settings, ConfigValidator, DEFAULT_UPDATE_LOCATIONS

# Exceptions and errors
from callwatch.core.exceptions import (
    CallwatchError,
    ConfigurationError,
    AttachmentError,
    BadTargetError,
    HandlerError,
    TransportError,
    ProtocolRejection,
    SchedulingFault,
)

# Logging
from callwatch.core.logging import (
    AsyncLogger,
    SensitiveDataMasker,
    PerformanceLogger,
    logger,  # Pre-configured global logger
)

# IDs
from callwatch.core.id_generator import IDGenerator, generate_id, is_valid_id

# Tracing
from callwatch.core.tracing import Trace, current_trace

__all__ = [
    "Settings",
    "ConfigValidator",
    "DEFAULT_UPDATE_LOCATIONS",
    "CallwatchError",
    "ConfigurationError",
    "AttachmentError",
    "BadTargetError",
    "HandlerError",
    "TransportError",
    "ProtocolRejection",
    "SchedulingFault",
    "AsyncLogger",
    "SensitiveDataMasker",
    "PerformanceLogger",
    "logger",
    "IDGenerator",
    "generate_id",
    "is_valid_id",
    "Trace",
    "current_trace",
]

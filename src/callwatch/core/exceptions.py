"""
Unified exception hierarchy for callwatch.

Two families live here:
1. Instrumentation errors (attachment and handler failures)
2. Reporting errors (transport, protocol and scheduling failures)
"""

from typing import Dict, Any, Optional, List
from datetime import datetime
from callwatch.core.id_generator import generate_id
from callwatch.core.utils.datetime_utils import utc_now, format_iso


class CallwatchError(Exception):
    """
    Base error for callwatch.

    Carries:
    1. Structured serialization
    2. Context
    3. Resolution suggestions
    4. Unique ID for tracking
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.id: str = generate_id()
        self.timestamp: datetime = utc_now()
        self.message: str = message
        self.code: str = code or self.__class__.__name__
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[BaseException] = cause
        self.suggestions: List[str] = []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize for logs and the CLI.

        Returns:
            {
                "error_id": "hex32chars",
                "code": "TransportError",
                "message": "Connection refused",
                "timestamp": "2024-01-20T10:30:00Z",
                "context": {...}
            }
        """
        result: Dict[str, Any] = {
            "error_id": self.id,
            "code": self.code,
            "message": self.message,
            "timestamp": format_iso(self.timestamp),
            "context": self.context,
        }

        if self.cause:
            result["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}

        if self.suggestions:
            result["suggestions"] = self.suggestions

        return result

    def add_suggestion(self, suggestion: str) -> None:
        """Add a resolution hint, ignoring empties and duplicates."""
        if not suggestion or not isinstance(suggestion, str):
            return

        if suggestion not in self.suggestions:
            self.suggestions.append(suggestion)

    def is_retryable(self) -> bool:
        """Whether trying again (elsewhere or later) may succeed."""
        return False


class ConfigurationError(CallwatchError):
    """Invalid or missing configuration."""

    pass


# ============================================================================
# INSTRUMENTATION
# ============================================================================


class AttachmentError(CallwatchError):
    """
    A wrapper could not be attached to a call site.

    Logged per target; a batch of attachments carries on with the next one.
    """

    pass


class BadTargetError(AttachmentError):
    """The target descriptor is malformed."""

    pass


class HandlerError(CallwatchError):
    """
    A registered handler (or a metric's context finder) raised.

    Indicates a broken instrumentation setup, so it is propagated instead of
    being swallowed as measurement noise.
    """

    pass


# ============================================================================
# REPORTING
# ============================================================================


class TransportError(CallwatchError):
    """
    Delivery to one endpoint failed (DNS, timeout, IO, unexpected status).

    Always converted to a failed attempt at the transport boundary.
    """

    def is_retryable(self) -> bool:
        """The next endpoint may accept the payload."""
        return True


class ProtocolRejection(TransportError):
    """The collector answered 4xx: the payload was rejected by this endpoint."""

    def is_retryable(self) -> bool:
        """Sending the same payload here again will not help."""
        return False


class SchedulingFault(CallwatchError):
    """An error escaped the reporter loop; the worker terminates."""

    pass


__all__ = [
    "CallwatchError",
    "ConfigurationError",
    "AttachmentError",
    "BadTargetError",
    "HandlerError",
    "TransportError",
    "ProtocolRejection",
    "SchedulingFault",
]

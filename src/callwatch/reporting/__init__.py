"""
Reporting pipeline: payloads, codec, transports, fallback routing and the
periodic reporter.
"""

from callwatch.reporting.codec import PayloadCodec, codec
from callwatch.reporting.multipart import MultipartEncoder
from callwatch.reporting.payloads import (
    Payload,
    InfoPayload,
    PingPayload,
    DataPayload,
    ExceptionsPayload,
    TracePayload,
)
from callwatch.reporting.transport import (
    Transport,
    HttpTransport,
    FileTransport,
    HostnameResolver,
    resolver,
)
from callwatch.reporting.router import DeliveryRouter, scheme_of
from callwatch.reporting.reporter import Reporter

__all__ = [
    "PayloadCodec",
    "codec",
    "MultipartEncoder",
    "Payload",
    "InfoPayload",
    "PingPayload",
    "DataPayload",
    "ExceptionsPayload",
    "TracePayload",
    "Transport",
    "HttpTransport",
    "FileTransport",
    "HostnameResolver",
    "resolver",
    "DeliveryRouter",
    "scheme_of",
    "Reporter",
]

"""
Endpoint fallback.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from callwatch.core.config import Settings
from callwatch.core.logging import logger
from callwatch.reporting.payloads import Payload
from callwatch.reporting.transport import FileTransport, HttpTransport, Transport


def scheme_of(uri: str) -> str:
    """Transport scheme for uri: "http" for http/https, "file" for anything else."""
    return "http" if urlsplit(uri).scheme.lower() in ("http", "https") else "file"


class DeliveryRouter:
    """
    Delivers a payload to the first endpoint that accepts it.

    Endpoints are grouped by scheme keeping their relative order. Groups are
    tried in scheme_order when given, otherwise in order of first appearance.

    Example:
        endpoints = ["https://a", "file:///tmp/cw", "https://b"]
        -> https://a, https://b, then file:///tmp/cw
    """

    def __init__(
        self,
        transports: Mapping[str, Transport],
        scheme_order: Optional[Sequence[str]] = None,
    ) -> None:
        self.transports = dict(transports)
        self.scheme_order = list(scheme_order) if scheme_order else None

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeliveryRouter":
        http = HttpTransport(
            settings.app_token,
            open_timeout=settings.get("transport.open_timeout", 10),
            read_timeout=settings.get("transport.read_timeout", 10),
            verify_tls=bool(settings.get("transport.verify_tls", False)),
        )
        return cls(
            {"http": http, "file": FileTransport()},
            scheme_order=settings.get("reporter.scheme_order"),
        )

    def uris_by_scheme(self, endpoints: Sequence[str]) -> List[Tuple[str, List[str]]]:
        """Endpoints grouped by scheme, in the order groups are tried."""
        groups: Dict[str, List[str]] = {}
        for uri in endpoints:
            groups.setdefault(scheme_of(uri), []).append(uri)

        if self.scheme_order is None:
            return list(groups.items())

        ordered = [(scheme, groups[scheme]) for scheme in self.scheme_order if scheme in groups]
        ordered.extend(
            (scheme, uris) for scheme, uris in groups.items() if scheme not in self.scheme_order
        )
        return ordered

    def store(self, payload: Payload, endpoints: Sequence[str]) -> bool:
        """
        Deliver payload, falling back through endpoints.

        Returns:
            True when some endpoint accepted the payload
        """
        for scheme, uris in self.uris_by_scheme(endpoints):
            transport = self.transports.get(scheme)
            if transport is None:
                logger.warning("No transport for scheme", scheme=scheme, endpoints=len(uris))
                continue
            if transport.store(payload, uris):
                return True

        logger.warning(
            "Payload not delivered to any endpoint", kind=payload.kind, endpoints=len(endpoints)
        )
        return False

"""
Delivery transports.

A transport attempts to deliver one payload to one or more URIs of its scheme
and reports which URI accepted it. Every network, protocol and IO failure is
converted to a failed attempt here; nothing propagates to the reporter.
"""

import os
import posixpath
import random
import socket
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import unquote, urlsplit, urlunsplit

import requests
from requests.adapters import HTTPAdapter

from callwatch.core.exceptions import ProtocolRejection, TransportError
from callwatch.core.logging import logger, SensitiveDataMasker
from callwatch.core.utils.datetime_utils import compact_stamp
from callwatch.reporting.multipart import MultipartEncoder
from callwatch.reporting.payloads import ExceptionsPayload, Payload


_masker = SensitiveDataMasker()


class Transport(ABC):
    """One delivery mechanism, selected by URI scheme."""

    scheme: str = ""

    @abstractmethod
    def deliver(self, payload: Payload, uri: str) -> bool:
        """Attempt delivery to one URI; True on success."""

    def store(self, payload: Payload, uris: Sequence[str]) -> Optional[str]:
        """
        Try uris in order, stopping at the first success.

        Returns:
            The URI that accepted the payload, or None
        """
        logger.info("Attempting to send payload", kind=payload.kind, transport=self.scheme)
        for uri in uris:
            if self.deliver(payload, uri):
                logger.info("Sent payload", kind=payload.kind, uri=_masker.mask(uri))
                return uri
        logger.warning("Could not send payload", kind=payload.kind, transport=self.scheme)
        return None


# ============================================================================
# HTTP
# ============================================================================


@dataclass
class ResolvedHost:
    ip: str
    next_update: float


class HostnameResolver:
    """
    Per-thread DNS cache.

    Entries expire after 23 hours plus a random whole number of minutes below
    60, so many processes started together do not re-resolve together.
    """

    BASE_TTL = 23 * 60 * 60

    def __init__(
        self,
        lookup: Callable[[str], str] = socket.gethostbyname,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lookup = lookup
        self._clock = clock
        self._local = threading.local()

    @property
    def cache(self) -> Dict[str, ResolvedHost]:
        """This thread's cache."""
        cache = getattr(self._local, "cache", None)
        if cache is None:
            cache = self._local.cache = {}
        return cache

    def resolve(self, hostname: str) -> str:
        """IP address for hostname, from cache while fresh."""
        now = self._clock()
        entry = self.cache.get(hostname)
        if entry is not None and now < entry.next_update:
            return entry.ip

        ip = "127.0.0.1" if hostname == "localhost" else self._lookup(hostname)
        self.cache[hostname] = ResolvedHost(ip, now + self.BASE_TTL + random.randrange(60) * 60)
        return ip


resolver = HostnameResolver()


class HostVerifyingAdapter(HTTPAdapter):
    """HTTPS adapter that connects to an IP but verifies the certificate for hostname."""

    def __init__(self, hostname: str, **kwargs: Any) -> None:
        self.hostname = hostname
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs["server_hostname"] = self.hostname
        kwargs["assert_hostname"] = self.hostname
        super().init_poolmanager(*args, **kwargs)


class HttpTransport(Transport):
    """
    Posts payloads to a collector as multipart/form-data.

    Response contract:
    - 201: accepted
    - 4xx: rejected by this endpoint (ProtocolRejection)
    - anything else, or no response: transient failure (TransportError)
    """

    scheme = "http"
    SUCCESS_STATUS = 201

    def __init__(
        self,
        app_token: Optional[str],
        open_timeout: float = 10,
        read_timeout: float = 10,
        verify_tls: bool = False,
        resolver: HostnameResolver = resolver,
    ) -> None:
        self.app_token = app_token
        self.open_timeout = open_timeout
        self.read_timeout = read_timeout
        self.verify_tls = verify_tls
        self.resolver = resolver

    def deliver(self, payload: Payload, uri: str) -> bool:
        """Transmit, converting every failure into False."""
        try:
            self.transmit(payload, uri)
            return True
        except ProtocolRejection as e:
            logger.warning("Collector rejected payload", uri=_masker.mask(uri), **e.context)
        except TransportError as e:
            logger.error("Could not access collector", uri=_masker.mask(uri), error=e.message)
        return False

    def transmit(self, payload: Payload, uri: str) -> None:
        """
        Post payload to uri.

        Raises:
            ProtocolRejection: 4xx response
            TransportError: any other failure
        """
        if not self.app_token:
            raise TransportError("No application token configured", context={"setting": "app.token"})

        try:
            url, host_header = self.request_url(payload, uri)
            params = payload.with_params(**self.extra_params_for(payload)).params
            multipart = MultipartEncoder(payload.compressed(), params)
            response = self.post(
                uri,
                url,
                data=multipart.to_bytes(),
                headers={"Content-Type": multipart.content_type, "Host": host_header},
                timeout=(self.open_timeout, self.read_timeout),
            )
        except (requests.RequestException, OSError, ValueError) as e:
            raise TransportError(f"{type(e).__name__}: {e}", cause=e) from e

        self.check_response(response)

    def post(self, uri: str, url: str, **kwargs: Any) -> requests.Response:
        """
        POST to the resolved url.

        With verify_tls the certificate is checked against the hostname of uri,
        not the IP the request is sent to.
        """
        if not (self.verify_tls and url.startswith("https://")):
            return requests.post(url, verify=self.verify_tls, **kwargs)

        with requests.Session() as http:
            http.mount("https://", HostVerifyingAdapter(urlsplit(uri).hostname))
            return http.post(url, verify=True, **kwargs)

    def check_response(self, response: Optional[requests.Response]) -> None:
        if response is None:
            raise TransportError("Received no response from collector")

        status = response.status_code
        if status == self.SUCCESS_STATUS:
            return
        if 400 <= status < 500:
            raise ProtocolRejection(
                f"Collector rejected payload ({status})",
                context={"status": status, "body": response.text[:500]},
            )
        raise TransportError(
            f"Unexpected response from collector ({status})", context={"status": status}
        )

    def request_url(self, payload: Payload, uri: str) -> Tuple[str, str]:
        """
        Collector URL for payload, with the host replaced by its resolved IP.

        Returns:
            (url, host header)
        """
        if not payload.path_suffix:
            raise ValueError(f"Unknown payload type: {type(payload).__name__}")

        parts = urlsplit(uri)
        if not parts.hostname:
            raise ValueError(f"No host in {uri}")

        ip = self.resolver.resolve(parts.hostname)
        port = f":{parts.port}" if parts.port else ""
        path = posixpath.join("/apps", str(self.app_token), payload.path_suffix)
        url = urlunsplit((parts.scheme, f"{ip}{port}", path, "", ""))
        return url, f"{parts.hostname}{port}"

    def extra_params_for(self, payload: Payload) -> Dict[str, Any]:
        if isinstance(payload, ExceptionsPayload):
            return {"app_id": self.app_token}
        return {}


# ============================================================================
# FILE
# ============================================================================


class FileTransport(Transport):
    """
    Writes the compressed payload into a directory derived from the URI.

    file:///var/spool/callwatch -> /var/spool/callwatch/<stamp>_<pid>_<kind>.json.z
    A bare path (no scheme) is used as-is.
    """

    scheme = "file"
    SUFFIX = ".json.z"

    def deliver(self, payload: Payload, uri: str) -> bool:
        try:
            path = self.write(payload, uri)
        except OSError as e:
            logger.error("Could not write payload", uri=uri, error=str(e))
            return False
        logger.debug("Payload written", path=str(path))
        return True

    def write(self, payload: Payload, uri: str) -> Path:
        directory = self.directory_for(uri)
        directory.mkdir(parents=True, exist_ok=True)

        data = payload.compressed()
        stem = f"{compact_stamp()}_{os.getpid()}_{payload.kind}"
        path = directory / f"{stem}{self.SUFFIX}"
        sequence = 1
        # Exclusive create: concurrent writers in the same second never share a name
        while True:
            try:
                with open(path, "xb") as f:
                    f.write(data)
                return path
            except FileExistsError:
                path = directory / f"{stem}_{sequence}{self.SUFFIX}"
                sequence += 1

    @staticmethod
    def directory_for(uri: str) -> Path:
        parts = urlsplit(uri)
        if parts.scheme == "file":
            return Path(unquote(parts.netloc + parts.path))
        return Path(uri)

"""
Typed payloads.

Each payload is an immutable snapshot pairing a compressible data body with a
flat parameter mapping that travels as transport metadata (form fields).
"""

import os
import platform
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from callwatch._version import __version__
from callwatch.core.utils.datetime_utils import format_iso, utc_now
from callwatch.host import HostInfo, PROCESS_ID
from callwatch.reporting.codec import codec
from callwatch.scm import ScmInfo


class Payload(BaseModel):
    """
    Base payload.

    kind is the logical type tag; path_suffix the collector resource it is
    posted to under /apps/<app-token>/.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ClassVar[str] = "payload"
    path_suffix: ClassVar[str] = ""

    data: Any = None
    params: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("params")
    @classmethod
    def _flatten_params(cls, params: Dict[str, Any]) -> Dict[str, Any]:
        """Keep parameters scalar: datetimes become ISO strings, None values are dropped."""
        flat: Dict[str, Any] = {}
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, datetime):
                value = format_iso(value)
            elif not isinstance(value, (str, int, float, bool)):
                value = str(value)
            flat[str(key)] = value
        return flat

    def to_json(self) -> str:
        """Serialized data body (what gets compressed)."""
        return codec.encode(self.data).decode("utf-8")

    def compressed(self) -> bytes:
        """Deflated data body sent as the binary file part."""
        return codec.pack(self.data)

    def with_params(self, **extra: Any) -> "Payload":
        """Copy with additional parameters."""
        return type(self)(data=self.data, params={**self.params, **extra})


def _process_params(kind: str) -> Dict[str, Any]:
    return {"type": kind, "collected_at": utc_now(), "process_id": PROCESS_ID}


def _host_params(
    kind: str, started_at: datetime, host: HostInfo, scm: Optional[ScmInfo]
) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "type": kind,
        **host.as_params(),
        "pwd": os.getcwd(),
        "process_id": PROCESS_ID,
        "agent_version": __version__,
        "python_version": platform.python_version(),
        "started_at": started_at,
    }
    if scm is not None:
        params.update(scm.as_params())
    return params


class InfoPayload(Payload):
    """Process description, sent once per reporter lifetime."""

    kind: ClassVar[str] = "info"
    path_suffix: ClassVar[str] = "processes.json"

    @classmethod
    def build(
        cls,
        info: Dict[str, Any],
        started_at: datetime,
        host: HostInfo,
        scm: Optional[ScmInfo] = None,
    ) -> "InfoPayload":
        return cls(data=info, params=_host_params(cls.kind, started_at, host, scm))


class PingPayload(Payload):
    """Connectivity check carrying the same description as the info payload."""

    kind: ClassVar[str] = "ping"
    path_suffix: ClassVar[str] = "ping"

    @classmethod
    def build(
        cls,
        info: Dict[str, Any],
        started_at: datetime,
        host: HostInfo,
        scm: Optional[ScmInfo] = None,
    ) -> "PingPayload":
        return cls(data=info, params=_host_params(cls.kind, started_at, host, scm))


class DataPayload(Payload):
    """One interval of timing samples."""

    kind: ClassVar[str] = "data"
    path_suffix: ClassVar[str] = "metrics.json"

    @classmethod
    def build(cls, data: Any) -> "DataPayload":
        return cls(data=data, params=_process_params(cls.kind))


class ExceptionsPayload(Payload):
    """One interval of captured exceptions."""

    kind: ClassVar[str] = "exceptions"
    path_suffix: ClassVar[str] = "exceptions.json"

    @classmethod
    def build(cls, data: Any) -> "ExceptionsPayload":
        return cls(data=data, params=_process_params(cls.kind))


class TracePayload(Payload):
    """A recorded call tree."""

    kind: ClassVar[str] = "trace"
    path_suffix: ClassVar[str] = "traces.json"

    @classmethod
    def build(cls, data: Any) -> "TracePayload":
        return cls(data=data, params=_process_params(cls.kind))

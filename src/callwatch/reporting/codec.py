"""
Payload codec: compact JSON, zlib-deflated.
"""

import json
import zlib
from datetime import datetime
from typing import Any

from callwatch.core.utils.datetime_utils import format_iso


def _default(value: Any) -> Any:
    """JSON fallback for values the collector receives as plain text or lists."""
    if isinstance(value, datetime):
        return format_iso(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class PayloadCodec:
    """
    Serializes payload bodies for the wire.

    encode() and compress() are separate so the JSON text can be logged and the
    compressed form transmitted.
    """

    def __init__(self, level: int = zlib.Z_DEFAULT_COMPRESSION) -> None:
        self.level = level

    def encode(self, data: Any) -> bytes:
        """Compact UTF-8 JSON."""
        return json.dumps(data, separators=(",", ":"), default=_default).encode("utf-8")

    def compress(self, raw: bytes) -> bytes:
        """zlib deflate (with zlib header, as the collector expects)."""
        return zlib.compress(raw, self.level)

    def pack(self, data: Any) -> bytes:
        """encode() then compress()."""
        return self.compress(self.encode(data))

    def decompress(self, blob: bytes) -> bytes:
        return zlib.decompress(blob)

    def unpack(self, blob: bytes) -> Any:
        """Inverse of pack()."""
        return json.loads(self.decompress(blob).decode("utf-8"))


codec = PayloadCodec()

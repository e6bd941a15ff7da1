"""
multipart/form-data bodies for the HTTP transport.
"""

from typing import Any, List, Mapping, Optional

from callwatch.core.utils.datetime_utils import epoch_millis


CRLF = b"\r\n"


class MultipartEncoder:
    """
    Builds a multipart/form-data body from a compressed blob and flat parameters.

    The boundary is a fixed root plus a millisecond nonce, fixed per encoder.
    Parameters become plain form fields; the blob is the binary part "file"
    and comes last.

    Usage:
    ```
    multipart = MultipartEncoder(payload.compressed(), payload.params)
    requests.post(url, data=multipart.to_bytes(),
                  headers={"Content-Type": multipart.content_type})
    ```
    """

    BOUNDARY_ROOT = "B0UND"
    FILE_FIELD = "file"
    FILE_NAME = "metrics.json.gz"

    def __init__(
        self, file: bytes, params: Optional[Mapping[str, Any]] = None, nonce: Optional[int] = None
    ):
        self.file = file
        self.params = dict(params or {})
        self.nonce = nonce if nonce is not None else epoch_millis()

    @property
    def boundary(self) -> str:
        return f"{self.BOUNDARY_ROOT}*{self.nonce}"

    @property
    def content_type(self) -> str:
        return f'multipart/form-data; boundary="{self.boundary}"'

    @property
    def separator(self) -> bytes:
        return f"--{self.boundary}".encode("ascii")

    def to_bytes(self) -> bytes:
        """Full body, closed by the terminating boundary."""
        parts = [self._part(name, value, binary=False) for name, value in self.params.items()]
        parts.append(self._part(self.FILE_FIELD, self.file, binary=True))
        return CRLF.join(parts) + CRLF + self.separator + b"--"

    def _part(self, name: str, value: Any, binary: bool) -> bytes:
        head = CRLF.join([self.separator] + self._headers_for(name, binary))
        return head + CRLF + CRLF + self._content_of(value)

    def _headers_for(self, name: str, binary: bool) -> List[bytes]:
        if binary:
            disposition = f'Content-Disposition: form-data; name="{name}"; filename="{self.FILE_NAME}"'
            return [
                disposition.encode("utf-8"),
                b"Content-Transfer-Encoding: binary",
                b"Content-Type: application/octet-stream",
            ]
        return [f'Content-Disposition: form-data; name="{name}"'.encode("utf-8")]

    @staticmethod
    def _content_of(value: Any) -> bytes:
        if isinstance(value, bytes):
            return value
        if value is None:
            return b""
        if isinstance(value, bool):
            return b"true" if value else b"false"
        return str(value).encode("utf-8")

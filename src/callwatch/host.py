"""
Host and process identity reported with the info payload.
"""

import os
import platform
import socket
import uuid
from functools import cached_property
from typing import Any, Dict

import psutil

from callwatch.core.id_generator import generate_id
from callwatch.core.logging import logger
from callwatch.core.utils.datetime_utils import utc_now


# Identifies this process to the collector for its whole lifetime
PROCESS_ID = generate_id()
PROCESS_STARTED_AT = utc_now()

_NULL_MAC = "00:00:00:00:00:00"


class HostInfo:
    """Detects host characteristics once and caches them."""

    @cached_property
    def hostname(self) -> str:
        return socket.gethostname()

    @cached_property
    def ip_address(self) -> str:
        try:
            return socket.gethostbyname(self.hostname)
        except OSError as e:
            logger.warning("Could not resolve own hostname", hostname=self.hostname, error=str(e))
            return "127.0.0.1"

    @cached_property
    def mac_address(self) -> str:
        """First non-null link-layer address, falling back to uuid.getnode()."""
        try:
            for addresses in psutil.net_if_addrs().values():
                for address in addresses:
                    if address.family == psutil.AF_LINK and address.address:
                        mac = address.address.replace("-", ":").lower()
                        if mac != _NULL_MAC:
                            return mac
        except OSError as e:
            logger.warning("Could not read network interfaces", error=str(e))

        node = uuid.getnode()
        return ":".join(f"{(node >> shift) & 0xFF:02x}" for shift in range(40, -1, -8))

    @cached_property
    def os_name(self) -> str:
        return platform.system().lower() or "unknown"

    @cached_property
    def os_version(self) -> str:
        return platform.release() or "unknown"

    @cached_property
    def architecture(self) -> str:
        return platform.machine() or "unknown"

    def as_params(self) -> Dict[str, Any]:
        """Host fields in the shape of info payload parameters."""
        return {
            "ip": self.ip_address,
            "mac": self.mac_address,
            "hostname": self.hostname,
            "pid": os.getpid(),
            "os_name": self.os_name,
            "os_version": self.os_version,
            "arch": self.architecture,
        }

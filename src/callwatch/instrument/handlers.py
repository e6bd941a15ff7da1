"""
Handler descriptors and call-site targets.
"""

import importlib
import inspect
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Hashable, Optional, Tuple

from callwatch.core.exceptions import AttachmentError, BadTargetError


class HandlerMode(str, Enum):
    """How an intercepted call is treated."""

    TIMING = "timing"
    REENTRANT_TIMING = "reentrant-timing"
    EXCEPTION_CAPTURING = "exception-capturing"


@dataclass(frozen=True)
class HandlerDescriptor:
    """
    A registered handler.

    Identity is the offset: assigned once by the registry, never reused.
    """

    offset: int
    callback: Callable[..., Any]
    mode: HandlerMode
    mark_as: Optional[str] = None
    only_within: Optional[str] = None
    metric_index: Optional[int] = None
    reentrant_token: Optional[Hashable] = None
    name: Optional[str] = None

    @property
    def label(self) -> str:
        """Name used for trace steps and log lines."""
        return self.name or getattr(self.callback, "__qualname__", None) or f"handler-{self.offset}"


# module.path:Class#method / module.path:Class.Nested.method / module.path:function
_INSTANCE_TARGET = re.compile(r"^([\w.]+):([\w.]+)#(\w+)$")
_OWNER_TARGET = re.compile(r"^([\w.]+):([\w.]+)\.(\w+)$")
_MODULE_TARGET = re.compile(r"^([\w.]+):(\w+)$")


@dataclass(frozen=True)
class Target:
    """
    A resolved call site: an attribute `name` on `owner` (a class or a module).

    instance=True marks an instance method, whose receiver is the bound object.
    """

    owner: Any
    name: str
    instance: bool = False

    @property
    def label(self) -> str:
        owner_name = getattr(self.owner, "__qualname__", None) or getattr(
            self.owner, "__name__", repr(self.owner)
        )
        return f"{owner_name}{'#' if self.instance else '.'}{self.name}"

    @classmethod
    def parse(cls, descriptor: str) -> Tuple[str, str, str, bool]:
        """
        Split a descriptor into (module, owner path, attribute, instance).

        Raises:
            BadTargetError: descriptor matches none of the supported forms
        """
        descriptor = descriptor.strip()

        match = _INSTANCE_TARGET.match(descriptor)
        if match:
            return match.group(1), match.group(2), match.group(3), True

        match = _OWNER_TARGET.match(descriptor)
        if match:
            return match.group(1), match.group(2), match.group(3), False

        match = _MODULE_TARGET.match(descriptor)
        if match:
            return match.group(1), "", match.group(2), False

        error = BadTargetError(f"Bad target format: {descriptor}", context={"target": descriptor})
        error.add_suggestion("Use module:Class#method, module:Class.method or module:function")
        raise error

    @classmethod
    def resolve(cls, descriptor: str) -> "Target":
        """
        Import and look up the owner of a descriptor.

        Raises:
            BadTargetError: malformed descriptor
            AttachmentError: module or attribute cannot be found
        """
        module_name, owner_path, attribute, instance = cls.parse(descriptor)

        try:
            owner: Any = importlib.import_module(module_name)
        except ImportError as e:
            raise AttachmentError(
                f"Cannot import {module_name}: {e}", context={"target": descriptor}, cause=e
            ) from e

        for part in filter(None, owner_path.split(".")):
            try:
                owner = getattr(owner, part)
            except AttributeError as e:
                raise AttachmentError(
                    f"{descriptor}: no attribute {part}", context={"target": descriptor}, cause=e
                ) from e

        if instance and not inspect.isclass(owner):
            raise AttachmentError(
                f"{descriptor}: instance methods need a class owner", context={"target": descriptor}
            )

        target = cls(owner, attribute, instance)
        target.lookup()
        return target

    def lookup(self) -> Any:
        """The raw attribute (staticmethod/classmethod objects included)."""
        try:
            return inspect.getattr_static(self.owner, self.name)
        except AttributeError as e:
            raise AttachmentError(
                f"{self.label} does not exist", context={"target": self.label}, cause=e
            ) from e

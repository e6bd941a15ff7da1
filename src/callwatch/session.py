"""
In-memory accumulator for one reporting interval.

Many application threads write; the reporter thread drains. Draining swaps the
accumulators under the lock, so a write racing a flush lands in exactly one
batch.
"""

import json
import threading
import traceback
from typing import Any, Dict, List, Optional, Tuple

from callwatch.core.logging import logger
from callwatch.core.utils.datetime_utils import utc_now, format_iso


def normalize_context(context: Any) -> Tuple[str, Any]:
    """
    Make a context JSON-safe and hashable.

    Returns:
        (key, value): canonical JSON text and the JSON-safe value
    """
    key = json.dumps(context, sort_keys=True, default=str)
    return key, json.loads(key)


class Session:
    """
    Collected samples and captured exceptions.

    Shapes returned to the reporter:
    - info: flat mapping describing the process and its metrics
    - data: [{"metric", "context", "invocations", "value", "min", "max"}, ...]
    - exception_data: [{"name", "message", "backtrace", "sample", "total"}, ...]
    """

    def __init__(self, info: Optional[Dict[str, Any]] = None) -> None:
        self._lock = threading.Lock()
        self._info: Dict[str, Any] = dict(info or {})
        self._descriptions: Dict[str, str] = {}
        self._samples: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._exceptions: Dict[Tuple[Any, ...], Dict[str, Any]] = {}
        self.started_at = utc_now()

    # ------------------------------------------------------------------
    # Info
    # ------------------------------------------------------------------

    def add_metric(self, metric: Any) -> None:
        """Describe a metric in the info mapping."""
        with self._lock:
            self._descriptions[metric.name] = metric.description or metric.name

    @property
    def info(self) -> Dict[str, Any]:
        """Flat key/value description sent once in the info payload."""
        with self._lock:
            info = dict(self._info)
            info["session_started_at"] = format_iso(self.started_at)
            for name, description in self._descriptions.items():
                info[f"metric.{name}"] = description
        return info

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def record(self, metric_name: str, context: Any, value: float) -> None:
        """Add one measurement for metric_name under context."""
        context_key, context_value = normalize_context(context)
        key = (metric_name, context_key)

        with self._lock:
            sample = self._samples.get(key)
            if sample is None:
                self._samples[key] = {
                    "metric": metric_name,
                    "context": context_value,
                    "invocations": 1,
                    "value": value,
                    "min": value,
                    "max": value,
                }
            else:
                sample["invocations"] += 1
                sample["value"] += value
                sample["min"] = min(sample["min"], value)
                sample["max"] = max(sample["max"], value)

    def add_exception(self, error: BaseException, sample: Any = None) -> None:
        """Count a captured exception, grouped by type, message, origin and sample."""
        backtrace = [line.rstrip() for line in traceback.format_tb(error.__traceback__)]
        sample_key, sample_value = normalize_context(sample)
        name = f"{type(error).__module__}.{type(error).__qualname__}"
        key = (name, str(error), backtrace[-1] if backtrace else "", sample_key)

        with self._lock:
            entry = self._exceptions.get(key)
            if entry is None:
                self._exceptions[key] = {
                    "name": name,
                    "message": str(error),
                    "backtrace": backtrace,
                    "sample": sample_value,
                    "total": 1,
                }
            else:
                entry["total"] += 1

    # ------------------------------------------------------------------
    # Readers (draining)
    # ------------------------------------------------------------------

    @property
    def data(self) -> List[Dict[str, Any]]:
        """Drain and return the interval's samples."""
        with self._lock:
            samples, self._samples = self._samples, {}
        return list(samples.values())

    @property
    def exception_data(self) -> List[Dict[str, Any]]:
        """Drain and return the interval's exceptions."""
        with self._lock:
            exceptions, self._exceptions = self._exceptions, {}
        return list(exceptions.values())

    def reset(self) -> None:
        """Discard everything collected in this interval."""
        with self._lock:
            dropped = len(self._samples) + len(self._exceptions)
            self._samples = {}
            self._exceptions = {}
        logger.debug("Session reset", dropped=dropped)

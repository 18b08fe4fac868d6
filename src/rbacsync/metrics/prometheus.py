from __future__ import annotations

from typing import Any, Dict, Optional

from rbacsync.core.ports import MetricsSink

try:
    from prometheus_client import Counter, Histogram  # type: ignore
except Exception:  # pragma: no cover
    Counter = Histogram = None  # type: ignore

RELOADS_TOTAL = "rbacsync_reloads_total"
RELOAD_SECONDS = "rbacsync_reload_seconds"


class PrometheusMetrics(MetricsSink):
    """Prometheus sink for policy reloads.

    Exposes ``rbacsync_reloads_total{outcome}`` and the
    ``rbacsync_reload_seconds{outcome}`` histogram (fetch plus apply). Both
    are registered on *registry*, or on the default registry when omitted.
    Without ``prometheus_client`` installed the sink records nothing.
    """

    _reloads: Optional[Any]
    _duration: Optional[Any]

    def __init__(self, registry: Any | None = None) -> None:
        self._reloads = None
        self._duration = None
        if Counter is None or Histogram is None:  # pragma: no cover
            return

        kwargs: Dict[str, Any] = {"labelnames": ("outcome",)}
        if registry is not None:
            kwargs["registry"] = registry
        self._reloads = Counter(RELOADS_TOTAL, "Policy reloads by outcome.", **kwargs)
        self._duration = Histogram(RELOAD_SECONDS, "Policy reload duration in seconds.", **kwargs)

    @staticmethod
    def _outcome(labels: Dict[str, str] | None) -> str:
        return (labels or {}).get("outcome", "unknown")

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        if self._reloads is None:  # pragma: no cover
            return
        try:
            self._reloads.labels(outcome=self._outcome(labels)).inc()
        except Exception:  # pragma: no cover
            pass

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        if self._duration is None:  # pragma: no cover
            return
        try:
            self._duration.labels(outcome=self._outcome(labels)).observe(float(value))
        except Exception:  # pragma: no cover
            pass

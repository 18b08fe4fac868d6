from __future__ import annotations

from typing import Any, Dict, Optional

from rbacsync.core.ports import MetricsSink

try:
    from opentelemetry.metrics import get_meter  # type: ignore
except Exception:  # pragma: no cover
    get_meter = None  # type: ignore


def _instrument(meter: Any, factory: str, **kwargs: Any) -> Optional[Any]:
    create = getattr(meter, factory, None)
    if create is None:
        return None
    try:
        return create(**kwargs)
    except Exception:  # pragma: no cover
        return None


class OpenTelemetryMetrics(MetricsSink):
    """OpenTelemetry sink for policy reloads.

    Records on the ``rbacsync.metrics`` meter; meters lacking histogram
    support only count reloads.
    """

    _reloads: Optional[Any]
    _duration: Optional[Any]

    def __init__(self, meter: Any | None = None) -> None:
        self._reloads = None
        self._duration = None
        if meter is None:
            if get_meter is None:  # pragma: no cover
                return
            meter = get_meter("rbacsync.metrics")

        self._reloads = _instrument(
            meter,
            "create_counter",
            name="rbacsync_reloads_total",
            description="Policy reloads by outcome.",
        )
        self._duration = _instrument(
            meter,
            "create_histogram",
            name="rbacsync_reload_seconds",
            description="Policy reload duration in seconds.",
            unit="s",
        )

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        if self._reloads is None:
            return
        try:
            self._reloads.add(1, {"outcome": (labels or {}).get("outcome", "unknown")})
        except Exception:  # pragma: no cover
            pass

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        if self._duration is None:
            return
        try:
            self._duration.record(float(value), dict(labels or {}))
        except Exception:  # pragma: no cover
            pass

import builtins
import importlib
import sys
import types


def _purge(modname: str) -> None:
    for k in list(sys.modules):
        if k == modname or k.startswith(modname + "."):
            sys.modules.pop(k, None)


def _fake_prometheus():
    prom = types.ModuleType("prometheus_client")
    created = {}

    class _Metric:
        def __init__(self, name, doc, labelnames=(), registry=None):
            self.labelnames = tuple(labelnames)
            self.registry = registry
            self.values = {}
            created[name] = self

        def labels(self, **kw):
            key = tuple(sorted(kw.items()))
            parent = self

            class _Child:
                def inc(self, n=1):
                    parent.values[key] = parent.values.get(key, 0) + n

                def observe(self, v):
                    parent.values.setdefault(key, []).append(v)

            return _Child()

    prom.Counter = _Metric
    prom.Histogram = _Metric
    return prom, created


def test_prometheus_sink_counts_outcomes(monkeypatch):
    prom, created = _fake_prometheus()
    monkeypatch.setitem(sys.modules, "prometheus_client", prom)
    _purge("rbacsync.metrics.prometheus")
    mod = importlib.import_module("rbacsync.metrics.prometheus")

    registry = object()
    m = mod.PrometheusMetrics(registry=registry)
    m.inc("rbacsync_reloads_total", {"outcome": "success"})
    m.inc("rbacsync_reloads_total", {"outcome": "success"})
    m.inc("rbacsync_reloads_total", {"outcome": "error"})
    m.observe("rbacsync_reload_seconds", 0.25, {"outcome": "success"})

    counter = created["rbacsync_reloads_total"]
    assert counter.registry is registry
    assert counter.values == {(("outcome", "success"),): 2, (("outcome", "error"),): 1}
    hist = created["rbacsync_reload_seconds"]
    assert hist.labelnames == ("outcome",)
    assert hist.values == {(("outcome", "success"),): [0.25]}
    _purge("rbacsync.metrics.prometheus")


def test_prometheus_sink_without_client_is_noop(monkeypatch):
    _purge("rbacsync.metrics.prometheus")
    real_import = builtins.__import__

    def fake_import(name, *a, **kw):
        if name.startswith("prometheus_client"):
            raise ImportError("No module named 'prometheus_client'")
        return real_import(name, *a, **kw)

    monkeypatch.setattr(builtins, "__import__", fake_import)
    mod = importlib.import_module("rbacsync.metrics.prometheus")
    m = mod.PrometheusMetrics()
    m.inc("rbacsync_reloads_total", {"outcome": "success"})
    m.observe("rbacsync_reload_seconds", 1.0)
    monkeypatch.undo()
    _purge("rbacsync.metrics.prometheus")


def test_otel_sink_records_outcome_and_duration(monkeypatch):
    adds, records = [], []

    class _Counter:
        def add(self, value, attributes=None):
            adds.append((value, dict(attributes or {})))

    class _Hist:
        def record(self, value, attributes=None):
            records.append((value, dict(attributes or {})))

    class _Meter:
        def create_counter(self, *a, **k):
            return _Counter()

        def create_histogram(self, *a, **k):
            return _Hist()

    fake = types.ModuleType("opentelemetry.metrics")
    fake.get_meter = lambda *a, **k: _Meter()
    monkeypatch.setitem(sys.modules, "opentelemetry.metrics", fake)
    _purge("rbacsync.metrics.otel")
    import rbacsync.metrics.otel as otel

    importlib.reload(otel)
    m = otel.OpenTelemetryMetrics()
    m.inc("rbacsync_reloads_total", {"outcome": "apply_error"})
    m.observe("rbacsync_reload_seconds", 0.5, {"outcome": "apply_error"})

    assert adds == [(1, {"outcome": "apply_error"})]
    assert records == [(0.5, {"outcome": "apply_error"})]
    _purge("rbacsync.metrics.otel")


def test_otel_meter_without_histogram(monkeypatch):
    class _Meter:
        def create_counter(self, *a, **k):
            return types.SimpleNamespace(add=lambda *a, **k: None)

    fake = types.ModuleType("opentelemetry.metrics")
    fake.get_meter = lambda *a, **k: _Meter()
    monkeypatch.setitem(sys.modules, "opentelemetry.metrics", fake)
    _purge("rbacsync.metrics.otel")
    import rbacsync.metrics.otel as otel

    importlib.reload(otel)
    m = otel.OpenTelemetryMetrics()
    m.observe("rbacsync_reload_seconds", 0.1)
    m.inc("rbacsync_reloads_total")
    _purge("rbacsync.metrics.otel")


def test_otel_sink_accepts_explicit_meter():
    import rbacsync.metrics.otel as otel

    adds = []

    class _Meter:
        def create_counter(self, **k):
            assert k["name"] == "rbacsync_reloads_total"
            return types.SimpleNamespace(add=lambda v, attrs=None: adds.append((v, attrs)))

    m = otel.OpenTelemetryMetrics(meter=_Meter())
    m.inc("rbacsync_reloads_total", {"outcome": "success"})
    m.observe("rbacsync_reload_seconds", 0.2)
    assert adds == [(1, {"outcome": "success"})]

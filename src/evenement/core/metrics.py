from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from statistics import mean
from typing import Any, Deque, Dict, Iterable, Optional, Tuple

# ---------------- Utilities ----------------

LabelKey = Tuple[Tuple[str, str], ...]  # sorted (k, v) pairs


def _labels_key(labels: Dict[str, Any] | None) -> LabelKey:
    if not labels:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _pct(sorted_vals: Iterable[float], q: float) -> float:
    vals = list(sorted_vals)
    if not vals:
        return 0.0
    idx = max(0, min(len(vals) - 1, int(round((len(vals) - 1) * q))))
    return vals[idx]


# ---------------- Metric types ----------------

@dataclass
class _Base:
    name: str
    labels: LabelKey


class Counter(_Base):
    def __init__(self, name: str, labels: LabelKey):
        super().__init__(name, labels)
        self._value = 0.0
        self._lock = threading.Lock()

    def inc(self, n: float = 1.0) -> None:
        with self._lock:
            self._value += n

    def value(self) -> float:
        with self._lock:
            return self._value


class Gauge(_Base):
    def __init__(self, name: str, labels: LabelKey):
        super().__init__(name, labels)
        self._value = 0.0
        self._lock = threading.Lock()

    def set(self, v: float) -> None:
        with self._lock:
            self._value = float(v)

    def value(self) -> float:
        with self._lock:
            return self._value


class Histogram(_Base):
    def __init__(self, name: str, labels: LabelKey, maxlen: int = 2048):
        super().__init__(name, labels)
        self._values: Deque[float] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def observe(self, v: float) -> None:
        with self._lock:
            self._values.append(float(v))

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            vals = sorted(self._values)
        if not vals:
            return {"count": 0, "min": 0.0, "max": 0.0, "mean": 0.0, "p50": 0.0, "p99": 0.0}
        return {
            "count": float(len(vals)),
            "min": vals[0],
            "max": vals[-1],
            "mean": mean(vals),
            "p50": _pct(vals, 0.50),
            "p99": _pct(vals, 0.99),
        }


# ---------------- Registry ----------------

class _Registry:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._metrics: Dict[type, Dict[Tuple[str, LabelKey], _Base]] = {
            Counter: {}, Gauge: {}, Histogram: {},
        }

    def get(self, kind: type, name: str, labels: Dict[str, Any] | None):
        key = (name, _labels_key(labels))
        with self._lock:
            table = self._metrics[kind]
            m = table.get(key)
            if m is None:
                m = kind(name, key[1])
                table[key] = m
            return m

    def items(self, kind: type):
        with self._lock:
            return list(self._metrics[kind].values())

    def clear(self) -> None:
        with self._lock:
            for table in self._metrics.values():
                table.clear()


_REG = _Registry()

# ---------------- Public API ----------------

def inc(name: str, n: float = 1.0, **labels: Any) -> None:
    _REG.get(Counter, name, labels).inc(n)


def gauge_set(name: str, v: float, **labels: Any) -> None:
    _REG.get(Gauge, name, labels).set(v)


def observe_hist(name: str, v: float, **labels: Any) -> None:
    _REG.get(Histogram, name, labels).observe(v)


def counter_value(name: str, **labels: Any) -> float:
    """Current value of one counter series (0.0 if never touched)."""
    return _REG.get(Counter, name, labels).value()


def gauge_value(name: str, **labels: Any) -> float:
    return _REG.get(Gauge, name, labels).value()


def reset() -> None:
    """Forget every series. Tests only."""
    _REG.clear()


class Timer:
    """Context manager: measure the block in ms and record it into a histogram."""
    def __init__(self, hist_name: str, **labels: Any) -> None:
        self.hist_name = hist_name
        self.labels = labels
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        observe_hist(self.hist_name, (time.perf_counter() - self._t0) * 1000.0, **self.labels)
        return False


# ---------------- Snapshot / export ----------------

def snapshot_all() -> dict:
    out = {"counters": [], "gauges": [], "hists": []}
    for m in _REG.items(Counter):
        out["counters"].append({"name": m.name, "labels": dict(m.labels), "value": m.value()})
    for m in _REG.items(Gauge):
        out["gauges"].append({"name": m.name, "labels": dict(m.labels), "value": m.value()})
    for m in _REG.items(Histogram):
        out["hists"].append({"name": m.name, "labels": dict(m.labels), **m.snapshot()})
    return out


def _emit(log: logging.Logger, json_mode: bool) -> None:
    snap = snapshot_all()
    if json_mode:
        for kind, rows in (("counter", snap["counters"]), ("gauge", snap["gauges"]), ("hist", snap["hists"])):
            for row in rows:
                log.info({"type": kind, **row})
        return
    for row in snap["counters"]:
        log.info(f"[ctr] {row['name']} {row['labels']} value={row['value']:.0f}")
    for row in snap["gauges"]:
        log.info(f"[gauge] {row['name']} {row['labels']} value={row['value']:.3f}")
    for row in snap["hists"]:
        log.info(
            f"[hist] {row['name']} {row['labels']} "
            f"n={int(row['count'])} min={row['min']:.3f} p50={row['p50']:.3f} "
            f"p99={row['p99']:.3f} max={row['max']:.3f} mean={row['mean']:.3f}"
        )


def force_emit(logger: Optional[logging.Logger] = None, json_mode: bool = False) -> None:
    """Log a snapshot right now (tests, shutdown hooks)."""
    _emit(logger or logging.getLogger("metrics"), json_mode)


class _Exporter(threading.Thread):
    def __init__(self, interval_sec: float, json_mode: bool, logger: logging.Logger):
        super().__init__(name="metrics-exporter", daemon=True)
        self.interval = float(interval_sec)
        self.json_mode = json_mode
        self.log = logger
        self._stop_evt = threading.Event()

    def run(self) -> None:
        while not self._stop_evt.wait(max(0.5, self.interval)):
            _emit(self.log, self.json_mode)

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_evt.set()
        self.join(timeout=timeout)


_EXPORTER: Optional[_Exporter] = None


def start_exporter(interval_sec: float = 5.0, json_mode: bool = False, logger: Optional[logging.Logger] = None) -> None:
    global _EXPORTER
    if _EXPORTER is not None:
        return
    _EXPORTER = _Exporter(interval_sec, json_mode, logger or logging.getLogger("metrics"))
    _EXPORTER.start()


def stop_exporter(timeout: float = 1.0) -> None:
    global _EXPORTER
    if _EXPORTER is not None:
        _EXPORTER.stop(timeout=timeout)
        _EXPORTER = None

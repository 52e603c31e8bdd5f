#!/usr/bin/env python3
"""Counters and timers for the changelog pipeline, written as JSONL.

No sockets or agents; each record is one line under ``Config.METRICS_ROOT``.
Callers pass only small labels (repo refs, project ids), never entry bodies.
"""

from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List

from configs.config import Config

_write_lock = threading.Lock()


def _path() -> Path:
    root = Path(getattr(Config, "METRICS_ROOT", ".cache/changelog/metrics"))
    root.mkdir(parents=True, exist_ok=True)
    return root / "metrics.jsonl"


def incr(name: str, value: Any = 1, **labels) -> None:
    if not getattr(Config, "METRICS_ENABLED", True):
        return
    rec: Dict[str, Any] = {"ts": int(time.time()), "metric": name, "value": value}
    for k, v in labels.items():
        if isinstance(v, str) and len(v) > 200:
            rec[k] = v[:200] + "…"
        else:
            rec[k] = v
    line = json.dumps(rec, separators=(",", ":"), default=str) + "\n"
    # Enrichment workers record concurrently
    with _write_lock:
        with open(_path(), "a", encoding="utf-8") as f:
            f.write(line)
            f.flush()
            os.fsync(f.fileno())


def read_metrics(name: str = "") -> List[Dict[str, Any]]:
    p = _path()
    if not p.exists():
        return []
    out = []
    with open(p, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            rec = json.loads(line)
            if not name or rec.get("metric") == name:
                out.append(rec)
    return out


class Timer:
    """Context manager recording ``<name>.latency_s`` and whether the block raised."""

    def __init__(self, name: str, **labels):
        self.name = name
        self.labels = labels
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        dt = time.perf_counter() - self._t0
        incr(f"{self.name}.latency_s", value=round(dt, 6), ok=exc_type is None, **self.labels)
        return False

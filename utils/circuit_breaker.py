#!/usr/bin/env python3
"""Circuit breaker for the AI enrichment collaborator.

Breaker state is persisted as one small JSON document per dependency so that
consecutive CLI runs see the same OPEN window. Enrichment workers share one
breaker instance; a lock keeps their read-modify-write cycles from interleaving.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Literal

logger = logging.getLogger(__name__)

State = Literal["CLOSED", "OPEN", "HALF_OPEN"]


@dataclass
class CBConfig:
    failure_threshold: int = 5
    recovery_time_s: int = 120
    half_open_max_calls: int = 1
    state_root: str = ".cache/changelog/cb"


@dataclass
class BreakerSnapshot:
    state: State = "CLOSED"
    failures: int = 0
    opened_at: int = 0
    probes: int = 0

    @classmethod
    def from_json(cls, raw: str) -> "BreakerSnapshot":
        data = json.loads(raw)
        return cls(
            state=data.get("state", "CLOSED"),
            failures=int(data.get("failures", 0)),
            opened_at=int(data.get("opened_at", 0)),
            probes=int(data.get("probes", 0)),
        )


class CircuitBreaker:
    """Denies calls after ``failure_threshold`` failures in a row.

    Once ``recovery_time_s`` has passed the breaker lets ``half_open_max_calls``
    probe calls through; the first recorded outcome closes or reopens it.
    """

    def __init__(self, name: str, cfg: CBConfig, clock: Callable[[], float] = time.time):
        self.name = name
        self.cfg = cfg
        self.clock = clock
        self._lock = threading.Lock()
        root = Path(cfg.state_root)
        root.mkdir(parents=True, exist_ok=True)
        self._file = root / f"{name.replace('/', '#').replace(os.sep, '#')}.cb.json"

    def _read(self) -> BreakerSnapshot:
        if not self._file.exists():
            return BreakerSnapshot()
        try:
            return BreakerSnapshot.from_json(self._file.read_text(encoding="utf-8"))
        except (OSError, ValueError, TypeError):
            logger.warning(f"Unreadable breaker state for {self.name}; treating it as closed")
            return BreakerSnapshot()

    def _write(self, snap: BreakerSnapshot) -> None:
        tmp = self._file.with_name(self._file.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(asdict(snap), f, separators=(",", ":"))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self._file)

    def state(self) -> State:
        with self._lock:
            return self._read().state

    def allow(self) -> bool:
        """Whether a call may go out now. Admitting a probe is itself recorded."""
        with self._lock:
            snap = self._read()
            if snap.state == "CLOSED":
                return True
            if snap.state == "OPEN":
                if int(self.clock()) - snap.opened_at < self.cfg.recovery_time_s:
                    return False
                snap.state, snap.probes = "HALF_OPEN", 0
                logger.info(f"Breaker {self.name} half-open; probing")
            if snap.probes >= self.cfg.half_open_max_calls:
                return False
            snap.probes += 1
            self._write(snap)
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._read().state != "CLOSED":
                logger.info(f"✓ Breaker {self.name} closed")
            self._write(BreakerSnapshot())

    def record_failure(self) -> None:
        with self._lock:
            snap = self._read()
            snap.failures += 1
            if snap.state == "HALF_OPEN" or snap.failures >= self.cfg.failure_threshold:
                if snap.state != "OPEN":
                    logger.warning(f"Breaker {self.name} opened after {snap.failures} failures")
                snap.state, snap.opened_at, snap.probes = "OPEN", int(self.clock()), 0
            self._write(snap)

#!/usr/bin/env python3
"""Retry wrapper shared by remote calls."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


def with_retries(
    fn: Callable[[], Any],
    *,
    max_attempts: int,
    backoff_s: float,
    retry_on: Iterable[str],
    classify_exc: Callable[[Exception], str],
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Call ``fn`` until it succeeds or fails with a non-retryable code."""
    retry_codes = set(retry_on)
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:  # noqa: BLE001
            code = classify_exc(e)
            if code in retry_codes and attempt + 1 < max_attempts:
                delay = backoff_s * (2 ** attempt)
                logger.debug(f"Retrying after {code} (attempt {attempt + 1}/{max_attempts}, sleep {delay:.2f}s)")
                sleep(delay)
                attempt += 1
                continue
            raise

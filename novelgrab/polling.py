# -*- coding: utf-8 -*-
"""Bounded polling primitives.

Both helpers take an async ``probe`` callable, poll it at a fixed interval
and stop at a deadline. They never raise on timeout; the caller gets a
:class:`PollResult` with ``ok`` set accordingly and the last value seen.
Exceptions from the probe count as a failed sample.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

LOG = logging.getLogger("novelgrab.polling")

Probe = Callable[[], Awaitable[Any]]


@dataclass
class PollResult:
    ok: bool
    value: Any = None
    attempts: int = 0


async def poll_until(
    probe: Probe,
    interval: float,
    timeout: float,
    predicate: Callable[[Any], bool] = bool,
) -> PollResult:
    end = time.monotonic() + max(0.0, timeout)
    last: Any = None
    attempts = 0
    while True:
        attempts += 1
        try:
            last = await probe()
        except Exception as exc:
            LOG.debug("Probe failed on attempt %d: %s", attempts, exc)
            last = None
        else:
            if predicate(last):
                return PollResult(True, last, attempts)
        if time.monotonic() >= end:
            return PollResult(False, last, attempts)
        await asyncio.sleep(interval)


def _within(a: Sequence[float], b: Sequence[float], tolerance: float) -> bool:
    if len(a) != len(b):
        return False
    return all(abs(x - y) <= tolerance for x, y in zip(a, b))


async def wait_stable(
    probe: Callable[[], Awaitable[Optional[Sequence[float]]]],
    interval: float,
    timeout: float,
    samples: int = 3,
    tolerance: float = 1.0,
) -> PollResult:
    """Wait until ``samples`` consecutive readings agree within ``tolerance``.

    ``None`` readings break the streak. On timeout the last non-empty reading
    is returned with ``ok=False``.
    """
    end = time.monotonic() + max(0.0, timeout)
    last_seen: Optional[Sequence[float]] = None
    previous: Optional[Sequence[float]] = None
    streak = 0
    attempts = 0
    needed = max(1, samples)
    while True:
        attempts += 1
        try:
            current = await probe()
        except Exception as exc:
            LOG.debug("Stability probe failed on attempt %d: %s", attempts, exc)
            current = None
        if current is None:
            streak = 0
            previous = None
        else:
            last_seen = current
            if previous is not None and _within(previous, current, tolerance):
                streak += 1
            else:
                streak = 1
            previous = current
            if streak >= needed:
                return PollResult(True, current, attempts)
        if time.monotonic() >= end:
            return PollResult(False, last_seen, attempts)
        await asyncio.sleep(interval)

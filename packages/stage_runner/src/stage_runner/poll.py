from __future__ import annotations

import sys
import time
from collections.abc import Callable
from dataclasses import dataclass


def _eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


@dataclass(frozen=True)
class PollPolicy:
    attempts: int = 12
    interval_seconds: float = 5.0
    initial_delay_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.interval_seconds < 0 or self.initial_delay_seconds < 0:
            raise ValueError("poll delays must be >= 0")


def wait_until(
    probe: Callable[[], bool],
    *,
    policy: PollPolicy,
    what: str,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Call ``probe`` up to ``policy.attempts`` times until it returns True.

    Returns False (after printing a warning) when attempts are exhausted; callers continue
    optimistically rather than failing.
    """

    if policy.initial_delay_seconds:
        sleep(policy.initial_delay_seconds)
    for attempt in range(1, policy.attempts + 1):
        if probe():
            return True
        if attempt < policy.attempts:
            _eprint(f"Still waiting for {what}... (attempt {attempt}/{policy.attempts})")
            sleep(policy.interval_seconds)
    _eprint(f"WARNING: {what} is taking longer than expected; continuing anyway.")
    return False

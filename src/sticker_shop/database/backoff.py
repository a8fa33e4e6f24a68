"""Retry delay computation: exponential backoff plus jitter."""

from __future__ import annotations

import random

from .errors import FailureKind

# Extra wait on top of the backoff, per failure kind (milliseconds).
# A reset or broken pipe needs the server side to finish cleaning up.
EXTRA_DELAY_MS: dict[FailureKind, int] = {
    FailureKind.TIMEOUT: 300,
    FailureKind.CONNECTION_RESET: 500,
    FailureKind.BROKEN_PIPE: 1000,
    FailureKind.SERVER_UNREACHABLE: 300,
    FailureKind.UNKNOWN: 300,  # same as TIMEOUT
}


def compute_backoff_ms(
    attempt: int,
    base_ms: int,
    max_jitter_ms: int,
    max_delay_ms: int | None = None,
    rng: random.Random | None = None,
) -> float:
    """Return the delay before the retry following try ``attempt``.

    The exponential part is ``base_ms * 2**attempt`` capped at
    ``max_delay_ms``, so it never decreases as ``attempt`` grows. The jitter
    is drawn uniformly from ``[0, max_jitter_ms]``.

    Args:
        attempt: Zero-based index of the try that just failed.
        base_ms: Base delay.
        max_jitter_ms: Upper bound of the jitter term.
        max_delay_ms: Cap on the exponential part, None for no cap.
        rng: Random source, module-level random if None.
    """
    if attempt < 0:
        msg = f"attempt must be non-negative, got {attempt}"
        raise ValueError(msg)

    delay = float(base_ms * (2**attempt))
    if max_delay_ms is not None:
        delay = min(delay, float(max_delay_ms))

    source = rng if rng is not None else random
    jitter = source.uniform(0, max_jitter_ms) if max_jitter_ms > 0 else 0.0
    return delay + jitter


def extra_delay_ms(kind: FailureKind) -> int:
    """Return the kind-specific wait added before the next try."""
    return EXTRA_DELAY_MS.get(kind, 0)

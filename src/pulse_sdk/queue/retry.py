"""Retry/eviction decision for events whose delivery failed."""

from __future__ import annotations

from dataclasses import dataclass, field


def should_evict(retry_count: int, max_retries: int) -> bool:
    """
    Decide whether an event is dropped after a failed delivery attempt.

    Args:
        retry_count: Failed attempts so far, including the one just made
        max_retries: Limit snapshotted on the event at append time

    Returns:
        True iff the event has used up its attempts
    """
    return retry_count >= max_retries


@dataclass
class RetryResult:
    """Ids settled by one bump_retry_or_evict call, in store order."""
    retried: list[str] = field(default_factory=list)
    evicted: list[str] = field(default_factory=list)

"""Data models exchanged with remote query executors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(slots=True)
class RemoteResult:
    """Raw rows returned by a remote executor.

    Attributes:
        rows: One dict per result. Expanded navigations appear under the
            navigation name as a nested dict (scalar), None, or a list of
            dicts (collection). Projected queries return plain records.
        inline_count: Total matches ignoring skip/take, when requested.
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    inline_count: int | None = None


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Configuration for retrying failed remote calls.

    Useful for executors talking to services with transient failures.
    """

    max_attempts: int = 1
    """Maximum attempts (1 = no retry). Default: no retry."""

    backoff: Literal["none", "linear", "exponential"] = "none"
    """Backoff strategy between retries."""

    base_delay: float = 0.1
    """Base delay in seconds for backoff calculation."""

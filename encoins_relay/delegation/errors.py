"""Error taxonomy for the delegation tracker.

Decode-level problems are not exceptions: the decoder returns a
``Skipped`` result instead (see ``decoder.py``).
"""

from __future__ import annotations


class DelegationError(Exception):
    """Base class for delegation tracker errors."""


class NetworkFailure(DelegationError):
    """Indexer unreachable or erroring. Aborts the current scan cycle."""


class DatumUnavailable(DelegationError):
    """A hash-referenced datum could not be resolved. Skips one output."""

    def __init__(self, datum_hash: str, reason: str = ""):
        self.datum_hash = datum_hash
        self.reason = reason
        super().__init__(f"datum {datum_hash} unavailable: {reason}" if reason else f"datum {datum_hash} unavailable")


class StorageCorruption(DelegationError):
    """The most recent checkpoint file cannot be parsed. Fatal at startup."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"corrupt checkpoint {path}: {reason}")


class StalenessExceeded(DelegationError):
    """Published state is older than the permitted synchronization delay."""

    def __init__(self, age: float | None, max_delay: float):
        self.age = age
        self.max_delay = max_delay
        if age is None:
            msg = "no delegation state has been published yet"
        else:
            msg = f"delegation state is {age:.0f}s old (max {max_delay:.0f}s)"
        super().__init__(msg)


__all__ = [
    "DatumUnavailable",
    "DelegationError",
    "NetworkFailure",
    "StalenessExceeded",
    "StorageCorruption",
]

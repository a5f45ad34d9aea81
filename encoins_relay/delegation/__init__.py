"""Delegation tracking for relay servers.

Token holders delegate their ENCOINS balance to a relay endpoint by
posting a declaration datum on chain. This package scans for those
declarations and keeps the per-endpoint totals current:

- decoder: declaration datum -> Delegation
- merger: latest declaration per stake key wins
- aggregator: registry x holder balances -> endpoint totals
- store: append-only JSON checkpoints for incremental resumption
- scanner: scheduled scan cycles publishing into the StateCache
"""

from .aggregator import aggregate, select_servers
from .cache import CacheRead, StateCache
from .decoder import DatumDecoder, Decoded, SkipReason, Skipped, is_valid_endpoint
from .errors import (
    DatumUnavailable,
    DelegationError,
    NetworkFailure,
    StalenessExceeded,
    StorageCorruption,
)
from .merger import last_delegation, merge, remove_duplicates
from .models import (
    Credential,
    DatumContent,
    Delegation,
    Progress,
    Snapshot,
    TransactionRecord,
    TxOutput,
    TxOutRef,
)
from .scanner import CycleResult, DelegationScanner, ScanState

__all__ = [
    "CacheRead",
    "Credential",
    "CycleResult",
    "DatumContent",
    "DatumDecoder",
    "DatumUnavailable",
    "Decoded",
    "Delegation",
    "DelegationError",
    "DelegationScanner",
    "NetworkFailure",
    "Progress",
    "ScanState",
    "SkipReason",
    "Skipped",
    "Snapshot",
    "StalenessExceeded",
    "StateCache",
    "StorageCorruption",
    "TransactionRecord",
    "TxOutRef",
    "TxOutput",
    "aggregate",
    "is_valid_endpoint",
    "last_delegation",
    "merge",
    "remove_duplicates",
    "select_servers",
]

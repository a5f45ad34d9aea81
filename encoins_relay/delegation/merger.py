"""Idempotent merge of the delegation registry with new declarations.

One delegation survives per stake key: the one created at the greatest
slot. Equal slots fall back to the greater output reference, then the
endpoint, so the outcome depends only on the set of inputs and never on
their order.
"""

from __future__ import annotations

from typing import Iterable

from .models import Delegation


def _precedence(d: Delegation) -> tuple[int, tuple[str, int], str]:
    return (d.created, d.tx_out_ref.sort_key(), d.endpoint)


def remove_duplicates(delegations: Iterable[Delegation]) -> list[Delegation]:
    """Keep the latest delegation per stake key, ordered by stake key."""
    latest: dict[str, Delegation] = {}
    for d in delegations:
        current = latest.get(d.stake_key)
        if current is None or _precedence(d) > _precedence(current):
            latest[d.stake_key] = d
    return [latest[k] for k in sorted(latest)]


def merge(existing: Iterable[Delegation], discovered: Iterable[Delegation]) -> list[Delegation]:
    """Fold newly discovered delegations into an existing registry."""
    return remove_duplicates([*existing, *discovered])


def last_delegation(delegations: Iterable[Delegation]) -> Delegation | None:
    """Most recently created delegation, if any."""
    return max(delegations, key=_precedence, default=None)


__all__ = ["last_delegation", "merge", "remove_duplicates"]

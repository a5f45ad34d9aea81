"""Join of the delegation registry with token holder balances."""

from __future__ import annotations

from typing import Iterable, Mapping

from .models import AggregateResult, Delegation


def aggregate(delegations: Iterable[Delegation], balances: Mapping[str, int]) -> AggregateResult:
    """Sum holder balances per delegated endpoint.

    Delegators absent from ``balances`` contribute nothing and do not create
    an entry; an explicit zero balance still produces the endpoint key.
    """
    totals: dict[str, int] = {}
    for d in delegations:
        balance = balances.get(d.stake_key)
        if balance is None:
            continue
        totals[d.endpoint] = totals.get(d.endpoint, 0) + balance
    return dict(sorted(totals.items()))


def select_servers(result: Mapping[str, int], min_token_number: int) -> list[str]:
    """Endpoints whose delegated total exceeds ``min_token_number``."""
    return [endpoint for endpoint, total in sorted(result.items()) if total > min_token_number]


__all__ = ["aggregate", "select_servers"]

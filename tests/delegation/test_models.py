"""Tests for delegation models."""

import pytest
from pydantic import ValidationError

from encoins_relay.delegation.models import (
    Credential,
    DatumContent,
    Delegation,
    Progress,
    TxOutRef,
)


def _delegation() -> Delegation:
    return Delegation(
        credential=Credential(kind="script", hash="01" * 28),
        stake_key="02" * 28,
        tx_out_ref=TxOutRef(tx_id="ab" * 32, index=2),
        created=77,
        endpoint="a.com",
    )


class TestModels:

    def test_progress_json_round_trip(self):
        progress = Progress(last_tx_id="ab" * 32, delegations=(_delegation(),))

        data = progress.model_dump(mode="json")

        assert data["delegations"][0]["tx_out_ref"] == {"tx_id": "ab" * 32, "index": 2}
        assert Progress.model_validate(data) == progress

    def test_empty_progress(self):
        progress = Progress()
        assert progress.last_tx_id is None
        assert progress.delegations == ()

    def test_delegation_is_immutable(self):
        d = _delegation()
        with pytest.raises(ValidationError):
            d.endpoint = "b.com"

    def test_tx_out_ref_ordering_key(self):
        assert TxOutRef(tx_id="aa", index=3).sort_key() < TxOutRef(tx_id="ab", index=0).sort_key()
        with pytest.raises(ValidationError):
            TxOutRef(tx_id="aa", index=-1)

    def test_datum_kind_validated(self):
        with pytest.raises(ValidationError):
            DatumContent(kind="reference")
        with pytest.raises(ValidationError):
            Credential(kind="bootstrap", hash="00")

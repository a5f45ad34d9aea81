"""Tests for configuration loading."""

import json
import os
import tempfile

import pytest
from pydantic import ValidationError

from encoins_relay.config import ENV_PREFIX, DelegationConfig, load_config

SYMBOL = "9abf0afd2f236a19f2842d502d0450cbcd9c79f123a9708f96fd9b96"


@pytest.fixture
def config_file():
    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "delegation.json")
        with open(path, "w") as f:
            json.dump({
                "network_id": "preprod",
                "delegation_currency_symbol": SYMBOL,
                "delegation_token_name": "ENCS",
                "delegation_folder": "/tmp/delegation",
                "frequency": 120,
            }, f)
        yield path


class TestLoadConfig:

    def test_from_file(self, config_file):
        config = load_config(config_file, environ={})

        assert config.network_id == "preprod"
        assert config.delegation_token_name == "ENCS"
        assert config.frequency == 120
        assert config.max_delay == 600
        assert config.check_signature is True

    def test_overrides_beat_file(self, config_file):
        config = load_config(config_file, environ={}, frequency=30, max_delay=None)

        assert config.frequency == 30
        assert config.max_delay == 600

    def test_environment_beats_overrides(self, config_file):
        environ = {
            ENV_PREFIX + "FREQUENCY": "15",
            ENV_PREFIX + "CHECK_SIGNATURE": "false",
        }

        config = load_config(config_file, environ=environ, frequency=30)

        assert config.frequency == 15
        assert config.check_signature is False

    def test_environment_only(self):
        environ = {
            ENV_PREFIX + "DELEGATION_CURRENCY_SYMBOL": SYMBOL,
            ENV_PREFIX + "DELEGATION_TOKEN_NAME": "ENCS",
        }

        config = load_config(environ=environ)

        assert config.network_id == "mainnet"
        assert config.delegation_currency_symbol == SYMBOL

    def test_rejects_bad_values(self):
        with pytest.raises(ValidationError):
            DelegationConfig(delegation_currency_symbol="xyz", delegation_token_name="ENCS")
        with pytest.raises(ValidationError):
            DelegationConfig(delegation_currency_symbol=SYMBOL, delegation_token_name="ENCS", frequency=0)
        with pytest.raises(ValidationError):
            DelegationConfig(delegation_currency_symbol=SYMBOL, delegation_token_name="ENCS", network_id="testnet")

    def test_missing_required(self):
        with pytest.raises(ValidationError):
            load_config(environ={})

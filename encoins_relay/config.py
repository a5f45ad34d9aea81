"""Delegation server configuration.

Values come from a JSON config file, then ``ENCOINS_DELEGATION__<FIELD>``
environment variables, which take precedence.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field

ENV_PREFIX = "ENCOINS_DELEGATION__"


class DelegationConfig(BaseModel):
    """Settings consumed by the delegation scanner and its readers."""

    host: str = "127.0.0.1"
    port: int = 3100
    network_id: str = Field(default="mainnet", pattern=r"^(mainnet|preprod|preview)$")
    delegation_currency_symbol: str = Field(pattern=r"^[0-9a-fA-F]{56}$")
    delegation_token_name: str
    delegation_folder: str = "delegation"
    frequency: int = Field(default=60, gt=0, description="minimal seconds between scans")
    max_delay: int = Field(default=600, gt=0, description="permitted synchronization delay in seconds")
    min_token_number: int = Field(default=0, ge=0, description="tokens needed to be listed as a server")
    reward_token_threshold: int = Field(default=0, ge=0, description="token cap for reward distribution")
    check_signature: bool = True
    max_concurrent_fetches: int = Field(default=4, gt=0)


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in DelegationConfig.model_fields:
        value = environ.get(ENV_PREFIX + name.upper())
        if value is not None:
            overrides[name] = value
    return overrides


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> DelegationConfig:
    """Build the config: file, then explicit overrides, then environment."""
    data: dict[str, Any] = {}
    if path is not None:
        with open(path) as f:
            data.update(json.load(f))
    data.update({k: v for k, v in overrides.items() if v is not None})
    data.update(_env_overrides(os.environ if environ is None else environ))
    return DelegationConfig(**data)


__all__ = ["ENV_PREFIX", "DelegationConfig", "load_config"]

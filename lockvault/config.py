"""Vault configuration: pydantic schema and YAML loader."""

import hashlib
import json
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .core import VaultTerms, DEFAULT_SECONDS_PER_YEAR, PERCENT_DENOMINATOR, SYSTEM_WALLET


class VaultSettings(BaseModel):
    """Term sheet of a vault as read from configuration."""
    name: str = Field(default="vault", min_length=1, description="Vault (custody wallet) name")
    asset_symbol: str = Field(default="ASSET", min_length=1, description="Underlying asset unit")
    share_symbol: str = Field(default="vASSET", min_length=1, description="Share unit symbol")
    share_name: str = Field(default="Vault Share", description="Share unit name")

    lock_duration_seconds: int = Field(default=7 * 24 * 60 * 60, ge=0, description="Lock duration of every deposit")
    withdrawal_fee_percent: int = Field(default=5, ge=0, lt=PERCENT_DENOMINATOR, description="Fee on locked withdrawals")
    base_apy: int = Field(default=100, ge=0, description="APY of an empty pool, parts-per-thousand")
    apy_step_size: int = Field(default=10 ** 24, gt=0, description="Pool value per APY step, base units")
    apy_step_rate: int = Field(default=10, ge=0, description="APY increase per step, parts-per-thousand")
    max_apy: int = Field(default=200, ge=0, description="APY cap, parts-per-thousand")
    seconds_per_year: int = Field(default=DEFAULT_SECONDS_PER_YEAR, gt=0, description="Compounding year length")
    decimals_offset: int = Field(default=0, ge=0, le=18, description="Virtual share offset exponent")

    @field_validator("name")
    @classmethod
    def reject_system_wallet(cls, v):
        if v == SYSTEM_WALLET:
            raise ValueError(f"name cannot be the reserved wallet {SYSTEM_WALLET!r}")
        return v

    @field_validator("apy_step_size", mode="before")
    @classmethod
    def coerce_step_size(cls, v):
        """YAML reads 1e24 as a float; accept it when it is integral."""
        if isinstance(v, float):
            if not v.is_integer():
                raise ValueError(f"apy_step_size must be integral, got {v}")
            return int(Decimal(repr(v)))
        return v

    @model_validator(mode="after")
    def validate_apy_range(self):
        """Ensure the APY cap is not below the base rate."""
        if self.max_apy < self.base_apy:
            raise ValueError(
                f"max_apy ({self.max_apy}) must be >= base_apy ({self.base_apy})"
            )
        return self

    def to_terms(self) -> VaultTerms:
        """Build the immutable VaultTerms used by Vault."""
        return VaultTerms(
            lock_duration=timedelta(seconds=self.lock_duration_seconds),
            withdrawal_fee_percent=self.withdrawal_fee_percent,
            base_apy=self.base_apy,
            apy_step_size=Decimal(self.apy_step_size),
            apy_step_rate=self.apy_step_rate,
            max_apy=self.max_apy,
            seconds_per_year=self.seconds_per_year,
            decimals_offset=self.decimals_offset,
        )

    def compute_hash(self) -> str:
        """Short stable hash of the settings, for tagging runs."""
        config_str = json.dumps(self.model_dump(), sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VaultSettings':
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


def load_config(yaml_path: Optional[str] = None) -> VaultSettings:
    """
    Load vault settings from a YAML file.

    Args:
        yaml_path: Path to YAML file (defaults to the packaged defaults.yaml)

    Returns:
        VaultSettings object
    """
    if yaml_path is None:
        yaml_path = Path(__file__).parent / "defaults.yaml"

    with open(yaml_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    return VaultSettings.from_dict(data.get("vault", data))


def config_from_dict(data: Dict[str, Any]) -> VaultSettings:
    """Create settings from a dictionary."""
    return VaultSettings.from_dict(data)

"""
Configuration schema validation using Pydantic
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from web3 import Web3

from .constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MULTI_HOP,
    DEFAULT_OPTIMIZER,
    DEFAULT_THRESHOLDS,
    WETH_ADDRESS,
)
from .utils import to_wad


def _amount(value: Any) -> int:
    """Accept wad ints or whole-unit strings ("2.0")."""
    try:
        return to_wad(value)
    except ValueError as e:
        raise ValueError(f"Invalid amount {value!r}: {e}") from e


class ThresholdsConfig(BaseModel):
    """Market filter and sizing thresholds (amounts in wei)"""

    model_config = ConfigDict(frozen=True)

    min_liquidity: int = Field(
        gt=0, default=DEFAULT_THRESHOLDS["MIN_LIQUIDITY"], description="Minimum reserve"
    )
    min_volume_24h: int = Field(gt=0, default=DEFAULT_THRESHOLDS["MIN_VOLUME_24H"])
    min_market_cap: int = Field(gt=0, default=DEFAULT_THRESHOLDS["MIN_MARKET_CAP"])
    max_pairs: int = Field(
        ge=1, default=DEFAULT_THRESHOLDS["MAX_PAIRS"], description="Pools kept per token"
    )
    min_profit_threshold: int = Field(
        gt=0, default=DEFAULT_THRESHOLDS["MIN_PROFIT_THRESHOLD"]
    )
    max_trade_size: int = Field(gt=0, default=DEFAULT_THRESHOLDS["MAX_TRADE_SIZE"])

    @field_validator(
        "min_liquidity",
        "min_volume_24h",
        "min_market_cap",
        "min_profit_threshold",
        "max_trade_size",
        mode="before",
    )
    @classmethod
    def parse_amount(cls, v):
        return _amount(v)


class OptimizerConfig(BaseModel):
    """Dual optimizer configuration"""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    max_iterations: int = Field(
        ge=1, le=10000, default=DEFAULT_OPTIMIZER["MAX_ITERATIONS"]
    )
    tolerance: int = Field(
        gt=0,
        default=to_wad(DEFAULT_OPTIMIZER["TOLERANCE"]),
        description="Gradient norm tolerance (wad)",
    )
    memory: int = Field(ge=1, le=100, default=DEFAULT_OPTIMIZER["MEMORY"])
    bounds_precision: int = Field(
        ge=1, default=DEFAULT_OPTIMIZER["BOUNDS_PRECISION"], description="wei"
    )

    @field_validator("tolerance", mode="before")
    @classmethod
    def parse_tolerance(cls, v):
        return _amount(v)


class MultiHopConfig(BaseModel):
    """Flash-loan cycle search configuration"""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    max_hops: int = Field(
        ge=DEFAULT_MULTI_HOP["MIN_HOPS"], le=6, default=DEFAULT_MULTI_HOP["MAX_HOPS"]
    )
    max_paths: int = Field(ge=1, le=1000, default=DEFAULT_MULTI_HOP["MAX_PATHS"])
    flash_loan_fee_bps: int = Field(
        ge=0, le=10000, default=DEFAULT_MULTI_HOP["FLASH_LOAN_FEE_BPS"]
    )
    start_token: Optional[str] = Field(
        default=None, description="Token borrowed by the flash loan (base token if unset)"
    )

    @field_validator("start_token")
    @classmethod
    def validate_start_token(cls, v):
        if v is not None and not Web3.is_address(v):
            raise ValueError(f"Invalid start_token address: {v}")
        return Web3.to_checksum_address(v) if v is not None else v


class ConcurrencyConfig(BaseModel):
    """Bounds on concurrent chain reads"""

    model_config = ConfigDict(frozen=True)

    max_concurrent_reads: int = Field(
        ge=1, le=100, default=DEFAULT_CONCURRENCY["MAX_CONCURRENT_READS"]
    )
    balance_retries: int = Field(
        ge=1, le=20, default=DEFAULT_CONCURRENCY["BALANCE_RETRIES"]
    )
    balance_retry_delay: float = Field(
        ge=0,
        le=60,
        default=DEFAULT_CONCURRENCY["BALANCE_RETRY_DELAY_SECONDS"],
        description="Seconds, multiplied by the attempt number",
    )
    rpc_timeout: float = Field(
        gt=0, le=300, default=DEFAULT_CONCURRENCY["RPC_TIMEOUT_SECONDS"]
    )


class EngineConfig(BaseModel):
    """Complete arbitrage engine configuration"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_token: str = Field(default=WETH_ADDRESS, description="Base asset (WETH)")
    rpc_url_env: str = Field(
        default="RPC_URL", description="Environment variable holding the node URL"
    )
    poll_sec: float = Field(gt=0, le=3600, default=2.0)
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    multihop: MultiHopConfig = Field(default_factory=MultiHopConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)

    @field_validator("base_token")
    @classmethod
    def validate_base_token(cls, v):
        if not Web3.is_address(v):
            raise ValueError(f"Invalid base_token address: {v}")
        return Web3.to_checksum_address(v)

    @field_validator("rpc_url_env")
    @classmethod
    def validate_rpc_url_env(cls, v):
        if not v or not v.strip():
            raise ValueError("rpc_url_env cannot be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_profit_vs_size(self):
        if self.thresholds.min_profit_threshold >= self.thresholds.max_trade_size:
            raise ValueError("min_profit_threshold must be below max_trade_size")
        return self

    @property
    def start_token(self) -> str:
        return self.multihop.start_token or self.base_token


def validate_engine_config(config_dict: Dict) -> EngineConfig:
    """
    Validate an engine configuration dictionary

    Args:
        config_dict: Dictionary representation of engine config

    Returns:
        Validated EngineConfig object

    Raises:
        pydantic.ValidationError: If configuration is invalid
    """
    return EngineConfig(**config_dict)

"""
Descriptors for the reference catalog: the tracked assets and the single user
every observation is attributed to.
"""
from typing import List

from pydantic import BaseModel, Field, field_validator


class AssetSpec(BaseModel):
    symbol: str = Field(..., description="Ticker, e.g. BTC")
    name: str = Field(..., description="CoinGecko coin id, e.g. bitcoin")

    @field_validator('symbol')
    def uppercase_symbol(cls, v):
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be empty")
        return v

    @field_validator('name')
    def lowercase_name(cls, v):
        v = v.strip().lower()
        if not v:
            raise ValueError("name must not be empty")
        return v


class UserSpec(BaseModel):
    name: str = Field(..., min_length=1)


class SeedReport(BaseModel):
    seeded: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


DEFAULT_ASSETS = [
    AssetSpec(symbol="BTC", name="bitcoin"),
    AssetSpec(symbol="SOL", name="solana"),
    AssetSpec(symbol="ETH", name="ethereum"),
]

"""DexScreener /token-pairs payload, reduced to what the liquidity checks read."""

from decimal import Decimal

from pydantic import BaseModel


class _DexModel(BaseModel):
    model_config = {"extra": "ignore"}


class DexScreenerToken(_DexModel):
    address: str
    symbol: str | None = None


class DexScreenerWindows(_DexModel):
    """Rolling-window numbers (volume, priceChange). Only 1h and 24h are used."""

    h1: Decimal | None = None
    h24: Decimal | None = None


class DexScreenerLiquidity(_DexModel):
    usd: Decimal | None = None


class DexScreenerTxns(_DexModel):
    buys: int | None = None
    sells: int | None = None


class DexScreenerTxnsByPeriod(_DexModel):
    h1: DexScreenerTxns | None = None
    h24: DexScreenerTxns | None = None


class DexScreenerPair(_DexModel):
    chainId: str = ""
    dexId: str = ""
    url: str | None = None
    pairAddress: str = ""
    baseToken: DexScreenerToken | None = None
    priceUsd: str | None = None
    priceChange: DexScreenerWindows | None = None
    volume: DexScreenerWindows | None = None
    liquidity: DexScreenerLiquidity | None = None
    txns: DexScreenerTxnsByPeriod | None = None
    fdv: Decimal | None = None
    marketCap: Decimal | None = None
    labels: list[str] = []
    # unix milliseconds
    pairCreatedAt: int | None = None

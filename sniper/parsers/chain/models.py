"""JSON-RPC log shapes (eth_getLogs / eth_subscribe "logs")."""

from pydantic import BaseModel, field_validator


def _hex_to_int(value: object) -> object:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return value


class RawLog(BaseModel):
    address: str
    topics: list[str] = []
    data: str = "0x"
    blockNumber: int | None = None
    transactionHash: str | None = None
    logIndex: int | None = None
    removed: bool = False

    model_config = {"extra": "ignore"}

    @field_validator("blockNumber", "logIndex", mode="before")
    @classmethod
    def _parse_quantity(cls, v: object) -> object:
        return _hex_to_int(v)

    @property
    def topic0(self) -> str | None:
        return self.topics[0].lower() if self.topics else None

    @property
    def dedup_key(self) -> str:
        """txHash:logIndex:address, lowercase."""
        tx = (self.transactionHash or "unknown").lower()
        index = self.logIndex if self.logIndex is not None else "unknown"
        return f"{tx}:{index}:{self.address.lower()}"

    @property
    def order_key(self) -> tuple[int, int]:
        return (self.blockNumber or 0, self.logIndex or 0)

"""Webhook payload schemas for the upstream chain-log provider."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from autosave.core.codec import hex_to_int
from autosave.core.errors import ParseError


def _int_or_hex(value):
    """Providers send block numbers and indices either as ints or as 0x-hex strings."""
    if value is None or isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return hex_to_int(value) if value.lower().startswith("0x") else int(value)
        except (ParseError, ValueError) as exc:
            raise ValueError(f"invalid integer value {value!r}") from exc
    raise ValueError(f"invalid integer value {value!r}")


class WebhookLog(BaseModel):
    """A single chain log entry."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    address: str = Field(..., min_length=42, max_length=42)
    data: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    transaction_hash: str = Field(..., alias="transactionHash", min_length=1)
    log_index: Optional[int] = Field(None, alias="logIndex")
    transaction_index: Optional[int] = Field(None, alias="transactionIndex")

    @field_validator("address", "transaction_hash")
    @classmethod
    def lowercase(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("log_index", "transaction_index", mode="before")
    @classmethod
    def parse_index(cls, v):
        return _int_or_hex(v)


class WebhookReceipt(BaseModel):
    """A block-scoped group of logs as delivered by the provider."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    block_number: Optional[int] = Field(None, alias="blockNumber")
    logs: List[WebhookLog] = Field(default_factory=list)

    @field_validator("block_number", mode="before")
    @classmethod
    def parse_block_number(cls, v):
        return _int_or_hex(v)


class WebhookPayload(BaseModel):
    """Top-level webhook body: `{ data: [receipt, ...] }`."""

    data: List[WebhookReceipt] = Field(default_factory=list)


class WebhookResponse(BaseModel):
    """Webhook acknowledgement. Always success at the transport layer."""

    success: bool = True
    detected: int = 0

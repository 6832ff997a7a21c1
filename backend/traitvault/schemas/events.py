"""Typed domain events produced by the extractor."""

from dataclasses import dataclass, field
from typing import Optional, Union


@dataclass(frozen=True)
class MintEvent:
    contract_address: str
    token_id: int
    recipient: str
    traits: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TransferEvent:
    contract_address: str
    token_id: int
    recipient: str
    sender: Optional[str] = None


NFTEvent = Union[MintEvent, TransferEvent]

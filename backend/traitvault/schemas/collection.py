"""
Response schemas for the read-only collection API.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CollectionOut(BaseModel):
    id: int
    contract_address: str
    name: str
    description: Optional[str] = None
    total_supply: int = 0
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CollectionStats(BaseModel):
    collection: CollectionOut
    total_nfts: int
    total_holders: int
    recent_mints: int
    recent_transfers: int
    period: str


class TraitOut(BaseModel):
    trait_type: str
    trait_value: str
    rarity_score: Optional[float] = None


class NFTOut(BaseModel):
    id: int
    collection_id: int
    token_id: int
    owner_address: str
    minted_at: Optional[datetime] = None
    rarity_score: Optional[float] = None
    rarity_rank: Optional[int] = None
    traits: list[TraitOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class TransactionOut(BaseModel):
    id: int
    nft_id: int
    tx_hash: str
    event_index: int = 0
    tx_type: str
    from_address: Optional[str] = None
    to_address: str
    block_height: int
    block_hash: Optional[str] = None
    timestamp: datetime

    model_config = {"from_attributes": True}


class NFTDetail(NFTOut):
    transactions: list[TransactionOut] = Field(default_factory=list)


class NFTListResponse(BaseModel):
    nfts: list[NFTOut]
    total: int
    limit: int
    offset: int


class NFTSearchRequest(BaseModel):
    """All listed trait_type -> trait_value pairs must match."""

    traits: dict[str, str] = Field(min_length=1)


class NFTSearchResponse(BaseModel):
    nfts: list[NFTOut]
    count: int


class TraitValueOut(BaseModel):
    value: str
    count: int
    rarity_score: Optional[float] = None


class HolderOut(BaseModel):
    holder_address: str
    nft_count: int


class HolderListResponse(BaseModel):
    holders: list[HolderOut]
    total_holders: int


class ActivityOut(TransactionOut):
    token_id: int


class RarityResponse(BaseModel):
    success: bool
    message: str
    total_supply: int
    traits_scored: int
    tokens_ranked: int

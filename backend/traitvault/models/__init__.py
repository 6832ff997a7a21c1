from traitvault.models.base import Base, utcnow
from traitvault.models.collection import Collection
from traitvault.models.nft import NFT
from traitvault.models.trait import Trait
from traitvault.models.trait_statistic import TraitStatistic
from traitvault.models.transaction import TX_MINT, TX_TRANSFER, TransactionRecord
from traitvault.models.reorg import ReorgEvent

__all__ = [
    "Base",
    "Collection",
    "NFT",
    "Trait",
    "TraitStatistic",
    "TransactionRecord",
    "ReorgEvent",
    "TX_MINT",
    "TX_TRANSFER",
    "utcnow",
]

"""
Event extractor: chainhook transaction -> typed mint / transfer events.

Mints come from ``print_event`` entries of the execution receipt whose
``data.event`` is ``"mint"``. Transfers come from ``NFT_TRANSFER_EVENT``
operations. Anything malformed is logged and skipped; an empty list is a
normal result. No I/O happens here.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from traitvault.core.config import settings
from traitvault.schemas.chainhook import (
    ChainhookBlock,
    ChainhookTransaction,
    PrintEventData,
    TransferMetadata,
)
from traitvault.schemas.events import MintEvent, NFTEvent, TransferEvent

logger = logging.getLogger(__name__)

PRINT_EVENT_TYPE = "print_event"
MINT_DISCRIMINATOR = "mint"
NFT_TRANSFER_EVENT = "NFT_TRANSFER_EVENT"


def extract_events(
    tx: ChainhookTransaction,
    block: Optional[ChainhookBlock] = None,
    default_contract: Optional[str] = None,
) -> list[NFTEvent]:
    """Return mint events followed by transfer events found in ``tx``."""
    contract = default_contract or settings.NFT_CONTRACT_ADDRESS
    height = block.height if block is not None else None

    events: list[NFTEvent] = []
    events.extend(extract_mint_events(tx, contract, height))
    events.extend(extract_transfer_events(tx, contract, height))
    return events


def extract_mint_events(
    tx: ChainhookTransaction, default_contract: str, height: Optional[int] = None
) -> list[MintEvent]:
    mints: list[MintEvent] = []

    for raw in _print_events(tx):
        data = raw.get("data")
        if not isinstance(data, dict) or data.get("event") != MINT_DISCRIMINATOR:
            continue

        try:
            parsed = PrintEventData.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "Skipping malformed mint print event in tx %s (block %s): %s",
                tx.tx_hash, height, _short_error(e),
            )
            continue

        token_id = parse_token_id(parsed.token_id)
        if token_id is None:
            logger.warning(
                "Skipping mint with unusable token id %r in tx %s", parsed.token_id, tx.tx_hash
            )
            continue

        contract = (
            parsed.contract_identifier
            or raw.get("contract_identifier")
            or default_contract
        )
        mints.append(
            MintEvent(
                contract_address=contract,
                token_id=token_id,
                recipient=parsed.recipient,
                traits=_clean_traits(parsed.traits),
            )
        )

    return mints


def extract_transfer_events(
    tx: ChainhookTransaction, default_contract: str, height: Optional[int] = None
) -> list[TransferEvent]:
    transfers: list[TransferEvent] = []

    for op in tx.operations:
        if not isinstance(op, dict) or op.get("type") != NFT_TRANSFER_EVENT:
            continue

        try:
            meta = TransferMetadata.model_validate(op.get("metadata") or {})
        except ValidationError as e:
            logger.warning(
                "Skipping malformed NFT transfer in tx %s (block %s): %s",
                tx.tx_hash, height, _short_error(e),
            )
            continue

        token_id = parse_token_id(meta.token_id)
        if token_id is None:
            logger.warning(
                "Skipping transfer with unusable token id %r in tx %s", meta.token_id, tx.tx_hash
            )
            continue

        transfers.append(
            TransferEvent(
                contract_address=_contract_from_asset(
                    meta.asset_class_identifier or meta.asset_identifier
                ) or default_contract,
                token_id=token_id,
                recipient=meta.recipient,
                sender=meta.sender or None,
            )
        )

    return transfers


def parse_token_id(value: Any) -> Optional[int]:
    """
    Normalize a token id to a non-negative int.

    Accepts ints, digit strings and Clarity uint literals like ``"u7"``.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str):
        s = value.strip()
        if s[:1] in ("u", "U"):
            s = s[1:]
        if s.isdigit():
            return int(s)
    return None


def _print_events(tx: ChainhookTransaction) -> list[dict]:
    receipt = (tx.metadata or {}).get("receipt")
    if not isinstance(receipt, dict):
        return []
    raw_events = receipt.get("events")
    if not isinstance(raw_events, list):
        return []
    return [
        e for e in raw_events
        if isinstance(e, dict) and e.get("type") == PRINT_EVENT_TYPE
    ]


def _clean_traits(traits: dict[str, Any]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for trait_type, trait_value in traits.items():
        if trait_value is None or isinstance(trait_value, (dict, list)):
            logger.debug("Dropping non-scalar trait %s=%r", trait_type, trait_value)
            continue
        cleaned[str(trait_type)] = str(trait_value)
    return cleaned


def _contract_from_asset(asset: Optional[str]) -> Optional[str]:
    # "SP000.contract-name::asset-name" -> "SP000.contract-name"
    if not asset:
        return None
    contract = asset.split("::", 1)[0].strip()
    return contract or None


def _short_error(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
    )

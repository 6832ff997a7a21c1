"""Builders for chainhook payloads used across the test suite."""

from traitvault.schemas.chainhook import ChainhookBlock, ChainhookPayload, ChainhookTransaction

CONTRACT = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM.stacks-punks"
OTHER_CONTRACT = "SP2KAF9RF86PVX3NEE27DFV1CQX0T4WGR41X3S45C.bitcoin-monkeys"


def mint_tx(tx_hash, token_id, recipient, traits=None, contract=None):
    data = {
        "event": "mint",
        "token-id": token_id,
        "recipient": recipient,
        "traits": traits or {},
    }
    if contract:
        data["contract_identifier"] = contract
    return {
        "transaction_identifier": {"hash": tx_hash},
        "metadata": {"receipt": {"events": [{"type": "print_event", "data": data}]}},
        "operations": [],
    }


def transfer_tx(tx_hash, token_id, sender, recipient, contract=CONTRACT):
    return {
        "transaction_identifier": {"hash": tx_hash},
        "metadata": {"receipt": {"events": []}},
        "operations": [
            {
                "type": "NFT_TRANSFER_EVENT",
                "metadata": {
                    "token_id": token_id,
                    "sender": sender,
                    "recipient": recipient,
                    "asset_class_identifier": f"{contract}::stacks-punk",
                },
            }
        ],
    }


def combined_tx(tx_hash, *txs):
    """One transaction carrying the print events and operations of ``txs`` in order."""
    return {
        "transaction_identifier": {"hash": tx_hash},
        "metadata": {
            "receipt": {
                "events": [e for tx in txs for e in tx["metadata"]["receipt"]["events"]]
            }
        },
        "operations": [op for tx in txs for op in tx["operations"]],
    }


def block(height, *txs, block_hash=None, timestamp=1700000000):
    return {
        "block_identifier": {"index": height, "hash": block_hash or f"0x{height:064x}"},
        "timestamp": timestamp,
        "transactions": list(txs),
    }


def payload(apply=(), rollback=()):
    return ChainhookPayload.model_validate({"apply": list(apply), "rollback": list(rollback)})


def parse_tx(raw):
    return ChainhookTransaction.model_validate(raw)


def parse_block(raw):
    return ChainhookBlock.model_validate(raw)


class RecordingNotifier:
    """Notifier that keeps every published event."""

    def __init__(self):
        self.events = []

    def publish(self, event_name, payload):
        self.events.append((event_name, payload))

    def named(self, event_name):
        return [p for name, p in self.events if name == event_name]

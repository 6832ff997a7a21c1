import logging

from factories import CONTRACT, OTHER_CONTRACT, block, mint_tx, parse_block, parse_tx, transfer_tx
from traitvault.schemas.events import MintEvent, TransferEvent
from traitvault.services.extractor import extract_events, parse_token_id


def test_mint_print_event_becomes_mint_event():
    tx = parse_tx(mint_tx("0xaa", 7, "addrA", {"background": "blue", "eyes": "laser"}))

    events = extract_events(tx, default_contract=CONTRACT)

    assert events == [
        MintEvent(
            contract_address=CONTRACT,
            token_id=7,
            recipient="addrA",
            traits={"background": "blue", "eyes": "laser"},
        )
    ]


def test_mint_contract_taken_from_event_when_present():
    tx = parse_tx(mint_tx("0xaa", 1, "addrA", contract=OTHER_CONTRACT))

    [event] = extract_events(tx, default_contract=CONTRACT)

    assert event.contract_address == OTHER_CONTRACT


def test_print_events_that_are_not_mints_are_ignored():
    raw = mint_tx("0xaa", 1, "addrA")
    raw["metadata"]["receipt"]["events"][0]["data"]["event"] = "list-in-ustx"
    raw["metadata"]["receipt"]["events"].append({"type": "stx_transfer_event", "data": {}})

    assert extract_events(parse_tx(raw), default_contract=CONTRACT) == []


def test_transfer_operation_becomes_transfer_event():
    tx = parse_tx(transfer_tx("0xbb", 7, "addrA", "addrB", contract=OTHER_CONTRACT))

    events = extract_events(tx, default_contract=CONTRACT)

    assert events == [
        TransferEvent(
            contract_address=OTHER_CONTRACT, token_id=7, recipient="addrB", sender="addrA"
        )
    ]


def test_mints_come_before_transfers():
    raw = mint_tx("0xcc", 3, "addrA")
    raw["operations"] = transfer_tx("0xcc", 3, "addrA", "addrB")["operations"]

    events = extract_events(parse_tx(raw), default_contract=CONTRACT)

    assert [type(e) for e in events] == [MintEvent, TransferEvent]


def test_malformed_entries_are_skipped_and_logged(caplog):
    raw = mint_tx("0xdd", 1, "addrA")
    good = raw["metadata"]["receipt"]["events"][0]
    raw["metadata"]["receipt"]["events"] = [
        {"type": "print_event", "data": {"event": "mint", "recipient": "addrA"}},  # no token id
        {"type": "print_event", "data": {"event": "mint", "token-id": 2, "recipient": ""}},
        {"type": "print_event", "data": {"event": "mint", "token-id": -4, "recipient": "x"}},
        "not-a-dict",
        good,
    ]
    raw["operations"] = [
        {"type": "NFT_TRANSFER_EVENT", "metadata": {"token_id": 1}},  # no recipient
        {"type": "NFT_TRANSFER_EVENT"},
    ]

    with caplog.at_level(logging.WARNING):
        events = extract_events(parse_tx(raw), default_contract=CONTRACT)

    assert [e.token_id for e in events] == [1]
    assert "Skipping malformed mint" in caplog.text
    assert "Skipping malformed NFT transfer" in caplog.text


def test_transaction_without_receipt_or_operations_yields_nothing():
    tx = parse_tx({"transaction_identifier": {"hash": "0xee"}})
    assert extract_events(tx, parse_block(block(10)), CONTRACT) == []


def test_non_scalar_trait_values_are_dropped():
    tx = parse_tx(mint_tx("0xff", 5, "addrA", {"hat": "cap", "meta": {"x": 1}, "none": None, "level": 3}))

    [event] = extract_events(tx, default_contract=CONTRACT)

    assert event.traits == {"hat": "cap", "level": "3"}


def test_parse_token_id():
    assert parse_token_id(7) == 7
    assert parse_token_id("42") == 42
    assert parse_token_id("u9") == 9
    assert parse_token_id(" 12 ") == 12
    assert parse_token_id(-1) is None
    assert parse_token_id(True) is None
    assert parse_token_id("seven") is None
    assert parse_token_id(None) is None
    assert parse_token_id(1.5) is None

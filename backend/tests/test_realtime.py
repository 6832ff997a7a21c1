import asyncio

from traitvault.api.routes.realtime import handle_client_message, stop_sender
from traitvault.services.notifications import Broadcaster


def test_subscribe_and_unsubscribe():
    hub = Broadcaster(queue_size=4)
    connection_id = hub.connect()

    reply = handle_client_message(hub, connection_id, {"action": "subscribe", "collection_id": 5})
    assert reply == {"ok": True, "action": "subscribe", "collection_id": 5}
    assert hub.scopes_of(connection_id) == {"collection:5"}

    handle_client_message(hub, connection_id, {"action": "unsubscribe", "collection_id": 5})
    assert hub.scopes_of(connection_id) == set()


def test_invalid_messages_get_an_error_reply():
    hub = Broadcaster(queue_size=4)
    connection_id = hub.connect()

    assert "error" in handle_client_message(hub, connection_id, ["subscribe"])
    assert "error" in handle_client_message(hub, connection_id, {"action": "shout"})
    assert "error" in handle_client_message(hub, connection_id, {"action": "subscribe"})
    assert hub.scopes_of(connection_id) == set()


async def test_stop_sender_cancels_a_pending_pump():
    hub = Broadcaster(queue_size=4)
    connection_id = hub.connect()
    sender = asyncio.create_task(hub.next_message(connection_id))
    await asyncio.sleep(0)

    await stop_sender(sender, connection_id)

    assert sender.cancelled()


async def test_stop_sender_absorbs_a_failed_send():
    async def broken_send():
        raise RuntimeError("socket closed")

    sender = asyncio.create_task(broken_send())
    await asyncio.sleep(0)
    assert sender.done()

    await stop_sender(sender, 1)

    assert isinstance(sender.exception(), RuntimeError)

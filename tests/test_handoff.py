from src.studio.client.handoff import HandoffRelay, HandoffSlot
from src.studio.services.streaming import ByteStream


def _slot(chat_id, text="hello"):
    return HandoffSlot(chat_id, text, ByteStream.from_frames([]))


def test_claim_matching_slot_clears_it():
    relay = HandoffRelay()
    slot = _slot("chat-a")
    relay.publish(slot)
    assert relay.pending_for("chat-a")

    assert relay.claim("chat-a") is slot
    assert relay.claim("chat-a") is None
    assert not relay.pending_for("chat-a")


def test_claim_other_conversation_leaves_slot():
    relay = HandoffRelay()
    relay.publish(_slot("chat-a"))
    assert relay.claim("chat-b") is None
    assert relay.pending_for("chat-a")


def test_last_publish_wins():
    relay = HandoffRelay()
    relay.publish(_slot("chat-a", "first"))
    relay.publish(_slot("chat-b", "second"))
    assert relay.claim("chat-a") is None
    assert relay.claim("chat-b").pending_user_message == "second"


def test_clear_drops_slot():
    relay = HandoffRelay()
    relay.publish(_slot("chat-a"))
    relay.clear()
    assert relay.claim("chat-a") is None

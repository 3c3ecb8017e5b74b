from __future__ import annotations

from apexclaw.context_store import ContextStore, MessageContext, format_context


def test_store_overwrites_and_clears():
    store = ContextStore()
    store.set("42", MessageContext(telegram_id=1, sender_id="42", message_id=10))
    store.set("42", MessageContext(telegram_id=1, sender_id="42", message_id=11))

    assert store.get("42").message_id == 11
    assert store.get("7") is None

    store.clear("42")
    assert store.get("42") is None


def test_format_private_context():
    context = MessageContext(telegram_id=42, sender_id="42", message_id=7)
    assert format_context(context) == "[TG Context: sender_id=42 | chat_id=42 | msg_id=7]"


def test_format_group_reply_with_file():
    context = MessageContext(
        telegram_id=-100,
        sender_id="42",
        message_id=7,
        chat_type="group/channel",
        reply_to_msg_id=3,
        replied_to_user_id="99",
        group_id=-100,
        file_path="/tmp/report.pdf",
    )
    assert format_context(context) == (
        "[TG Context: sender_id=42 | chat_id=-100 | msg_id=7 | group_id=-100 | reply_id=3 "
        "| reply_sender_id=99 | file_path=/tmp/report.pdf]"
    )


def test_format_callback():
    context = MessageContext(telegram_id=42, sender_id="42", callback_data="confirm")
    assert format_context(context) == "[TG Context: sender_id=42 | chat_id=42 | callback_data=confirm]"

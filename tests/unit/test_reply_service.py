# tests/unit/test_reply_service.py
from datetime import timedelta

import pytest

from notifier.delivery.reply import ReplyService
from notifier.errors import ComplianceError, NotFoundError, ValidationError
from notifier.models import messages as msg_store
from notifier.models.conversations import get_conversation
from notifier.models.storage import iso
from notifier.wa.client import TextMessage
from tests.factories.records import GUEST_E164, make_conversation


@pytest.fixture
def reply(db_path, provider, credentials, opt_outs, clock):
    return ReplyService(db_path, provider=provider, credentials=credentials, opt_outs=opt_outs, clock=clock)


def test_reply_inside_window_is_sent_and_recorded(reply, db_path, provider, clock):
    conv = make_conversation(db_path, last_inbound_at=clock() - timedelta(hours=23))

    result = reply.send_reply(conv["id"], "operator-1", "Your room is ready")

    message = provider.sent[0][1]
    assert isinstance(message, TextMessage)
    assert message.to == GUEST_E164
    assert result["provider_message_id"] == provider.sent[0][2]
    assert result["sent_at"] == iso(clock())

    meta = msg_store.get_metadata(db_path, result["message_metadata_id"])
    assert meta["status"] == msg_store.SENT
    assert meta["direction"] == msg_store.OUTBOUND
    chat = msg_store.get_chat_message(db_path, result["chat_message_id"])
    assert chat["sender_id"] == "operator-1"
    updated = get_conversation(db_path, conv["id"])
    assert updated["last_message_at"] == iso(clock())
    # resposta do operador não reabre a janela
    assert updated["last_inbound_at"] == conv["last_inbound_at"]


@pytest.mark.parametrize("hours_ago", [None, 24, 30])
def test_reply_outside_window_requires_template(reply, db_path, provider, clock, hours_ago):
    inbound = clock() - timedelta(hours=hours_ago) if hours_ago is not None else None
    conv = make_conversation(db_path, last_inbound_at=inbound)

    with pytest.raises(ComplianceError) as exc:
        reply.send_reply(conv["id"], "operator-1", "Hello?")

    assert exc.value.code == "TEMPLATE_REQUIRED"
    assert provider.calls == 0
    assert msg_store.count_chat_messages(db_path) == 0


def test_reply_to_opted_out_guest(reply, db_path, provider, opt_outs, clock):
    conv = make_conversation(db_path, last_inbound_at=clock() - timedelta(hours=1))
    opt_outs.add_opt_out(GUEST_E164)

    with pytest.raises(ComplianceError) as exc:
        reply.send_reply(conv["id"], "operator-1", "Hello?")
    assert exc.value.code == "OPTED_OUT"
    assert provider.calls == 0


def test_reply_validation(reply, db_path, clock):
    conv = make_conversation(db_path, last_inbound_at=clock() - timedelta(hours=1))
    with pytest.raises(ValidationError):
        reply.send_reply(conv["id"], "operator-1", "   ")
    with pytest.raises(NotFoundError):
        reply.send_reply("missing", "operator-1", "Hi")

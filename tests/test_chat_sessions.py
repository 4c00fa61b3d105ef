from datetime import timedelta

import pytest

from conftest import STAFF_CHAT_ID, sent_messages
from supportbot.utils.datetime_utils import utcnow


async def test_first_message_creates_session_and_correlation_id(container, bot):
    service = container.chat_sessions
    session_id = await service.relay_visitor_message(
        message="Where is my parcel?", visitor_name="Jane", visitor_email="Jane@Example.com"
    )

    session = await service.get_session(session_id)
    assert session["telegram_thread_id"] == "1000"
    assert session["visitor_email"] == "jane@example.com"
    assert session["status"] == "active"

    (chat_id, text), = sent_messages(bot)
    assert chat_id == STAFF_CHAT_ID
    assert "New Support Chat" in text

    (msg,) = await service.list_messages(session_id=session_id)
    assert msg["sender_type"] == "visitor"
    assert msg["telegram_message_id"] == "1000"


async def test_follow_up_is_sent_as_reply_to_header(container, bot):
    service = container.chat_sessions
    session_id = await service.relay_visitor_message(message="Hello", visitor_name="Jane")
    again = await service.relay_visitor_message(message="Anyone there?", session_id=session_id)

    assert again == session_id
    follow_up = bot.send_message.await_args_list[1].kwargs
    assert follow_up["reply_parameters"].message_id == 1000
    assert "Anyone there?" in follow_up["text"]
    assert (await service.get_session(session_id))["telegram_thread_id"] == "1000"


async def test_correlation_round_trip_including_chained_reply(container):
    service = container.chat_sessions
    session_id = await service.relay_visitor_message(message="Hi", visitor_name="Jane")
    await service.relay_visitor_message(message="Still waiting", session_id=session_id)  # relay copy 1001

    routed = await container.correlator.route_reply(
        chat_id=STAFF_CHAT_ID, reply_to_message_id=1000, text="Checking now", platform_message_id=77
    )
    chained = await container.correlator.route_reply(
        chat_id=STAFF_CHAT_ID, reply_to_message_id=1001, text="Found it", platform_message_id=78
    )
    assert routed == session_id
    assert chained == session_id

    history = await service.list_messages(session_id=session_id)
    assert [(m["sender_type"], m["message_text"]) for m in history] == [
        ("visitor", "Hi"),
        ("visitor", "Still waiting"),
        ("admin", "Checking now"),
        ("admin", "Found it"),
    ]
    stamps = [m["created_at"] for m in history]
    assert stamps == sorted(stamps)


async def test_reply_outside_staff_chat_is_not_correlated(container):
    await container.chat_sessions.relay_visitor_message(message="Hi")
    routed = await container.correlator.route_reply(
        chat_id=12345, reply_to_message_id=1000, text="hello", platform_message_id=5
    )
    assert routed is None


async def test_unknown_reply_target_returns_none(container):
    routed = await container.correlator.route_reply(
        chat_id=STAFF_CHAT_ID, reply_to_message_id=999999, text="?", platform_message_id=5
    )
    assert routed is None
    assert await container.chat_sessions.list_sessions() == []


async def test_correlation_id_is_write_once_and_unique(container):
    service = container.chat_sessions
    first = await service.relay_visitor_message(message="one")
    second = await service.relay_visitor_message(message="two")

    assert await service.set_correlation_id(session_id=first, thread_id="5555") is False
    assert (await service.get_session(first))["telegram_thread_id"] == "1000"

    with pytest.raises(ValueError):
        await service.set_correlation_id(session_id=second, thread_id="1000")
    with pytest.raises(ValueError):
        await service.set_correlation_id(session_id="missing", thread_id="42")


async def test_send_failure_propagates_and_stores_nothing(container, bot):
    bot.send_message.side_effect = RuntimeError("network down")
    with pytest.raises(RuntimeError):
        await container.chat_sessions.relay_visitor_message(message="Hi")
    (session,) = await container.chat_sessions.list_sessions()
    assert session["telegram_thread_id"] is None
    assert await container.chat_sessions.list_messages(session_id=session["id"]) == []


async def test_message_validation(container):
    with pytest.raises(ValueError):
        await container.chat_sessions.relay_visitor_message(message="   ")
    with pytest.raises(ValueError):
        await container.chat_sessions.relay_visitor_message(message="x" * 3001)


async def test_status_keeps_ended_at_in_sync_and_rating_needs_close(container):
    service = container.chat_sessions
    session_id = await service.relay_visitor_message(message="Hi")

    with pytest.raises(ValueError):
        await service.rate_session(session_id=session_id, rating=5)

    closed = await service.set_status(session_id=session_id, status="closed")
    assert closed["ended_at"] is not None

    rated = await service.rate_session(session_id=session_id, rating=4, feedback=" quick ")
    assert (rated["rating"], rated["feedback"]) == (4, "quick")
    with pytest.raises(ValueError):
        await service.rate_session(session_id=session_id, rating=6)

    reopened = await service.set_status(session_id=session_id, status="waiting")
    assert reopened["ended_at"] is None
    assert reopened["rating"] is None


async def test_closed_session_is_not_reused(container):
    service = container.chat_sessions
    session_id = await service.relay_visitor_message(message="Hi")
    await service.set_status(session_id=session_id, status="closed")

    new_id = await service.relay_visitor_message(message="Back again", session_id=session_id)
    assert new_id != session_id


async def test_update_details_and_bulk_delete(container):
    service = container.chat_sessions
    session_id = await service.relay_visitor_message(message="Hi")

    updated = await service.update_details(
        session_id=session_id, priority="high", tags=["refund", "refund", " vip "], is_starred=True
    )
    assert updated["priority"] == "high"
    assert updated["tags"] == ["refund", "vip"]
    assert updated["is_starred"] is True
    with pytest.raises(ValueError):
        await service.update_details(session_id=session_id, priority="whenever")

    assert await service.bulk_delete(session_ids=[session_id]) == 1
    assert await service.get_session(session_id) is None
    assert await service.list_messages(session_id=session_id) == []


async def test_idle_sessions_are_closed(container):
    service = container.chat_sessions
    session_id = await service.relay_visitor_message(message="Hi")

    assert await service.close_idle_sessions(idle_minutes=120) == 0
    later = utcnow() + timedelta(minutes=121)
    assert await service.close_idle_sessions(idle_minutes=120, now=later) == 1
    assert (await service.get_session(session_id))["status"] == "closed"

"""Chat session service - website widget sessions relayed into the staff chat."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, func, or_, select, update

from database.db import db
from database.models import ChatMessage, ChatSession
from supportbot.services.sender import OutboundSender
from supportbot.utils import messages
from supportbot.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

SESSION_STATUSES = ("active", "waiting", "closed")
PRIORITIES = ("low", "medium", "high", "urgent")
SENDER_TYPES = ("visitor", "admin")
MAX_MESSAGE_LENGTH = 3000


def _session_dict(s: ChatSession) -> dict:
    return {
        "id": str(s.id),
        "visitor_name": s.visitor_name,
        "visitor_email": s.visitor_email,
        "visitor_phone": s.visitor_phone,
        "status": str(s.status),
        "started_at": s.started_at.isoformat() if s.started_at else None,
        "ended_at": s.ended_at.isoformat() if s.ended_at else None,
        "last_message_at": s.last_message_at.isoformat() if s.last_message_at else None,
        "telegram_thread_id": s.telegram_thread_id,
        "category": s.category,
        "priority": s.priority,
        "assigned_to": s.assigned_to,
        "tags": list(s.tags or []),
        "is_starred": bool(s.is_starred),
        "rating": int(s.rating) if s.rating is not None else None,
        "feedback": s.feedback,
        "current_page": s.current_page,
    }


def _message_dict(m: ChatMessage) -> dict:
    return {
        "id": str(m.id),
        "session_id": str(m.session_id),
        "sender_type": str(m.sender_type),
        "message_text": str(m.message_text or ""),
        "created_at": m.created_at.isoformat() if m.created_at else None,
        "is_read": bool(m.is_read),
        "attachment_url": m.attachment_url,
        "telegram_message_id": m.telegram_message_id,
    }


def _clean_message(text: str) -> str:
    text = (text or "").strip()
    if not text:
        raise ValueError("Message is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValueError(f"Message is too long (max {MAX_MESSAGE_LENGTH} characters)")
    return text


class ChatSessionService:
    def __init__(self, sender: OutboundSender, admin_chat_id: Optional[int]):
        self.sender = sender
        self.admin_chat_id = admin_chat_id

    # ---- widget relay ----

    async def relay_visitor_message(
        self,
        *,
        message: str,
        session_id: str | None = None,
        visitor_name: str | None = None,
        visitor_email: str | None = None,
        visitor_phone: str | None = None,
        current_page: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """
        Relay a widget message into the staff chat and store it.

        The first relay post of a session becomes its correlation id; later posts are sent
        as replies to it so staff see one thread. Platform errors propagate to the caller.
        """
        text = _clean_message(message)
        if self.admin_chat_id is None:
            raise RuntimeError("TELEGRAM_CHAT_ID is not configured; cannot relay widget messages")

        session = await self._get_or_create_session(
            session_id=session_id,
            visitor_name=visitor_name,
            visitor_email=visitor_email,
            visitor_phone=visitor_phone,
            current_page=current_page,
            user_agent=user_agent,
        )

        thread_id = session["telegram_thread_id"]
        if not thread_id:
            header = messages.new_chat_header(
                session_id=session["id"],
                message=text,
                visitor_name=session["visitor_name"],
                visitor_email=session["visitor_email"],
                visitor_phone=session["visitor_phone"],
                current_page=session["current_page"],
            )
            sent = await self.sender.send(self.admin_chat_id, header)
            await self.set_correlation_id(session_id=session["id"], thread_id=str(sent.message_id))
        else:
            followup = messages.visitor_followup(session["visitor_name"], text)
            sent = await self.sender.send(self.admin_chat_id, followup, reply_to_message_id=int(thread_id))

        await self.append_message(
            session_id=session["id"],
            sender_type="visitor",
            text=text,
            telegram_message_id=str(sent.message_id),
        )
        return session["id"]

    async def _get_or_create_session(
        self,
        *,
        session_id: str | None,
        visitor_name: str | None,
        visitor_email: str | None,
        visitor_phone: str | None,
        current_page: str | None,
        user_agent: str | None,
    ) -> dict:
        now = utcnow()
        async with db.session() as session:
            chat = await session.get(ChatSession, str(session_id)) if session_id else None
            if chat is not None and chat.status == "closed":
                # A closed conversation is never reopened; the visitor starts a fresh one.
                chat = None

            if chat is None:
                chat = ChatSession(
                    visitor_name=(visitor_name or "").strip() or None,
                    visitor_email=(visitor_email or "").strip().lower() or None,
                    visitor_phone=(visitor_phone or "").strip() or None,
                    status="active",
                    started_at=now,
                    tags=[],
                    is_starred=False,
                    current_page=current_page,
                    user_agent=(user_agent or "")[:500] or None,
                )
                session.add(chat)
                await session.flush()
                logger.info(f"Created chat session {chat.id}")
            else:
                if visitor_name and not chat.visitor_name:
                    chat.visitor_name = visitor_name.strip()
                if visitor_email and not chat.visitor_email:
                    chat.visitor_email = visitor_email.strip().lower()
                if current_page:
                    chat.current_page = current_page
            return _session_dict(chat)

    # ---- correlation ----

    async def set_correlation_id(self, *, session_id: str, thread_id: str) -> bool:
        """
        Persist the correlation id once. Returns False when the session already has one.

        Raises:
            ValueError: If the session does not exist or the id belongs to another session
        """
        thread_id = str(thread_id)
        async with db.session() as session:
            owner = await session.execute(
                select(ChatSession.id).where(ChatSession.telegram_thread_id == thread_id)
            )
            owner_id = owner.scalar_one_or_none()
            if owner_id is not None and str(owner_id) != str(session_id):
                raise ValueError(f"Correlation id {thread_id} already belongs to session {owner_id}")

            result = await session.execute(
                update(ChatSession)
                .where(ChatSession.id == str(session_id), ChatSession.telegram_thread_id.is_(None))
                .values(telegram_thread_id=thread_id)
            )
            if result.rowcount:
                return True

            exists = await session.get(ChatSession, str(session_id))
            if exists is None:
                raise ValueError(f"Chat session {session_id} not found")
            return False

    async def find_by_correlation(self, thread_id: str) -> dict | None:
        async with db.session() as session:
            result = await session.execute(
                select(ChatSession).where(ChatSession.telegram_thread_id == str(thread_id)).limit(1)
            )
            chat = result.scalar_one_or_none()
            return _session_dict(chat) if chat else None

    async def find_by_relay_message(self, telegram_message_id: str) -> dict | None:
        """Session owning a relayed message (replies to a follow-up rather than the header)."""
        async with db.session() as session:
            result = await session.execute(
                select(ChatSession)
                .join(ChatMessage, ChatMessage.session_id == ChatSession.id)
                .where(ChatMessage.telegram_message_id == str(telegram_message_id))
                .order_by(ChatMessage.created_at.desc())
                .limit(1)
            )
            chat = result.scalar_one_or_none()
            return _session_dict(chat) if chat else None

    # ---- messages ----

    async def append_message(
        self,
        *,
        session_id: str,
        sender_type: str,
        text: str,
        telegram_message_id: str | None = None,
        attachment_url: str | None = None,
    ) -> dict:
        """Store a message; timestamps never go backwards within a session."""
        if sender_type not in SENDER_TYPES:
            raise ValueError(f"Unknown sender type: {sender_type}")

        now = utcnow()
        async with db.session() as session:
            chat = await session.get(ChatSession, str(session_id))
            if chat is None:
                raise ValueError(f"Chat session {session_id} not found")

            last = await session.execute(
                select(func.max(ChatMessage.created_at)).where(ChatMessage.session_id == str(session_id))
            )
            last_at = last.scalar()
            # Strictly after the previous message so ordering by created_at is stable.
            created_at = now if last_at is None or now > last_at else last_at + timedelta(microseconds=1)

            msg = ChatMessage(
                session_id=str(session_id),
                sender_type=sender_type,
                message_text=text,
                created_at=created_at,
                is_read=False,
                attachment_url=attachment_url,
                telegram_message_id=str(telegram_message_id) if telegram_message_id is not None else None,
            )
            session.add(msg)
            chat.last_message_at = created_at
            await session.flush()
            return _message_dict(msg)

    async def list_messages(self, *, session_id: str, limit: int = 200) -> list[dict]:
        limit = max(1, min(int(limit or 200), 500))
        async with db.session() as session:
            result = await session.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == str(session_id))
                .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
                .limit(limit)
            )
            return [_message_dict(m) for m in result.scalars().all()]

    async def mark_read(self, *, session_id: str, sender_type: str = "visitor") -> int:
        async with db.session() as session:
            result = await session.execute(
                update(ChatMessage)
                .where(
                    ChatMessage.session_id == str(session_id),
                    ChatMessage.sender_type == sender_type,
                    ChatMessage.is_read.is_(False),
                )
                .values(is_read=True)
            )
            return int(result.rowcount or 0)

    # ---- admin console ----

    async def get_session(self, session_id: str) -> dict | None:
        async with db.session() as session:
            chat = await session.get(ChatSession, str(session_id))
            return _session_dict(chat) if chat else None

    async def list_sessions(self, *, status: str | None = None, limit: int = 50) -> list[dict]:
        limit = max(1, min(int(limit or 50), 200))
        async with db.session() as session:
            query = select(ChatSession)
            if status:
                query = query.where(ChatSession.status == status)
            result = await session.execute(
                query.order_by(
                    func.coalesce(ChatSession.last_message_at, ChatSession.started_at).desc()
                ).limit(limit)
            )
            return [_session_dict(s) for s in result.scalars().all()]

    async def set_status(self, *, session_id: str, status: str) -> dict:
        """Change status; `ended_at` is set exactly when the session is closed."""
        if status not in SESSION_STATUSES:
            raise ValueError(f"Invalid status: {status}")
        async with db.session() as session:
            chat = await session.get(ChatSession, str(session_id))
            if chat is None:
                raise ValueError(f"Chat session {session_id} not found")
            if status == "closed":
                if chat.status != "closed":
                    chat.ended_at = utcnow()
            else:
                chat.ended_at = None
                chat.rating = None
                chat.feedback = None
            chat.status = status
            return _session_dict(chat)

    async def rate_session(self, *, session_id: str, rating: int, feedback: str | None = None) -> dict:
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ValueError("Rating must be an integer between 1 and 5")
        async with db.session() as session:
            chat = await session.get(ChatSession, str(session_id))
            if chat is None:
                raise ValueError(f"Chat session {session_id} not found")
            if chat.status != "closed":
                raise ValueError("Only closed sessions can be rated")
            chat.rating = rating
            chat.feedback = (feedback or "").strip() or None
            return _session_dict(chat)

    async def update_details(
        self,
        *,
        session_id: str,
        category: str | None = None,
        priority: str | None = None,
        assigned_to: str | None = None,
        tags: list[str] | None = None,
        is_starred: bool | None = None,
    ) -> dict:
        if priority is not None and priority not in PRIORITIES:
            raise ValueError(f"Invalid priority: {priority}")
        async with db.session() as session:
            chat = await session.get(ChatSession, str(session_id))
            if chat is None:
                raise ValueError(f"Chat session {session_id} not found")
            if category is not None:
                chat.category = category.strip() or None
            if priority is not None:
                chat.priority = priority
            if assigned_to is not None:
                chat.assigned_to = assigned_to.strip() or None
            if tags is not None:
                seen: list[str] = []
                for tag in tags:
                    tag = str(tag).strip()
                    if tag and tag not in seen:
                        seen.append(tag)
                chat.tags = seen
            if is_starred is not None:
                chat.is_starred = bool(is_starred)
            return _session_dict(chat)

    async def bulk_delete(self, *, session_ids: list[str]) -> int:
        """Delete sessions and their messages (messages first)."""
        ids = [str(s) for s in session_ids if s]
        if not ids:
            return 0
        async with db.session() as session:
            await session.execute(delete(ChatMessage).where(ChatMessage.session_id.in_(ids)))
            result = await session.execute(delete(ChatSession).where(ChatSession.id.in_(ids)))
            deleted = int(result.rowcount or 0)
        logger.info(f"Deleted {deleted} chat sessions")
        return deleted

    async def close_idle_sessions(self, *, idle_minutes: int, now: datetime | None = None) -> int:
        """Close active/waiting sessions whose newest message is older than the cutoff."""
        now = now or utcnow()
        cutoff = now - timedelta(minutes=int(idle_minutes))
        async with db.session() as session:
            result = await session.execute(
                update(ChatSession)
                .where(
                    ChatSession.status.in_(("active", "waiting")),
                    or_(
                        ChatSession.last_message_at < cutoff,
                        (ChatSession.last_message_at.is_(None) & (ChatSession.started_at < cutoff)),
                    ),
                )
                .values(status="closed", ended_at=now)
            )
            closed = int(result.rowcount or 0)
        if closed:
            logger.info(f"Closed {closed} idle chat sessions (idle > {idle_minutes}m)")
        return closed

"""Webhook server for production deployment - bot webhook plus the widget and admin HTTP API."""
import logging
import os
from contextlib import asynccontextmanager

from aiogram.exceptions import TelegramAPIError
from aiogram.types import Update
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from supportbot.config import Config
from supportbot.container import ServiceContainer
from supportbot.handlers.updates import UpdateKind, UpdateProcessor, classify_update
from supportbot.main import SupportBot
from supportbot.utils import messages
from supportbot.utils.export import customers_to_csv
from supportbot.utils.validation import validate_order_payload

# Don't configure logging here - it's configured in supportbot/main.py
logger = logging.getLogger(__name__)

# Global bot instance
support_bot: SupportBot = None
config = Config.from_env()


def _safe_command_summary(text: str) -> str | None:
    if not text or not text.startswith("/"):
        return None
    head, *rest = text.split(maxsplit=1)
    cmd = head.split("@", 1)[0]
    if cmd == "/start" and rest:
        return "cmd=/start payload=link" if rest[0].startswith("link_") else "cmd=/start payload=other"
    return f"cmd={cmd}"


def _log_update_summary(update: Update, kind: UpdateKind) -> None:
    if kind == UpdateKind.CALLBACK:
        cb = update.callback_query
        logger.info(
            "tg_update=%s kind=callback from=%s data=%s",
            update.update_id,
            cb.from_user.id,
            (cb.data or "")[:64],
        )
        return
    msg = update.message
    if msg is None:
        logger.info("tg_update=%s kind=%s", update.update_id, kind.value)
        return
    text = msg.text or ""
    # Raw user text is never logged; commands are.
    logger.info(
        "tg_update=%s kind=%s chat=%s(%s) %s",
        update.update_id,
        kind.value,
        msg.chat.id,
        msg.chat.type,
        _safe_command_summary(text) or f"text_len={len(text)}",
    )


def _get_admin_token_from_request(request: Request) -> str | None:
    # Prefer Authorization: Bearer <token>, fallback to X-Admin-Token header
    auth = request.headers.get("authorization")
    if auth:
        parts = auth.strip().split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    token = request.headers.get("x-admin-token")
    return token.strip() if token else None


def _is_admin_request(request: Request) -> bool:
    expected = (config.admin_api_token or os.getenv("ADMIN_API_TOKEN", "")).strip()
    if not expected:
        return False
    provided = _get_admin_token_from_request(request)
    return bool(provided) and provided == expected


def _require_admin(request: Request) -> None:
    if not _is_admin_request(request):
        raise HTTPException(status_code=401, detail="admin token required")


def _require_container() -> ServiceContainer:
    if not support_bot or not support_bot.is_running() or not support_bot.container:
        raise HTTPException(status_code=503, detail="bot not ready")
    return support_bot.container


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global support_bot

    logger.info("🚀 Starting Webhook Server...")

    try:
        support_bot = SupportBot(config)
        await support_bot.initialize()
        await support_bot.start()

        if config.webhook_url:
            webhook_url = f"{config.webhook_url}{config.webhook_path}"
            webhook_kwargs = {
                "url": webhook_url,
                "allowed_updates": support_bot.dispatcher.resolve_used_update_types(),
            }
            if config.webhook_secret:
                webhook_kwargs["secret_token"] = config.webhook_secret
                logger.info("🔒 Webhook secret token configured")
            else:
                logger.warning("⚠️ WEBHOOK_SECRET not set - webhook requests are NOT validated!")

            await support_bot.bot.set_webhook(**webhook_kwargs)
            logger.info(f"✅ Webhook set to: {webhook_url}")
        else:
            logger.warning("⚠️ WEBHOOK_URL not set - webhook not registered with Telegram")

        yield

        logger.info("🛑 Shutting down Webhook Server...")
        await support_bot.stop()

    except Exception as e:
        logger.error(f"❌ Failed to start webhook server: {e}", exc_info=True)
        raise


app = FastAPI(
    lifespan=lifespan,
    title="Shop Support Relay",
    description="Telegram support relay and shopping assistant for the storefront",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _ChatSendPayload(_CamelModel):
    message: str = ""
    session_id: str | None = Field(default=None, alias="sessionId")
    visitor_name: str | None = Field(default=None, alias="visitorName")
    visitor_email: str | None = Field(default=None, alias="visitorEmail")
    visitor_phone: str | None = Field(default=None, alias="visitorPhone")
    current_page: str | None = Field(default=None, alias="currentPage")


class _RatingPayload(_CamelModel):
    rating: int
    feedback: str | None = None


class _AdminRelayPayload(_CamelModel):
    chat_id: int = Field(alias="chatId")
    message: str


class _StatusPayload(_CamelModel):
    status: str


class _SessionDetailsPayload(_CamelModel):
    category: str | None = None
    priority: str | None = None
    assigned_to: str | None = Field(default=None, alias="assignedTo")
    tags: list[str] | None = None
    is_starred: bool | None = Field(default=None, alias="isStarred")


class _BulkDeletePayload(_CamelModel):
    session_ids: list[str] = Field(default_factory=list, alias="sessionIds")


# ---- Telegram webhook ----


@app.post(config.webhook_path)
async def webhook_handler(request: Request):
    """
    Handle incoming webhook updates from Telegram.

    Security: Validates X-Telegram-Bot-Api-Secret-Token header if WEBHOOK_SECRET is configured.
    Business outcomes are always acked; only unexpected failures return 500.
    """
    if config.webhook_secret:
        secret_header = request.headers.get("X-Telegram-Bot-Api-Secret-Token", "")
        if secret_header != config.webhook_secret:
            logger.warning("⚠️ Rejected webhook request: invalid or missing secret token")
            return Response(status_code=401)

    try:
        update_data = await request.json()
    except ValueError as e:
        logger.error(f"❌ Webhook body is not JSON: {e}")
        return JSONResponse({"error": "Invalid JSON body"}, status_code=500)

    try:
        update = Update.model_validate(update_data)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed update: {e.error_count()} validation errors")
        return {"success": True}

    try:
        kind = classify_update(update)
        _log_update_summary(update, kind)
        if kind != UpdateKind.IGNORED:
            await UpdateProcessor(_require_container()).process(update)
        return {"success": True}
    except HTTPException as e:
        # Not ready yet; a 500 makes Telegram redeliver.
        logger.warning(f"Webhook update not processed: {e.detail}")
        return JSONResponse({"error": str(e.detail)}, status_code=500)
    except Exception as e:
        logger.error(f"❌ Error processing webhook update: {e}", exc_info=True)
        return JSONResponse({"error": str(e) or "Internal error"}, status_code=500)


# ---- website chat widget ----


@app.post("/api/chat/send")
async def chat_send(payload: _ChatSendPayload, request: Request):
    """Relay a widget message to the staff chat; creates the session on first contact."""
    container = _require_container()
    try:
        session_id = await container.chat_sessions.relay_visitor_message(
            message=payload.message,
            session_id=payload.session_id,
            visitor_name=payload.visitor_name,
            visitor_email=payload.visitor_email,
            visitor_phone=payload.visitor_phone,
            current_page=payload.current_page,
            user_agent=request.headers.get("user-agent"),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except TelegramAPIError as e:
        raise HTTPException(status_code=502, detail="Failed to deliver message to support") from e
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return {"success": True, "sessionId": session_id}


@app.get("/api/chat/{session_id}/messages")
async def chat_messages(session_id: str):
    container = _require_container()
    session = await container.chat_sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="chat session not found")
    items = await container.chat_sessions.list_messages(session_id=session_id)
    return {"session": session, "messages": items}


@app.post("/api/chat/{session_id}/rating")
async def chat_rating(session_id: str, payload: _RatingPayload):
    container = _require_container()
    try:
        session = await container.chat_sessions.rate_session(
            session_id=session_id, rating=payload.rating, feedback=payload.feedback
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True, "session": session}


# ---- admin console ----


@app.post("/api/admin/relay")
async def admin_relay(payload: _AdminRelayPayload, request: Request):
    """Send a staff reply to a bot customer's chat."""
    _require_admin(request)
    container = _require_container()
    text = (payload.message or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message is required")
    try:
        sent = await container.sender.send(payload.chat_id, messages.admin_reply_message(text))
    except TelegramAPIError as e:
        raise HTTPException(status_code=502, detail=f"Telegram rejected the message: {e}") from e
    return {"success": True, "messageId": sent.message_id}


@app.get("/api/admin/sessions")
async def admin_sessions(request: Request, status: str | None = None, limit: int = 50):
    _require_admin(request)
    container = _require_container()
    return {"sessions": await container.chat_sessions.list_sessions(status=status, limit=limit)}


@app.post("/api/admin/sessions/delete")
async def admin_delete_sessions(payload: _BulkDeletePayload, request: Request):
    _require_admin(request)
    container = _require_container()
    deleted = await container.chat_sessions.bulk_delete(session_ids=payload.session_ids)
    return {"success": True, "deleted": deleted}


@app.post("/api/admin/sessions/{session_id}/status")
async def admin_session_status(session_id: str, payload: _StatusPayload, request: Request):
    _require_admin(request)
    container = _require_container()
    try:
        session = await container.chat_sessions.set_status(session_id=session_id, status=payload.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True, "session": session}


@app.post("/api/admin/sessions/{session_id}/read")
async def admin_session_read(session_id: str, request: Request):
    _require_admin(request)
    container = _require_container()
    marked = await container.chat_sessions.mark_read(session_id=session_id)
    return {"success": True, "marked": marked}


@app.patch("/api/admin/sessions/{session_id}")
async def admin_session_update(session_id: str, payload: _SessionDetailsPayload, request: Request):
    _require_admin(request)
    container = _require_container()
    try:
        session = await container.chat_sessions.update_details(
            session_id=session_id,
            category=payload.category,
            priority=payload.priority,
            assigned_to=payload.assigned_to,
            tags=payload.tags,
            is_starred=payload.is_starred,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True, "session": session}


@app.post("/api/admin/orders/{order_id}/notify")
async def admin_notify_order(order_id: str, request: Request):
    _require_admin(request)
    container = _require_container()
    try:
        result = await container.notifications.notify_order_status(order_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except TelegramAPIError as e:
        raise HTTPException(status_code=502, detail=f"Telegram rejected the message: {e}") from e
    return {"success": True, **result}


@app.get("/api/admin/customers.csv")
async def admin_customers_csv(request: Request):
    _require_admin(request)
    container = _require_container()
    customers = await container.customers.list_customers()
    return Response(
        content=customers_to_csv(customers),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="telegram-customers.csv"'},
    )


@app.post("/api/sweeps/{name}")
async def run_sweep(name: str, request: Request, product_id: str | None = None):
    """Run one notification sweep now (for an external cron)."""
    _require_admin(request)
    container = _require_container()
    try:
        if name == "back-in-stock" and product_id:
            result = await container.notifications.run_back_in_stock_sweep(product_id)
        else:
            result = await container.notifications.run_sweep(name)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"sweep": name, **result.as_dict()}


# ---- checkout ----


@app.post("/api/checkout/validate")
async def checkout_validate(request: Request):
    try:
        data = await request.json()
    except ValueError:
        data = None
    errors = validate_order_payload(data)
    if errors:
        return JSONResponse({"errors": errors}, status_code=400)
    return {"valid": True}


@app.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.

    Internal details are only included for admin requests.
    """
    try:
        running = bool(support_bot and support_bot.is_running())
        payload = {"status": "ok", "running": running, "version": app.version}
        if not running:
            payload["detail"] = "initializing"

        if _is_admin_request(request) and running:
            from database.db import db

            payload["database_ok"] = await db.health_check()
            payload["tables"] = await db.get_table_counts()
            payload["uptime_seconds"] = support_bot.uptime_seconds()
        return payload
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}


@app.get("/")
async def root():
    """Note: Webhook path is intentionally not exposed."""
    return {
        "name": app.title,
        "version": app.version,
        "status": "running" if support_bot and support_bot.is_running() else "initializing",
        "endpoints": {"health": "/health", "chat": "/api/chat/send"},
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")), log_level="info")

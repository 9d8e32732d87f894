from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from norboy_bot.config import settings
from norboy_bot.dependencies import get_pipeline
from norboy_bot.logging_config import get_logger
from norboy_bot.schemas.webhook import WebhookMetadata, WebhookRequest, WebhookResponse
from norboy_bot.services.conversation_store import ConversationLookupError
from norboy_bot.services.message_pipeline import InboundMeta, MessagePipeline

router = APIRouter()

logger = get_logger("webhook")

GROUP_SUFFIX = "@g.us"


def _get_request_webhook_secret(request: Request) -> Optional[str]:
    header_secret = request.headers.get("X-Webhook-Secret")
    if header_secret:
        return header_secret.strip()
    query_secret = request.query_params.get("webhook_secret")
    if query_secret:
        return query_secret.strip()
    return None


def _coerce_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    # Gateways send seconds or milliseconds.
    seconds = value / 1000 if value > 10_000_000_000 else value
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(
    payload: WebhookRequest,
    request: Request,
    pipeline: MessagePipeline = Depends(get_pipeline),
):
    """Receive one inbound message from the messaging gateway."""
    expected_secret = settings.webhook_secret
    if expected_secret:
        provided_secret = _get_request_webhook_secret(request)
        if not provided_secret or provided_secret != expected_secret:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

    metadata = payload.body.metadata or WebhookMetadata()
    remote_jid = (metadata.remoteJid or "").strip()
    if not remote_jid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="remoteJid is required")

    if remote_jid.endswith(GROUP_SUFFIX):
        logger.debug(f"Group message ignored: {remote_jid}")
        return WebhookResponse(success=True, message="Group messages are ignored", gate="ignored")

    text = (payload.body.message or "").strip()
    if not text:
        return WebhookResponse(success=True, message="Empty message ignored", gate="ignored")

    meta = InboundMeta(
        message_id=metadata.messageId,
        push_name=metadata.sender,
        timestamp=_coerce_timestamp(metadata.timestamp),
        message_type=payload.body.messageType or "text",
    )
    try:
        result = await pipeline.handle(remote_jid, text, meta)
    except ConversationLookupError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"Conversation unavailable: {e}")

    conversation = pipeline.store.get(remote_jid)
    return WebhookResponse(
        success=True,
        message="Duplicate message" if result.gate == "duplicate" else "Message processed",
        gate=result.gate,
        status=conversation.status.value if conversation else None,
        bot_response=result.reply,
        escalation_reason=result.escalation_reason,
    )

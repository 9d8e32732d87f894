from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class WebhookMetadata(BaseModel):
    sender: Optional[str] = Field(default=None, validation_alias=AliasChoices("sender", "pushName", "push_name"))
    timestamp: Optional[int] = None
    messageId: Optional[str] = Field(default=None, validation_alias=AliasChoices("messageId", "message_id", "id"))
    remoteJid: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("remoteJid", "remote_jid", "from", "participant_id"),
    )


class WebhookBody(BaseModel):
    messageType: Optional[str] = "text"
    message: Optional[str] = None
    metadata: Optional[WebhookMetadata] = None


class WebhookRequest(BaseModel):
    body: WebhookBody


class WebhookResponse(BaseModel):
    success: bool
    message: str
    gate: Optional[str] = None
    status: Optional[str] = None
    bot_response: Optional[str] = None
    escalation_reason: Optional[str] = None

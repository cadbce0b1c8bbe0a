"""WhatsApp Cloud API webhook models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageContext(BaseModel):
    """Reference to the outbound message a reply answers."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")


class ButtonReply(BaseModel):
    """Quick-reply button attached to a template message."""

    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None
    payload: Optional[str] = None


class InteractiveButtonReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    title: Optional[str] = None


class Interactive(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    button_reply: Optional[InteractiveButtonReply] = None


class WebhookMessage(BaseModel):
    """Inbound message in a webhook change value."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    from_: str = Field(alias="from")
    timestamp: Optional[str] = None
    type: str
    button: Optional[ButtonReply] = None
    interactive: Optional[Interactive] = None
    text: Optional[Dict[str, Any]] = None
    context: Optional[MessageContext] = None


class WebhookValue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messaging_product: Optional[str] = None
    messages: List[WebhookMessage] = Field(default_factory=list)
    statuses: List[Dict[str, Any]] = Field(default_factory=list)


class WebhookChange(BaseModel):
    model_config = ConfigDict(extra="ignore")

    field: Optional[str] = None
    value: WebhookValue = Field(default_factory=WebhookValue)


class WebhookEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    changes: List[WebhookChange] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    """Complete webhook notification body."""

    model_config = ConfigDict(extra="ignore")

    object: Optional[str] = None
    entry: List[WebhookEntry] = Field(default_factory=list)


class InboundReply(BaseModel):
    """Channel-neutral view of a customer reply."""

    reply_id: str
    from_phone: str
    type: str
    button_text: Optional[str] = None
    button_payload: Optional[str] = None
    context_id: Optional[str] = None

    @classmethod
    def from_message(cls, message: WebhookMessage) -> "InboundReply":
        button_text = None
        button_payload = None
        if message.button is not None:
            button_text = message.button.text
            button_payload = message.button.payload
        elif message.interactive is not None and message.interactive.button_reply is not None:
            button_text = message.interactive.button_reply.title
            button_payload = message.interactive.button_reply.id

        return cls(
            reply_id=message.id,
            from_phone=message.from_,
            type=message.type,
            button_text=button_text,
            button_payload=button_payload,
            context_id=message.context.id if message.context else None,
        )


def extract_replies(payload: WebhookPayload) -> List[InboundReply]:
    """Flatten every inbound message of a webhook notification."""
    return [
        InboundReply.from_message(message)
        for entry in payload.entry
        for change in entry.changes
        for message in change.value.messages
    ]

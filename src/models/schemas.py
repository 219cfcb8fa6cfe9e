"""
Pydantic schemas shared by the parsers, flows and routes.

InteractionEvent is the in-memory shape of one lead event; the AI reply
shapes are tagged by `kind` so nothing untyped leaves the parser boundary.
"""

import datetime as dt
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CustomerRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    phone: Optional[str] = None


class EventSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    message_id: str = ""
    model: str = ""


class InteractionEvent(BaseModel):
    """One immutable customer interaction observation."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    customer: CustomerRef = Field(default_factory=CustomerRef)
    page: Optional[str] = None
    follower: Optional[str] = None
    status_text: Optional[str] = None
    reason_code: Optional[str] = None
    note: Optional[str] = None
    source: EventSource = Field(default_factory=EventSource)
    created_at: Optional[dt.datetime] = None
    # Hint from the extractor that this refers to an existing customer; never persisted
    is_update: bool = False

    def to_record(self) -> Dict[str, Any]:
        """Persisted record shape (no transient hints)."""
        return self.model_dump(mode="json", exclude={"is_update"})


class CaseHistoryEntry(BaseModel):
    date: dt.date
    status: Optional[str] = None
    reason_code: Optional[str] = None
    note: Optional[str] = None
    created_at: Optional[dt.datetime] = None


class CustomerCase(BaseModel):
    """Derived per-phone view; recomputed on every query."""

    phone: str
    name: Optional[str] = None
    page: Optional[str] = None
    follower: Optional[str] = None
    first_contact_date: dt.date
    last_update_date: dt.date
    current_status: Optional[str] = None
    current_reason_code: Optional[str] = None
    current_status_text: Optional[str] = None
    history: List[CaseHistoryEntry] = Field(default_factory=list)
    total_events: int = 0


# ---------------------------------------------------------------------------
# Parser outcomes (tagged variants)
# ---------------------------------------------------------------------------

class EventBatch(BaseModel):
    kind: Literal["events"] = "events"
    events: List[InteractionEvent]
    model: str = ""


class IgnoredMessage(BaseModel):
    kind: Literal["ignored"] = "ignored"
    reason: Optional[str] = None


class HeaderVerdict(BaseModel):
    """Header validation as answered by the model; re-validated before use."""

    kind: Literal["header"] = "header"
    valid: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


ParseResult = Union[EventBatch, IgnoredMessage]


class HeaderFormData(BaseModel):
    date: str
    name: str
    phone: str
    page: str
    follower: str


class HeaderFormResult(BaseModel):
    valid: bool
    data: Optional[HeaderFormData] = None
    error: Optional[str] = None
    model: Optional[str] = None


# ---------------------------------------------------------------------------
# Chat transport
# ---------------------------------------------------------------------------

class IncomingMessage(BaseModel):
    """Transport-independent inbound chat message."""

    chat_id: str
    user_id: str
    message_id: str
    text: str = ""
    username: Optional[str] = None


class TelegramUser(BaseModel):
    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: Optional[str] = None


class TelegramMessage(BaseModel):
    message_id: int
    from_: Optional[TelegramUser] = Field(default=None, alias="from")
    chat: TelegramChat
    date: Optional[int] = None
    text: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class TelegramUpdate(BaseModel):
    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None

    def to_incoming(self) -> Optional[IncomingMessage]:
        if self.message is None or self.message.text is None:
            return None
        msg = self.message
        user = msg.from_
        return IncomingMessage(
            chat_id=str(msg.chat.id),
            user_id=str(user.id) if user else str(msg.chat.id),
            username=user.username if user else None,
            message_id=str(msg.message_id),
            text=msg.text,
        )


class WebhookResponse(BaseModel):
    response: str


class BotReply(BaseModel):
    """Outbound chat reply produced by a flow."""

    text: str
    keyboard: Optional[List[List[str]]] = None
    remove_keyboard: bool = False

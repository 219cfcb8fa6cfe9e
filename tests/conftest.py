import asyncio
from datetime import date, datetime, timezone
from typing import List, Optional

import pytest

from src.core.database import create_db_engine, create_session_factory, init_db
from src.core.gemini import Completion, GeminiClient
from src.core.rate_limit import CooldownTracker
from src.core.state_manager import ConversationStateManager
from src.models.schemas import CustomerRef, EventSource, IncomingMessage, InteractionEvent
from src.services.event_repository import LeadEventRepository


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGeminiClient(GeminiClient):
    """Scripted replies instead of network calls. A None reply simulates a failed call."""

    def __init__(self, replies: Optional[List[Optional[str]]] = None, model: str = "fake-model"):
        super().__init__(api_key=None, model_name=model, default_model=model)
        self.api_key = "test-key"
        self.replies = list(replies or [])
        self.calls = []

    async def complete(self, system_instruction, message, model_name=None):
        self.calls.append({"system": system_instruction, "message": message, "model": model_name})
        if not self.replies:
            return None
        reply = self.replies.pop(0)
        if reply is None:
            return None
        return Completion(text=reply, model=model_name or self.model_name)


def run(coro):
    return asyncio.run(coro)


def make_event(
    phone: Optional[str] = "011",
    day: str = "2025-01-01",
    name: Optional[str] = "Dara",
    follower: Optional[str] = "Srey Sros",
    page: Optional[str] = "Facebook",
    status_text: Optional[str] = None,
    reason_code: Optional[str] = None,
    note: Optional[str] = None,
    created_at: Optional[datetime] = None,
    is_update: bool = False,
) -> InteractionEvent:
    return InteractionEvent(
        date=date.fromisoformat(day),
        customer=CustomerRef(name=name, phone=phone),
        page=page,
        follower=follower,
        status_text=status_text,
        reason_code=reason_code,
        note=note,
        source=EventSource(message_id="1", model="test"),
        created_at=created_at or datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc),
        is_update=is_update,
    )


def make_message(text: str, user_id: str = "42", chat_id: str = "100", message_id: str = "7") -> IncomingMessage:
    return IncomingMessage(chat_id=chat_id, user_id=user_id, message_id=message_id, text=text, username="seller")


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return LeadEventRepository(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state_manager(clock):
    return ConversationStateManager(ttl_seconds=300, clock=clock)


@pytest.fixture
def cooldown(clock):
    return CooldownTracker("customers", 120, clock=clock)

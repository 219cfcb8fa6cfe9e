import logging
import re
from datetime import date
from typing import Any, Dict, Optional

from src.core.gemini import GeminiClient
from src.core.timeutils import local_today
from src.models.schemas import (
    CustomerRef,
    EventBatch,
    EventSource,
    IgnoredMessage,
    InteractionEvent,
    ParseResult,
)

logger = logging.getLogger(__name__)

RULE_BASED_MODEL = "rule-based"

VAGUE_PHRASES = (
    "busy day",
    "lots of chats",
    "many customers",
    "good day",
    "slow day",
    "no customers",
    "quiet today",
)

_PHONE_SIGNAL = re.compile(r"\d{8,}")
_NAME_SIGNAL = re.compile(r"[A-Z][a-z]+")
_PLATFORM_SIGNAL = re.compile(r"(facebook|tiktok|instagram|whatsapp|page)", re.IGNORECASE)

_PHONE = re.compile(r"\b\d{8,}\b")
_NAME = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?\b")
_PLATFORM = re.compile(r"(facebook|tiktok|instagram|whatsapp|page|fb)", re.IGNORECASE)
_FOLLOWER = re.compile(r"followed by\s+(\w+)|(\w+)\s+following", re.IGNORECASE)
_STATUS = re.compile(
    r"(not interested|interested|callback|follow up|appointment|meeting"
    r"|too far|too expensive|will think|no answer)",
    re.IGNORECASE,
)


def build_system_instruction(today: date) -> str:
    return "\n".join([
        "You are a TRANSLATOR for audit records.",
        "Convert raw sales chat messages into structured JSON for auditing and daily reporting.",
        "You are NOT allowed to invent information, correct mistakes, infer missing data, "
        "calculate totals, or merge unrelated cases.",
        "Rules (strict):",
        "1) Output JSON only. No explanations or markdown.",
        "2) If data is missing or unclear, use null.",
        '3) If the message does not describe a customer/sales case, return { "ignored": true }.',
        "4) If multiple customers are mentioned, output one JSON object per customer.",
        "5) Assume today's date unless another date is explicitly stated.",
        '6) Set "is_update" to true only when the message says it is about a customer already reported.',
        "Input characteristics: text only, Khmer/English may be mixed, phone numbers are the primary identifier.",
        "Return data exactly as:",
        "[",
        "  {",
        '    "date": "YYYY-MM-DD or null",',
        '    "customer": { "name": "string or null", "phone": "string or null" },',
        '    "page": "string or null",',
        '    "follower": "string or null",',
        '    "status_text": "string or null",',
        '    "note": "string or null",',
        '    "is_update": boolean',
        "  }",
        "]",
        f"Today is {today.isoformat()}.",
    ])


def _str_or_none(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _date_or_default(value: Any, default: date) -> date:
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return default
    return default


def is_vague_message(text: str) -> bool:
    """
    Chatter such as "busy day" with nothing identifying in it.

    Signals are looked for outside the vague phrase itself, so the capital
    in "Busy day" does not count as a name.
    """
    lowered = text.lower()
    if not any(phrase in lowered for phrase in VAGUE_PHRASES):
        return False

    remainder = text
    for phrase in VAGUE_PHRASES:
        remainder = re.sub(re.escape(phrase), " ", remainder, flags=re.IGNORECASE)

    return not has_specific_signal(remainder)


def has_specific_signal(text: str) -> bool:
    return bool(
        _PHONE_SIGNAL.search(text)
        or _NAME_SIGNAL.search(text)
        or _PLATFORM_SIGNAL.search(text)
    )


class MessageNormalizer:
    """
    Turns free chat text into interaction events.

    Gemini is tried first; a timeout, an unusable reply or a missing API key
    drops to the regex extractor. Nothing here raises for bad input, the
    worst outcome is IgnoredMessage.
    """

    def __init__(self, client: GeminiClient, timezone: Optional[str] = None):
        self.client = client
        self.timezone = timezone

    async def normalize(self, text: str, message_id: str, model_hint: Optional[str] = None) -> ParseResult:
        trimmed = (text or "").strip()
        if not trimmed:
            return IgnoredMessage(reason="empty")

        if is_vague_message(trimmed):
            logger.info(f"Ignoring vague message: {trimmed[:50]}")
            return IgnoredMessage(reason="vague")

        today = local_today(self.timezone)

        ai_result = await self._ai_extract(trimmed, message_id, model_hint, today)
        if ai_result is not None:
            return ai_result

        logger.warning("AI extraction unavailable, using rule-based fallback")
        return self.fallback_extract(trimmed, message_id, today)

    async def _ai_extract(
        self,
        text: str,
        message_id: str,
        model_hint: Optional[str],
        today: date,
    ) -> Optional[ParseResult]:
        if not self.client.is_configured:
            return None

        completion = await self.client.complete(build_system_instruction(today), text, model_hint)
        if completion is None:
            return None

        payload = self.client.parse_json(completion.text)
        if payload is None:
            return None

        if isinstance(payload, dict) and payload.get("ignored") is True:
            return IgnoredMessage(reason="model")

        if not isinstance(payload, list):
            logger.warning(f"Unexpected payload type from model: {type(payload).__name__}")
            return None

        source = EventSource(message_id=message_id, model=completion.model)
        events = [
            event for event in (self._coerce_event(item, source, today) for item in payload)
            if event is not None
        ]

        if not events:
            return IgnoredMessage(reason="model")

        logger.info(f"🤖 Extracted {len(events)} event(s) with {completion.model}")
        return EventBatch(events=events, model=completion.model)

    def _coerce_event(self, item: Any, source: EventSource, today: date) -> Optional[InteractionEvent]:
        if not isinstance(item, dict):
            return None

        customer_data = item.get("customer")
        if isinstance(customer_data, dict):
            customer = CustomerRef(
                name=_str_or_none(customer_data.get("name")),
                phone=_str_or_none(customer_data.get("phone")),
            )
        else:
            # Older replies used flat field names
            customer = CustomerRef(
                name=_str_or_none(item.get("customer_name")),
                phone=_str_or_none(item.get("phone_number")),
            )

        follower = _str_or_none(item.get("follower"))
        if follower is None:
            follower = _str_or_none(item.get("case_followed_by"))

        status_text = _str_or_none(item.get("status_text"))
        if status_text is None:
            status_text = _str_or_none(item.get("comment"))

        is_update = item.get("is_update")

        return InteractionEvent(
            date=_date_or_default(item.get("date"), today),
            customer=customer,
            page=_str_or_none(item.get("page")),
            follower=follower,
            status_text=status_text,
            # Reason codes only come from the entry flow menu
            reason_code=None,
            note=_str_or_none(item.get("note")),
            source=source,
            is_update=is_update if isinstance(is_update, bool) else False,
        )

    def fallback_extract(self, text: str, message_id: str, today: Optional[date] = None) -> ParseResult:
        """
        Regex extraction used when the model is unavailable.

        Produces at most one event, and only when a name or phone is found.
        """
        phone_match = _PHONE.search(text)
        name_match = _NAME.search(text)
        platform_match = _PLATFORM.search(text)
        follower_match = _FOLLOWER.search(text)
        status_match = _STATUS.search(text)

        phone = phone_match.group(0) if phone_match else None
        name = name_match.group(0) if name_match else None

        if not phone and not name:
            return IgnoredMessage(reason="no identity")

        follower = None
        if follower_match:
            follower = follower_match.group(1) or follower_match.group(2)

        event = InteractionEvent(
            date=today or local_today(self.timezone),
            customer=CustomerRef(name=name, phone=phone),
            page=platform_match.group(1) if platform_match else None,
            follower=follower,
            status_text=status_match.group(1) if status_match else None,
            source=EventSource(message_id=message_id, model=RULE_BASED_MODEL),
        )
        return EventBatch(events=[event], model=RULE_BASED_MODEL)


def describe(result: ParseResult) -> Dict[str, Any]:
    """Audit-friendly dump of a parse outcome."""
    return result.model_dump(mode="json")

"""
Sales entry flow - step by step
HDR header -> reason (A-J) -> optional note -> one saved lead event
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional

from src.agents.header_validator import HeaderFormValidator, header_format_help
from src.core.reason_codes import (
    REASON_INVALID_MESSAGE,
    build_reason_keyboard,
    build_reason_prompt,
    parse_reason_code,
)
from src.core.state_manager import ConversationStateManager
from src.models.schemas import BotReply, CustomerRef, EventSource, IncomingMessage, InteractionEvent
from src.services.event_repository import LeadEventRepository

logger = logging.getLogger(__name__)

HEADER_FORM_MODEL = "header-form"
SKIP_TOKENS = {"-", "skip", "none", "n/a"}


# ============================================================================
# FIXED MESSAGES
# ============================================================================

class EntryMessages:
    @staticmethod
    def reason_menu() -> BotReply:
        return BotReply(text=build_reason_prompt(), keyboard=build_reason_keyboard())

    @staticmethod
    def invalid_reason() -> BotReply:
        return BotReply(
            text=f"{REASON_INVALID_MESSAGE}\n\n{build_reason_prompt()}",
            keyboard=build_reason_keyboard(),
        )

    @staticmethod
    def ask_note() -> BotReply:
        return BotReply(
            text='Add a short note if you have one (type "-" to skip):',
            remove_keyboard=True,
        )

    @staticmethod
    def saved() -> BotReply:
        return BotReply(text="Saved.", remove_keyboard=True)

    @staticmethod
    def expired() -> BotReply:
        return BotReply(text="Entry expired. Please resend the header form.", remove_keyboard=True)

    @staticmethod
    def save_failed() -> BotReply:
        return BotReply(text="Sorry, I could not save that entry. Please send the note again.")


# ============================================================================
# FLOW STATES
# ============================================================================

class EntryFlowStates:
    AWAITING_REASON = "awaiting_reason"
    AWAITING_NOTE = "awaiting_note"


def normalize_note(text: str) -> Optional[str]:
    trimmed = (text or "").strip()
    if not trimmed or trimmed.lower() in SKIP_TOKENS:
        return None
    return trimmed


class SalesEntryFlow:
    FLOW = "entry"

    def __init__(
        self,
        validator: HeaderFormValidator,
        repository: LeadEventRepository,
        state_manager: ConversationStateManager,
    ):
        self.validator = validator
        self.repository = repository
        self.state_manager = state_manager

    async def try_start(self, message: IncomingMessage) -> BotReply:
        """Validates a header; only a valid one opens the flow."""
        self.repository.log_audit("header_received", message)

        result = await self.validator.validate(message.text)

        self.repository.log_audit("header_parsed", message, parsed_result=result.model_dump(mode="json"))

        if not result.valid or result.data is None:
            logger.info(f"Header rejected for user {message.user_id}: {result.error}")
            return BotReply(text=header_format_help(result.error))

        self.state_manager.set_state(
            message.user_id,
            self.FLOW,
            message.chat_id,
            EntryFlowStates.AWAITING_REASON,
            {
                "header": result.data.model_dump(),
                "source_message_id": message.message_id,
                "source_model": result.model or HEADER_FORM_MODEL,
            },
        )
        logger.info(f"🧾 Sales entry started for {result.data.phone} by user {message.user_id}")
        return EntryMessages.reason_menu()

    async def handle_pending(self, message: IncomingMessage) -> BotReply:
        state = self.state_manager.get_state(message.user_id, self.FLOW, message.chat_id)
        if state is None:
            return EntryMessages.expired()

        # ========================================================================
        # STEP 1: REASON
        # ========================================================================
        if state.step == EntryFlowStates.AWAITING_REASON:
            reason_code = parse_reason_code(message.text)
            if reason_code is None:
                return EntryMessages.invalid_reason()

            self.state_manager.update_context(
                message.user_id, self.FLOW, EntryFlowStates.AWAITING_NOTE, {"reason_code": reason_code}
            )
            self.repository.log_audit("reason_selected", message, parsed_result={"reason_code": reason_code})
            return EntryMessages.ask_note()

        # ========================================================================
        # STEP 2: NOTE + COMMIT
        # ========================================================================
        if state.step == EntryFlowStates.AWAITING_NOTE:
            if not state.data.get("reason_code"):
                self.state_manager.update_context(
                    message.user_id, self.FLOW, EntryFlowStates.AWAITING_REASON, {}
                )
                return EntryMessages.invalid_reason()

            event = self._build_event(state.data, normalize_note(message.text))
            try:
                saved = self.repository.save_event(event)
            except Exception as e:
                # State stays at awaiting_note so the user can retry
                logger.error(f"Error saving sales entry for user {message.user_id}: {e}", exc_info=True)
                self.repository.log_audit("error", message, error=str(e))
                return EntryMessages.save_failed()

            self.repository.log_audit("saved", message, parsed_result=saved.to_record())
            self.state_manager.clear_state(message.user_id, self.FLOW)

            logger.info(f"✅ Saved lead event from header for {saved.customer.phone}")
            return EntryMessages.saved()

        logger.warning(f"Unknown entry step '{state.step}' for user {message.user_id}, resetting")
        self.state_manager.clear_state(message.user_id, self.FLOW)
        return EntryMessages.expired()

    @staticmethod
    def _build_event(data: dict, note: Optional[str]) -> InteractionEvent:
        header = data["header"]
        return InteractionEvent(
            date=date.fromisoformat(header["date"]),
            customer=CustomerRef(name=header["name"], phone=header["phone"]),
            page=header["page"],
            follower=header["follower"],
            status_text=None,
            reason_code=data["reason_code"],
            note=note,
            source=EventSource(
                message_id=data.get("source_message_id", ""),
                model=data.get("source_model") or HEADER_FORM_MODEL,
            ),
            created_at=datetime.now(timezone.utc),
        )

"""
/customers flow - follower -> month -> customer list
"""
import logging
import re
from typing import Optional

from src.core.rate_limit import CooldownTracker, wait_message
from src.core.state_manager import ConversationStateManager
from src.core.timeutils import current_month
from src.models.schemas import BotReply, IncomingMessage
from src.services.case_aggregation import CaseService

logger = logging.getLogger(__name__)

_MONTH = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class CustomersMessages:
    ASK_FOLLOWER = "Which follower? (example: Srey Sros)"
    ASK_MONTH = 'Which month? (YYYY-MM or type "current")'
    INVALID_MONTH = 'Invalid month format. Please use YYYY-MM or type "current".'
    EXPIRED = "Customer list request expired. Please send /customers again."
    FAILED = "Failed to generate customer list."


class CustomersFlowStates:
    AWAITING_FOLLOWER = "awaiting_follower"
    AWAITING_MONTH = "awaiting_month"


def parse_month(text: str, tz_name: Optional[str] = None) -> Optional[str]:
    """'current' or a real YYYY-MM month, else None."""
    value = (text or "").strip()
    if value.lower() == "current":
        return current_month(tz_name)
    if _MONTH.match(value):
        return value
    return None


class CustomersQueryFlow:
    FLOW = "customers"

    def __init__(
        self,
        case_service: CaseService,
        state_manager: ConversationStateManager,
        cooldown: CooldownTracker,
        timezone: Optional[str] = None,
    ):
        self.case_service = case_service
        self.state_manager = state_manager
        self.cooldown = cooldown
        self.timezone = timezone

    def start(self, message: IncomingMessage) -> BotReply:
        remaining = self.cooldown.remaining_seconds(message.user_id)
        if remaining > 0:
            logger.info(f"⏳ /customers rate limited for user {message.user_id} ({remaining}s left)")
            return BotReply(text=wait_message(remaining, "customer list"))

        self.state_manager.set_state(
            message.user_id, self.FLOW, message.chat_id, CustomersFlowStates.AWAITING_FOLLOWER
        )
        return BotReply(text=CustomersMessages.ASK_FOLLOWER)

    def handle_pending(self, message: IncomingMessage) -> BotReply:
        state = self.state_manager.get_state(message.user_id, self.FLOW, message.chat_id)
        if state is None:
            return BotReply(text=CustomersMessages.EXPIRED)

        text = (message.text or "").strip()

        if state.step == CustomersFlowStates.AWAITING_FOLLOWER:
            if not text:
                return BotReply(text=CustomersMessages.ASK_FOLLOWER)
            self.state_manager.update_context(
                message.user_id, self.FLOW, CustomersFlowStates.AWAITING_MONTH, {"follower": text}
            )
            return BotReply(text=CustomersMessages.ASK_MONTH)

        if state.step == CustomersFlowStates.AWAITING_MONTH:
            month = parse_month(text, self.timezone)
            if month is None:
                return BotReply(text=CustomersMessages.INVALID_MONTH)

            try:
                report = self.case_service.build_customers_report(state.data["follower"], month)
            except Exception as e:
                logger.error(f"Error building customer list: {e}", exc_info=True)
                self.state_manager.clear_state(message.user_id, self.FLOW)
                return BotReply(text=CustomersMessages.FAILED)

            self.cooldown.arm(message.user_id)
            self.state_manager.clear_state(message.user_id, self.FLOW)
            return BotReply(text=report)

        self.state_manager.clear_state(message.user_id, self.FLOW)
        return BotReply(text=CustomersMessages.EXPIRED)

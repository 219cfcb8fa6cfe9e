import logging
from typing import Optional

from src.agents.header_validator import looks_like_header
from src.core.state_manager import ConversationStateManager
from src.models.schemas import BotReply, IncomingMessage
from src.services.customers_query_flow import CustomersQueryFlow
from src.services.ingestion_service import IngestionService
from src.services.report_query_flow import ReportQueryFlow
from src.services.sales_entry_flow import SalesEntryFlow

logger = logging.getLogger(__name__)

HELP_TEXT = "\n".join([
    "Sales audit bot",
    "",
    "Send a customer update as free text, or start a structured entry with:",
    "HDR",
    "DATE: YYYY-MM-DD",
    "NAME: Customer Name",
    "PHONE: Contact",
    "PAGE: Source Page",
    "FOLLOWER: Staff Name",
    "",
    "Commands:",
    "/customers - customer list for a follower and month",
    "/report - summary for a follower over a period",
    "/cancel - discard what you are doing",
])


def command_name(text: str) -> str:
    """'/customers@my_bot extra' -> 'customers'."""
    head = text.split()[0] if text.split() else ""
    return head[1:].split("@")[0].lower()


class MessageRouter:
    """
    Decides who handles an incoming chat message.

    1. /commands always win and discard every pending flow of the user
    2. a pending flow gets the reply; an expired entry is reported, an
       expired /customers or /report is dropped silently
    3. an HDR block starts a sales entry
    4. anything else goes to free-text ingestion
    """

    def __init__(
        self,
        state_manager: ConversationStateManager,
        entry_flow: SalesEntryFlow,
        customers_flow: CustomersQueryFlow,
        report_flow: ReportQueryFlow,
        ingestion: IngestionService,
    ):
        self.state_manager = state_manager
        self.entry_flow = entry_flow
        self.customers_flow = customers_flow
        self.report_flow = report_flow
        self.ingestion = ingestion

    async def handle(self, message: IncomingMessage) -> Optional[BotReply]:
        text = (message.text or "").strip()

        if text.startswith("/"):
            return self._handle_command(message, text)

        if self.state_manager.peek(message.user_id, SalesEntryFlow.FLOW):
            return await self.entry_flow.handle_pending(message)

        # A stale query is dropped here and the message is handled as if it never existed
        if self.state_manager.get_state(message.user_id, CustomersQueryFlow.FLOW, message.chat_id):
            return self.customers_flow.handle_pending(message)

        if self.state_manager.get_state(message.user_id, ReportQueryFlow.FLOW, message.chat_id):
            return self.report_flow.handle_pending(message)

        if looks_like_header(text):
            return await self.entry_flow.try_start(message)

        return await self.ingestion.ingest(message)

    def _handle_command(self, message: IncomingMessage, text: str) -> BotReply:
        command = command_name(text)
        discarded = self.state_manager.clear_user(message.user_id)
        logger.info(f"Command /{command} from user {message.user_id} (discarded {discarded} pending flow(s))")

        if command == "customers":
            return self.customers_flow.start(message)

        if command == "report":
            return self.report_flow.start(message)

        if command == "cancel":
            if discarded:
                return BotReply(text="Cancelled.", remove_keyboard=True)
            return BotReply(text="Nothing to cancel.")

        if command in ("start", "help"):
            return BotReply(text=HELP_TEXT, remove_keyboard=bool(discarded))

        return BotReply(text=f"Unknown command /{command}. Send /help to see what I can do.")

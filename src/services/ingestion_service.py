import logging
from typing import Optional

from src.agents.message_normalizer import MessageNormalizer, describe
from src.models.schemas import BotReply, EventBatch, IncomingMessage
from src.services.event_repository import LeadEventRepository
from src.services.update_merger import EnrichmentMerger

logger = logging.getLogger(__name__)

ERROR_REPLY = "Sorry, I could not save that message. Please try again."


class IngestionService:
    """
    Free-text path: normalize -> enrich updates -> append events.

    Every stage is written to the audit log. A failure is audited as
    `error` and never escapes to the caller.
    """

    def __init__(
        self,
        normalizer: MessageNormalizer,
        merger: EnrichmentMerger,
        repository: LeadEventRepository,
    ):
        self.normalizer = normalizer
        self.merger = merger
        self.repository = repository

    async def ingest(self, message: IncomingMessage, model_hint: Optional[str] = None) -> Optional[BotReply]:
        logger.info(f"Processing message {message.message_id} from {message.username or message.user_id}: {message.text[:100]}")

        try:
            self.repository.log_audit("received", message)

            result = await self.normalizer.normalize(message.text, message.message_id, model_hint)
            self.repository.log_audit("parsed", message, parsed_result=describe(result))

            if not isinstance(result, EventBatch):
                logger.info(f"Message {message.message_id} ignored ({result.reason})")
                return None

            events = [self.merger.resolve(event) for event in result.events]
            saved = self.repository.save_events(events)

            self.repository.log_audit(
                "saved",
                message,
                parsed_result={
                    "count": len(saved),
                    "events": [event.to_record() for event in saved],
                },
            )
            logger.info(f"Saved {len(saved)} lead event(s) from message {message.message_id}")
            return BotReply(text=f"Saved {len(saved)} record(s).")

        except Exception as e:
            logger.error(f"Error processing message {message.message_id}: {e}", exc_info=True)
            self.repository.log_audit("error", message, error=str(e))
            return BotReply(text=ERROR_REPLY)

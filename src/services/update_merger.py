import logging
from typing import Optional

from src.models.schemas import CustomerRef, InteractionEvent
from src.services.event_repository import LeadEventRepository

logger = logging.getLogger(__name__)


def merge_with_history(event: InteractionEvent, previous: Optional[InteractionEvent]) -> InteractionEvent:
    """
    Fills identity and context gaps of an update from the customer's last event.

    name/page/follower fall back to history only when the new value is null.
    status_text/reason_code/note always come from the new event.
    The is_update hint is cleared either way.
    """
    if previous is None:
        return event.model_copy(update={"is_update": False})

    customer = CustomerRef(
        name=event.customer.name if event.customer.name is not None else previous.customer.name,
        phone=event.customer.phone,
    )

    return event.model_copy(update={
        "customer": customer,
        "page": event.page if event.page is not None else previous.page,
        "follower": event.follower if event.follower is not None else previous.follower,
        "is_update": False,
    })


class EnrichmentMerger:
    def __init__(self, repository: LeadEventRepository):
        self.repository = repository

    def resolve(self, event: InteractionEvent) -> InteractionEvent:
        if not event.is_update:
            return event

        phone = event.customer.phone
        if not phone:
            logger.info("Update hint without phone, treating as new lead")
            return merge_with_history(event, None)

        previous = self.repository.find_latest_by_phone(phone)
        if previous is None:
            logger.info(f"No history for {phone}, treating update as new lead")
        else:
            logger.info(f"🔗 Enriching update for {phone} from event dated {previous.date}")

        return merge_with_history(event, previous)

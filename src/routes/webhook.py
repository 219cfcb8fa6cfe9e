import logging

from fastapi import APIRouter, Depends

from src.models.schemas import TelegramUpdate, WebhookResponse
from src.routes.deps import get_chat_service, get_message_router
from src.services.chat_service import ChatService
from src.services.message_router import MessageRouter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhook"])

GENERIC_ERROR_REPLY = "Sorry, something went wrong. Please try again."


@router.post("/webhook", response_model=WebhookResponse)
async def webhook(
    update: TelegramUpdate,
    message_router: MessageRouter = Depends(get_message_router),
    chat_service: ChatService = Depends(get_chat_service),
):
    message = update.to_incoming()
    if message is None:
        # Edits, stickers, joins... nothing to answer
        return WebhookResponse(response="")

    try:
        reply = await message_router.handle(message)
    except Exception as e:
        logger.error(f"❌ Error handling message {message.message_id}: {e}", exc_info=True)
        await chat_service.send_message(message.chat_id, GENERIC_ERROR_REPLY)
        return WebhookResponse(response=GENERIC_ERROR_REPLY)

    if reply is None:
        return WebhookResponse(response="")

    await chat_service.send_message(
        message.chat_id,
        reply.text,
        keyboard=reply.keyboard,
        remove_keyboard=reply.remove_keyboard,
    )
    return WebhookResponse(response=reply.text)

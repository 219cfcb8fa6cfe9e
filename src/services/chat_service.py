import logging
from typing import List, Optional

import httpx

from src.core.config import Settings

logger = logging.getLogger(__name__)


class ChatService:
    """Service for sending chat replies via the Telegram Bot API"""

    def __init__(self, settings: Settings):
        self.base_url = f"{settings.TELEGRAM_API_URL.rstrip('/')}/bot{settings.TELEGRAM_BOT_TOKEN}"
        self.timeout = settings.CHAT_SEND_TIMEOUT_SECONDS
        self.skip_delivery = settings.SKIP_CHAT_DELIVERY

    async def send_message(
        self,
        chat_id: str,
        message: str,
        keyboard: Optional[List[List[str]]] = None,
        remove_keyboard: bool = False,
    ) -> dict:
        """
        Send a text message to a chat

        Args:
            chat_id: Target chat id
            message: Message text to send
            keyboard: Optional reply keyboard rows
            remove_keyboard: Hide a previously shown reply keyboard

        Returns:
            dict with 'success' key and optional 'error' message
        """
        # Development mode: skip delivery and just log
        if self.skip_delivery:
            logger.info(f"📤 DEV MODE: Would send message to {chat_id}")
            logger.info(f"Message: {message[:100]}...")
            return {"success": True, "dev_mode": True}

        payload = {"chat_id": chat_id, "text": message}
        if keyboard:
            payload["reply_markup"] = {"keyboard": keyboard, "resize_keyboard": True}
        elif remove_keyboard:
            payload["reply_markup"] = {"remove_keyboard": True}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/sendMessage", json=payload)

                if response.status_code == 200:
                    logger.info(f"Message sent successfully to {chat_id}")
                    return {"success": True}
                else:
                    error_msg = f"Failed to send message: {response.status_code}"
                    logger.error(f"{error_msg} - {response.text}")
                    return {"success": False, "error": error_msg}

        except httpx.TimeoutException:
            error_msg = "Timeout sending chat message"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}
        except Exception as e:
            error_msg = f"Error sending chat message: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return {"success": False, "error": error_msg}

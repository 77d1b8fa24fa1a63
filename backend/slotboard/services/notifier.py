"""
Notification channels used by the reminder dispatcher.

A notifier exposes one capability: send(user_id, text). It raises
NotificationSendFailure when the message could not be delivered and never
lets channel-specific errors escape.
"""

from abc import ABC, abstractmethod

from telegram import Bot
from telegram.error import TelegramError

from slotboard.core.exceptions import NotificationSendFailure
from slotboard.core.logging import get_logger

logger = get_logger(__name__)


class Notifier(ABC):
    """Opaque push channel addressed by user id."""

    async def start(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    async def send(self, user_id: int, text: str) -> None:
        ...


class TelegramNotifier(Notifier):
    """Delivers reminders as Telegram bot messages; the user id is the chat id."""

    def __init__(self, token: str):
        self._bot = Bot(token=token)
        self._ready = False

    async def start(self) -> None:
        """Resolve the bot identity. Raises TelegramError when Telegram is unreachable."""
        await self._bot.initialize()
        self._ready = True
        logger.info("telegram_notifier_ready", bot=self._bot.username)

    async def close(self) -> None:
        await self._bot.shutdown()

    async def send(self, user_id: int, text: str) -> None:
        try:
            # Startup may have failed while Telegram was down
            if not self._ready:
                await self.start()
            await self._bot.send_message(chat_id=user_id, text=text)
        except TelegramError as exc:
            raise NotificationSendFailure(user_id, exc.message) from exc

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ChatMemberStatus
from telegram.error import BadRequest, TelegramError

from .models import Button, OutgoingMessage

logger = logging.getLogger(__name__)


MEMBER_STATUSES = {
    ChatMemberStatus.OWNER,
    ChatMemberStatus.ADMINISTRATOR,
    ChatMemberStatus.MEMBER,
}


class TransportError(RuntimeError):
    pass


class ChatTransport(ABC):
    """Outbound side of the chat platform."""

    @abstractmethod
    async def send_message(self, user_id: int, message: OutgoingMessage) -> None:
        """Deliver ``message`` to the user's private chat.

        Raises ``TransportError`` when the platform rejects or fails the send.
        """

    @abstractmethod
    async def list_directory_members(self, scope: int | str) -> list[int]:
        """Return the user ids belonging to the audience ``scope``."""


def to_markup(rows: list[list[Button]]) -> InlineKeyboardMarkup | None:
    if not rows:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(b.label, callback_data=b.data) for b in row] for row in rows]
    )


class TelegramTransport(ChatTransport):
    def __init__(self, bot: Bot, candidates: Callable[[], Iterable[int]]) -> None:
        self.bot = bot
        # Bots cannot enumerate group members, so membership is checked for
        # every user the bot already knows about.
        self.candidates = candidates

    async def send_message(self, user_id: int, message: OutgoingMessage) -> None:
        try:
            await self.bot.send_message(
                chat_id=user_id,
                text=message.text,
                reply_markup=to_markup(message.buttons),
            )
        except TelegramError as exc:
            raise TransportError(f"Send to {user_id} failed: {exc}") from exc

    async def list_directory_members(self, scope: int | str) -> list[int]:
        members: list[int] = []
        for user_id in self.candidates():
            try:
                member = await self.bot.get_chat_member(chat_id=scope, user_id=user_id)
            except BadRequest as exc:
                logger.debug("User %s not found in chat %s: %s", user_id, scope, exc)
                continue
            except TelegramError as exc:
                raise TransportError(f"Membership lookup in {scope} failed: {exc}") from exc

            if member.status in MEMBER_STATUSES:
                members.append(user_id)
            elif member.status == ChatMemberStatus.RESTRICTED and getattr(member, "is_member", False):
                members.append(user_id)
        return members

from __future__ import annotations

import logging
from datetime import date

from .database import Database
from .transport import ChatTransport

logger = logging.getLogger(__name__)

AUDIENCE_REGISTRY = "registry"
AUDIENCE_CHAT = "chat"
AUDIENCE_SOURCES = (AUDIENCE_REGISTRY, AUDIENCE_CHAT)


class EligibilityResolver:
    """Who should get this week's check-in.

    audience members - users with a response for the week - opted-out users.

    The audience is either the registry of active users (``registry``) or the
    members of a chat (``chat``, scoped by ``chat_id``). Nothing is cached:
    every call reads the directory and the responses again.
    """

    def __init__(
        self,
        repository: Database,
        transport: ChatTransport,
        source: str = AUDIENCE_REGISTRY,
        chat_id: int | str | None = None,
    ) -> None:
        if source not in AUDIENCE_SOURCES:
            raise ValueError(f"Unknown audience source: {source}")
        if source == AUDIENCE_CHAT and chat_id is None:
            raise ValueError("Chat audience requires a chat id")

        self.repository = repository
        self.transport = transport
        self.source = source
        self.chat_id = chat_id

    async def audience(self) -> set[int]:
        if self.source == AUDIENCE_CHAT:
            return set(await self.transport.list_directory_members(self.chat_id))
        return set(self.repository.list_active_user_ids())

    def opted_out(self, user_ids: set[int]) -> set[int]:
        opted_out: set[int] = set()
        for user_id in user_ids:
            user = self.repository.get_user(user_id)
            if user is not None and user.opt_out:
                opted_out.add(user_id)
        return opted_out

    def registered(self, user_ids: set[int]) -> set[int]:
        """Known, opted-in users among ``user_ids``."""
        registered: set[int] = set()
        for user_id in user_ids:
            user = self.repository.get_user(user_id)
            if user is None:
                logger.info("Skipping unknown user %s", user_id)
            elif not user.opt_out:
                registered.add(user_id)
        return registered

    async def resolve(self, week_start: date) -> set[int]:
        members = await self.audience()
        responded = self.repository.responded_user_ids(week_start)
        pending = members - responded
        eligible = pending - self.opted_out(pending)

        logger.info(
            "Eligibility for week %s: %s in audience, %s responded, %s eligible",
            week_start.isoformat(),
            len(members),
            len(members & responded),
            len(eligible),
        )
        return eligible

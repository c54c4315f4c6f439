"""In-memory outbox — what the mock backend "sent", for local inspection."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Keep only the most recent messages per card
MAX_MESSAGES_PER_CARD = 20


@dataclass
class OutboxMessage:
    card_number: str
    channel: str
    destination: str
    code: str
    sent_at: float = field(default_factory=time.time)


class Outbox:
    """Records every message the mock send endpoint accepted.

    Each entry maps ``card_number → [OutboxMessage, ...]``, newest last.
    Registered codes (the legacy ``inserir`` operation) are kept alongside.
    """

    def __init__(self) -> None:
        self._messages: dict[str, list[OutboxMessage]] = {}
        self._registered: dict[tuple[str, str], str] = {}

    def record(self, card_number: str, channel: str, destination: str, code: str) -> OutboxMessage:
        message = OutboxMessage(card_number, channel, destination, code)
        messages = self._messages.setdefault(card_number, [])
        messages.append(message)
        del messages[:-MAX_MESSAGES_PER_CARD]
        logger.info("Mock backend queued %s message for card %s", channel, card_number)
        return message

    def messages_for(self, card_number: str) -> list[OutboxMessage]:
        return list(self._messages.get(card_number, []))

    def latest(self, card_number: str) -> OutboxMessage | None:
        messages = self._messages.get(card_number)
        return messages[-1] if messages else None

    def register(self, card_number: str, channel: str, code: str) -> None:
        self._registered[(card_number, channel)] = code

    def registered_code(self, card_number: str, channel: str) -> str | None:
        return self._registered.get((card_number, channel))

    def clear(self) -> None:
        self._messages.clear()
        self._registered.clear()

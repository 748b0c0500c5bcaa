"""
Rule-based customer chat.

Replies come from an ordered table of rules; the first rule whose predicate
accepts the lower-cased message wins, otherwise the fallback is used.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable

from swiftlogix.backend import Backend, CHAT_TABLE
from swiftlogix.errors import BackendError, ValidationError
from swiftlogix.metrics import record_chat_reply
from swiftlogix.schemas import ChatMessage
from swiftlogix.utils import utc_now_iso

logger = logging.getLogger(__name__)


WELCOME_MESSAGE = "Hello! 👋 Welcome to SwiftLogix customer support. How can I help you today?"

FALLBACK_RESPONSE = (
    "Thank you for your message! Our team will respond shortly. For immediate assistance "
    "with tracking, please visit our Tracking page. Is there anything else I can help you with?"
)

QUICK_REPLIES = (
    "Track my shipment",
    "Get a quote",
    "Business hours",
    "Contact support",
)

TRACKING_NUMBER_IN_TEXT = re.compile(r"swl-\d{4}-\d{4}-\d{4}", re.IGNORECASE)


@dataclass(frozen=True)
class ChatRule:
    name: str
    predicate: Callable[[str], bool]
    response: str


def contains(phrase: str) -> Callable[[str], bool]:
    return lambda message: phrase in message


def matches(pattern: re.Pattern) -> Callable[[str], bool]:
    return lambda message: pattern.search(message) is not None


CHAT_RULES = (
    ChatRule(
        "track_shipment",
        contains("track my shipment"),
        "To track your shipment, please visit our Tracking page and enter your tracking number "
        "(e.g., SWL-2026-0118-7890). You can also share your tracking number here and I'll help "
        "you look it up!",
    ),
    ChatRule(
        "quote",
        contains("get a quote"),
        "I'd be happy to help you get a quote! Please share details about: 1) Origin and "
        "destination, 2) Approximate weight/dimensions, 3) Preferred shipping method "
        "(Air/Ocean/Ground). Or visit our Contact page to submit a quote request form.",
    ),
    ChatRule(
        "business_hours",
        contains("business hours"),
        "SwiftLogix operates 24/7 for shipment tracking and support. Our main offices are open "
        "Monday-Friday, 8:00 AM - 6:00 PM (EST). You can reach us anytime at +1 (234) 567-890.",
    ),
    ChatRule(
        "contact_support",
        contains("contact support"),
        "You can reach our support team via: 📞 Phone: +1 (234) 567-890 (24/7) 📧 Email: "
        "support@swiftlogix.com 💬 This chat (we're here!). For urgent matters, phone support "
        "is recommended.",
    ),
    ChatRule(
        "tracking_number",
        matches(TRACKING_NUMBER_IN_TEXT),
        "I found your tracking number! To get real-time updates, please visit our Tracking page "
        "and enter the number there. Our tracking system will show you the complete journey of "
        "your shipment with live updates.",
    ),
)


def match_rule(message: str, rules=CHAT_RULES) -> tuple[str, str]:
    """Return (rule_name, response) for a message; 'fallback' when nothing matches."""
    lowered = message.lower()
    for rule in rules:
        if rule.predicate(lowered):
            return rule.name, rule.response
    return "fallback", FALLBACK_RESPONSE


def get_bot_response(message: str) -> str:
    return match_rule(message)[1]


def welcome_message() -> ChatMessage:
    return ChatMessage(id="welcome", role="assistant", content=WELCOME_MESSAGE, created_at=utc_now_iso())


class ChatService:
    """Transcript persistence around the rule table."""

    def __init__(self, backend: Backend):
        self._backend = backend

    async def load_transcript(self, session_id: str) -> list[ChatMessage]:
        """
        Stored messages oldest first, or just the welcome message for a new
        session or when the transcript cannot be read.
        """
        try:
            rows = await self._backend.select(
                CHAT_TABLE, eq={"session_id": session_id}, order="created_at", ascending=True
            )
        except BackendError as e:
            logger.error(f"Failed to load chat transcript: {e}")
            rows = []
        if not rows:
            return [welcome_message()]
        return [ChatMessage.model_validate(row) for row in rows]

    async def send(self, session_id: str, content: str) -> tuple[ChatMessage, ChatMessage]:
        """
        Answer one user message. Both sides are persisted to the session's
        transcript; a failed write is logged and the reply is still returned.
        """
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message cannot be empty")

        user_message = await self._persist(session_id, "user", content)

        rule_name, response = match_rule(content)
        record_chat_reply(rule_name)
        logger.debug(f"Chat rule matched: {rule_name}")

        assistant_message = await self._persist(session_id, "assistant", response)
        return user_message, assistant_message

    async def _persist(self, session_id: str, role: str, content: str) -> ChatMessage:
        row = {"session_id": session_id, "role": role, "content": content}
        try:
            stored = await self._backend.insert(CHAT_TABLE, row)
        except BackendError as e:
            logger.error(f"Failed to save {role} chat message: {e}")
            return ChatMessage(id=f"{role}_unsaved", role=role, content=content, created_at=utc_now_iso())
        return ChatMessage.model_validate(stored)

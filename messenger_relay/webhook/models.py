"""Data models for the Messenger reply pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EventKind(str, Enum):
    MESSAGE = "message"
    POSTBACK = "postback"
    OTHER = "other"


class BackendName(str, Enum):
    DIALOGFLOW = "dialogflow"
    GEMINI = "gemini"
    CANNED = "canned"


@dataclass(frozen=True)
class InboundEvent:
    """One messaging event from a webhook delivery, already validated."""

    sender_id: str
    kind: EventKind
    text: str | None = None


@dataclass(frozen=True)
class ReplyRequest:
    """Input handed to a reply backend. The session is keyed by the sender."""

    text: str
    session_id: str


@dataclass(frozen=True)
class ReplyResult:
    """Reply text chosen for an event. ``text`` is never empty."""

    text: str
    source: BackendName
    succeeded: bool

    def __post_init__(self) -> None:
        if not self.text:
            raise ValueError("ReplyResult.text must not be empty")


@dataclass(frozen=True)
class OutboundMessage:
    recipient_id: str
    text: str

"""Shared Pydantic data models for messenger-relay."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class AuditEventType(str, Enum):
    WEBHOOK_VERIFY = "webhook_verify"
    SIGNATURE_FAILURE = "signature_failure"
    WEBHOOK_RELAY = "webhook_relay"
    BACKEND_FAILURE = "backend_failure"
    SEND_FAILURE = "send_failure"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Messenger webhook payload ---
#
# Only the fields the relay reads are declared; the platform adds new
# fields regularly, so everything else is ignored.


class _PayloadModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class Participant(_PayloadModel):
    # Plugin and checkbox events identify the user by user_ref instead of id.
    id: str | None = None
    user_ref: str | None = None


class IncomingMessage(_PayloadModel):
    mid: str | None = None
    text: str | None = None
    is_echo: bool = False
    attachments: list[dict[str, Any]] | None = None


class Postback(_PayloadModel):
    title: str | None = None
    payload: str | None = None


class MessagingEvent(_PayloadModel):
    sender: Participant | None = None
    recipient: Participant | None = None
    timestamp: int | None = None
    message: IncomingMessage | None = None
    postback: Postback | None = None
    delivery: dict[str, Any] | None = None
    read: dict[str, Any] | None = None


class MessengerEntry(_PayloadModel):
    id: str | None = None
    time: int | None = None
    messaging: list[MessagingEvent] = Field(default_factory=list)


class MessengerPayload(_PayloadModel):
    object: str
    entry: list[MessengerEntry] = Field(default_factory=list)


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    user_id: str | None = None
    action: str
    result: str  # "success" | "failure" | "fallback"
    risk_level: RiskLevel
    details: dict[str, object] | None = None

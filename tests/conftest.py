"""Shared test fixtures for messenger-relay."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from messenger_relay.audit.logger import AuditLogger
from messenger_relay.backends.base import BackendResult
from messenger_relay.models import AuditEvent, AuditEventType, RiskLevel
from messenger_relay.webhook.models import BackendName, EventKind, InboundEvent


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


# --- Factory functions for test data ---


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, object] = {
        "event_type": AuditEventType.WEBHOOK_RELAY,
        "action": "relay",
        "result": "success",
        "risk_level": RiskLevel.INFO,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)  # type: ignore[arg-type]


def make_inbound_event(**kwargs: Any) -> InboundEvent:
    defaults: dict[str, Any] = {
        "sender_id": "U1",
        "kind": EventKind.MESSAGE,
        "text": "hello",
    }
    defaults.update(kwargs)
    return InboundEvent(**defaults)


def make_messaging_event(
    sender_id: str = "U1",
    text: str | None = "hello",
    **extra: Any,
) -> dict[str, Any]:
    """One Messenger ``messaging`` item; pass ``message=None`` to drop it."""
    event: dict[str, Any] = {
        "sender": {"id": sender_id},
        "recipient": {"id": "PAGE_ID"},
        "timestamp": 1700000000000,
    }
    if text is not None:
        event["message"] = {"mid": "m_1", "text": text}
    for key, value in extra.items():
        if value is None:
            event.pop(key, None)
        else:
            event[key] = value
    return event


def make_page_payload(*events: dict[str, Any]) -> dict[str, Any]:
    if not events:
        events = (make_messaging_event(),)
    return {
        "object": "page",
        "entry": [{"id": "PAGE_ID", "time": 1700000000000, "messaging": list(events)}],
    }


def make_backend(
    name: BackendName = BackendName.DIALOGFLOW,
    result: BackendResult | None = None,
    fallback_text: str = "fallback",
    empty_text: str = "empty",
) -> MagicMock:
    """Reply backend double whose ``generate`` returns ``result``."""
    backend = MagicMock()
    backend.name = name
    backend.fallback_text = fallback_text
    backend.empty_text = empty_text
    backend.generate = AsyncMock(
        return_value=result if result is not None else BackendResult.success("reply"),
    )
    return backend

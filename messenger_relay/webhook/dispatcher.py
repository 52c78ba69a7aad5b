"""Event dispatcher: routes each inbound event to a backend and sends the reply.

Pipeline stages per event:
1. Non-text events get the canned reply, no backend involved
2. Router picks the backend from the text
3. Backend call, reported as a BackendResult
4. Fallback mapping to a non-empty ReplyResult
5. Exactly one outbound send
6. Audit log
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from messenger_relay.backends.base import BackendResult, ReplyBackend, resolve_reply
from messenger_relay.models import AuditEvent, AuditEventType, RiskLevel
from messenger_relay.webhook.models import (
    BackendName,
    InboundEvent,
    OutboundMessage,
    ReplyRequest,
    ReplyResult,
)

if TYPE_CHECKING:
    from messenger_relay.audit.logger import AuditLogger
    from messenger_relay.webhook.router import BackendRouter

logger = logging.getLogger(__name__)

TEXT_ONLY_REPLY = "I can only handle text messages for now."


class ReplySender(Protocol):
    async def send_response(self, recipient_id: str, text: str) -> bool: ...


class EventDispatcher:
    """Turns InboundEvents into exactly one outbound reply each."""

    def __init__(
        self,
        router: BackendRouter,
        sender: ReplySender,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._router = router
        self._sender = sender
        self._audit = audit_logger

    async def reply_for(self, event: InboundEvent) -> ReplyResult:
        """Choose the reply text for an event without sending it."""
        if not event.text:
            return ReplyResult(
                text=TEXT_ONLY_REPLY, source=BackendName.CANNED, succeeded=True,
            )

        logger.info("User %s said: %s", event.sender_id, event.text)
        backend = self._router.select(event.text)
        result = await self._call_backend(
            backend, ReplyRequest(text=event.text, session_id=event.sender_id),
        )
        if not result.ok:
            self._log_audit(
                AuditEventType.BACKEND_FAILURE,
                action=f"{backend.name.value}_generate",
                result="fallback",
                risk_level=RiskLevel.MEDIUM,
                user_id=event.sender_id,
                details={"backend": backend.name.value, "error": result.error},
            )
        return resolve_reply(backend, result)

    async def dispatch(self, event: InboundEvent) -> ReplyResult:
        """Run the full pipeline for one event, ending in a single send."""
        reply = await self.reply_for(event)
        message = OutboundMessage(recipient_id=event.sender_id, text=reply.text)
        delivered = await self._sender.send_response(message.recipient_id, message.text)

        if not delivered:
            self._log_audit(
                AuditEventType.SEND_FAILURE,
                action="send_message",
                result="failure",
                risk_level=RiskLevel.LOW,
                user_id=event.sender_id,
                details={"source": reply.source.value},
            )
        self._log_audit(
            AuditEventType.WEBHOOK_RELAY,
            action="relay",
            result="success" if reply.succeeded and delivered else "failure",
            risk_level=RiskLevel.INFO,
            user_id=event.sender_id,
            details={
                "kind": event.kind.value,
                "source": reply.source.value,
                "delivered": delivered,
            },
        )
        return reply

    async def dispatch_all(self, events: list[InboundEvent]) -> list[ReplyResult]:
        """Dispatch independent events concurrently; order is not guaranteed."""
        return list(await asyncio.gather(*(self.dispatch(e) for e in events)))

    @staticmethod
    async def _call_backend(
        backend: ReplyBackend, request: ReplyRequest,
    ) -> BackendResult:
        try:
            return await backend.generate(request)
        except Exception as exc:  # a misbehaving backend still gets the fallback reply
            logger.exception("Backend %s raised unexpectedly", backend.name.value)
            return BackendResult.failure(repr(exc))

    def _log_audit(
        self,
        event_type: AuditEventType,
        *,
        action: str,
        result: str,
        risk_level: RiskLevel,
        user_id: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        if not self._audit:
            return
        try:
            self._audit.log(AuditEvent(
                event_type=event_type,
                user_id=user_id,
                action=action,
                result=result,
                risk_level=risk_level,
                details=details,
            ))
        except OSError:
            logger.exception("Failed to write audit event %s", event_type.value)

"""Facebook Messenger platform relay.

Handles the Meta verification challenge, optional HMAC payload signatures,
parsing of page webhook deliveries into InboundEvents, and reply delivery
through the Graph API Send endpoint.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from messenger_relay.models import MessagingEvent, MessengerPayload
from messenger_relay.webhook.models import EventKind, InboundEvent

logger = logging.getLogger(__name__)

_GRAPH_API_BASE = "https://graph.facebook.com"
_MAX_MESSAGE_LENGTH = 2000  # Send API limit for message.text


class UnrecognizedPayloadError(Exception):
    """Raised when a webhook body is not a page-scoped event envelope."""


class MessengerRelay:
    """Speaks the Messenger platform side of the relay."""

    def __init__(
        self,
        page_access_token: str,
        verify_token: str,
        app_secret: str | None = None,
        graph_api_version: str = "v14.0",
    ) -> None:
        self._page_access_token = page_access_token
        self._verify_token = verify_token
        self._app_secret = app_secret
        self._graph_api_version = graph_api_version

    @property
    def signature_required(self) -> bool:
        return bool(self._app_secret)

    def verify_signature(self, headers: dict[str, str], body: bytes) -> bool:
        """Check the ``X-Hub-Signature-256`` HMAC of the raw body.

        Always passes when no app secret is configured.
        """
        if not self._app_secret:
            return True
        signature = headers.get("x-hub-signature-256", "")
        if not signature.startswith("sha256="):
            return False

        expected = hmac.new(
            self._app_secret.encode(), body, hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(signature[7:], expected)

    def handle_verification(self, params: dict[str, str]) -> str | None:
        """Return the challenge to echo back, or None when verification fails."""
        if params.get("hub.mode") != "subscribe":
            return None
        token = params.get("hub.verify_token", "")
        if not hmac.compare_digest(token.encode(), self._verify_token.encode()):
            return None
        return params.get("hub.challenge", "")

    def parse_events(self, payload: Any) -> list[InboundEvent]:
        """Validate a webhook body and extract every actionable messaging event.

        Raises UnrecognizedPayloadError unless the body is a ``page`` envelope.
        Delivery/read receipts, echoes of the page's own messages and events
        without a sender are skipped.
        """
        if not isinstance(payload, dict) or payload.get("object") != "page":
            raise UnrecognizedPayloadError("Payload is not a page event envelope")
        try:
            envelope = MessengerPayload.model_validate(payload)
        except ValidationError as exc:
            raise UnrecognizedPayloadError(str(exc)) from exc

        events: list[InboundEvent] = []
        for entry in envelope.entry:
            for raw in entry.messaging:
                event = _to_inbound_event(raw)
                if event is None:
                    logger.debug("Skipping non-actionable messaging event: %s", raw)
                    continue
                events.append(event)
        return events

    async def send_response(self, recipient_id: str, text: str) -> bool:
        """Send a text reply via the Send API. Returns True when accepted.

        No retry: failures are logged and reported through the return value.
        Text longer than the Send API limit is truncated.
        """
        if len(text) > _MAX_MESSAGE_LENGTH:
            logger.warning(
                "Truncating %d-character reply to %s", len(text), recipient_id,
            )
            text = text[:_MAX_MESSAGE_LENGTH]
        url = f"{_GRAPH_API_BASE}/{self._graph_api_version}/me/messages"
        payload = {
            "recipient": {"id": recipient_id},
            "messaging_type": "RESPONSE",
            "message": {"text": text},
        }
        params = {"access_token": self._page_access_token}

        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(url, json=payload, params=params, timeout=30.0)
        except httpx.HTTPError as exc:
            logger.error("Unable to send message to %s: %s", recipient_id, exc)
            return False

        if resp.status_code >= 400:
            logger.error(
                "Unable to send message to %s: HTTP %d %s",
                recipient_id, resp.status_code, resp.text,
            )
            return False
        logger.info("Message sent to %s", recipient_id)
        return True


def _to_inbound_event(raw: MessagingEvent) -> InboundEvent | None:
    if raw.sender is None or not raw.sender.id:
        return None
    if raw.delivery is not None or raw.read is not None:
        return None
    sender_id = raw.sender.id
    if raw.message is not None:
        if raw.message.is_echo:
            return None
        return InboundEvent(
            sender_id=sender_id,
            kind=EventKind.MESSAGE,
            text=raw.message.text or None,
        )
    if raw.postback is not None:
        return InboundEvent(sender_id=sender_id, kind=EventKind.POSTBACK)
    return InboundEvent(sender_id=sender_id, kind=EventKind.OTHER)

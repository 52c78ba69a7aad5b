"""Tests for the Messenger platform relay: verification, parsing, sending."""

from __future__ import annotations

import hashlib
import hmac as hmac_mod
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from messenger_relay.webhook.messenger import MessengerRelay, UnrecognizedPayloadError
from messenger_relay.webhook.models import EventKind, InboundEvent
from tests.conftest import make_messaging_event, make_page_payload


def _make_relay(**kwargs: Any) -> MessengerRelay:
    defaults: dict[str, Any] = {
        "page_access_token": "page_token",
        "verify_token": "verify_me",
    }
    defaults.update(kwargs)
    return MessengerRelay(**defaults)


def _sign_body(app_secret: str, body: bytes) -> str:
    sig = hmac_mod.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={sig}"


def _mock_http_client(status_code: int = 200, side_effect: Exception | None = None) -> AsyncMock:
    client = AsyncMock()
    if side_effect is not None:
        client.post.side_effect = side_effect
    else:
        client.post.return_value = MagicMock(status_code=status_code, text="{}")
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


class TestVerificationChallenge:
    def test_valid_subscribe_returns_challenge(self) -> None:
        relay = _make_relay(verify_token="my_verify")
        params = {
            "hub.mode": "subscribe",
            "hub.verify_token": "my_verify",
            "hub.challenge": "challenge_string_123",
        }
        assert relay.handle_verification(params) == "challenge_string_123"

    def test_wrong_token_rejected(self) -> None:
        relay = _make_relay(verify_token="correct")
        params = {"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "c"}
        assert relay.handle_verification(params) is None

    def test_wrong_mode_rejected(self) -> None:
        relay = _make_relay(verify_token="correct")
        params = {"hub.mode": "unsubscribe", "hub.verify_token": "correct", "hub.challenge": "c"}
        assert relay.handle_verification(params) is None

    def test_missing_params_rejected(self) -> None:
        assert _make_relay().handle_verification({}) is None


class TestSignatureVerification:
    def test_no_secret_accepts_everything(self) -> None:
        relay = _make_relay()
        assert relay.signature_required is False
        assert relay.verify_signature({}, b"body") is True

    def test_valid_signature_accepted(self) -> None:
        relay = _make_relay(app_secret="s3cret")
        body = b'{"object": "page"}'
        headers = {"x-hub-signature-256": _sign_body("s3cret", body)}
        assert relay.verify_signature(headers, body) is True

    def test_invalid_signature_rejected(self) -> None:
        relay = _make_relay(app_secret="s3cret")
        headers = {"x-hub-signature-256": "sha256=deadbeef"}
        assert relay.verify_signature(headers, b"body") is False

    def test_missing_prefix_rejected(self) -> None:
        relay = _make_relay(app_secret="s3cret")
        assert relay.verify_signature({"x-hub-signature-256": "abc"}, b"body") is False


class TestParseEvents:
    def test_text_message(self) -> None:
        events = _make_relay().parse_events(
            make_page_payload(make_messaging_event(sender_id="U1", text="hello")),
        )
        assert events == [InboundEvent(sender_id="U1", kind=EventKind.MESSAGE, text="hello")]

    def test_attachment_message_has_no_text(self) -> None:
        raw = make_messaging_event(
            text=None,
            message={"mid": "m_2", "attachments": [{"type": "image", "payload": {}}]},
        )
        events = _make_relay().parse_events(make_page_payload(raw))
        assert events[0].kind == EventKind.MESSAGE
        assert events[0].text is None

    def test_postback(self) -> None:
        raw = make_messaging_event(text=None, postback={"title": "Start", "payload": "GET_STARTED"})
        events = _make_relay().parse_events(make_page_payload(raw))
        assert events == [InboundEvent(sender_id="U1", kind=EventKind.POSTBACK)]

    def test_other_event_kind(self) -> None:
        raw = make_messaging_event(text=None, optin={"ref": "landing"})
        events = _make_relay().parse_events(make_page_payload(raw))
        assert events[0].kind == EventKind.OTHER

    def test_receipts_and_echoes_are_skipped(self) -> None:
        payload = make_page_payload(
            make_messaging_event(text=None, delivery={"mids": ["m_1"], "watermark": 1}),
            make_messaging_event(text=None, read={"watermark": 1}),
            make_messaging_event(text=None, message={"mid": "m_3", "text": "hi", "is_echo": True}),
            make_messaging_event(sender=None),
        )
        assert _make_relay().parse_events(payload) == []

    def test_every_event_of_every_entry_is_extracted(self) -> None:
        payload = {
            "object": "page",
            "entry": [
                {"messaging": [
                    make_messaging_event(sender_id="A", text="one"),
                    make_messaging_event(sender_id="B", text="two"),
                ]},
                {"messaging": [make_messaging_event(sender_id="C", text="three")]},
            ],
        }
        events = _make_relay().parse_events(payload)
        assert [(e.sender_id, e.text) for e in events] == [
            ("A", "one"), ("B", "two"), ("C", "three"),
        ]

    def test_unknown_fields_ignored(self) -> None:
        raw = make_messaging_event(text="hi")
        raw["message"]["nlp"] = {"entities": {}}
        events = _make_relay().parse_events(make_page_payload(raw))
        assert events[0].text == "hi"

    def test_sender_without_id_skipped_rest_of_batch_kept(self) -> None:
        payload = make_page_payload(
            make_messaging_event(sender_id="A", text="hello"),
            {"sender": {"user_ref": "abc"}, "optin": {"ref": "plugin", "user_ref": "abc"}},
        )
        events = _make_relay().parse_events(payload)
        assert [e.sender_id for e in events] == ["A"]

    def test_empty_entry(self) -> None:
        assert _make_relay().parse_events({"object": "page", "entry": []}) == []

    @pytest.mark.parametrize("payload", [
        {"object": "whatsapp_business_account", "entry": []},
        {"entry": []},
        [],
        "page",
        {"object": "page", "entry": "not-a-list"},
    ])
    def test_unrecognized_payload_raises(self, payload: Any) -> None:
        with pytest.raises(UnrecognizedPayloadError):
            _make_relay().parse_events(payload)


class TestSendResponse:
    @pytest.mark.asyncio
    async def test_posts_to_send_api(self) -> None:
        relay = _make_relay(page_access_token="tok", graph_api_version="v14.0")
        client = _mock_http_client()
        with patch("messenger_relay.webhook.messenger.httpx.AsyncClient", return_value=client):
            delivered = await relay.send_response("U1", "Hi!")

        assert delivered is True
        client.post.assert_called_once()
        url = client.post.call_args.args[0]
        kwargs = client.post.call_args.kwargs
        assert url == "https://graph.facebook.com/v14.0/me/messages"
        assert kwargs["params"] == {"access_token": "tok"}
        assert kwargs["json"]["recipient"] == {"id": "U1"}
        assert kwargs["json"]["message"] == {"text": "Hi!"}

    @pytest.mark.asyncio
    async def test_error_status_not_retried(self) -> None:
        client = _mock_http_client(status_code=500)
        with patch("messenger_relay.webhook.messenger.httpx.AsyncClient", return_value=client):
            delivered = await _make_relay().send_response("U1", "Hi!")
        assert delivered is False
        assert client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_long_text_truncated_to_send_api_limit(self) -> None:
        client = _mock_http_client()
        with patch("messenger_relay.webhook.messenger.httpx.AsyncClient", return_value=client):
            delivered = await _make_relay().send_response("U1", "x" * 2500)
        assert delivered is True
        sent = client.post.call_args.kwargs["json"]["message"]["text"]
        assert sent == "x" * 2000

    @pytest.mark.asyncio
    async def test_transport_error_swallowed(self) -> None:
        client = _mock_http_client(side_effect=httpx.ConnectError("refused"))
        with patch("messenger_relay.webhook.messenger.httpx.AsyncClient", return_value=client):
            delivered = await _make_relay().send_response("U1", "Hi!")
        assert delivered is False

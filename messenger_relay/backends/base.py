"""Reply backend contract and the explicit failure-to-fallback mapping."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from messenger_relay.webhook.models import BackendName, ReplyRequest, ReplyResult

NOT_UNDERSTOOD_TEXT = "I'm not sure I understand."


@dataclass(frozen=True)
class BackendResult:
    """Outcome of a single backend call: either reply text or an error."""

    ok: bool
    text: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, text: str | None) -> BackendResult:
        return cls(ok=True, text=text)

    @classmethod
    def failure(cls, error: str) -> BackendResult:
        return cls(ok=False, error=error)


class ReplyBackend(Protocol):
    """A text generator behind a uniform ``(text, session_id) -> text`` call.

    Implementations report expected failures (network, auth, quota) as
    ``BackendResult.failure`` instead of raising.
    """

    name: BackendName
    fallback_text: str
    empty_text: str

    async def generate(self, request: ReplyRequest) -> BackendResult: ...


def resolve_reply(backend: ReplyBackend, result: BackendResult) -> ReplyResult:
    """Map a backend outcome to the text that will be sent to the user."""
    if not result.ok:
        return ReplyResult(
            text=backend.fallback_text, source=backend.name, succeeded=False,
        )
    if not result.text:
        return ReplyResult(text=backend.empty_text, source=backend.name, succeeded=True)
    return ReplyResult(text=result.text, source=backend.name, succeeded=True)

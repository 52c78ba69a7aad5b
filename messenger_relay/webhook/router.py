"""Keyword router choosing the reply backend for a piece of user text."""

from __future__ import annotations

from messenger_relay.backends.base import ReplyBackend


class BackendRouter:
    """Selects the alternate backend when the text mentions ``keyword``.

    The decision depends on the text alone: no session memory, no sticky
    routing between turns.
    """

    def __init__(
        self,
        default: ReplyBackend,
        alternate: ReplyBackend,
        keyword: str = "gemini",
    ) -> None:
        if not keyword:
            raise ValueError("Router keyword must not be empty")
        self._default = default
        self._alternate = alternate
        self._keyword = keyword.casefold()

    def select(self, text: str) -> ReplyBackend:
        if self._keyword in text.casefold():
            return self._alternate
        return self._default

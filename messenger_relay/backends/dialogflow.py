"""Dialogflow ES reply backend (detect-intent on a per-sender session)."""

from __future__ import annotations

import logging
from typing import Any

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import dialogflow

from messenger_relay.backends.base import NOT_UNDERSTOOD_TEXT, BackendResult
from messenger_relay.webhook.models import BackendName, ReplyRequest

logger = logging.getLogger(__name__)

DIALOGFLOW_FALLBACK_TEXT = "Sorry, there was an error on the AI side."


class DialogflowBackend:
    """Sends user text to a Dialogflow ES agent and returns its fulfillment text."""

    name = BackendName.DIALOGFLOW
    fallback_text = DIALOGFLOW_FALLBACK_TEXT
    empty_text = NOT_UNDERSTOOD_TEXT

    def __init__(
        self,
        project_id: str,
        language_code: str = "en",
        session_client: Any | None = None,
    ) -> None:
        self._project_id = project_id
        self._language_code = language_code
        self._client = session_client

    def _get_client(self) -> Any:
        # The gRPC channel must be created inside the running event loop.
        if self._client is None:
            self._client = dialogflow.SessionsAsyncClient()
        return self._client

    def build_request(self, request: ReplyRequest) -> dict[str, Any]:
        client = self._get_client()
        return {
            "session": client.session_path(self._project_id, request.session_id),
            "query_input": {
                "text": {
                    "text": request.text,
                    "language_code": self._language_code,
                },
            },
        }

    async def generate(self, request: ReplyRequest) -> BackendResult:
        try:
            detect_request = self.build_request(request)
            response = await self._get_client().detect_intent(request=detect_request)
        except (GoogleAPIError, GoogleAuthError) as exc:
            logger.exception(
                "Dialogflow detect_intent failed for session %s", request.session_id,
            )
            return BackendResult.failure(str(exc))

        query_result = response.query_result
        logger.debug(
            "Dialogflow matched intent %r for session %s",
            query_result.intent.display_name, request.session_id,
        )
        return BackendResult.success(query_result.fulfillment_text)

"""FastAPI application exposing the Messenger webhook."""

from __future__ import annotations

import json
import logging

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from messenger_relay.audit.logger import AuditLogger
from messenger_relay.backends.dialogflow import DialogflowBackend
from messenger_relay.backends.gemini import GeminiBackend
from messenger_relay.config import RelayConfig
from messenger_relay.models import AuditEvent, AuditEventType, RiskLevel
from messenger_relay.webhook.dispatcher import EventDispatcher
from messenger_relay.webhook.messenger import MessengerRelay, UnrecognizedPayloadError
from messenger_relay.webhook.router import BackendRouter

logger = logging.getLogger(__name__)

_MAX_WEBHOOK_BODY_SIZE = 1024 * 1024  # 1MB
EVENT_RECEIVED = "EVENT_RECEIVED"


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    return create_app_from_config(RelayConfig.from_env())


def create_app_from_config(config: RelayConfig) -> FastAPI:
    """Wire the backends, router, dispatcher and platform relay from config."""
    audit_logger = (
        AuditLogger.from_env(config.audit_log_path) if config.audit_log_path else None
    )
    relay = MessengerRelay(
        page_access_token=config.page_access_token,
        verify_token=config.verify_token,
        app_secret=config.app_secret,
        graph_api_version=config.graph_api_version,
    )
    router = BackendRouter(
        default=DialogflowBackend(
            project_id=config.dialogflow_project_id,
            language_code=config.dialogflow_language_code,
        ),
        alternate=GeminiBackend(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
        ),
        keyword=config.router_keyword,
    )
    dispatcher = EventDispatcher(router=router, sender=relay, audit_logger=audit_logger)
    return create_app(relay, dispatcher, audit_logger)


def create_app(
    relay: MessengerRelay,
    dispatcher: EventDispatcher,
    audit_logger: AuditLogger | None = None,
    webhook_path: str = "/webhook",
) -> FastAPI:
    """Create the webhook app around explicitly constructed services."""
    app = FastAPI(docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(webhook_path)
    async def verify_webhook(request: Request) -> Response:
        challenge = relay.handle_verification(dict(request.query_params))
        _audit(
            audit_logger, request,
            AuditEventType.WEBHOOK_VERIFY,
            action="verify",
            result="success" if challenge is not None else "failure",
            risk_level=RiskLevel.INFO if challenge is not None else RiskLevel.MEDIUM,
        )
        if challenge is None:
            return Response(status_code=403)
        logger.info("WEBHOOK_VERIFIED")
        return PlainTextResponse(challenge)

    @app.post(webhook_path)
    async def receive_webhook(
        request: Request, background_tasks: BackgroundTasks,
    ) -> Response:
        body = await request.body()
        if len(body) > _MAX_WEBHOOK_BODY_SIZE:
            return JSONResponse({"error": "Request body too large"}, status_code=413)

        if not relay.verify_signature(dict(request.headers), body):
            _audit(
                audit_logger, request,
                AuditEventType.SIGNATURE_FAILURE,
                action="receive",
                result="failure",
                risk_level=RiskLevel.HIGH,
            )
            return JSONResponse({"error": "Invalid webhook signature"}, status_code=401)

        try:
            events = relay.parse_events(json.loads(body))
        except (json.JSONDecodeError, UnicodeDecodeError, UnrecognizedPayloadError) as exc:
            logger.warning("Rejected webhook delivery: %s", exc)
            return Response(status_code=404)

        logger.info("Incoming webhook delivery with %d event(s)", len(events))
        if events:
            background_tasks.add_task(dispatcher.dispatch_all, events)
        return PlainTextResponse(EVENT_RECEIVED)

    return app


def _audit(
    audit_logger: AuditLogger | None,
    request: Request,
    event_type: AuditEventType,
    *,
    action: str,
    result: str,
    risk_level: RiskLevel,
) -> None:
    if not audit_logger:
        return
    try:
        audit_logger.log(AuditEvent(
            event_type=event_type,
            source_ip=request.client.host if request.client else None,
            action=f"{request.method} {request.url.path} {action}",
            result=result,
            risk_level=risk_level,
        ))
    except OSError:
        logger.exception("Failed to write audit event %s", event_type.value)

"""Process-wide configuration read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

_REQUIRED = ("PAGE_ACCESS_TOKEN", "VERIFY_TOKEN", "DIALOGFLOW_PROJECT_ID")


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required environment variables: {', '.join(missing)}")


class RelayConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    port: int = Field(default=3000, ge=1, le=65535)
    page_access_token: str = Field(min_length=1)
    verify_token: str = Field(min_length=1)
    dialogflow_project_id: str = Field(min_length=1)
    dialogflow_language_code: str = "en"
    app_secret: str | None = None
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    router_keyword: str = Field(default="gemini", min_length=1)
    graph_api_version: str = "v14.0"
    audit_log_path: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RelayConfig:
        """Build the config from ``environ`` (defaults to ``os.environ``).

        Fails fast with ConfigError listing every missing credential.
        """
        env = os.environ if environ is None else environ
        missing = [name for name in _REQUIRED if not env.get(name)]
        if missing:
            raise ConfigError(missing)

        optional = {
            "port": env.get("PORT"),
            "dialogflow_language_code": env.get("DIALOGFLOW_LANGUAGE_CODE"),
            "gemini_model": env.get("GEMINI_MODEL"),
            "router_keyword": env.get("ROUTER_KEYWORD"),
            "graph_api_version": env.get("GRAPH_API_VERSION"),
        }
        return cls(
            page_access_token=env["PAGE_ACCESS_TOKEN"],
            verify_token=env["VERIFY_TOKEN"],
            dialogflow_project_id=env["DIALOGFLOW_PROJECT_ID"],
            app_secret=env.get("APP_SECRET") or None,
            gemini_api_key=env.get("GEMINI_API_KEY") or None,
            audit_log_path=env.get("AUDIT_LOG_PATH") or None,
            **{k: v for k, v in optional.items() if v},
        )

    def public_summary(self) -> dict[str, object]:
        """Settings safe to print: secrets reduced to whether they are set."""
        return {
            "port": self.port,
            "dialogflow_project_id": self.dialogflow_project_id,
            "dialogflow_language_code": self.dialogflow_language_code,
            "gemini_model": self.gemini_model,
            "gemini_mode": "live" if self.gemini_api_key else "mock",
            "router_keyword": self.router_keyword,
            "graph_api_version": self.graph_api_version,
            "signature_check": bool(self.app_secret),
            "audit_log_path": self.audit_log_path,
        }

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ._validators import _ensure_api_key, _parse_bounded_float, _parse_bounded_int

DEFAULT_VINNOVA_API_URL = "https://data.vinnova.se/api"


class VinnovaConfig(BaseModel):
    """Vinnova open-data API configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_base_url: str = Field(
        default=DEFAULT_VINNOVA_API_URL, validation_alias="VINNOVA_API_BASE_URL"
    )
    subscription_key: str = Field(
        default="",
        validation_alias=AliasChoices("VINNOVA_API_KEY", "VINNOVA_SUBSCRIPTION_KEY"),
    )
    use_oauth2: bool = Field(default=False, validation_alias="USE_OAUTH2")
    tenant_id: str = Field(default="", validation_alias="VINNOVA_TENANT_ID")
    client_id: str = Field(default="", validation_alias="VINNOVA_CLIENT_ID")
    client_secret: str = Field(default="", validation_alias="VINNOVA_CLIENT_SECRET")
    scope: str = Field(default="", validation_alias="VINNOVA_SCOPE")
    timeout_sec: float = Field(default=15.0, validation_alias="VINNOVA_TIMEOUT_SEC")
    max_attempts: int = Field(default=4, validation_alias="VINNOVA_MAX_ATTEMPTS")
    retry_base_delay_sec: float = Field(
        default=2.0, validation_alias="VINNOVA_RETRY_BASE_DELAY_SEC"
    )
    cache_ttl_sec: float = Field(default=120.0, validation_alias="VINNOVA_CACHE_TTL_SEC")
    page_size: int = Field(default=100, validation_alias="VINNOVA_PAGE_SIZE")
    max_pages: int = Field(default=100, validation_alias="VINNOVA_MAX_PAGES")
    since_param: str = Field(default="updated_after", validation_alias="VINNOVA_SINCE_PARAM")

    @field_validator("api_base_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or DEFAULT_VINNOVA_API_URL).strip()
        if not url:
            return DEFAULT_VINNOVA_API_URL
        if not url.startswith(("http://", "https://")):
            msg = "Vinnova API URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("subscription_key", mode="before")
    @classmethod
    def _validate_subscription_key(cls, value: Any) -> str:
        if value in (None, ""):
            return ""
        return _ensure_api_key(str(value), name="Vinnova")

    @field_validator("tenant_id", "client_id", "client_secret", "scope", mode="before")
    @classmethod
    def _strip_credential(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        return _parse_bounded_float(
            value, default=15.0, label="Vinnova timeout", low=1.0, high=300.0
        )

    @field_validator("max_attempts", mode="before")
    @classmethod
    def _validate_max_attempts(cls, value: Any) -> int:
        return _parse_bounded_int(
            value, default=4, label="Vinnova max attempts", low=1, high=10
        )

    @field_validator("retry_base_delay_sec", mode="before")
    @classmethod
    def _validate_retry_delay(cls, value: Any) -> float:
        return _parse_bounded_float(
            value, default=2.0, label="Vinnova retry base delay", low=0.0, high=60.0
        )

    @field_validator("cache_ttl_sec", mode="before")
    @classmethod
    def _validate_cache_ttl(cls, value: Any) -> float:
        return _parse_bounded_float(
            value, default=120.0, label="Vinnova cache TTL", low=0.0, high=86400.0
        )

    @field_validator("page_size", mode="before")
    @classmethod
    def _validate_page_size(cls, value: Any) -> int:
        return _parse_bounded_int(value, default=100, label="Vinnova page size", low=1, high=1000)

    @field_validator("max_pages", mode="before")
    @classmethod
    def _validate_max_pages(cls, value: Any) -> int:
        return _parse_bounded_int(value, default=100, label="Vinnova max pages", low=1, high=10000)

    @model_validator(mode="after")
    def _validate_oauth(self) -> VinnovaConfig:
        if self.use_oauth2:
            missing = [
                name
                for name in ("tenant_id", "client_id", "client_secret", "scope")
                if not getattr(self, name)
            ]
            if missing:
                msg = f"USE_OAUTH2 requires Vinnova credentials: {', '.join(missing)}"
                raise ValueError(msg)
        return self

    @property
    def token_url(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"


class AlertConfig(BaseModel):
    """Slack webhook used for sync failure alerts."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    slack_webhook_url: str = Field(default="", validation_alias="SLACK_WEBHOOK_URL")
    timeout_sec: float = Field(default=10.0, validation_alias="ALERT_TIMEOUT_SEC")

    @field_validator("slack_webhook_url", mode="before")
    @classmethod
    def _validate_webhook(cls, value: Any) -> str:
        if value in (None, ""):
            return ""
        url = str(value).strip()
        if url and not url.startswith("https://"):
            msg = "Slack webhook URL must use https://"
            raise ValueError(msg)
        return url

    @field_validator("timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        return _parse_bounded_float(value, default=10.0, label="Alert timeout", low=1.0, high=120.0)

from __future__ import annotations

from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

TriggerType = Literal[
    "totalNodesDrop",
    "healthyPercentBelow",
    "criticalPercentAbove",
    "avgUsagePercentAbove",
]

WEBHOOK_ID_PATTERN: str = r"^[a-zA-Z0-9._:-]+$"
TENANT_ID_PATTERN: str = r"^[a-zA-Z0-9._:-]{3,64}$"


class AlertTrigger(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: TriggerType
    percent: float = Field(ge=0, le=100, strict=True)
    cooldown_minutes: int | None = Field(
        default=None,
        strict=True,
        ge=1,
        le=2880,
        validation_alias=AliasChoices("cooldown_minutes", "cooldownMinutes"),
    )


class AlertWebhookConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    id: str = Field(min_length=2, max_length=64, pattern=WEBHOOK_ID_PATTERN)
    label: str | None = Field(default=None, min_length=2, max_length=80)
    url: str
    secret: str | None = Field(default=None, min_length=3, max_length=256)
    is_enabled: bool = Field(
        default=True,
        strict=True,
        validation_alias=AliasChoices("is_enabled", "isEnabled"),
    )
    triggers: list[AlertTrigger] = Field(min_length=1, max_length=8)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("Provide a valid https:// URL")
        return value


def parse_webhook_config(entry: Any) -> AlertWebhookConfig | None:
    try:
        return AlertWebhookConfig.model_validate(entry)
    except ValidationError:
        return None


def sanitize_config_list(value: Any) -> list[AlertWebhookConfig]:
    if not isinstance(value, list):
        return []
    configs: list[AlertWebhookConfig] = []
    for entry in value:
        if isinstance(entry, AlertWebhookConfig):
            configs.append(entry)
            continue
        config = parse_webhook_config(entry)
        if config is not None:
            configs.append(config)
    return configs

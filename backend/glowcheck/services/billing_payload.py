"""
计费平台 Webhook 负载解析

把 RevenueCat 原生事件结构翻译成 BillingEvent。

文档: https://www.revenuecat.com/docs/integrations/webhooks

请求体示例：
    {
        "api_version": "1.0",
        "event": {
            "id": "evt_1",
            "type": "INITIAL_PURCHASE",
            "app_user_id": "u_1",
            "product_id": "glow_monthly",
            "entitlement_ids": ["premium"],
            "event_timestamp_ms": 1700000000000,
            "expiration_at_ms": 1702592000000,
            "period_type": "NORMAL",
            "store": "APP_STORE",
            "environment": "PRODUCTION"
        }
    }
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from glowcheck.enums import BillingEnvironment, BillingEventType, BillingStore
from glowcheck.models import BillingEvent

# 这些类型出现时默认不再自动续费
NON_RENEWING_TYPES = {BillingEventType.CANCELLATION, BillingEventType.EXPIRATION}


class InvalidPayloadError(ValueError):
    """负载无法解析为计费事件"""


def _parse_ms(ms: Any) -> datetime | None:
    if ms is None:
        return None
    if isinstance(ms, bool):
        raise ValueError("timestamp must be a number")
    ms_int = int(ms)
    return datetime.fromtimestamp(ms_int / 1000, tz=timezone.utc)


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    # RevenueCat 使用 ISO 8601 格式
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WebhookEventBody(BaseModel):
    """RevenueCat event 字段（只声明用到的字段，其余忽略）"""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, max_length=128)
    type: str = Field(min_length=1, max_length=64)
    app_user_id: str = Field(min_length=1, max_length=128)
    product_id: str = Field(default="", max_length=128)
    entitlement_id: str | None = None
    entitlement_ids: list[str] | None = None
    event_timestamp_ms: int
    expiration_at_ms: int | None = None
    expiration_date: str | None = None
    period_type: str | None = None
    is_trial_period: bool | None = None
    is_trial_conversion: bool = False
    auto_renewing: bool | None = None
    store: BillingStore
    environment: BillingEnvironment

    @field_validator("app_user_id", "id", "type")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("store", "environment", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    api_version: str | None = None
    event: WebhookEventBody


def _translate_type(body: WebhookEventBody, is_trial: bool) -> str:
    """
    平台类型 -> 事件类型

    - 试用期内的 INITIAL_PURCHASE 是计费平台发起的试用
    - 带 is_trial_conversion 的 RENEWAL 是试用转付费
    - 其他无法识别的类型原样保留，对账时作为空操作
    """
    kind = BillingEventType.parse(body.type)
    if kind == BillingEventType.INITIAL_PURCHASE and is_trial:
        return BillingEventType.TRIAL_STARTED.value
    if kind == BillingEventType.RENEWAL and body.is_trial_conversion:
        return BillingEventType.TRIAL_CONVERTED.value
    if kind == BillingEventType.UNKNOWN:
        return body.type.upper()
    return kind.value


def parse_webhook_payload(payload: dict[str, Any]) -> BillingEvent:
    """
    解析 Webhook 负载

    Raises:
        InvalidPayloadError: 缺少必需字段、类型不合法或时间无法解析
    """
    try:
        body = WebhookPayload.model_validate(payload).event
        expires_at = _parse_ms(body.expiration_at_ms) or _parse_iso(body.expiration_date)
        occurred_at = _parse_ms(body.event_timestamp_ms)
    except (ValidationError, ValueError, TypeError, OverflowError, OSError) as e:
        raise InvalidPayloadError(str(e)) from e

    if body.is_trial_period is not None:
        is_trial = body.is_trial_period
    else:
        is_trial = (body.period_type or "").upper() == "TRIAL"

    event_type = _translate_type(body, is_trial)
    if BillingEventType.parse(event_type) == BillingEventType.TRIAL_CONVERTED and body.is_trial_period is None:
        # 转付费意味着此前处于试用期
        is_trial = True

    if body.auto_renewing is not None:
        auto_renewing = body.auto_renewing
    else:
        auto_renewing = BillingEventType.parse(event_type) not in NON_RENEWING_TYPES

    entitlement_id = body.entitlement_id
    if entitlement_id is None and body.entitlement_ids:
        entitlement_id = body.entitlement_ids[0]

    try:
        return BillingEvent(
            event_id=body.id,
            user_id=body.app_user_id,
            event_type=event_type,
            product_id=body.product_id,
            entitlement_id=entitlement_id,
            occurred_at=occurred_at,
            expires_at=expires_at,
            is_trial_period=is_trial,
            auto_renewing=auto_renewing,
            store=body.store,
            environment=body.environment,
        )
    except ValidationError as e:
        raise InvalidPayloadError(str(e)) from e

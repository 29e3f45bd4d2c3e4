"""
计费 Webhook 路由模块

接收计费平台推送的生命周期事件：
1. 校验 X-Signature（缺失或不匹配返回 401，不修改任何状态）
2. 解析为 BillingEvent（不合法返回 400，不会写入事件存储）
3. 追加到事件存储；重复事件同样返回 200，但不会再次触发对账
4. 新事件在响应之后后台对账
5. 存储暂时不可用返回 500，让发送方稍后重试
"""
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Header

from glowcheck import crud
from glowcheck.api.deps import EntitlementsDep, RawBodyDep, SessionDep
from glowcheck.api.errors import invalid_event, invalid_signature, malformed_payload, storage_failure
from glowcheck.api.schemas import ApiEnvelope, WebhookAckData
from glowcheck.core.kv_store import TransientStorageError
from glowcheck.core.security import verify_webhook_signature
from glowcheck.enums import AppendResult, BillingEventType
from glowcheck.services.billing_payload import InvalidPayloadError, parse_webhook_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/billing", response_model=ApiEnvelope)
def billing_webhook(
    session: SessionDep,
    service: EntitlementsDep,
    background_tasks: BackgroundTasks,
    body: RawBodyDep,
    x_signature: str | None = Header(default=None),
) -> ApiEnvelope:
    """
    计费平台 Webhook

    请求路径: POST /webhooks/billing
    请求头: X-Signature: <hex(HMAC-SHA256(secret, body))>
    """
    if not verify_webhook_signature(body, x_signature):
        logger.warning("Rejected billing webhook: missing or invalid signature")
        raise invalid_signature()

    try:
        payload = json.loads(body)
    except ValueError:
        raise malformed_payload()
    if not isinstance(payload, dict):
        raise malformed_payload()

    try:
        event = parse_webhook_payload(payload)
    except InvalidPayloadError as e:
        logger.warning(f"Rejected billing webhook: {e}")
        raise invalid_event()

    try:
        result = crud.append_billing_event(session=session, event=event, payload=payload)
    except TransientStorageError:
        raise storage_failure()

    if result == AppendResult.DUPLICATE:
        logger.info(f"Duplicate billing event {event.event_id}, acknowledged")
    else:
        if event.kind == BillingEventType.UNKNOWN:
            logger.info(f"Stored billing event {event.event_id} with unhandled type {event.event_type}")
        background_tasks.add_task(service.reconcile_in_background, event.user_id)

    return ApiEnvelope(
        data=WebhookAckData(duplicate=result == AppendResult.DUPLICATE, result=result)
    )

"""
安全工具模块

- JWT 访问令牌（设备端调用权益接口时使用）
- 计费平台 Webhook 签名校验（X-Signature: HMAC-SHA256 十六进制摘要）
"""
import hashlib
import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from glowcheck.core.config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def create_access_token(subject: str | Any, expires_delta: timedelta) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject)}
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def sign_webhook_payload(payload: bytes, secret: str) -> str:
    """计算请求体的 HMAC-SHA256 签名（十六进制）"""
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: bytes, signature: str | None) -> bool:
    """
    验证 Webhook 签名

    未配置密钥时拒绝所有请求：任何状态变更之前必须先通过签名校验。

    Args:
        payload: 请求体原始字节
        signature: X-Signature 头部值

    Returns:
        是否验证通过
    """
    secret = settings.BILLING_WEBHOOK_SECRET
    if not secret:
        logger.error("BILLING_WEBHOOK_SECRET not configured, rejecting webhook")
        return False
    if not signature:
        return False

    expected_signature = sign_webhook_payload(payload, secret)
    return hmac.compare_digest(signature.strip().lower(), expected_signature)

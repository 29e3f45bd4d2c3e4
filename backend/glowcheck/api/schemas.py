"""
API 请求/响应数据模型（Schema）

定义所有 API 接口的请求和响应数据结构。
使用 Pydantic 进行数据验证和序列化。
这些模型不是数据库表，只用于 API 数据交换。
"""
from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, StringConstraints

from glowcheck.enums import AppendResult
from glowcheck.models import EntitlementSnapshot, GatingDecision

# ============================================================
# 通用响应模型
# ============================================================


class TokenPayload(BaseModel):
    """
    JWT Token 载荷模型

    sub (subject) 存储 app_user_id，与计费平台事件中的 app_user_id 一致。
    """
    sub: str | None = None


class ApiEnvelope(BaseModel):
    """
    API 统一响应格式

    - code: 状态码（0 表示成功，非 0 表示错误）
    - message: 消息（成功时为 "success"，错误时为错误描述）
    - data: 数据（成功时返回业务数据，错误时为 None）

    示例响应：
        {"code": 0, "message": "success", "data": {...}}
        {"code": 401001, "message": "Invalid webhook signature", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


# ============================================================
# 认证
# ============================================================


class AuthLoginRequest(BaseModel):
    """
    登录请求模型

    设备登录模式：app_user_id 由客户端生成并同时上报给计费平台。
    """
    app_user_id: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=128)]


class AuthLoginData(BaseModel):
    access_token: str  # JWT 访问令牌
    expires_in: int  # token 过期时间（秒）
    app_user_id: str


# ============================================================
# 权益
# ============================================================


class EntitlementStatusData(BaseModel):
    """
    权益状态响应模型

    客户端每次渲染门控页面前都应重新获取，不要跨会话缓存 can_view。
    """
    snapshot: EntitlementSnapshot
    decision: GatingDecision


class TrialStartData(EntitlementStatusData):
    started: bool  # 本次调用是否开始了试用


class WebhookAckData(BaseModel):
    """Webhook 确认：重复投递同样返回成功"""
    received: bool = True
    duplicate: bool = False
    result: AppendResult

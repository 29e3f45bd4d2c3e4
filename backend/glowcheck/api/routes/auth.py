"""
认证路由模块

设备登录模式：客户端用 app_user_id 换取 JWT，
之后调用权益接口时携带 Bearer token。
"""
from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter

from glowcheck.api.schemas import ApiEnvelope, AuthLoginData, AuthLoginRequest
from glowcheck.core import security
from glowcheck.core.config import settings

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=ApiEnvelope)
def login(body: AuthLoginRequest) -> ApiEnvelope:
    """
    设备登录

    请求路径: POST /api/v1/auth/login

    响应示例：
        {
            "code": 0,
            "message": "success",
            "data": {
                "access_token": "eyJ0eXAiOiJKV1QiLCJhbGc...",
                "expires_in": 604800,
                "app_user_id": "u_123"
            }
        }
    """
    app_user_id = body.app_user_id
    access_token_expires = timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
    token = security.create_access_token(app_user_id, expires_delta=access_token_expires)
    data = AuthLoginData(
        access_token=token,
        expires_in=int(access_token_expires.total_seconds()),
        app_user_id=app_user_id,
    )
    return ApiEnvelope(data=data)

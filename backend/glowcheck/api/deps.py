"""
FastAPI 依赖注入模块

提供可复用的依赖项，用于路由处理函数中。

- get_db: 数据库会话（请求结束后自动关闭）
- get_current_user_id: 从 Bearer JWT 中解析 app_user_id
- get_entitlement_service: 全局权益服务
- get_raw_body: 原始请求体（用于 webhook 签名校验）
"""
from collections.abc import Generator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session

from glowcheck.api.schemas import TokenPayload
from glowcheck.core import security
from glowcheck.core.config import settings
from glowcheck.core.db import engine
from glowcheck.services.entitlements import EntitlementService, get_entitlement_service

# 从请求头的 Authorization: Bearer <token> 中提取 token
reusable_oauth2 = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    """
    获取数据库会话（依赖注入）

    使用 yield 确保会话在请求结束后自动关闭。
    """
    with Session(engine) as session:
        yield session


async def get_raw_body(request: Request) -> bytes:
    """读取原始请求体，签名按原始字节计算"""
    return await request.body()


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials, Depends(reusable_oauth2)]
EntitlementsDep = Annotated[EntitlementService, Depends(get_entitlement_service)]
RawBodyDep = Annotated[bytes, Depends(get_raw_body)]


def get_current_user_id(token: TokenDep) -> str:
    """
    获取当前用户的 app_user_id（依赖注入）

    Raises:
        HTTPException: token 无效或缺少 sub 时返回 401
    """
    try:
        payload = jwt.decode(
            token.credentials, settings.SECRET_KEY, algorithms=[security.ALGORITHM]
        )
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    if not token_data.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return token_data.sub


CurrentUserId = Annotated[str, Depends(get_current_user_id)]

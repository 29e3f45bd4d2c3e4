"""
API 路由聚合模块

将设备端业务路由聚合到一个统一的 router 中，注册到主应用时加上 /api/v1 前缀。
计费 webhook 路由单独注册在根路径下（POST /webhooks/billing）。

路由模块说明：
- auth: 设备登录
- entitlements: 权益状态、试用、扫描、对账、重置
- utils: 健康检查
"""
from fastapi import APIRouter

from glowcheck.api.routes import (
    auth,  # 认证路由
    entitlements,  # 权益路由
    utils,  # 工具路由
    webhooks,  # 计费 webhook
)

# 创建主 API 路由器
api_router = APIRouter()

api_router.include_router(auth.router)  # /auth/*
api_router.include_router(entitlements.router)  # /entitlements/*
api_router.include_router(utils.router)  # /utils/*

# 平台侧调用，不带版本前缀
webhook_router = webhooks.router

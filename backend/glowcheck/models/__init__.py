"""
数据模型定义模块

模型按功能拆分：
- billing_event.py: 计费事件存储表（SQLModel）
- entitlement.py: 权益领域模型（事件、本地试用状态、快照、门控判定）
"""
from sqlmodel import SQLModel

from .base import ensure_utc, utc_now
from .billing_event import BillingEventRecord
from .entitlement import (
    BillingEvent,
    EntitlementSnapshot,
    GatingDecision,
    LocalTrialState,
)

__all__ = [
    "SQLModel",
    "utc_now",
    "ensure_utc",
    "BillingEventRecord",
    "BillingEvent",
    "LocalTrialState",
    "EntitlementSnapshot",
    "GatingDecision",
]

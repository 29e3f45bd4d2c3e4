"""
枚举类型定义模块

定义权益管理中使用的所有枚举类型。
所有枚举都继承自 str 和 Enum，这样既可以用作字符串，又具有枚举的特性。
"""
from __future__ import annotations

from enum import Enum


class BillingEventType(str, Enum):
    """
    计费生命周期事件类型

    UNKNOWN 是兜底值：平台新增的事件类型会被原样存储，
    在对账时按空操作处理，不会中断折叠。
    """
    INITIAL_PURCHASE = "INITIAL_PURCHASE"
    RENEWAL = "RENEWAL"
    CANCELLATION = "CANCELLATION"
    EXPIRATION = "EXPIRATION"
    TRIAL_STARTED = "TRIAL_STARTED"
    TRIAL_CONVERTED = "TRIAL_CONVERTED"
    BILLING_ISSUE = "BILLING_ISSUE"
    UNCANCELLATION = "UNCANCELLATION"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str | None) -> BillingEventType:
        """将原始类型字符串转换为枚举，无法识别时返回 UNKNOWN"""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.UNKNOWN


class BillingStore(str, Enum):
    """应用商店"""
    APP_STORE = "APP_STORE"
    PLAY_STORE = "PLAY_STORE"


class BillingEnvironment(str, Enum):
    """计费环境"""
    SANDBOX = "SANDBOX"
    PRODUCTION = "PRODUCTION"


class TrialPhase(str, Enum):
    """
    试用阶段

    - NONE: 未开始（或已是付费用户且不是由试用转化）
    - ACTIVE: 试用中
    - EXPIRED: 试用已结束（到期或扫描次数用完）
    - CONVERTED: 试用已转为付费
    """
    NONE = "NONE"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"


class EntitlementSource(str, Enum):
    """当前决定权益的输入来源"""
    LOCAL_TRIAL = "LOCAL_TRIAL"
    BILLING_EVENT = "BILLING_EVENT"


class GatingStatus(str, Enum):
    """
    门控判定分类

    展示文案由分类决定，分类本身是稳定的、可测试的契约。
    """
    PREMIUM = "PREMIUM"
    TRIAL_ACTIVE = "TRIAL_ACTIVE"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    SCAN_LIMIT_REACHED = "SCAN_LIMIT_REACHED"
    NOT_STARTED = "NOT_STARTED"


class AppendResult(str, Enum):
    """事件写入结果：新插入或重复"""
    INSERTED = "inserted"
    DUPLICATE = "duplicate"

"""
权益领域模型模块

这些模型不是数据库表：
- BillingEvent: 一条已解析的计费生命周期事件（不可变）
- LocalTrialState: 设备本地试用状态（键值存储中的 JSON 记录）
- EntitlementSnapshot: 对账结果快照（键值存储中的 JSON 记录，整体替换）
- GatingDecision: 门控判定结果
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from glowcheck.enums import (
    BillingEnvironment,
    BillingEventType,
    BillingStore,
    EntitlementSource,
    GatingStatus,
    TrialPhase,
)

from .base import ensure_utc, utc_now


class BillingEvent(BaseModel):
    """
    计费生命周期事件

    event_type 保存字符串形式的类型，未知类型也保留原值以便审计；
    kind 是对账时使用的封闭枚举（无法识别时为 UNKNOWN）。
    """
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(min_length=1, max_length=128)
    user_id: str = Field(min_length=1, max_length=128)
    event_type: str = Field(min_length=1, max_length=64)
    product_id: str = Field(default="", max_length=128)
    entitlement_id: str | None = None
    occurred_at: datetime
    expires_at: datetime | None = None
    is_trial_period: bool = False
    auto_renewing: bool = False
    store: BillingStore
    environment: BillingEnvironment

    @field_validator("occurred_at", "expires_at")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def kind(self) -> BillingEventType:
        return BillingEventType.parse(self.event_type)

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """按事件时间排序，时间相同时按 event_id 字典序"""
        return (self.occurred_at, self.event_id)


class LocalTrialState(BaseModel):
    """
    本地试用状态（每个用户至多一条）

    - started_at: 试用开始时间，只设置一次
    - scan_count: 已完成的门控扫描次数，只增不减（账户重置除外）
    """
    started_at: datetime | None = None
    trial_length_days: int = Field(ge=1)
    scan_count: int = Field(default=0, ge=0)
    scan_limit: int = Field(ge=0)

    @field_validator("started_at")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def has_started(self) -> bool:
        return self.started_at is not None

    @property
    def scans_remaining(self) -> int:
        return max(0, self.scan_limit - self.scan_count)


class EntitlementSnapshot(BaseModel):
    """
    权益快照

    由对账器整体计算并整体写入；其他组件只读。
    version 每次对账递增；valid_until 表示仅因时间流逝、快照结论会发生变化的时刻，
    超过该时刻的快照需要重新对账。
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    is_premium: bool = False
    trial_phase: TrialPhase = TrialPhase.NONE
    days_left: int = Field(default=0, ge=0)
    hours_left: int = Field(default=0, ge=0)
    scans_used: int = Field(default=0, ge=0)
    scans_remaining: int = Field(default=0, ge=0)
    source: EntitlementSource = EntitlementSource.LOCAL_TRIAL
    premium_expires_at: datetime | None = None
    will_renew: bool = False
    last_event_type: BillingEventType | None = None
    valid_until: datetime | None = None
    version: int = Field(default=0, ge=0)
    computed_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def default(cls, user_id: str, scan_limit: int = 0) -> EntitlementSnapshot:
        """安全默认值：非付费、试用未开始"""
        return cls(user_id=user_id, scans_remaining=scan_limit)

    def is_stale(self, now: datetime) -> bool:
        return self.valid_until is not None and now >= self.valid_until


class GatingDecision(BaseModel):
    """门控判定：是否可以查看门控内容，以及对应的状态分类和文案"""
    model_config = ConfigDict(frozen=True)

    can_view: bool
    status: GatingStatus
    status_message: str

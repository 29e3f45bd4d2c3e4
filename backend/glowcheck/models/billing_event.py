"""
计费事件模型模块

定义计费平台 webhook 事件的数据库模型（事件存储）。
"""
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, String
from sqlmodel import Field, SQLModel

from .base import ensure_utc, utc_now
from .entitlement import BillingEvent


class BillingEventRecord(SQLModel, table=True):
    """
    计费事件记录模型

    存储所有从计费平台接收到的生命周期事件，用于去重、对账和审计。
    只追加，不更新、不删除；event_id 作为主键保证全局唯一。

    字段说明：
    - event_id: 平台事件 ID（主键，用于去重）
    - user_id: 事件所属用户（app_user_id）
    - event_type: 平台原始事件类型（未知类型也原样保存）
    - product_id / entitlement_id: 产品与权益标识
    - occurred_at: 平台上报的事件时间（不是接收时间）
    - expires_at: 本次事件对应的到期时间
    - is_trial_period / auto_renewing: 是否试用期、是否自动续费
    - store / environment: 应用商店与计费环境
    - payload: 原始请求体（JSON）
    - received_at: 接收时间
    """
    __tablename__ = "billing_events"

    event_id: str = Field(sa_column=Column(String(128), primary_key=True))
    user_id: str = Field(sa_column=Column(String(128), index=True, nullable=False))
    event_type: str = Field(sa_column=Column(String(64), nullable=False))
    product_id: str = Field(default="", sa_column=Column(String(128), nullable=False))
    entitlement_id: str | None = Field(default=None, sa_column=Column(String(128), nullable=True))
    occurred_at: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True, nullable=False))
    expires_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    is_trial_period: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    auto_renewing: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    store: str = Field(sa_column=Column(String(16), nullable=False))
    environment: str = Field(sa_column=Column(String(16), nullable=False))
    payload: dict | None = Field(default=None, sa_column=Column(JSON))
    received_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @classmethod
    def from_event(cls, event: BillingEvent, payload: dict[str, Any] | None = None) -> "BillingEventRecord":
        return cls(
            event_id=event.event_id,
            user_id=event.user_id,
            event_type=event.event_type,
            product_id=event.product_id,
            entitlement_id=event.entitlement_id,
            occurred_at=event.occurred_at,
            expires_at=event.expires_at,
            is_trial_period=event.is_trial_period,
            auto_renewing=event.auto_renewing,
            store=event.store.value,
            environment=event.environment.value,
            payload=payload,
        )

    def to_event(self) -> BillingEvent:
        return BillingEvent(
            event_id=self.event_id,
            user_id=self.user_id,
            event_type=self.event_type,
            product_id=self.product_id,
            entitlement_id=self.entitlement_id,
            occurred_at=ensure_utc(self.occurred_at),
            expires_at=ensure_utc(self.expires_at),
            is_trial_period=self.is_trial_period,
            auto_renewing=self.auto_renewing,
            store=self.store,
            environment=self.environment,
        )

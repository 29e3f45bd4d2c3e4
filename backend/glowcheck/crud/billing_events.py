"""计费事件存储（只追加）"""
import logging
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from glowcheck.core.kv_store import TransientStorageError
from glowcheck.enums import AppendResult, BillingEventType
from glowcheck.models import BillingEvent, BillingEventRecord

logger = logging.getLogger(__name__)


def append(
    *, session: Session, event: BillingEvent, payload: dict[str, Any] | None = None
) -> AppendResult:
    """
    追加一条事件，event_id 已存在时返回 DUPLICATE 且不做任何修改

    平台的 webhook 是至少一次投递，重试会带着同一个 event_id。
    先查再插；并发插入撞上主键冲突时同样视为重复。

    Raises:
        TransientStorageError: 数据库暂时不可用
    """
    try:
        if session.get(BillingEventRecord, event.event_id) is not None:
            return AppendResult.DUPLICATE
        session.add(BillingEventRecord.from_event(event, payload))
        session.commit()
    except IntegrityError:
        session.rollback()
        return AppendResult.DUPLICATE
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to append billing event {event.event_id}: {e}")
        raise TransientStorageError(str(e)) from e
    return AppendResult.INSERTED


def list_for_user(*, session: Session, user_id: str) -> list[BillingEvent]:
    """
    查询用户的全部事件，按 occurred_at 升序，时间相同按 event_id 字典序

    Raises:
        TransientStorageError: 数据库暂时不可用
    """
    statement = (
        select(BillingEventRecord)
        .where(BillingEventRecord.user_id == user_id)
        .order_by(col(BillingEventRecord.occurred_at), col(BillingEventRecord.event_id))
    )
    try:
        records = session.exec(statement).all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to list billing events for {user_id}: {e}")
        raise TransientStorageError(str(e)) from e
    events = [record.to_event() for record in records]
    # 时区偏移不同的历史数据在 SQL 中排序可能不一致，这里再按 sort_key 排一次
    events.sort(key=lambda e: e.sort_key)
    return events


def has_billing_trial(*, session: Session, user_id: str) -> bool:
    """用户是否有由计费平台发起的试用"""
    statement = select(BillingEventRecord.event_id).where(
        BillingEventRecord.user_id == user_id,
        BillingEventRecord.event_type == BillingEventType.TRIAL_STARTED.value,
    )
    try:
        return session.exec(statement).first() is not None
    except SQLAlchemyError as e:
        logger.error(f"Failed to check billing trial for {user_id}: {e}")
        raise TransientStorageError(str(e)) from e


def list_user_ids(*, session: Session) -> list[str]:
    """有计费事件的所有用户"""
    statement = select(BillingEventRecord.user_id).distinct()
    try:
        return list(session.exec(statement).all())
    except SQLAlchemyError as e:
        logger.error(f"Failed to list billing users: {e}")
        raise TransientStorageError(str(e)) from e

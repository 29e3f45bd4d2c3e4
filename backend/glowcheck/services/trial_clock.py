"""
试用时钟

纯函数：根据开始时间、试用天数和当前时间计算剩余时间。
"""
import math
from datetime import datetime, timedelta

DAY = timedelta(days=1)
HOUR = timedelta(hours=1)


def remaining(started_at: datetime, trial_length_days: int, now: datetime) -> int:
    """
    剩余试用天数

    daysLeft = max(0, trialLengthDays - floor((now - startedAt) / 1 天))

    时钟异常（now 早于 startedAt）时按刚开始处理，返回 trial_length_days，
    保证结果始终落在 [0, trial_length_days] 内。

    示例：
        >>> remaining(t, 3, t + timedelta(days=3) - timedelta(seconds=1))
        1
        >>> remaining(t, 3, t + timedelta(days=3))
        0
    """
    if now < started_at:
        return trial_length_days
    elapsed_days = (now - started_at) // DAY
    return max(0, trial_length_days - elapsed_days)


def ends_at(started_at: datetime, trial_length_days: int) -> datetime:
    """试用结束时刻"""
    return started_at + trial_length_days * DAY


def is_expired(started_at: datetime, trial_length_days: int, now: datetime) -> bool:
    return now >= ends_at(started_at, trial_length_days)


def days_until(deadline: datetime, now: datetime) -> int:
    """距离截止时间的天数（向上取整，已过期为 0）"""
    if now >= deadline:
        return 0
    return math.ceil((deadline - now) / DAY)


def hours_until(deadline: datetime, now: datetime) -> int:
    """距离截止时间的小时数（向上取整，已过期为 0）"""
    if now >= deadline:
        return 0
    return math.ceil((deadline - now) / HOUR)

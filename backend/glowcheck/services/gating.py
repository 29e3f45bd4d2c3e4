"""
门控判定

纯函数，只读取快照，不做对账、没有副作用，可以在每次渲染时调用。
"""
from glowcheck.enums import GatingStatus, TrialPhase
from glowcheck.models import EntitlementSnapshot, GatingDecision

STATUS_MESSAGES: dict[GatingStatus, str] = {
    GatingStatus.PREMIUM: "Premium active",
    GatingStatus.TRIAL_EXPIRED: "Trial ended",
    GatingStatus.SCAN_LIMIT_REACHED: "Free scans used up",
    GatingStatus.NOT_STARTED: "Start your free trial",
}


def classify(snapshot: EntitlementSnapshot) -> GatingStatus:
    if snapshot.is_premium:
        return GatingStatus.PREMIUM
    if snapshot.trial_phase == TrialPhase.ACTIVE:
        return GatingStatus.TRIAL_ACTIVE
    if snapshot.trial_phase == TrialPhase.EXPIRED:
        if snapshot.days_left > 0 and snapshot.scans_remaining == 0:
            return GatingStatus.SCAN_LIMIT_REACHED
        return GatingStatus.TRIAL_EXPIRED
    # 已转化但权益不再有效：付费周期已结束
    if snapshot.trial_phase == TrialPhase.CONVERTED:
        return GatingStatus.TRIAL_EXPIRED
    return GatingStatus.NOT_STARTED


def status_message(status: GatingStatus, snapshot: EntitlementSnapshot) -> str:
    if status == GatingStatus.TRIAL_ACTIVE:
        unit = "day" if snapshot.days_left == 1 else "days"
        return f"{snapshot.days_left} {unit} left"
    return STATUS_MESSAGES[status]


def decide(snapshot: EntitlementSnapshot) -> GatingDecision:
    """
    门控判定

    canView = isPremium 或 trialPhase == ACTIVE
    """
    status = classify(snapshot)
    return GatingDecision(
        can_view=snapshot.is_premium or snapshot.trial_phase == TrialPhase.ACTIVE,
        status=status,
        status_message=status_message(status, snapshot),
    )

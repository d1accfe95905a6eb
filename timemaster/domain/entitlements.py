"""
Plan entitlements.

All precedence rules for deciding a user's plan tier live in
`resolve_plan_tier`. The tier is computed at read time and never persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from timemaster.domain.errors import CapacityExceededError, ForbiddenError
from timemaster.domain.models import PlanType, User, UserType


class PlanLimits(BaseModel):
    """Feature limits of a tier. None means unlimited."""
    max_goals: Optional[int] = None
    max_schedules: Optional[int] = None
    max_tasks_per_day: Optional[int] = None


PLAN_LIMITS = {
    PlanType.FREE: PlanLimits(max_goals=3, max_schedules=5, max_tasks_per_day=3),
    PlanType.BASIC: PlanLimits(max_goals=10),
    PlanType.PRO: PlanLimits(),
}


class LimitedResource(str, Enum):
    GOALS = "goals"
    SCHEDULES = "schedules"
    TASKS_PER_DAY = "tasksPerDay"


BLOCKED_SUBSCRIPTION_STATUSES = ("past_due", "paused", "unpaid")


def _is_unlimited_user(user: User) -> bool:
    return user.user_type == UserType.INTERNAL or user.unlimited_access


def _end_date_passed(user: User, now: datetime) -> bool:
    return user.subscription_end_date is not None and user.subscription_end_date < now


def is_subscription_valid(user: User, now: Optional[datetime] = None) -> bool:
    """
    A subscription is valid when the billing provider reports it active, when
    it was manually activated and has not run out, or when an admin assigned
    a plan.
    """
    now = now or datetime.now()
    is_active = user.subscription_status == "active"

    provider_active = bool(user.stripe_subscription_id) and is_active
    manual_active = (
        not user.stripe_subscription_id
        and is_active
        and (user.subscription_end_date is None or user.subscription_end_date > now)
    )
    return provider_active or manual_active or user.admin_assigned_plan is not None


def is_explicitly_canceled(user: User, now: Optional[datetime] = None) -> bool:
    """Canceled AND the recorded end date already passed."""
    now = now or datetime.now()
    return user.subscription_status == "canceled" and _end_date_passed(user, now)


def resolve_plan_tier(user: User, now: Optional[datetime] = None) -> PlanType:
    """
    Resolve the tier in effect for a user. First match wins:

    1. Internal users and users with unlimited access get PRO.
    2. A paid plan (admin assignment takes precedence over the billed plan)
       is honored while the subscription is valid or not explicitly canceled
       in the past. A canceled subscription therefore keeps working until its
       end date.
    3. Everyone else is on FREE.
    """
    now = now or datetime.now()

    if _is_unlimited_user(user):
        return PlanType.PRO

    plan = user.admin_assigned_plan or user.plan
    if plan in (PlanType.PRO, PlanType.BASIC):
        if is_subscription_valid(user, now) or not is_explicitly_canceled(user, now):
            return plan

    return PlanType.FREE


def resolve_limits(user: User, now: Optional[datetime] = None) -> PlanLimits:
    return PLAN_LIMITS[resolve_plan_tier(user, now)]


def check_plan_limit(user: User, resource: LimitedResource, current_count: int,
                     now: Optional[datetime] = None) -> None:
    """
    Raise CapacityExceededError when creating one more `resource` would
    exceed the user's tier.
    """
    tier = resolve_plan_tier(user, now)
    limits = PLAN_LIMITS[tier]
    limit = {
        LimitedResource.GOALS: limits.max_goals,
        LimitedResource.SCHEDULES: limits.max_schedules,
        LimitedResource.TASKS_PER_DAY: limits.max_tasks_per_day,
    }[resource]

    if limit is not None and current_count >= limit:
        raise CapacityExceededError(plan=tier.value, resource=resource.value, limit=limit)


def check_subscription_standing(user: User) -> None:
    """
    Block paid users whose billing is not in good standing.

    Internal, unlimited and FREE users always pass.
    """
    if _is_unlimited_user(user) or user.plan == PlanType.FREE:
        return

    if user.invoice_pending:
        raise ForbiddenError(
            "Your invoice is pending payment. Please update your payment method to continue.",
            code="INVOICE_PENDING",
        )

    if user.subscription_status in BLOCKED_SUBSCRIPTION_STATUSES:
        raise ForbiddenError(
            f"Your subscription is {user.subscription_status}. "
            f"Please resolve to continue using Pro features.",
            code="SUBSCRIPTION_ISSUE",
            context={"status": user.subscription_status},
        )

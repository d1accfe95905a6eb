"""
Domain Models using Pydantic for validation.

Architecture Decision: Why Pydantic?
Pydantic provides runtime data validation, ensuring data integrity when loading
from the database or from request payloads. It also provides easy serialization.
"""

from datetime import datetime, date
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class PlanType(str, Enum):
    FREE = "FREE"
    BASIC = "BASIC"
    PRO = "PRO"


class UserType(str, Enum):
    EXTERNAL = "EXTERNAL"
    INTERNAL = "INTERNAL"


class GoalStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    PAUSED = "PAUSED"


class TaskStatus(str, Enum):
    BACKLOG = "BACKLOG"
    TODO = "TODO"
    DOING = "DOING"
    DONE = "DONE"


class TimeEntrySource(str, Enum):
    TRACKER = "TRACKER"
    COMPLETION = "COMPLETION"


DEFAULT_CATEGORY = "OTHER"

HHMM_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class User(BaseModel):
    """
    An account, including the fields that decide which plan tier applies.

    The resolved tier is never stored; see `timemaster.domain.entitlements`.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    email: str = Field(..., min_length=3, max_length=320)
    name: str = ""
    user_type: UserType = UserType.EXTERNAL

    # Billing
    plan: PlanType = PlanType.FREE
    subscription_status: Optional[str] = None
    subscription_end_date: Optional[datetime] = None
    stripe_subscription_id: Optional[str] = None
    admin_assigned_plan: Optional[PlanType] = None
    unlimited_access: bool = False
    invoice_pending: bool = False

    created_at: datetime = Field(default_factory=datetime.now)


class Category(BaseModel):
    """A user-defined label for goals and schedule blocks (e.g. "Deep Work")."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: int
    name: str = Field(..., min_length=1, max_length=100)
    value: str = ""
    color: str = "#9CA3AF"
    order: int = 0
    is_default: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class Label(BaseModel):
    """A free-form tag attached to goals (e.g. "Q1", "High Priority")."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: int
    name: str = Field(..., min_length=1, max_length=100)
    value: str = ""
    color: str = "#6B7280"
    order: int = 0
    is_default: bool = False
    created_at: datetime = Field(default_factory=datetime.now)

    # Computed from goal links
    goal_count: int = 0


class Goal(BaseModel):
    """
    Target-vs-logged hours tracker.

    Examples: "Learn React (40h)", "Write thesis (120h)"
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: int
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: str = DEFAULT_CATEGORY
    target_hours: float = Field(..., gt=0)
    logged_hours: float = 0.0
    status: GoalStatus = GoalStatus.ACTIVE
    color: str = "#3B82F6"
    deadline: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)


class ScheduleBlock(BaseModel):
    """
    A recurring weekly slot.

    day_of_week follows 0=Sunday .. 6=Saturday. Blocks created together as a
    recurring series share a series_id.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: int
    title: str = Field(..., min_length=1, max_length=200)
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: str = Field(..., pattern=HHMM_PATTERN)
    end_time: str = Field(..., pattern=HHMM_PATTERN)
    category: str = DEFAULT_CATEGORY
    color: Optional[str] = None
    is_recurring: bool = True
    goal_id: Optional[int] = None
    series_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class Task(BaseModel):
    """A unit of work, optionally linked to a goal and a schedule block."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: int
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    status: TaskStatus = TaskStatus.BACKLOG
    estimated_minutes: Optional[int] = Field(default=None, ge=1)
    actual_minutes: Optional[int] = None
    order: int = 0
    goal_id: Optional[int] = None
    schedule_block_id: Optional[int] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)

    # Computed from time entries
    tracked_minutes: int = 0


class TimeEntry(BaseModel):
    """
    A single logged duration of work.

    `date` is the start timestamp of the work; the end is derived as
    date + duration.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: int
    task_name: str = Field(..., min_length=1, max_length=200)
    duration: int = Field(..., gt=0, description="Minutes")
    date: datetime
    day_of_week: int = Field(default=0, ge=0, le=6)
    notes: Optional[str] = None
    goal_id: Optional[int] = None
    task_id: Optional[int] = None
    schedule_block_id: Optional[int] = None
    source: TimeEntrySource = TimeEntrySource.TRACKER
    created_at: datetime = Field(default_factory=datetime.now)


class SharedAccess(BaseModel):
    """
    A directed grant from owner to recipient.

    Pending while `is_accepted` is False (token and expiry set); accepted once
    the recipient account is linked, at which point the token is cleared.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    owner_id: int
    shared_with_id: Optional[int] = None
    invite_email: Optional[str] = None
    invite_token: Optional[str] = None
    invite_expires: Optional[datetime] = None
    is_accepted: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


def day_of_week(value: date) -> int:
    """Day index with Sunday as 0, matching ScheduleBlock.day_of_week."""
    return (value.weekday() + 1) % 7

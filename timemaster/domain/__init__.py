"""Domain layer - Pure business entities and logic"""

from .models import Category, Goal, Label, ScheduleBlock, SharedAccess, Task, TimeEntry, User
from .entitlements import resolve_limits, resolve_plan_tier

__all__ = [
    "Category", "Goal", "Label", "ScheduleBlock", "SharedAccess", "Task", "TimeEntry", "User",
    "resolve_limits", "resolve_plan_tier",
]

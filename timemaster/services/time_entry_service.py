"""
Time Entry Service - logging work and keeping goal progress in sync.
"""

import datetime
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from timemaster.domain.entitlements import LimitedResource, check_plan_limit, check_subscription_standing
from timemaster.domain.errors import NotFoundError, ValidationError
from timemaster.domain.models import TimeEntry, day_of_week
from timemaster.infra.repository import TimeEntryRepository, UserRepository
from timemaster.services.goal_service import GoalService
from timemaster.services.ownership import OwnershipChecker


def day_bounds(value: datetime.date):
    """First and last instant of a calendar day"""
    if isinstance(value, datetime.datetime):
        value = value.date()
    return (datetime.datetime.combine(value, datetime.time.min),
            datetime.datetime.combine(value, datetime.time.max))


def week_start(value: datetime.date) -> datetime.date:
    """Monday of the week containing `value`"""
    if isinstance(value, datetime.datetime):
        value = value.date()
    return value - datetime.timedelta(days=value.weekday())


class TimeEntryService:
    """
    Creates, edits and deletes time entries.

    Every change to an entry's duration or goal is mirrored into the
    affected goals' logged hours.
    """

    def __init__(self, entry_repo: Optional[TimeEntryRepository] = None,
                 user_repo: Optional[UserRepository] = None,
                 goal_service: Optional[GoalService] = None,
                 ownership: Optional[OwnershipChecker] = None):
        self.entry_repo = entry_repo or TimeEntryRepository()
        self.user_repo = user_repo or UserRepository()
        self.goal_service = goal_service or GoalService(user_repo=self.user_repo)
        self.ownership = ownership or OwnershipChecker(goal_repo=self.goal_service.goal_repo)

    async def check_daily_limit(self, user_id: int, on: datetime.date) -> None:
        """
        Raise CapacityExceededError if the user logged the maximum for that
        day, or ForbiddenError if their subscription is not in good standing.
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", context={"user_id": user_id})
        check_subscription_standing(user)
        start, end = day_bounds(on)
        count = await self.entry_repo.count_in_range(user_id, start, end)
        check_plan_limit(user, LimitedResource.TASKS_PER_DAY, count)

    async def create(self, user_id: int, entry: TimeEntry) -> TimeEntry:
        await self.ownership.check(user_id, goal_id=entry.goal_id, task_id=entry.task_id,
                                   schedule_block_id=entry.schedule_block_id)
        await self.check_daily_limit(user_id, entry.date)

        entry = entry.model_copy(update={"user_id": user_id, "day_of_week": day_of_week(entry.date)})
        created = await self.entry_repo.create(entry)

        if created.goal_id is not None:
            await self.goal_service.update_progress(created.goal_id, created.duration, user_id=user_id)
        return created

    async def find_by_date_range(self, user_id: int, start: datetime.date,
                                 end: datetime.date) -> List[TimeEntry]:
        range_start, _ = day_bounds(start)
        _, range_end = day_bounds(end)
        return await self.entry_repo.get_in_range(user_id, range_start, range_end)

    async def find_by_week(self, user_id: int, start: datetime.date) -> List[TimeEntry]:
        return await self.find_by_date_range(user_id, start, start + datetime.timedelta(days=6))

    async def update(self, user_id: int, entry_id: int, changes: Dict) -> TimeEntry:
        """
        Partially update an entry.

        When the duration or goal changes, the old contribution is removed
        from the old goal and the new one is added to the current goal.
        """
        entry = await self.entry_repo.get_by_id(user_id, entry_id)
        if entry is None:
            raise NotFoundError("Time entry not found", context={"entry_id": entry_id})

        allowed = {"task_name", "duration", "date", "notes", "goal_id", "schedule_block_id", "task_id"}
        values = {k: v for k, v in changes.items() if k in allowed and v is not None}
        await self.ownership.check(user_id, goal_id=values.get("goal_id"), task_id=values.get("task_id"),
                                   schedule_block_id=values.get("schedule_block_id"))
        try:
            merged = TimeEntry.model_validate({**entry.model_dump(), **values})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid time entry: {e.errors()[0]['msg']}", field=str(e.errors()[0]['loc'][0])) from e
        if "date" in values:
            values["date"] = merged.date
            values["day_of_week"] = day_of_week(merged.date)

        updated = await self.entry_repo.update_fields(entry_id, values)

        if "duration" in values or "goal_id" in values:
            if entry.goal_id is not None:
                await self.goal_service.update_progress(entry.goal_id, -entry.duration, user_id=user_id)
            if merged.goal_id is not None:
                await self.goal_service.update_progress(merged.goal_id, merged.duration, user_id=user_id)

        return updated

    async def delete(self, user_id: int, entry_id: int) -> None:
        entry = await self.entry_repo.get_by_id(user_id, entry_id)
        if entry is None:
            raise NotFoundError("Time entry not found", context={"entry_id": entry_id})

        if entry.goal_id is not None:
            await self.goal_service.update_progress(entry.goal_id, -entry.duration, user_id=user_id)
        await self.entry_repo.delete(entry_id)

    async def get_today_total(self, user_id: int, today: Optional[datetime.date] = None) -> Dict:
        today = today or datetime.date.today()
        start, end = day_bounds(today)
        return await self._totals(user_id, start, end)

    async def get_weekly_total(self, user_id: int, today: Optional[datetime.date] = None) -> Dict:
        monday = week_start(today or datetime.date.today())
        start, _ = day_bounds(monday)
        _, end = day_bounds(monday + datetime.timedelta(days=6))
        return await self._totals(user_id, start, end)

    async def _totals(self, user_id: int, start: datetime.datetime, end: datetime.datetime) -> Dict:
        minutes = await self.entry_repo.sum_in_range(user_id, start, end)
        count = await self.entry_repo.count_in_range(user_id, start, end)
        return {"total_minutes": minutes, "total_hours": round(minutes / 60, 1), "tasks_logged": count}

    async def get_recent_entries(self, user_id: int, limit: int = 5) -> List[TimeEntry]:
        return await self.entry_repo.get_recent(user_id, limit)

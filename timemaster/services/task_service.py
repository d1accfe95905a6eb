"""
Task Service - task board operations and completion logging.
"""

import datetime
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel

from timemaster.domain.entitlements import (
    LimitedResource, check_plan_limit, check_subscription_standing
)
from timemaster.domain.errors import ForbiddenError, NotFoundError
from timemaster.domain.models import Task, TaskStatus, TimeEntry, TimeEntrySource, day_of_week
from timemaster.infra.repository import (
    GoalRepository, ScheduleBlockRepository, TaskRepository, TimeEntryRepository, UserRepository
)
from timemaster.services.goal_service import GoalService
from timemaster.services.ownership import OwnershipChecker
from timemaster.services.time_entry_service import day_bounds

logger = logging.getLogger(__name__)

COMPLETION_NOTE = "Logged from task completion"


class TaskCompletion(BaseModel):
    """Outcome of completing a task"""
    task: Task
    time_entry: Optional[TimeEntry] = None
    already_tracked_minutes: int
    remaining_minutes: int
    total_minutes: int


class TaskService:
    """
    Manages tasks and turns a completed task into logged time.

    Time already tracked against a task (TRACKER entries) is never counted
    twice: completing with `actual_minutes` only logs the untracked remainder.
    """

    def __init__(self, task_repo: Optional[TaskRepository] = None,
                 entry_repo: Optional[TimeEntryRepository] = None,
                 goal_repo: Optional[GoalRepository] = None,
                 block_repo: Optional[ScheduleBlockRepository] = None,
                 user_repo: Optional[UserRepository] = None,
                 goal_service: Optional[GoalService] = None,
                 ownership: Optional[OwnershipChecker] = None):
        self.task_repo = task_repo or TaskRepository()
        self.entry_repo = entry_repo or TimeEntryRepository()
        self.goal_repo = goal_repo or GoalRepository()
        self.block_repo = block_repo or ScheduleBlockRepository()
        self.user_repo = user_repo or UserRepository()
        self.goal_service = goal_service or GoalService(self.goal_repo, self.user_repo)
        self.ownership = ownership or OwnershipChecker(self.goal_repo, self.task_repo, self.block_repo)

    async def _validate_relations(self, user_id: int, goal_id: Optional[int],
                                  schedule_block_id: Optional[int]) -> None:
        await self.ownership.check(user_id, goal_id=goal_id, schedule_block_id=schedule_block_id,
                                   error=ForbiddenError)

    async def create(self, user_id: int, task: Task) -> Task:
        await self._validate_relations(user_id, task.goal_id, task.schedule_block_id)
        task = task.model_copy(update={"user_id": user_id, "actual_minutes": None, "completed_at": None})
        return await self.task_repo.create(task)

    async def find_all(self, user_id: int, status: Optional[TaskStatus] = None,
                       goal_id: Optional[int] = None, schedule_block_id: Optional[int] = None,
                       day_of_week: Optional[int] = None) -> List[Task]:
        return await self.task_repo.get_all(user_id, status=status, goal_id=goal_id,
                                            schedule_block_id=schedule_block_id,
                                            day_of_week=day_of_week)

    async def find_one(self, user_id: int, task_id: int) -> Task:
        task = await self.task_repo.get_by_id(user_id, task_id)
        if task is None:
            raise NotFoundError("Task not found", context={"task_id": task_id})
        return task

    async def update(self, user_id: int, task_id: int, changes: Dict) -> Task:
        await self.find_one(user_id, task_id)

        allowed = {"title", "description", "category", "status", "estimated_minutes",
                   "goal_id", "schedule_block_id", "due_date", "order"}
        values = {k: v for k, v in changes.items() if k in allowed and v is not None}
        await self._validate_relations(user_id, values.get("goal_id"), values.get("schedule_block_id"))

        return await self.task_repo.update_fields(user_id, task_id, values)

    async def reorder(self, user_id: int, task_ids: List[int]) -> None:
        await self.task_repo.reorder(user_id, task_ids)

    async def complete(self, user_id: int, task_id: int, actual_minutes: int,
                       on: Optional[datetime.datetime] = None,
                       notes: Optional[str] = None) -> TaskCompletion:
        """
        Mark a task DONE and log the part of `actual_minutes` not yet tracked.

        The daily entry limit is checked even when nothing remains to be
        logged, so a user at the limit cannot complete tasks that day.
        """
        task = await self.find_one(user_id, task_id)
        log_date = on or datetime.datetime.now()

        already_tracked = await self.entry_repo.sum_for_task(task_id, TimeEntrySource.TRACKER)
        remaining = max(0, actual_minutes - already_tracked)

        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", context={"user_id": user_id})
        check_subscription_standing(user)
        start, end = day_bounds(log_date)
        entries_today = await self.entry_repo.count_in_range(user_id, start, end)
        check_plan_limit(user, LimitedResource.TASKS_PER_DAY, entries_today)

        time_entry = None
        if remaining > 0:
            time_entry = await self.entry_repo.create(TimeEntry(
                user_id=user_id,
                task_name=task.title,
                duration=remaining,
                date=log_date,
                day_of_week=day_of_week(log_date),
                notes=notes or COMPLETION_NOTE,
                goal_id=task.goal_id,
                task_id=task.id,
                schedule_block_id=task.schedule_block_id,
                source=TimeEntrySource.COMPLETION,
            ))

        updated = await self.task_repo.update_fields(user_id, task_id, {
            "status": TaskStatus.DONE,
            "actual_minutes": actual_minutes,
            "completed_at": log_date,
        })

        # Tracked entries already counted towards the goal
        if task.goal_id is not None and remaining > 0:
            await self.goal_service.update_progress(task.goal_id, remaining, user_id=user_id)

        logger.info(f"Task {task_id} completed: {already_tracked}m tracked, {remaining}m logged")
        return TaskCompletion(
            task=updated,
            time_entry=time_entry,
            already_tracked_minutes=already_tracked,
            remaining_minutes=remaining,
            total_minutes=actual_minutes,
        )

    async def restore(self, user_id: int, task_id: int) -> Task:
        """Reopen a completed task, removing the time its completion logged"""
        task = await self.find_one(user_id, task_id)
        completion = await self.entry_repo.get_latest_for_task(task_id, TimeEntrySource.COMPLETION)

        await self.task_repo.update_fields(user_id, task_id, {
            "status": TaskStatus.TODO,
            "actual_minutes": None,
            "completed_at": None,
        })

        if completion is not None:
            if task.goal_id is not None:
                await self.goal_service.update_progress(task.goal_id, -completion.duration, user_id=user_id)
            await self.entry_repo.delete(completion.id)

        return await self.find_one(user_id, task_id)

    async def delete(self, user_id: int, task_id: int) -> None:
        await self.find_one(user_id, task_id)
        await self.task_repo.delete(task_id)

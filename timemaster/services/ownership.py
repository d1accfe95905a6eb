"""
Ownership checks for entities referenced by another entity.
"""

from typing import Optional, Type

from timemaster.domain.errors import NotFoundError, TimeMasterError
from timemaster.infra.repository import GoalRepository, ScheduleBlockRepository, TaskRepository


class OwnershipChecker:
    """
    Verifies that goals, tasks and schedule blocks referenced by an entry,
    block or task belong to the acting user.

    A reference to someone else's entity is reported exactly like a missing
    one, so the ids of other users stay hidden.
    """

    def __init__(self, goal_repo: Optional[GoalRepository] = None,
                 task_repo: Optional[TaskRepository] = None,
                 block_repo: Optional[ScheduleBlockRepository] = None):
        self.goal_repo = goal_repo or GoalRepository()
        self.task_repo = task_repo or TaskRepository()
        self.block_repo = block_repo or ScheduleBlockRepository()

    async def check(self, user_id: int, goal_id: Optional[int] = None,
                    task_id: Optional[int] = None, schedule_block_id: Optional[int] = None,
                    error: Type[TimeMasterError] = NotFoundError) -> None:
        if goal_id is not None:
            if await self.goal_repo.get_by_id(goal_id, user_id=user_id) is None:
                raise error("Goal not found or access denied", context={"goal_id": goal_id})
        if task_id is not None:
            if await self.task_repo.get_by_id(user_id, task_id) is None:
                raise error("Task not found or access denied", context={"task_id": task_id})
        if schedule_block_id is not None:
            if await self.block_repo.get_by_id(user_id, schedule_block_id) is None:
                raise error("Schedule block not found or access denied",
                            context={"schedule_block_id": schedule_block_id})

"""
Goal Service - goal lifecycle and progress tracking.
"""

import logging
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from timemaster.domain.entitlements import LimitedResource, check_plan_limit, check_subscription_standing
from timemaster.domain.errors import NotFoundError, ValidationError
from timemaster.domain.models import Goal, GoalStatus
from timemaster.infra.repository import GoalRepository, UserRepository

logger = logging.getLogger(__name__)


class GoalService:
    """
    CRUD for goals plus the logged-hours bookkeeping that time entries and
    task completions feed into.
    """

    def __init__(self, goal_repo: Optional[GoalRepository] = None,
                 user_repo: Optional[UserRepository] = None):
        self.goal_repo = goal_repo or GoalRepository()
        self.user_repo = user_repo or UserRepository()

    async def create(self, user_id: int, goal: Goal) -> Goal:
        """Create a goal, enforcing the plan limit on unfinished goals"""
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", context={"user_id": user_id})
        check_subscription_standing(user)

        current = await self.goal_repo.count_unfinished(user_id)
        check_plan_limit(user, LimitedResource.GOALS, current)

        goal = goal.model_copy(update={"user_id": user_id, "logged_hours": 0.0})
        return await self.goal_repo.create(goal)

    async def find_all(self, user_id: int, status: Optional[GoalStatus] = None) -> List[Goal]:
        return await self.goal_repo.get_all(user_id, status)

    async def find_one(self, user_id: int, goal_id: int) -> Goal:
        goal = await self.goal_repo.get_by_id(goal_id, user_id=user_id)
        if goal is None:
            raise NotFoundError("Goal not found", context={"goal_id": goal_id})
        return goal

    async def update(self, user_id: int, goal_id: int, changes: Dict) -> Goal:
        """Apply a partial update. logged_hours is only changed through progress updates."""
        goal = await self.find_one(user_id, goal_id)
        changes = {k: v for k, v in changes.items() if v is not None and k not in ("id", "user_id", "logged_hours")}
        try:
            updated = Goal.model_validate({**goal.model_dump(), **changes})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid goal: {e.errors()[0]['msg']}", field=str(e.errors()[0]['loc'][0])) from e
        return await self.goal_repo.update(updated)

    async def delete(self, user_id: int, goal_id: int) -> None:
        await self.find_one(user_id, goal_id)
        await self.goal_repo.delete(goal_id)

    async def update_progress(self, goal_id: int, minutes: int, user_id: Optional[int] = None) -> None:
        """
        Add (or with a negative value, remove) logged minutes.

        With `user_id` only a goal of that user is touched. Unknown goals are
        ignored so that entries pointing at a deleted goal can still be edited.
        """
        if minutes == 0:
            return
        completed = await self.goal_repo.add_logged_minutes(goal_id, minutes, user_id=user_id)
        if completed:
            logger.info(f"Goal {goal_id} reached its target and was completed")

    async def get_stats(self, user_id: int) -> Dict[str, int]:
        counts = await self.goal_repo.count_by_status(user_id)
        active = counts[GoalStatus.ACTIVE]
        completed = counts[GoalStatus.COMPLETED]
        paused = counts[GoalStatus.PAUSED]
        return {"active": active, "completed": completed, "paused": paused,
                "total": active + completed + paused}

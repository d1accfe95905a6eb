"""
Schedule Service - weekly schedule blocks and overlap detection.

Times are "HH:mm" strings compared as minutes since midnight. Two blocks on
the same day overlap when each starts before the other ends, so blocks that
only touch (09:00-10:00 and 10:00-11:00) do not conflict.
"""

import logging
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from timemaster.domain.entitlements import LimitedResource, check_plan_limit, check_subscription_standing
from timemaster.domain.errors import NotFoundError, ValidationError
from timemaster.domain.models import ScheduleBlock
from timemaster.infra.repository import ScheduleBlockRepository, UserRepository
from timemaster.services.ownership import OwnershipChecker
from timemaster.utils import time_to_minutes

logger = logging.getLogger(__name__)

SCOPE_SINGLE = "single"
SCOPE_SERIES = "series"

EDITABLE_FIELDS = {"title", "day_of_week", "start_time", "end_time", "category",
                   "color", "is_recurring", "goal_id"}


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap"""
    return start_a < end_b and end_a > start_b


def _check_order(start_time: str, end_time: str) -> None:
    if time_to_minutes(start_time) >= time_to_minutes(end_time):
        raise ValidationError("Start time must be before end time", field="end_time", value=end_time)


class ScheduleService:
    def __init__(self, block_repo: Optional[ScheduleBlockRepository] = None,
                 user_repo: Optional[UserRepository] = None,
                 ownership: Optional[OwnershipChecker] = None):
        self.block_repo = block_repo or ScheduleBlockRepository()
        self.user_repo = user_repo or UserRepository()
        self.ownership = ownership or OwnershipChecker(block_repo=self.block_repo)

    async def has_conflict(self, user_id: int, day_of_week: int, start_time: str, end_time: str,
                           exclude_id: Optional[int] = None) -> bool:
        """True if [start_time, end_time) overlaps any other block of the user on that day"""
        new_start = time_to_minutes(start_time)
        new_end = time_to_minutes(end_time)

        for block in await self.block_repo.get_by_day(user_id, day_of_week, exclude_id=exclude_id):
            if intervals_overlap(new_start, new_end, time_to_minutes(block.start_time),
                                 time_to_minutes(block.end_time)):
                return True
        return False

    async def create(self, user_id: int, block: ScheduleBlock) -> ScheduleBlock:
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", context={"user_id": user_id})
        check_subscription_standing(user)
        await self.ownership.check(user_id, goal_id=block.goal_id)

        current = await self.block_repo.count(user_id)
        check_plan_limit(user, LimitedResource.SCHEDULES, current)

        _check_order(block.start_time, block.end_time)
        if await self.has_conflict(user_id, block.day_of_week, block.start_time, block.end_time):
            raise ValidationError("Time slot conflicts with an existing schedule block",
                                  field="start_time", value=block.start_time)

        return await self.block_repo.create(block.model_copy(update={"user_id": user_id}))

    async def find_all(self, user_id: int) -> List[ScheduleBlock]:
        return await self.block_repo.get_all(user_id)

    async def find_by_day(self, user_id: int, day_of_week: int) -> List[ScheduleBlock]:
        return await self.block_repo.get_by_day(user_id, day_of_week)

    async def get_weekly_schedule(self, user_id: int) -> Dict[int, List[ScheduleBlock]]:
        """Blocks grouped by day of week, every day present"""
        week: Dict[int, List[ScheduleBlock]] = {day: [] for day in range(7)}
        for block in await self.find_all(user_id):
            week[block.day_of_week].append(block)
        return week

    async def update(self, user_id: int, block_id: int, changes: Dict,
                     scope: str = SCOPE_SINGLE) -> ScheduleBlock:
        """
        Update one block, or with scope="series" every block sharing its series.

        A series update never moves blocks to another day. When the time range
        changes, each sibling is checked on its own day before anything is
        written; one conflict rejects the whole series update.
        """
        block = await self.block_repo.get_by_id(user_id, block_id)
        if block is None:
            raise NotFoundError("Schedule block not found", context={"block_id": block_id})

        values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
        await self.ownership.check(user_id, goal_id=values.get("goal_id"))
        try:
            ScheduleBlock.model_validate({**block.model_dump(), **values})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid schedule block: {e.errors()[0]['msg']}",
                                  field=str(e.errors()[0]['loc'][0])) from e

        if scope == SCOPE_SERIES and block.series_id:
            return await self._update_series(user_id, block, values)

        if {"start_time", "end_time", "day_of_week"} & values.keys():
            start_time = values.get("start_time", block.start_time)
            end_time = values.get("end_time", block.end_time)
            _check_order(start_time, end_time)
            if await self.has_conflict(user_id, values.get("day_of_week", block.day_of_week),
                                       start_time, end_time, exclude_id=block_id):
                raise ValidationError("Time slot conflicts with an existing schedule block",
                                      field="start_time", value=start_time)

        if not values:
            return block
        return await self.block_repo.update_fields(user_id, block_id, values)

    async def _update_series(self, user_id: int, block: ScheduleBlock, values: Dict) -> ScheduleBlock:
        values.pop("day_of_week", None)
        if not values:
            return block

        if "start_time" in values or "end_time" in values:
            for sibling in await self.block_repo.get_series(user_id, block.series_id):
                start_time = values.get("start_time", sibling.start_time)
                end_time = values.get("end_time", sibling.end_time)
                _check_order(start_time, end_time)
                if await self.has_conflict(user_id, sibling.day_of_week, start_time, end_time,
                                           exclude_id=sibling.id):
                    raise ValidationError(
                        "Time slot conflicts with an existing schedule block in this series",
                        field="start_time", value=start_time
                    )

        count = await self.block_repo.update_series(user_id, block.series_id, values)
        logger.info(f"Updated {count} blocks of series {block.series_id}")
        return await self.block_repo.get_by_id(user_id, block.id)

    async def delete(self, user_id: int, block_id: int) -> None:
        block = await self.block_repo.get_by_id(user_id, block_id)
        if block is None:
            raise NotFoundError("Schedule block not found", context={"block_id": block_id})
        await self.block_repo.delete(block_id)

"""
Report Service - loads report data through the repositories and hands it to
the aggregation engine.
"""

import calendar
import datetime
import logging
from typing import Dict, List, Optional

from timemaster.domain.models import GoalStatus
from timemaster.domain.reports import Report, ReportFilters
from timemaster.infra.config import get_settings
from timemaster.infra.repository import (
    CategoryRepository, GoalRepository, ScheduleBlockRepository, TaskRepository,
    TimeEntryRepository
)
from timemaster.services.aggregation import TimeAggregator
from timemaster.services.time_entry_service import day_bounds, week_start
from timemaster.utils import format_duration, round_half_up

logger = logging.getLogger(__name__)


class ReportService:
    """
    Generates reports for one user.

    Filtering (date range, goals, tasks, category) happens in the query;
    the aggregator only shapes what it is given.
    """

    def __init__(self, entry_repo: Optional[TimeEntryRepository] = None,
                 goal_repo: Optional[GoalRepository] = None,
                 task_repo: Optional[TaskRepository] = None,
                 block_repo: Optional[ScheduleBlockRepository] = None,
                 category_repo: Optional[CategoryRepository] = None,
                 currency: Optional[str] = None):
        self.entry_repo = entry_repo or TimeEntryRepository()
        self.goal_repo = goal_repo or GoalRepository()
        self.task_repo = task_repo or TaskRepository()
        self.block_repo = block_repo or ScheduleBlockRepository()
        self.category_repo = category_repo or CategoryRepository()
        self.currency = currency or get_settings().report_currency

    async def _aggregator(self, user_id: int) -> TimeAggregator:
        return TimeAggregator(
            goals=await self.goal_repo.get_all(user_id),
            tasks=await self.task_repo.get_all(user_id),
            schedule_blocks=await self.block_repo.get_all(user_id),
            categories=await self.category_repo.get_all(user_id),
            currency=self.currency,
        )

    async def generate(self, user_id: int, filters: ReportFilters) -> Report:
        """Build the report selected by `filters.view_type`"""
        start, _ = day_bounds(filters.start_date)
        _, end = day_bounds(filters.end_date)

        entries = await self.entry_repo.get_in_range(
            user_id, start, end,
            goal_ids=filters.goal_ids,
            task_ids=filters.task_ids,
            category=filters.category,
        )
        aggregator = await self._aggregator(user_id)

        logger.info(f"Building {filters.view_type.value} report for user {user_id} "
                    f"({filters.start_date} - {filters.end_date}, {len(entries)} entries)")
        return aggregator.aggregate(entries, filters)

    async def weekly_report(self, user_id: int, start: Optional[datetime.date] = None) -> Dict:
        """Per-weekday activity, goal breakdown and top activities for the week starting at `start`"""
        start = start or week_start(datetime.date.today())
        range_start, _ = day_bounds(start)
        _, range_end = day_bounds(start + datetime.timedelta(days=6))

        entries = await self.entry_repo.get_in_range(user_id, range_start, range_end)
        aggregator = TimeAggregator(goals=await self.goal_repo.get_all(user_id))
        return aggregator.weekly_overview(entries, start)

    async def weekly_summary(self, user_id: int, start: datetime.date) -> Dict:
        """Daily totals with category split, per-goal minutes and the most productive day"""
        range_start, _ = day_bounds(start)
        _, range_end = day_bounds(start + datetime.timedelta(days=6))

        entries = await self.entry_repo.get_in_range(user_id, range_start, range_end)
        aggregator = TimeAggregator(goals=await self.goal_repo.get_all(user_id),
                                    tasks=await self.task_repo.get_all(user_id))
        return aggregator.weekly_summary(entries, start)

    async def monthly_report(self, user_id: int, year: int, month: int) -> Dict:
        last_day = calendar.monthrange(year, month)[1]
        start, _ = day_bounds(datetime.date(year, month, 1))
        _, end = day_bounds(datetime.date(year, month, last_day))

        entries = await self.entry_repo.get_in_range(user_id, start, end)
        total = sum(e.duration for e in entries)
        days_active = len({e.date.date() for e in entries})
        daily_average = int(round_half_up(total / days_active)) if days_active else 0

        return {
            "year": year,
            "month": month,
            "total_minutes": total,
            "total_formatted": format_duration(total),
            "total_hours": round_half_up(total / 60, 1),
            "days_active": days_active,
            "daily_average": daily_average,
            "tasks_logged": len(entries),
        }

    async def goal_progress(self, user_id: int, now: Optional[datetime.datetime] = None) -> List[Dict]:
        """Progress of active goals, nearest deadline first"""
        goals = await self.goal_repo.get_all(user_id, GoalStatus.ACTIVE)
        goals.sort(key=lambda g: (g.deadline is None, g.deadline or datetime.datetime.max))
        return TimeAggregator.goal_progress(goals, now)

    async def dashboard_stats(self, user_id: int, today: Optional[datetime.date] = None) -> Dict:
        today = today or datetime.date.today()
        day_start, day_end = day_bounds(today)
        monday = week_start(today)
        week_begin, _ = day_bounds(monday)
        _, week_end = day_bounds(monday + datetime.timedelta(days=6))

        today_minutes = await self.entry_repo.sum_in_range(user_id, day_start, day_end)
        weekly_minutes = await self.entry_repo.sum_in_range(user_id, week_begin, week_end)
        counts = await self.goal_repo.count_by_status(user_id)

        return {
            "today_minutes": today_minutes,
            "today_formatted": format_duration(today_minutes),
            "weekly_minutes": weekly_minutes,
            "weekly_formatted": format_duration(weekly_minutes),
            "active_goals": counts[GoalStatus.ACTIVE],
            "tasks_logged": await self.entry_repo.count_in_range(user_id, day_start, day_end),
        }

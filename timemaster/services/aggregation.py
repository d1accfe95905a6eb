"""
Time Aggregation Engine.

Turns already-filtered time entries into report shapes. Pure in-memory
logic: everything the engine needs to resolve goal, task, category and
schedule-block references is handed to it up front.
"""

import datetime
import math
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from timemaster.domain.models import (
    DEFAULT_CATEGORY, Category, Goal, GoalStatus, ScheduleBlock, Task, TimeEntry, day_of_week
)
from timemaster.domain.reports import (
    BillableInfo, DailyBreakdown, DateBreakdownItem, DayByTaskBreakdown, DayByTaskEntry,
    DayByTaskReport, DayTotalBreakdown, DayTotalGoalGroup, DayTotalReport, DetailedReport,
    DetailedTimeEntry, RefInfo, Report, ReportFilters, ReportGroupBy, ReportSortBy,
    ReportSummary, ReportViewType, ScheduleBlockRef, ScheduleDay, ScheduleDayData,
    SchedulePattern, ScheduleReport, ScheduleReportRow, ScheduleSummary, ScheduleTaskItem,
    SummaryItem, SummaryReport
)
from timemaster.utils import format_duration, round_half_up, time_to_minutes

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
SHORT_DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

NO_GOAL_ID = "none"
NO_GOAL_TITLE = "No Goal"
OTHER_COLOR = "#94A3B8"


def percentage(part: int, whole: int) -> int:
    """Share of `whole` in percent, rounded half up; 0 when whole is 0"""
    if whole <= 0:
        return 0
    return int(round_half_up(part / whole * 100))


def hours(minutes: int) -> float:
    return round_half_up(minutes / 60, 2)


def date_range(start: datetime.date, end: datetime.date) -> List[datetime.date]:
    """All dates from start to end, inclusive"""
    delta = end - start
    return [start + datetime.timedelta(days=i) for i in range(delta.days + 1)]


def task_identity(entry: TimeEntry) -> Tuple[str, str]:
    """
    Stable identity of the task an entry belongs to.

    Linked entries use the task id; ad-hoc entries use their normalized name
    so that entries typed with the same name merge.
    """
    if entry.task_id is not None:
        return ("id", str(entry.task_id))
    return ("name", entry.task_name.strip().lower())


class TimeAggregator:
    """
    Produces detailed, summary, day-by-task, day-total and schedule-adherence
    reports from a list of time entries.
    """

    def __init__(self, goals: Iterable[Goal] = (), tasks: Iterable[Task] = (),
                 schedule_blocks: Iterable[ScheduleBlock] = (),
                 categories: Iterable[Category] = (), currency: str = "USD"):
        self.goals: Dict[int, Goal] = {g.id: g for g in goals}
        self.tasks: Dict[int, Task] = {t.id: t for t in tasks}
        self.schedule_blocks: Dict[int, ScheduleBlock] = {b.id: b for b in schedule_blocks}
        self.categories: Dict[str, Category] = {c.value: c for c in categories}
        self.currency = currency

    def aggregate(self, entries: List[TimeEntry], filters: ReportFilters) -> Report:
        """Build the report selected by `filters.view_type`"""
        builders = {
            ReportViewType.DETAILED: self.detailed,
            ReportViewType.SUMMARY: self.summary,
            ReportViewType.DAY_BY_TASK: self.day_by_task,
            ReportViewType.DAY_TOTAL: self.day_total,
            ReportViewType.SCHEDULE: self.schedule_adherence,
        }
        return builders[filters.view_type](entries, filters)

    # ------------------------------------------------------------------
    # Shared pieces
    # ------------------------------------------------------------------

    def build_summary(self, entries: List[TimeEntry]) -> ReportSummary:
        total = sum(e.duration for e in entries)
        days = {e.date.date() for e in entries}
        avg = int(round_half_up(total / len(days))) if days else 0
        return ReportSummary(
            total_minutes=total,
            total_formatted=format_duration(total),
            total_hours=hours(total),
            total_entries=len(entries),
            days_with_entries=len(days),
            avg_minutes_per_day=avg,
        )

    def build_billable(self, total_minutes: int, filters: ReportFilters) -> Optional[BillableInfo]:
        if not filters.include_billable or filters.hourly_rate is None:
            return None
        return BillableInfo(
            hourly_rate=filters.hourly_rate,
            total_hours=hours(total_minutes),
            total_amount=self.billable_amount(total_minutes, filters.hourly_rate),
            currency=self.currency,
        )

    @staticmethod
    def billable_amount(minutes: int, hourly_rate: float) -> float:
        return round_half_up(minutes / 60 * hourly_rate, 2)

    def _goal_ref(self, goal_id: Optional[int]) -> Optional[RefInfo]:
        goal = self.goals.get(goal_id) if goal_id is not None else None
        if goal is None:
            return None
        return RefInfo(id=goal.id, title=goal.title, color=goal.color)

    def _category_of(self, entry: TimeEntry) -> str:
        goal = self.goals.get(entry.goal_id) if entry.goal_id is not None else None
        if goal is not None:
            return goal.category
        task = self.tasks.get(entry.task_id) if entry.task_id is not None else None
        if task is not None and task.category:
            return task.category
        return DEFAULT_CATEGORY

    def _task_name(self, entry: TimeEntry) -> str:
        task = self.tasks.get(entry.task_id) if entry.task_id is not None else None
        return task.title if task is not None else entry.task_name.strip()

    # ------------------------------------------------------------------
    # Detailed
    # ------------------------------------------------------------------

    def _detail(self, entry: TimeEntry, filters: ReportFilters) -> DetailedTimeEntry:
        task = self.tasks.get(entry.task_id) if entry.task_id is not None else None
        block = None
        if filters.show_schedule_context and entry.schedule_block_id is not None:
            sb = self.schedule_blocks.get(entry.schedule_block_id)
            if sb is not None:
                block = ScheduleBlockRef(id=sb.id, title=sb.title, start_time=sb.start_time,
                                         end_time=sb.end_time, color=sb.color)

        return DetailedTimeEntry(
            id=entry.id,
            date=entry.date.date(),
            day_of_week=DAY_NAMES[day_of_week(entry.date)],
            started_at=entry.date,
            ended_at=entry.date + datetime.timedelta(minutes=entry.duration),
            task_name=entry.task_name,
            duration=entry.duration,
            duration_formatted=format_duration(entry.duration),
            notes=entry.notes if filters.include_task_notes else None,
            goal=self._goal_ref(entry.goal_id),
            task=RefInfo(id=task.id, title=task.title) if task is not None else None,
            category=self._category_of(entry),
            schedule_block=block,
        )

    @staticmethod
    def _sort_entries(items: List[DetailedTimeEntry], sort_by: ReportSortBy) -> List[DetailedTimeEntry]:
        if sort_by == ReportSortBy.DATE_DESC:
            return sorted(items, key=lambda i: i.started_at, reverse=True)
        if sort_by == ReportSortBy.DURATION_ASC:
            return sorted(items, key=lambda i: i.duration)
        if sort_by == ReportSortBy.DURATION_DESC:
            return sorted(items, key=lambda i: i.duration, reverse=True)
        if sort_by == ReportSortBy.GOAL:
            # Entries without a goal go last
            return sorted(items, key=lambda i: (i.goal is None, i.goal.title.lower() if i.goal else ""))
        if sort_by == ReportSortBy.TASK:
            return sorted(items, key=lambda i: i.task_name.lower())
        return sorted(items, key=lambda i: i.started_at)

    def detailed(self, entries: List[TimeEntry], filters: ReportFilters) -> DetailedReport:
        by_day: Dict[datetime.date, List[DetailedTimeEntry]] = defaultdict(list)
        for entry in entries:
            by_day[entry.date.date()].append(self._detail(entry, filters))

        breakdown = []
        for day in sorted(by_day, reverse=filters.sort_by == ReportSortBy.DATE_DESC):
            items = self._sort_entries(by_day[day], filters.sort_by)
            total = sum(i.duration for i in items)
            breakdown.append(DailyBreakdown(
                date=day,
                day_of_week=DAY_NAMES[day_of_week(day)],
                entries=items,
                total_minutes=total,
                total_formatted=format_duration(total),
            ))

        summary = self.build_summary(entries)
        return DetailedReport(
            start_date=filters.start_date,
            end_date=filters.end_date,
            filters=filters,
            summary=summary,
            billable=self.build_billable(summary.total_minutes, filters),
            daily_breakdown=breakdown,
        )

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def _group_key(self, entry: TimeEntry, group_by: ReportGroupBy) -> Tuple[str, str, Optional[str]]:
        """(id, display name, color) of the group an entry belongs to"""
        if group_by == ReportGroupBy.GOAL:
            if entry.goal_id is None:
                return NO_GOAL_ID, NO_GOAL_TITLE, OTHER_COLOR
            goal = self.goals.get(entry.goal_id)
            if goal is None:
                return str(entry.goal_id), f"Goal {entry.goal_id}", None
            return str(goal.id), goal.title, goal.color

        if group_by == ReportGroupBy.TASK:
            kind, ident = task_identity(entry)
            key = ident if kind == "id" else f"name:{ident}"
            return key, self._task_name(entry), None

        if group_by == ReportGroupBy.CATEGORY:
            value = self._category_of(entry)
            category = self.categories.get(value)
            if category is None:
                return value, value, None
            return value, category.name, category.color

        day = entry.date.date().isoformat()
        return day, day, None

    def summary(self, entries: List[TimeEntry], filters: ReportFilters) -> SummaryReport:
        groups: Dict[str, Dict] = {}
        by_date: Dict[datetime.date, int] = defaultdict(int)

        for entry in entries:
            key, name, color = self._group_key(entry, filters.group_by)
            group = groups.setdefault(key, {"name": name, "color": color, "minutes": 0, "count": 0})
            group["minutes"] += entry.duration
            group["count"] += 1
            by_date[entry.date.date()] += entry.duration

        total = sum(g["minutes"] for g in groups.values())
        billable = filters.include_billable and filters.hourly_rate is not None

        items = [
            SummaryItem(
                id=key,
                name=group["name"],
                color=group["color"],
                total_minutes=group["minutes"],
                total_formatted=format_duration(group["minutes"]),
                total_hours=hours(group["minutes"]),
                percentage=percentage(group["minutes"], total),
                entries_count=group["count"],
                billable_amount=self.billable_amount(group["minutes"], filters.hourly_rate) if billable else None,
            )
            for key, group in groups.items()
        ]
        items.sort(key=lambda i: i.total_minutes, reverse=True)

        date_breakdown = [
            DateBreakdownItem(date=day, minutes=minutes, formatted=format_duration(minutes))
            for day, minutes in sorted(by_date.items())
        ]

        summary = self.build_summary(entries)
        return SummaryReport(
            start_date=filters.start_date,
            end_date=filters.end_date,
            filters=filters,
            group_by=filters.group_by,
            summary=summary,
            billable=self.build_billable(summary.total_minutes, filters),
            items=items,
            date_breakdown=date_breakdown,
        )

    # ------------------------------------------------------------------
    # Day by task
    # ------------------------------------------------------------------

    def day_by_task(self, entries: List[TimeEntry], filters: ReportFilters) -> DayByTaskReport:
        by_day: Dict[datetime.date, Dict[Tuple[str, str], DayByTaskEntry]] = defaultdict(dict)

        for entry in entries:
            rows = by_day[entry.date.date()]
            identity = task_identity(entry)
            row = rows.get(identity)
            if row is None:
                goal = self._goal_ref(entry.goal_id)
                row = DayByTaskEntry(
                    task_name=self._task_name(entry),
                    task_id=entry.task_id,
                    goal_title=goal.title if goal else None,
                    goal_color=goal.color if goal else None,
                )
                rows[identity] = row
            row.total_minutes += entry.duration

        breakdown = []
        for day in sorted(by_day):
            tasks = sorted(by_day[day].values(), key=lambda r: r.total_minutes, reverse=True)
            for row in tasks:
                row.total_formatted = format_duration(row.total_minutes)
            total = sum(r.total_minutes for r in tasks)
            breakdown.append(DayByTaskBreakdown(
                date=day,
                day_of_week=DAY_NAMES[day_of_week(day)],
                tasks=tasks,
                total_minutes=total,
                total_formatted=format_duration(total),
            ))

        summary = self.build_summary(entries)
        return DayByTaskReport(
            start_date=filters.start_date,
            end_date=filters.end_date,
            filters=filters,
            summary=summary,
            billable=self.build_billable(summary.total_minutes, filters),
            daily_breakdown=breakdown,
        )

    # ------------------------------------------------------------------
    # Day total
    # ------------------------------------------------------------------

    def day_total(self, entries: List[TimeEntry], filters: ReportFilters) -> DayTotalReport:
        # date -> goal id -> {"minutes": int, "names": dict used as ordered set}
        by_day: Dict[datetime.date, Dict[Optional[int], Dict]] = defaultdict(dict)
        day_names: Dict[datetime.date, Dict[str, None]] = defaultdict(dict)

        for entry in entries:
            day = entry.date.date()
            group = by_day[day].setdefault(entry.goal_id, {"minutes": 0, "names": {}})
            group["minutes"] += entry.duration
            name = entry.task_name.strip()
            group["names"][name] = None
            day_names[day][name] = None

        breakdown = []
        for day in sorted(by_day):
            goal_groups = []
            for goal_id, group in by_day[day].items():
                goal = self._goal_ref(goal_id)
                goal_groups.append(DayTotalGoalGroup(
                    goal_id=goal_id,
                    goal_title=goal.title if goal else (NO_GOAL_TITLE if goal_id is None else f"Goal {goal_id}"),
                    goal_color=goal.color if goal else None,
                    task_names=", ".join(group["names"]),
                    total_minutes=group["minutes"],
                    total_formatted=format_duration(group["minutes"]),
                ))
            goal_groups.sort(key=lambda g: g.total_minutes, reverse=True)

            total = sum(g.total_minutes for g in goal_groups)
            breakdown.append(DayTotalBreakdown(
                date=day,
                day_of_week=DAY_NAMES[day_of_week(day)],
                task_names=", ".join(day_names[day]),
                goal_groups=goal_groups,
                total_minutes=total,
                total_formatted=format_duration(total),
                total_hours=hours(total),
            ))

        summary = self.build_summary(entries)
        return DayTotalReport(
            start_date=filters.start_date,
            end_date=filters.end_date,
            filters=filters,
            summary=summary,
            billable=self.build_billable(summary.total_minutes, filters),
            daily_breakdown=breakdown,
        )

    # ------------------------------------------------------------------
    # Schedule adherence
    # ------------------------------------------------------------------

    def _patterns(self) -> Tuple[Dict[Tuple[str, str, str], List[ScheduleBlock]], Dict[int, Tuple[str, str, str]]]:
        """Group blocks with the same title and time range into one pattern"""
        patterns: Dict[Tuple[str, str, str], List[ScheduleBlock]] = {}
        block_to_pattern: Dict[int, Tuple[str, str, str]] = {}
        ordered = sorted(self.schedule_blocks.values(),
                         key=lambda b: (time_to_minutes(b.start_time), b.title, b.id))
        for block in ordered:
            key = (block.title, block.start_time, block.end_time)
            patterns.setdefault(key, []).append(block)
            block_to_pattern[block.id] = key
        return patterns, block_to_pattern

    def schedule_adherence(self, entries: List[TimeEntry], filters: ReportFilters) -> ScheduleReport:
        patterns, block_to_pattern = self._patterns()
        dates = date_range(filters.start_date, filters.end_date)

        # pattern -> date -> task name -> minutes
        logged: Dict[Tuple[str, str, str], Dict[datetime.date, Dict[str, int]]] = defaultdict(
            lambda: defaultdict(lambda: defaultdict(int))
        )
        counted_entries = 0
        for entry in entries:
            key = block_to_pattern.get(entry.schedule_block_id)
            day = entry.date.date()
            if key is None or not (filters.start_date <= day <= filters.end_date):
                continue
            logged[key][day][entry.task_name.strip()] += entry.duration
            counted_entries += 1

        rows = []
        for key, blocks in patterns.items():
            title, start_time, end_time = key
            length = max(0, time_to_minutes(end_time) - time_to_minutes(start_time))
            days_of_week = sorted({b.day_of_week for b in blocks})

            days = []
            for day in dates:
                dow = day_of_week(day)
                expected = length if dow in days_of_week else 0
                task_minutes = logged[key][day] if key in logged and day in logged[key] else {}
                logged_minutes = sum(task_minutes.values())
                days.append(ScheduleDayData(
                    date=day,
                    day_of_week=SHORT_DAY_NAMES[dow],
                    day_number=day.day,
                    logged_minutes=logged_minutes,
                    logged_formatted=format_duration(logged_minutes),
                    expected_minutes=expected,
                    percentage=percentage(logged_minutes, expected),
                    tasks=[
                        ScheduleTaskItem(task_name=name, minutes=minutes, formatted=format_duration(minutes))
                        for name, minutes in sorted(task_minutes.items(), key=lambda kv: kv[1], reverse=True)
                    ],
                ))

            total_logged = sum(d.logged_minutes for d in days)
            total_expected = sum(d.expected_minutes for d in days)
            if total_logged == 0 and total_expected == 0:
                continue

            first = blocks[0]
            goal = self._goal_ref(first.goal_id)
            rows.append(ScheduleReportRow(
                pattern=SchedulePattern(
                    pattern_key=f"{title}|{start_time}|{end_time}",
                    title=title,
                    start_time=start_time,
                    end_time=end_time,
                    category=first.category,
                    color=first.color,
                    goal_title=goal.title if goal else None,
                    goal_color=goal.color if goal else None,
                    days_of_week=days_of_week,
                    time_range_formatted=f"{start_time} - {end_time}",
                ),
                days=days,
                total_logged=total_logged,
                total_logged_formatted=format_duration(total_logged),
                total_expected=total_expected,
                overall_percentage=percentage(total_logged, total_expected),
            ))

        total_logged = sum(r.total_logged for r in rows)
        total_expected = sum(r.total_expected for r in rows)
        return ScheduleReport(
            start_date=filters.start_date,
            end_date=filters.end_date,
            filters=filters,
            summary=ScheduleSummary(
                total_minutes=total_logged,
                total_formatted=format_duration(total_logged),
                total_expected_minutes=total_expected,
                total_expected_formatted=format_duration(total_expected),
                overall_percentage=percentage(total_logged, total_expected),
                total_entries=counted_entries,
                schedules_tracked=len(rows),
            ),
            days=[
                ScheduleDay(date=d, day_of_week=SHORT_DAY_NAMES[day_of_week(d)], day_number=d.day)
                for d in dates
            ],
            rows=rows,
        )

    # ------------------------------------------------------------------
    # Dashboard rollups
    # ------------------------------------------------------------------

    def weekly_overview(self, entries: List[TimeEntry], week_start: datetime.date) -> Dict:
        """Per-weekday minutes, goal breakdown and the top five activities of a week"""
        daily = {dow: 0 for dow in range(7)}
        goal_breakdown: Dict[str, Dict] = {}
        activities: Dict[str, Dict] = {}
        total = 0

        for entry in entries:
            daily[day_of_week(entry.date)] += entry.duration
            total += entry.duration

            goal = self._goal_ref(entry.goal_id)
            key = str(goal.id) if goal else "other"
            bucket = goal_breakdown.setdefault(key, {
                "title": goal.title if goal else "Other",
                "color": goal.color if goal else OTHER_COLOR,
                "minutes": 0,
            })
            bucket["minutes"] += entry.duration

            activity = activities.setdefault(entry.task_name, {
                "task_name": entry.task_name,
                "duration": 0,
                "goal_title": goal.title if goal else "Other",
                "goal_color": goal.color if goal else OTHER_COLOR,
            })
            activity["duration"] += entry.duration

        active_days = len([m for m in daily.values() if m > 0])
        daily_average = int(round_half_up(total / active_days)) if active_days else 0
        top = sorted(activities.values(), key=lambda a: a["duration"], reverse=True)[:5]

        return {
            "week_start": week_start,
            "week_end": week_start + datetime.timedelta(days=6),
            "total_minutes": total,
            "total_formatted": format_duration(total),
            "daily_average": daily_average,
            "daily_average_formatted": format_duration(daily_average),
            "tasks_logged": len(entries),
            "daily_activity": [
                {"day": dow, "day_name": SHORT_DAY_NAMES[dow], "minutes": minutes,
                 "formatted": format_duration(minutes)}
                for dow, minutes in daily.items()
            ],
            "goal_breakdown": [
                {"goal_id": key, **data, "percentage": percentage(data["minutes"], total),
                 "formatted": format_duration(data["minutes"])}
                for key, data in goal_breakdown.items()
            ],
            "top_activities": [
                {"rank": rank, **activity, "formatted": format_duration(activity["duration"])}
                for rank, activity in enumerate(top, start=1)
            ],
        }

    def weekly_summary(self, entries: List[TimeEntry], week_start: datetime.date) -> Dict:
        """
        Category and goal split of a seven-day window starting at `week_start`.

        The most productive day is the earliest day with the highest total,
        None for an empty week.
        """
        days = date_range(week_start, week_start + datetime.timedelta(days=6))
        by_day: Dict[datetime.date, List[TimeEntry]] = defaultdict(list)
        for entry in entries:
            by_day[entry.date.date()].append(entry)

        by_category: Dict[str, int] = defaultdict(int)
        by_goal: Dict[int, Dict] = {}
        daily_breakdown = []
        for day in days:
            categories: Dict[str, int] = defaultdict(int)
            for entry in by_day.get(day, []):
                category = self._category_of(entry)
                categories[category] += entry.duration
                by_category[category] += entry.duration

                goal = self.goals.get(entry.goal_id) if entry.goal_id is not None else None
                if goal is not None:
                    bucket = by_goal.setdefault(goal.id, {"goal_id": goal.id, "goal_title": goal.title,
                                                          "minutes": 0})
                    bucket["minutes"] += entry.duration

            day_entries = by_day.get(day, [])
            daily_breakdown.append({
                "date": day,
                "total_minutes": sum(e.duration for e in day_entries),
                "entries_count": len(day_entries),
                "categories": dict(categories),
            })

        total = sum(d["total_minutes"] for d in daily_breakdown)
        active_days = len([d for d in daily_breakdown if d["entries_count"] > 0])

        most_productive_day = None
        best = 0
        for day in daily_breakdown:
            if day["total_minutes"] > best:
                best = day["total_minutes"]
                most_productive_day = day["date"]

        return {
            "total_minutes": total,
            "avg_minutes_per_day": int(round_half_up(total / active_days)) if active_days else 0,
            "total_entries": sum(d["entries_count"] for d in daily_breakdown),
            "most_productive_day": most_productive_day,
            "by_category": dict(by_category),
            "by_goal": list(by_goal.values()),
            "daily_breakdown": daily_breakdown,
        }

    @staticmethod
    def goal_progress(goals: List[Goal], now: Optional[datetime.datetime] = None) -> List[Dict]:
        """Progress of goals, capped at 100 percent, with days left to the deadline"""
        now = now or datetime.datetime.now()
        result = []
        for goal in goals:
            progress = goal.logged_hours / goal.target_hours * 100 if goal.target_hours > 0 else 0
            days_left = None
            overdue = False
            if goal.deadline is not None:
                remaining = (goal.deadline - now).total_seconds() / 86400
                overdue = remaining < 0
                days_left = max(0, math.ceil(remaining))

            if overdue and goal.status != GoalStatus.COMPLETED:
                state = "overdue"
            elif progress >= 100:
                state = "completed"
            else:
                state = "in-progress"

            result.append({
                "id": goal.id,
                "title": goal.title,
                "color": goal.color,
                "logged_hours": goal.logged_hours,
                "target_hours": goal.target_hours,
                "progress": min(100, int(round_half_up(progress))),
                "deadline": goal.deadline,
                "days_left": days_left,
                "status": state,
            })
        return result

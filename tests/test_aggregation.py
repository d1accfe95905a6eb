"""
Tests for the time aggregation engine.
"""

import datetime

import pytest

from timemaster.domain.models import Category, Goal, ScheduleBlock, Task, TimeEntry
from timemaster.domain.reports import ReportFilters, ReportGroupBy, ReportSortBy, ReportViewType
from timemaster.services.aggregation import TimeAggregator, percentage

JAN_1 = datetime.date(2025, 1, 1)  # Wednesday


def entry(duration, when=datetime.datetime(2025, 1, 1, 9, 0), **fields) -> TimeEntry:
    fields.setdefault("task_name", "Work")
    return TimeEntry(user_id=1, duration=duration, date=when, **fields)


def filters(**fields) -> ReportFilters:
    fields.setdefault("start_date", JAN_1)
    fields.setdefault("end_date", JAN_1)
    return ReportFilters(**fields)


@pytest.fixture
def goals():
    return [
        Goal(id=1, user_id=1, title="Learn Rust", target_hours=40, color="#FF0000", category="LEARNING"),
        Goal(id=2, user_id=1, title="Thesis", target_hours=120, color="#00FF00", category="WORK"),
    ]


def test_summary_by_goal_scenario(goals):
    """Two entries of the same goal on one day collapse into one item"""
    aggregator = TimeAggregator(goals=goals)
    entries = [entry(30, goal_id=1), entry(45, goal_id=1)]

    report = aggregator.aggregate(entries, filters(view_type=ReportViewType.SUMMARY,
                                                   group_by=ReportGroupBy.GOAL))

    assert len(report.items) == 1
    item = report.items[0]
    assert item.id == "1"
    assert item.name == "Learn Rust"
    assert item.total_minutes == 75
    assert item.total_formatted == "1h 15m"
    assert item.percentage == 100
    assert item.entries_count == 2
    assert report.summary.total_minutes == 75


def test_group_totals_sum_to_entry_total(goals):
    aggregator = TimeAggregator(goals=goals)
    entries = [entry(10, goal_id=1), entry(20, goal_id=2), entry(33), entry(7, goal_id=2)]

    report = aggregator.summary(entries, filters(view_type=ReportViewType.SUMMARY))

    by_id = {item.id: item.total_minutes for item in report.items}
    assert by_id == {"1": 10, "2": 27, "none": 33}
    assert sum(by_id.values()) == sum(e.duration for e in entries)
    # Sorted by total, descending
    assert [i.total_minutes for i in report.items] == [33, 27, 10]


def test_summary_percentages_sum_to_about_100(goals):
    aggregator = TimeAggregator(goals=goals)
    entries = [entry(10, goal_id=1), entry(10, goal_id=2), entry(10)]

    report = aggregator.summary(entries, filters(view_type=ReportViewType.SUMMARY))

    total = sum(i.percentage for i in report.items)
    assert abs(total - 100) <= len(report.items)


def test_percentage_rounds_half_up_and_handles_zero():
    assert percentage(1, 8) == 13  # 12.5
    assert percentage(0, 0) == 0
    assert percentage(5, 0) == 0


def test_summary_by_category_and_date(goals):
    categories = [Category(user_id=1, name="Learning", value="LEARNING", color="#3B82F6")]
    aggregator = TimeAggregator(goals=goals, categories=categories)
    entries = [
        entry(30, goal_id=1),
        entry(15, goal_id=2, when=datetime.datetime(2025, 1, 2, 8, 0)),
        entry(5),
    ]
    opts = filters(view_type=ReportViewType.SUMMARY, group_by=ReportGroupBy.CATEGORY,
                   end_date=datetime.date(2025, 1, 2))

    report = aggregator.summary(entries, opts)

    names = {i.id: i.name for i in report.items}
    assert names == {"LEARNING": "Learning", "WORK": "WORK", "OTHER": "OTHER"}
    assert [(d.date, d.minutes) for d in report.date_breakdown] == [
        (datetime.date(2025, 1, 1), 35), (datetime.date(2025, 1, 2), 15)
    ]


def test_summary_billable_amounts(goals):
    aggregator = TimeAggregator(goals=goals, currency="USD")
    opts = filters(view_type=ReportViewType.SUMMARY, include_billable=True, hourly_rate=50)

    report = aggregator.summary([entry(90, goal_id=1)], opts)

    assert report.items[0].billable_amount == 75.0
    assert report.billable.total_amount == 75.0
    assert report.billable.total_hours == 1.5
    assert report.billable.currency == "USD"


def test_no_billable_without_rate(goals):
    report = TimeAggregator(goals=goals).summary([entry(90)], filters(include_billable=True))
    assert report.billable is None
    assert report.items[0].billable_amount is None


def test_day_by_task_merges_same_name_without_task_id():
    aggregator = TimeAggregator()
    entries = [entry(20, task_name="Reading"), entry(25, task_name="  reading ")]

    report = aggregator.day_by_task(entries, filters(view_type=ReportViewType.DAY_BY_TASK))

    assert len(report.daily_breakdown) == 1
    rows = report.daily_breakdown[0].tasks
    assert len(rows) == 1
    assert rows[0].total_minutes == 45


def test_day_by_task_keeps_different_task_ids_apart():
    tasks = [Task(id=1, user_id=1, title="Review"), Task(id=2, user_id=1, title="Review")]
    aggregator = TimeAggregator(tasks=tasks)
    entries = [entry(20, task_name="Review", task_id=1), entry(25, task_name="Review", task_id=2)]

    report = aggregator.day_by_task(entries, filters(view_type=ReportViewType.DAY_BY_TASK))

    rows = report.daily_breakdown[0].tasks
    assert len(rows) == 2
    assert [r.total_minutes for r in rows] == [25, 20]
    assert report.daily_breakdown[0].day_of_week == "Wednesday"


def test_day_total_groups_by_goal(goals):
    aggregator = TimeAggregator(goals=goals)
    entries = [
        entry(30, goal_id=1, task_name="Chapter 1"),
        entry(15, goal_id=1, task_name="Exercises"),
        entry(30, goal_id=1, task_name="Chapter 1"),
        entry(10, task_name="Email"),
    ]

    report = aggregator.day_total(entries, filters(view_type=ReportViewType.DAY_TOTAL))

    day = report.daily_breakdown[0]
    assert day.total_minutes == 85
    assert day.total_hours == 1.42
    assert day.task_names == "Chapter 1, Exercises, Email"
    assert [g.goal_title for g in day.goal_groups] == ["Learn Rust", "No Goal"]
    assert day.goal_groups[0].task_names == "Chapter 1, Exercises"
    assert day.goal_groups[0].total_minutes == 75


def test_detailed_report_orders_and_derives_end_time(goals):
    aggregator = TimeAggregator(goals=goals)
    entries = [
        entry(60, when=datetime.datetime(2025, 1, 1, 14, 0), notes="afternoon"),
        entry(30, when=datetime.datetime(2025, 1, 1, 9, 0), goal_id=2),
    ]

    report = aggregator.detailed(entries, filters(sort_by=ReportSortBy.DURATION_DESC))

    day = report.daily_breakdown[0]
    assert [e.duration for e in day.entries] == [60, 30]
    assert day.entries[0].ended_at == datetime.datetime(2025, 1, 1, 15, 0)
    assert day.entries[0].notes is None  # only with include_task_notes
    assert day.entries[1].goal.title == "Thesis"
    assert day.entries[1].category == "WORK"
    assert day.total_formatted == "1h 30m"


def test_detailed_report_includes_notes_on_request():
    report = TimeAggregator().detailed([entry(10, notes="call")], filters(include_task_notes=True))
    assert report.daily_breakdown[0].entries[0].notes == "call"


def test_report_summary_average_per_active_day():
    entries = [
        entry(60, when=datetime.datetime(2025, 1, 1, 9, 0)),
        entry(45, when=datetime.datetime(2025, 1, 3, 9, 0)),
    ]
    summary = TimeAggregator().build_summary(entries)
    assert summary.days_with_entries == 2
    assert summary.avg_minutes_per_day == 53  # 52.5 rounds up
    assert summary.total_hours == 1.75


def test_schedule_adherence():
    # 2025-01-06 is a Monday (day_of_week 1)
    blocks = [
        ScheduleBlock(id=1, user_id=1, title="Deep Work", day_of_week=1, start_time="09:00", end_time="11:00"),
        ScheduleBlock(id=2, user_id=1, title="Deep Work", day_of_week=3, start_time="09:00", end_time="11:00"),
        ScheduleBlock(id=3, user_id=1, title="Gym", day_of_week=6, start_time="18:00", end_time="19:00"),
    ]
    aggregator = TimeAggregator(schedule_blocks=blocks)
    entries = [
        entry(90, when=datetime.datetime(2025, 1, 6, 9, 0), schedule_block_id=1, task_name="Parser"),
        entry(30, when=datetime.datetime(2025, 1, 6, 10, 30), schedule_block_id=1, task_name="Tests"),
        entry(60, when=datetime.datetime(2025, 1, 8, 9, 0), schedule_block_id=2, task_name="Parser"),
    ]
    opts = filters(view_type=ReportViewType.SCHEDULE, start_date=datetime.date(2025, 1, 6),
                   end_date=datetime.date(2025, 1, 9))

    report = aggregator.schedule_adherence(entries, opts)

    # Gym has no Saturday in range and nothing logged, so it is dropped
    assert len(report.rows) == 1
    row = report.rows[0]
    assert row.pattern.pattern_key == "Deep Work|09:00|11:00"
    assert row.pattern.days_of_week == [1, 3]
    assert [d.expected_minutes for d in row.days] == [120, 0, 120, 0]
    assert [d.logged_minutes for d in row.days] == [120, 0, 60, 0]
    assert [d.percentage for d in row.days] == [100, 0, 50, 0]
    assert row.days[0].tasks[0].task_name == "Parser"
    assert row.total_logged == 180
    assert row.total_expected == 240
    assert row.overall_percentage == 75
    assert report.summary.schedules_tracked == 1
    assert report.summary.total_entries == 3
    assert [d.day_of_week for d in report.days] == ["Mon", "Tue", "Wed", "Thu"]


def test_weekly_overview_top_activities(goals):
    aggregator = TimeAggregator(goals=goals)
    week_start = datetime.date(2025, 1, 6)
    entries = [
        entry(30, when=datetime.datetime(2025, 1, 6, 9, 0), task_name="Read", goal_id=1),
        entry(40, when=datetime.datetime(2025, 1, 7, 9, 0), task_name="Read", goal_id=1),
        entry(20, when=datetime.datetime(2025, 1, 7, 11, 0), task_name="Mail"),
    ]

    overview = aggregator.weekly_overview(entries, week_start)

    assert overview["total_minutes"] == 90
    assert overview["daily_average"] == 45
    assert overview["top_activities"][0]["task_name"] == "Read"
    assert overview["top_activities"][0]["duration"] == 70
    breakdown = {g["goal_id"]: g["percentage"] for g in overview["goal_breakdown"]}
    assert breakdown == {"1": 78, "other": 22}


def test_weekly_summary_splits_days_categories_and_goals(goals):
    tasks = [Task(id=7, user_id=1, title="Blog post", category="WRITING")]
    aggregator = TimeAggregator(goals=goals, tasks=tasks)
    week_start = datetime.date(2025, 1, 6)
    entries = [
        entry(30, when=datetime.datetime(2025, 1, 6, 9, 0), goal_id=1),
        entry(45, when=datetime.datetime(2025, 1, 8, 9, 0), goal_id=2),
        entry(30, when=datetime.datetime(2025, 1, 8, 14, 0), task_id=7),
        entry(10, when=datetime.datetime(2025, 1, 8, 18, 0)),
        entry(85, when=datetime.datetime(2025, 1, 10, 9, 0), goal_id=1),
    ]

    summary = aggregator.weekly_summary(entries, week_start)

    assert summary["total_minutes"] == 200
    assert summary["total_entries"] == 5
    assert summary["avg_minutes_per_day"] == 67
    # Jan 8 and Jan 10 both have 85 minutes; the earlier day wins
    assert summary["most_productive_day"] == datetime.date(2025, 1, 8)
    assert summary["by_category"] == {"LEARNING": 115, "WORK": 45, "WRITING": 30, "OTHER": 10}
    assert summary["by_goal"] == [
        {"goal_id": 1, "goal_title": "Learn Rust", "minutes": 115},
        {"goal_id": 2, "goal_title": "Thesis", "minutes": 45},
    ]

    days = summary["daily_breakdown"]
    assert [d["date"] for d in days][0] == week_start
    assert len(days) == 7
    assert days[2] == {"date": datetime.date(2025, 1, 8), "total_minutes": 85, "entries_count": 3,
                       "categories": {"WORK": 45, "WRITING": 30, "OTHER": 10}}
    assert days[1]["categories"] == {}


def test_weekly_summary_of_empty_week():
    summary = TimeAggregator().weekly_summary([], datetime.date(2025, 1, 6))
    assert summary["most_productive_day"] is None
    assert summary["avg_minutes_per_day"] == 0
    assert summary["by_goal"] == []


def test_goal_progress_states():
    now = datetime.datetime(2025, 1, 10, 12, 0)
    goals = [
        Goal(id=1, user_id=1, title="Late", target_hours=10, logged_hours=2,
             deadline=datetime.datetime(2025, 1, 1)),
        Goal(id=2, user_id=1, title="Done", target_hours=10, logged_hours=12),
        Goal(id=3, user_id=1, title="Running", target_hours=10, logged_hours=5,
             deadline=datetime.datetime(2025, 1, 12, 0, 0)),
    ]

    progress = {p["title"]: p for p in TimeAggregator.goal_progress(goals, now)}

    assert progress["Late"]["status"] == "overdue"
    assert progress["Late"]["days_left"] == 0
    assert progress["Done"]["status"] == "completed"
    assert progress["Done"]["progress"] == 100
    assert progress["Running"]["status"] == "in-progress"
    assert progress["Running"]["days_left"] == 2
    assert progress["Running"]["progress"] == 50

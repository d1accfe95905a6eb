"""
Report options and report shapes produced by the aggregation engine.
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Union
from pydantic import BaseModel, Field, model_validator


class ReportViewType(str, Enum):
    DETAILED = "detailed"
    SUMMARY = "summary"
    DAY_BY_TASK = "day_by_task"
    DAY_TOTAL = "day_total"
    SCHEDULE = "schedule"


class ReportGroupBy(str, Enum):
    GOAL = "goal"
    TASK = "task"
    DATE = "date"
    CATEGORY = "category"


class ReportSortBy(str, Enum):
    DATE_ASC = "date_asc"
    DATE_DESC = "date_desc"
    DURATION_ASC = "duration_asc"
    DURATION_DESC = "duration_desc"
    GOAL = "goal"
    TASK = "task"


class ExportFormat(str, Enum):
    CSV = "csv"
    XLSX = "xlsx"
    JSON = "json"


class ReportFilters(BaseModel):
    """
    Report request: date range, view mode and optional filters.

    Filtering by goal/task/category is applied by the query, the aggregation
    engine only sees the matching entries.
    """
    start_date: date
    end_date: date
    view_type: ReportViewType = ReportViewType.DETAILED
    group_by: ReportGroupBy = ReportGroupBy.GOAL
    goal_ids: List[int] = Field(default_factory=list)
    task_ids: List[int] = Field(default_factory=list)
    category: Optional[str] = None
    sort_by: ReportSortBy = ReportSortBy.DATE_ASC
    include_billable: bool = False
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    show_schedule_context: bool = False
    include_task_notes: bool = False

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ExportOptions(BaseModel):
    """Presentation-only settings for exported reports"""
    format: ExportFormat = ExportFormat.CSV
    title: Optional[str] = None
    include_client_info: bool = False
    client_name: Optional[str] = None
    project_name: Optional[str] = None
    notes: Optional[str] = None


class RefInfo(BaseModel):
    id: int
    title: str
    color: Optional[str] = None


class ScheduleBlockRef(BaseModel):
    id: int
    title: str
    start_time: str
    end_time: str
    color: Optional[str] = None


class BillableInfo(BaseModel):
    hourly_rate: float
    total_hours: float
    total_amount: float
    currency: str = "USD"


class ReportSummary(BaseModel):
    total_minutes: int = 0
    total_formatted: str = "0m"
    total_hours: float = 0.0
    total_entries: int = 0
    days_with_entries: int = 0
    avg_minutes_per_day: int = 0


class ReportBase(BaseModel):
    start_date: date
    end_date: date
    generated_at: datetime = Field(default_factory=datetime.now)
    filters: ReportFilters
    summary: ReportSummary = Field(default_factory=ReportSummary)
    billable: Optional[BillableInfo] = None


# Detailed

class DetailedTimeEntry(BaseModel):
    id: Optional[int] = None
    date: date
    day_of_week: str
    started_at: datetime
    ended_at: datetime
    task_name: str
    duration: int
    duration_formatted: str
    notes: Optional[str] = None
    goal: Optional[RefInfo] = None
    task: Optional[RefInfo] = None
    category: Optional[str] = None
    schedule_block: Optional[ScheduleBlockRef] = None


class DailyBreakdown(BaseModel):
    date: date
    day_of_week: str
    entries: List[DetailedTimeEntry] = Field(default_factory=list)
    total_minutes: int = 0
    total_formatted: str = "0m"


class DetailedReport(ReportBase):
    report_type: str = "detailed"
    daily_breakdown: List[DailyBreakdown] = Field(default_factory=list)


# Summary

class SummaryItem(BaseModel):
    id: str
    name: str
    color: Optional[str] = None
    total_minutes: int = 0
    total_formatted: str = "0m"
    total_hours: float = 0.0
    percentage: int = 0
    entries_count: int = 0
    billable_amount: Optional[float] = None


class DateBreakdownItem(BaseModel):
    date: date
    minutes: int
    formatted: str


class SummaryReport(ReportBase):
    report_type: str = "summary"
    group_by: ReportGroupBy
    items: List[SummaryItem] = Field(default_factory=list)
    date_breakdown: List[DateBreakdownItem] = Field(default_factory=list)


# Day by task

class DayByTaskEntry(BaseModel):
    task_name: str
    task_id: Optional[int] = None
    goal_title: Optional[str] = None
    goal_color: Optional[str] = None
    total_minutes: int = 0
    total_formatted: str = "0m"


class DayByTaskBreakdown(BaseModel):
    date: date
    day_of_week: str
    tasks: List[DayByTaskEntry] = Field(default_factory=list)
    total_minutes: int = 0
    total_formatted: str = "0m"


class DayByTaskReport(ReportBase):
    report_type: str = "day_by_task"
    daily_breakdown: List[DayByTaskBreakdown] = Field(default_factory=list)


# Day total

class DayTotalGoalGroup(BaseModel):
    goal_id: Optional[int] = None
    goal_title: str
    goal_color: Optional[str] = None
    task_names: str = ""
    total_minutes: int = 0
    total_formatted: str = "0m"


class DayTotalBreakdown(BaseModel):
    date: date
    day_of_week: str
    task_names: str = ""
    goal_groups: List[DayTotalGoalGroup] = Field(default_factory=list)
    total_minutes: int = 0
    total_formatted: str = "0m"
    total_hours: float = 0.0


class DayTotalReport(ReportBase):
    report_type: str = "day_total"
    daily_breakdown: List[DayTotalBreakdown] = Field(default_factory=list)


# Schedule adherence

class SchedulePattern(BaseModel):
    pattern_key: str
    title: str
    start_time: str
    end_time: str
    category: Optional[str] = None
    color: Optional[str] = None
    goal_title: Optional[str] = None
    goal_color: Optional[str] = None
    days_of_week: List[int] = Field(default_factory=list)
    time_range_formatted: str = ""


class ScheduleTaskItem(BaseModel):
    task_name: str
    minutes: int
    formatted: str


class ScheduleDayData(BaseModel):
    date: date
    day_of_week: str
    day_number: int
    logged_minutes: int = 0
    logged_formatted: str = "0m"
    expected_minutes: int = 0
    percentage: int = 0
    tasks: List[ScheduleTaskItem] = Field(default_factory=list)


class ScheduleReportRow(BaseModel):
    pattern: SchedulePattern
    days: List[ScheduleDayData] = Field(default_factory=list)
    total_logged: int = 0
    total_logged_formatted: str = "0m"
    total_expected: int = 0
    overall_percentage: int = 0


class ScheduleSummary(BaseModel):
    total_minutes: int = 0
    total_formatted: str = "0m"
    total_expected_minutes: int = 0
    total_expected_formatted: str = "0m"
    overall_percentage: int = 0
    total_entries: int = 0
    schedules_tracked: int = 0


class ScheduleDay(BaseModel):
    date: date
    day_of_week: str
    day_number: int


class ScheduleReport(BaseModel):
    report_type: str = "schedule"
    start_date: date
    end_date: date
    generated_at: datetime = Field(default_factory=datetime.now)
    filters: ReportFilters
    summary: ScheduleSummary = Field(default_factory=ScheduleSummary)
    days: List[ScheduleDay] = Field(default_factory=list)
    rows: List[ScheduleReportRow] = Field(default_factory=list)


Report = Union[DetailedReport, SummaryReport, DayByTaskReport, DayTotalReport, ScheduleReport]

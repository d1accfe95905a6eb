"""Services layer - Business logic"""

from .aggregation import TimeAggregator
from .category_service import CategoryService
from .email_service import EmailService
from .goal_service import GoalService
from .label_service import LabelService
from .ownership import OwnershipChecker
from .report_export import ReportExporter
from .report_service import ReportService
from .schedule_service import ScheduleService
from .sharing_service import SharingService
from .task_service import TaskService
from .time_entry_service import TimeEntryService

__all__ = [
    "TimeAggregator", "CategoryService", "EmailService", "GoalService", "LabelService",
    "OwnershipChecker", "ReportExporter",
    "ReportService", "ScheduleService", "SharingService", "TaskService", "TimeEntryService",
]

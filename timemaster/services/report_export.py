"""
Report Export - renders aggregated reports as CSV, Excel or JSON.

CSV and Excel share the same table layout: a short preamble (title, period,
client details), a header row that depends on the report view, one row per
item and a closing total row.
"""

import csv
import io
import logging
from pathlib import Path
from typing import Any, List, Tuple

import xlsxwriter

from timemaster.domain.reports import (
    DayByTaskReport, DayTotalReport, DetailedReport, ExportFormat, ExportOptions, Report,
    ScheduleReport, SummaryReport
)
from timemaster.utils import format_duration

logger = logging.getLogger(__name__)

Table = Tuple[List[str], List[List[Any]], List[Any]]

DEFAULT_TITLES = {
    "detailed": "Detailed Time Report",
    "summary": "Summary Report",
    "day_by_task": "Day by Task Report",
    "day_total": "Daily Totals Report",
    "schedule": "Schedule Adherence Report",
}


class ReportExporter:
    """
    Usage:
        exporter = ReportExporter()
        data = exporter.export(report, ExportOptions(format=ExportFormat.XLSX))
    """

    def export(self, report: Report, options: ExportOptions) -> bytes:
        if options.format == ExportFormat.JSON:
            return report.model_dump_json(indent=2).encode("utf-8")
        if options.format == ExportFormat.XLSX:
            return self.to_xlsx(report, options)
        return self.to_csv(report, options).encode("utf-8")

    def write(self, report: Report, options: ExportOptions, output_path: Path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self.export(report, options))
        logger.info(f"Exported {report.report_type} report to {output_path}")
        return output_path

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def preamble(self, report: Report, options: ExportOptions) -> List[List[str]]:
        rows = [
            [options.title or DEFAULT_TITLES.get(report.report_type, "Time Report")],
            ["Period", f"{report.start_date.isoformat()} - {report.end_date.isoformat()}"],
            ["Generated", report.generated_at.strftime("%Y-%m-%d %H:%M")],
        ]
        if options.include_client_info:
            if options.client_name:
                rows.append(["Client", options.client_name])
            if options.project_name:
                rows.append(["Project", options.project_name])
        return rows

    def table(self, report: Report) -> Table:
        """(header, rows, total row) for a report"""
        if isinstance(report, DetailedReport):
            return self._detailed_table(report)
        if isinstance(report, SummaryReport):
            return self._summary_table(report)
        if isinstance(report, DayByTaskReport):
            return self._day_by_task_table(report)
        if isinstance(report, DayTotalReport):
            return self._day_total_table(report)
        if isinstance(report, ScheduleReport):
            return self._schedule_table(report)
        raise TypeError(f"Unsupported report type: {type(report).__name__}")

    def _detailed_table(self, report: DetailedReport) -> Table:
        with_notes = report.filters.include_task_notes
        header = ["Date", "Day", "Start", "End", "Task", "Goal", "Category", "Duration", "Hours"]
        if with_notes:
            header.append("Notes")

        rows = []
        for day in report.daily_breakdown:
            for entry in day.entries:
                row = [
                    day.date.isoformat(),
                    day.day_of_week,
                    entry.started_at.strftime("%H:%M"),
                    entry.ended_at.strftime("%H:%M"),
                    entry.task_name,
                    entry.goal.title if entry.goal else "",
                    entry.category or "",
                    entry.duration_formatted,
                    round(entry.duration / 60, 2),
                ]
                if with_notes:
                    row.append(entry.notes or "")
                rows.append(row)

        summary = report.summary
        total = ["Total", "", "", "", "", "", "", summary.total_formatted, summary.total_hours]
        if with_notes:
            total.append("")
        return header, rows, total

    def _summary_table(self, report: SummaryReport) -> Table:
        billable = report.billable is not None
        header = [report.group_by.value.capitalize(), "Entries", "Duration", "Hours", "Percentage"]
        if billable:
            header.append(f"Amount ({report.billable.currency})")

        rows = []
        for item in report.items:
            row = [item.name, item.entries_count, item.total_formatted, item.total_hours, f"{item.percentage}%"]
            if billable:
                row.append(item.billable_amount)
            rows.append(row)

        summary = report.summary
        total = ["Total", summary.total_entries, summary.total_formatted, summary.total_hours, "100%" if rows else "0%"]
        if billable:
            total.append(report.billable.total_amount)
        return header, rows, total

    def _day_by_task_table(self, report: DayByTaskReport) -> Table:
        header = ["Date", "Day", "Task", "Goal", "Duration", "Hours"]
        rows = [
            [day.date.isoformat(), day.day_of_week, task.task_name, task.goal_title or "",
             task.total_formatted, round(task.total_minutes / 60, 2)]
            for day in report.daily_breakdown
            for task in day.tasks
        ]
        summary = report.summary
        return header, rows, ["Total", "", "", "", summary.total_formatted, summary.total_hours]

    def _day_total_table(self, report: DayTotalReport) -> Table:
        header = ["Date", "Day", "Tasks", "Goals", "Duration", "Hours"]
        rows = [
            [day.date.isoformat(), day.day_of_week, day.task_names,
             ", ".join(g.goal_title for g in day.goal_groups), day.total_formatted, day.total_hours]
            for day in report.daily_breakdown
        ]
        summary = report.summary
        return header, rows, ["Total", "", "", "", summary.total_formatted, summary.total_hours]

    def _schedule_table(self, report: ScheduleReport) -> Table:
        header = ["Schedule", "Time"]
        header += [f"{d.day_of_week} {d.day_number}" for d in report.days]
        header += ["Logged", "Expected", "Adherence"]

        rows = []
        for row in report.rows:
            cells = [row.pattern.title, row.pattern.time_range_formatted]
            cells += [d.logged_formatted if d.logged_minutes else "" for d in row.days]
            cells += [row.total_logged_formatted, format_duration(row.total_expected), f"{row.overall_percentage}%"]
            rows.append(cells)

        summary = report.summary
        total = ["Total", ""] + [""] * len(report.days)
        total += [summary.total_formatted, summary.total_expected_formatted, f"{summary.overall_percentage}%"]
        return header, rows, total

    # ------------------------------------------------------------------
    # Formats
    # ------------------------------------------------------------------

    def to_csv(self, report: Report, options: ExportOptions) -> str:
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator='\n')

        writer.writerows(self.preamble(report, options))
        writer.writerow([])

        header, rows, total = self.table(report)
        writer.writerow(header)
        writer.writerows(rows)
        writer.writerow(total)

        if options.notes:
            writer.writerow([])
            writer.writerow(["Notes", options.notes])

        return output.getvalue()

    def to_xlsx(self, report: Report, options: ExportOptions) -> bytes:
        output = io.BytesIO()
        workbook = xlsxwriter.Workbook(output, {'in_memory': True})

        fmt_title = workbook.add_format({'bold': True, 'font_size': 14})
        fmt_label = workbook.add_format({'bold': True})
        fmt_header = workbook.add_format({
            'bold': True, 'bg_color': '#4472C4', 'font_color': 'white', 'border': 1
        })
        fmt_cell = workbook.add_format({'border': 1})
        fmt_hours = workbook.add_format({'border': 1, 'num_format': '0.00'})
        fmt_total = workbook.add_format({'bold': True, 'bg_color': '#FFF2CC', 'border': 1})

        ws = workbook.add_worksheet("Report")

        row_idx = 0
        for i, line in enumerate(self.preamble(report, options)):
            if i == 0:
                ws.write(row_idx, 0, line[0], fmt_title)
            else:
                ws.write(row_idx, 0, line[0], fmt_label)
                ws.write(row_idx, 1, line[1])
            row_idx += 1
        row_idx += 1

        header, rows, total = self.table(report)
        for col, title in enumerate(header):
            ws.write(row_idx, col, title, fmt_header)
        row_idx += 1

        for values in rows:
            for col, value in enumerate(values):
                ws.write(row_idx, col, value, fmt_hours if isinstance(value, float) else fmt_cell)
            row_idx += 1

        for col, value in enumerate(total):
            ws.write(row_idx, col, value, fmt_total)
        row_idx += 1

        if options.notes:
            row_idx += 1
            ws.write(row_idx, 0, "Notes", fmt_label)
            ws.write(row_idx, 1, options.notes)

        ws.set_column(0, 0, 14)
        ws.set_column(1, len(header), 16)
        ws.freeze_panes(len(self.preamble(report, options)) + 2, 0)

        workbook.close()
        return output.getvalue()


def default_filename(report: Report, options: ExportOptions) -> str:
    """e.g. "summary_2024-01-01_2024-01-31.csv" """
    return f"{report.report_type}_{report.start_date.isoformat()}_{report.end_date.isoformat()}.{options.format.value}"

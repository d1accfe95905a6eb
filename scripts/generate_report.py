"""
Script to generate and export a report based on a YAML configuration.

Example configuration:

    user_email: owner@example.com
    filters:
      start_date: 2025-01-01
      end_date: 2025-01-31
      view_type: summary
      group_by: goal
      include_billable: true
      hourly_rate: 80
    export:
      format: xlsx
      include_client_info: true
      client_name: ACME
    output_path: reports/january.xlsx
"""

import sys
import yaml
import asyncio
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from timemaster.domain.reports import ExportOptions, ReportFilters
from timemaster.infra.config import configure_logging
from timemaster.infra.db import init_db
from timemaster.infra.repository import UserRepository
from timemaster.services.report_export import ReportExporter, default_filename
from timemaster.services.report_service import ReportService


class ReportJob(BaseModel):
    user_email: str
    filters: ReportFilters
    export: ExportOptions = ExportOptions()
    output_path: Optional[str] = None


async def main():
    if len(sys.argv) < 2:
        print("Usage: python generate_report.py <config_file.yaml>")
        sys.exit(1)

    config_path = Path(sys.argv[1])
    if not config_path.exists():
        print(f"Error: Config file '{config_path}' not found.")
        sys.exit(1)

    configure_logging()
    print(f"Loading configuration from {config_path}...")
    with open(config_path, 'r', encoding='utf-8') as f:
        config_data = yaml.safe_load(f) or {}

    try:
        job = ReportJob(**config_data)
    except ValidationError as e:
        print(f"Error parsing configuration: {e}")
        sys.exit(1)

    await init_db()
    user = await UserRepository().get_by_email(job.user_email)
    if user is None:
        print(f"Error: No user with email '{job.user_email}'.")
        sys.exit(1)

    print(f"Generating {job.filters.view_type.value} report for {job.filters.start_date} - {job.filters.end_date}")
    report = await ReportService().generate(user.id, job.filters)

    if job.output_path:
        output_file = Path(job.output_path)
    else:
        output_file = config_path.parent / default_filename(report, job.export)

    ReportExporter().write(report, job.export, output_file)
    print(f"Report successfully saved to: {output_file.absolute()}")


if __name__ == "__main__":
    asyncio.run(main())

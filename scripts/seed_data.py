"""
Data Seeder for TimeMaster.
Populates the database with a demo account, goals, a weekly schedule and a
month of time entries for testing and demo purposes.
"""

import asyncio
import sys
import random
from datetime import datetime, timedelta, date
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from timemaster.domain.models import Goal, PlanType, ScheduleBlock, Task, TaskStatus, TimeEntry, User, UserType
from timemaster.infra.config import configure_logging, get_settings
from timemaster.infra.db import init_db
from timemaster.infra.repository import UserRepository
from timemaster.services import (
    CategoryService, GoalService, LabelService, ScheduleService, TaskService, TimeEntryService
)

DEMO_EMAIL = "demo@timemaster.local"


async def reset_database():
    """Delete the existing SQLite file to ensure a fresh seed"""
    db_path = get_settings().data_dir / 'timemaster.db'
    if db_path.exists():
        print(f"Removing existing database at: {db_path}")
        try:
            db_path.unlink()
            print("Database removed.")
        except PermissionError:
            print("ERROR: Could not remove database. It might be in use.")
            sys.exit(1)
    else:
        print(f"No existing database found at: {db_path}")


async def seed():
    configure_logging()
    await reset_database()
    print("Starting data seeding...")

    # Creates tables if needed
    await init_db()

    # Internal account so plan limits never interrupt the seed
    user = await UserRepository().create(User(
        email=DEMO_EMAIL, name="Demo User", user_type=UserType.INTERNAL, plan=PlanType.PRO
    ))
    await CategoryService().seed_defaults(user.id)

    goal_service = GoalService()
    entry_service = TimeEntryService(goal_service=goal_service)

    # 1. Goals
    goals = {}
    for title, category, target, color in [
        ("Learn Rust", "LEARNING", 40, "#F97316"),
        ("Ship side project", "SIDE_PROJECT", 60, "#EC4899"),
        ("Run a half marathon", "HEALTH", 30, "#22C55E"),
    ]:
        print(f"Creating goal: {title}")
        goals[title] = await goal_service.create(user.id, Goal(
            user_id=user.id, title=title, category=category, target_hours=target, color=color
        ))

    label_service = LabelService()
    labels = {label.value: label for label in await label_service.seed_defaults(user.id)}
    await label_service.assign_to_goal(user.id, goals["Learn Rust"].id,
                                       [labels["HIGH_PRIORITY"].id, labels["PROFESSIONAL"].id])
    await label_service.assign_to_goal(user.id, goals["Run a half marathon"].id, [labels["PERSONAL"].id])

    # 2. Weekly schedule, Mon-Fri mornings plus runs on Tue/Thu/Sat
    schedule_service = ScheduleService()
    blocks = {}
    for dow in range(1, 6):
        blocks[dow] = await schedule_service.create(user.id, ScheduleBlock(
            user_id=user.id, title="Deep Work", day_of_week=dow, start_time="09:00", end_time="11:00",
            category="DEEP_WORK", goal_id=goals["Learn Rust"].id, series_id="deep-work"
        ))
    for dow in (2, 4, 6):
        await schedule_service.create(user.id, ScheduleBlock(
            user_id=user.id, title="Run", day_of_week=dow, start_time="18:00", end_time="19:00",
            category="EXERCISE", goal_id=goals["Run a half marathon"].id, series_id="runs"
        ))

    # 3. Tasks
    task_service = TaskService(goal_service=goal_service)
    for order, title in enumerate(["Read the ownership chapter", "Write a CLI parser", "Benchmark parser"]):
        await task_service.create(user.id, Task(
            user_id=user.id, title=title, goal_id=goals["Learn Rust"].id,
            status=TaskStatus.TODO, estimated_minutes=90, order=order
        ))

    # 4. Time entries for the last 30 days
    today = date.today()
    current = today - timedelta(days=30)
    while current < today:
        day_start = datetime.combine(current, datetime.min.time())
        dow = (current.weekday() + 1) % 7

        if dow in blocks:
            await entry_service.create(user.id, TimeEntry(
                user_id=user.id, task_name="Rust exercises", duration=random.choice([60, 90, 120]),
                date=day_start.replace(hour=9), goal_id=goals["Learn Rust"].id,
                schedule_block_id=blocks[dow].id
            ))
        if dow in (2, 4, 6) and random.random() > 0.2:
            await entry_service.create(user.id, TimeEntry(
                user_id=user.id, task_name="Easy run", duration=random.choice([40, 50, 60]),
                date=day_start.replace(hour=18), goal_id=goals["Run a half marathon"].id
            ))
        if random.random() > 0.5:
            await entry_service.create(user.id, TimeEntry(
                user_id=user.id, task_name="Landing page", duration=random.choice([30, 45]),
                date=day_start.replace(hour=20), goal_id=goals["Ship side project"].id
            ))

        print(f"Generated entries for {current}")
        current += timedelta(days=1)

    print(f"Seeding complete. Log in as {DEMO_EMAIL}.")


if __name__ == "__main__":
    asyncio.run(seed())

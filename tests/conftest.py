"""
Pytest configuration and fixtures.
"""

import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from timemaster.domain.models import PlanType, User
from timemaster.infra.config import Settings
from timemaster.infra.db import Base
from timemaster.infra.repository import (
    CategoryRepository, GoalRepository, LabelRepository, ScheduleBlockRepository, SharedAccessRepository,
    TaskRepository, TimeEntryRepository, UserRepository
)
from timemaster.services.category_service import CategoryService
from timemaster.services.email_service import EmailService
from timemaster.services.goal_service import GoalService
from timemaster.services.label_service import LabelService
from timemaster.services.ownership import OwnershipChecker
from timemaster.services.report_service import ReportService
from timemaster.services.schedule_service import ScheduleService
from timemaster.services.sharing_service import SharingService
from timemaster.services.task_service import TaskService
from timemaster.services.time_entry_service import TimeEntryService


@pytest_asyncio.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Create a new session for a test"""
    async_session = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest.fixture
def repos(db_session):
    """All repositories bound to the test session"""
    return SimpleNamespace(
        users=UserRepository(session=db_session),
        categories=CategoryRepository(session=db_session),
        labels=LabelRepository(session=db_session),
        goals=GoalRepository(session=db_session),
        blocks=ScheduleBlockRepository(session=db_session),
        tasks=TaskRepository(session=db_session),
        entries=TimeEntryRepository(session=db_session),
        shares=SharedAccessRepository(session=db_session),
    )


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        config_dir=tmp_path / "config",
        data_dir=tmp_path / "data",
        resend_api_key="re_test_key",
        app_url="https://app.example.com",
    )


@pytest.fixture
def email_service():
    """Email service whose sends always succeed without network access"""
    service = AsyncMock(spec=EmailService)
    service.send_share_invitation.return_value = "msg_1"
    service.send_share_accepted.return_value = "msg_2"
    return service


@pytest.fixture
def services(repos, email_service):
    """All services wired to the test repositories"""
    goals = GoalService(goal_repo=repos.goals, user_repo=repos.users)
    ownership = OwnershipChecker(goal_repo=repos.goals, task_repo=repos.tasks, block_repo=repos.blocks)
    return SimpleNamespace(
        goals=goals,
        entries=TimeEntryService(entry_repo=repos.entries, user_repo=repos.users, goal_service=goals,
                                 ownership=ownership),
        tasks=TaskService(task_repo=repos.tasks, entry_repo=repos.entries, goal_repo=repos.goals,
                          block_repo=repos.blocks, user_repo=repos.users, goal_service=goals,
                          ownership=ownership),
        schedule=ScheduleService(block_repo=repos.blocks, user_repo=repos.users, ownership=ownership),
        categories=CategoryService(category_repo=repos.categories),
        labels=LabelService(label_repo=repos.labels, goal_repo=repos.goals),
        sharing=SharingService(share_repo=repos.shares, user_repo=repos.users, goal_repo=repos.goals,
                               entry_repo=repos.entries, block_repo=repos.blocks, task_repo=repos.tasks,
                               email_service=email_service),
        reports=ReportService(entry_repo=repos.entries, goal_repo=repos.goals, task_repo=repos.tasks,
                              block_repo=repos.blocks, category_repo=repos.categories, currency="USD"),
    )


@pytest.fixture
def make_user(repos):
    """Factory creating persisted users: `await make_user("a@example.com", plan=PlanType.PRO)`"""
    async def _make(email: str = "owner@example.com", name: str = "Owner", **fields) -> User:
        fields.setdefault("plan", PlanType.FREE)
        return await repos.users.create(User(email=email, name=name, **fields))
    return _make

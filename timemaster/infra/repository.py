"""
Repository Pattern Implementation.

Architecture Decision: Why Repository Pattern?
Separates data access logic from business logic. Makes it easy to:
- Switch database implementations
- Inject an in-memory session for testing
- Keep services free of SQL
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, insert, update, delete, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from timemaster.domain.models import (
    DEFAULT_CATEGORY, Category, Goal, GoalStatus, Label, ScheduleBlock, SharedAccess, Task, TaskStatus,
    TimeEntry, TimeEntrySource, User
)
from timemaster.infra.db import (
    CategoryModel, GoalLabelModel, GoalModel, LabelModel, ScheduleBlockModel, SharedAccessModel, TaskModel,
    TimeEntryModel, UserModel, get_engine
)

LOGGED_HOURS_PRECISION = 6


class BaseRepository:
    """
    Session handling shared by all repositories.

    A session can be injected (tests, unit-of-work); otherwise a new one is
    opened from the global engine for each call.
    """

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session

    async def _get_session(self) -> AsyncSession:
        """Get session - either injected or create new one"""
        if self.session:
            return self.session
        engine = get_engine()
        return engine.get_session()


class UserRepository(BaseRepository):
    """
    Handles User persistence.
    """

    async def get_by_id(self, user_id: int) -> Optional[User]:
        session = await self._get_session()
        async with session:
            result = await session.execute(select(UserModel).where(UserModel.id == user_id))
            model = result.scalar_one_or_none()
            return User.model_validate(model) if model else None

    async def get_by_email(self, email: str) -> Optional[User]:
        session = await self._get_session()
        async with session:
            result = await session.execute(select(UserModel).where(UserModel.email == email))
            model = result.scalar_one_or_none()
            return User.model_validate(model) if model else None

    async def create(self, user: User) -> User:
        session = await self._get_session()
        async with session:
            model = UserModel(**user.model_dump(exclude={"id"}))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return User.model_validate(model)

    async def update(self, user: User) -> User:
        """Update billing and profile fields of an existing user"""
        session = await self._get_session()
        async with session:
            await session.execute(
                update(UserModel)
                .where(UserModel.id == user.id)
                .values(**user.model_dump(exclude={"id", "created_at"}))
            )
            await session.commit()
        return await self.get_by_id(user.id)


class CategoryRepository(BaseRepository):
    """
    Handles Category persistence.
    """

    async def get_all(self, user_id: int) -> List[Category]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(CategoryModel)
                .where(CategoryModel.user_id == user_id)
                .order_by(CategoryModel.order.asc(), CategoryModel.created_at.asc())
            )
            return [Category.model_validate(m) for m in result.scalars().all()]

    async def get_by_id(self, user_id: int, category_id: int) -> Optional[Category]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(CategoryModel).where(
                    and_(CategoryModel.id == category_id, CategoryModel.user_id == user_id)
                )
            )
            model = result.scalar_one_or_none()
            return Category.model_validate(model) if model else None

    async def get_by_value(self, user_id: int, value: str) -> Optional[Category]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(CategoryModel).where(
                    and_(CategoryModel.user_id == user_id, CategoryModel.value == value)
                )
            )
            model = result.scalar_one_or_none()
            return Category.model_validate(model) if model else None

    async def count(self, user_id: int) -> int:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(func.count(CategoryModel.id)).where(CategoryModel.user_id == user_id)
            )
            return result.scalar_one()

    async def max_order(self, user_id: int) -> int:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(func.max(CategoryModel.order)).where(CategoryModel.user_id == user_id)
            )
            return result.scalar_one_or_none() or 0

    async def create(self, category: Category) -> Category:
        session = await self._get_session()
        async with session:
            model = CategoryModel(**category.model_dump(exclude={"id"}))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return Category.model_validate(model)

    async def update(self, category: Category) -> Category:
        session = await self._get_session()
        async with session:
            await session.execute(
                update(CategoryModel)
                .where(CategoryModel.id == category.id)
                .values(name=category.name, value=category.value,
                        color=category.color, order=category.order)
            )
            await session.commit()
        return await self.get_by_id(category.user_id, category.id)

    async def delete(self, category_id: int) -> None:
        session = await self._get_session()
        async with session:
            await session.execute(delete(CategoryModel).where(CategoryModel.id == category_id))
            await session.commit()

    async def reassign(self, user_id: int, old_value: str, new_value: Optional[str]) -> int:
        """Point goals, schedule blocks and tasks using `old_value` at `new_value`"""
        session = await self._get_session()
        async with session:
            changed = 0
            for model in (GoalModel, ScheduleBlockModel, TaskModel):
                result = await session.execute(
                    update(model)
                    .where(and_(model.user_id == user_id, model.category == old_value))
                    .values(category=new_value)
                )
                changed += result.rowcount
            await session.commit()
            return changed


class LabelRepository(BaseRepository):
    """
    Handles Label persistence and the goal-label links.
    """

    async def _goal_counts(self, session: AsyncSession, label_ids: List[int]) -> Dict[int, int]:
        if not label_ids:
            return {}
        result = await session.execute(
            select(GoalLabelModel.label_id, func.count(GoalLabelModel.goal_id))
            .where(GoalLabelModel.label_id.in_(label_ids))
            .group_by(GoalLabelModel.label_id)
        )
        return {label_id: count for label_id, count in result.all()}

    def _to_labels(self, models, counts: Dict[int, int]) -> List[Label]:
        labels = []
        for model in models:
            label = Label.model_validate(model)
            label.goal_count = counts.get(model.id, 0)
            labels.append(label)
        return labels

    async def get_all(self, user_id: int) -> List[Label]:
        """Labels of a user in display order, each with its goal count"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(LabelModel)
                .where(LabelModel.user_id == user_id)
                .order_by(LabelModel.order.asc(), LabelModel.created_at.asc(), LabelModel.id.asc())
            )
            models = result.scalars().all()
            counts = await self._goal_counts(session, [m.id for m in models])
            return self._to_labels(models, counts)

    async def get_by_id(self, user_id: int, label_id: int) -> Optional[Label]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(LabelModel).where(and_(LabelModel.id == label_id, LabelModel.user_id == user_id))
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            counts = await self._goal_counts(session, [model.id])
            return self._to_labels([model], counts)[0]

    async def get_by_ids(self, user_id: int, label_ids: Sequence[int]) -> List[Label]:
        if not label_ids:
            return []
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(LabelModel).where(and_(LabelModel.user_id == user_id, LabelModel.id.in_(list(label_ids))))
            )
            return [Label.model_validate(m) for m in result.scalars().all()]

    async def get_by_value(self, user_id: int, value: str) -> Optional[Label]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(LabelModel).where(and_(LabelModel.user_id == user_id, LabelModel.value == value))
            )
            model = result.scalar_one_or_none()
            return Label.model_validate(model) if model else None

    async def count(self, user_id: int) -> int:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(func.count(LabelModel.id)).where(LabelModel.user_id == user_id)
            )
            return result.scalar_one()

    async def max_order(self, user_id: int) -> int:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(func.max(LabelModel.order)).where(LabelModel.user_id == user_id)
            )
            return result.scalar_one_or_none() or 0

    async def create(self, label: Label) -> Label:
        session = await self._get_session()
        async with session:
            model = LabelModel(**label.model_dump(exclude={"id", "goal_count"}))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return Label.model_validate(model)

    async def update_fields(self, user_id: int, label_id: int, values: Dict[str, Any]) -> Optional[Label]:
        session = await self._get_session()
        async with session:
            await session.execute(
                update(LabelModel)
                .where(and_(LabelModel.id == label_id, LabelModel.user_id == user_id))
                .values(**values)
            )
            await session.commit()
        return await self.get_by_id(user_id, label_id)

    async def reorder(self, user_id: int, label_ids: List[int]) -> None:
        """Persist the given order, starting at 1"""
        session = await self._get_session()
        async with session:
            for index, label_id in enumerate(label_ids, start=1):
                await session.execute(
                    update(LabelModel)
                    .where(and_(LabelModel.id == label_id, LabelModel.user_id == user_id))
                    .values(order=index)
                )
            await session.commit()

    async def delete(self, label_id: int) -> None:
        """Delete a label together with its goal links"""
        session = await self._get_session()
        async with session:
            await session.execute(delete(GoalLabelModel).where(GoalLabelModel.label_id == label_id))
            await session.execute(delete(LabelModel).where(LabelModel.id == label_id))
            await session.commit()

    async def set_goal_labels(self, goal_id: int, label_ids: Sequence[int]) -> None:
        """Replace the labels of a goal"""
        session = await self._get_session()
        async with session:
            await session.execute(delete(GoalLabelModel).where(GoalLabelModel.goal_id == goal_id))
            rows = [{"goal_id": goal_id, "label_id": label_id} for label_id in dict.fromkeys(label_ids)]
            if rows:
                await session.execute(insert(GoalLabelModel).values(rows))
            await session.commit()

    async def get_for_goal(self, goal_id: int) -> List[Label]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(LabelModel)
                .join(GoalLabelModel, GoalLabelModel.label_id == LabelModel.id)
                .where(GoalLabelModel.goal_id == goal_id)
                .order_by(LabelModel.order.asc(), LabelModel.id.asc())
            )
            return [Label.model_validate(m) for m in result.scalars().all()]


class GoalRepository(BaseRepository):
    """
    Handles Goal persistence.

    Logged hours are only ever changed with a single UPDATE statement so that
    concurrent progress updates cannot overwrite each other.
    """

    async def get_by_id(self, goal_id: int, user_id: Optional[int] = None) -> Optional[Goal]:
        session = await self._get_session()
        async with session:
            stmt = select(GoalModel).where(GoalModel.id == goal_id)
            if user_id is not None:
                stmt = stmt.where(GoalModel.user_id == user_id)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return Goal.model_validate(model) if model else None

    async def get_all(self, user_id: int, status: Optional[GoalStatus] = None) -> List[Goal]:
        session = await self._get_session()
        async with session:
            stmt = select(GoalModel).where(GoalModel.user_id == user_id)
            if status is not None:
                stmt = stmt.where(GoalModel.status == status)
            result = await session.execute(stmt.order_by(GoalModel.created_at.desc(), GoalModel.id.desc()))
            return [Goal.model_validate(m) for m in result.scalars().all()]

    async def get_by_ids(self, user_id: int, goal_ids: Sequence[int]) -> List[Goal]:
        if not goal_ids:
            return []
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(GoalModel).where(
                    and_(GoalModel.user_id == user_id, GoalModel.id.in_(list(goal_ids)))
                )
            )
            return [Goal.model_validate(m) for m in result.scalars().all()]

    async def count_unfinished(self, user_id: int) -> int:
        """Goals that still count towards the plan limit"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(func.count(GoalModel.id)).where(
                    and_(GoalModel.user_id == user_id, GoalModel.status != GoalStatus.COMPLETED)
                )
            )
            return result.scalar_one()

    async def count_by_status(self, user_id: int) -> Dict[GoalStatus, int]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(GoalModel.status, func.count(GoalModel.id))
                .where(GoalModel.user_id == user_id)
                .group_by(GoalModel.status)
            )
            counts = {status: 0 for status in GoalStatus}
            for status, count in result.all():
                counts[status] = count
            return counts

    async def create(self, goal: Goal) -> Goal:
        session = await self._get_session()
        async with session:
            model = GoalModel(**goal.model_dump(exclude={"id"}))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return Goal.model_validate(model)

    async def update(self, goal: Goal) -> Goal:
        """Update editable fields. logged_hours is left to add_logged_minutes."""
        session = await self._get_session()
        async with session:
            await session.execute(
                update(GoalModel)
                .where(GoalModel.id == goal.id)
                .values(
                    title=goal.title,
                    description=goal.description,
                    category=goal.category,
                    target_hours=goal.target_hours,
                    status=goal.status,
                    color=goal.color,
                    deadline=goal.deadline
                )
            )
            await session.commit()
        return await self.get_by_id(goal.id)

    async def add_logged_minutes(self, goal_id: int, minutes: int, user_id: Optional[int] = None) -> bool:
        """
        Atomically add (or subtract, for negative values) minutes to a goal.

        The stored hours are rounded to LOGGED_HOURS_PRECISION places so that
        sums of minute fractions (ten times 6 minutes) land exactly on the
        target. Marks the goal COMPLETED once logged hours reach the target;
        a decrement never reopens a completed goal. Returns True if the goal
        transitioned to COMPLETED.
        """
        match = GoalModel.id == goal_id
        if user_id is not None:
            match = and_(match, GoalModel.user_id == user_id)

        session = await self._get_session()
        async with session:
            await session.execute(
                update(GoalModel)
                .where(match)
                .values(logged_hours=func.round(GoalModel.logged_hours + minutes / 60.0,
                                                LOGGED_HOURS_PRECISION))
            )
            completed = 0
            if minutes > 0:
                result = await session.execute(
                    update(GoalModel)
                    .where(
                        and_(
                            match,
                            GoalModel.status != GoalStatus.COMPLETED,
                            GoalModel.logged_hours >= GoalModel.target_hours
                        )
                    )
                    .values(status=GoalStatus.COMPLETED)
                )
                completed = result.rowcount
            await session.commit()
            return completed > 0

    async def delete(self, goal_id: int) -> None:
        session = await self._get_session()
        async with session:
            await session.execute(delete(GoalLabelModel).where(GoalLabelModel.goal_id == goal_id))
            await session.execute(delete(GoalModel).where(GoalModel.id == goal_id))
            await session.commit()


class ScheduleBlockRepository(BaseRepository):
    """
    Handles ScheduleBlock persistence.
    """

    async def get_by_id(self, user_id: int, block_id: int) -> Optional[ScheduleBlock]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(ScheduleBlockModel).where(
                    and_(ScheduleBlockModel.id == block_id, ScheduleBlockModel.user_id == user_id)
                )
            )
            model = result.scalar_one_or_none()
            return ScheduleBlock.model_validate(model) if model else None

    async def get_all(self, user_id: int) -> List[ScheduleBlock]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(ScheduleBlockModel)
                .where(ScheduleBlockModel.user_id == user_id)
                .order_by(ScheduleBlockModel.day_of_week.asc(), ScheduleBlockModel.start_time.asc())
            )
            return [ScheduleBlock.model_validate(m) for m in result.scalars().all()]

    async def get_by_day(self, user_id: int, day_of_week: int,
                         exclude_id: Optional[int] = None) -> List[ScheduleBlock]:
        session = await self._get_session()
        async with session:
            stmt = select(ScheduleBlockModel).where(
                and_(ScheduleBlockModel.user_id == user_id, ScheduleBlockModel.day_of_week == day_of_week)
            )
            if exclude_id is not None:
                stmt = stmt.where(ScheduleBlockModel.id != exclude_id)
            result = await session.execute(stmt.order_by(ScheduleBlockModel.start_time.asc()))
            return [ScheduleBlock.model_validate(m) for m in result.scalars().all()]

    async def get_series(self, user_id: int, series_id: str) -> List[ScheduleBlock]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(ScheduleBlockModel).where(
                    and_(ScheduleBlockModel.user_id == user_id, ScheduleBlockModel.series_id == series_id)
                )
            )
            return [ScheduleBlock.model_validate(m) for m in result.scalars().all()]

    async def count(self, user_id: int) -> int:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(func.count(ScheduleBlockModel.id)).where(ScheduleBlockModel.user_id == user_id)
            )
            return result.scalar_one()

    async def create(self, block: ScheduleBlock) -> ScheduleBlock:
        session = await self._get_session()
        async with session:
            model = ScheduleBlockModel(**block.model_dump(exclude={"id"}))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return ScheduleBlock.model_validate(model)

    async def update_fields(self, user_id: int, block_id: int, values: Dict[str, Any]) -> Optional[ScheduleBlock]:
        session = await self._get_session()
        async with session:
            await session.execute(
                update(ScheduleBlockModel)
                .where(and_(ScheduleBlockModel.id == block_id, ScheduleBlockModel.user_id == user_id))
                .values(**values)
            )
            await session.commit()
        return await self.get_by_id(user_id, block_id)

    async def update_series(self, user_id: int, series_id: str, values: Dict[str, Any]) -> int:
        """Apply the same change to every block of a series in one statement"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                update(ScheduleBlockModel)
                .where(and_(ScheduleBlockModel.user_id == user_id, ScheduleBlockModel.series_id == series_id))
                .values(**values)
            )
            await session.commit()
            return result.rowcount

    async def delete(self, block_id: int) -> None:
        session = await self._get_session()
        async with session:
            await session.execute(delete(ScheduleBlockModel).where(ScheduleBlockModel.id == block_id))
            await session.commit()


class TaskRepository(BaseRepository):
    """
    Handles all Task-related database operations.

    Converts between domain models (Pydantic) and ORM models (SQLAlchemy).
    """

    async def _tracked_minutes(self, session: AsyncSession, task_ids: List[int]) -> Dict[int, int]:
        if not task_ids:
            return {}
        result = await session.execute(
            select(TimeEntryModel.task_id, func.sum(TimeEntryModel.duration))
            .where(TimeEntryModel.task_id.in_(task_ids))
            .group_by(TimeEntryModel.task_id)
        )
        return {task_id: int(total or 0) for task_id, total in result.all()}

    async def get_by_id(self, user_id: int, task_id: int) -> Optional[Task]:
        """Get a specific task by ID, including its tracked minutes"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TaskModel).where(and_(TaskModel.id == task_id, TaskModel.user_id == user_id))
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            tracked = await self._tracked_minutes(session, [model.id])
            task = Task.model_validate(model)
            task.tracked_minutes = tracked.get(model.id, 0)
            return task

    async def get_all(self, user_id: int, status: Optional[TaskStatus] = None,
                      goal_id: Optional[int] = None, schedule_block_id: Optional[int] = None,
                      day_of_week: Optional[int] = None) -> List[Task]:
        """Get tasks of a user, optionally filtered"""
        session = await self._get_session()
        async with session:
            stmt = select(TaskModel).where(TaskModel.user_id == user_id)
            if status is not None:
                stmt = stmt.where(TaskModel.status == status)
            if goal_id is not None:
                stmt = stmt.where(TaskModel.goal_id == goal_id)
            if schedule_block_id is not None:
                stmt = stmt.where(TaskModel.schedule_block_id == schedule_block_id)
            if day_of_week is not None:
                stmt = stmt.where(
                    TaskModel.schedule_block_id.in_(
                        select(ScheduleBlockModel.id).where(ScheduleBlockModel.day_of_week == day_of_week)
                    )
                )
            stmt = stmt.order_by(TaskModel.status.asc(), TaskModel.order.asc(), TaskModel.created_at.desc())

            result = await session.execute(stmt)
            models = result.scalars().all()
            tracked = await self._tracked_minutes(session, [m.id for m in models])

            tasks = []
            for model in models:
                task = Task.model_validate(model)
                task.tracked_minutes = tracked.get(model.id, 0)
                tasks.append(task)
            return tasks

    async def get_by_ids(self, user_id: int, task_ids: Sequence[int]) -> List[Task]:
        if not task_ids:
            return []
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TaskModel).where(and_(TaskModel.user_id == user_id, TaskModel.id.in_(list(task_ids))))
            )
            return [Task.model_validate(m) for m in result.scalars().all()]

    async def create(self, task: Task) -> Task:
        """Create a new task"""
        session = await self._get_session()
        async with session:
            model = TaskModel(**task.model_dump(exclude={"id", "tracked_minutes"}))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return Task.model_validate(model)

    async def update_fields(self, user_id: int, task_id: int, values: Dict[str, Any]) -> Optional[Task]:
        """Update an existing task"""
        session = await self._get_session()
        async with session:
            await session.execute(
                update(TaskModel)
                .where(and_(TaskModel.id == task_id, TaskModel.user_id == user_id))
                .values(**values)
            )
            await session.commit()
        return await self.get_by_id(user_id, task_id)

    async def reorder(self, user_id: int, task_ids: List[int]) -> None:
        """Persist the given order; ids not owned by the user are ignored"""
        session = await self._get_session()
        async with session:
            for index, task_id in enumerate(task_ids):
                await session.execute(
                    update(TaskModel)
                    .where(and_(TaskModel.id == task_id, TaskModel.user_id == user_id))
                    .values(order=index)
                )
            await session.commit()

    async def delete(self, task_id: int) -> None:
        session = await self._get_session()
        async with session:
            await session.execute(delete(TaskModel).where(TaskModel.id == task_id))
            await session.commit()


class TimeEntryRepository(BaseRepository):
    """
    Handles all TimeEntry-related database operations.
    """

    async def create(self, entry: TimeEntry) -> TimeEntry:
        """Create a new time entry"""
        session = await self._get_session()
        async with session:
            model = TimeEntryModel(**entry.model_dump(exclude={"id"}))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return TimeEntry.model_validate(model)

    async def get_by_id(self, user_id: int, entry_id: int) -> Optional[TimeEntry]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TimeEntryModel).where(
                    and_(TimeEntryModel.id == entry_id, TimeEntryModel.user_id == user_id)
                )
            )
            model = result.scalar_one_or_none()
            return TimeEntry.model_validate(model) if model else None

    async def update_fields(self, entry_id: int, values: Dict[str, Any]) -> Optional[TimeEntry]:
        session = await self._get_session()
        async with session:
            await session.execute(
                update(TimeEntryModel).where(TimeEntryModel.id == entry_id).values(**values)
            )
            await session.commit()
            result = await session.execute(select(TimeEntryModel).where(TimeEntryModel.id == entry_id))
            model = result.scalar_one_or_none()
            return TimeEntry.model_validate(model) if model else None

    async def delete(self, entry_id: int) -> None:
        """Delete a time entry by ID"""
        session = await self._get_session()
        async with session:
            await session.execute(delete(TimeEntryModel).where(TimeEntryModel.id == entry_id))
            await session.commit()

    async def get_in_range(self, user_id: int, start: datetime, end: datetime,
                           goal_ids: Optional[Sequence[int]] = None,
                           task_ids: Optional[Sequence[int]] = None,
                           category: Optional[str] = None,
                           newest_first: bool = False) -> List[TimeEntry]:
        """
        Get entries of a user with start in [start, end], optionally restricted
        to goals, tasks, or a category.

        An entry's category is its goal's category, else its task's category,
        else OTHER.
        """
        session = await self._get_session()
        async with session:
            stmt = select(TimeEntryModel).where(
                and_(
                    TimeEntryModel.user_id == user_id,
                    TimeEntryModel.date >= start,
                    TimeEntryModel.date <= end
                )
            )
            if goal_ids:
                stmt = stmt.where(TimeEntryModel.goal_id.in_(list(goal_ids)))
            if task_ids:
                stmt = stmt.where(TimeEntryModel.task_id.in_(list(task_ids)))
            if category:
                goal_category = (
                    select(GoalModel.category)
                    .where(GoalModel.id == TimeEntryModel.goal_id)
                    .scalar_subquery()
                )
                task_category = (
                    select(func.nullif(TaskModel.category, ""))
                    .where(TaskModel.id == TimeEntryModel.task_id)
                    .scalar_subquery()
                )
                stmt = stmt.where(func.coalesce(goal_category, task_category, DEFAULT_CATEGORY) == category)
            order = TimeEntryModel.date.desc() if newest_first else TimeEntryModel.date.asc()
            result = await session.execute(stmt.order_by(order, TimeEntryModel.id.asc()))
            return [TimeEntry.model_validate(m) for m in result.scalars().all()]

    async def count_in_range(self, user_id: int, start: datetime, end: datetime) -> int:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(func.count(TimeEntryModel.id)).where(
                    and_(
                        TimeEntryModel.user_id == user_id,
                        TimeEntryModel.date >= start,
                        TimeEntryModel.date <= end
                    )
                )
            )
            return result.scalar_one()

    async def sum_in_range(self, user_id: int, start: datetime, end: datetime) -> int:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(func.sum(TimeEntryModel.duration)).where(
                    and_(
                        TimeEntryModel.user_id == user_id,
                        TimeEntryModel.date >= start,
                        TimeEntryModel.date <= end
                    )
                )
            )
            return int(result.scalar_one_or_none() or 0)

    async def get_recent(self, user_id: int, limit: int = 5) -> List[TimeEntry]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TimeEntryModel)
                .where(TimeEntryModel.user_id == user_id)
                .order_by(TimeEntryModel.created_at.desc(), TimeEntryModel.id.desc())
                .limit(limit)
            )
            return [TimeEntry.model_validate(m) for m in result.scalars().all()]

    async def get_latest(self, user_id: int, limit: int = 20) -> List[TimeEntry]:
        """Most recent entries by work date"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TimeEntryModel)
                .where(TimeEntryModel.user_id == user_id)
                .order_by(TimeEntryModel.date.desc(), TimeEntryModel.id.desc())
                .limit(limit)
            )
            return [TimeEntry.model_validate(m) for m in result.scalars().all()]

    async def sum_for_task(self, task_id: int, source: TimeEntrySource) -> int:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(func.sum(TimeEntryModel.duration)).where(
                    and_(TimeEntryModel.task_id == task_id, TimeEntryModel.source == source)
                )
            )
            return int(result.scalar_one_or_none() or 0)

    async def get_latest_for_task(self, task_id: int, source: TimeEntrySource) -> Optional[TimeEntry]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TimeEntryModel)
                .where(and_(TimeEntryModel.task_id == task_id, TimeEntryModel.source == source))
                .order_by(TimeEntryModel.created_at.desc(), TimeEntryModel.id.desc())
                .limit(1)
            )
            model = result.scalar_one_or_none()
            return TimeEntry.model_validate(model) if model else None


class SharedAccessRepository(BaseRepository):
    """
    Handles SharedAccess persistence.
    """

    async def create(self, share: SharedAccess) -> SharedAccess:
        session = await self._get_session()
        async with session:
            model = SharedAccessModel(**share.model_dump(exclude={"id"}))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return SharedAccess.model_validate(model)

    async def get_by_id(self, share_id: int) -> Optional[SharedAccess]:
        session = await self._get_session()
        async with session:
            result = await session.execute(select(SharedAccessModel).where(SharedAccessModel.id == share_id))
            model = result.scalar_one_or_none()
            return SharedAccess.model_validate(model) if model else None

    async def get_by_token(self, token: str) -> Optional[SharedAccess]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(SharedAccessModel).where(SharedAccessModel.invite_token == token)
            )
            model = result.scalar_one_or_none()
            return SharedAccess.model_validate(model) if model else None

    async def find_for_recipient(self, owner_id: int, email: str) -> List[SharedAccess]:
        """Grants from owner addressed to `email`, pending or accepted"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(SharedAccessModel).where(
                    and_(
                        SharedAccessModel.owner_id == owner_id,
                        or_(
                            SharedAccessModel.invite_email == email,
                            SharedAccessModel.shared_with_id.in_(
                                select(UserModel.id).where(UserModel.email == email)
                            )
                        )
                    )
                )
            )
            return [SharedAccess.model_validate(m) for m in result.scalars().all()]

    async def get_accepted(self, owner_id: int, accessor_id: int) -> Optional[SharedAccess]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(SharedAccessModel).where(
                    and_(
                        SharedAccessModel.owner_id == owner_id,
                        SharedAccessModel.shared_with_id == accessor_id,
                        SharedAccessModel.is_accepted == True
                    )
                ).limit(1)
            )
            model = result.scalar_one_or_none()
            return SharedAccess.model_validate(model) if model else None

    async def list_shared_with(self, user_id: int) -> List[SharedAccess]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(SharedAccessModel)
                .where(and_(SharedAccessModel.shared_with_id == user_id, SharedAccessModel.is_accepted == True))
                .order_by(SharedAccessModel.created_at.desc())
            )
            return [SharedAccess.model_validate(m) for m in result.scalars().all()]

    async def list_owned(self, owner_id: int) -> List[SharedAccess]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(SharedAccessModel)
                .where(SharedAccessModel.owner_id == owner_id)
                .order_by(SharedAccessModel.created_at.desc())
            )
            return [SharedAccess.model_validate(m) for m in result.scalars().all()]

    async def list_pending_for(self, user_id: int, email: str) -> List[SharedAccess]:
        """Pending invitations addressed to a user, excluding ones they created"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(SharedAccessModel)
                .where(
                    and_(
                        SharedAccessModel.owner_id != user_id,
                        SharedAccessModel.is_accepted == False,
                        or_(
                            SharedAccessModel.invite_email == email,
                            SharedAccessModel.shared_with_id == user_id
                        )
                    )
                )
                .order_by(SharedAccessModel.created_at.desc())
            )
            return [SharedAccess.model_validate(m) for m in result.scalars().all()]

    async def update_fields(self, share_id: int, values: Dict[str, Any]) -> Optional[SharedAccess]:
        session = await self._get_session()
        async with session:
            await session.execute(
                update(SharedAccessModel).where(SharedAccessModel.id == share_id).values(**values)
            )
            await session.commit()
        return await self.get_by_id(share_id)

    async def delete(self, share_id: int) -> None:
        session = await self._get_session()
        async with session:
            await session.execute(delete(SharedAccessModel).where(SharedAccessModel.id == share_id))
            await session.commit()

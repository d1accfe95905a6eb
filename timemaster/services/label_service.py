"""
Label Service - free-form tags for goals.
"""

import datetime
import logging
from typing import Dict, List, Optional

from timemaster.domain.errors import ConflictError, NotFoundError, ValidationError
from timemaster.domain.models import Label
from timemaster.infra.repository import GoalRepository, LabelRepository
from timemaster.services.category_service import value_from_name

logger = logging.getLogger(__name__)

DEFAULT_LABEL_COLOR = "#6B7280"


def default_labels(year: int):
    """(name, value, color) of the labels every new user starts with"""
    return [
        ("Q1", "Q1", "#3B82F6"),
        ("Q2", "Q2", "#22C55E"),
        ("Q3", "Q3", "#F97316"),
        ("Q4", "Q4", "#EC4899"),
        (str(year), str(year), "#8B5CF6"),
        ("High Priority", "HIGH_PRIORITY", "#EF4444"),
        ("Personal", "PERSONAL", "#06B6D4"),
        ("Professional", "PROFESSIONAL", "#6366F1"),
    ]


class LabelService:
    """
    CRUD for labels and the labels attached to goals.

    Like categories, a label is identified per user by the value derived from
    its name, so "High priority" and "high-priority" collide.
    """

    def __init__(self, label_repo: Optional[LabelRepository] = None,
                 goal_repo: Optional[GoalRepository] = None):
        self.label_repo = label_repo or LabelRepository()
        self.goal_repo = goal_repo or GoalRepository()

    async def _ensure_unique(self, user_id: int, name: str, value: str) -> None:
        if await self.label_repo.get_by_value(user_id, value) is not None:
            raise ConflictError(f'Label with name "{name}" already exists', context={"value": value})

    async def create(self, user_id: int, name: str, color: Optional[str] = None,
                     order: Optional[int] = None) -> Label:
        value = value_from_name(name)
        if not value:
            raise ValidationError("Label name must contain letters or digits", field="name", value=name)
        await self._ensure_unique(user_id, name, value)

        if order is None:
            order = await self.label_repo.max_order(user_id) + 1

        return await self.label_repo.create(Label(
            user_id=user_id, name=name, value=value, color=color or DEFAULT_LABEL_COLOR, order=order
        ))

    async def find_all(self, user_id: int) -> List[Label]:
        return await self.label_repo.get_all(user_id)

    async def find_one(self, user_id: int, label_id: int) -> Label:
        label = await self.label_repo.get_by_id(user_id, label_id)
        if label is None:
            raise NotFoundError("Label not found", context={"label_id": label_id})
        return label

    async def update(self, user_id: int, label_id: int, changes: Dict) -> Label:
        """Rename, recolor or reorder. A rename regenerates the value."""
        label = await self.find_one(user_id, label_id)
        values = {}

        name = changes.get("name")
        if name and name != label.name:
            value = value_from_name(name)
            if not value:
                raise ValidationError("Label name must contain letters or digits", field="name", value=name)
            if value != label.value:
                await self._ensure_unique(user_id, name, value)
            values["name"] = name
            values["value"] = value

        if changes.get("color"):
            values["color"] = changes["color"]
        if changes.get("order") is not None:
            values["order"] = changes["order"]

        if not values:
            return label
        return await self.label_repo.update_fields(user_id, label_id, values)

    async def delete(self, user_id: int, label_id: int) -> None:
        """Delete a label; goals that carried it simply lose it"""
        await self.find_one(user_id, label_id)
        await self.label_repo.delete(label_id)

    async def reorder(self, user_id: int, label_ids: List[int]) -> List[Label]:
        await self._ensure_owned(user_id, label_ids)
        await self.label_repo.reorder(user_id, label_ids)
        return await self.find_all(user_id)

    async def seed_defaults(self, user_id: int, year: Optional[int] = None) -> List[Label]:
        """Create the default labels for a user who has none yet"""
        if await self.label_repo.count(user_id) > 0:
            return []

        year = year or datetime.date.today().year
        created = []
        for order, (name, value, color) in enumerate(default_labels(year), start=1):
            created.append(await self.label_repo.create(
                Label(user_id=user_id, name=name, value=value, color=color, order=order, is_default=True)
            ))
        logger.info(f"Seeded {len(created)} default labels for user {user_id}")
        return created

    async def assign_to_goal(self, user_id: int, goal_id: int, label_ids: List[int]) -> List[Label]:
        """Replace the labels of one of the user's goals"""
        await self._ensure_goal(user_id, goal_id)
        await self._ensure_owned(user_id, label_ids)
        await self.label_repo.set_goal_labels(goal_id, label_ids)
        return await self.label_repo.get_for_goal(goal_id)

    async def get_for_goal(self, user_id: int, goal_id: int) -> List[Label]:
        await self._ensure_goal(user_id, goal_id)
        return await self.label_repo.get_for_goal(goal_id)

    async def _ensure_goal(self, user_id: int, goal_id: int) -> None:
        if await self.goal_repo.get_by_id(goal_id, user_id=user_id) is None:
            raise NotFoundError("Goal not found", context={"goal_id": goal_id})

    async def _ensure_owned(self, user_id: int, label_ids: List[int]) -> None:
        unique_ids = set(label_ids)
        found = await self.label_repo.get_by_ids(user_id, list(unique_ids))
        if len(found) != len(unique_ids):
            missing = sorted(unique_ids - {label.id for label in found})
            raise NotFoundError("One or more labels not found", context={"label_ids": missing})

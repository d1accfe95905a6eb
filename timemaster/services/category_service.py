"""
Category Service - user-defined labels for goals, schedule blocks and tasks.
"""

import logging
import re
from typing import Dict, List, Optional

from timemaster.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from timemaster.domain.models import Category
from timemaster.infra.repository import CategoryRepository

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "OTHER"

DEFAULT_CATEGORIES = [
    # Goal categories
    ("Learning", "LEARNING", "#3B82F6"),
    ("Work", "WORK", "#22D3EE"),
    ("Health", "HEALTH", "#22C55E"),
    ("Creative", "CREATIVE", "#EC4899"),
    # Schedule / task categories
    ("Deep Work", "DEEP_WORK", "#FFD700"),
    ("Exercise", "EXERCISE", "#F97316"),
    ("Side Project", "SIDE_PROJECT", "#EC4899"),
    ("DSA", "DSA", "#FFD700"),
    ("Meeting", "MEETING", "#8B5CF6"),
    ("Admin", "ADMIN", "#9CA3AF"),
    ("Break", "BREAK", "#D1D5DB"),
    ("Other", "OTHER", "#9CA3AF"),
]


def value_from_name(name: str) -> str:
    """
    Derive the stable category key from its display name.

    "Deep Work" -> "DEEP_WORK", "  C++ / Rust " -> "C_RUST"
    """
    value = re.sub(r"[^A-Z0-9]", "_", name.upper())
    value = re.sub(r"_+", "_", value)
    return value.strip("_")


class CategoryService:
    def __init__(self, category_repo: Optional[CategoryRepository] = None):
        self.category_repo = category_repo or CategoryRepository()

    async def create(self, user_id: int, name: str, color: str = "#9CA3AF",
                     order: Optional[int] = None) -> Category:
        value = value_from_name(name)
        if not value:
            raise ValidationError("Category name must contain letters or digits", field="name", value=name)

        if await self.category_repo.get_by_value(user_id, value) is not None:
            raise ConflictError(f'Category with name "{name}" already exists', context={"value": value})

        if order is None:
            order = await self.category_repo.max_order(user_id) + 1

        return await self.category_repo.create(
            Category(user_id=user_id, name=name, value=value, color=color, order=order)
        )

    async def find_all(self, user_id: int) -> List[Category]:
        return await self.category_repo.get_all(user_id)

    async def find_one(self, user_id: int, category_id: int) -> Category:
        category = await self.category_repo.get_by_id(user_id, category_id)
        if category is None:
            raise NotFoundError("Category not found", context={"category_id": category_id})
        return category

    async def update(self, user_id: int, category_id: int, changes: Dict) -> Category:
        """Rename, recolor or reorder. A rename regenerates the value and is checked for collisions."""
        category = await self.find_one(user_id, category_id)
        updated = category.model_copy()

        name = changes.get("name")
        if name and name != category.name:
            value = value_from_name(name)
            if value != category.value and await self.category_repo.get_by_value(user_id, value) is not None:
                raise ConflictError(f'Category with name "{name}" already exists', context={"value": value})
            updated.name = name
            updated.value = value

        if changes.get("color"):
            updated.color = changes["color"]
        if changes.get("order") is not None:
            updated.order = changes["order"]

        result = await self.category_repo.update(updated)
        if updated.value != category.value:
            await self.category_repo.reassign(user_id, category.value, updated.value)
        return result

    async def delete(self, user_id: int, category_id: int) -> Dict:
        """
        Delete a custom category. Goals, blocks and tasks that used it fall
        back to OTHER.
        """
        category = await self.find_one(user_id, category_id)
        if category.is_default:
            raise ForbiddenError("Default categories cannot be deleted", context={"category_id": category_id})

        await self.category_repo.delete(category_id)
        usage = await self.category_repo.reassign(user_id, category.value, FALLBACK_CATEGORY)
        return {"was_in_use": usage > 0, "usage_count": usage}

    async def seed_defaults(self, user_id: int) -> List[Category]:
        """Create the default categories for a user who has none yet"""
        if await self.category_repo.count(user_id) > 0:
            return []

        created = []
        for order, (name, value, color) in enumerate(DEFAULT_CATEGORIES, start=1):
            created.append(await self.category_repo.create(
                Category(user_id=user_id, name=name, value=value, color=color, order=order, is_default=True)
            ))
        logger.info(f"Seeded {len(created)} default categories for user {user_id}")
        return created

"""
Tests for user categories.
"""

import pytest

from timemaster.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from timemaster.domain.models import Goal, ScheduleBlock
from timemaster.services.category_service import DEFAULT_CATEGORIES, value_from_name


@pytest.mark.parametrize("name,expected", [
    ("Deep Work", "DEEP_WORK"),
    ("  C++ / Rust ", "C_RUST"),
    ("dsa", "DSA"),
    ("!!!", ""),
])
def test_value_from_name(name, expected):
    assert value_from_name(name) == expected


@pytest.mark.asyncio
async def test_seed_defaults_only_once(services, make_user):
    user = await make_user()

    seeded = await services.categories.seed_defaults(user.id)
    again = await services.categories.seed_defaults(user.id)

    assert len(seeded) == len(DEFAULT_CATEGORIES)
    assert all(c.is_default for c in seeded)
    assert again == []
    assert [c.value for c in await services.categories.find_all(user.id)][:2] == ["LEARNING", "WORK"]


@pytest.mark.asyncio
async def test_create_appends_and_rejects_duplicates(services, make_user):
    user = await make_user()
    await services.categories.seed_defaults(user.id)

    created = await services.categories.create(user.id, "Open Source", "#111111")
    assert created.value == "OPEN_SOURCE"
    assert created.order == len(DEFAULT_CATEGORIES) + 1
    assert created.is_default is False

    with pytest.raises(ConflictError):
        await services.categories.create(user.id, "open source")
    with pytest.raises(ValidationError):
        await services.categories.create(user.id, "???")


@pytest.mark.asyncio
async def test_categories_are_per_user(services, make_user):
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    mine = await services.categories.create(alice.id, "Reading")

    await services.categories.create(bob.id, "Reading")
    with pytest.raises(NotFoundError):
        await services.categories.find_one(bob.id, mine.id)


@pytest.mark.asyncio
async def test_rename_moves_references(services, make_user):
    user = await make_user()
    category = await services.categories.create(user.id, "Reading")
    goal = await services.goals.create(user.id, Goal(user_id=user.id, title="Books", target_hours=20,
                                                     category="READING"))
    await services.categories.create(user.id, "Writing")

    with pytest.raises(ConflictError):
        await services.categories.update(user.id, category.id, {"name": "Writing"})

    renamed = await services.categories.update(user.id, category.id, {"name": "Reading List", "color": "#000000"})

    assert renamed.value == "READING_LIST"
    assert renamed.color == "#000000"
    assert (await services.goals.find_one(user.id, goal.id)).category == "READING_LIST"


@pytest.mark.asyncio
async def test_delete_custom_category_falls_back_to_other(services, make_user):
    user = await make_user()
    category = await services.categories.create(user.id, "Gardening")
    goal = await services.goals.create(user.id, Goal(user_id=user.id, title="Veggies", target_hours=5,
                                                     category="GARDENING"))
    await services.schedule.create(user.id, ScheduleBlock(
        user_id=user.id, title="Watering", day_of_week=6, start_time="08:00", end_time="08:30",
        category="GARDENING",
    ))

    result = await services.categories.delete(user.id, category.id)

    assert result == {"was_in_use": True, "usage_count": 2}
    assert (await services.goals.find_one(user.id, goal.id)).category == "OTHER"
    assert (await services.schedule.find_all(user.id))[0].category == "OTHER"


@pytest.mark.asyncio
async def test_unused_category_delete(services, make_user):
    user = await make_user()
    category = await services.categories.create(user.id, "Unused")
    assert await services.categories.delete(user.id, category.id) == {"was_in_use": False, "usage_count": 0}


@pytest.mark.asyncio
async def test_default_category_cannot_be_deleted(services, make_user):
    user = await make_user()
    defaults = await services.categories.seed_defaults(user.id)

    with pytest.raises(ForbiddenError):
        await services.categories.delete(user.id, defaults[0].id)

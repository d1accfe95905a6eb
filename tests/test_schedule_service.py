"""
Tests for schedule blocks and overlap detection.
"""

import pytest

from timemaster.domain.errors import CapacityExceededError, NotFoundError, ValidationError
from timemaster.domain.models import Goal, PlanType, ScheduleBlock
from timemaster.services.schedule_service import SCOPE_SERIES, intervals_overlap
from timemaster.utils import time_to_minutes

MONDAY = 1


def block(start, end, day=MONDAY, title="Focus", **fields) -> ScheduleBlock:
    return ScheduleBlock(user_id=0, title=title, day_of_week=day, start_time=start, end_time=end, **fields)


def test_intervals_overlap_is_symmetric():
    ranges = [("09:00", "10:00"), ("09:30", "10:30"), ("10:00", "11:00"), ("08:00", "12:00")]
    for a in ranges:
        for b in ranges:
            a_min = [time_to_minutes(t) for t in a]
            b_min = [time_to_minutes(t) for t in b]
            assert intervals_overlap(*a_min, *b_min) == intervals_overlap(*b_min, *a_min)


def test_touching_intervals_do_not_overlap():
    assert not intervals_overlap(540, 600, 600, 660)
    assert intervals_overlap(540, 600, 570, 630)
    assert intervals_overlap(480, 720, 540, 600)


@pytest.mark.asyncio
async def test_create_rejects_overlapping_block(services, make_user):
    user = await make_user()
    await services.schedule.create(user.id, block("09:00", "10:00"))

    with pytest.raises(ValidationError):
        await services.schedule.create(user.id, block("09:30", "10:30"))

    # Adjacent block and same time on another day are fine
    await services.schedule.create(user.id, block("10:00", "11:00"))
    await services.schedule.create(user.id, block("09:30", "10:30", day=2))

    assert len(await services.schedule.find_by_day(user.id, MONDAY)) == 2


@pytest.mark.asyncio
async def test_conflicts_are_per_user(services, make_user):
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    await services.schedule.create(alice.id, block("09:00", "10:00"))

    created = await services.schedule.create(bob.id, block("09:00", "10:00"))

    assert created.user_id == bob.id


@pytest.mark.asyncio
async def test_start_must_be_before_end(services, make_user):
    user = await make_user()
    with pytest.raises(ValidationError):
        await services.schedule.create(user.id, block("10:00", "10:00"))
    with pytest.raises(ValidationError):
        await services.schedule.create(user.id, block("11:00", "10:00"))


@pytest.mark.asyncio
async def test_free_plan_schedule_limit(services, make_user):
    user = await make_user()
    for day in range(5):
        await services.schedule.create(user.id, block("09:00", "10:00", day=day))

    with pytest.raises(CapacityExceededError) as exc_info:
        await services.schedule.create(user.id, block("09:00", "10:00", day=5))
    assert exc_info.value.resource == "schedules"


@pytest.mark.asyncio
async def test_pro_plan_has_no_schedule_limit(services, make_user):
    user = await make_user(plan=PlanType.PRO, subscription_status="active", stripe_subscription_id="sub_1")
    for hour in range(8, 16):
        await services.schedule.create(user.id, block(f"{hour:02d}:00", f"{hour:02d}:30"))
    assert len(await services.schedule.find_all(user.id)) == 8


@pytest.mark.asyncio
async def test_update_excludes_the_block_itself(services, make_user):
    user = await make_user()
    created = await services.schedule.create(user.id, block("09:00", "10:00"))

    updated = await services.schedule.update(user.id, created.id, {"end_time": "10:30"})

    assert updated.end_time == "10:30"


@pytest.mark.asyncio
async def test_update_into_conflict_is_rejected(services, make_user):
    user = await make_user()
    await services.schedule.create(user.id, block("09:00", "10:00"))
    later = await services.schedule.create(user.id, block("11:00", "12:00"))

    with pytest.raises(ValidationError):
        await services.schedule.update(user.id, later.id, {"start_time": "09:45"})

    unchanged = (await services.schedule.find_by_day(user.id, MONDAY))[1]
    assert unchanged.start_time == "11:00"


@pytest.mark.asyncio
async def test_update_validates_fields(services, make_user):
    user = await make_user()
    created = await services.schedule.create(user.id, block("09:00", "10:00"))

    with pytest.raises(ValidationError):
        await services.schedule.update(user.id, created.id, {"start_time": "25:00"})


@pytest.mark.asyncio
async def test_series_update_moves_all_blocks(services, make_user):
    user = await make_user()
    monday = await services.schedule.create(user.id, block("09:00", "10:00", series_id="s1"))
    await services.schedule.create(user.id, block("09:00", "10:00", day=3, series_id="s1"))

    await services.schedule.update(user.id, monday.id, {"start_time": "08:00", "title": "Early"},
                                   scope=SCOPE_SERIES)

    blocks = await services.schedule.find_all(user.id)
    assert [(b.day_of_week, b.start_time, b.title) for b in blocks] == [
        (1, "08:00", "Early"), (3, "08:00", "Early")
    ]


@pytest.mark.asyncio
async def test_series_update_rejected_when_any_sibling_conflicts(services, make_user):
    user = await make_user()
    monday = await services.schedule.create(user.id, block("09:00", "10:00", series_id="s1"))
    await services.schedule.create(user.id, block("09:00", "10:00", day=3, series_id="s1"))
    await services.schedule.create(user.id, block("07:00", "08:30", day=3, title="Gym"))

    with pytest.raises(ValidationError):
        await services.schedule.update(user.id, monday.id, {"start_time": "08:00"}, scope=SCOPE_SERIES)

    # Nothing was written
    assert (await services.schedule.find_by_day(user.id, MONDAY))[0].start_time == "09:00"


@pytest.mark.asyncio
async def test_weekly_schedule_has_every_day(services, make_user):
    user = await make_user()
    await services.schedule.create(user.id, block("09:00", "10:00", day=0))

    week = await services.schedule.get_weekly_schedule(user.id)

    assert sorted(week) == list(range(7))
    assert len(week[0]) == 1
    assert week[6] == []


@pytest.mark.asyncio
async def test_delete_requires_ownership(services, make_user):
    owner = await make_user("owner@example.com")
    other = await make_user("other@example.com")
    created = await services.schedule.create(owner.id, block("09:00", "10:00"))

    with pytest.raises(NotFoundError):
        await services.schedule.delete(other.id, created.id)

    await services.schedule.delete(owner.id, created.id)
    assert await services.schedule.find_all(owner.id) == []


@pytest.mark.asyncio
async def test_block_cannot_link_another_users_goal(services, make_user):
    alice = await make_user("alice@example.com")
    mallory = await make_user("mallory@example.com")
    goal = await services.goals.create(alice.id, Goal(user_id=alice.id, title="Thesis", target_hours=100))

    with pytest.raises(NotFoundError):
        await services.schedule.create(mallory.id, block("09:00", "10:00", goal_id=goal.id))
    assert await services.schedule.find_all(mallory.id) == []

    own = await services.schedule.create(mallory.id, block("09:00", "10:00"))
    with pytest.raises(NotFoundError):
        await services.schedule.update(mallory.id, own.id, {"goal_id": goal.id})
    assert (await services.schedule.find_all(mallory.id))[0].goal_id is None

"""
Tests for invitations and read-only shared access.
"""

import datetime

import pytest
import pytest_asyncio

from timemaster.domain.errors import (
    ConflictError, EmailDeliveryError, ForbiddenError, NotFoundError, ValidationError
)
from timemaster.domain.models import Goal, TimeEntry

NOW = datetime.datetime(2025, 3, 1, 12, 0)
LATER = NOW + datetime.timedelta(days=8)


@pytest_asyncio.fixture
async def owner(make_user):
    return await make_user("owner@example.com", "Olivia")


@pytest_asyncio.fixture
async def viewer(make_user):
    return await make_user("viewer@example.com", "Victor")


async def accepted_share(services, owner, viewer):
    invitation = await services.sharing.invite_user(owner.id, viewer.email, now=NOW)
    return await services.sharing.accept_invitation(viewer.id, invitation.share.invite_token, now=NOW)


@pytest.mark.asyncio
async def test_invite_creates_pending_grant_and_sends_email(services, owner, viewer, email_service):
    invitation = await services.sharing.invite_user(owner.id, "  viewer@example.com ", now=NOW)

    share = invitation.share
    assert share.is_accepted is False
    assert share.shared_with_id == viewer.id
    assert share.invite_email == "viewer@example.com"
    assert share.invite_expires == NOW + datetime.timedelta(days=7)
    assert invitation.invite_link.endswith(share.invite_token)
    assert invitation.email_sent is True

    email_service.send_share_invitation.assert_awaited_once()
    kwargs = email_service.send_share_invitation.await_args.kwargs
    assert kwargs["to_email"] == "viewer@example.com"
    assert kwargs["invite_token"] == share.invite_token
    assert kwargs["is_existing_user"] is True


@pytest.mark.asyncio
async def test_invite_unknown_email(services, owner, email_service):
    invitation = await services.sharing.invite_user(owner.id, "newcomer@example.com", now=NOW)

    assert invitation.share.shared_with_id is None
    assert email_service.send_share_invitation.await_args.kwargs["is_existing_user"] is False


@pytest.mark.asyncio
async def test_cannot_invite_yourself(services, owner):
    with pytest.raises(ValidationError):
        await services.sharing.invite_user(owner.id, owner.email, now=NOW)


@pytest.mark.asyncio
async def test_duplicate_pending_invite_conflicts(services, owner, viewer):
    await services.sharing.invite_user(owner.id, viewer.email, now=NOW)

    with pytest.raises(ConflictError):
        await services.sharing.invite_user(owner.id, viewer.email, now=NOW + datetime.timedelta(days=1))


@pytest.mark.asyncio
async def test_expired_pending_invite_is_replaced(services, owner, viewer):
    first = await services.sharing.invite_user(owner.id, viewer.email, now=NOW)

    second = await services.sharing.invite_user(owner.id, viewer.email, now=LATER)

    assert second.share.invite_token != first.share.invite_token
    assert second.share.invite_expires == LATER + datetime.timedelta(days=7)
    shares = await services.sharing.get_my_shares(owner.id)
    assert [s.id for s in shares] == [second.share.id]

    # The replaced grant's id is never handed out again
    assert second.share.id != first.share.id
    with pytest.raises(NotFoundError):
        await services.sharing.accept_invite(viewer.id, first.share.id, now=LATER)


@pytest.mark.asyncio
async def test_accepted_grant_blocks_new_invite(services, owner, viewer):
    await accepted_share(services, owner, viewer)
    with pytest.raises(ConflictError):
        await services.sharing.invite_user(owner.id, viewer.email, now=LATER)


@pytest.mark.asyncio
async def test_failed_email_does_not_fail_invite(services, owner, viewer, email_service):
    email_service.send_share_invitation.side_effect = EmailDeliveryError("Resend unavailable")

    invitation = await services.sharing.invite_user(owner.id, viewer.email, now=NOW)

    assert invitation.email_sent is False
    assert len(await services.sharing.get_my_shares(owner.id)) == 1


@pytest.mark.asyncio
async def test_accept_by_token(services, owner, viewer, email_service):
    share = await accepted_share(services, owner, viewer)

    assert share.is_accepted is True
    assert share.shared_with_id == viewer.id
    assert share.invite_token is None
    assert share.invite_expires is None
    email_service.send_share_accepted.assert_awaited_once()
    assert email_service.send_share_accepted.await_args.kwargs["to_email"] == owner.email

    access = await services.sharing.get_my_shared_access(viewer.id)
    assert [s.id for s in access["shared_with_me"]] == [share.id]
    assert access["shared_by_me"] == []


@pytest.mark.asyncio
async def test_accept_notification_failure_is_not_fatal(services, owner, viewer, email_service):
    email_service.send_share_accepted.side_effect = EmailDeliveryError("Resend unavailable")
    share = await accepted_share(services, owner, viewer)
    assert share.is_accepted is True


@pytest.mark.asyncio
async def test_accept_unknown_token(services, viewer):
    with pytest.raises(NotFoundError):
        await services.sharing.accept_invitation(viewer.id, "no-such-token", now=NOW)


@pytest.mark.asyncio
async def test_accept_expired_invitation(services, owner, viewer):
    invitation = await services.sharing.invite_user(owner.id, viewer.email, now=NOW)

    with pytest.raises(ForbiddenError) as exc_info:
        await services.sharing.accept_invitation(viewer.id, invitation.share.invite_token, now=LATER)
    assert exc_info.value.code == "INVITE_EXPIRED"


@pytest.mark.asyncio
async def test_accept_invitation_meant_for_someone_else(services, owner, viewer, make_user):
    intruder = await make_user("intruder@example.com")
    invitation = await services.sharing.invite_user(owner.id, viewer.email, now=NOW)

    with pytest.raises(ForbiddenError):
        await services.sharing.accept_invitation(intruder.id, invitation.share.invite_token, now=NOW)


@pytest.mark.asyncio
async def test_invite_to_new_account_accepted_after_signup(services, owner, make_user):
    invitation = await services.sharing.invite_user(owner.id, "later@example.com", now=NOW)
    newcomer = await make_user("later@example.com", "Lena")

    pending = await services.sharing.get_pending_invites(newcomer.id)
    assert [s.id for s in pending] == [invitation.share.id]

    share = await services.sharing.accept_invite(newcomer.id, invitation.share.id, now=NOW)
    assert share.shared_with_id == newcomer.id
    assert await services.sharing.get_pending_invites(newcomer.id) == []


@pytest.mark.asyncio
async def test_decline_deletes_grant(services, owner, viewer):
    invitation = await services.sharing.invite_user(owner.id, viewer.email, now=NOW)

    await services.sharing.decline_invite(viewer.id, invitation.share.id)

    assert await services.sharing.get_my_shares(owner.id) == []
    with pytest.raises(NotFoundError):
        await services.sharing.decline_invite(viewer.id, invitation.share.id)


@pytest.mark.asyncio
async def test_revoke_and_leave(services, owner, viewer, make_user):
    share = await accepted_share(services, owner, viewer)

    with pytest.raises(NotFoundError):
        await services.sharing.revoke_access(viewer.id, share.id)
    await services.sharing.revoke_access(owner.id, share.id)
    with pytest.raises(ForbiddenError):
        await services.sharing.get_shared_user_goals(viewer.id, owner.id)

    share = await accepted_share(services, owner, viewer)
    with pytest.raises(NotFoundError):
        await services.sharing.remove_my_access(owner.id, share.id)
    await services.sharing.remove_my_access(viewer.id, share.id)
    assert await services.sharing.get_shared_with_me(viewer.id) == []


@pytest.mark.asyncio
async def test_reading_without_grant_is_forbidden(services, owner, viewer):
    with pytest.raises(ForbiddenError):
        await services.sharing.get_shared_user_data(viewer.id, owner.id)

    # A pending invite is not enough either
    await services.sharing.invite_user(owner.id, viewer.email, now=NOW)
    with pytest.raises(ForbiddenError):
        await services.sharing.get_shared_user_goals(viewer.id, owner.id)


@pytest.mark.asyncio
async def test_shared_data_projection(services, owner, viewer):
    goal = await services.goals.create(owner.id, Goal(user_id=owner.id, title="Marathon", target_hours=50))
    await services.entries.create(owner.id, TimeEntry(
        user_id=owner.id, task_name="Long run", duration=90,
        date=datetime.datetime(2025, 3, 2, 7, 0), goal_id=goal.id,
    ))
    await services.entries.create(owner.id, TimeEntry(
        user_id=owner.id, task_name="Stretching", duration=20, date=datetime.datetime(2025, 3, 3, 7, 0),
    ))
    await accepted_share(services, owner, viewer)

    data = await services.sharing.get_shared_user_data(viewer.id, owner.id)

    assert [g.title for g in data.goals] == ["Marathon"]
    assert data.goals[0].logged_hours == 1.5
    assert [e.task_name for e in data.recent_entries] == ["Stretching", "Long run"]
    assert data.recent_entries[1].goal.title == "Marathon"
    assert data.recent_entries[0].goal is None

    entries = await services.sharing.get_shared_user_time_entries(
        viewer.id, owner.id, datetime.date(2025, 3, 2), datetime.date(2025, 3, 2)
    )
    assert [e.task_name for e in entries] == ["Long run"]


@pytest.mark.asyncio
async def test_public_token_access(services, owner):
    await services.goals.create(owner.id, Goal(user_id=owner.id, title="Marathon", target_hours=50))
    invitation = await services.sharing.invite_user(owner.id, "friend@example.com", now=NOW)
    token = invitation.share.invite_token

    info = await services.sharing.get_public_shared_data(token, now=NOW)
    assert info.owner.email == owner.email
    assert info.access_type == "VIEW_ONLY"
    assert info.expires_at == NOW + datetime.timedelta(days=7)

    goals = await services.sharing.get_public_shared_goals(token, now=NOW)
    assert [g.title for g in goals] == ["Marathon"]

    with pytest.raises(ForbiddenError):
        await services.sharing.get_public_shared_goals(token, now=LATER)
    with pytest.raises(NotFoundError):
        await services.sharing.get_public_shared_data("bogus", now=NOW)

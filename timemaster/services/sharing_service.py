"""
Sharing Service - invitations and read-only access to another user's data.

A grant moves through three states per (owner, recipient email):

    no relation -> pending (token, 7 day expiry) -> accepted (token cleared)

Declining, revoking and leaving all delete the grant. Readers only ever get
projections of the owner's goals, time entries and schedule; nothing here
mutates the owner's data.
"""

import datetime
import logging
import uuid
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from timemaster.domain.errors import (
    ConflictError, EmailDeliveryError, ForbiddenError, NotFoundError, ValidationError
)
from timemaster.domain.models import GoalStatus, ScheduleBlock, SharedAccess, TimeEntry, User
from timemaster.infra.repository import (
    GoalRepository, ScheduleBlockRepository, SharedAccessRepository, TaskRepository,
    TimeEntryRepository, UserRepository
)
from timemaster.services.email_service import INVITE_EXPIRY_DAYS, EmailService
from timemaster.services.time_entry_service import day_bounds

logger = logging.getLogger(__name__)

ACCESS_VIEW_ONLY = "VIEW_ONLY"
RECENT_ENTRIES_LIMIT = 20


class OwnerInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str = ""


class SharedGoalView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    category: str
    target_hours: float
    logged_hours: float
    status: GoalStatus
    color: str
    deadline: Optional[datetime.datetime] = None


class GoalRef(BaseModel):
    id: int
    title: str
    color: Optional[str] = None
    category: Optional[str] = None


class TaskRef(BaseModel):
    id: int
    title: str


class SharedTimeEntryView(BaseModel):
    id: int
    task_name: str
    duration: int
    date: datetime.datetime
    notes: Optional[str] = None
    goal: Optional[GoalRef] = None
    task: Optional[TaskRef] = None


class SharedUserData(BaseModel):
    goals: List[SharedGoalView]
    recent_entries: List[SharedTimeEntryView]
    schedule_blocks: List[ScheduleBlock]


class PublicShareInfo(BaseModel):
    owner: OwnerInfo
    share_id: int
    created_at: datetime.datetime
    expires_at: Optional[datetime.datetime] = None
    access_type: str = ACCESS_VIEW_ONLY


class ShareInvitation(BaseModel):
    """Result of an invite: the pending grant and whether the notification went out"""
    share: SharedAccess
    invite_link: str
    email_sent: bool


def _is_expired(share: SharedAccess, now: datetime.datetime) -> bool:
    return share.invite_expires is not None and share.invite_expires < now


class SharingService:
    def __init__(self, share_repo: Optional[SharedAccessRepository] = None,
                 user_repo: Optional[UserRepository] = None,
                 goal_repo: Optional[GoalRepository] = None,
                 entry_repo: Optional[TimeEntryRepository] = None,
                 block_repo: Optional[ScheduleBlockRepository] = None,
                 task_repo: Optional[TaskRepository] = None,
                 email_service: Optional[EmailService] = None):
        self.share_repo = share_repo or SharedAccessRepository()
        self.user_repo = user_repo or UserRepository()
        self.goal_repo = goal_repo or GoalRepository()
        self.entry_repo = entry_repo or TimeEntryRepository()
        self.block_repo = block_repo or ScheduleBlockRepository()
        self.task_repo = task_repo or TaskRepository()
        self.email_service = email_service or EmailService()

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    async def invite_user(self, owner_id: int, email: str,
                          now: Optional[datetime.datetime] = None) -> ShareInvitation:
        """
        Create a pending grant from owner to `email` and notify the recipient.

        A failed notification is logged and reported via `email_sent`; the
        grant is kept either way.
        """
        now = now or datetime.datetime.now()
        email = email.strip()

        owner = await self.user_repo.get_by_id(owner_id)
        if owner is None:
            raise NotFoundError("Owner not found", context={"owner_id": owner_id})
        if email == owner.email:
            raise ValidationError("You cannot share your data with yourself", field="email", value=email)

        for existing in await self.share_repo.find_for_recipient(owner_id, email):
            if existing.is_accepted or not _is_expired(existing, now):
                raise ConflictError("User already has access or pending invitation", context={"email": email})
            # Expired and never accepted
            await self.share_repo.delete(existing.id)

        invited = await self.user_repo.get_by_email(email)
        share = await self.share_repo.create(SharedAccess(
            owner_id=owner_id,
            shared_with_id=invited.id if invited else None,
            invite_email=email,
            invite_token=str(uuid.uuid4()),
            invite_expires=now + datetime.timedelta(days=INVITE_EXPIRY_DAYS),
            is_accepted=False,
            created_at=now,
        ))
        logger.info(f"User {owner_id} invited {email} (share {share.id})")

        email_sent = True
        try:
            await self.email_service.send_share_invitation(
                to_email=email,
                inviter_name=owner.name,
                inviter_email=owner.email,
                invite_token=share.invite_token,
                is_existing_user=invited is not None,
            )
        except EmailDeliveryError as e:
            logger.warning(f"Share invitation email to {email} failed: {e.message}")
            email_sent = False

        return ShareInvitation(
            share=share,
            invite_link=f"/share/accept?token={share.invite_token}",
            email_sent=email_sent,
        )

    async def accept_invitation(self, user_id: int, token: str,
                                now: Optional[datetime.datetime] = None) -> SharedAccess:
        """Accept a pending grant by its token"""
        now = now or datetime.datetime.now()

        share = await self.share_repo.get_by_token(token)
        if share is None:
            raise NotFoundError("Invitation not found")
        if _is_expired(share, now):
            raise ForbiddenError("Invitation has expired", code="INVITE_EXPIRED")

        user = await self.user_repo.get_by_id(user_id)
        if user is None or not self._is_addressed_to(share, user):
            raise ForbiddenError("This invitation is not for you")

        return await self._accept(share, user)

    async def accept_invite(self, user_id: int, share_id: int,
                            now: Optional[datetime.datetime] = None) -> SharedAccess:
        """Accept a pending grant from the recipient's invitation list"""
        now = now or datetime.datetime.now()

        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", context={"user_id": user_id})

        share = await self.share_repo.get_by_id(share_id)
        if share is None or share.is_accepted or not self._is_addressed_to(share, user):
            raise NotFoundError("Invite not found", context={"share_id": share_id})
        if _is_expired(share, now):
            raise ForbiddenError("Invitation has expired", code="INVITE_EXPIRED")

        return await self._accept(share, user)

    async def _accept(self, share: SharedAccess, user: User) -> SharedAccess:
        accepted = await self.share_repo.update_fields(share.id, {
            "shared_with_id": user.id,
            "is_accepted": True,
            "invite_token": None,
            "invite_email": None,
            "invite_expires": None,
        })
        logger.info(f"User {user.id} accepted share {share.id} from user {share.owner_id}")

        owner = await self.user_repo.get_by_id(share.owner_id)
        if owner is not None:
            try:
                await self.email_service.send_share_accepted(
                    to_email=owner.email,
                    accepter_name=user.name,
                    accepter_email=user.email,
                )
            except EmailDeliveryError as e:
                logger.warning(f"Acceptance notification to {owner.email} failed: {e.message}")
        return accepted

    @staticmethod
    def _is_addressed_to(share: SharedAccess, user: User) -> bool:
        return share.shared_with_id == user.id or (
            share.invite_email is not None and share.invite_email == user.email
        )

    async def decline_invite(self, user_id: int, share_id: int) -> None:
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", context={"user_id": user_id})

        share = await self.share_repo.get_by_id(share_id)
        if share is None or share.is_accepted or not self._is_addressed_to(share, user):
            raise NotFoundError("Invite not found", context={"share_id": share_id})

        await self.share_repo.delete(share_id)
        logger.info(f"User {user_id} declined share {share_id}")

    async def revoke_access(self, owner_id: int, share_id: int) -> None:
        share = await self.share_repo.get_by_id(share_id)
        if share is None or share.owner_id != owner_id:
            raise NotFoundError("Share not found", context={"share_id": share_id})
        await self.share_repo.delete(share_id)
        logger.info(f"User {owner_id} revoked share {share_id}")

    async def remove_my_access(self, user_id: int, share_id: int) -> None:
        share = await self.share_repo.get_by_id(share_id)
        if share is None or share.shared_with_id != user_id:
            raise NotFoundError("Share not found", context={"share_id": share_id})
        await self.share_repo.delete(share_id)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def get_pending_invites(self, user_id: int) -> List[SharedAccess]:
        """Invitations addressed to the user that they have not answered yet"""
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            return []
        return await self.share_repo.list_pending_for(user.id, user.email)

    async def get_my_shares(self, owner_id: int) -> List[SharedAccess]:
        return await self.share_repo.list_owned(owner_id)

    async def get_shared_with_me(self, user_id: int) -> List[SharedAccess]:
        return await self.share_repo.list_shared_with(user_id)

    async def get_my_shared_access(self, user_id: int) -> Dict[str, List[SharedAccess]]:
        return {
            "shared_with_me": await self.get_shared_with_me(user_id),
            "shared_by_me": await self.get_my_shares(user_id),
        }

    # ------------------------------------------------------------------
    # Read-only access for accepted grants
    # ------------------------------------------------------------------

    async def _verify_access(self, accessor_id: int, owner_id: int) -> None:
        if await self.share_repo.get_accepted(owner_id, accessor_id) is None:
            raise ForbiddenError("You do not have access to this user's data",
                                 context={"owner_id": owner_id})

    async def _project_entries(self, owner_id: int, entries: List[TimeEntry]) -> List[SharedTimeEntryView]:
        goals = {g.id: g for g in await self.goal_repo.get_all(owner_id)}
        task_ids = {e.task_id for e in entries if e.task_id is not None}
        tasks = {t.id: t for t in await self.task_repo.get_by_ids(owner_id, list(task_ids))}

        views = []
        for entry in entries:
            goal = goals.get(entry.goal_id)
            task = tasks.get(entry.task_id)
            views.append(SharedTimeEntryView(
                id=entry.id,
                task_name=entry.task_name,
                duration=entry.duration,
                date=entry.date,
                notes=entry.notes,
                goal=GoalRef(id=goal.id, title=goal.title, color=goal.color,
                             category=goal.category) if goal else None,
                task=TaskRef(id=task.id, title=task.title) if task else None,
            ))
        return views

    async def _goals(self, owner_id: int) -> List[SharedGoalView]:
        return [SharedGoalView.model_validate(g.model_dump()) for g in await self.goal_repo.get_all(owner_id)]

    async def _entries_between(self, owner_id: int, start: datetime.date,
                               end: datetime.date) -> List[SharedTimeEntryView]:
        range_start, _ = day_bounds(start)
        _, range_end = day_bounds(end)
        entries = await self.entry_repo.get_in_range(owner_id, range_start, range_end, newest_first=True)
        return await self._project_entries(owner_id, entries)

    async def get_shared_user_data(self, accessor_id: int, owner_id: int) -> SharedUserData:
        await self._verify_access(accessor_id, owner_id)
        recent = await self.entry_repo.get_latest(owner_id, RECENT_ENTRIES_LIMIT)
        return SharedUserData(
            goals=await self._goals(owner_id),
            recent_entries=await self._project_entries(owner_id, recent),
            schedule_blocks=await self.block_repo.get_all(owner_id),
        )

    async def get_shared_user_time_entries(self, accessor_id: int, owner_id: int,
                                           start: datetime.date, end: datetime.date) -> List[SharedTimeEntryView]:
        await self._verify_access(accessor_id, owner_id)
        return await self._entries_between(owner_id, start, end)

    async def get_shared_user_goals(self, accessor_id: int, owner_id: int) -> List[SharedGoalView]:
        await self._verify_access(accessor_id, owner_id)
        return await self._goals(owner_id)

    # ------------------------------------------------------------------
    # Public tokenized access (no account needed)
    # ------------------------------------------------------------------

    async def _verify_public_token(self, token: str, now: Optional[datetime.datetime] = None) -> SharedAccess:
        now = now or datetime.datetime.now()
        share = await self.share_repo.get_by_token(token)
        if share is None:
            raise NotFoundError("Invalid or expired share link")
        if _is_expired(share, now):
            raise ForbiddenError("This share link has expired", code="INVITE_EXPIRED")
        return share

    async def get_public_shared_data(self, token: str,
                                     now: Optional[datetime.datetime] = None) -> PublicShareInfo:
        share = await self._verify_public_token(token, now)
        owner = await self.user_repo.get_by_id(share.owner_id)
        if owner is None:
            raise NotFoundError("Invalid or expired share link")
        return PublicShareInfo(
            owner=OwnerInfo(id=owner.id, email=owner.email, name=owner.name),
            share_id=share.id,
            created_at=share.created_at,
            expires_at=share.invite_expires,
        )

    async def get_public_shared_time_entries(self, token: str, start: datetime.date, end: datetime.date,
                                             now: Optional[datetime.datetime] = None) -> List[SharedTimeEntryView]:
        share = await self._verify_public_token(token, now)
        return await self._entries_between(share.owner_id, start, end)

    async def get_public_shared_goals(self, token: str,
                                      now: Optional[datetime.datetime] = None) -> List[SharedGoalView]:
        share = await self._verify_public_token(token, now)
        return await self._goals(share.owner_id)

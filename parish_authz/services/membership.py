"""
Membership service.

Answers the two questions the authorization engine asks of the membership
subsystem: which organization a principal belongs to, and which sub-units
it is currently a member of.
"""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.core.errors import NotFound, ScopeMismatch
from parish_authz.models.org import Organization, SubUnit, SubUnitMembership
from parish_authz.models.user import User
from parish_authz.utils.timezone import utc_now

logger = structlog.get_logger()


class MembershipService:
    """Organization and sub-unit membership lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: UUID) -> User:
        """Get a principal, raising NotFound when missing."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found", user_id=user_id)
        return user

    async def get_organization(self, organization_id: UUID) -> Organization:
        org = await self.db.get(Organization, organization_id)
        if org is None or not org.is_active:
            raise NotFound("Organization not found", organization_id=organization_id)
        return org

    async def get_sub_unit(self, sub_unit_id: UUID) -> SubUnit:
        sub_unit = await self.db.get(SubUnit, sub_unit_id)
        if sub_unit is None or not sub_unit.is_active:
            raise NotFound("Sub-unit not found", sub_unit_id=sub_unit_id)
        return sub_unit

    async def organization_of(self, user_id: UUID) -> UUID | None:
        """Primary organization of a principal (None for global staff)."""
        user = await self.get_user(user_id)
        return user.organization_id

    async def sub_units_of(self, user_id: UUID) -> set[UUID]:
        """Sub-units the principal is an active member of."""
        stmt = (
            select(SubUnitMembership.sub_unit_id)
            .join(SubUnit, SubUnit.id == SubUnitMembership.sub_unit_id)
            .where(
                SubUnitMembership.user_id == user_id,
                SubUnitMembership.is_active.is_(True),
                SubUnit.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def is_member(self, sub_unit_id: UUID, user_id: UUID) -> bool:
        return sub_unit_id in await self.sub_units_of(user_id)

    async def add_member(self, sub_unit_id: UUID, user_id: UUID) -> SubUnitMembership:
        """
        Add a principal to a sub-unit, reactivating an earlier membership.

        The principal must belong to the sub-unit's organization.
        """
        sub_unit = await self.get_sub_unit(sub_unit_id)
        user = await self.get_user(user_id)
        if user.organization_id != sub_unit.organization_id:
            raise ScopeMismatch(
                "User does not belong to the sub-unit's organization",
                sub_unit_id=sub_unit_id,
                user_id=user_id,
            )

        stmt = select(SubUnitMembership).where(
            SubUnitMembership.sub_unit_id == sub_unit_id,
            SubUnitMembership.user_id == user_id,
        )
        membership = (await self.db.execute(stmt)).scalar_one_or_none()

        if membership is None:
            membership = SubUnitMembership(sub_unit_id=sub_unit_id, user_id=user_id)
            self.db.add(membership)
        elif not membership.is_active:
            membership.is_active = True
            membership.joined_at = utc_now()
            membership.left_at = None

        await self.db.flush()
        logger.info("sub_unit_member_added", sub_unit_id=str(sub_unit_id), user_id=str(user_id))
        return membership

    async def remove_member(self, sub_unit_id: UUID, user_id: UUID) -> None:
        """
        End a membership.

        Sub-unit role assignments are kept but stop counting while the
        principal is not a member.
        """
        stmt = select(SubUnitMembership).where(
            SubUnitMembership.sub_unit_id == sub_unit_id,
            SubUnitMembership.user_id == user_id,
        )
        membership = (await self.db.execute(stmt)).scalar_one_or_none()
        if membership is None:
            raise NotFound("Membership not found", sub_unit_id=sub_unit_id, user_id=user_id)

        if membership.is_active:
            membership.is_active = False
            membership.left_at = utc_now()
            await self.db.flush()
            logger.info("sub_unit_member_removed", sub_unit_id=str(sub_unit_id), user_id=str(user_id))

    async def list_members(self, sub_unit_id: UUID, include_inactive: bool = False) -> list[SubUnitMembership]:
        await self.get_sub_unit(sub_unit_id)
        stmt = (
            select(SubUnitMembership)
            .where(SubUnitMembership.sub_unit_id == sub_unit_id)
            .order_by(SubUnitMembership.joined_at)
        )
        if not include_inactive:
            stmt = stmt.where(SubUnitMembership.is_active.is_(True))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

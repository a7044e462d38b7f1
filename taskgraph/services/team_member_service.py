import logging
from typing import Optional, List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.core.exceptions import NotFoundException
from taskgraph.models.team_member import TeamMember, TeamMemberStatus
from taskgraph.schemas.team_member import TeamMemberCreate
from taskgraph.services.activity_service import ActivityService
from taskgraph.services.common import CommonService
from taskgraph.services.interfaces import IdentityDirectory
from taskgraph.services.role_resolver import RoleAssignmentResolver
from taskgraph.services.task_graph_store import TaskGraphStore

logger = logging.getLogger(__name__)


class TeamMemberDirectory(IdentityDirectory):
    """Identity directory backed by the team_members table"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active_identities(
        self, role: Optional[str] = None
    ) -> List[TeamMember]:
        stmt = select(TeamMember).where(
            TeamMember.status == TeamMemberStatus.ACTIVE,
            TeamMember.is_placeholder.is_(False),
        )
        if role is not None:
            stmt = stmt.where(TeamMember.role == role)
        result = await self.db.scalars(stmt.order_by(TeamMember.created_at))
        return list(result.all())


class TeamMemberService:
    """Team member lifecycle, keeping task assignments consistent with it"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = TaskGraphStore(db)
        self.activity = ActivityService(db)
        self.resolver = RoleAssignmentResolver(
            self.store, TeamMemberDirectory(db), self.activity
        )

    async def get_member(self, member_id: UUID) -> TeamMember:
        """
        Retrieve a team member by ID.
        :param member_id: UUID of the member.
        :return: TeamMember object, raises NotFoundException if missing.
        """
        member = await self.db.get(TeamMember, member_id)
        if not member:
            raise NotFoundException("Team member", str(member_id))
        return member

    async def list_members(
        self, role: Optional[str] = None, status: Optional[TeamMemberStatus] = None
    ) -> List[TeamMember]:
        stmt = select(TeamMember).order_by(TeamMember.last_name, TeamMember.first_name)
        if role is not None:
            stmt = stmt.where(TeamMember.role == role)
        if status is not None:
            stmt = stmt.where(TeamMember.status == status)
        result = await self.db.scalars(stmt)
        return list(result.all())

    async def create_member(self, member_data: TeamMemberCreate) -> TeamMember:
        """
        Create a team member.
        :param member_data: TeamMemberCreate schema with member details.
        :return: Created TeamMember object.
        """
        async with CommonService.transaction(self.db, "create_team_member"):
            member = TeamMember(
                first_name=member_data.first_name,
                last_name=member_data.last_name,
                email=member_data.email,
                role=member_data.role,
                status=member_data.status,
                is_placeholder=member_data.is_placeholder,
            )
            self.db.add(member)
            await self.db.flush()

        logger.info(
            f"Team member created: {member.full_name} ({member.role or 'no role'})"
        )
        return member

    async def set_member_status(
        self,
        member_id: UUID,
        status: TeamMemberStatus,
        actor_id: Optional[str] = None,
    ) -> TeamMember:
        """
        Change a member's status.
        Leaving active hands the member's tasks back to their role.
        :param member_id: UUID of the member.
        :param status: New status.
        :param actor_id: Who made the change.
        :return: Updated TeamMember object.
        """
        async with CommonService.transaction(self.db, "set_team_member_status"):
            member = await self.get_member(member_id)
            was_active = member.is_active
            member.status = status
            await self.db.flush()

            if was_active and not member.is_active:
                await self.resolver.release_member_assignments(member, actor_id)

        logger.info(f"Team member {member.id} status set to {status.value}")
        return member

    async def delete_member(
        self, member_id: UUID, actor_id: Optional[str] = None
    ) -> List[UUID]:
        """
        Delete a member, handing their tasks back to their role first.
        :param member_id: UUID of the member.
        :param actor_id: Who made the change.
        :return: IDs of tasks whose assignment changed.
        """
        async with CommonService.transaction(self.db, "delete_team_member"):
            member = await self.get_member(member_id)
            released = await self.resolver.release_member_assignments(
                member, actor_id, remove_without_role=True
            )
            await self.db.delete(member)
            await self.db.flush()

        logger.info(f"Team member {member_id} deleted, {len(released)} task(s) released")
        return released

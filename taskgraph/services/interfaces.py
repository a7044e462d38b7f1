from abc import ABC, abstractmethod
from typing import List, Optional

from taskgraph.models.activity import ActivityLog
from taskgraph.models.team_member import TeamMember
from taskgraph.schemas.activity import ActivityEvent


class IdentityDirectory(ABC):
    """Source of the people role tags can resolve to"""

    @abstractmethod
    async def list_active_identities(
        self, role: Optional[str] = None
    ) -> List[TeamMember]:
        """
        List members eligible for work.
        :param role: Only return members holding this role, if given
        :return: Active, non-placeholder members
        """
        pass


class AuditSink(ABC):
    """Destination for activity records"""

    @abstractmethod
    async def record(self, event: ActivityEvent) -> Optional[ActivityLog]:
        """
        Persist an activity event.
        :param event: Event to record
        :return: The stored record, if the sink keeps one
        """
        pass

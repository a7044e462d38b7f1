from typing import Optional
from enum import Enum

from sqlalchemy import String, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from taskgraph.db.base import Base


class TeamMemberStatus(str, Enum):
    """
    Team member status
    """

    ACTIVE = "active"
    INACTIVE = "inactive"


class TeamMember(Base):
    """
    Identity record that role tags resolve to.
    Placeholder records exist for display only and never receive work.
    """

    first_name: Mapped[str] = mapped_column(
        String(191), nullable=False, comment="First name"
    )

    last_name: Mapped[str] = mapped_column(
        String(191), nullable=False, comment="Last name"
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Contact email"
    )

    role: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Role held by this member (matched against task role tags)",
    )

    status: Mapped[TeamMemberStatus] = mapped_column(
        default=TeamMemberStatus.ACTIVE,
        nullable=False,
        index=True,
        comment="Member status",
    )

    is_placeholder: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Administrative placeholder, excluded from role resolution",
    )

    __table_args__ = (Index("ix_team_members_role_status", "role", "status"),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.status == TeamMemberStatus.ACTIVE

    @property
    def can_take_assignments(self) -> bool:
        """Active, real members are the pool role tags resolve against"""
        return self.is_active and not self.is_placeholder

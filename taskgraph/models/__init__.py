"""
Models package for the application.
"""

from .project import Project, ProjectTemplate
from .milestone import Milestone
from .team_member import TeamMember, TeamMemberStatus
from .activity import ActivityLog
from .task import (
    Task,
    TaskStatus,
    TaskMarker,
    TaskComment,
    TaskAttachment,
    TaskUserPriority,
)

__all__ = [
    "Project",
    "ProjectTemplate",
    "Milestone",
    "TeamMember",
    "TeamMemberStatus",
    "ActivityLog",
    "Task",
    "TaskStatus",
    "TaskMarker",
    "TaskComment",
    "TaskAttachment",
    "TaskUserPriority",
]

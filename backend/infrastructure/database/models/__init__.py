"""
SQLAlchemy database models.
"""

from .activity import ActivityLog, ActivityType
from .base import Base, TimestampMixin
from .team import (
    Invitation,
    InvitationStatus,
    SubscriptionStatus,
    Team,
    TeamMember,
    TeamMemberRole,
)
from .user import User, UserRole

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "UserRole",
    "Team",
    "TeamMember",
    "TeamMemberRole",
    "Invitation",
    "InvitationStatus",
    "SubscriptionStatus",
    "ActivityLog",
    "ActivityType",
]

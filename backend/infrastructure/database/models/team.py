"""
Team and multi-tenancy database models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin


class TeamMemberRole(str, Enum):
    """Team member role enumeration."""

    OWNER = "owner"  # Manages billing and members
    MEMBER = "member"


class InvitationStatus(str, Enum):
    """Team invitation status enumeration."""

    PENDING = "pending"  # Waiting for the invitee to sign up
    ACCEPTED = "accepted"  # Invitee signed up and joined the team


class SubscriptionStatus(str, Enum):
    """Stripe subscription statuses the reconciler acts on."""

    TRIALING = "trialing"
    ACTIVE = "active"
    CANCELED = "canceled"
    UNPAID = "unpaid"


class Team(Base, TimestampMixin):
    """Team model; the billing unit."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Billing
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, unique=True
    )
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, unique=True
    )
    stripe_product_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    plan_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    # NULL until the first checkout completes
    subscription_status: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True
    )

    members = relationship(
        "TeamMember",
        back_populates="team",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name={self.name}, status={self.subscription_status})>"


class TeamMember(Base):
    """Team member model (junction table between users and teams)."""

    __tablename__ = "team_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    team_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("teams.id"),
        nullable=False,
        index=True,
    )

    role: Mapped[str] = mapped_column(String(50), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    team = relationship("Team", back_populates="members")
    user = relationship("User", lazy="joined")

    __table_args__ = (
        Index("ix_team_members_team_user", "team_id", "user_id", unique=True),
    )

    def __repr__(self) -> str:
        return f"<TeamMember(id={self.id}, team_id={self.team_id}, user_id={self.user_id}, role={self.role})>"


class Invitation(Base):
    """Pending offer for an email address to join a team."""

    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    team_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("teams.id"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    invited_by: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
    )
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    # No uniqueness constraint: one pending row per (team, email) is checked on insert
    status: Mapped[str] = mapped_column(
        String(20), default=InvitationStatus.PENDING.value, nullable=False
    )

    __table_args__ = (
        Index("ix_invitations_team_email_status", "team_id", "email", "status"),
    )

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, email={self.email}, team_id={self.team_id}, status={self.status})>"

"""
Team lookups and subscription writes shared by actions and billing.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from infrastructure.database.models import Team, TeamMember, User

logger = logging.getLogger(__name__)

# Columns the reconciler is allowed to overwrite
SUBSCRIPTION_FIELDS = (
    "stripe_customer_id",
    "stripe_subscription_id",
    "stripe_product_id",
    "plan_name",
    "subscription_status",
)


@dataclass
class UserWithTeam:
    """A user together with the id of their (first) team, if any."""

    user: User
    team_id: Optional[int]


async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    """Return a non-deleted user by id."""
    result = await db.execute(
        select(User).where(User.id == user_id, User.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def get_user_with_team(db: AsyncSession, user_id: int) -> Optional[UserWithTeam]:
    """Return the user and their team id (None when they belong to no team)."""
    result = await db.execute(
        select(User, TeamMember.team_id)
        .outerjoin(TeamMember, TeamMember.user_id == User.id)
        .where(User.id == user_id)
        .order_by(TeamMember.id)
        .limit(1)
    )
    row = result.first()
    if row is None:
        return None
    return UserWithTeam(user=row[0], team_id=row[1])


async def get_team_for_user(db: AsyncSession, user_id: int) -> Optional[Team]:
    """Return the user's team with members and their users loaded."""
    result = await db.execute(
        select(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id)
        .options(selectinload(Team.members).joinedload(TeamMember.user))
        .order_by(TeamMember.id)
        .limit(1)
    )
    return result.scalars().first()


async def get_team_by_stripe_customer_id(
    db: AsyncSession,
    customer_id: str,
) -> Optional[Team]:
    result = await db.execute(
        select(Team).where(Team.stripe_customer_id == customer_id).limit(1)
    )
    return result.scalar_one_or_none()


async def update_team_subscription(
    db: AsyncSession,
    team_id: int,
    values: dict[str, Any],
) -> None:
    """
    Overwrite a team's subscription columns and commit.

    Args:
        db: Database session
        team_id: Team to update
        values: Mapping of subscription column name to new value

    Raises:
        ValueError: If values names a column outside SUBSCRIPTION_FIELDS
    """
    unknown = set(values) - set(SUBSCRIPTION_FIELDS)
    if unknown:
        raise ValueError(f"Not a subscription field: {', '.join(sorted(unknown))}")

    await db.execute(
        update(Team)
        .where(Team.id == team_id)
        .values(**values, updated_at=func.now())
    )
    await db.commit()
    logger.info(
        "Updated subscription for team %s: status=%s",
        team_id,
        values.get("subscription_status"),
        extra={"team_id": team_id},
    )


async def get_user_with_team_by_email(db: AsyncSession, email: str) -> Optional[UserWithTeam]:
    """Return a non-deleted user looked up by email, with their team id."""
    result = await db.execute(
        select(User, TeamMember.team_id)
        .outerjoin(TeamMember, TeamMember.user_id == User.id)
        .where(User.email == email, User.deleted_at.is_(None))
        .order_by(TeamMember.id)
        .limit(1)
    )
    row = result.first()
    if row is None:
        return None
    return UserWithTeam(user=row[0], team_id=row[1])

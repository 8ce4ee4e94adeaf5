"""
Activity log writer.

Each entry is appended through its own short-lived session so that an audit
write never shares a transaction with the action that triggered it. A failed
append is logged and dropped; the triggering action has already committed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from infrastructure.database.models import ActivityLog, ActivityType, User

logger = logging.getLogger(__name__)


class ActivityLogWriter:
    """Appends ActivityLog rows, best effort."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(
        self,
        team_id: Optional[int],
        user_id: Optional[int],
        action: ActivityType,
        ip_address: Optional[str] = None,
    ) -> None:
        """
        Append one activity entry.

        Does nothing when team_id is None: the log requires a team, and some
        actions run before the user has one.

        Args:
            team_id: Team the action belongs to
            user_id: Acting user, if any
            action: Kind of action
            ip_address: Client address, if known
        """
        if team_id is None:
            return

        entry = ActivityLog(
            team_id=team_id,
            user_id=user_id,
            action=action.value,
            ip_address=ip_address or "",
        )
        try:
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to record activity %s for team %s: %s",
                action.value,
                team_id,
                e,
                extra={"team_id": team_id, "user_id": user_id},
            )


@dataclass
class ActivityEntry:
    """Activity row joined with the acting user's name."""

    id: int
    action: str
    timestamp: datetime
    ip_address: Optional[str]
    user_name: Optional[str]


async def get_activity_logs(
    db: AsyncSession,
    user_id: int,
    limit: int = 10,
) -> list[ActivityEntry]:
    """Return a user's most recent activity, newest first."""
    result = await db.execute(
        select(
            ActivityLog.id,
            ActivityLog.action,
            ActivityLog.timestamp,
            ActivityLog.ip_address,
            User.name,
        )
        .outerjoin(User, ActivityLog.user_id == User.id)
        .where(ActivityLog.user_id == user_id)
        .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
        .limit(limit)
    )
    return [
        ActivityEntry(
            id=row.id,
            action=row.action,
            timestamp=row.timestamp,
            ip_address=row.ip_address,
            user_name=row.name,
        )
        for row in result.all()
    ]

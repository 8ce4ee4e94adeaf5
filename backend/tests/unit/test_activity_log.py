"""
Unit tests for the activity log writer.
"""

from unittest.mock import MagicMock

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from infrastructure.database.models import ActivityLog, ActivityType
from services.activity_log import ActivityLogWriter, get_activity_logs


async def _count(db_session) -> int:
    result = await db_session.execute(select(func.count()).select_from(ActivityLog))
    return result.scalar_one()


class TestActivityLogWriter:
    """Tests for recording activity."""

    async def test_no_team_is_a_no_op(self, activity_writer, db_session, test_user):
        await activity_writer.record(None, test_user.id, ActivityType.SIGN_OUT)

        assert await _count(db_session) == 0

    async def test_records_entry(self, activity_writer, db_session, test_user, test_team):
        await activity_writer.record(
            test_team.id, test_user.id, ActivityType.SIGN_IN, "198.51.100.4"
        )

        result = await db_session.execute(select(ActivityLog))
        entry = result.scalar_one()
        assert entry.team_id == test_team.id
        assert entry.user_id == test_user.id
        assert entry.action == "SIGN_IN"
        assert entry.ip_address == "198.51.100.4"
        assert entry.timestamp is not None

    async def test_missing_ip_stored_empty(self, activity_writer, db_session, test_user, test_team):
        await activity_writer.record(test_team.id, test_user.id, ActivityType.SIGN_UP)

        result = await db_session.execute(select(ActivityLog.ip_address))
        assert result.scalar_one() == ""

    async def test_database_failure_is_swallowed(self, caplog):
        failing_session = MagicMock()
        failing_session.__aenter__.side_effect = OperationalError("INSERT", {}, Exception("down"))
        writer = ActivityLogWriter(MagicMock(return_value=failing_session))

        await writer.record(1, 1, ActivityType.SIGN_IN)

        assert "Failed to record activity SIGN_IN" in caplog.text


class TestGetActivityLogs:
    """Tests for reading a user's activity."""

    async def test_newest_first_with_user_name(self, activity_writer, db_session, test_user, test_team):
        for action in (ActivityType.SIGN_UP, ActivityType.SIGN_IN, ActivityType.UPDATE_ACCOUNT):
            await activity_writer.record(test_team.id, test_user.id, action)

        entries = await get_activity_logs(db_session, test_user.id)

        assert [entry.action for entry in entries] == ["UPDATE_ACCOUNT", "SIGN_IN", "SIGN_UP"]
        assert all(entry.user_name == "Team Owner" for entry in entries)

    async def test_limit(self, activity_writer, db_session, test_user, test_team):
        for _ in range(12):
            await activity_writer.record(test_team.id, test_user.id, ActivityType.SIGN_IN)

        entries = await get_activity_logs(db_session, test_user.id)

        assert len(entries) == 10

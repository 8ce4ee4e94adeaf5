"""Integration tests for authentication and account endpoints."""

from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments.stripe_adapter import StripeCheckoutSession
from api.dependencies import get_token_service
from conftest import TEST_PASSWORD, create_user_with_team, password_hasher, session_cookie_for
from infrastructure.database.models import (
    ActivityLog,
    Invitation,
    Team,
    TeamMember,
    User,
)

pytestmark = pytest.mark.asyncio


async def actions_for(db_session: AsyncSession, user_id: int) -> list[str]:
    result = await db_session.execute(
        select(ActivityLog.action).where(ActivityLog.user_id == user_id).order_by(ActivityLog.id)
    )
    return list(result.scalars().all())


async def row_counts(db_session: AsyncSession) -> tuple[int, int, int, int]:
    counts = []
    for model in (User, Team, TeamMember, ActivityLog):
        result = await db_session.execute(select(func.count()).select_from(model))
        counts.append(result.scalar_one())
    return tuple(counts)


async def reload_user(db_session: AsyncSession, user_id: int) -> User:
    result = await db_session.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestSignIn:
    """Tests for signing in."""

    async def test_sign_in_success(self, async_client: AsyncClient, db_session, test_user: User):
        response = await async_client.post(
            "/api/v1/auth/sign-in",
            data={"email": test_user.email, "password": TEST_PASSWORD},
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/converter"
        assert "session" in response.cookies
        assert await actions_for(db_session, test_user.id) == ["SIGN_IN"]

    async def test_sign_in_records_client_ip(self, async_client: AsyncClient, db_session, test_user: User):
        await async_client.post(
            "/api/v1/auth/sign-in",
            data={"email": test_user.email, "password": TEST_PASSWORD},
            headers={"x-forwarded-for": "8.8.8.8"},
        )

        result = await db_session.execute(select(ActivityLog.ip_address))
        assert result.scalar_one() == "8.8.8.8"

    async def test_sign_in_wrong_password(self, async_client: AsyncClient, test_user: User):
        response = await async_client.post(
            "/api/v1/auth/sign-in",
            data={"email": test_user.email, "password": "wrongpassword"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["error"] == "Invalid email or password. Please try again."
        assert data["email"] == test_user.email
        assert data["password"] == "wrongpassword"
        assert "session" not in response.cookies

    async def test_sign_in_unknown_email(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/sign-in",
            data={"email": "nobody@example.com", "password": "password123"},
        )

        assert response.json()["error"] == "Invalid email or password. Please try again."

    async def test_sign_in_validation_error(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/sign-in",
            data={"email": "user@example.com", "password": "short"},
        )

        assert response.status_code == 200
        assert "at least 8 characters" in response.json()["error"]

    async def test_sign_in_deleted_user(self, async_client: AsyncClient, db_session, test_user: User):
        test_user.deleted_at = datetime.now(UTC)
        await db_session.commit()

        response = await async_client.post(
            "/api/v1/auth/sign-in",
            data={"email": test_user.email, "password": TEST_PASSWORD},
        )

        assert "error" in response.json()

    async def test_sign_in_hands_off_to_checkout(
        self, async_client: AsyncClient, test_user: User, test_team: Team, stripe_mock
    ):
        stripe_mock.create_checkout_session.return_value = StripeCheckoutSession(
            id="cs_1",
            url="https://checkout.stripe.com/c/cs_1",
            customer_id=None,
            subscription_id=None,
            client_reference_id=str(test_user.id),
            status="open",
        )

        response = await async_client.post(
            "/api/v1/auth/sign-in",
            data={
                "email": test_user.email,
                "password": TEST_PASSWORD,
                "redirect": "checkout",
                "priceId": "price_base",
            },
        )

        assert response.status_code == 303
        assert response.headers["location"] == "https://checkout.stripe.com/c/cs_1"
        kwargs = stripe_mock.create_checkout_session.await_args.kwargs
        assert kwargs["price_id"] == "price_base"
        assert kwargs["client_reference_id"] == str(test_user.id)


class TestSignUp:
    """Tests for signing up."""

    async def test_sign_up_creates_team(self, async_client: AsyncClient, db_session):
        response = await async_client.post(
            "/api/v1/auth/sign-up",
            data={"email": "new@example.com", "password": "password123", "uuid": "client-1"},
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/dashboard"
        assert "session" in response.cookies

        result = await db_session.execute(
            select(User, TeamMember, Team)
            .join(TeamMember, TeamMember.user_id == User.id)
            .join(Team, Team.id == TeamMember.team_id)
            .where(User.email == "new@example.com")
        )
        user, member, team = result.one()
        assert team.name == "new@example.com's Team"
        assert member.role == "owner"
        assert user.role == "owner"
        assert password_hasher.verify("password123", user.password_hash)
        assert sorted(await actions_for(db_session, user.id)) == ["CREATE_TEAM", "SIGN_UP"]

    async def test_sign_up_duplicate_email(
        self, async_client: AsyncClient, db_session, test_user: User
    ):
        before = await row_counts(db_session)

        response = await async_client.post(
            "/api/v1/auth/sign-up",
            data={"email": test_user.email, "password": "password123", "uuid": "client-2"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["error"] == "Failed to create user. Please try again."
        assert data["email"] == test_user.email
        assert await row_counts(db_session) == before

    async def test_sign_up_with_invitation(
        self, async_client: AsyncClient, db_session, test_user: User, test_team: Team
    ):
        invitation = Invitation(
            team_id=test_team.id,
            email="invitee@example.com",
            role="member",
            invited_by=test_user.id,
        )
        db_session.add(invitation)
        await db_session.commit()

        response = await async_client.post(
            "/api/v1/auth/sign-up",
            data={
                "email": "invitee@example.com",
                "password": "password123",
                "inviteId": str(invitation.id),
                "uuid": "client-3",
            },
        )

        assert response.status_code == 303
        result = await db_session.execute(
            select(User, TeamMember)
            .join(TeamMember, TeamMember.user_id == User.id)
            .where(User.email == "invitee@example.com")
        )
        user, member = result.one()
        assert member.team_id == test_team.id
        assert member.role == "member"
        assert user.role == "owner"
        assert sorted(await actions_for(db_session, user.id)) == ["ACCEPT_INVITATION", "SIGN_UP"]

        refreshed = await db_session.get(Invitation, invitation.id)
        assert refreshed.status == "accepted"
        teams = await db_session.execute(select(Team))
        assert len(teams.scalars().all()) == 1

    async def test_sign_up_invitation_for_other_email(
        self, async_client: AsyncClient, db_session, test_user: User, test_team: Team
    ):
        invitation = Invitation(
            team_id=test_team.id,
            email="invitee@example.com",
            role="member",
            invited_by=test_user.id,
        )
        db_session.add(invitation)
        await db_session.commit()

        response = await async_client.post(
            "/api/v1/auth/sign-up",
            data={
                "email": "someone-else@example.com",
                "password": "password123",
                "inviteId": str(invitation.id),
                "uuid": "client-3",
            },
        )

        assert response.json()["error"] == "Invalid or expired invitation."
        result = await db_session.execute(
            select(User).where(User.email == "someone-else@example.com")
        )
        assert result.scalar_one_or_none() is None

    async def test_sign_up_bad_invitation_id(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/sign-up",
            data={
                "email": "a@example.com",
                "password": "password123",
                "inviteId": "nope",
                "uuid": "client-4",
            },
        )

        assert response.json()["error"] == "Invalid or expired invitation."

    async def test_sign_up_short_password(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/sign-up",
            data={"email": "a@example.com", "password": "short"},
        )

        assert "at least 8 characters" in response.json()["error"]


class TestSignOut:
    """Tests for signing out."""

    async def test_sign_out(self, auth_client: AsyncClient, db_session, test_user: User):
        response = await auth_client.post("/api/v1/auth/sign-out")

        assert response.status_code == 303
        assert response.headers["location"] == "/sign-in"
        assert "Max-Age=0" in response.headers["set-cookie"]
        assert await actions_for(db_session, test_user.id) == ["SIGN_OUT"]

    async def test_sign_out_without_session(self, async_client: AsyncClient):
        response = await async_client.post("/api/v1/auth/sign-out")

        assert response.status_code == 401
        assert response.json() == {"detail": "User is not authenticated"}


class TestSession:
    """Tests for reading the signed-in user."""

    async def test_get_user(self, auth_client: AsyncClient, test_user: User):
        response = await auth_client.get("/api/v1/user")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == test_user.id
        assert data["email"] == test_user.email
        assert "password_hash" not in data

    async def test_get_user_anonymous(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/user")

        assert response.status_code == 200
        assert response.json() is None

    async def test_tampered_cookie_is_anonymous(self, async_client: AsyncClient, test_user: User):
        token = session_cookie_for(test_user)["session"]
        async_client.cookies.set("session", token[:-2] + "xx")

        response = await async_client.get("/api/v1/user")

        assert response.json() is None

    async def test_expired_token(self, async_client: AsyncClient, test_user: User):
        token, _ = get_token_service().issue(
            test_user.id, now=datetime.now(UTC) - timedelta(days=2)
        )
        async_client.cookies.set("session", token)

        response = await async_client.get("/api/v1/user")

        assert response.json() is None


class TestUpdatePassword:
    """Tests for changing the password."""

    async def test_update_password(self, auth_client: AsyncClient, db_session, test_user: User):
        response = await auth_client.post(
            "/api/v1/account/password",
            data={
                "currentPassword": TEST_PASSWORD,
                "newPassword": "brandnewpass1",
                "confirmPassword": "brandnewpass1",
            },
        )

        assert response.json() == {"success": "Password updated successfully."}
        user = await reload_user(db_session, test_user.id)
        assert password_hasher.verify("brandnewpass1", user.password_hash)
        assert await actions_for(db_session, test_user.id) == ["UPDATE_PASSWORD"]

    async def test_wrong_current_password(self, auth_client: AsyncClient):
        response = await auth_client.post(
            "/api/v1/account/password",
            data={
                "currentPassword": "notmypassword",
                "newPassword": "brandnewpass1",
                "confirmPassword": "brandnewpass1",
            },
        )

        assert response.json() == {"error": "Current password is incorrect."}

    async def test_same_password(self, auth_client: AsyncClient):
        response = await auth_client.post(
            "/api/v1/account/password",
            data={
                "currentPassword": TEST_PASSWORD,
                "newPassword": TEST_PASSWORD,
                "confirmPassword": TEST_PASSWORD,
            },
        )

        assert response.json() == {
            "error": "New password must be different from the current password."
        }

    async def test_mismatch(self, auth_client: AsyncClient):
        response = await auth_client.post(
            "/api/v1/account/password",
            data={
                "currentPassword": TEST_PASSWORD,
                "newPassword": "brandnewpass1",
                "confirmPassword": "brandnewpass2",
            },
        )

        assert response.json()["error"] == "Passwords don't match"

    async def test_requires_session(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/account/password",
            data={
                "currentPassword": TEST_PASSWORD,
                "newPassword": "brandnewpass1",
                "confirmPassword": "brandnewpass1",
            },
        )

        assert response.status_code == 401


class TestDeleteAccount:
    """Tests for soft-deleting the account."""

    async def test_delete_account(self, auth_client: AsyncClient, db_session, test_user: User):
        user_id, email = test_user.id, test_user.email

        response = await auth_client.post(
            "/api/v1/account/delete", data={"password": TEST_PASSWORD}
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/sign-in"
        assert "Max-Age=0" in response.headers["set-cookie"]

        user = await reload_user(db_session, user_id)
        assert user.deleted_at is not None
        assert user.email == f"{email}-{user_id}-deleted"
        members = await db_session.execute(select(TeamMember).where(TeamMember.user_id == user_id))
        assert members.scalars().all() == []
        assert await actions_for(db_session, user_id) == ["DELETE_ACCOUNT"]

    async def test_deleted_email_can_sign_up_again(
        self, auth_client: AsyncClient, test_user: User
    ):
        email = test_user.email
        await auth_client.post("/api/v1/account/delete", data={"password": TEST_PASSWORD})

        response = await auth_client.post(
            "/api/v1/auth/sign-up", data={"email": email, "password": "password123", "uuid": "client-5"}
        )

        assert response.status_code == 303

    async def test_wrong_password(self, auth_client: AsyncClient, db_session, test_user: User):
        response = await auth_client.post(
            "/api/v1/account/delete", data={"password": "wrongpassword"}
        )

        assert response.json() == {"error": "Incorrect password. Account deletion failed."}
        user = await reload_user(db_session, test_user.id)
        assert user.deleted_at is None


class TestUpdateAccount:
    """Tests for updating name and email."""

    async def test_update_account(self, auth_client: AsyncClient, db_session, test_user: User):
        response = await auth_client.post(
            "/api/v1/account", data={"name": "Renamed", "email": "renamed@example.com"}
        )

        assert response.json() == {"success": "Account updated successfully."}
        user = await reload_user(db_session, test_user.id)
        assert user.name == "Renamed"
        assert user.email == "renamed@example.com"
        assert await actions_for(db_session, test_user.id) == ["UPDATE_ACCOUNT"]

    async def test_name_required(self, auth_client: AsyncClient):
        response = await auth_client.post(
            "/api/v1/account", data={"name": "", "email": "renamed@example.com"}
        )

        assert response.json()["error"] == "Name is required"

    async def test_invalid_email(self, auth_client: AsyncClient):
        response = await auth_client.post(
            "/api/v1/account", data={"name": "Renamed", "email": "not-an-email"}
        )

        assert response.json()["error"] == "Invalid email address"

    async def test_email_taken(self, auth_client: AsyncClient, db_session, test_team: Team):
        await create_user_with_team(db_session, "taken@example.com", team=test_team, role="member")

        response = await auth_client.post(
            "/api/v1/account", data={"name": "Renamed", "email": "taken@example.com"}
        )

        assert response.json()["error"] == "Email is already in use."

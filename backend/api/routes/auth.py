"""
Authentication and account API routes.

Each endpoint accepts a submitted form and runs the matching form action.
Validation failures and domain conflicts come back as {"error": ...} with
HTTP 200; successful sign in/up/out and account deletion redirect.
"""

import logging
from typing import Annotated, Any, Mapping, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from api.actions import (
    ActionContext,
    ActionResult,
    Unauthorized,
    get_action_context,
    redirect,
    validated_action,
    validated_action_with_user,
)
from api.dependencies import get_optional_user
from api.middleware.rate_limit import get_rate_limit, limiter
from api.session import get_session_user
from api.schemas.auth import (
    DeleteAccountForm,
    SignInForm,
    SignUpForm,
    UpdateAccountForm,
    UpdatePasswordForm,
    UserResponse,
)
from core.security.password import password_hasher
from infrastructure.database.models import (
    ActivityType,
    Invitation,
    InvitationStatus,
    Team,
    TeamMember,
    TeamMemberRole,
    User,
)
from services.billing import start_checkout
from services.teams import get_user_with_team, get_user_with_team_by_email

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Authentication"])

INVALID_CREDENTIALS = "Invalid email or password. Please try again."
SIGN_UP_FAILED = "Failed to create user. Please try again."


async def _continue_after_auth(
    form: Mapping[str, Any],
    ctx: ActionContext,
    user: User,
    team_id: Optional[int],
    default: str,
) -> ActionResult:
    """Redirect to the default page, or hand off to checkout when requested."""
    if form.get("redirect") == "checkout":
        team = await ctx.db.get(Team, team_id) if team_id is not None else None
        url = await start_checkout(ctx.stripe, team, user, form.get("priceId") or "")
        return redirect(url)
    return redirect(default)


@validated_action(SignInForm)
async def sign_in(data: SignInForm, form: Mapping[str, Any], ctx: ActionContext) -> ActionResult:
    found = await get_user_with_team_by_email(ctx.db, data.email)
    if found is None or not password_hasher.verify(data.password, found.user.password_hash):
        logger.info("Failed sign in attempt")
        return {"error": INVALID_CREDENTIALS, "email": data.email, "password": data.password}

    ctx.start_session(found.user)
    await ctx.log(found.team_id, found.user.id, ActivityType.SIGN_IN)
    logger.info("User signed in", extra={"user_id": found.user.id})

    return await _continue_after_auth(form, ctx, found.user, found.team_id, "/converter")


async def _find_pending_invitation(ctx: ActionContext, invite_id: str, email: str) -> Optional[Invitation]:
    try:
        invitation_id = int(invite_id)
    except ValueError:
        return None
    result = await ctx.db.execute(
        select(Invitation)
        .where(
            Invitation.id == invitation_id,
            Invitation.email == email,
            Invitation.status == InvitationStatus.PENDING.value,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


@validated_action(SignUpForm)
async def sign_up(data: SignUpForm, form: Mapping[str, Any], ctx: ActionContext) -> ActionResult:
    email, password = data.email, data.password

    existing = await ctx.db.execute(select(User.id).where(User.email == email).limit(1))
    if existing.first() is not None:
        return {"error": SIGN_UP_FAILED, "email": email, "password": password}

    invitation = None
    if data.invite_id:
        invitation = await _find_pending_invitation(ctx, data.invite_id, email)
        if invitation is None:
            return {"error": "Invalid or expired invitation.", "email": email, "password": password}

    member_role = invitation.role if invitation else TeamMemberRole.OWNER.value
    user = User(
        uuid=data.uuid,
        email=email,
        password_hash=password_hasher.hash(password),
        role=TeamMemberRole.OWNER.value,
    )
    ctx.db.add(user)

    team = None
    if invitation:
        invitation.status = InvitationStatus.ACCEPTED.value
    else:
        team = Team(name=f"{email}'s Team")
        ctx.db.add(team)

    try:
        await ctx.db.commit()
    except IntegrityError:
        await ctx.db.rollback()
        logger.warning("Sign up lost a race on a duplicate email")
        return {"error": SIGN_UP_FAILED, "email": email, "password": password}

    if invitation:
        team_id = invitation.team_id
        await ctx.log(team_id, user.id, ActivityType.ACCEPT_INVITATION)
    else:
        team_id = team.id
        await ctx.log(team_id, user.id, ActivityType.CREATE_TEAM)

    ctx.db.add(TeamMember(user_id=user.id, team_id=team_id, role=member_role))
    await ctx.run_with_log(ctx.db.commit(), team_id, user.id, ActivityType.SIGN_UP)
    ctx.start_session(user)
    logger.info("User signed up", extra={"user_id": user.id, "team_id": team_id})

    return await _continue_after_auth(form, ctx, user, team_id, "/dashboard")


async def sign_out(ctx: ActionContext) -> ActionResult:
    """
    Sign the current user out.

    Raises:
        Unauthorized: If nobody is signed in
    """
    user = await get_session_user(ctx.request, ctx.db, ctx.tokens)
    if user is None:
        raise Unauthorized()

    user_with_team = await get_user_with_team(ctx.db, user.id)
    await ctx.log(user_with_team.team_id if user_with_team else None, user.id, ActivityType.SIGN_OUT)
    ctx.end_session()
    return redirect("/sign-in")


@validated_action_with_user(UpdatePasswordForm)
async def update_password(
    data: UpdatePasswordForm,
    form: Mapping[str, Any],
    user: User,
    ctx: ActionContext,
) -> ActionResult:
    if not password_hasher.verify(data.current_password, user.password_hash):
        return {"error": "Current password is incorrect."}

    if data.current_password == data.new_password:
        return {"error": "New password must be different from the current password."}

    new_hash = password_hasher.hash(data.new_password)
    user_with_team = await get_user_with_team(ctx.db, user.id)

    async def write() -> None:
        await ctx.db.execute(
            update(User).where(User.id == user.id).values(password_hash=new_hash)
        )
        await ctx.db.commit()

    await ctx.run_with_log(
        write(),
        user_with_team.team_id if user_with_team else None,
        user.id,
        ActivityType.UPDATE_PASSWORD,
    )
    return {"success": "Password updated successfully."}


@validated_action_with_user(DeleteAccountForm)
async def delete_account(
    data: DeleteAccountForm,
    form: Mapping[str, Any],
    user: User,
    ctx: ActionContext,
) -> ActionResult:
    if not password_hasher.verify(data.password, user.password_hash):
        return {"error": "Incorrect password. Account deletion failed."}

    user_with_team = await get_user_with_team(ctx.db, user.id)
    team_id = user_with_team.team_id if user_with_team else None

    await ctx.log(team_id, user.id, ActivityType.DELETE_ACCOUNT)

    # Suffix keeps the email column unique and frees the address for reuse
    await ctx.db.execute(
        update(User)
        .where(User.id == user.id)
        .values(deleted_at=func.now(), email=f"{user.email}-{user.id}-deleted")
    )
    if team_id is not None:
        membership = await ctx.db.execute(
            select(TeamMember).where(
                TeamMember.user_id == user.id,
                TeamMember.team_id == team_id,
            )
        )
        for member in membership.scalars().all():
            await ctx.db.delete(member)
    await ctx.db.commit()
    logger.info("Account deleted", extra={"user_id": user.id, "team_id": team_id})

    ctx.end_session()
    return redirect("/sign-in")


@validated_action_with_user(UpdateAccountForm)
async def update_account(
    data: UpdateAccountForm,
    form: Mapping[str, Any],
    user: User,
    ctx: ActionContext,
) -> ActionResult:
    user_with_team = await get_user_with_team(ctx.db, user.id)

    async def write() -> None:
        await ctx.db.execute(
            update(User)
            .where(User.id == user.id)
            .values(name=data.name, email=data.email, updated_at=func.now())
        )
        await ctx.db.commit()

    try:
        await ctx.run_with_log(
            write(),
            user_with_team.team_id if user_with_team else None,
            user.id,
            ActivityType.UPDATE_ACCOUNT,
        )
    except IntegrityError:
        await ctx.db.rollback()
        return {"error": "Email is already in use.", "name": data.name, "email": data.email}
    return {"success": "Account updated successfully."}


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/auth/sign-in")
@limiter.limit(get_rate_limit("sign_in"))
async def sign_in_endpoint(
    request: Request,
    ctx: Annotated[ActionContext, Depends(get_action_context)],
):
    """Sign in with email and password."""
    form = await request.form()
    return ctx.render(await sign_in(form, ctx))


@router.post("/auth/sign-up")
@limiter.limit(get_rate_limit("sign_up"))
async def sign_up_endpoint(
    request: Request,
    ctx: Annotated[ActionContext, Depends(get_action_context)],
):
    """Create an account, joining an invited team or creating a new one."""
    form = await request.form()
    return ctx.render(await sign_up(form, ctx))


@router.post("/auth/sign-out")
async def sign_out_endpoint(ctx: Annotated[ActionContext, Depends(get_action_context)]):
    return ctx.render(await sign_out(ctx))


@router.post("/account/password")
async def update_password_endpoint(
    request: Request,
    ctx: Annotated[ActionContext, Depends(get_action_context)],
):
    form = await request.form()
    return ctx.render(await update_password(form, ctx))


@router.post("/account/delete")
async def delete_account_endpoint(
    request: Request,
    ctx: Annotated[ActionContext, Depends(get_action_context)],
):
    """Soft-delete the signed-in account after confirming the password."""
    form = await request.form()
    return ctx.render(await delete_account(form, ctx))


@router.post("/account")
async def update_account_endpoint(
    request: Request,
    ctx: Annotated[ActionContext, Depends(get_action_context)],
):
    form = await request.form()
    return ctx.render(await update_account(form, ctx))


@router.get("/user", response_model=Optional[UserResponse])
async def get_user(user: Annotated[Optional[User], Depends(get_optional_user)]):
    """Return the signed-in user, or null."""
    return user

"""
Team membership, invitation and activity API routes.
"""

import logging
from typing import Annotated, Any, Mapping, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.actions import (
    ActionContext,
    ActionResult,
    Unauthorized,
    get_action_context,
    validated_action_with_user,
)
from api.dependencies import get_optional_user
from api.schemas.team import (
    ActivityResponse,
    InviteTeamMemberForm,
    RemoveTeamMemberForm,
    TeamResponse,
)
from infrastructure.database.connection import get_db
from infrastructure.database.models import (
    ActivityType,
    Invitation,
    InvitationStatus,
    TeamMember,
    User,
)
from services.activity_log import get_activity_logs
from services.teams import get_team_for_user, get_user_with_team

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Team"])

NOT_IN_TEAM = "User is not part of a team"


@validated_action_with_user(RemoveTeamMemberForm)
async def remove_team_member(
    data: RemoveTeamMemberForm,
    form: Mapping[str, Any],
    user: User,
    ctx: ActionContext,
) -> ActionResult:
    user_with_team = await get_user_with_team(ctx.db, user.id)
    if user_with_team is None or user_with_team.team_id is None:
        return {"error": NOT_IN_TEAM}
    team_id = user_with_team.team_id

    # Scoped to the caller's team so a foreign membership id matches nothing
    result = await ctx.db.execute(
        delete(TeamMember).where(
            TeamMember.id == data.member_id,
            TeamMember.team_id == team_id,
        )
    )
    if result.rowcount == 0:
        await ctx.db.rollback()
        return {"error": "Team member not found"}
    await ctx.db.commit()

    await ctx.log(team_id, user.id, ActivityType.REMOVE_TEAM_MEMBER)
    logger.info(
        "Removed team member %s",
        data.member_id,
        extra={"user_id": user.id, "team_id": team_id},
    )
    return {"success": "Team member removed successfully"}


@validated_action_with_user(InviteTeamMemberForm)
async def invite_team_member(
    data: InviteTeamMemberForm,
    form: Mapping[str, Any],
    user: User,
    ctx: ActionContext,
) -> ActionResult:
    user_with_team = await get_user_with_team(ctx.db, user.id)
    if user_with_team is None or user_with_team.team_id is None:
        return {"error": NOT_IN_TEAM}
    team_id = user_with_team.team_id

    existing_member = await ctx.db.execute(
        select(TeamMember.id)
        .join(User, User.id == TeamMember.user_id)
        .where(User.email == data.email, TeamMember.team_id == team_id)
        .limit(1)
    )
    if existing_member.first() is not None:
        return {"error": "User is already a member of this team"}

    existing_invitation = await ctx.db.execute(
        select(Invitation.id)
        .where(
            Invitation.email == data.email,
            Invitation.team_id == team_id,
            Invitation.status == InvitationStatus.PENDING.value,
        )
        .limit(1)
    )
    if existing_invitation.first() is not None:
        return {"error": "An invitation has already been sent to this email"}

    invitation = Invitation(
        team_id=team_id,
        email=data.email,
        role=data.role,
        invited_by=user.id,
        status=InvitationStatus.PENDING.value,
    )
    ctx.db.add(invitation)
    await ctx.db.commit()

    await ctx.log(team_id, user.id, ActivityType.INVITE_TEAM_MEMBER)
    logger.info(
        "Invitation %s sent",
        invitation.id,
        extra={"user_id": user.id, "team_id": team_id},
    )
    # TODO: email the invitee a sign-up link carrying ?inviteId={invitation.id}
    return {"success": "Invitation sent successfully"}


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/team/members/remove")
async def remove_team_member_endpoint(
    request: Request,
    ctx: Annotated[ActionContext, Depends(get_action_context)],
):
    form = await request.form()
    return ctx.render(await remove_team_member(form, ctx))


@router.post("/team/invitations")
async def invite_team_member_endpoint(
    request: Request,
    ctx: Annotated[ActionContext, Depends(get_action_context)],
):
    """Invite an email address to the caller's team."""
    form = await request.form()
    return ctx.render(await invite_team_member(form, ctx))


@router.get("/team", response_model=Optional[TeamResponse])
async def get_team(
    user: Annotated[Optional[User], Depends(get_optional_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Get the caller's team with its members.

    Raises:
        Unauthorized: If nobody is signed in
    """
    if user is None:
        raise Unauthorized()
    return await get_team_for_user(db, user.id)


@router.get("/activity", response_model=list[ActivityResponse])
async def get_activity(
    user: Annotated[Optional[User], Depends(get_optional_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get the caller's ten most recent activity entries."""
    if user is None:
        raise Unauthorized()
    return await get_activity_logs(db, user.id)

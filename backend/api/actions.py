"""
Form action wrappers.

A form action receives the submitted form and an ActionContext and returns
either a result dict (rendered as JSON) or a Starlette response such as a
redirect. The wrappers validate the form against a pydantic schema before
the handler runs:

- validated_action: invalid input returns {"error": <first message>, ...}
  with the submitted fields echoed back.
- validated_action_with_user: additionally requires a signed-in user and
  raises Unauthorized when there is none.
- with_team: requires a signed-in user and their team.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from fastapi import Depends, Request
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile
from starlette.responses import JSONResponse, RedirectResponse, Response

from adapters.payments.stripe_adapter import StripeAdapter
from api.dependencies import get_activity_writer, get_stripe_adapter, get_token_service
from api.middleware.rate_limit import get_client_ip
from api.session import clear_session, get_session_user, set_session
from core.security.tokens import SessionTokenService
from infrastructure.database.connection import get_db
from infrastructure.database.models import ActivityType, Team, User
from services.activity_log import ActivityLogWriter
from services.teams import get_team_for_user

logger = logging.getLogger(__name__)

ActionResult = Union[dict[str, Any], Response]


class Unauthorized(Exception):
    """Raised by authenticated actions when no user is signed in."""

    def __init__(self, detail: str = "User is not authenticated"):
        super().__init__(detail)
        self.detail = detail


@dataclass
class ActionContext:
    """Per-request state shared by form actions."""

    request: Request
    db: AsyncSession
    tokens: SessionTokenService
    activity: ActivityLogWriter
    stripe: Optional[StripeAdapter] = None
    client_ip: Optional[str] = None
    user: Optional[User] = None
    _cookie_ops: list[Callable[[Response], None]] = field(default_factory=list)

    def start_session(self, user: User) -> None:
        """Set the session cookie for the user on the eventual response."""
        user_id = user.id
        self._cookie_ops.append(lambda response: set_session(response, self.tokens, user_id))

    def end_session(self) -> None:
        self._cookie_ops.append(clear_session)

    async def log(
        self,
        team_id: Optional[int],
        user_id: Optional[int],
        action: ActivityType,
    ) -> None:
        await self.activity.record(team_id, user_id, action, self.client_ip)

    async def run_with_log(
        self,
        write: Awaitable[Any],
        team_id: Optional[int],
        user_id: Optional[int],
        action: ActivityType,
    ) -> None:
        """Issue a primary write and its activity entry together."""
        await asyncio.gather(write, self.log(team_id, user_id, action))

    def render(self, result: ActionResult) -> Response:
        """Turn an action result into a response carrying pending cookies."""
        response = result if isinstance(result, Response) else JSONResponse(result)
        for apply in self._cookie_ops:
            apply(response)
        return response


async def get_action_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tokens: SessionTokenService = Depends(get_token_service),
    activity: ActivityLogWriter = Depends(get_activity_writer),
    stripe: StripeAdapter = Depends(get_stripe_adapter),
) -> ActionContext:
    return ActionContext(
        request=request,
        db=db,
        tokens=tokens,
        activity=activity,
        stripe=stripe,
        client_ip=get_client_ip(request),
    )


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def echo_fields(form: Mapping[str, Any]) -> dict[str, str]:
    """Submitted text fields, returned alongside errors so forms can refill."""
    return {
        key: value
        for key, value in form.items()
        if not isinstance(value, UploadFile)
    }


def _validate(schema: type[BaseModel], form: Mapping[str, Any]):
    try:
        return schema.model_validate(dict(form.items())), None
    except ValidationError as e:
        first = e.errors()[0]
        return None, {**echo_fields(form), "error": first["msg"]}


Handler = Callable[..., Awaitable[ActionResult]]
Action = Callable[[Mapping[str, Any], ActionContext], Awaitable[ActionResult]]


def validated_action(schema: type[BaseModel]) -> Callable[[Handler], Action]:
    """
    Validate the form before calling handler(data, form, ctx).

    Args:
        schema: Pydantic model the form must satisfy

    Returns:
        Decorator producing an action taking (form, ctx)
    """

    def decorator(handler: Handler) -> Action:
        @functools.wraps(handler)
        async def action(form: Mapping[str, Any], ctx: ActionContext) -> ActionResult:
            data, error = _validate(schema, form)
            if error is not None:
                return error
            return await handler(data, form, ctx)

        return action

    return decorator


def validated_action_with_user(schema: type[BaseModel]) -> Callable[[Handler], Action]:
    """
    Require a signed-in user, then validate and call handler(data, form, user, ctx).

    Raises:
        Unauthorized: If the request carries no valid session
    """

    def decorator(handler: Handler) -> Action:
        @functools.wraps(handler)
        async def action(form: Mapping[str, Any], ctx: ActionContext) -> ActionResult:
            user = await get_session_user(ctx.request, ctx.db, ctx.tokens)
            if user is None:
                raise Unauthorized()
            ctx.user = user

            data, error = _validate(schema, form)
            if error is not None:
                return error
            return await handler(data, form, user, ctx)

        return action

    return decorator


def with_team(handler: Callable[[Mapping[str, Any], Team, ActionContext], Awaitable[ActionResult]]) -> Action:
    """
    Resolve the signed-in user's team and call handler(form, team, ctx).

    Redirects to /sign-in when nobody is signed in.

    Raises:
        LookupError: If the user has no team
    """

    @functools.wraps(handler)
    async def action(form: Mapping[str, Any], ctx: ActionContext) -> ActionResult:
        user = await get_session_user(ctx.request, ctx.db, ctx.tokens)
        if user is None:
            return redirect("/sign-in")
        ctx.user = user

        team = await get_team_for_user(ctx.db, user.id)
        if team is None:
            raise LookupError("Team not found")
        return await handler(form, team, ctx)

    return action

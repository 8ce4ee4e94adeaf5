"""
Team, invitation and activity schemas.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .auth import FormModel, check_email


class RemoveTeamMemberForm(FormModel):
    """Team member removal form schema."""

    member_id: int = Field(..., alias="memberId")


class InviteTeamMemberForm(FormModel):
    """Team invitation form schema."""

    email: str
    role: Literal["member", "owner"]

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        return check_email(v)


class MemberUserResponse(BaseModel):
    id: int
    name: Optional[str] = None
    email: str

    model_config = ConfigDict(from_attributes=True)


class TeamMemberResponse(BaseModel):
    """Team membership with its user."""

    id: int
    role: str
    joined_at: datetime
    user: MemberUserResponse

    model_config = ConfigDict(from_attributes=True)


class TeamResponse(BaseModel):
    """Team with subscription state and members."""

    id: int
    name: str
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_product_id: Optional[str] = None
    plan_name: Optional[str] = None
    subscription_status: Optional[str] = None
    created_at: datetime
    members: list[TeamMemberResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ActivityResponse(BaseModel):
    """Activity log entry with the acting user's name."""

    id: int
    action: str
    timestamp: datetime
    ip_address: Optional[str] = None
    user_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

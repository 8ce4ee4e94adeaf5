"""
Authentication and account form schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError


def check_email(value: str, message: str = "Invalid email address") -> str:
    """Validate an email address, failing with a fixed message."""
    try:
        _, email = validate_email(value)
    except PydanticCustomError:
        raise PydanticCustomError("invalid_email", message)
    return email


class FormModel(BaseModel):
    """Base for form payloads; fields are submitted under their camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


class SignInForm(FormModel):
    """Sign in form schema."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        return check_email(v, "value is not a valid email address")


class SignUpForm(FormModel):
    """Sign up form schema."""

    email: EmailStr
    password: str = Field(..., min_length=8)
    invite_id: Optional[str] = Field(None, alias="inviteId")
    uuid: str


class UpdatePasswordForm(FormModel):
    """Password change form schema."""

    current_password: str = Field(..., alias="currentPassword", min_length=8, max_length=100)
    new_password: str = Field(..., alias="newPassword", min_length=8, max_length=100)
    confirm_password: str = Field(..., alias="confirmPassword", min_length=8, max_length=100)

    @model_validator(mode="after")
    def passwords_match(self) -> "UpdatePasswordForm":
        if self.new_password != self.confirm_password:
            raise PydanticCustomError("password_mismatch", "Passwords don't match")
        return self


class DeleteAccountForm(FormModel):
    """Account deletion confirmation schema."""

    password: str = Field(..., min_length=8, max_length=100)


class UpdateAccountForm(FormModel):
    """Profile update form schema."""

    name: str
    email: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if len(v) < 1:
            raise PydanticCustomError("name_required", "Name is required")
        if len(v) > 100:
            raise PydanticCustomError("name_too_long", "Name must be at most 100 characters")
        return v

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        return check_email(v)


class UserResponse(BaseModel):
    """User response schema."""

    id: int
    uuid: Optional[str] = None
    name: Optional[str] = None
    email: str
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

"""
API request and response schemas.
"""

from .auth import (
    DeleteAccountForm,
    SignInForm,
    SignUpForm,
    UpdateAccountForm,
    UpdatePasswordForm,
    UserResponse,
)
from .billing import PriceResponse, ProductResponse, WebhookResponse
from .team import (
    ActivityResponse,
    InviteTeamMemberForm,
    RemoveTeamMemberForm,
    TeamMemberResponse,
    TeamResponse,
)

__all__ = [
    "SignInForm",
    "SignUpForm",
    "UpdatePasswordForm",
    "DeleteAccountForm",
    "UpdateAccountForm",
    "UserResponse",
    "RemoveTeamMemberForm",
    "InviteTeamMemberForm",
    "TeamMemberResponse",
    "TeamResponse",
    "ActivityResponse",
    "PriceResponse",
    "ProductResponse",
    "WebhookResponse",
]

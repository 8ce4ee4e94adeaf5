"""
Security utilities for authentication.
"""

from .password import BCRYPT_ROUNDS, PasswordHasher, password_hasher
from .tokens import InvalidSession, SessionClaim, SessionTokenService

__all__ = [
    "BCRYPT_ROUNDS",
    "PasswordHasher",
    "password_hasher",
    "SessionTokenService",
    "SessionClaim",
    "InvalidSession",
]

"""
Password hashing utilities using bcrypt.
"""

from passlib.context import CryptContext

# Fixed work factor; existing hashes keep verifying if this changes
BCRYPT_ROUNDS = 10


class PasswordHasher:
    """Password hashing and verification using bcrypt."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password to hash

        Returns:
            Salted bcrypt hash string
        """
        return self._context.hash(password)

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against a hash.

        Args:
            plain_password: Plain text password to verify
            hashed_password: Hashed password to check against

        Returns:
            True if password matches, False otherwise (including for a
            hash that cannot be parsed)
        """
        try:
            return self._context.verify(plain_password, hashed_password)
        except (ValueError, TypeError):
            return False


# Singleton instance
password_hasher = PasswordHasher()

"""
Signed session tokens stored in the session cookie.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt


class InvalidSession(Exception):
    """Raised when a session token is tampered, expired, or malformed."""


@dataclass
class SessionClaim:
    """Payload carried by a session token."""

    user_id: int
    expires: datetime


class SessionTokenService:
    """Issues and verifies HMAC-signed session tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_hours: int = 24,
    ):
        """
        Initialize the token service.

        Args:
            secret_key: Symmetric key used to sign tokens
            algorithm: JWT algorithm (default: HS256)
            expire_hours: Token lifetime in hours

        Raises:
            ValueError: If no secret key is supplied
        """
        if not secret_key:
            raise ValueError("A session signing secret is required")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.expire_hours = expire_hours

    def issue(self, user_id: int, now: datetime | None = None) -> tuple[str, datetime]:
        """
        Create a session token for a user.

        Args:
            user_id: ID of the signed-in user
            now: Override the issue time (defaults to the current time)

        Returns:
            Tuple of (encoded token, expiry datetime)
        """
        now = now or datetime.now(UTC)
        expires = now + timedelta(hours=self.expire_hours)

        payload = {
            "user": {"id": user_id},
            "expires": expires.isoformat(),
            "iat": now,
            "exp": expires,
        }

        token = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        return token, expires

    def verify(self, token: str) -> SessionClaim:
        """
        Verify a session token.

        Args:
            token: Encoded token from the session cookie

        Returns:
            SessionClaim for the token's user

        Raises:
            InvalidSession: If the signature, algorithm, expiry, or payload shape is wrong
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require_exp": True},
            )
        except JWTError as e:
            raise InvalidSession(str(e)) from e

        user = payload.get("user")
        if not isinstance(user, dict) or not isinstance(user.get("id"), int):
            raise InvalidSession("Session token has no user id")

        try:
            expires = datetime.fromisoformat(payload["expires"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidSession("Session token has no valid expiry") from e

        if expires <= datetime.now(UTC):
            raise InvalidSession("Session token has expired")

        return SessionClaim(user_id=user["id"], expires=expires)

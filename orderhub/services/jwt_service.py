"""
JWT token service for admin API access.

Tokens are issued by the admin login flow; this service signs and verifies
them with the shared JWT secret.
"""
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from orderhub.config import settings


class JWTService:
    """Service for creating and verifying JWT tokens."""

    def __init__(self, secret_key: str | None = None, algorithm: str | None = None):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM

    def create_token(self, user_id: str, role: str, email: str) -> str:
        """
        Create a JWT token with user context.

        Args:
            user_id: Admin user's unique ID
            role: User role (admin or staff)
            email: User's email

        Returns:
            Encoded JWT token string
        """
        expires = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

        payload = {
            "sub": user_id,
            "role": role,
            "email": email,
            "exp": expires
        }

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> dict | None:
        """
        Verify and decode a JWT token.

        Returns:
            Decoded payload dict or None if invalid
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None

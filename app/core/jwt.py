"""JWT verification for bearer tokens issued by the CRM's auth provider.

Tokens are HS256-signed with a shared secret; issuer and audience come from
``AuthSettings``.
"""

from typing import Any, Dict, Optional

import jwt
from pydantic import BaseModel

from app.core.config import settings
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

ALGORITHM = "HS256"


class JWTClaims(BaseModel):
    """Decoded JWT claims."""

    sub: str  # User ID
    email: Optional[str] = None
    role: str = "user"
    exp: int  # Expiry timestamp
    iat: int  # Issued at timestamp
    iss: str  # Issuer
    aud: str = ""

    app_metadata: Optional[Dict[str, Any]] = None

    @property
    def effective_role(self) -> str:
        """CRM role, preferring ``app_metadata.role`` over the top-level claim."""
        if self.app_metadata and self.app_metadata.get("role"):
            return str(self.app_metadata["role"])
        return self.role


class JWTVerifier:
    """Verifier for HS256 access tokens.

    This class handles:
    - JWT decoding with signature verification
    - Claims validation (exp, iat, iss, aud)
    """

    def __init__(self, secret: str, issuer: str, audience: str):
        """Initialize JWT verifier.

        Args:
            secret: Shared HS256 signing secret
            issuer: Expected ``iss`` claim
            audience: Expected ``aud`` claim
        """
        self.secret = secret
        self.issuer = issuer
        self.audience = audience

        LOGGER.info(f"JWT verifier initialized for issuer: {self.issuer}")

    def verify_token(self, token: str) -> JWTClaims:
        """Verify and decode a JWT token.

        Args:
            token: JWT access token from Authorization header

        Returns:
            Decoded and validated JWT claims

        Raises:
            jwt.InvalidTokenError: If token is invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_exp": True,
                    "verify_iat": True,
                    "verify_iss": True,
                    "require": ["sub", "exp", "iat", "iss"]
                }
            )

            claims = JWTClaims(**payload)

            LOGGER.debug(f"Successfully verified token for user: {claims.sub}")
            return claims

        except jwt.ExpiredSignatureError as e:
            LOGGER.warning(f"Token expired: {e}")
            raise jwt.InvalidTokenError("Token has expired") from e
        except jwt.InvalidIssuerError as e:
            LOGGER.warning(f"Invalid issuer: {e}")
            raise jwt.InvalidTokenError("Invalid token issuer") from e
        except jwt.InvalidSignatureError as e:
            LOGGER.warning(f"Invalid signature: {e}")
            raise jwt.InvalidTokenError("Invalid token signature") from e
        except jwt.InvalidTokenError as e:
            LOGGER.warning(f"Invalid token: {e}")
            raise
        except Exception as e:
            LOGGER.error(f"Unexpected error during token verification: {e}")
            raise jwt.InvalidTokenError("Token verification failed") from e


jwt_verifier = JWTVerifier(
    secret=settings.jwt_secret,
    issuer=settings.jwt_issuer,
    audience=settings.jwt_audience,
)

"""JWT Authentication Middleware for FastAPI.

This middleware verifies the JWT access token in the Authorization header
and attaches the user information to the request state.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import jwt

from app.core.jwt import jwt_verifier
from app.schemas.auth import CurrentUser
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Paths that don't require authentication
EXCLUDED_PATHS = {
    "/health",
    "/health/",
    "/docs",
    "/docs/",
    "/openapi.json",
    "/openapi.json/",
}


class JWTAuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware for JWT authentication.

    Verifies Bearer token in 'Authorization' header and populates request.state.user.
    """

    async def dispatch(self, request: Request, call_next):
        # Allow OPTIONS requests
        if request.method == "OPTIONS":
            return await call_next(request)

        # Skip authentication for excluded paths
        if request.url.path in EXCLUDED_PATHS or request.url.path.startswith("/health"):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")

        if not auth_header:
            LOGGER.warning(f"Missing Authorization header for {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Authorization header missing"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            LOGGER.warning(f"Invalid Authorization header format for {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid authentication scheme. Use Bearer token."},
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            claims = jwt_verifier.verify_token(token.strip())
        except jwt.InvalidTokenError as e:
            LOGGER.warning(f"Invalid token for {request.url.path}: {e}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid authentication token"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.user = CurrentUser(
            id=claims.sub,
            email=claims.email,
            role=claims.effective_role,
        )
        LOGGER.debug(f"Authenticated user {claims.sub} via middleware")

        return await call_next(request)

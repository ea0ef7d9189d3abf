"""FastAPI dependency protecting resource-server routes with authority tokens.

Example:
    >>> from fastapi import Depends, FastAPI
    >>> app = FastAPI()
    >>> @app.get("/reports")
    ... async def reports(claims: AccessToken = Depends(require_access_token(authority, "read"))):
    ...     return {"sub": claims.sub}
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request

from token_authority.authority import TokenAuthority
from token_authority.errors import InvalidTokenError, UnauthorizedTokenError
from token_authority.tokens import AccessToken

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
ERROR_AUTH_REQUIRED = "Authentication required"
ERROR_INSUFFICIENT_SCOPE = "insufficient_scope"


def get_bearer_token(request: Request) -> str | None:
    """Extract the token from an ``Authorization: Bearer`` header."""
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    return auth[7:].strip() or None


def _challenge(error: str | None = None) -> dict[str, str]:
    if error is None:
        return {"WWW-Authenticate": "Bearer"}
    return {"WWW-Authenticate": f'Bearer error="{error}"'}


def require_access_token(
    authority: TokenAuthority, scope: str | None = None
) -> Callable[[Request], Awaitable[AccessToken]]:
    """Dependency factory: require a valid access token, optionally with ``scope``.

    The validated claims are returned and also stored on
    ``request.state.access_token``. Responds 401 when the token is missing,
    invalid or unauthorized, and 403 when the scope is missing.
    """

    async def _dependency(request: Request) -> AccessToken:
        token = get_bearer_token(request)
        if token is None:
            raise HTTPException(
                status_code=HTTP_UNAUTHORIZED,
                detail=ERROR_AUTH_REQUIRED,
                headers=_challenge(),
            )
        try:
            claims = await authority.validate_access_token(token)
        except (InvalidTokenError, UnauthorizedTokenError) as exc:
            raise HTTPException(
                status_code=HTTP_UNAUTHORIZED,
                detail=exc.oauth_error,
                headers=_challenge("invalid_token"),
            ) from exc
        if scope is not None and scope not in claims.scopes:
            raise HTTPException(
                status_code=HTTP_FORBIDDEN,
                detail=ERROR_INSUFFICIENT_SCOPE,
                headers=_challenge(ERROR_INSUFFICIENT_SCOPE),
            )
        request.state.access_token = claims
        return claims

    return _dependency

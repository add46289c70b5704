"""
Bearer JWT authorization for the composite edge.

Scopes are read from the `scope` claim (space separated, OAuth2 style) or the
`scp` claim (list). Routes declare what they need with `require_any_scope`.
"""
from typing import Optional, Set

import jwt
import logging
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from product_composite.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

SCOPE_READ = "product:read"
SCOPE_WRITE = "product:write"

security = HTTPBearer(auto_error=False)


def decode_token(token: str, settings: Settings) -> Optional[dict]:
    """Validate signature/expiry (and issuer/audience when configured)."""
    options = {"verify_aud": settings.JWT_AUDIENCE is not None}
    try:
        return jwt.decode(
            token,
            settings.JWT_KEY,
            algorithms=settings.jwt_algorithms,
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid token: {e}")
        return None


def token_scopes(claims: dict) -> Set[str]:
    scopes: Set[str] = set()
    scope = claims.get("scope")
    if isinstance(scope, str):
        scopes.update(scope.split())
    scp = claims.get("scp")
    if isinstance(scp, str):
        scopes.update(scp.split())
    elif isinstance(scp, (list, tuple)):
        scopes.update(str(s) for s in scp)
    return scopes


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Any authenticated principal."""
    if not settings.AUTH_ENABLED:
        return {}
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated",
                            headers={"WWW-Authenticate": "Bearer"})

    claims = decode_token(credentials.credentials, settings)
    if claims is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token",
                            headers={"WWW-Authenticate": "Bearer"})
    return claims


def require_any_scope(*required: str):
    """Dependency factory: the token must carry at least one of `required`."""

    async def checker(
        claims: dict = Depends(get_current_claims),
        settings: Settings = Depends(get_settings),
    ) -> dict:
        if not settings.AUTH_ENABLED:
            return claims
        if not token_scopes(claims) & set(required):
            logger.warning("Access denied: sub=%s lacks any of %s", claims.get("sub"), required)
            raise HTTPException(status_code=403, detail=f"Insufficient scope, requires one of: {', '.join(required)}")
        return claims

    return checker


require_read = require_any_scope(SCOPE_READ, SCOPE_WRITE)
require_write = require_any_scope(SCOPE_WRITE)

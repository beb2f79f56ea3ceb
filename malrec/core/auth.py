"""Bearer-token dependencies: the caller's MAL access token and its owner.

The OAuth exchange happens in the frontend/proxy; this service only needs
the resulting access token to call MAL on the user's behalf.
"""

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from malrec.api.deps import get_user_service
from malrec.services.user_service import UserService

logger = logging.getLogger(__name__)

# auto_error=False so a missing header gets a clear 401 instead of 403
_bearer_scheme = HTTPBearer(auto_error=False)


async def require_mal_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str:
    """
    Dependency returning the MAL access token.

    The client must send:
        Authorization: Bearer <MAL access token>
    """
    if not credentials or not credentials.credentials:
        client_ip = request.client.host if request.client else "unknown"
        logger.info("Request without MAL token from %s", client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="MyAnimeList access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


async def require_owner(
    user_id: int,
    token: str = Depends(require_mal_token),
    users: UserService = Depends(get_user_service),
) -> str:
    """
    Dependency for routes that write a user's state.

    Resolves the token's owner and rejects the call with 403 unless it is
    the user named in the path. Returns the token for calls to MAL.
    """
    owner_id = await users.identify(token)
    if owner_id != user_id:
        logger.warning("Token owned by user %s used on user %s", owner_id, user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token does not belong to this user",
        )
    return token

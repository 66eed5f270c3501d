"""HTTP basic authentication against the single configured credential."""

import logging
import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

logger = logging.getLogger(__name__)

security = HTTPBasic(realm="FlatWiki")


def require_basic_auth(
    request: Request,
    credentials: Annotated[HTTPBasicCredentials, Depends(security)],
) -> str:
    """Dependency that rejects requests without the configured user/password.

    Returns:
        The authenticated username.

    Raises:
        HTTPException: 401 when the credentials don't match.
    """
    settings = request.app.state.settings
    user_ok = secrets.compare_digest(
        credentials.username.encode("utf-8"), settings.username.encode("utf-8")
    )
    password_ok = secrets.compare_digest(
        credentials.password.encode("utf-8"), settings.password.encode("utf-8")
    )
    if not (user_ok and password_ok):
        logger.warning("Rejected credentials for user %r", credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": 'Basic realm="FlatWiki"'},
        )
    return credentials.username

"""
Token handling for the accounts domain.

Two token kinds exist and they never stand in for each other:

* internal access tokens, signed here with ``JWT_SECRET`` and tagged
  ``typ="access"``; the only kind accepted by the bearer dependency.
* identity tokens issued by the external provider (Firebase), accepted only
  by the session exchange endpoint, which trades one for an access token.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
import google.auth.exceptions
from fastapi.concurrency import run_in_threadpool
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from app.config import get_settings
from app.shared.exceptions import AuthenticationException, IdentityProviderNotConfiguredException

logger = logging.getLogger(__name__)

settings = get_settings()

ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes
ACCESS_TOKEN_TYPE = "access"


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "typ": ACCESS_TOKEN_TYPE})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> Optional[str]:
    """Return the subject of a valid internal access token, else None."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        logger.debug(f"Rejected access token: {e}")
        return None
    if payload.get("typ") != ACCESS_TOKEN_TYPE:
        return None
    return payload.get("sub")


class FirebaseIdentityVerifier:
    """Verifies identity tokens issued by Firebase Authentication."""

    def __init__(self, project_id: Optional[str]):
        self.project_id = project_id

    async def verify(self, token: str) -> Dict[str, Any]:
        if not self.project_id:
            raise IdentityProviderNotConfiguredException()
        try:
            # google-auth fetches signing certs with a blocking HTTP call
            claims = await run_in_threadpool(
                google_id_token.verify_firebase_token,
                token,
                google_requests.Request(),
                audience=self.project_id,
            )
        except (ValueError, google.auth.exceptions.GoogleAuthError) as e:
            logger.warning(f"Identity token verification failed: {e}")
            raise AuthenticationException("Invalid identity token") from e
        if not claims or not claims.get("sub"):
            raise AuthenticationException("Identity token has no subject")
        return claims


def get_identity_verifier() -> FirebaseIdentityVerifier:
    return FirebaseIdentityVerifier(get_settings().firebase_project_id)

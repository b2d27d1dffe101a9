"""
CampusNotes Backend: Session Tokens
=====================================

What:  Issues and verifies the app's own bearer tokens.
How:   HS256 JWTs (python-jose) carrying `google_id` and `exp`, signed with
       SIGNING_SECRET. Verifying the identity provider's tokens is the
       identity gateway's job, not this module's.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from campusnotes.config import Settings, settings
from campusnotes.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def create_session_token(google_id: str, config: Optional[Settings] = None) -> str:
    config = config or settings
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=config.session_expiration_seconds)
    claims = {"google_id": google_id, "exp": expires_at}
    return jwt.encode(claims, config.signing_secret, algorithm=ALGORITHM)


def decode_session_token(token: str, config: Optional[Settings] = None) -> str:
    """
    Returns:
        The google_id the token was issued for.

    Raises:
        AuthenticationError for malformed, forged or expired tokens.
    """
    config = config or settings
    try:
        claims = jwt.decode(token, config.signing_secret, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info("Rejected session token: %s", str(e))
        raise AuthenticationError("Invalid or expired session token")

    google_id = claims.get("google_id")
    if not isinstance(google_id, str) or not google_id:
        raise AuthenticationError("Invalid or expired session token")
    return google_id

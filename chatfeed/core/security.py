"""
Bearer tokens

The service does not own accounts. It trusts JWTs whose `sub` claim is the
caller's user ID, and can mint them for local tooling and tests.
"""

from datetime import timedelta
from typing import Any, Optional

from jose import JWTError, jwt

from chatfeed.core.config import settings
from chatfeed.core.time import utc_now


def issue_token(user_id: str, expires_in: Optional[timedelta] = None, **claims: Any) -> str:
    """
    Sign a token for `user_id`

    Args:
        user_id: Becomes the `sub` claim
        expires_in: Lifetime, ACCESS_TOKEN_EXPIRE_MINUTES when omitted
        claims: Extra claims to carry

    Returns:
        Encoded JWT
    """
    issued_at = utc_now()
    lifetime = expires_in or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {**claims, "sub": user_id, "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def read_claims(token: str) -> Optional[dict]:
    """Claims of a well-signed, unexpired token, None for anything else."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def user_id_from_token(token: str) -> Optional[str]:
    claims = read_claims(token)
    if not claims:
        return None
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        return None
    return subject

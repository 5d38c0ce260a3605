"""Authentication dependencies and utilities."""
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from contract_assistant.core.config import settings

logger = logging.getLogger(__name__)
security = HTTPBearer()


def decode_user_id(token: str) -> str:
    """
    Verify a bearer token and return its subject.

    Tokens are issued by the external auth provider; this service only
    verifies the signature and reads the ``sub`` claim.
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])

    user_id = payload.get("sub")
    if not user_id:
        raise JWTError("Token is missing the 'sub' claim")
    return str(user_id)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Extract user ID from JWT token.

    This validates the JWT signature and extracts the user ID (sub claim).
    """
    try:
        return decode_user_id(credentials.credentials)
    except JWTError as e:
        logger.warning(f"[AUTH] JWT validation failed: {type(e).__name__}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

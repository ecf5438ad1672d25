"""FastAPI dependencies for the planner API.

Provides:
- Bearer token resolution to a user id (HS256, `sub` claim)
- Premium entitlement gate, checked before any data is aggregated
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .db import get_db
from .errors import AuthenticationError, EntitlementError
from .planner.aggregator import HealthDataStore
from .settings import settings

ACTIVE_SUBSCRIPTION = "active"

security = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> Optional[dict]:
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError:
        return None


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Resolve the caller from the Authorization header.

    Missing header, bad signature, expired token and a token without `sub`
    all map to 401.
    """
    if not credentials:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid authentication credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")
    return str(user_id)


def require_entitlement(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> str:
    account = HealthDataStore(db).account(user_id)
    if not account or account.subscription_status != ACTIVE_SUBSCRIPTION:
        raise EntitlementError()
    return user_id

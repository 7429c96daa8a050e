"""
Authentication utilities and JWT token handling

Tokens are issued by the identity provider in front of this service and carry
the caller's tenant and role; this module only verifies them.
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from .config import config

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

http_bearer = HTTPBearer(auto_error=False)


class Role(str, enum.Enum):
    """Principal roles carried in the token"""
    ADMIN = "admin"
    CREATOR = "creator"
    CUSTOMER = "customer"
    PLATFORM = "platform"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller"""
    id: str
    tenant_slug: Optional[str]
    role: str
    name: Optional[str] = None

    @property
    def actor_type(self) -> str:
        return "admin" if self.role in (Role.ADMIN.value, Role.PLATFORM.value) else self.role


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token with JTI (JWT ID)

    Args:
        data: Claims; must include 'sub' and, except for platform tokens, 'tenant' and 'role'
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode.update({
        "exp": expire,
        "iat": now,
        "jti": str(uuid.uuid4()),
    })
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> dict:
    """Verify and decode a JWT token, raising 401 when it cannot be trusted"""
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        logger.warning("Token verification failed: token has expired")
        raise _unauthorized("Authentication token has expired")
    except JWTError as e:
        logger.warning(f"Token verification failed: {type(e).__name__} - {str(e)}")
        raise _unauthorized("Invalid authentication token")


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Principal:
    """Resolve the caller from the Authorization header"""
    if not credentials or not credentials.credentials.strip():
        logger.warning("Authentication failed: no authorization credentials provided")
        raise _unauthorized("Authentication token is missing")

    payload = decode_access_token(credentials.credentials.strip())

    subject = payload.get("sub")
    role = payload.get("role")
    tenant_slug = payload.get("tenant")
    if not subject or role not in {r.value for r in Role}:
        logger.warning(f"Authentication failed: malformed claims (sub={subject!r}, role={role!r})")
        raise _unauthorized("Invalid token claims")
    if role != Role.PLATFORM.value and not tenant_slug:
        raise _unauthorized("Token is not bound to a tenant")

    return Principal(id=str(subject), tenant_slug=tenant_slug, role=role, name=payload.get("name"))


def require_role(*roles: Role):
    """Dependency factory allowing only the given roles"""
    allowed = {r.value if isinstance(r, Role) else r for r in roles}

    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            logger.warning(f"Forbidden: role {principal.role} not in {sorted(allowed)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{principal.role}' is not allowed to perform this action",
            )
        return principal

    return _check

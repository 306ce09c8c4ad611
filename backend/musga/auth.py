"""
Musga - Authentication Utilities
Password hashing, JWT tokens, and auth dependencies
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .config import JWT_SECRET_KEY, JWT_ALGORITHM, JWT_EXPIRE_HOURS
from .database import get_db
from .errors import Forbidden, Unauthorized
from .models.db_models import AccountDB, UserRole

# Bearer token security; missing header is reported as Unauthorized below
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    password_bytes = plain_password.encode('utf-8')
    hashed_bytes = hashed_password.encode('utf-8')
    try:
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def create_access_token(user_id: str, email: str, role: str) -> str:
    """Create a JWT access token binding subject, email and role."""
    expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRE_HOURS)
    to_encode = {
        "sub": user_id,
        "email": email,
        "role": role,
        "exp": expire
    }
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token. Expired or tampered tokens yield None."""
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        return payload
    except JWTError:
        return None


async def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> AccountDB:
    """
    Dependency to get the current authenticated account.
    Validates the bearer token and resolves the account it names.
    """
    from .services.identity import IdentityService

    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing bearer token")

    return IdentityService(db).verify(credentials.credentials)


async def require_singer(current_account: AccountDB = Depends(get_current_account)) -> AccountDB:
    """
    Dependency to require the singer role.
    Use this on upload and own-catalog routes.
    """
    if current_account.role != UserRole.SINGER:
        raise Forbidden("Only singers can access this resource")
    return current_account

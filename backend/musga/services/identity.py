"""
Identity Service

Registers accounts, authenticates them and resolves bearer tokens.
Tokens are stateless; logout is the client discarding its token.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import hash_password, verify_password, create_access_token, decode_token
from ..config import MIN_PASSWORD_LENGTH
from ..errors import Conflict, InvalidArgument, Unauthorized
from ..models.db_models import AccountDB, UserRole

logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    """An account paired with a freshly issued token."""
    account: AccountDB
    token: str


class IdentityService:

    def __init__(self, db: Session):
        self.db = db

    def register(
        self,
        email: str,
        username: str,
        password: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        bio: Optional[str] = None,
    ) -> AuthResult:
        """
        Create an account and issue its first token.

        Raises:
            InvalidArgument: a required field is empty or the password is too short
            Conflict: email or username already belongs to another account
        """
        required = {
            "email": email,
            "username": username,
            "password": password,
            "first_name": first_name,
            "last_name": last_name,
            "role": role,
        }
        missing = [name for name, value in required.items() if value is None or not str(value).strip()]
        if missing:
            raise InvalidArgument(f"All required fields must be provided (missing: {', '.join(missing)})")

        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidArgument(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        try:
            role = UserRole(role)
        except ValueError:
            raise InvalidArgument(f"Invalid role. Must be one of: {', '.join(r.value for r in UserRole)}")

        email = email.strip().lower()
        username = username.strip()

        existing = self.db.query(AccountDB).filter(
            or_(AccountDB.email == email, AccountDB.username == username)
        ).first()
        if existing:
            if existing.email == email:
                raise Conflict("Email already registered")
            raise Conflict("Username already taken")

        account = AccountDB(
            id=str(uuid4()),
            email=email,
            username=username,
            password_hash=hash_password(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            role=role,
            bio=bio,
            is_active=True,
            is_verified=False,
        )
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email/username
            self.db.rollback()
            raise Conflict("Email or username already registered")
        self.db.refresh(account)

        logger.info(f"Account registered: {account.email} ({account.role.value})")
        return AuthResult(account=account, token=self._issue_token(account))

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate by email and password. Every failure is the same Unauthorized."""
        if not email or not password:
            raise InvalidArgument("Email and password are required")

        account = self.db.query(AccountDB).filter(AccountDB.email == email.strip().lower()).first()

        if account is None:
            raise Unauthorized("Invalid credentials")
        if not account.is_active:
            raise Unauthorized("Account is deactivated")
        if not verify_password(password, account.password_hash):
            raise Unauthorized("Invalid credentials")

        logger.info(f"Account logged in: {account.email}")
        return AuthResult(account=account, token=self._issue_token(account))

    def verify(self, token: str) -> AccountDB:
        """Resolve a bearer token to its active account."""
        payload = decode_token(token)
        if payload is None:
            raise Unauthorized("Could not validate credentials")

        account_id = payload.get("sub")
        if not account_id:
            raise Unauthorized("Could not validate credentials")

        account = self.db.query(AccountDB).filter(
            AccountDB.id == account_id,
            AccountDB.is_active.is_(True),
        ).first()
        if account is None:
            raise Unauthorized("User not found")

        return account

    def get_account(self, account_id: str) -> Optional[AccountDB]:
        return self.db.query(AccountDB).filter(AccountDB.id == account_id).first()

    def update_profile(
        self,
        account: AccountDB,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        bio: Optional[str] = None,
    ) -> AccountDB:
        """Edit display name parts and bio. Only provided fields change."""
        if first_name is not None:
            if not first_name.strip():
                raise InvalidArgument("First name cannot be empty")
            account.first_name = first_name.strip()
        if last_name is not None:
            if not last_name.strip():
                raise InvalidArgument("Last name cannot be empty")
            account.last_name = last_name.strip()
        if bio is not None:
            account.bio = bio

        self.db.commit()
        self.db.refresh(account)

        logger.info(f"Profile updated for account: {account.email}")
        return account

    def _issue_token(self, account: AccountDB) -> str:
        return create_access_token(account.id, account.email, account.role.value)

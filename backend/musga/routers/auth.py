"""
Musga - Authentication Router
Handles registration, login, token verification and profile management.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, status
from pydantic import EmailStr
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import AccountDB, UserRole
from ..auth import get_current_account
from ..services.identity import IdentityService
from .common import AccountResponse, CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class RegisterRequest(CamelModel):
    email: EmailStr
    username: str
    password: str
    first_name: str
    last_name: str
    role: UserRole
    bio: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(CamelModel):
    """All fields optional - only provided fields are updated."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = None


class AuthResponse(CamelModel):
    user: AccountResponse
    token: str


class VerifyResponse(CamelModel):
    valid: bool
    user: AccountResponse


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new account and return it with a fresh token.
    """
    result = IdentityService(db).register(
        email=request.email,
        username=request.username,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        role=request.role,
        bio=request.bio,
    )
    return AuthResponse(user=AccountResponse.model_validate(result.account), token=result.token)


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate and return the account with a fresh token.
    """
    result = IdentityService(db).login(request.email, request.password)
    return AuthResponse(user=AccountResponse.model_validate(result.account), token=result.token)


@router.get("/profile", response_model=AccountResponse)
async def get_profile(current_account: AccountDB = Depends(get_current_account)):
    """
    Get the caller's account, without its credential.
    """
    return AccountResponse.model_validate(current_account)


@router.patch("/profile", response_model=AccountResponse)
async def update_profile(
    request: ProfileUpdateRequest,
    current_account: AccountDB = Depends(get_current_account),
    db: Session = Depends(get_db)
):
    """
    Update display name parts and bio.
    """
    account = IdentityService(db).update_profile(
        current_account,
        first_name=request.first_name,
        last_name=request.last_name,
        bio=request.bio,
    )
    return AccountResponse.model_validate(account)


@router.get("/verify", response_model=VerifyResponse)
async def verify(current_account: AccountDB = Depends(get_current_account)):
    """
    Confirm the bearer token is valid and return its account.
    """
    return VerifyResponse(valid=True, user=AccountResponse.model_validate(current_account))

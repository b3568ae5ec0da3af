"""
Authentication endpoints: signup, login and the current profile.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from event_portal.core.security import get_current_user_id
from event_portal.db.session import get_db
from event_portal.schemas.profile import ProfileCreate, ProfileResponse, ProfileLogin, Token
from event_portal.services.auth_service import register_profile, authenticate_profile, get_profile

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def register(profile_data: ProfileCreate, db: AsyncSession = Depends(get_db)):
    """Create a profile. Emails listed in ADMIN_EMAILS get the admin role."""
    return await register_profile(db, profile_data)


@router.post("/login", response_model=Token)
async def login(login_data: ProfileLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate and receive a JWT access token."""
    token = await authenticate_profile(db, login_data)
    return Token(access_token=token)


@router.get("/me", response_model=ProfileResponse)
async def me(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await get_profile(db, user_id)

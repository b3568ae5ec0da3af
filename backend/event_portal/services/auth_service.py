"""
Authentication service handling profile signup and login.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from event_portal.core.config import get_settings
from event_portal.core.logging import get_logger
from event_portal.core.security import ROLE_ADMIN, ROLE_USER, create_access_token, hash_password, verify_password
from event_portal.models.profile import Profile
from event_portal.schemas.profile import ProfileCreate, ProfileLogin

logger = get_logger(__name__)


def _role_for(email: str) -> str:
    admin_emails = {address.lower() for address in get_settings().ADMIN_EMAILS}
    return ROLE_ADMIN if email.lower() in admin_emails else ROLE_USER


async def register_profile(db: AsyncSession, profile_data: ProfileCreate) -> Profile:
    """
    Create a profile with a hashed password.
    Raises 409 if the email is already registered.
    """
    email = profile_data.email.lower()
    result = await db.execute(select(Profile).where(Profile.email == email))
    if result.scalar_one_or_none():
        logger.warning("signup_failed", reason="email_exists", email=email)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    profile = Profile(
        email=email,
        full_name=profile_data.full_name,
        hashed_password=hash_password(profile_data.password),
        role=_role_for(email),
    )
    db.add(profile)
    await db.flush()

    logger.info("profile_created", user_id=profile.id, email=profile.email, role=profile.role)
    return profile


async def authenticate_profile(db: AsyncSession, login_data: ProfileLogin) -> str:
    """
    Authenticate and return a JWT access token carrying the role.
    Raises 401 if credentials are invalid.
    """
    result = await db.execute(select(Profile).where(Profile.email == login_data.email.lower()))
    profile = result.scalar_one_or_none()

    if not profile or not verify_password(login_data.password, profile.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    token = create_access_token(data={"sub": profile.id, "role": profile.role})
    logger.info("profile_logged_in", user_id=profile.id)
    return token


async def get_profile(db: AsyncSession, user_id: str) -> Profile:
    profile = await db.get(Profile, user_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        )
    return profile

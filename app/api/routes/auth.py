"""
PharaohVault — Auth Routes
Sign-up, cookie session login/logout and the current profile.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.database import get_db
from app.core.security import (
    AuthSession,
    end_session,
    get_current_session,
    get_password_hash,
    start_session,
    verify_password,
)
from app.models.enums import UserRole
from app.models.user import User
from app.schemas.schemas import (
    LoginRequest,
    SignUpRequest,
    TokenResponse,
    UserResponse,
)

router = APIRouter()


@router.post(
    "/signup",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user account",
)
async def signup(user_data: SignUpRequest, response: Response, db: AsyncSession = Depends(get_db)):
    """Register a new user and start their session."""
    email = user_data.email.strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    user = User(
        email=email,
        hashed_password=get_password_hash(user_data.password),
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        phone=user_data.phone,
        billing_address=user_data.billing_address,
        shipping_address=user_data.shipping_address,
        role=UserRole.user,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    token = start_session(response, user)
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Log in to your account",
    description="Authenticate with email and password; sets the session cookie.",
)
async def login(credentials: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == credentials.email.strip().lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    token = start_session(response, user)
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.post("/logout", summary="Log out")
async def logout(response: Response):
    """Clear the session cookie."""
    end_session(response)
    return {"message": "Logged out"}


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user profile",
)
async def get_profile(session: AuthSession = Depends(get_current_session)):
    return UserResponse.model_validate(session.user)

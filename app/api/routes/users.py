"""
PharaohVault — User Routes
Profile updates for the caller and user management for admins.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import NotFoundError, ValidationError
from app.core.security import AuthSession, get_current_session, require_admin
from app.models.user import User
from app.schemas.schemas import AdminUserUpdate, RoleUpdate, UserResponse, UserUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def _apply(db: AsyncSession, user: User, updates: dict) -> User:
    for field, value in updates.items():
        setattr(user, field, value)
    await db.flush()
    await db.refresh(user)
    return user


@router.get("", response_model=List[UserResponse], summary="List users")
async def list_users(
    _: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).order_by(User.created_at.desc()))
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


@router.put("/me", response_model=UserResponse, summary="Update your profile")
async def update_profile(
    updates: UserUpdate,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    user = await _apply(db, session.user, updates.model_dump(exclude_unset=True))
    return UserResponse.model_validate(user)


@router.put("/{user_id}", response_model=UserResponse, summary="Update a user")
async def update_user(
    user_id: int,
    updates: AdminUserUpdate,
    _: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await _apply(db, await _get_user(db, user_id), updates.model_dump(exclude_unset=True))
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/role", response_model=UserResponse, summary="Change a user's role")
async def update_role(
    user_id: int,
    payload: RoleUpdate,
    session: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if user_id == session.user_id:
        raise ValidationError("Admins cannot change their own role")
    user = await _apply(db, await _get_user(db, user_id), {"role": payload.role})
    logger.info(f"User {user_id} role set to {payload.role.value} by {session.user_id}")
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_200_OK, summary="Delete a user")
async def delete_user(
    user_id: int,
    session: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if user_id == session.user_id:
        raise ValidationError("Admins cannot delete their own account")
    await db.delete(await _get_user(db, user_id))
    await db.flush()
    logger.info(f"User {user_id} deleted by {session.user_id}")
    return {"message": "User deleted"}

"""
PharaohVault — Withdrawal Request Routes
Subscribers request delivery of accumulated metal; admins fulfil it.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import AuthSession, get_current_session, require_admin
from app.models.enums import Metal, WithdrawalRequestStatus
from app.schemas.schemas import (
    WithdrawalRequestCreate,
    WithdrawalRequestResponse,
    WithdrawalRequestUpdate,
)
from app.services import request_workflow as workflow

router = APIRouter()


@router.get("", response_model=List[WithdrawalRequestResponse], summary="List withdrawal requests")
async def list_requests(
    status: Optional[WithdrawalRequestStatus] = None,
    metal: Optional[Metal] = None,
    subscription_id: Optional[int] = Query(default=None, alias="subscriptionId"),
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    requests = await workflow.list_withdrawal_requests(
        db,
        user_id=None if session.is_admin else session.user_id,
        status=status,
        metal=metal,
        subscription_id=subscription_id,
    )
    return [WithdrawalRequestResponse.model_validate(r) for r in requests]


@router.post(
    "",
    response_model=WithdrawalRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a withdrawal",
)
async def create_request(
    payload: WithdrawalRequestCreate,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    request = await workflow.create_withdrawal_request(
        db,
        session,
        subscription_id=payload.subscription_id,
        requested_weight=payload.requested_weight,
        requested_unit=payload.requested_unit,
        notes=payload.notes,
    )
    return WithdrawalRequestResponse.model_validate(request)


@router.get("/{request_id}", response_model=WithdrawalRequestResponse, summary="Get a withdrawal request")
async def get_request(
    request_id: int,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    return WithdrawalRequestResponse.model_validate(
        await workflow.get_withdrawal_request(db, request_id, session)
    )


@router.patch("/{request_id}", response_model=WithdrawalRequestResponse, summary="Update a withdrawal request")
async def update_request(
    request_id: int,
    payload: WithdrawalRequestUpdate,
    session: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    request = await workflow.get_withdrawal_request(db, request_id, session)
    request = await workflow.update_withdrawal_request(
        db,
        request,
        status=payload.status,
        resolution_notes=payload.resolution_notes,
        notes=payload.notes,
    )
    return WithdrawalRequestResponse.model_validate(request)


@router.delete("/{request_id}", summary="Delete a withdrawal request")
async def delete_request(
    request_id: int,
    session: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    request = await workflow.get_withdrawal_request(db, request_id, session)
    await workflow.delete_withdrawal_request(db, request)
    return {"message": "Withdrawal request deleted"}

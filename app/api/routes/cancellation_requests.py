"""
PharaohVault — Cancellation Request Routes
Subscribers open requests; admins review them.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import AuthSession, get_current_session, require_admin
from app.models.enums import CancellationRequestStatus
from app.schemas.schemas import (
    CancellationRequestCreate,
    CancellationRequestResponse,
    CancellationRequestUpdate,
)
from app.services import request_workflow as workflow

router = APIRouter()


@router.get("", response_model=List[CancellationRequestResponse], summary="List cancellation requests")
async def list_requests(
    status: Optional[CancellationRequestStatus] = None,
    subscription_id: Optional[int] = Query(default=None, alias="subscriptionId"),
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    requests = await workflow.list_cancellation_requests(
        db,
        user_id=None if session.is_admin else session.user_id,
        status=status,
        subscription_id=subscription_id,
    )
    return [CancellationRequestResponse.model_validate(r) for r in requests]


@router.post(
    "",
    response_model=CancellationRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request cancellation",
)
async def create_request(
    payload: CancellationRequestCreate,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    request = await workflow.create_cancellation_request(
        db,
        session,
        subscription_id=payload.subscription_id,
        reason=payload.reason,
        details=payload.details,
        preferred_cancellation_date=payload.preferred_cancellation_date,
    )
    return CancellationRequestResponse.model_validate(request)


@router.get("/{request_id}", response_model=CancellationRequestResponse, summary="Get a cancellation request")
async def get_request(
    request_id: int,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    return CancellationRequestResponse.model_validate(
        await workflow.get_cancellation_request(db, request_id, session)
    )


@router.patch("/{request_id}", response_model=CancellationRequestResponse, summary="Review a cancellation request")
async def update_request(
    request_id: int,
    payload: CancellationRequestUpdate,
    session: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    request = await workflow.get_cancellation_request(db, request_id, session)
    request = await workflow.update_cancellation_request(
        db, request, status=payload.status, resolution_notes=payload.resolution_notes
    )
    return CancellationRequestResponse.model_validate(request)


@router.delete("/{request_id}", summary="Delete a cancellation request")
async def delete_request(
    request_id: int,
    session: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    request = await workflow.get_cancellation_request(db, request_id, session)
    await workflow.delete_cancellation_request(db, request)
    return {"message": "Cancellation request deleted"}

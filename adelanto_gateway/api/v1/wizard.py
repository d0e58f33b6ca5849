"""/v1/wizard - session-driven wizard endpoints"""

import logging
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from adelanto_gateway.api.dependencies import get_orchestrator, get_request_id, get_session_store
from adelanto_gateway.api.v1.schemas import (
    AmountRequest,
    NotificationHistoryResponse,
    NotificationItem,
    ProfileFields,
    WizardOtpRequest,
    WizardPhoneRequest,
    WizardStateResponse,
)
from adelanto_gateway.domain.exceptions import SessionNotFoundError, StepInProgressError, ValidationError
from adelanto_gateway.domain.wizard import WizardState
from adelanto_gateway.infrastructure.database.repositories import WebhookRepository
from adelanto_gateway.infrastructure.database.session import get_db
from adelanto_gateway.services.orchestrator import StepOrchestrator
from adelanto_gateway.services.wizard_session import WizardSession, WizardSessionStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_session(store: WizardSessionStore, session_id: str) -> WizardSession:
    try:
        return store.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Wizard session not found")


async def _advance(
    session: WizardSession,
    step: Callable[..., Awaitable[WizardState]],
    *args: Any,
) -> WizardStateResponse:
    try:
        state = await step(*args)
    except StepInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return WizardStateResponse.from_state(session.session_id, state)


@router.post("/wizard", response_model=WizardStateResponse, status_code=201)
def start_wizard(
    request: Request,
    store: WizardSessionStore = Depends(get_session_store),
    orchestrator: StepOrchestrator = Depends(get_orchestrator),
):
    """Open a wizard session with a fresh autorizacion"""
    session = store.create(orchestrator)
    logger.info(
        "Wizard session started",
        extra={
            "session_id": session.session_id,
            "autorizacion": session.autorizacion,
            "request_id": get_request_id(request),
        },
    )
    return WizardStateResponse.from_state(session.session_id, session.state)


@router.get("/wizard/{session_id}", response_model=WizardStateResponse)
def get_wizard(session_id: str, store: WizardSessionStore = Depends(get_session_store)):
    session = _get_session(store, session_id)
    return WizardStateResponse.from_state(session.session_id, session.state)


@router.post("/wizard/{session_id}/phone", response_model=WizardStateResponse)
async def wizard_phone(
    session_id: str,
    request_body: WizardPhoneRequest,
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    return await _advance(session, session.submit_phone, request_body.phone)


@router.post("/wizard/{session_id}/profile", response_model=WizardStateResponse)
async def wizard_profile(
    session_id: str,
    request_body: ProfileFields,
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    return await _advance(session, session.submit_profile, request_body.to_profile())


@router.post("/wizard/{session_id}/otp", response_model=WizardStateResponse)
async def wizard_otp(
    session_id: str,
    request_body: WizardOtpRequest,
    store: WizardSessionStore = Depends(get_session_store),
):
    session = _get_session(store, session_id)
    return await _advance(session, session.submit_otp, request_body.token)


@router.post("/wizard/{session_id}/otp/resend", response_model=WizardStateResponse)
async def wizard_resend_otp(session_id: str, store: WizardSessionStore = Depends(get_session_store)):
    session = _get_session(store, session_id)
    return await _advance(session, session.resend_otp)


@router.put("/wizard/{session_id}/amount", response_model=WizardStateResponse)
def wizard_amount(
    session_id: str,
    request_body: AmountRequest,
    store: WizardSessionStore = Depends(get_session_store),
):
    """
    Change the requested amount.

    Returns 422 when the amount is below the minimum or above the approved
    amount; the disbursement amount is recomputed on success.
    """
    session = _get_session(store, session_id)
    try:
        state = session.change_amount(request_body.amount)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StepInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return WizardStateResponse.from_state(session.session_id, state)


@router.post("/wizard/{session_id}/disbursement", response_model=WizardStateResponse)
async def wizard_disbursement(session_id: str, store: WizardSessionStore = Depends(get_session_store)):
    session = _get_session(store, session_id)
    return await _advance(session, session.request_disbursement)


@router.post("/wizard/{session_id}/retry", response_model=WizardStateResponse)
def wizard_retry(session_id: str, store: WizardSessionStore = Depends(get_session_store)):
    """Leave the fallback screen for the step the error came from"""
    session = _get_session(store, session_id)
    try:
        state = session.try_again()
    except StepInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return WizardStateResponse.from_state(session.session_id, state)


@router.delete("/wizard/{session_id}", status_code=204)
def delete_wizard(session_id: str, store: WizardSessionStore = Depends(get_session_store)):
    try:
        store.delete(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Wizard session not found")
    return Response(status_code=204)


@router.get("/wizard/{session_id}/notifications", response_model=NotificationHistoryResponse)
def wizard_notifications(
    session_id: str,
    store: WizardSessionStore = Depends(get_session_store),
    db: Session = Depends(get_db),
):
    """Webhook deliveries recorded for this session's autorizacion, newest first"""
    session = _get_session(store, session_id)
    deliveries = WebhookRepository(db).get_by_autorizacion(session.autorizacion, limit=20)

    items = [
        NotificationItem(
            delivery_id=str(d.id),
            step=d.step,
            status=d.status,
            attempts=d.attempts,
            last_error=d.last_error,
            created_at=d.created_at.isoformat(),
        )
        for d in deliveries
    ]

    return NotificationHistoryResponse(autorizacion=session.autorizacion, deliveries=items)

"""POST /v1/actions/* - stateless wizard step actions"""

from fastapi import APIRouter, Depends

from adelanto_gateway.api.dependencies import get_orchestrator
from adelanto_gateway.api.v1.schemas import (
    DisbursementRequest,
    OtpRequest,
    PhoneRequest,
    ProfileRequest,
    ResendOtpRequest,
    StepResultResponse,
)
from adelanto_gateway.services.orchestrator import StepOrchestrator

router = APIRouter()


@router.post("/actions/phone", response_model=StepResultResponse)
async def submit_phone(
    request_body: PhoneRequest,
    orchestrator: StepOrchestrator = Depends(get_orchestrator),
):
    """
    Step 0: look up the client registered to a phone number.

    Returns the mapped profile when it is complete, otherwise only the phone
    and the client id (if the client exists).
    """
    result = await orchestrator.submit_phone(request_body.phone, request_body.autorizacion)
    return StepResultResponse.from_result(result)


@router.post("/actions/profile", response_model=StepResultResponse)
async def submit_profile(
    request_body: ProfileRequest,
    orchestrator: StepOrchestrator = Depends(get_orchestrator),
):
    """
    Step 1: create, edit or keep the client record, then send the OTP.

    skip_step2 is set when the client already accepted the terms; the
    approved amount is then returned right away.
    """
    result = await orchestrator.submit_profile(
        request_body.to_profile(),
        request_body.next_action,
        request_body.client_id,
        request_body.autorizacion,
    )
    return StepResultResponse.from_result(result)


@router.post("/actions/otp", response_model=StepResultResponse)
async def submit_otp(
    request_body: OtpRequest,
    orchestrator: StepOrchestrator = Depends(get_orchestrator),
):
    """Step 2: validate the OTP and return the approved credit limit"""
    result = await orchestrator.submit_otp(request_body.phone, request_body.token, request_body.autorizacion)
    return StepResultResponse.from_result(result)


@router.post("/actions/otp/resend", response_model=StepResultResponse)
async def resend_otp(
    request_body: ResendOtpRequest,
    orchestrator: StepOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.resend_otp(request_body.phone, request_body.autorizacion)
    return StepResultResponse.from_result(result)


@router.post("/actions/disbursement", response_model=StepResultResponse)
async def submit_disbursement(
    request_body: DisbursementRequest,
    orchestrator: StepOrchestrator = Depends(get_orchestrator),
):
    """Step 3: disburse the requested amount minus commission"""
    result = await orchestrator.submit_disbursement(
        request_body.phone,
        request_body.id_solicitud,
        request_body.amount,
        request_body.commission,
        request_body.autorizacion,
    )
    return StepResultResponse.from_result(result)

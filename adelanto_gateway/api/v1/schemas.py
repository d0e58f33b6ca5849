"""Pydantic schemas for API request/response validation"""

from dataclasses import asdict
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from adelanto_gateway.domain.models import ApplicantProfile, ErrorType, NextAction, StepResult
from adelanto_gateway.domain.wizard import WizardState, WizardStep


class ProfileFields(BaseModel):
    """Applicant profile as the form submits it"""

    identification: str = ""
    full_name: str = ""
    phone: str = ""
    email: str = ""
    nit: str = ""
    start_date: str = Field("", description="dd-mm-yyyy")
    salary: str = ""
    pay_frequency: str = Field("", description="monthly | biweekly | weekly")

    def to_profile(self) -> ApplicantProfile:
        return ApplicantProfile(**self.model_dump())


class PhoneRequest(BaseModel):
    """Request body for POST /v1/actions/phone"""

    phone: str
    autorizacion: Optional[str] = None


class ProfileRequest(ProfileFields):
    """Request body for POST /v1/actions/profile"""

    next_action: NextAction = NextAction.CONTINUE
    client_id: Optional[str] = None
    autorizacion: Optional[str] = None

    def to_profile(self) -> ApplicantProfile:
        return ApplicantProfile(**self.model_dump(include=set(ProfileFields.model_fields)))


class OtpRequest(BaseModel):
    """Request body for POST /v1/actions/otp"""

    phone: str
    token: str
    autorizacion: Optional[str] = None


class ResendOtpRequest(BaseModel):
    phone: str
    autorizacion: Optional[str] = None


class DisbursementRequest(BaseModel):
    """Request body for POST /v1/actions/disbursement"""

    phone: str = ""
    id_solicitud: str = ""
    amount: Optional[Decimal] = None
    commission: Optional[Decimal] = None
    autorizacion: str = ""


class StepResultResponse(BaseModel):
    """Uniform result of every step action"""

    success: bool
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    client_id: Optional[str] = None
    client_data: Optional[ProfileFields] = None
    profile_complete: bool = False
    approved_amount: Optional[Decimal] = None
    id_solicitud: Optional[str] = None
    skip_step2: bool = False
    has_commission_issue: bool = False

    @classmethod
    def from_result(cls, result: StepResult) -> "StepResultResponse":
        return cls.model_validate(asdict(result))


class WizardPhoneRequest(BaseModel):
    phone: str


class WizardOtpRequest(BaseModel):
    token: str


class AmountRequest(BaseModel):
    """Request body for PUT /v1/wizard/{id}/amount"""

    amount: Decimal = Field(..., description="Requested amount in quetzales")


class FormSchema(BaseModel):
    identification: str
    full_name: str
    phone: str
    email: str
    nit: str
    start_date: str
    salary: str
    pay_frequency: str
    requested_amount: Decimal
    approved_amount: Decimal
    disbursement_amount: Decimal
    id_solicitud: str
    has_commission_issue: bool
    autorizacion: str
    client_id: str
    next_action: NextAction


class WizardStateResponse(BaseModel):
    """Snapshot of one wizard session"""

    session_id: str
    step: int
    step_name: str
    is_loading: bool
    error_message: Optional[str] = None
    error_from_step: Optional[int] = None
    form: FormSchema

    @classmethod
    def from_state(cls, session_id: str, state: WizardState) -> "WizardStateResponse":
        return cls(
            session_id=session_id,
            step=int(state.step),
            step_name=WizardStep(state.step).name.lower(),
            is_loading=state.is_loading,
            error_message=state.error_message,
            error_from_step=int(state.error_from_step) if state.error_from_step is not None else None,
            form=FormSchema(**state.form.to_dict()),
        )


class NotificationItem(BaseModel):
    """Single webhook delivery"""

    delivery_id: str
    step: int
    status: str
    attempts: int
    last_error: Optional[str] = None
    created_at: str


class NotificationHistoryResponse(BaseModel):
    """Response for GET /v1/wizard/{id}/notifications"""

    autorizacion: str
    deliveries: List[NotificationItem]

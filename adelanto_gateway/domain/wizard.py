"""Wizard view-state machine: immutable state, events and a pure reducer"""

import secrets
import string
import time
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal
from enum import IntEnum
from typing import Any, Dict, Optional, Union

from adelanto_gateway.domain.commission import MIN_REQUESTED_AMOUNT, disbursement_amount, to_decimal
from adelanto_gateway.domain.models import ErrorType, NextAction

AUTH_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
AUTH_SUFFIX_LENGTH = 7

ZERO = Decimal("0")


class WizardStep(IntEnum):
    PHONE = 0
    PROFILE = 1
    OTP = 2
    OFFER = 3
    SUCCESS = 4
    FALLBACK = 5


def generate_autorizacion() -> str:
    """AUTH-<epoch millis>-<7 upper-case alphanumerics>"""
    suffix = "".join(secrets.choice(AUTH_SUFFIX_ALPHABET) for _ in range(AUTH_SUFFIX_LENGTH))
    return f"AUTH-{int(time.time() * 1000)}-{suffix}"


@dataclass(frozen=True)
class FormData:
    """Everything the wizard has collected so far"""

    identification: str = ""
    full_name: str = ""
    phone: str = ""
    email: str = ""
    nit: str = ""
    start_date: str = ""
    salary: str = ""
    pay_frequency: str = ""
    requested_amount: Decimal = ZERO
    approved_amount: Decimal = ZERO
    disbursement_amount: Decimal = ZERO
    id_solicitud: str = ""
    has_commission_issue: bool = False
    autorizacion: str = ""
    client_id: str = ""
    next_action: NextAction = NextAction.CONTINUE

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class WizardState:
    step: WizardStep = WizardStep.PHONE
    is_loading: bool = False
    form: FormData = field(default_factory=FormData)
    error_message: Optional[str] = None
    error_from_step: Optional[WizardStep] = None


# Events


@dataclass(frozen=True)
class SessionStarted:
    autorizacion: str


@dataclass(frozen=True)
class StepRequested:
    pass


@dataclass(frozen=True)
class FormUpdated:
    updates: Dict[str, Any]


@dataclass(frozen=True)
class StepSucceeded:
    target: WizardStep
    updates: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StepFailed:
    error_type: ErrorType
    message: str


@dataclass(frozen=True)
class RetryRequested:
    pass


@dataclass(frozen=True)
class Reset:
    pass


WizardEvent = Union[
    SessionStarted,
    StepRequested,
    FormUpdated,
    StepSucceeded,
    StepFailed,
    RetryRequested,
    Reset,
]

_FORM_FIELDS = {f.name for f in fields(FormData)}
_AMOUNT_FIELDS = {"requested_amount", "approved_amount", "disbursement_amount"}


def _disbursement_for(requested: Decimal) -> Decimal:
    if requested < MIN_REQUESTED_AMOUNT:
        return ZERO
    return disbursement_amount(requested)


def merge_form(form: FormData, updates: Dict[str, Any]) -> FormData:
    """
    Merge updates into the form.

    An approved amount arriving while nothing has been requested yet also
    becomes the requested amount. The disbursement amount is recomputed
    whenever the requested amount changes.
    """
    unknown = set(updates) - _FORM_FIELDS
    if unknown:
        raise KeyError(f"Unknown form fields: {sorted(unknown)}")

    values = {
        name: to_decimal(value) if name in _AMOUNT_FIELDS and value is not None else value
        for name, value in updates.items()
    }
    if "next_action" in values:
        values["next_action"] = NextAction(values["next_action"])

    requested_changed = "requested_amount" in values
    if "approved_amount" in values and form.requested_amount == ZERO and not requested_changed:
        values["requested_amount"] = values["approved_amount"]
        requested_changed = True

    merged = replace(form, **values)
    if requested_changed:
        merged = replace(merged, disbursement_amount=_disbursement_for(merged.requested_amount))
    return merged


def _fresh_state(autorizacion: str) -> WizardState:
    return WizardState(form=FormData(autorizacion=autorizacion))


def _route_failure(state: WizardState, event: StepFailed) -> WizardState:
    current = state.step

    if event.error_type is ErrorType.CUPO:
        return replace(
            _fresh_state(state.form.autorizacion),
            step=WizardStep.FALLBACK,
            error_message=event.message or "Error validating credit limit",
            error_from_step=WizardStep.PHONE,
        )

    if event.error_type is ErrorType.PHONE_NUMBER:
        return replace(
            state,
            step=WizardStep.FALLBACK,
            is_loading=False,
            error_message=event.message or "Error validating phone number",
            error_from_step=WizardStep.PHONE,
        )

    if event.error_type is ErrorType.TOKEN:
        return replace(
            state,
            step=WizardStep.FALLBACK,
            is_loading=False,
            error_message=event.message or "Error validating token",
            error_from_step=current,
        )

    if current is WizardStep.PHONE:
        return replace(
            state,
            is_loading=False,
            error_message=event.message or "Error validating phone",
            error_from_step=WizardStep.PHONE,
        )

    return replace(
        state,
        step=WizardStep.FALLBACK,
        is_loading=False,
        error_message=event.message or "An error occurred",
        error_from_step=current,
    )


def reduce(state: WizardState, event: WizardEvent) -> WizardState:
    """Pure transition function: (state, event) → state"""
    if isinstance(event, SessionStarted):
        return _fresh_state(event.autorizacion)

    if isinstance(event, StepRequested):
        return replace(state, is_loading=True)

    if isinstance(event, FormUpdated):
        return replace(state, form=merge_form(state.form, event.updates))

    if isinstance(event, StepSucceeded):
        return replace(
            state,
            step=event.target,
            is_loading=False,
            form=merge_form(state.form, event.updates),
            error_message=None,
            error_from_step=None,
        )

    if isinstance(event, StepFailed):
        return _route_failure(state, event)

    if isinstance(event, RetryRequested):
        if state.step is not WizardStep.FALLBACK:
            return state
        if state.error_from_step is None:
            return _fresh_state(state.form.autorizacion)
        return replace(
            state,
            step=state.error_from_step,
            is_loading=False,
            error_message=None,
            error_from_step=None,
        )

    if isinstance(event, Reset):
        return _fresh_state(state.form.autorizacion)

    raise TypeError(f"Unknown wizard event: {event!r}")

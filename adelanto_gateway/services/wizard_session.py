"""Wizard session driver: turns orchestrator results into wizard events"""

import asyncio
import logging
import uuid
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict

from adelanto_gateway.domain.commission import MIN_REQUESTED_AMOUNT, compute_commission, to_decimal
from adelanto_gateway.domain.exceptions import SessionNotFoundError, StepInProgressError, ValidationError
from adelanto_gateway.domain.models import ApplicantProfile, ErrorType, NextAction, StepResult
from adelanto_gateway.domain.wizard import (
    FormUpdated,
    Reset,
    RetryRequested,
    SessionStarted,
    StepFailed,
    StepRequested,
    StepSucceeded,
    WizardEvent,
    WizardState,
    WizardStep,
    generate_autorizacion,
    reduce,
)
from adelanto_gateway.services.orchestrator import StepOrchestrator
from adelanto_gateway.utils.phone import strip_whitespace

logger = logging.getLogger(__name__)


class WizardSession:
    """
    One applicant's pass through the wizard.

    All state changes go through dispatch(); every async step raises the
    loading flag first and ends with exactly one StepSucceeded or StepFailed.
    """

    def __init__(self, orchestrator: StepOrchestrator, session_id: str | None = None, autorizacion: str | None = None):
        self.orchestrator = orchestrator
        self.session_id = session_id or uuid.uuid4().hex
        self.state = reduce(WizardState(), SessionStarted(autorizacion or generate_autorizacion()))

    @property
    def autorizacion(self) -> str:
        return self.state.form.autorizacion

    def dispatch(self, event: WizardEvent) -> WizardState:
        self.state = reduce(self.state, event)
        return self.state

    async def submit_phone(self, phone: str) -> WizardState:
        return await self._run_step(self._submit_phone, strip_whitespace(phone))

    async def submit_profile(self, profile: ApplicantProfile) -> WizardState:
        return await self._run_step(self._submit_profile, profile)

    async def submit_otp(self, token: str) -> WizardState:
        return await self._run_step(self._submit_otp, token)

    async def resend_otp(self) -> WizardState:
        return await self._run_step(self._resend_otp)

    async def request_disbursement(self) -> WizardState:
        return await self._run_step(self._request_disbursement)

    def change_amount(self, amount: Any) -> WizardState:
        """Set the requested amount; must lie between the minimum and the approved amount"""
        self._ensure_idle()
        value = to_decimal(amount)
        approved = self.state.form.approved_amount
        if value < MIN_REQUESTED_AMOUNT or value > approved:
            raise ValidationError(f"Requested amount must be between Q{MIN_REQUESTED_AMOUNT} and Q{approved}")
        return self.dispatch(FormUpdated({"requested_amount": value}))

    def try_again(self) -> WizardState:
        self._ensure_idle()
        return self.dispatch(RetryRequested())

    def reset(self) -> WizardState:
        self._ensure_idle()
        return self.dispatch(Reset())

    def _ensure_idle(self) -> None:
        if self.state.is_loading:
            raise StepInProgressError("Another step is still in progress")

    async def _run_step(self, step: Callable[..., Awaitable[WizardState]], *args: Any) -> WizardState:
        self._ensure_idle()
        self.dispatch(StepRequested())
        try:
            return await step(*args)
        except asyncio.CancelledError:
            logger.warning("Wizard step cancelled", extra={"session_id": self.session_id, "autorizacion": self.autorizacion})
            self.dispatch(StepFailed(ErrorType.GENERAL, "Step cancelled"))
            raise
        except Exception as e:
            logger.error(f"Wizard step failed: {e}", extra={"session_id": self.session_id, "autorizacion": self.autorizacion})
            return self.dispatch(StepFailed(ErrorType.GENERAL, str(e) or "Unknown error"))

    def _fail(self, result: StepResult) -> WizardState:
        return self.dispatch(StepFailed(result.error_type or ErrorType.GENERAL, result.error or ""))

    async def _submit_phone(self, phone: str) -> WizardState:
        result = await self.orchestrator.submit_phone(phone, self.autorizacion)
        if not result.success:
            return self._fail(result)

        client_id = result.client_id or ""
        profile = result.client_data or ApplicantProfile(phone=phone)
        updates: Dict[str, Any] = {**profile.to_dict(), "phone": profile.phone or phone, "client_id": client_id}

        if not result.profile_complete:
            updates["next_action"] = NextAction.EDIT if client_id else NextAction.CREATE
            return self.dispatch(StepSucceeded(WizardStep.PROFILE, updates))

        # Complete profile: run step 1 straight away without showing the form
        updates["next_action"] = NextAction.CONTINUE
        self.dispatch(FormUpdated(updates))
        step1 = await self.orchestrator.submit_profile(
            profile,
            NextAction.CONTINUE,
            client_id or None,
            self.autorizacion,
        )
        return self._after_profile(step1)

    async def _submit_profile(self, profile: ApplicantProfile) -> WizardState:
        profile = ApplicantProfile(
            identification=strip_whitespace(profile.identification),
            full_name=profile.full_name.strip(),
            phone=strip_whitespace(profile.phone),
            email=profile.email.strip(),
            nit=profile.nit.strip(),
            start_date=profile.start_date,
            salary=profile.salary,
            pay_frequency=profile.pay_frequency,
        )
        self.dispatch(FormUpdated(profile.to_dict()))

        form = self.state.form
        result = await self.orchestrator.submit_profile(
            profile,
            form.next_action,
            form.client_id or None,
            self.autorizacion,
        )
        return self._after_profile(result)

    def _after_profile(self, result: StepResult) -> WizardState:
        if not result.success:
            return self._fail(result)

        if result.skip_step2 and result.approved_amount is not None:
            return self.dispatch(
                StepSucceeded(
                    WizardStep.OFFER,
                    {"approved_amount": result.approved_amount, "id_solicitud": result.id_solicitud or ""},
                )
            )
        return self.dispatch(StepSucceeded(WizardStep.OTP))

    async def _submit_otp(self, token: str) -> WizardState:
        result = await self.orchestrator.submit_otp(self.state.form.phone, token, self.autorizacion)
        if not result.success:
            return self._fail(result)

        updates: Dict[str, Any] = {}
        if result.approved_amount is not None:
            updates = {"approved_amount": result.approved_amount, "id_solicitud": result.id_solicitud or ""}
        return self.dispatch(StepSucceeded(WizardStep.OFFER, updates))

    async def _resend_otp(self) -> WizardState:
        result = await self.orchestrator.resend_otp(self.state.form.phone, self.autorizacion)
        if not result.success:
            return self._fail(result)
        return self.dispatch(StepSucceeded(self.state.step))

    async def _request_disbursement(self) -> WizardState:
        form = self.state.form
        try:
            commission = compute_commission(form.requested_amount)
        except ValidationError as e:
            return self.dispatch(StepFailed(ErrorType.DISBURSEMENT, str(e)))
        if form.requested_amount > form.approved_amount:
            return self.dispatch(
                StepFailed(
                    ErrorType.DISBURSEMENT,
                    f"Requested amount exceeds the approved Q{form.approved_amount}",
                )
            )

        result = await self.orchestrator.submit_disbursement(
            form.phone,
            form.id_solicitud,
            form.requested_amount,
            commission,
            self.autorizacion,
        )
        if not result.success:
            return self._fail(result)
        return self.dispatch(StepSucceeded(WizardStep.SUCCESS, {"has_commission_issue": result.has_commission_issue}))


class WizardSessionStore:
    """In-memory registry of live wizard sessions; oldest evicted past max_sessions"""

    def __init__(self, max_sessions: int = 10000):
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, WizardSession]" = OrderedDict()

    def create(self, orchestrator: StepOrchestrator) -> WizardSession:
        session = WizardSession(orchestrator)
        self._sessions[session.session_id] = session
        while len(self._sessions) > self.max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Evicted wizard session", extra={"session_id": evicted_id})
        return session

    def get(self, session_id: str) -> WizardSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Wizard session {session_id} not found")
        return session

    def delete(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFoundError(f"Wizard session {session_id} not found")

    def __len__(self) -> int:
        return len(self._sessions)

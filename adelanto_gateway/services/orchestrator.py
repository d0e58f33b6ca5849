"""Step orchestrator - one entry point per wizard step"""

import logging
import time
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Dict, Optional

from adelanto_gateway.config import Settings, settings as default_settings
from adelanto_gateway.domain.commission import to_decimal
from adelanto_gateway.domain.models import (
    ApplicantProfile,
    ClientMutation,
    ClientMutationMode,
    ClientRecord,
    CreditLimit,
    ErrorType,
    NextAction,
    Operation,
    OutcomeKind,
    PayFrequency,
    RemoteCallResult,
    StepResult,
)
from adelanto_gateway.infrastructure.clients.soap import SoapGateway
from adelanto_gateway.infrastructure.clients.webhook import NotificationSink
from adelanto_gateway.infrastructure.observability.logging import log_step_outcome
from adelanto_gateway.infrastructure.observability.metrics import commission_issue_counter, record_step_outcome
from adelanto_gateway.utils.date_utils import iso_to_ddmmyyyy
from adelanto_gateway.utils.phone import clean_phone, clean_token, mask

logger = logging.getLogger(__name__)

PROFILE_STEP = 1


def normalize_frequency(code: Optional[str]) -> str:
    """M/Q/S → monthly/biweekly/weekly; unknown codes pass through lower-cased"""
    if not code:
        return ""
    frequency = PayFrequency.from_code(code)
    return frequency.value if frequency else code.lower()


def map_client(client: ClientRecord, phone: str) -> ApplicantProfile:
    """Map a looked-up client to the form's profile fields"""
    return ApplicantProfile(
        identification=client.identification_number or "",
        full_name=client.full_name or "",
        phone=client.phone or phone,
        email=client.email or "",
        nit=client.nit or "",
        start_date=iso_to_ddmmyyyy(client.start_date),
        salary=client.monthly_salary or "",
        pay_frequency=normalize_frequency(client.payment_frequency),
    )


def parse_salary(salary: str) -> Decimal:
    """"5,000.50" → Decimal("5000.50"); unparseable salaries become 0"""
    try:
        return Decimal(str(salary).replace(",", "").strip())
    except InvalidOperation:
        return Decimal("0")


class StepOrchestrator:
    """
    Runs each wizard step against the SOAP gateway and the notification sink.

    Every public coroutine returns a StepResult and never raises: any error is
    converted into a failure tagged with the step's default error type.
    """

    def __init__(
        self,
        gateway: SoapGateway,
        sink: NotificationSink,
        config: Settings | None = None,
    ):
        self.gateway = gateway
        self.sink = sink
        self.settings = config or default_settings

    async def submit_phone(self, phone: str, autorizacion: str | None = None) -> StepResult:
        """Step 0: look up the client behind a phone number"""
        return await self._run("phone", ErrorType.PHONE_NUMBER, autorizacion, self._submit_phone(phone))

    async def submit_profile(
        self,
        profile: ApplicantProfile,
        intent: NextAction = NextAction.CONTINUE,
        client_id: str | None = None,
        autorizacion: str | None = None,
    ) -> StepResult:
        """Step 1: optionally create/edit the client, notify, then send the OTP"""
        return await self._run(
            "profile",
            ErrorType.GENERAL,
            autorizacion,
            self._submit_profile(profile, intent, client_id, autorizacion),
        )

    async def submit_otp(self, phone: str, token: str, autorizacion: str | None = None) -> StepResult:
        """Step 2: validate the OTP and fetch the approved credit limit"""
        return await self._run("otp", ErrorType.TOKEN, autorizacion, self._submit_otp(phone, token))

    async def resend_otp(self, phone: str, autorizacion: str | None = None) -> StepResult:
        return await self._run("resend_otp", ErrorType.TOKEN, autorizacion, self._resend_otp(phone))

    async def submit_disbursement(
        self,
        phone: str,
        id_solicitud: str,
        amount: Any,
        commission: Any,
        autorizacion: str,
    ) -> StepResult:
        """Step 3: execute the disbursement; code 34 succeeds with a commission warning"""
        return await self._run(
            "disbursement",
            ErrorType.DISBURSEMENT,
            autorizacion,
            self._submit_disbursement(phone, id_solicitud, amount, commission, autorizacion),
        )

    async def _run(
        self,
        step: str,
        default_error: ErrorType,
        autorizacion: Optional[str],
        work: Awaitable[StepResult],
    ) -> StepResult:
        start_time = time.time()
        try:
            result = await work
        except Exception as e:
            logger.error(f"Error in {step} step: {e}", extra={"autorizacion": autorizacion})
            result = StepResult.failure(str(e) or f"Unknown error processing {step}", default_error)

        error_type = result.error_type.value if result.error_type else None
        duration_ms = (time.time() - start_time) * 1000
        record_step_outcome(step, result.success, error_type)
        log_step_outcome(step, autorizacion, result.success, error_type, duration_ms)
        return result

    async def _submit_phone(self, phone: str) -> StepResult:
        cleaned = clean_phone(phone)
        lookup = await self.gateway.lookup_client(cleaned)

        if not lookup.ok:
            logger.warning(
                "Client not found or lookup error",
                extra={"return_code": lookup.return_code, "phone": mask(cleaned)},
            )
            return StepResult.failure(
                lookup.message or "Phone number is not registered in the system",
                ErrorType.PHONE_NUMBER,
            )

        client = lookup.payload if isinstance(lookup.payload, ClientRecord) else None
        client_id = client.id if client and client.id else None
        profile = map_client(client, cleaned) if client else None

        # Code 5 or a partial record: the form starts from the phone only
        if lookup.has_warning or profile is None or not profile.is_complete():
            return StepResult(
                success=True,
                client_id=client_id,
                client_data=ApplicantProfile(phone=cleaned),
                profile_complete=False,
            )

        return StepResult(success=True, client_id=client_id, client_data=profile, profile_complete=True)

    async def _submit_profile(
        self,
        profile: ApplicantProfile,
        intent: NextAction,
        client_id: Optional[str],
        autorizacion: Optional[str],
    ) -> StepResult:
        if not profile.is_complete():
            return StepResult.failure("All fields are required", ErrorType.GENERAL)

        cleaned = clean_phone(profile.phone)
        profile = replace(profile, phone=cleaned)
        form_data: Dict[str, Any] = {
            **profile.to_dict(),
            "autorizacion": autorizacion,
            "next_action": intent.value,
            "client_id": client_id,
        }

        if intent in (NextAction.CREATE, NextAction.EDIT):
            mode = ClientMutationMode(intent.value)
            try:
                mutation = await self.gateway.create_or_edit_client(
                    mode,
                    profile,
                    parse_salary(profile.salary),
                    status="A" if mode is ClientMutationMode.EDIT else None,
                )
            except Exception as e:
                logger.error(f"Error during client {mode.value}: {e}", extra={"autorizacion": autorizacion})
                await self._notify(form_data, None, False, autorizacion)
                return StepResult.failure(str(e) or f"Error during client {mode.value}", ErrorType.GENERAL)

            if not mutation.ok:
                await self._notify(form_data, None, False, autorizacion)
                return StepResult.failure(
                    mutation.message or f"Error during client {mode.value}",
                    ErrorType.GENERAL,
                )

            if mode is ClientMutationMode.CREATE and isinstance(mutation.payload, ClientMutation):
                client_id = mutation.payload.client_id or client_id
            snapshot = _client_snapshot(profile, client_id, "ACTIVE", mutation.message)
        else:
            snapshot = _client_snapshot(profile, client_id, "A", "Client create/edit bypassed")

        await self._notify(form_data, snapshot, True, autorizacion)
        return await self._send_otp_after_profile(cleaned)

    async def _send_otp_after_profile(self, phone: str) -> StepResult:
        try:
            otp = await self.gateway.send_otp(phone)
        except Exception as e:
            return StepResult.failure(str(e) or "Error sending the SMS. Please try again.", ErrorType.TOKEN)

        if not otp.ok:
            base_message = otp.message or "Error sending the SMS to the client."
            return StepResult.failure(f"{base_message} (Code {otp.return_code})", ErrorType.TOKEN)

        if otp.has_warning:
            logger.info("Client already accepted terms; skipping OTP entry", extra={"phone": mask(phone)})
            return await self._check_credit_limit(phone, skip_step2=True)

        return StepResult(success=True)

    async def _submit_otp(self, phone: str, token: str) -> StepResult:
        if not phone or not token:
            return StepResult.failure("Phone and token are required", ErrorType.TOKEN)

        cleaned_token = clean_token(token)
        cleaned = clean_phone(phone)

        if self._is_bypass_token(cleaned_token):
            logger.info("Bypass token detected; skipping token validation", extra={"phone": mask(cleaned)})
        else:
            try:
                validation = await self.gateway.validate_otp(cleaned, cleaned_token)
            except Exception as e:
                return StepResult.failure(str(e) or "Error validating token. Please try again later.", ErrorType.TOKEN)

            if not validation.ok:
                return StepResult.failure(validation.message or "Invalid token. Please try again.", ErrorType.TOKEN)

        return await self._check_credit_limit(cleaned)

    async def _check_credit_limit(self, phone: str, skip_step2: bool = False) -> StepResult:
        try:
            cupo = await self.gateway.check_credit_limit(phone)
        except Exception as e:
            return StepResult.failure(
                str(e) or "Error validating credit limit. Please try again later.",
                ErrorType.CUPO,
            )

        if not cupo.ok:
            return StepResult.failure(cupo.message or "Error validating credit limit", ErrorType.CUPO)

        limit = cupo.payload if isinstance(cupo.payload, CreditLimit) else CreditLimit()
        return StepResult(
            success=True,
            approved_amount=limit.cupo_autorizado,
            id_solicitud=limit.id_solicitud,
            skip_step2=skip_step2,
        )

    async def _resend_otp(self, phone: str) -> StepResult:
        cleaned = clean_phone(phone)
        otp = await self.gateway.send_otp(cleaned)

        # Only a fresh send counts here; code 24 means no SMS went out
        if otp.kind is OutcomeKind.OK:
            return StepResult(success=True)
        return StepResult.failure(otp.message or "Failed to resend OTP token.", ErrorType.TOKEN)

    async def _submit_disbursement(
        self,
        phone: str,
        id_solicitud: str,
        amount: Any,
        commission: Any,
        autorizacion: str,
    ) -> StepResult:
        amount_value = to_decimal(amount) if amount is not None else None
        commission_value = to_decimal(commission) if commission is not None else None

        if (
            not phone
            or not id_solicitud
            or amount_value is None
            or amount_value <= 0
            or commission_value is None
            or commission_value < 0
            or not autorizacion
        ):
            return StepResult.failure("All fields are required and valid", ErrorType.DISBURSEMENT)

        result = await self.gateway.execute_disbursement(
            clean_phone(phone),
            id_solicitud,
            amount_value,
            commission_value,
            autorizacion,
        )

        if not result.ok:
            return StepResult.failure(result.message or "Error executing disbursement", ErrorType.DISBURSEMENT)

        if result.has_warning:
            commission_issue_counter.inc()
            logger.warning(
                "Disbursement succeeded but commission collection failed",
                extra={"autorizacion": autorizacion, "id_solicitud": id_solicitud},
            )

        return StepResult(success=True, has_commission_issue=result.has_warning)

    def _is_bypass_token(self, token: str) -> bool:
        return self.settings.enable_test_bypass and token == self.settings.test_token

    async def _notify(
        self,
        form_data: Dict[str, Any],
        remote_result: Optional[RemoteCallResult],
        success: bool,
        autorizacion: Optional[str],
    ) -> None:
        try:
            await self.sink.notify(PROFILE_STEP, form_data, remote_result, success, autorizacion)
        except Exception as e:
            logger.error(f"Notification sink raised: {e}", extra={"autorizacion": autorizacion})


def _client_snapshot(
    profile: ApplicantProfile,
    client_id: Optional[str],
    status: str,
    message: str,
) -> RemoteCallResult:
    """Client record as the webhook expects it after step 1"""
    return RemoteCallResult(
        operation=Operation.LOOKUP_CLIENT,
        return_code="0",
        message=message,
        kind=OutcomeKind.OK,
        payload=ClientRecord(
            id=client_id or "",
            status=status,
            identification_number=profile.identification,
            full_name=profile.full_name,
            phone=profile.phone,
            email=profile.email,
            nit=profile.nit,
            start_date=profile.start_date,
            monthly_salary=profile.salary,
            payment_frequency=profile.pay_frequency,
        ),
    )

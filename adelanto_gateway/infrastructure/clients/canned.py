"""Test-mode gateway answering the designated test phone with canned results"""

import logging
from decimal import Decimal

from adelanto_gateway.config import Settings, settings as default_settings
from adelanto_gateway.domain.models import (
    ApplicantProfile,
    ClientMutation,
    ClientMutationMode,
    ClientRecord,
    CreditLimit,
    Operation,
    Payload,
    RemoteCallResult,
)
from adelanto_gateway.infrastructure.clients.soap import SoapGateway, classify
from adelanto_gateway.utils.phone import strip_whitespace

logger = logging.getLogger(__name__)


class CannedResponseGateway:
    """
    Wraps a real SoapGateway when the test bypass is enabled.

    Calls for the configured test phone never reach the network; every other
    phone is forwarded unchanged. The canned lookup reports an incomplete
    profile (code 5) so the wizard walks the full create path.
    """

    def __init__(self, inner: SoapGateway, config: Settings | None = None):
        self.inner = inner
        self.settings = config or default_settings

    def _is_test_phone(self, phone: str) -> bool:
        return strip_whitespace(phone) == self.settings.test_phone

    def _canned(self, operation: Operation, code: str, message: str, payload: Payload = None) -> RemoteCallResult:
        logger.info("TEST MODE: canned response", extra={"operation": operation.value, "return_code": code})
        return RemoteCallResult(
            operation=operation,
            return_code=code,
            message=f"TEST MODE: {message}",
            kind=classify(operation, code),
            payload=payload,
        )

    async def lookup_client(self, phone: str) -> RemoteCallResult:
        if not self._is_test_phone(phone):
            return await self.inner.lookup_client(phone)
        return self._canned(
            Operation.LOOKUP_CLIENT,
            "5",
            "client profile incomplete",
            ClientRecord(phone=strip_whitespace(phone)),
        )

    async def send_otp(self, phone: str) -> RemoteCallResult:
        if not self._is_test_phone(phone):
            return await self.inner.send_otp(phone)
        return self._canned(Operation.SEND_OTP, "0", "token sending bypassed")

    async def validate_otp(self, phone: str, token: str) -> RemoteCallResult:
        if not self._is_test_phone(phone):
            return await self.inner.validate_otp(phone, token)
        return self._canned(Operation.VALIDATE_OTP, "0", "token validation bypassed")

    async def check_credit_limit(self, phone: str) -> RemoteCallResult:
        if not self._is_test_phone(phone):
            return await self.inner.check_credit_limit(phone)
        return self._canned(
            Operation.CHECK_CREDIT_LIMIT,
            "0",
            "mock credit limit",
            CreditLimit(
                id_solicitud=self.settings.test_id_solicitud,
                celular=strip_whitespace(phone),
                cupo_autorizado=self.settings.test_approved_amount,
            ),
        )

    async def execute_disbursement(
        self,
        phone: str,
        id_solicitud: str,
        amount: Decimal,
        commission: Decimal,
        autorizacion: str,
    ) -> RemoteCallResult:
        if not self._is_test_phone(phone):
            return await self.inner.execute_disbursement(phone, id_solicitud, amount, commission, autorizacion)
        return self._canned(Operation.EXECUTE_DISBURSEMENT, "0", "disbursement bypassed")

    async def create_or_edit_client(
        self,
        mode: ClientMutationMode,
        profile: ApplicantProfile,
        salary: Decimal,
        status: str | None = None,
    ) -> RemoteCallResult:
        if not self._is_test_phone(profile.phone):
            return await self.inner.create_or_edit_client(mode, profile, salary, status)
        return self._canned(
            Operation.CREATE_OR_EDIT_CLIENT,
            "0",
            f"client {mode.value} bypassed",
            ClientMutation(client_id="TEST-001"),
        )

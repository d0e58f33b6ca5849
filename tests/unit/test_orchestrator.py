"""Unit tests for the step orchestrator"""

from decimal import Decimal

import pytest

from adelanto_gateway.domain.exceptions import ProtocolError, ServiceConnectionError
from adelanto_gateway.domain.models import (
    ApplicantProfile,
    ClientMutation,
    ClientMutationMode,
    ClientRecord,
    CreditLimit,
    ErrorType,
    NextAction,
    Operation,
)
from adelanto_gateway.services.orchestrator import StepOrchestrator, map_client, normalize_frequency, parse_salary


@pytest.fixture
def complete_client() -> ClientRecord:
    return ClientRecord(
        id="CL-1000",
        status="A",
        identification_number="2456789010101",
        full_name="Ana Lucia Morales",
        phone="55550000",
        email="ana.morales@example.com",
        nit="1234567-8",
        start_date="2021-03-15T00:00:00",
        monthly_salary="6500",
        payment_frequency="Q",
    )


@pytest.fixture
def credit_limit() -> CreditLimit:
    return CreditLimit(id_solicitud="SOL-1001", celular="55550000", cupo_autorizado=Decimal("3500.00"))


# Step 0


@pytest.mark.parametrize("code", ["0", "5"])
async def test_phone_success_codes(orchestrator, mock_gateway, remote, code):
    mock_gateway.lookup_client.return_value = remote(Operation.LOOKUP_CLIENT, code, "msg")

    result = await orchestrator.submit_phone("55550000")

    assert result.success is True
    assert result.error_type is None


@pytest.mark.parametrize("code", ["1", "24", "99"])
async def test_phone_other_codes_fail(orchestrator, mock_gateway, remote, code):
    mock_gateway.lookup_client.return_value = remote(Operation.LOOKUP_CLIENT, code, "Numero no registrado")

    result = await orchestrator.submit_phone("55550000")

    assert result.success is False
    assert result.error_type is ErrorType.PHONE_NUMBER
    assert result.error == "Numero no registrado"


async def test_phone_complete_profile_is_mapped(orchestrator, mock_gateway, remote, complete_client):
    mock_gateway.lookup_client.return_value = remote(Operation.LOOKUP_CLIENT, "0", "OK", complete_client)

    result = await orchestrator.submit_phone("5555 0000")

    mock_gateway.lookup_client.assert_awaited_once_with("55550000")
    assert result.profile_complete is True
    assert result.client_id == "CL-1000"
    assert result.client_data == ApplicantProfile(
        identification="2456789010101",
        full_name="Ana Lucia Morales",
        phone="55550000",
        email="ana.morales@example.com",
        nit="1234567-8",
        start_date="15-03-2021",
        salary="6500",
        pay_frequency="biweekly",
    )


async def test_phone_partial_profile_returns_phone_only(orchestrator, mock_gateway, remote):
    partial = ClientRecord(id="CL-2006", phone="55550006", email="")
    mock_gateway.lookup_client.return_value = remote(Operation.LOOKUP_CLIENT, "0", "OK", partial)

    result = await orchestrator.submit_phone("55550006")

    assert result.success is True
    assert result.profile_complete is False
    assert result.client_id == "CL-2006"
    assert result.client_data == ApplicantProfile(phone="55550006")


async def test_phone_code_5_without_client(orchestrator, mock_gateway, remote):
    mock_gateway.lookup_client.return_value = remote(Operation.LOOKUP_CLIENT, "5", "No registrado")

    result = await orchestrator.submit_phone("55550005")

    assert result.success is True
    assert result.client_id is None
    assert result.client_data == ApplicantProfile(phone="55550005")


async def test_phone_invalid_format_never_calls_gateway(orchestrator, mock_gateway):
    result = await orchestrator.submit_phone("1234")

    assert result.success is False
    assert result.error_type is ErrorType.PHONE_NUMBER
    assert "8 digits" in result.error
    mock_gateway.lookup_client.assert_not_awaited()


async def test_phone_gateway_exception_converted(orchestrator, mock_gateway):
    mock_gateway.lookup_client.side_effect = ServiceConnectionError("SOAP service timeout after 15.0s")

    result = await orchestrator.submit_phone("55550000")

    assert result.success is False
    assert result.error_type is ErrorType.PHONE_NUMBER
    assert result.error == "SOAP service timeout after 15.0s"


# Step 1


async def test_profile_continue_sends_otp_without_mutation(orchestrator, mock_gateway, mock_sink, remote, complete_profile):
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "0", "Token enviado")

    result = await orchestrator.submit_profile(complete_profile, NextAction.CONTINUE, "CL-1000", "AUTH-1-AAAAAAA")

    assert result.success is True
    assert result.skip_step2 is False
    mock_gateway.create_or_edit_client.assert_not_awaited()
    mock_gateway.send_otp.assert_awaited_once_with("55550000")

    step, form_data, snapshot, success, autorizacion = mock_sink.notify.await_args.args
    assert step == 1
    assert success is True
    assert autorizacion == "AUTH-1-AAAAAAA"
    assert form_data["next_action"] == "continue"
    assert snapshot.payload.id == "CL-1000"
    assert snapshot.payload.full_name == complete_profile.full_name


async def test_profile_create_uses_new_client_id(orchestrator, mock_gateway, mock_sink, remote, complete_profile):
    mock_gateway.create_or_edit_client.return_value = remote(
        Operation.CREATE_OR_EDIT_CLIENT, "0", "Creado", ClientMutation(client_id="CL-2005")
    )
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "0")

    result = await orchestrator.submit_profile(complete_profile, NextAction.CREATE, None, "AUTH-1-AAAAAAA")

    assert result.success is True
    mode, profile, salary = mock_gateway.create_or_edit_client.await_args.args
    assert mode is ClientMutationMode.CREATE
    assert salary == Decimal("6500.00")
    assert mock_gateway.create_or_edit_client.await_args.kwargs["status"] is None
    snapshot = mock_sink.notify.await_args.args[2]
    assert snapshot.payload.id == "CL-2005"
    assert snapshot.payload.status == "ACTIVE"


async def test_profile_edit_marks_client_active(orchestrator, mock_gateway, remote, complete_profile):
    mock_gateway.create_or_edit_client.return_value = remote(Operation.CREATE_OR_EDIT_CLIENT, "0", "Editado")
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "0")

    await orchestrator.submit_profile(complete_profile, NextAction.EDIT, "CL-2006")

    mode = mock_gateway.create_or_edit_client.await_args.args[0]
    assert mode is ClientMutationMode.EDIT
    assert mock_gateway.create_or_edit_client.await_args.kwargs["status"] == "A"


async def test_profile_missing_field_is_general_error(orchestrator, mock_gateway, complete_profile):
    incomplete = ApplicantProfile(**{**complete_profile.to_dict(), "nit": ""})

    result = await orchestrator.submit_profile(incomplete)

    assert result.success is False
    assert result.error_type is ErrorType.GENERAL
    mock_gateway.send_otp.assert_not_awaited()


async def test_profile_mutation_failure_notifies_and_stops(orchestrator, mock_gateway, mock_sink, remote, complete_profile):
    mock_gateway.create_or_edit_client.return_value = remote(Operation.CREATE_OR_EDIT_CLIENT, "12", "Identificacion duplicada")

    result = await orchestrator.submit_profile(complete_profile, NextAction.CREATE)

    assert result.success is False
    assert result.error_type is ErrorType.GENERAL
    assert result.error == "Identificacion duplicada"
    step, _, snapshot, success, _ = mock_sink.notify.await_args.args
    assert (step, snapshot, success) == (1, None, False)
    mock_gateway.send_otp.assert_not_awaited()


async def test_profile_mutation_exception_is_general(orchestrator, mock_gateway, mock_sink, complete_profile):
    mock_gateway.create_or_edit_client.side_effect = ProtocolError("Error parsing response")

    result = await orchestrator.submit_profile(complete_profile, NextAction.EDIT, "CL-1")

    assert result.success is False
    assert result.error_type is ErrorType.GENERAL
    assert mock_sink.notify.await_args.args[3] is False


async def test_profile_code_24_checks_credit_and_skips_otp(orchestrator, mock_gateway, remote, complete_profile, credit_limit):
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "24", "Ya acepto terminos")
    mock_gateway.check_credit_limit.return_value = remote(Operation.CHECK_CREDIT_LIMIT, "0", "OK", credit_limit)

    result = await orchestrator.submit_profile(complete_profile)

    assert result.success is True
    assert result.skip_step2 is True
    assert result.approved_amount == Decimal("3500.00")
    assert result.id_solicitud == "SOL-1001"
    mock_gateway.check_credit_limit.assert_awaited_once_with("55550000")


async def test_profile_code_24_credit_failure_is_cupo(orchestrator, mock_gateway, remote, complete_profile):
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "24")
    mock_gateway.check_credit_limit.return_value = remote(Operation.CHECK_CREDIT_LIMIT, "13", "Sin cupo")

    result = await orchestrator.submit_profile(complete_profile)

    assert result.success is False
    assert result.error_type is ErrorType.CUPO
    assert result.error == "Sin cupo"


async def test_profile_otp_failure_appends_code(orchestrator, mock_gateway, remote, complete_profile):
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "7", "Numero invalido")

    result = await orchestrator.submit_profile(complete_profile)

    assert result.success is False
    assert result.error_type is ErrorType.TOKEN
    assert result.error == "Numero invalido (Code 7)"


async def test_profile_otp_exception_is_token_error(orchestrator, mock_gateway, complete_profile):
    mock_gateway.send_otp.side_effect = ServiceConnectionError("SOAP service error: 502")

    result = await orchestrator.submit_profile(complete_profile)

    assert result.error_type is ErrorType.TOKEN
    assert result.error == "SOAP service error: 502"


async def test_profile_sink_failure_does_not_change_outcome(orchestrator, mock_gateway, mock_sink, remote, complete_profile):
    mock_sink.notify.side_effect = RuntimeError("sink down")
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "0")

    result = await orchestrator.submit_profile(complete_profile)

    assert result.success is True


async def test_pass_through_profile_reaches_otp_unchanged(
    orchestrator, mock_gateway, mock_sink, remote, complete_client
):
    mock_gateway.lookup_client.return_value = remote(Operation.LOOKUP_CLIENT, "0", "OK", complete_client)
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "0")

    lookup = await orchestrator.submit_phone("55550000")
    result = await orchestrator.submit_profile(lookup.client_data, NextAction.CONTINUE, lookup.client_id)

    assert result.success is True
    mock_gateway.create_or_edit_client.assert_not_awaited()
    form_data = mock_sink.notify.await_args.args[1]
    for name, value in lookup.client_data.to_dict().items():
        assert form_data[name] == value


# Step 2


async def test_otp_valid_returns_credit_limit(orchestrator, mock_gateway, remote, credit_limit):
    mock_gateway.validate_otp.return_value = remote(Operation.VALIDATE_OTP, "0")
    mock_gateway.check_credit_limit.return_value = remote(Operation.CHECK_CREDIT_LIMIT, "0", "OK", credit_limit)

    result = await orchestrator.submit_otp("55550000", " abc123 ")

    mock_gateway.validate_otp.assert_awaited_once_with("55550000", "ABC123")
    assert result.success is True
    assert result.approved_amount == Decimal("3500.00")
    assert result.id_solicitud == "SOL-1001"


async def test_otp_wrong_length_is_token_error(orchestrator, mock_gateway):
    result = await orchestrator.submit_otp("55550000", "12345")

    assert result.success is False
    assert result.error_type is ErrorType.TOKEN
    mock_gateway.validate_otp.assert_not_awaited()


async def test_otp_missing_fields(orchestrator):
    result = await orchestrator.submit_otp("", "ABC123")

    assert result.error_type is ErrorType.TOKEN
    assert result.error == "Phone and token are required"


async def test_otp_rejected_is_token_error(orchestrator, mock_gateway, remote):
    mock_gateway.validate_otp.return_value = remote(Operation.VALIDATE_OTP, "7", "Token invalido")

    result = await orchestrator.submit_otp("55550000", "ABC123")

    assert result.error_type is ErrorType.TOKEN
    assert result.error == "Token invalido"
    mock_gateway.check_credit_limit.assert_not_awaited()


async def test_otp_credit_exception_is_cupo(orchestrator, mock_gateway, remote):
    mock_gateway.validate_otp.return_value = remote(Operation.VALIDATE_OTP, "0")
    mock_gateway.check_credit_limit.side_effect = ProtocolError("Unrecognized response structure for valida_cupo")

    result = await orchestrator.submit_otp("55550000", "ABC123")

    assert result.error_type is ErrorType.CUPO
    assert result.error


async def test_bypass_token_skips_validation(mock_gateway, mock_sink, bypass_settings, remote, credit_limit):
    orchestrator = StepOrchestrator(mock_gateway, mock_sink, bypass_settings)
    mock_gateway.check_credit_limit.return_value = remote(Operation.CHECK_CREDIT_LIMIT, "0", "OK", credit_limit)

    result = await orchestrator.submit_otp("55550000", "222222")

    assert result.success is True
    mock_gateway.validate_otp.assert_not_awaited()


async def test_bypass_token_ignored_when_bypass_disabled(orchestrator, mock_gateway, remote):
    mock_gateway.validate_otp.return_value = remote(Operation.VALIDATE_OTP, "7", "Token invalido")

    result = await orchestrator.submit_otp("55550000", "222222")

    assert result.success is False
    mock_gateway.validate_otp.assert_awaited_once()


# Resend


async def test_resend_success(orchestrator, mock_gateway, remote):
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "0")

    result = await orchestrator.resend_otp("55550000")

    assert result.success is True


async def test_resend_code_24_is_not_success(orchestrator, mock_gateway, remote):
    mock_gateway.send_otp.return_value = remote(Operation.SEND_OTP, "24", "Ya acepto terminos")

    result = await orchestrator.resend_otp("55550000")

    assert result.success is False
    assert result.error_type is ErrorType.TOKEN


async def test_resend_exception_is_token_error(orchestrator, mock_gateway):
    mock_gateway.send_otp.side_effect = ServiceConnectionError("SOAP service connection error")

    result = await orchestrator.resend_otp("55550000")

    assert result.error_type is ErrorType.TOKEN


# Step 3


async def test_disbursement_success(orchestrator, mock_gateway, remote):
    mock_gateway.execute_disbursement.return_value = remote(Operation.EXECUTE_DISBURSEMENT, "0")

    result = await orchestrator.submit_disbursement("55550000", "SOL-1001", 500, Decimal("36.40"), "AUTH-1-AAAAAAA")

    assert result.success is True
    assert result.has_commission_issue is False
    mock_gateway.execute_disbursement.assert_awaited_once_with(
        "55550000", "SOL-1001", Decimal("500"), Decimal("36.40"), "AUTH-1-AAAAAAA"
    )


async def test_disbursement_code_34_flags_commission_issue(orchestrator, mock_gateway, remote):
    mock_gateway.execute_disbursement.return_value = remote(Operation.EXECUTE_DISBURSEMENT, "34", "Comision pendiente")

    result = await orchestrator.submit_disbursement("55550034", "SOL-0034", 500, 36.4, "AUTH-1-AAAAAAA")

    assert result.success is True
    assert result.has_commission_issue is True


@pytest.mark.parametrize(
    "phone,id_solicitud,amount,commission,autorizacion",
    [
        ("", "SOL-1", 500, 36.4, "AUTH"),
        ("55550000", "", 500, 36.4, "AUTH"),
        ("55550000", "SOL-1", 0, 36.4, "AUTH"),
        ("55550000", "SOL-1", None, 36.4, "AUTH"),
        ("55550000", "SOL-1", 500, -1, "AUTH"),
        ("55550000", "SOL-1", 500, None, "AUTH"),
        ("55550000", "SOL-1", 500, 36.4, ""),
    ],
)
async def test_disbursement_requires_valid_fields(orchestrator, mock_gateway, phone, id_solicitud, amount, commission, autorizacion):
    result = await orchestrator.submit_disbursement(phone, id_solicitud, amount, commission, autorizacion)

    assert result.success is False
    assert result.error_type is ErrorType.DISBURSEMENT
    mock_gateway.execute_disbursement.assert_not_awaited()


async def test_disbursement_failure_and_exception(orchestrator, mock_gateway, remote):
    mock_gateway.execute_disbursement.return_value = remote(Operation.EXECUTE_DISBURSEMENT, "40", "Fondos insuficientes")
    failed = await orchestrator.submit_disbursement("55550000", "SOL-1", 500, 36.4, "AUTH")

    mock_gateway.execute_disbursement.side_effect = ServiceConnectionError("SOAP service error: 503")
    raised = await orchestrator.submit_disbursement("55550000", "SOL-1", 500, 36.4, "AUTH")

    assert (failed.error_type, failed.error) == (ErrorType.DISBURSEMENT, "Fondos insuficientes")
    assert (raised.error_type, raised.error) == (ErrorType.DISBURSEMENT, "SOAP service error: 503")


# Mapping helpers


def test_normalize_frequency():
    assert normalize_frequency("M") == "monthly"
    assert normalize_frequency("q") == "biweekly"
    assert normalize_frequency("S") == "weekly"
    assert normalize_frequency("X") == "x"
    assert normalize_frequency(None) == ""


def test_parse_salary():
    assert parse_salary("6,500.50") == Decimal("6500.50")
    assert parse_salary("abc") == Decimal("0")


def test_map_client_uses_lookup_phone_when_missing():
    profile = map_client(ClientRecord(full_name="Ana"), "55550000")
    assert profile.phone == "55550000"
    assert profile.full_name == "Ana"

"""SOAP gateway for the legacy PAQ Adelantos web service"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional, Tuple
from xml.etree import ElementTree as ET

import httpx

from adelanto_gateway.config import settings
from adelanto_gateway.domain.exceptions import (
    ConfigurationError,
    ProtocolError,
    ServiceConnectionError,
)
from adelanto_gateway.domain.models import (
    ApplicantProfile,
    ClientMutation,
    ClientMutationMode,
    ClientRecord,
    CreditLimit,
    Operation,
    OutcomeKind,
    Payload,
    PayFrequency,
    RemoteCallResult,
)
from adelanto_gateway.infrastructure.clients import envelopes
from adelanto_gateway.infrastructure.observability.metrics import (
    soap_decode_fallback_counter,
    soap_failure_counter,
    soap_latency_histogram,
)
from adelanto_gateway.utils.phone import clean_phone, clean_token

logger = logging.getLogger(__name__)

# Return codes that count as success per operation. Anything else is FAILED.
SUCCESS_CODES: Dict[Operation, Dict[str, OutcomeKind]] = {
    Operation.LOOKUP_CLIENT: {"0": OutcomeKind.OK, "5": OutcomeKind.OK_WITH_WARNING},
    Operation.SEND_OTP: {"0": OutcomeKind.OK, "24": OutcomeKind.OK_WITH_WARNING},
    Operation.VALIDATE_OTP: {"0": OutcomeKind.OK},
    Operation.CHECK_CREDIT_LIMIT: {"0": OutcomeKind.OK},
    Operation.EXECUTE_DISBURSEMENT: {"0": OutcomeKind.OK, "34": OutcomeKind.OK_WITH_WARNING},
    Operation.CREATE_OR_EDIT_CLIENT: {"0": OutcomeKind.OK},
}

_CLIENT_FIELDS = {
    "ID": "id",
    "STATUS": "status",
    "NUMERO_IDENTIFICACION": "identification_number",
    "NOMBRE_COMPLETO": "full_name",
    "CELULAR": "phone",
    "EMAIL": "email",
    "NIT": "nit",
    "FECHA_ALTA": "start_date",
    "SALARIO_MENSUAL": "monthly_salary",
    "FRECUENCIA_PAGO": "payment_frequency",
    "NUMERO_DISPERSIONES": "number_of_dispersions",
    "MONTO_PROMEDIO_DISPERSION": "average_dispersion_amount",
    "ACEPTA_TERMINOS": "accepts_terms",
    "FECHA_BAJA": "end_date",
}

_CUPO_DECIMAL_FIELDS = {
    "cupo_autorizado": "cupo_autorizado",
    "comision_sobre_cupo": "comision_sobre_cupo",
    "porc_comision": "porc_comision",
    "limMaxComBanda1": "lim_max_com_banda1",
    "comMinBanda1": "com_min_banda1",
    "limMaxComBanda2": "lim_max_com_banda2",
    "comMinBanda2": "com_min_banda2",
}


def normalize_code(value: Any) -> str:
    """Return codes arrive as numbers or strings; a missing code means "0"."""
    if value is None or value == "":
        return "0"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def classify(operation: Operation, code: str) -> OutcomeKind:
    return SUCCESS_CODES[operation].get(code, OutcomeKind.FAILED)


def _local_name(tag: str) -> str:
    return tag.split("}", 1)[1] if "}" in tag else tag


def element_value(element: ET.Element) -> Any:
    """Read an element as text, or as a dict when it has child elements"""
    if len(element) == 0:
        return (element.text or "").strip()
    return {_local_name(child.tag): element_value(child) for child in element}


def find_result_node(root: ET.Element, method: str) -> Optional[ET.Element]:
    """Locate <MethodResult> wherever the service put it in the document"""
    target = f"{method}Result"
    for element in root.iter():
        if _local_name(element.tag) == target:
            return element
    return None


def decode_result(operation: Operation, value: Any) -> Tuple[Dict[str, Any], bool]:
    """
    Two-path decode of a result value.

    1. Structured: a dict (child elements) or a string holding a JSON object.
    2. Fallback: any other string becomes the message with code "0".

    The fallback is lossy and never raises; every occurrence is logged and
    counted so upstream format drift stays visible.

    Returns:
        (record, used_fallback)
    """
    if isinstance(value, dict):
        return value, False

    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        decoded = None

    if isinstance(decoded, dict):
        if not decoded.get("mensaje"):
            decoded["mensaje"] = value
        return decoded, False

    soap_decode_fallback_counter.labels(operation=operation.value).inc()
    logger.warning(
        "SOAP result is not a JSON object; using raw text as message",
        extra={"operation": operation.value, "raw_length": len(value or "")},
    )
    return {"codret": "0", "mensaje": value or ""}, True


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def parse_client(raw: Any) -> Optional[ClientRecord]:
    """Map the nested cliente value (object or JSON string) to a ClientRecord"""
    if not raw:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, dict):
        return None
    return ClientRecord(**{attr: _text(raw.get(key)) for key, attr in _CLIENT_FIELDS.items()})


def parse_credit_limit(record: Dict[str, Any]) -> CreditLimit:
    limit = CreditLimit(
        id_solicitud=_text(record.get("id_solicitud")),
        celular=_text(record.get("celular")),
    )
    for key, attr in _CUPO_DECIMAL_FIELDS.items():
        setattr(limit, attr, _decimal(record.get(key)))
    return limit


def parse_client_mutation(record: Dict[str, Any]) -> ClientMutation:
    client_id = record.get("id_cliente") or record.get("idCliente") or record.get("ID_CLIENTE")
    return ClientMutation(client_id=_text(client_id))


def normalize(operation: Operation, record: Dict[str, Any], used_fallback: bool = False) -> RemoteCallResult:
    """Turn a decoded record into the uniform RemoteCallResult"""
    code = normalize_code(record.get("codret"))
    message = _text(record.get("mensaje")) or ""

    payload: Payload = None
    if not used_fallback:
        if operation is Operation.LOOKUP_CLIENT:
            payload = parse_client(record.get("cliente"))
        elif operation is Operation.CHECK_CREDIT_LIMIT:
            payload = parse_credit_limit(record)
        elif operation is Operation.CREATE_OR_EDIT_CLIENT:
            payload = parse_client_mutation(record)

    return RemoteCallResult(
        operation=operation,
        return_code=code,
        message=message,
        kind=classify(operation, code),
        payload=payload,
    )


class SoapGateway:
    """Client for the legacy SOAP service"""

    def __init__(
        self,
        url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        namespace: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url or settings.soap_url
        self.username = settings.soap_username if username is None else username
        self.password = settings.soap_password if password is None else password
        self.namespace = namespace or settings.soap_namespace
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def lookup_client(self, phone: str) -> RemoteCallResult:
        self._ensure_credentials()
        cleaned = clean_phone(phone)
        return await self._call(
            Operation.LOOKUP_CLIENT, envelopes.CONSULTA_CLIENTE, [("CELULAR", cleaned)]
        )

    async def send_otp(self, phone: str) -> RemoteCallResult:
        self._ensure_credentials()
        cleaned = clean_phone(phone)
        return await self._call(Operation.SEND_OTP, envelopes.ENVIA_TOKEN, [("CELULAR", cleaned)])

    async def validate_otp(self, phone: str, token: str) -> RemoteCallResult:
        self._ensure_credentials()
        cleaned = clean_phone(phone)
        cleaned_token = clean_token(token)
        return await self._call(
            Operation.VALIDATE_OTP,
            envelopes.VALIDA_TOKEN,
            [("CELULAR", cleaned), ("TOKEN", cleaned_token)],
        )

    async def check_credit_limit(self, phone: str) -> RemoteCallResult:
        self._ensure_credentials()
        cleaned = clean_phone(phone)
        return await self._call(Operation.CHECK_CREDIT_LIMIT, envelopes.VALIDA_CUPO, [("CELULAR", cleaned)])

    async def execute_disbursement(
        self,
        phone: str,
        id_solicitud: str,
        amount: Decimal,
        commission: Decimal,
        autorizacion: str,
    ) -> RemoteCallResult:
        self._ensure_credentials()
        cleaned = clean_phone(phone)
        return await self._call(
            Operation.EXECUTE_DISBURSEMENT,
            envelopes.EJECUTA_DESEMBOLSO,
            [
                ("CELULAR", cleaned),
                ("ID_SOLICITUD", id_solicitud),
                ("MONTO", amount),
                ("COMISION", commission),
                ("AUTORIZACION", autorizacion),
            ],
        )

    async def create_or_edit_client(
        self,
        mode: ClientMutationMode,
        profile: ApplicantProfile,
        salary: Decimal,
        status: str | None = None,
    ) -> RemoteCallResult:
        """Registra_Cliente (create) or Edita_Cliente (edit, carries STATUS)"""
        self._ensure_credentials()
        cleaned = clean_phone(profile.phone)
        fields = [
            ("NUMERO_IDENTIFICACION", profile.identification),
            ("NOMBRE_COMPLETO", profile.full_name),
            ("CELULAR", cleaned),
            ("EMAIL", profile.email),
            ("NIT", profile.nit),
            ("SALARIO_MENSUAL", salary),
            ("FRECUENCIA_PAGO", _frequency_code(profile.pay_frequency)),
        ]
        if mode is ClientMutationMode.EDIT:
            method = envelopes.EDITA_CLIENTE
            fields.append(("STATUS", status or "A"))
        else:
            method = envelopes.REGISTRA_CLIENTE
        return await self._call(Operation.CREATE_OR_EDIT_CLIENT, method, fields)

    def _ensure_credentials(self) -> None:
        if not self.username or not self.password:
            raise ConfigurationError(
                "SOAP credentials not configured. Check SOAP_USERNAME and SOAP_PASSWORD_URL_ENCODE"
            )

    async def _call(
        self,
        operation: Operation,
        method: str,
        fields: Iterable[Tuple[str, object]],
    ) -> RemoteCallResult:
        """
        Post one SOAP request and normalize its result.

        Raises:
            ServiceConnectionError: On timeout, transport failure or HTTP error status
            ProtocolError: On unparseable XML or a missing <MethodResult> node
        """
        body = envelopes.build_envelope(self.namespace, method, self.username, self.password, fields)
        headers = envelopes.soap_headers(self.namespace, method)

        try:
            with soap_latency_histogram.labels(operation=operation.value).time():
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    response = await client.post(self.url, content=body.encode("utf-8"), headers=headers)
                    response.raise_for_status()
        except httpx.TimeoutException as e:
            soap_failure_counter.labels(operation=operation.value, reason="connection").inc()
            raise ServiceConnectionError(f"SOAP service timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            soap_failure_counter.labels(operation=operation.value, reason="connection").inc()
            raise ServiceConnectionError(f"SOAP service error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            soap_failure_counter.labels(operation=operation.value, reason="connection").inc()
            raise ServiceConnectionError(f"SOAP service connection error: {e}") from e

        try:
            result = self._parse(operation, method, response.content)
        except ProtocolError:
            soap_failure_counter.labels(operation=operation.value, reason="protocol").inc()
            raise

        logger.info(
            "SOAP call completed",
            extra={
                "operation": operation.value,
                "return_code": result.return_code,
                "outcome": result.kind.value,
            },
        )
        return result

    @staticmethod
    def _parse(operation: Operation, method: str, content: bytes) -> RemoteCallResult:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ProtocolError(f"Error parsing response: {e}") from e

        node = find_result_node(root, method)
        if node is None:
            raise ProtocolError(f"Unrecognized response structure for {method}")

        record, used_fallback = decode_result(operation, element_value(node))
        return normalize(operation, record, used_fallback)


def _frequency_code(value: str) -> str:
    try:
        return PayFrequency(value).code
    except ValueError:
        return value

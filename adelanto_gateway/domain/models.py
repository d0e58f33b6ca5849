"""Domain models - pure Python dataclasses representing wizard entities"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union


class Operation(str, Enum):
    """Logical operations offered by the legacy SOAP service"""

    LOOKUP_CLIENT = "lookup_client"
    SEND_OTP = "send_otp"
    VALIDATE_OTP = "validate_otp"
    CHECK_CREDIT_LIMIT = "check_credit_limit"
    EXECUTE_DISBURSEMENT = "execute_disbursement"
    CREATE_OR_EDIT_CLIENT = "create_or_edit_client"


class OutcomeKind(str, Enum):
    """Closed set of outcomes a remote return code maps to"""

    OK = "ok"
    OK_WITH_WARNING = "ok_with_warning"
    FAILED = "failed"


class ErrorType(str, Enum):
    """Step-level error tags used by the wizard for routing"""

    PHONE_NUMBER = "phone_number"
    TOKEN = "token"
    CUPO = "cupo"
    GENERAL = "general"
    DISBURSEMENT = "disbursement"


class NextAction(str, Enum):
    """What step 1 should do with the client record"""

    CREATE = "create"
    EDIT = "edit"
    CONTINUE = "continue"


class ClientMutationMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"


class PayFrequency(str, Enum):
    """Salary payment frequency; remote service uses single-letter codes"""

    MONTHLY = "monthly"
    BIWEEKLY = "biweekly"
    WEEKLY = "weekly"

    @property
    def code(self) -> str:
        return _FREQUENCY_CODES[self]

    @classmethod
    def from_code(cls, code: str) -> Optional["PayFrequency"]:
        for frequency, frequency_code in _FREQUENCY_CODES.items():
            if frequency_code == code.upper():
                return frequency
        return None


_FREQUENCY_CODES = {
    PayFrequency.MONTHLY: "M",
    PayFrequency.BIWEEKLY: "Q",
    PayFrequency.WEEKLY: "S",
}


@dataclass
class ApplicantProfile:
    """Personal and financial data collected in steps 0-1"""

    identification: str = ""
    full_name: str = ""
    phone: str = ""
    email: str = ""
    nit: str = ""
    start_date: str = ""  # dd-mm-yyyy
    salary: str = ""
    pay_frequency: str = ""

    def missing_fields(self) -> list[str]:
        return [name for name, value in asdict(self).items() if not value]

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class ClientRecord:
    """Client as returned by Consulta_Cliente"""

    id: Optional[str] = None
    status: Optional[str] = None
    identification_number: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    nit: Optional[str] = None
    start_date: Optional[str] = None
    monthly_salary: Optional[str] = None
    payment_frequency: Optional[str] = None
    number_of_dispersions: Optional[str] = None
    average_dispersion_amount: Optional[str] = None
    accepts_terms: Optional[str] = None
    end_date: Optional[str] = None


@dataclass
class CreditLimit:
    """Approved credit limit (cupo) returned by valida_cupo"""

    id_solicitud: Optional[str] = None
    celular: Optional[str] = None
    cupo_autorizado: Optional[Decimal] = None
    comision_sobre_cupo: Optional[Decimal] = None
    porc_comision: Optional[Decimal] = None
    lim_max_com_banda1: Optional[Decimal] = None
    com_min_banda1: Optional[Decimal] = None
    lim_max_com_banda2: Optional[Decimal] = None
    com_min_banda2: Optional[Decimal] = None


@dataclass
class ClientMutation:
    """Result of Registra_Cliente / Edita_Cliente"""

    client_id: Optional[str] = None


Payload = Union[ClientRecord, CreditLimit, ClientMutation, None]


@dataclass
class RemoteCallResult:
    """Normalized (returnCode, message, payload) triple from the SOAP service"""

    operation: Operation
    return_code: str
    message: str
    kind: OutcomeKind
    payload: Payload = None

    @property
    def ok(self) -> bool:
        return self.kind is not OutcomeKind.FAILED

    @property
    def has_warning(self) -> bool:
        return self.kind is OutcomeKind.OK_WITH_WARNING


@dataclass
class StepResult:
    """Uniform result of every orchestrator step"""

    success: bool
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    client_id: Optional[str] = None
    client_data: Optional[ApplicantProfile] = None
    profile_complete: bool = False
    approved_amount: Optional[Decimal] = None
    id_solicitud: Optional[str] = None
    skip_step2: bool = False
    has_commission_issue: bool = False

    @classmethod
    def failure(cls, error: str, error_type: ErrorType) -> "StepResult":
        return cls(success=False, error=error, error_type=error_type)


@dataclass
class WebhookEvent:
    """Payload forwarded to the notification webhook"""

    step: int
    success: bool
    autorizacion: Optional[str]
    form_data: Dict[str, Any]
    client_response: Optional[Dict[str, Any]] = None
    event: str = "WIZARD_STEP"

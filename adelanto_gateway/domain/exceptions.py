"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input is malformed; raised before any network call"""

    pass


class ConfigurationError(DomainException):
    """SOAP credentials or other required settings are missing"""

    pass


class ServiceConnectionError(DomainException):
    """Transport to the SOAP service failed (network, timeout or HTTP status)"""

    pass


class ProtocolError(DomainException):
    """SOAP response could not be parsed into the expected envelope"""

    pass


class SessionNotFoundError(DomainException):
    """No live wizard session with the given id"""

    pass


class StepInProgressError(DomainException):
    """A wizard step was submitted while another one is still loading"""

    pass

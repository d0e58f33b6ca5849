"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request

from adelanto_gateway.config import settings
from adelanto_gateway.infrastructure.clients.canned import CannedResponseGateway
from adelanto_gateway.infrastructure.clients.soap import SoapGateway
from adelanto_gateway.infrastructure.clients.webhook import NotificationSink
from adelanto_gateway.infrastructure.database.session import SessionLocal
from adelanto_gateway.services.orchestrator import StepOrchestrator
from adelanto_gateway.services.wizard_session import WizardSessionStore

_session_store = WizardSessionStore()


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_gateway() -> SoapGateway | CannedResponseGateway:
    """Provide the SOAP gateway, wrapped with canned answers when the test bypass is on"""
    gateway = SoapGateway()
    if settings.enable_test_bypass:
        return CannedResponseGateway(gateway)
    return gateway


def get_notification_sink() -> NotificationSink:
    """Provide the webhook sink, recording deliveries in the outbox table"""
    return NotificationSink(session_factory=SessionLocal)


def get_orchestrator(
    gateway: SoapGateway = Depends(get_gateway),
    sink: NotificationSink = Depends(get_notification_sink),
) -> StepOrchestrator:
    return StepOrchestrator(gateway, sink)


def get_session_store() -> WizardSessionStore:
    return _session_store

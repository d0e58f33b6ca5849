"""Pytest fixtures for testing"""

import json
from typing import Callable, Generator, Union
from unittest.mock import AsyncMock
from xml.sax.saxutils import escape

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from adelanto_gateway.api.dependencies import get_orchestrator, get_session_store
from adelanto_gateway.api.main import create_app
from adelanto_gateway.config import Settings
from adelanto_gateway.domain.models import ApplicantProfile, Operation, Payload, RemoteCallResult
from adelanto_gateway.infrastructure.clients.soap import SoapGateway, classify
from adelanto_gateway.infrastructure.clients.webhook import NotificationSink
from adelanto_gateway.infrastructure.database.models import Base
from adelanto_gateway.infrastructure.database.session import get_db
from adelanto_gateway.services.orchestrator import StepOrchestrator
from adelanto_gateway.services.wizard_session import WizardSessionStore

SOAP_URL = "http://soap.test/PAQAdelantos.asmx"
SOAP_USERNAME = "paq-user"
SOAP_PASSWORD = "paq-pass"

# In-memory database shared across sessions
engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def build_soap_response(method: str, result: Union[dict, str], as_elements: bool = False) -> str:
    """SOAP envelope whose <MethodResult> holds a JSON string, plain text or child elements"""
    if as_elements:
        inner = "".join(f"<{k}>{escape(str(v))}</{k}>" for k, v in result.items())
    elif isinstance(result, dict):
        inner = escape(json.dumps(result))
    else:
        inner = escape(result)
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body>'
        f'<{method}Response xmlns="http://www.paq.com.gt/"><{method}Result>{inner}</{method}Result>'
        f"</{method}Response></soap:Body></soap:Envelope>"
    )


@pytest.fixture
def soap_response() -> Callable[..., str]:
    return build_soap_response


@pytest.fixture
def make_gateway() -> Callable[..., SoapGateway]:
    """SoapGateway wired to an httpx.MockTransport handler"""

    def _make(handler, username: str = SOAP_USERNAME, password: str = SOAP_PASSWORD) -> SoapGateway:
        return SoapGateway(
            url=SOAP_URL,
            username=username,
            password=password,
            namespace="http://www.paq.com.gt/",
            timeout=5.0,
            transport=httpx.MockTransport(handler),
        )

    return _make


@pytest.fixture
def remote() -> Callable[..., RemoteCallResult]:
    """Build a RemoteCallResult classified the way the gateway would"""

    def _remote(operation: Operation, code: str, message: str = "", payload: Payload = None) -> RemoteCallResult:
        return RemoteCallResult(
            operation=operation,
            return_code=code,
            message=message,
            kind=classify(operation, code),
            payload=payload,
        )

    return _remote


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        soap_username=SOAP_USERNAME,
        soap_password_url_encode=SOAP_PASSWORD,
        webhook_url="",
        enable_test_bypass=False,
    )


@pytest.fixture
def bypass_settings() -> Settings:
    return Settings(
        _env_file=None,
        soap_username=SOAP_USERNAME,
        soap_password_url_encode=SOAP_PASSWORD,
        enable_test_bypass=True,
        test_phone="50502180",
        test_token="222222",
    )


@pytest.fixture
def complete_profile() -> ApplicantProfile:
    return ApplicantProfile(
        identification="2456789010101",
        full_name="Ana Lucia Morales",
        phone="55550000",
        email="ana.morales@example.com",
        nit="1234567-8",
        start_date="15-03-2021",
        salary="6,500.00",
        pay_frequency="biweekly",
    )


@pytest.fixture
def mock_gateway() -> AsyncMock:
    return AsyncMock(spec=SoapGateway)


@pytest.fixture
def mock_sink() -> AsyncMock:
    sink = AsyncMock(spec=NotificationSink)
    sink.notify.return_value = True
    return sink


@pytest.fixture
def orchestrator(mock_gateway: AsyncMock, mock_sink: AsyncMock, test_settings: Settings) -> StepOrchestrator:
    return StepOrchestrator(mock_gateway, mock_sink, test_settings)


@pytest.fixture
def db_session_factory() -> Generator[sessionmaker, None, None]:
    """Create test tables; drop them afterwards"""
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(db_session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = db_session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def session_store() -> WizardSessionStore:
    return WizardSessionStore()


@pytest.fixture
def app_factory(db: Session, session_store: WizardSessionStore) -> Callable[[StepOrchestrator], TestClient]:
    """FastAPI test client with test database, fresh session store and the given orchestrator"""

    def _client(step_orchestrator: StepOrchestrator) -> TestClient:
        app = create_app()

        def override_get_db():
            try:
                yield db
            finally:
                pass

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_orchestrator] = lambda: step_orchestrator
        app.dependency_overrides[get_session_store] = lambda: session_store
        return TestClient(app)

    return _client


@pytest.fixture
def client(app_factory, orchestrator: StepOrchestrator) -> TestClient:
    return app_factory(orchestrator)

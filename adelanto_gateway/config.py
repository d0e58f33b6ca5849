"""Configuration management using Pydantic Settings"""

from decimal import Decimal
from typing import List
from urllib.parse import unquote

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Legacy SOAP service
    soap_url: str = "https://www.paq.com.gt/paqadelaws_desa/PAQAdelantos.asmx"
    soap_namespace: str = "http://www.paq.com.gt/"
    soap_username: str = ""
    soap_password_url_encode: str = ""

    # Notification webhook (Make / Airtable)
    webhook_url: str = ""
    webhook_max_retries: int = 3
    webhook_backoff_base: float = 0.5  # Exponential backoff base in seconds

    # Database (webhook delivery outbox)
    database_url: str = "sqlite:///./adelanto_gateway.db"

    # Service
    service_name: str = "adelanto-gateway"
    log_level: str = "INFO"
    environment: str = "production"  # development | production

    # HTTP Client
    http_timeout_seconds: float = 15.0

    # Test bypass
    enable_test_bypass: bool = False
    test_phone: str = "50502180"
    test_approved_amount: Decimal = Decimal("3500")
    test_id_solicitud: str = "TEST-001"
    test_token: str = "222222"

    # Request origin allow-list
    allowed_origins: List[str] = []

    @property
    def soap_password(self) -> str:
        """Password is stored URL-encoded so it survives .env quoting"""
        return unquote(self.soap_password_url_encode)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


settings = Settings()

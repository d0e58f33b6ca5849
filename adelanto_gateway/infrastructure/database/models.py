"""SQLAlchemy ORM models for the webhook delivery outbox"""

import uuid

from sqlalchemy import Column, DateTime, Integer, JSON, Text, Uuid
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class OutboundWebhook(Base):
    """Webhook delivery record with retry tracking"""

    __tablename__ = "outbound_webhook"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_type = Column(Text, nullable=False)
    autorizacion = Column(Text, nullable=True, index=True)
    step = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)
    target_url = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending")  # delivered | failed
    last_error = Column(Text, nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

"""Data access layer for webhook deliveries"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from adelanto_gateway.infrastructure.database.models import OutboundWebhook


class WebhookRepository:
    """Repository for outbound webhook deliveries"""

    def __init__(self, db: Session):
        self.db = db

    def record_delivery(
        self,
        event_type: str,
        step: int,
        autorizacion: Optional[str],
        payload: Dict[str, Any],
        target_url: str,
        status: str,
        attempts: int,
        last_error: Optional[str] = None,
    ) -> OutboundWebhook:
        """Persist the final state of one delivery"""
        delivery = OutboundWebhook(
            event_type=event_type,
            step=step,
            autorizacion=autorizacion,
            payload=payload,
            target_url=target_url,
            status=status,
            attempts=attempts,
            last_error=last_error,
            last_attempt_at=datetime.now(timezone.utc),
        )
        self.db.add(delivery)
        self.db.flush()  # Get ID without committing
        return delivery

    def get_by_autorizacion(self, autorizacion: str, limit: int = 20) -> List[OutboundWebhook]:
        """Fetch deliveries for one wizard session"""
        return (
            self.db.query(OutboundWebhook)
            .filter(OutboundWebhook.autorizacion == autorizacion)
            .order_by(OutboundWebhook.created_at.desc())
            .limit(limit)
            .all()
        )

"""Notification webhook sink with exponential backoff retry logic"""

import asyncio
import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from sqlalchemy.orm import Session

from adelanto_gateway.config import settings
from adelanto_gateway.domain.models import RemoteCallResult, WebhookEvent
from adelanto_gateway.infrastructure.database.repositories import WebhookRepository
from adelanto_gateway.infrastructure.observability.metrics import webhook_failure_counter, webhook_latency_histogram

logger = logging.getLogger(__name__)


def build_payload(event: WebhookEvent) -> Dict[str, Any]:
    """JSON-safe webhook body; Decimals and enums are flattened to strings"""
    body = asdict(event)
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    return json.loads(json.dumps(body, default=str))


class NotificationSink:
    """Forwards step outcomes to the notification webhook; never raises"""

    def __init__(
        self,
        webhook_url: str | None = None,
        session_factory: Callable[[], Session] | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = settings.webhook_url if webhook_url is None else webhook_url
        self.session_factory = session_factory
        self.max_retries = max_retries or settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base if backoff_base is None else backoff_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def notify(
        self,
        step: int,
        form_data: Dict[str, Any],
        remote_result: Optional[RemoteCallResult],
        success: bool,
        autorizacion: Optional[str],
    ) -> bool:
        """
        Send one step outcome to the webhook.

        Returns True when delivered. Failures are logged and recorded, never
        propagated: the caller's step outcome must not depend on this sink.
        """
        if not self.webhook_url:
            logger.info("Webhook URL not configured; notification skipped", extra={"step": step})
            return False

        try:
            event = WebhookEvent(
                step=step,
                success=success,
                autorizacion=autorizacion,
                form_data=form_data,
                client_response=asdict(remote_result) if remote_result is not None else None,
            )
            payload = build_payload(event)
            delivered, attempts, last_error = await self._deliver(payload)
            self._record(event, payload, delivered, attempts, last_error)
            return delivered
        except Exception as e:
            logger.error(f"Notification webhook error: {e}", extra={"step": step, "autorizacion": autorizacion})
            return False

    async def _deliver(self, payload: Dict[str, Any]) -> Tuple[bool, int, Optional[str]]:
        """
        POST with retry.

        Retry strategy:
        - Exponential backoff: base, 2×base, 4×base ... (base × 2^(attempt-1))
        - Retries on 5xx errors and network failures; 4xx is final
        """
        attempt = 0
        last_error: Optional[str] = None
        async with httpx.AsyncClient(transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload, timeout=self.timeout)
                        response.raise_for_status()
                        return True, attempt + 1, None

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()
                    last_error = str(e)

                    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500:
                        break
                    if attempt >= self.max_retries:
                        break

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

        logger.error(
            "Notification webhook delivery failed",
            extra={"attempts": attempt, "last_error": last_error, "step": payload.get("step")},
        )
        return False, attempt, last_error

    def _record(
        self,
        event: WebhookEvent,
        payload: Dict[str, Any],
        delivered: bool,
        attempts: int,
        last_error: Optional[str],
    ) -> None:
        if self.session_factory is None:
            return
        try:
            db = self.session_factory()
        except Exception as e:
            logger.error(f"Could not open outbox session: {e}", extra={"step": event.step})
            return
        try:
            WebhookRepository(db).record_delivery(
                event_type=event.event,
                step=event.step,
                autorizacion=event.autorizacion,
                payload=payload,
                target_url=self.webhook_url,
                status="delivered" if delivered else "failed",
                attempts=attempts,
                last_error=last_error,
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Could not record webhook delivery: {e}", extra={"step": event.step})
        finally:
            db.close()

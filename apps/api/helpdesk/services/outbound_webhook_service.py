"""Outbound webhooks - fan ticket events out to subscribed endpoints."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
import uuid
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from helpdesk.db.enums import JobType, WebhookDeliveryStatus
from helpdesk.db.models import WebhookDelivery, WebhookEndpoint
from helpdesk.db.types import utcnow
from helpdesk.services import job_service
from helpdesk.utils.urls import safe_url

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"

MAX_STORED_ERROR_CHARS = 1000


def create_signature(body: str, secret: str, timestamp: int) -> str:
    """`t=<ts>,v1=<hex hmac-sha256 of "<ts>.<body>">`."""
    digest = hmac.new(
        secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


def verify_signature(
    body: str, header: str, secret: str, tolerance_seconds: int = 300, now: int | None = None
) -> bool:
    """Check a signature header produced by `create_signature`."""
    timestamp = 0
    signatures = []
    for part in (header or "").split(","):
        key, _, value = part.partition("=")
        if key == "t" and value.isdigit():
            timestamp = int(value)
        elif key.startswith("v"):
            signatures.append(value)
    if not timestamp or not signatures:
        return False
    now = int(time.time()) if now is None else now
    if abs(now - timestamp) > tolerance_seconds:
        return False
    expected = create_signature(body, secret, timestamp).split("v1=", 1)[1]
    return any(hmac.compare_digest(sig, expected) for sig in signatures)


def build_payload(event: str, data: dict, event_id: str | None = None) -> dict:
    return {
        "event_type": event,
        "event_id": event_id or str(uuid.uuid4()),
        "timestamp": utcnow().isoformat(),
        "data": data,
    }


def get_subscribed_endpoints(db: Session, event: str) -> list[WebhookEndpoint]:
    endpoints = (
        db.query(WebhookEndpoint)
        .filter(WebhookEndpoint.is_enabled.is_(True))
        .order_by(WebhookEndpoint.created_at)
        .all()
    )
    # Subscriptions live in a JSON list; "*" subscribes to everything
    return [e for e in endpoints if event in (e.events or []) or "*" in (e.events or [])]


def dispatch_event(db: Session, event: str, data: dict) -> list[WebhookDelivery]:
    """
    Record a delivery per subscribed endpoint and queue a job for each.

    Returns immediately; sending happens in the worker.
    """
    endpoints = get_subscribed_endpoints(db, event)
    if not endpoints:
        return []

    payload = build_payload(event, data)
    deliveries = []
    for endpoint in endpoints:
        delivery = WebhookDelivery(
            endpoint_id=endpoint.id,
            event=event,
            payload=payload,
            status=WebhookDeliveryStatus.PENDING.value,
        )
        db.add(delivery)
        deliveries.append(delivery)
    db.commit()

    for delivery in deliveries:
        job_service.schedule_job(
            db=db,
            job_type=JobType.WEBHOOK_DELIVERY,
            payload={"delivery_id": str(delivery.id)},
        )
    logger.info("Queued %s deliveries for %s", len(deliveries), event)
    return deliveries


async def deliver(
    db: Session,
    delivery_id: UUID,
    transport: httpx.AsyncBaseTransport | None = None,
) -> WebhookDelivery | None:
    """
    POST one delivery to its endpoint.

    Raises:
        httpx.HTTPError: the endpoint failed; the job queue retries
    """
    delivery = db.get(WebhookDelivery, delivery_id)
    if delivery is None:
        logger.warning("Webhook delivery %s not found", delivery_id)
        return None
    if delivery.status == WebhookDeliveryStatus.SUCCESS.value:
        return delivery
    endpoint = delivery.endpoint
    if endpoint is None or not endpoint.is_enabled:
        delivery.status = WebhookDeliveryStatus.FAILED.value
        delivery.error = "Endpoint disabled"
        db.commit()
        return delivery

    body = json.dumps(delivery.payload, separators=(",", ":"), default=str)
    timestamp = int(time.time())
    headers = {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: create_signature(body, endpoint.secret, timestamp),
        TIMESTAMP_HEADER: str(timestamp),
        EVENT_HEADER: delivery.event,
        DELIVERY_ID_HEADER: str(delivery.id),
    }

    delivery.attempts = (delivery.attempts or 0) + 1
    try:
        async with httpx.AsyncClient(
            timeout=float(endpoint.timeout_seconds), transport=transport
        ) as client:
            response = await client.post(endpoint.url, content=body, headers=headers)
        delivery.response_status = response.status_code
        response.raise_for_status()
    except httpx.HTTPError as exc:
        delivery.status = WebhookDeliveryStatus.FAILED.value
        delivery.error = f"{type(exc).__name__}: {exc}"[:MAX_STORED_ERROR_CHARS]
        db.commit()
        logger.warning(
            "Webhook delivery to %s failed (%s)", safe_url(endpoint.url), type(exc).__name__
        )
        raise

    delivery.status = WebhookDeliveryStatus.SUCCESS.value
    delivery.error = None
    delivery.delivered_at = utcnow()
    db.commit()
    logger.info("Webhook delivered to %s", safe_url(endpoint.url))
    return delivery

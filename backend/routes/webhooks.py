"""Webhook Routes - scheduling service (Calendly) booking events.

POST /webhook/calendly - invitee.created pauses the lead's nurture drip,
invitee.canceled resumes it. Validated by Calendly-Webhook-Signature when
CALENDLY_WEBHOOK_SECRET is set. Duplicate deliveries are no-ops.
"""
from datetime import datetime
from typing import Any, Dict, Optional
import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

import config
from models import BookingSource
from services.booking_service import (
    BOOKING_CANCELLED_EVENT,
    BOOKING_CREATED_EVENT,
    booking_service,
    kind_from_event_name,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADER = "Calendly-Webhook-Signature"


def calendly_signature_ok(body: bytes, header_value: Optional[str], secret: Optional[str] = None) -> bool:
    """Return True if the request is authorized. When a secret is configured the header must match.

    Header format: "t=<timestamp>,v1=<hex hmac-sha256 of '<timestamp>.<body>'>".
    """
    secret = config.CALENDLY_WEBHOOK_SECRET if secret is None else secret
    if not secret:
        return True
    if not header_value:
        return False

    parts = dict(
        item.split("=", 1) for item in header_value.split(",") if "=" in item
    )
    timestamp = parts.get("t", "").strip()
    signature = parts.get("v1", "").strip()
    if not timestamp or not signature:
        return False

    signed = f"{timestamp}.".encode() + body
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def parse_start_time(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable Calendly start_time: {value!r}")
        return None


def booking_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Pull the fields the booking controller needs out of an invitee payload."""
    scheduled_event = payload.get("scheduled_event") or {}
    name = (payload.get("name") or "").strip()
    event_name = payload.get("event_type_name") or scheduled_event.get("name") or ""
    return {
        "email": (payload.get("email") or "").strip().lower(),
        "first_name": name.split()[0] if name else None,
        "event_name": event_name,
        "scheduled_at": parse_start_time(scheduled_event.get("start_time")),
        "summary": {
            "uuid": payload.get("uri") or payload.get("uuid"),
            "name": name or None,
            "event_name": event_name or None,
            "start_time": scheduled_event.get("start_time"),
        },
    }


@router.post("/webhook/calendly")
async def calendly_webhook(request: Request):
    body = await request.body()
    if not calendly_signature_ok(body, request.headers.get(SIGNATURE_HEADER)):
        logger.warning("Calendly webhook rejected: invalid signature")
        return JSONResponse(status_code=401, content={"received": False, "error": "Invalid signature"})

    try:
        data = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content={"received": False, "error": "Invalid payload"})
    if not isinstance(data, dict):
        return JSONResponse(status_code=400, content={"received": False, "error": "Invalid payload"})

    event = data.get("event")
    fields = booking_fields(data.get("payload") or {})
    if not fields["email"]:
        logger.warning(f"Calendly webhook {event} without invitee email ignored")
        return {"received": True, "ignored": True}

    if event == BOOKING_CREATED_EVENT:
        result = await booking_service.booking_created(
            fields["email"],
            kind=kind_from_event_name(fields["event_name"]),
            scheduled_at=fields["scheduled_at"],
            source=BookingSource.WEBHOOK,
            payload=fields["summary"],
            first_name=fields["first_name"],
        )
        logger.info(f"Calendly booking created: {result['booking_id']} duplicate={result['duplicate']}")
        return {"received": True, "booking_id": result["booking_id"], "duplicate": result["duplicate"]}

    if event == BOOKING_CANCELLED_EVENT:
        result = await booking_service.booking_cancelled(fields["email"], scheduled_at=fields["scheduled_at"])
        logger.info(f"Calendly booking cancelled: {len(result['cancelled_bookings'])} bookings")
        return {"received": True, "resumed_enrollments": result["resumed_enrollments"]}

    logger.info(f"Calendly webhook event {event!r} ignored")
    return {"received": True, "ignored": True}

"""
Public intake endpoints.

One POST handler per submission kind. Each accepts application/json or
multipart/form-data; uploaded files are only forwarded to the internal alert
email and never persisted.

Endpoints:
- POST /estate-intake
- POST /business-formation-intake
- POST /brand-protection-intake
- POST /gaming-legal-intake
- POST /outside-counsel
- POST /legal-strategy-builder
- POST /legal-risk-assessment
- POST /newsletter-signup
- POST /resource-guide-download
- POST /business-guide-download
- POST /brand-guide-download
- POST /estate-guide-download
- POST /add-subscriber
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

import config
from models import ResourceVariant, SubmissionKind
from services.errors import ValidationError
from services.intake_service import intake_service
from services.mail_dispatcher import Attachment
from utils.rate_limiter import rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["intake"])

# path -> (submission kind, resource guide variant)
INTAKE_ENDPOINTS = {
    "/estate-intake": (SubmissionKind.ESTATE, None),
    "/business-formation-intake": (SubmissionKind.BUSINESS_FORMATION, None),
    "/brand-protection-intake": (SubmissionKind.BRAND_PROTECTION, None),
    "/gaming-legal-intake": (SubmissionKind.GAMING_LEGAL, None),
    "/outside-counsel": (SubmissionKind.OUTSIDE_COUNSEL, None),
    "/legal-strategy-builder": (SubmissionKind.LEGAL_STRATEGY, None),
    "/legal-risk-assessment": (SubmissionKind.LEGAL_RISK_ASSESSMENT, None),
    "/newsletter-signup": (SubmissionKind.NEWSLETTER, None),
    "/resource-guide-download": (SubmissionKind.RESOURCE_GUIDE, ResourceVariant.GENERAL),
    "/business-guide-download": (SubmissionKind.RESOURCE_GUIDE, ResourceVariant.BUSINESS),
    "/brand-guide-download": (SubmissionKind.RESOURCE_GUIDE, ResourceVariant.BRAND),
    "/estate-guide-download": (SubmissionKind.RESOURCE_GUIDE, ResourceVariant.ESTATE),
    "/add-subscriber": (SubmissionKind.SUBSCRIBER, None),
}


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def read_submission(request: Request) -> Tuple[Dict[str, Any], List[Attachment]]:
    """Parse a JSON or multipart body into (form fields, attachments)."""
    content_type = request.headers.get("content-type", "")

    if "multipart/form-data" in content_type or "application/x-www-form-urlencoded" in content_type:
        form = await request.form()
        fields: Dict[str, Any] = {}
        attachments: List[Attachment] = []
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if not value.filename:
                    continue
                if len(attachments) >= config.MAX_ATTACHMENTS:
                    raise ValidationError(f"at most {config.MAX_ATTACHMENTS} attachments are accepted")
                content = await value.read()
                if len(content) > config.MAX_ATTACHMENT_BYTES:
                    raise ValidationError(f"attachment {value.filename} is too large")
                attachments.append(Attachment(
                    filename=value.filename,
                    content=content,
                    content_type=value.content_type or "application/octet-stream",
                ))
                continue
            # Repeated keys (checkbox groups) collapse into a list
            if key in fields:
                existing = fields[key]
                fields[key] = (existing if isinstance(existing, list) else [existing]) + [value]
            else:
                fields[key] = value
        return fields, attachments

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("request body is not valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("request body must be a JSON object")
    return body, []


async def enforce_rate_limit(request: Request, path: str) -> Optional[JSONResponse]:
    allowed, error, retry_after = await rate_limiter.check_rate_limit(
        f"{client_ip(request)}:{path}",
        max_attempts=config.INTAKE_RATE_LIMIT_MAX,
        window_minutes=config.INTAKE_RATE_LIMIT_WINDOW_MINUTES,
    )
    if allowed:
        return None
    return JSONResponse(
        status_code=429,
        content={"ok": False, "error": error, "retry_after": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


def _make_handler(path: str, kind: SubmissionKind, variant: Optional[ResourceVariant]):
    async def handle_intake(request: Request):
        limited = await enforce_rate_limit(request, path)
        if limited is not None:
            return limited

        form, attachments = await read_submission(request)
        return await intake_service.submit(kind, form, variant=variant, attachments=attachments)

    handle_intake.__name__ = "intake_" + path.strip("/").replace("-", "_")
    return handle_intake


for _path, (_kind, _variant) in INTAKE_ENDPOINTS.items():
    router.add_api_route(
        _path,
        _make_handler(_path, _kind, _variant),
        methods=["POST"],
        name=_path.strip("/"),
    )

"""
Clio Grow Integration
Pushes each intake into the Clio Grow lead inbox.
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

import config

logger = logging.getLogger(__name__)

# Form keys never copied into the CRM message
OMITTED_FIELDS = {"attachments", "files"}


class ClioGrowIntegration:
    """Clio Grow inbox lead API."""

    def __init__(self, base_url: Optional[str] = None, inbox_token: Optional[str] = None):
        self.base_url = base_url or config.CLIO_GROW_BASE
        self.inbox_token = inbox_token if inbox_token is not None else config.CLIO_GROW_INBOX_TOKEN

    @property
    def configured(self) -> bool:
        return bool(self.inbox_token)

    def build_payload(self, lead: Dict[str, Any], scheduling_link: str) -> Dict[str, Any]:
        kind_slug = lead["submission_kind"].replace("_", "-")
        details = {k: v for k, v in (lead.get("form_data") or {}).items() if k not in OMITTED_FIELDS}
        message = (
            f"{kind_slug.replace('-', ' ').upper()} Lead (Score: {lead['score']}/100, priority {lead['priority']})\n\n"
            f"Calendly Link: {scheduling_link}\n\n"
            f"Details:\n{json.dumps(details, indent=2, default=str)}"
        )
        return {
            "inbox_lead": {
                "from_first": lead.get("first_name") or "",
                "from_last": lead.get("last_name") or "Client",
                "from_email": lead["email"],
                "from_phone": lead.get("phone") or "",
                "from_message": message,
                "referring_url": f"{config.BASE_URL}/{kind_slug}",
                "from_source": f"Website {kind_slug}",
            },
            "inbox_lead_token": self.inbox_token,
        }

    async def create_lead(self, lead: Dict[str, Any], scheduling_link: str) -> tuple[bool, Optional[str]]:
        """
        Create an inbox lead.

        Returns: (success: bool, error_message: Optional[str])
        """
        if not self.configured:
            return False, "Clio Grow inbox token not configured"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.base_url}/inbox_leads",
                    json=self.build_payload(lead, scheduling_link),
                    timeout=config.EXTERNAL_CALL_TIMEOUT_SECONDS,
                )
        except httpx.TimeoutException:
            error_msg = "Clio Grow timeout"
            logger.error(error_msg)
            return False, error_msg
        except httpx.HTTPError as e:
            error_msg = f"Clio Grow error: {str(e)}"
            logger.error(error_msg)
            return False, error_msg

        if response.status_code in (200, 201):
            logger.info(f"Clio Grow: lead {lead['id']} pushed")
            return True, None
        error_msg = f"Clio Grow error {response.status_code}"
        logger.error(error_msg)
        return False, error_msg


clio_integration = ClioGrowIntegration()

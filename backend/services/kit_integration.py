"""
Kit.com Integration
One-way sync: intake leads → Kit subscribers
Tags each subscriber with the intelligent tag set (see kit_tagging.py)
"""
import logging
from typing import Dict, List, Optional

import httpx

import config

logger = logging.getLogger(__name__)


class KitIntegration:
    """Kit.com API v4 integration for subscribers and tags."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else config.KIT_API_KEY
        self.base_url = base_url or config.KIT_API_BASE
        self._tag_ids: Dict[str, int] = {}

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def headers(self) -> dict:
        return {"X-Kit-Api-Key": self.api_key, "Content-Type": "application/json"}

    async def add_subscriber(
        self,
        email: str,
        first_name: Optional[str] = None,
        tags: Optional[List[str]] = None,
        fields: Optional[Dict[str, str]] = None,
    ) -> tuple[bool, Optional[str]]:
        """
        Create (or update) a subscriber and apply tags.

        Returns: (success: bool, error_message: Optional[str])
        """
        if not self.configured:
            return False, "Kit API key not configured"

        try:
            async with httpx.AsyncClient(timeout=config.EXTERNAL_CALL_TIMEOUT_SECONDS) as client:
                payload = {"email_address": email, "state": "active"}
                if first_name:
                    payload["first_name"] = first_name
                if fields:
                    payload["fields"] = fields

                response = await client.post(f"{self.base_url}/subscribers", json=payload, headers=self.headers)

                if response.status_code in [200, 201]:
                    logger.info("Kit: Subscriber upserted")
                elif response.status_code == 409:
                    # Already exists
                    logger.info("Kit: Subscriber already exists")
                else:
                    error_msg = f"Kit API error {response.status_code}: {response.text[:300]}"
                    logger.error(error_msg)
                    return False, error_msg

                if config.KIT_FORM_ID:
                    await client.post(
                        f"{self.base_url}/forms/{config.KIT_FORM_ID}/subscribers",
                        json={"email_address": email},
                        headers=self.headers,
                    )

                failed = []
                for tag in tags or []:
                    if not await self._tag_subscriber(client, tag, email):
                        failed.append(tag)
                if failed:
                    error_msg = f"Kit tagging failed for {len(failed)} tags: {', '.join(failed[:5])}"
                    logger.warning(error_msg)
                    return False, error_msg
                return True, None

        except httpx.TimeoutException:
            error_msg = "Kit API timeout"
            logger.error(error_msg)
            return False, error_msg
        except httpx.HTTPError as e:
            error_msg = f"Kit API error: {str(e)}"
            logger.error(error_msg)
            return False, error_msg

    async def _tag_id(self, client: httpx.AsyncClient, name: str) -> Optional[int]:
        if name in self._tag_ids:
            return self._tag_ids[name]
        response = await client.post(f"{self.base_url}/tags", json={"name": name}, headers=self.headers)
        if response.status_code not in (200, 201):
            logger.warning(f"Kit: could not resolve tag {name} ({response.status_code})")
            return None
        tag_id = response.json().get("tag", {}).get("id")
        if tag_id is not None:
            self._tag_ids[name] = tag_id
        return tag_id

    async def _tag_subscriber(self, client: httpx.AsyncClient, name: str, email: str) -> bool:
        tag_id = await self._tag_id(client, name)
        if tag_id is None:
            return False
        response = await client.post(
            f"{self.base_url}/tags/{tag_id}/subscribers",
            json={"email_address": email},
            headers=self.headers,
        )
        return response.status_code in (200, 201)


# Singleton instance
kit_integration = KitIntegration()

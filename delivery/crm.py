from typing import Any, Dict, Optional

import httpx
from loguru import logger

from delivery.base import ChannelAdapter, DeliveryContext
from intake.errors import ChannelTimeout, MissingConfiguration, NetworkError, UpstreamError
from intake.models import NormalizedLead

REFERRAL_SOURCE = "Web Chat"
CRM_UTM_KEYS = ("utm_content", "utm_medium", "utm_source", "utm_term")


def build_crm_payload(lead: NormalizedLead, context: DeliveryContext) -> Dict[str, Any]:
    """
    Map a normalized lead onto the CRM web-intake field names.

    Args:
        lead: Normalized lead
        context: Request context (page URL, test flag)

    Returns:
        JSON body for the CRM webhook; unset fields are left out
    """
    attribution = lead.attribution
    page_url = context.page_url or attribution.page_url
    payload: Dict[str, Any] = {
        "full_name": lead.contact_name,
        "phone_number": lead.phone,
        "email": lead.email or None,
        "size": lead.home_size,
        "date": lead.move_date or None,
        "origin_zip_code": lead.origin_zip or None,
        "destination_zip_code": lead.destination_zip or None,
        "additional_notes": lead.notes,
        "referral_source": REFERRAL_SOURCE,
        "referral_details": f"URL: {page_url}",
        "ad_click_id": attribution.ad_click_id,
        "ad_kind": attribution.ad_kind,
        "is_test": bool(context.is_test or lead.is_test),
    }
    for key in CRM_UTM_KEYS:
        payload[key] = attribution.utm_params.get(key)

    return {key: value for key, value in payload.items() if value is not None}


class CrmWebhookAdapter(ChannelAdapter):
    """Moving-operations CRM web intake (one JSON POST per lead)."""

    name = "crm"

    def __init__(self, client: httpx.AsyncClient, url: Optional[str]):
        self.client = client
        self.url = url

        if not self.url:
            logger.warning("No CRM webhook URL provided, CRM channel disabled")

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def send(self, lead: NormalizedLead, context: DeliveryContext) -> None:
        if not self.url:
            raise MissingConfiguration("CRM webhook URL is not set")

        payload = build_crm_payload(lead, context)
        try:
            response = await self.client.post(self.url, json=payload)
        except httpx.TimeoutException as e:
            raise ChannelTimeout(f"CRM webhook timed out: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"CRM webhook unreachable: {e}") from e

        if not response.is_success:
            raise UpstreamError(response.status_code, response.text)

        logger.info(f"CRM accepted lead {lead.log_label}: HTTP {response.status_code}")

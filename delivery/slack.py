import asyncio
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger
from slack_sdk.webhook.async_client import AsyncWebhookClient

from delivery.base import ChannelAdapter, DeliveryContext
from intake.errors import ChannelTimeout, MissingConfiguration, NetworkError, UpstreamError
from intake.models import NormalizedLead


def build_lead_message(lead: NormalizedLead, context: DeliveryContext) -> Dict[str, Any]:
    """Build Slack message for a new lead."""
    test = context.is_test or lead.is_test
    prefix = "[TEST] " if test else ""
    access = lead.access_notes

    text = f"{prefix}:truck: New move lead: {lead.contact_name} {lead.phone_display}"

    blocks = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"{prefix}New Move Lead",
            },
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Name:*\n{lead.contact_name}"},
                {"type": "mrkdwn", "text": f"*Phone:*\n{lead.phone_display}"},
                {"type": "mrkdwn", "text": f"*Email:*\n{lead.email or 'n/a'}"},
                {"type": "mrkdwn", "text": f"*Move date:*\n{lead.move_date or 'n/a'}"},
            ],
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Route:*\n{lead.origin_zip or '?'} → {lead.destination_zip or '?'}"},
                {"type": "mrkdwn", "text": f"*Size:*\n{lead.home_size or 'n/a'}"},
                {"type": "mrkdwn", "text": f"*Packing:*\n{lead.packing_needed or 'n/a'}"},
                {
                    "type": "mrkdwn",
                    "text": f"*Elevator:*\n{'yes' if access.elevator_origin else 'no'} / {'yes' if access.elevator_destination else 'no'}",
                },
            ],
        },
    ]

    if lead.customer_notes or lead.special_items:
        blocks.append({
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*Special items:* {lead.special_items or 'n/a'}\n*Notes:* {lead.customer_notes or 'n/a'}",
            },
        })

    page_url = context.page_url or lead.attribution.page_url
    if page_url:
        blocks.append({
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"From <{page_url}|{page_url}>"}],
        })

    return {"text": text, "blocks": blocks}


class SlackWebhookAdapter(ChannelAdapter):
    """Team notification through a Slack incoming webhook."""

    name = "chat"

    def __init__(self, webhook_url: Optional[str], client: Optional[AsyncWebhookClient] = None):
        self.webhook_url = webhook_url
        self.client = client
        if self.client is None and webhook_url:
            self.client = AsyncWebhookClient(url=webhook_url)

        if not self.webhook_url:
            logger.warning("No Slack webhook URL provided, chat channel disabled")

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def send(self, lead: NormalizedLead, context: DeliveryContext) -> None:
        if self.client is None:
            raise MissingConfiguration("Slack webhook URL is not set")

        message = build_lead_message(lead, context)
        try:
            response = await self.client.send(text=message["text"], blocks=message["blocks"])
        except asyncio.TimeoutError as e:
            raise ChannelTimeout(f"Slack webhook timed out: {e}") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Slack webhook unreachable: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(response.status_code, response.body)

        logger.info(f"Slack notification sent for {lead.log_label}")

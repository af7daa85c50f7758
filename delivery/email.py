from html import escape
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from delivery.base import ChannelAdapter, DeliveryContext
from intake.errors import ChannelTimeout, MissingConfiguration, NetworkError, UpstreamError
from intake.models import NormalizedLead


def build_subject(lead: NormalizedLead, context: DeliveryContext) -> str:
    subject = f"New move lead: {lead.contact_name}"
    if lead.move_date:
        subject += f" ({lead.move_date})"
    if context.is_test or lead.is_test:
        subject = "[TEST] " + subject
    return subject


def render_text(lead: NormalizedLead) -> str:
    lines = ["A new lead came in through the website chat:", ""]
    lines += [f"+ {line}" for line in lead.summary_lines()]
    return "\n".join(lines)


def render_html(lead: NormalizedLead) -> str:
    rows = []
    for line in lead.summary_lines():
        label, _, value = line.partition(": ")
        rows.append(f"<tr><th align=\"left\">{escape(label)}</th><td>{escape(value)}</td></tr>")
    return (
        "<p>A new lead came in through the website chat:</p>"
        f"<table cellpadding=\"4\">{''.join(rows)}</table>"
    )


class EmailAdapter(ChannelAdapter):
    """Lead summary email sent through the Resend HTTP API."""

    name = "email"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str],
        sender: Optional[str],
        recipients: List[str],
        api_url: str = "https://api.resend.com/emails",
    ):
        self.client = client
        self.api_key = api_key
        self.sender = sender
        self.recipients = [r for r in recipients if r]
        self.api_url = api_url

        if not self.configured:
            logger.warning("Email API key, sender or recipients missing, email channel disabled")

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender and self.recipients)

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_message(self, lead: NormalizedLead, context: DeliveryContext) -> Dict[str, Any]:
        message: Dict[str, Any] = {
            "from": self.sender,
            "to": self.recipients,
            "subject": build_subject(lead, context),
            "text": render_text(lead),
            "html": render_html(lead),
        }
        if lead.email:
            message["reply_to"] = lead.email
        return message

    async def send(self, lead: NormalizedLead, context: DeliveryContext) -> None:
        if not self.configured:
            raise MissingConfiguration("Email API key, sender or recipients not set")

        try:
            response = await self.client.post(
                self.api_url,
                headers=self._get_headers(),
                json=self.build_message(lead, context),
            )
        except httpx.TimeoutException as e:
            raise ChannelTimeout(f"Email provider timed out: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Email provider unreachable: {e}") from e

        if not response.is_success:
            raise UpstreamError(response.status_code, response.text)

        logger.info(f"Lead email for {lead.log_label} sent to {', '.join(self.recipients)}")

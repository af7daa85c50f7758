"""Concurrent fan-out of one lead to every configured delivery channel."""

import asyncio
import time
from typing import FrozenSet, Iterable, List, Sequence

from loguru import logger

from delivery.base import ChannelAdapter, ChannelResult, DeliveryContext, DeliveryReport
from delivery.crm import CrmWebhookAdapter
from delivery.email import EmailAdapter
from delivery.slack import SlackWebhookAdapter
from intake.errors import ChannelError, ChannelTimeout, MissingConfiguration
from intake.models import NormalizedLead

DEFAULT_TIMEOUT = 12.0

NO_CHANNELS_CONFIGURED = "no_channels_configured"
REQUIRED_CHANNEL_FAILED = "required_channel_failed"


class DeliveryOrchestrator:
    """
    Sends a lead to every configured channel at once.

    Each channel runs under its own deadline; a slow or failing channel is
    recorded in its ChannelResult and never holds up or aborts the others.
    Channels named in ``required`` decide the overall outcome; all other
    channels are advisory.
    """

    def __init__(
        self,
        adapters: Sequence[ChannelAdapter],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        required: Iterable[str] = (),
    ):
        self.adapters = list(adapters)
        self.timeout = timeout
        self.required: FrozenSet[str] = frozenset(required)

        unknown = self.required - {adapter.name for adapter in self.adapters}
        if unknown:
            logger.warning(f"Required channels with no adapter: {sorted(unknown)}")

    def channels_configured(self) -> dict:
        return {adapter.name: adapter.configured for adapter in self.adapters}

    async def deliver(self, lead: NormalizedLead, context: DeliveryContext) -> DeliveryReport:
        configured = [adapter for adapter in self.adapters if adapter.configured]
        skipped = [adapter for adapter in self.adapters if not adapter.configured]

        if not configured:
            logger.error("No delivery channels configured, lead not delivered")
            return DeliveryReport(
                results=[self._skipped(adapter) for adapter in self.adapters],
                ok=False,
                error=NO_CHANNELS_CONFIGURED,
            )

        logger.info(f"Delivering lead {lead.log_label} to {[a.name for a in configured]}")
        settled = await asyncio.gather(*(self._run(adapter, lead, context) for adapter in configured))

        by_name = {result.channel: result for result in settled}
        by_name.update({adapter.name: self._skipped(adapter) for adapter in skipped})
        results: List[ChannelResult] = [by_name[adapter.name] for adapter in self.adapters]

        failed_required = [
            r.channel for r in results if r.channel in self.required and not r.success
        ]
        report = DeliveryReport(
            results=results,
            ok=not failed_required,
            error=REQUIRED_CHANNEL_FAILED if failed_required else None,
        )

        delivered = [r.channel for r in results if r.success]
        logger.info(
            f"Delivery finished for {lead.log_label}: ok={report.ok} "
            f"attempted={[r.channel for r in report.attempted]} delivered={delivered}"
        )
        return report

    def _skipped(self, adapter: ChannelAdapter) -> ChannelResult:
        if adapter.name in self.required:
            logger.error(f"Required channel {adapter.name} is not configured")
            return ChannelResult(
                channel=adapter.name,
                attempted=False,
                error=MissingConfiguration.kind,
                detail=f"{adapter.name} is required but not configured",
            )
        return ChannelResult(channel=adapter.name, attempted=False)

    async def _run(self, adapter: ChannelAdapter, lead: NormalizedLead, context: DeliveryContext) -> ChannelResult:
        start = time.perf_counter()
        result = ChannelResult(channel=adapter.name, attempted=True)

        try:
            await asyncio.wait_for(adapter.send(lead, context), timeout=self.timeout)
            result.success = True
        except asyncio.TimeoutError:
            result.error = ChannelTimeout.kind
            result.detail = f"No response within {self.timeout:g}s"
        except ChannelError as e:
            result.error = e.kind
            result.detail = str(e)
        except Exception as e:
            logger.exception(f"Channel {adapter.name} crashed")
            result.error = "UnexpectedError"
            result.detail = str(e)

        result.elapsed_ms = (time.perf_counter() - start) * 1000
        if result.success:
            logger.info(f"Channel {adapter.name} delivered in {result.elapsed_ms:.0f}ms")
        else:
            logger.error(f"Channel {adapter.name} failed after {result.elapsed_ms:.0f}ms: {result.error} {result.detail}")
        return result


def build_adapters(settings, http_client) -> List[ChannelAdapter]:
    """Instantiate every known channel from settings; unconfigured ones are kept but skipped."""
    return [
        CrmWebhookAdapter(http_client, settings.crm_webhook_url),
        EmailAdapter(
            http_client,
            api_key=settings.resend_api_key,
            sender=settings.lead_email_from,
            recipients=settings.email_recipients(),
            api_url=settings.email_api_url,
        ),
        SlackWebhookAdapter(settings.slack_webhook_url),
    ]

import asyncio
import time

from delivery.orchestrator import (
    NO_CHANNELS_CONFIGURED,
    REQUIRED_CHANNEL_FAILED,
    DeliveryOrchestrator,
    build_adapters,
)
from intake.config import Settings
from intake.errors import UpstreamError


class TestDeliveryOrchestrator:
    """Test concurrent fan-out and report aggregation."""

    def test_all_channels_succeed(self, make_adapter, lead, context):
        crm, email = make_adapter("crm"), make_adapter("email")
        report = asyncio.run(DeliveryOrchestrator([crm, email]).deliver(lead, context))

        assert report.ok is True
        assert report.error is None
        assert [r.channel for r in report.results] == ["crm", "email"]
        assert all(r.attempted and r.success for r in report.results)
        assert len(crm.calls) == 1 and len(email.calls) == 1

    def test_timeout_is_isolated(self, make_adapter, lead, context):
        """One channel stalls past the deadline, the other still succeeds."""
        slow = make_adapter("crm", delay=5)
        fast = make_adapter("chat")
        orchestrator = DeliveryOrchestrator([slow, fast], timeout=0.05)

        report = asyncio.run(orchestrator.deliver(lead, context))

        assert report.ok is True
        slow_result = report.result_for("crm")
        assert slow_result.success is False
        assert slow_result.error == "Timeout"
        assert report.result_for("chat").success is True
        assert slow.cancelled is True

    def test_channels_run_concurrently(self, make_adapter, lead, context):
        adapters = [make_adapter(name, delay=0.2) for name in ("crm", "email", "chat")]
        orchestrator = DeliveryOrchestrator(adapters, timeout=2)

        started = time.perf_counter()
        report = asyncio.run(orchestrator.deliver(lead, context))
        elapsed = time.perf_counter() - started

        assert report.ok is True
        assert elapsed < 0.5

    def test_failure_does_not_short_circuit(self, make_adapter, lead, context):
        failing = make_adapter("crm", error=UpstreamError(500, "boom"))
        slow_ok = make_adapter("email", delay=0.05)

        report = asyncio.run(DeliveryOrchestrator([failing, slow_ok]).deliver(lead, context))

        assert report.ok is True
        assert report.result_for("crm").error == "UpstreamError"
        assert "boom" in report.result_for("crm").detail
        assert report.result_for("email").success is True

    def test_unexpected_exception_is_contained(self, make_adapter, lead, context):
        broken = make_adapter("crm", error=RuntimeError("bug"))
        healthy = make_adapter("chat")

        report = asyncio.run(DeliveryOrchestrator([broken, healthy]).deliver(lead, context))

        assert report.result_for("crm").error == "UnexpectedError"
        assert report.result_for("chat").success is True

    def test_no_channels_configured(self, make_adapter, lead, context):
        adapters = [make_adapter("crm", configured=False), make_adapter("email", configured=False)]

        report = asyncio.run(DeliveryOrchestrator(adapters).deliver(lead, context))

        assert report.ok is False
        assert report.error == NO_CHANNELS_CONFIGURED
        assert all(not r.attempted for r in report.results)
        assert all(not a.calls for a in adapters)

    def test_no_adapters_at_all(self, lead, context):
        report = asyncio.run(DeliveryOrchestrator([]).deliver(lead, context))
        assert report.ok is False
        assert report.error == NO_CHANNELS_CONFIGURED

    def test_unconfigured_channel_is_skipped(self, make_adapter, lead, context):
        skipped = make_adapter("email", configured=False)
        report = asyncio.run(DeliveryOrchestrator([make_adapter("crm"), skipped]).deliver(lead, context))

        assert report.ok is True
        result = report.result_for("email")
        assert result.attempted is False
        assert result.error is None
        assert not skipped.calls
        assert [r.channel for r in report.attempted] == ["crm"]

    def test_required_channel_failure(self, make_adapter, lead, context):
        crm = make_adapter("crm", error=UpstreamError(502, "down"))
        chat = make_adapter("chat")
        orchestrator = DeliveryOrchestrator([crm, chat], required={"crm"})

        report = asyncio.run(orchestrator.deliver(lead, context))

        assert report.ok is False
        assert report.error == REQUIRED_CHANNEL_FAILED
        assert report.result_for("chat").success is True

    def test_required_channel_missing_configuration(self, make_adapter, lead, context):
        crm = make_adapter("crm", configured=False)
        chat = make_adapter("chat")
        orchestrator = DeliveryOrchestrator([crm, chat], required={"crm"})

        report = asyncio.run(orchestrator.deliver(lead, context))

        assert report.ok is False
        assert report.result_for("crm").error == "MissingConfiguration"
        assert report.result_for("crm").attempted is False

    def test_response_shape(self, make_adapter, lead, context):
        crm = make_adapter("crm")
        chat = make_adapter("chat", error=UpstreamError(500, "x"))

        body = asyncio.run(DeliveryOrchestrator([crm, chat]).deliver(lead, context)).to_response()

        assert body["ok"] is True
        assert body["channels"] == {"crm": True, "chat": False}
        assert body["errors"] == {"crm": None, "chat": "UpstreamError"}
        assert "error" not in body


class TestBuildAdapters:
    """Test channel construction from settings."""

    def test_only_configured_channels_are_enabled(self):
        settings = Settings(
            _env_file=None,
            crm_webhook_url="https://crm.test/intake",
            resend_api_key=None,
            lead_email_to="",
            slack_webhook_url=None,
        )
        adapters = build_adapters(settings, http_client=None)

        assert [a.name for a in adapters] == ["crm", "email", "chat"]
        assert DeliveryOrchestrator(adapters).channels_configured() == {
            "crm": True,
            "email": False,
            "chat": False,
        }

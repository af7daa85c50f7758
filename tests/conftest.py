import asyncio
import random

import pytest

from delivery.base import ChannelAdapter, DeliveryContext
from intake.chat import ChatAgent
from intake.config import Settings
from intake.normalize import normalize


class FakeAdapter(ChannelAdapter):
    """In-memory channel that records calls and can be told to stall or fail."""

    def __init__(self, name, configured=True, delay=0.0, error=None):
        self.name = name
        self._configured = configured
        self.delay = delay
        self.error = error
        self.calls = []
        self.cancelled = False

    @property
    def configured(self):
        return self._configured

    async def send(self, lead, context):
        self.calls.append((lead, context))
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error


@pytest.fixture
def make_adapter():
    return FakeAdapter


@pytest.fixture
def raw_lead():
    return {
        "full_name": "Jane Doe",
        "phone": "(404) 555-1234",
        "email": "jane@example.com",
        "move_date": "2025-09-15",
        "origin_zip": "30542",
        "destination_zip": "30519",
        "service_type": "residential local",
        "home_size": "2BR",
        "stairs_origin": "1 flight",
        "stairs_destination": "none",
        "elevator_origin": False,
        "elevator_destination": True,
        "packing_needed": "Partial",
        "special_items": "piano",
        "promo_code": "SPRING10",
        "referral_code": "",
        "notes": "Gate code 1234. financing_interest: maybe",
    }


@pytest.fixture
def lead(raw_lead):
    return normalize(
        raw_lead,
        utm={"utm_source": "google", "utm_medium": "cpc", "gclid": "abc123"},
        page_url="https://www.example.com/quote",
    )


@pytest.fixture
def context():
    return DeliveryContext(page_url="https://www.example.com/quote", is_test=False)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        allowed_hosts="example.com",
        log_file=None,
        channel_timeout=0.5,
    )


@pytest.fixture
def chat_agent():
    return ChatAgent(bypass=True, rng=random.Random(7))

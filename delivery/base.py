from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from intake.models import NormalizedLead


@dataclass(frozen=True)
class DeliveryContext:
    """Per-request context handed to every channel alongside the lead."""

    page_url: str = ""
    is_test: bool = False


@dataclass
class ChannelResult:
    channel: str
    attempted: bool
    success: bool = False
    error: Optional[str] = None
    detail: Optional[str] = None
    elapsed_ms: float = 0.0


@dataclass
class DeliveryReport:
    results: List[ChannelResult] = field(default_factory=list)
    ok: bool = False
    error: Optional[str] = None

    def result_for(self, channel: str) -> Optional[ChannelResult]:
        return next((r for r in self.results if r.channel == channel), None)

    @property
    def attempted(self) -> List[ChannelResult]:
        return [r for r in self.results if r.attempted]

    def to_response(self) -> Dict[str, Any]:
        """Response body for POST /intake."""
        body: Dict[str, Any] = {
            "ok": self.ok,
            "channels": {r.channel: r.success for r in self.results},
            "errors": {r.channel: r.error for r in self.results},
            "details": {r.channel: r.detail for r in self.results},
            "elapsed_ms": {r.channel: round(r.elapsed_ms, 1) for r in self.results},
        }
        if self.error:
            body["error"] = self.error
        return body


class ChannelAdapter(ABC):
    """One downstream destination for normalized leads."""

    name: str = "channel"

    @property
    @abstractmethod
    def configured(self) -> bool:
        """True when every setting the channel needs is present."""

    @abstractmethod
    async def send(self, lead: NormalizedLead, context: DeliveryContext) -> None:
        """
        Deliver the lead.

        Raises:
            ChannelError: MissingConfiguration, UpstreamError, ChannelTimeout
                or NetworkError
        """

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple
from urllib.parse import urlsplit

from loguru import logger

WILDCARD = "*"

BASE_CORS_HEADERS = {
    "Vary": "Origin",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}


def parse_allowlist(raw: Optional[str]) -> Tuple[str, ...]:
    """
    Parse a comma-separated ALLOWED_HOSTS value.

    "*" (or "*,*") opens the endpoint to every origin; an empty value only
    admits requests that carry no Origin header at all.
    """
    entries = [part.strip().lower() for part in (raw or "").split(",")]
    entries = [entry for entry in entries if entry]
    if WILDCARD in entries:
        return (WILDCARD,)
    # Keep order, drop duplicates
    return tuple(dict.fromkeys(entries))


def origin_hostname(origin: str) -> Optional[str]:
    """Return the lowercase hostname of an Origin header, or None if unparsable."""
    try:
        return urlsplit(origin.strip()).hostname
    except ValueError:
        return None


def host_matches(host: str, allowlist: Iterable[str]) -> bool:
    return any(host == entry or host.endswith("." + entry) for entry in allowlist)


@dataclass(frozen=True)
class OriginDecision:
    allowed: bool
    headers: Dict[str, str] = field(default_factory=dict)


class OriginGuard:
    """Origin allowlist check plus the CORS headers that go with it."""

    def __init__(self, allowlist: Iterable[str]):
        self.allowlist = tuple(allowlist)

    @property
    def wildcard(self) -> bool:
        return WILDCARD in self.allowlist

    def is_allowed(self, origin: Optional[str]) -> bool:
        # No Origin header: same-origin or server-to-server call
        if not origin:
            return True
        if self.wildcard:
            return True
        host = origin_hostname(origin)
        if not host:
            return False
        return host_matches(host, self.allowlist)

    def headers_for(self, origin: Optional[str]) -> Dict[str, str]:
        """CORS headers for a response to ``origin``."""
        headers = dict(BASE_CORS_HEADERS)
        if self.wildcard:
            headers["Access-Control-Allow-Origin"] = WILDCARD
        elif origin and self.is_allowed(origin):
            headers["Access-Control-Allow-Origin"] = origin
        return headers

    def decide(self, origin: Optional[str]) -> OriginDecision:
        allowed = self.is_allowed(origin)
        if not allowed:
            logger.warning(f"Origin denied: {origin!r}")
        return OriginDecision(allowed=allowed, headers=self.headers_for(origin))


def decide(origin: Optional[str], allowlist: Iterable[str]) -> OriginDecision:
    """Decide an origin against an allowlist without keeping a guard around."""
    return OriginGuard(allowlist).decide(origin)

from typing import Optional


class IntakeError(Exception):
    """Request-fatal error. Raised before any channel is attempted."""

    code = "intake_error"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)


class ForbiddenOrigin(IntakeError):
    code = "forbidden_origin"
    status_code = 403


class InvalidPayload(IntakeError):
    code = "missing_lead"
    status_code = 400


class InvalidPhone(IntakeError):
    code = "invalid_phone"
    status_code = 400


class ChannelError(Exception):
    """Failure of a single delivery channel. Never aborts sibling channels."""

    kind = "ChannelError"


class MissingConfiguration(ChannelError):
    kind = "MissingConfiguration"


class ChannelTimeout(ChannelError):
    kind = "Timeout"


class NetworkError(ChannelError):
    kind = "NetworkError"


class UpstreamError(ChannelError):
    kind = "UpstreamError"

    # Upstream error pages can be large HTML documents
    MAX_BODY = 500

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = (body or "")[: self.MAX_BODY]
        super().__init__(f"HTTP {status_code}: {self.body}")

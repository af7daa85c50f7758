from typing import TypedDict, Optional, Dict, Any

from delivery.base import DeliveryContext, DeliveryReport
from intake.errors import IntakeError
from intake.models import NormalizedLead

class IntakeState(TypedDict, total=False):
    """State shape for the lead intake workflow."""
    body: Dict[str, Any]             # parsed POST /intake body
    lead: NormalizedLead             # set only when normalization succeeded
    context: DeliveryContext         # page URL + test flag for the channels
    report: DeliveryReport           # per-channel outcomes
    error: Optional[IntakeError]     # request-fatal error, ends the workflow

from pydantic import ValidationError
from loguru import logger

from delivery.base import DeliveryContext
from graph.state import IntakeState
from intake.errors import IntakeError, InvalidPayload
from intake.models import IntakeRequest
from intake.normalize import normalize

def capture(state: IntakeState) -> IntakeState:
    """Validate the request body and normalize the lead it carries."""
    body = state.get("body") or {}

    try:
        request = IntakeRequest.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Rejected intake body: {e.error_count()} validation errors")
        state["error"] = InvalidPayload(str(e))
        return state

    if request.lead is None:
        logger.warning("Rejected intake body: no lead object")
        state["error"] = InvalidPayload("Missing lead")
        return state

    try:
        lead = normalize(
            request.lead,
            utm=request.utm,
            page_url=request.page_url,
            is_test=request.is_test,
        )
    except IntakeError as e:
        logger.warning(f"Lead normalization failed ({e.code}): {e}")
        state["error"] = e
        return state

    state["lead"] = lead
    state["context"] = DeliveryContext(page_url=request.page_url or "", is_test=request.is_test)
    state["error"] = None

    logger.info(f"Capture completed for {lead.log_label}")
    return state

from loguru import logger

from delivery.orchestrator import DeliveryOrchestrator
from graph.state import IntakeState

def make_deliver(orchestrator: DeliveryOrchestrator):
    """Bind the delivery node to the orchestrator built at startup."""

    async def deliver(state: IntakeState) -> IntakeState:
        lead = state["lead"]
        logger.info(f"Starting delivery for lead: {lead.log_label}")
        state["report"] = await orchestrator.deliver(lead, state["context"])
        return state

    return deliver

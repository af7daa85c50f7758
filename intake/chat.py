import json
import random
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from openai import AsyncOpenAI

MAX_HISTORY = 30
ROLES = ("user", "assistant")

CLOSING_LINES = (
    "We're fully licensed and insured.",
    "Financing through Affirm is available if that helps (6 or 12 months, subject to approval).",
    "A coordinator will follow up within 24 hours to confirm everything.",
)

FORCE_JSON_INSTRUCTION = (
    "If you have all required fields, output ONLY the LeadCapture JSON now. No extra text."
)

# Returned by bypass mode so the widget's submit path can be exercised end to end
DEMO_LEAD = {
    "full_name": "Web Visitor",
    "phone": "4045550100",
    "email": "visitor@example.com",
    "move_date": "2025-09-15",
    "origin_zip": "30542",
    "destination_zip": "30519",
    "service_type": "residential local",
    "home_size": "2BR",
    "stairs_origin": "none",
    "stairs_destination": "none",
    "elevator_origin": False,
    "elevator_destination": False,
    "packing_needed": "partial",
    "special_items": "",
    "promo_code": "",
    "referral_code": "",
    "notes": "financing_interest: maybe",
}

_PRICING_RE = re.compile(r"price|pricing|quote|cost|estimate", re.IGNORECASE)


def build_system_prompt(company_name: str) -> str:
    return f"""You are the website chat assistant for {company_name}.
Be friendly and brief. Collect the details a move coordinator needs to follow up
within 24 hours with a custom quote. Never quote exact prices.

When the visitor is ready and you have every field, reply with ONLY valid JSON:
{{"full_name": str, "phone": str, "email": str, "move_date": "YYYY-MM-DD",
 "origin_zip": str, "destination_zip": str, "service_type": str, "home_size": str,
 "stairs_origin": str, "stairs_destination": str, "elevator_origin": bool,
 "elevator_destination": bool, "packing_needed": "none|partial|full",
 "special_items": str, "promo_code": str, "referral_code": str,
 "notes": str (include "financing_interest: yes/no/maybe")}}

Availability: 7+ days out, say we have availability. 4-6 days out, say we have
availability and will confirm the time. Under 4 days, say someone will call as
soon as possible to confirm."""


FEW_SHOTS = [
    {"role": "user", "content": "Can you give me pricing right here?"},
    {
        "role": "assistant",
        "content": "I can't quote exact pricing in chat, but I'll collect your details so a coordinator "
        "can follow up within 24 hours with a personalized estimate. What's your move date, and "
        "which ZIP codes are you moving from and to?",
    },
]


@dataclass
class ChatReply:
    reply: str
    error: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"reply": self.reply}
        if self.error:
            body["error"] = self.error
        return body


def clean_history(history: Any) -> List[Dict[str, str]]:
    """Keep only well-formed user/assistant turns, most recent last."""
    if not isinstance(history, list):
        return []
    cleaned = [
        {"role": turn["role"], "content": turn["content"]}
        for turn in history
        if isinstance(turn, dict) and turn.get("role") in ROLES and isinstance(turn.get("content"), str)
    ]
    return cleaned[-MAX_HISTORY:]


class ChatAgent:
    """Conversational front-end that gathers move details and emits lead JSON."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.4,
        company_name: str = "our moving team",
        bypass: bool = False,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.company_name = company_name
        self.rng = rng or random.Random()
        self.bypass = bypass or client is None

        if self.bypass:
            logger.warning("Chat running in bypass mode, replies are canned")

    def closing_line(self) -> str:
        return self.rng.choice(CLOSING_LINES)

    def canned_reply(self, history: Sequence[Dict[str, str]]) -> str:
        last = history[-1]["content"] if history else ""
        if _PRICING_RE.search(last):
            reply = (
                "I can't give exact pricing in chat, but I'll collect your info so a coordinator "
                "follows up within 24 hours with your personalized quote. What's your move date, "
                "from ZIP, and to ZIP?"
            )
        else:
            reply = (
                f"Hi! I'm the {self.company_name} assistant. I can check availability and collect "
                "your details so a coordinator follows up within 24 hours with a custom quote. "
                "What's your move date and the ZIPs you're moving between?"
            )
        return f"{reply} {self.closing_line()}"

    def fallback_reply(self) -> str:
        return (
            "I'm having trouble reaching our assistant right now, but I can still take your details. "
            "Please share your move date and from/to ZIPs and a coordinator will follow up within 24 hours."
        )

    def build_messages(self, history: Sequence[Dict[str, str]], force_json: bool) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": build_system_prompt(self.company_name)}]
        messages += FEW_SHOTS
        messages += list(history)
        if force_json:
            messages.append({"role": "user", "content": FORCE_JSON_INSTRUCTION})
        return messages

    async def reply(self, history: Any, force_json: bool = False) -> ChatReply:
        """
        Produce the next assistant turn.

        Args:
            history: Ordered {role, content} turns from the widget
            force_json: Ask for the LeadCapture JSON instead of prose

        Returns:
            ChatReply; model failures degrade to a fallback reply with error set
        """
        turns = clean_history(history)

        if self.bypass:
            if force_json:
                return ChatReply(reply=json.dumps(DEMO_LEAD))
            return ChatReply(reply=self.canned_reply(turns))

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                messages=self.build_messages(turns, force_json),
            )
            content = completion.choices[0].message.content if completion.choices else None
            return ChatReply(reply=(content or "").strip())
        except Exception as e:
            logger.error(f"Chat completion failed: {e}")
            return ChatReply(reply=self.fallback_reply(), error=str(e))

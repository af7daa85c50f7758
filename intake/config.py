"""Application configuration."""

import sys
from typing import FrozenSet, List, Optional, Tuple

from loguru import logger
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from intake.guard import parse_allowlist


def _split(raw: Optional[str]) -> List[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Comma-separated host patterns, or "*"
    allowed_hosts: str = ""

    # CRM webhook
    crm_webhook_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("crm_webhook_url", "CRM_WEBHOOK_URL", "SUPERMOVE_SWI_URL")
    )

    # Transactional email (Resend)
    resend_api_key: Optional[str] = None
    email_api_url: str = "https://api.resend.com/emails"
    lead_email_from: Optional[str] = None
    lead_email_to: str = ""

    # Team chat
    slack_webhook_url: Optional[str] = None

    # Delivery policy
    channel_timeout: float = 12.0
    required_channels: str = ""

    # Conversational agent
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    chat_temperature: float = 0.4
    chat_bypass: bool = False
    company_name: str = "our moving team"

    # App
    log_level: str = "INFO"
    log_file: Optional[str] = "logs/app.log"

    def allowlist(self) -> Tuple[str, ...]:
        return parse_allowlist(self.allowed_hosts)

    def required(self) -> FrozenSet[str]:
        return frozenset(name.lower() for name in _split(self.required_channels))

    def email_recipients(self) -> List[str]:
        return _split(self.lead_email_to)


def configure_logging(settings: Settings) -> None:
    """Route loguru output to stderr and, when LOG_FILE is set, a rotating file."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())
    if settings.log_file:
        logger.add(settings.log_file, rotation="1 day", retention="7 days", level=settings.log_level.upper())

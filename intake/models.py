"""
Lead schemas.

RawLeadPayload is whatever the chat widget managed to collect; every field is
optional and loosely typed. NormalizedLead is only ever built by
intake.normalize and always carries a valid 10-digit phone number.
"""

import json
from typing import Any, Dict, List, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_FLAG_FIELDS = {"elevator_origin", "elevator_destination"}
_TRUTHY_TEXT = {"true", "yes", "y", "1", "on"}


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class RawLeadPayload(BaseModel):
    """Lead object as submitted by the widget (snake_case or camelCase keys)."""

    model_config = ConfigDict(extra="ignore")

    full_name: Optional[str] = Field(None, validation_alias=_alias("full_name", "fullName", "contactName", "contact_name", "name"))
    first_name: Optional[str] = Field(None, validation_alias=_alias("first_name", "firstName"))
    last_name: Optional[str] = Field(None, validation_alias=_alias("last_name", "lastName"))
    phone: Optional[str] = Field(None, validation_alias=_alias("phone", "phone_number", "phoneNumber"))
    email: Optional[str] = None
    move_date: Optional[str] = Field(None, validation_alias=_alias("move_date", "moveDate"))
    origin_zip: Optional[str] = Field(None, validation_alias=_alias("origin_zip", "originZip"))
    destination_zip: Optional[str] = Field(None, validation_alias=_alias("destination_zip", "destinationZip"))
    service_type: Optional[str] = Field(None, validation_alias=_alias("service_type", "serviceType"))
    home_size: Optional[str] = Field(None, validation_alias=_alias("home_size", "homeSize"))
    stairs_origin: Optional[str] = Field(None, validation_alias=_alias("stairs_origin", "stairsOrigin"))
    stairs_destination: Optional[str] = Field(None, validation_alias=_alias("stairs_destination", "stairsDestination"))
    elevator_origin: Any = Field(None, validation_alias=_alias("elevator_origin", "elevatorOrigin"))
    elevator_destination: Any = Field(None, validation_alias=_alias("elevator_destination", "elevatorDestination"))
    packing_needed: Optional[str] = Field(None, validation_alias=_alias("packing_needed", "packingNeeded"))
    special_items: Optional[str] = Field(None, validation_alias=_alias("special_items", "specialItems"))
    promo_code: Optional[str] = Field(None, validation_alias=_alias("promo_code", "promoCode"))
    referral_code: Optional[str] = Field(None, validation_alias=_alias("referral_code", "referralCode"))
    notes: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any, info) -> Any:
        if info.field_name in _FLAG_FIELDS or value is None:
            return value
        if isinstance(value, str):
            return value.strip()
        if isinstance(value, bool):
            return "yes" if value else "no"
        if isinstance(value, (list, tuple)):
            return ", ".join(str(item).strip() for item in value if item not in (None, ""))
        if isinstance(value, dict):
            return json.dumps(value)
        return str(value)


class IntakeRequest(BaseModel):
    """
    Body of POST /intake.

    Only ``lead`` can reject a request. Attribution fields of the wrong type
    degrade to their defaults.
    """

    model_config = ConfigDict(extra="ignore")

    lead: Optional[Dict[str, Any]] = None
    utm: Dict[str, Any] = Field(default_factory=dict)
    page_url: Optional[str] = None
    is_test: bool = False

    @field_validator("utm", mode="before")
    @classmethod
    def _utm_default(cls, value: Any) -> Any:
        return dict(value) if isinstance(value, Mapping) else {}

    @field_validator("page_url", mode="before")
    @classmethod
    def _page_url_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None

    @field_validator("is_test", mode="before")
    @classmethod
    def _is_test_default(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY_TEXT
        if isinstance(value, (int, float)):
            return value == 1
        return False


class AccessNotes(BaseModel):
    model_config = ConfigDict(frozen=True)

    stairs_origin: str = ""
    stairs_destination: str = ""
    elevator_origin: bool = False
    elevator_destination: bool = False


class Attribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_url: str = ""
    utm_params: Dict[str, str] = Field(default_factory=dict)
    ad_click_id: Optional[str] = None
    ad_kind: Optional[str] = None


class NormalizedLead(BaseModel):
    """Validated lead, ready to hand to delivery channels."""

    model_config = ConfigDict(frozen=True)

    contact_name: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=r"^\d{10}$")
    email: str = ""
    move_date: str = ""
    origin_zip: str = ""
    destination_zip: str = ""
    service_type: str = ""
    home_size: Optional[str] = None
    access_notes: AccessNotes = Field(default_factory=AccessNotes)
    packing_needed: str = ""
    special_items: str = ""
    promo_code: str = ""
    referral_code: str = ""
    notes: str = ""
    customer_notes: str = ""
    financing_interest: Optional[str] = None
    attribution: Attribution = Field(default_factory=Attribution)
    is_test: bool = False

    @property
    def phone_display(self) -> str:
        return f"({self.phone[:3]}) {self.phone[3:6]}-{self.phone[6:]}"

    @property
    def log_label(self) -> str:
        """Name plus last four phone digits, for log lines."""
        return f"{self.contact_name} (***{self.phone[-4:]})"

    def summary_lines(self) -> List[str]:
        """Label/value lines shared by the email and chat renderings."""
        access = self.access_notes
        return [
            f"Name: {self.contact_name}",
            f"Phone: {self.phone_display}",
            f"Email: {self.email or 'n/a'}",
            f"Move date: {self.move_date or 'n/a'}",
            f"From ZIP: {self.origin_zip or 'n/a'}",
            f"To ZIP: {self.destination_zip or 'n/a'}",
            f"Service: {self.service_type or 'n/a'}",
            f"Home size: {self.home_size or 'n/a'}",
            f"Stairs: origin {access.stairs_origin or 'n/a'}, destination {access.stairs_destination or 'n/a'}",
            f"Elevator: origin {'yes' if access.elevator_origin else 'no'}, destination {'yes' if access.elevator_destination else 'no'}",
            f"Packing: {self.packing_needed or 'n/a'}",
            f"Special items: {self.special_items or 'n/a'}",
            f"Promo code: {self.promo_code or 'n/a'}",
            f"Referral code: {self.referral_code or 'n/a'}",
            f"Financing interest: {self.financing_interest or 'n/a'}",
            f"Notes: {self.customer_notes or 'n/a'}",
            f"Page: {self.attribution.page_url or 'n/a'}",
        ]

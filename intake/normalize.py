import re
from typing import Any, Dict, Mapping, Optional

from loguru import logger
from pydantic import ValidationError

from intake.errors import InvalidPayload, InvalidPhone
from intake.models import AccessNotes, Attribution, NormalizedLead, RawLeadPayload

NOTES_DELIMITER = " | "
FALLBACK_NAME = "Web Visitor"

# Widget labels -> CRM size labels
HOME_SIZE_LABELS = {
    "studio": "Studio",
    "1br": "1 bedroom",
    "2br": "2 bedroom",
    "3br": "3 bedroom",
    "house": "3 bedroom+",
}

PACKING_LEVELS = ("none", "partial", "full")

_FALSY_TEXT = {"", "false", "no", "n", "0", "none", "off"}
_FINANCING_RE = re.compile(r"financing[_ ]interest\s*[:=]\s*(yes|no|maybe)", re.IGNORECASE)


def normalize_phone(value: Optional[str]) -> str:
    """
    Reduce a phone number to its 10 NANP digits.

    Formatting characters are dropped; an 11-digit number with a leading
    country code 1 loses the 1. Any other digit count raises InvalidPhone.
    """
    digits = re.sub(r"\D", "", value or "")
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    if len(digits) == 10:
        return digits
    raise InvalidPhone(f"Expected 10 digits, got {len(digits)}")


def map_home_size(value: Optional[str]) -> Optional[str]:
    return HOME_SIZE_LABELS.get((value or "").strip().lower())


def as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY_TEXT
    return bool(value)


def normalize_packing(value: Optional[str]) -> str:
    text = (value or "").strip()
    return text.lower() if text.lower() in PACKING_LEVELS else text


def parse_financing_interest(notes: Optional[str]) -> Optional[str]:
    match = _FINANCING_RE.search(notes or "")
    return match.group(1).lower() if match else None


def build_notes(raw: RawLeadPayload) -> str:
    """Fold access, packing and special-item details into one free-text field."""
    segments = [
        raw.notes,
        f"Stairs@Origin: {raw.stairs_origin or 'n/a'}",
        f"Stairs@Dest: {raw.stairs_destination or 'n/a'}",
        f"Elevator@Origin: {'yes' if as_flag(raw.elevator_origin) else 'no'}",
        f"Elevator@Dest: {'yes' if as_flag(raw.elevator_destination) else 'no'}",
        f"Packing: {raw.packing_needed or 'n/a'}",
        f"Special: {raw.special_items or 'n/a'}",
    ]
    return NOTES_DELIMITER.join(segment for segment in segments if segment)


def build_attribution(utm: Optional[Mapping[str, Any]], page_url: Optional[str]) -> Attribution:
    params: Dict[str, str] = {
        str(key): str(value) for key, value in (utm or {}).items() if value not in (None, "")
    }
    gclid = params.get("gclid")
    return Attribution(
        page_url=page_url or "",
        utm_params=params,
        ad_click_id=gclid or params.get("fbclid"),
        ad_kind="GOOGLE_ADS" if gclid else None,
    )


def contact_name(raw: RawLeadPayload) -> str:
    if raw.full_name:
        return raw.full_name
    joined = f"{raw.first_name or ''} {raw.last_name or ''}".strip()
    return joined or FALLBACK_NAME


def normalize(
    raw: Any,
    *,
    utm: Optional[Mapping[str, Any]] = None,
    page_url: Optional[str] = None,
    is_test: bool = False,
) -> NormalizedLead:
    """
    Turn a raw lead into a NormalizedLead.

    Args:
        raw: Lead mapping (or an already parsed RawLeadPayload)
        utm: Attribution parameters captured by the widget
        page_url: Page the widget was embedded in
        is_test: Marks the lead as a test submission downstream

    Raises:
        InvalidPayload: the lead is not an object
        InvalidPhone: the phone number is not a valid NANP number
    """
    if not isinstance(raw, RawLeadPayload):
        if not isinstance(raw, Mapping):
            raise InvalidPayload("Lead must be a JSON object")
        try:
            raw = RawLeadPayload.model_validate(dict(raw))
        except ValidationError as e:
            raise InvalidPayload(str(e)) from e

    phone = normalize_phone(raw.phone)

    home_size = map_home_size(raw.home_size)
    if raw.home_size and home_size is None:
        logger.info(f"Unmapped home size {raw.home_size!r}, leaving blank")

    return NormalizedLead(
        contact_name=contact_name(raw),
        phone=phone,
        email=raw.email or "",
        move_date=raw.move_date or "",
        origin_zip=raw.origin_zip or "",
        destination_zip=raw.destination_zip or "",
        service_type=raw.service_type or "",
        home_size=home_size,
        access_notes=AccessNotes(
            stairs_origin=raw.stairs_origin or "",
            stairs_destination=raw.stairs_destination or "",
            elevator_origin=as_flag(raw.elevator_origin),
            elevator_destination=as_flag(raw.elevator_destination),
        ),
        packing_needed=normalize_packing(raw.packing_needed),
        special_items=raw.special_items or "",
        promo_code=raw.promo_code or "",
        referral_code=raw.referral_code or "",
        notes=build_notes(raw),
        customer_notes=raw.notes or "",
        financing_interest=parse_financing_interest(raw.notes),
        attribution=build_attribution(utm, page_url),
        is_test=bool(is_test),
    )

import pytest

from intake.errors import InvalidPayload, InvalidPhone
from intake.normalize import (
    FALLBACK_NAME,
    as_flag,
    build_notes,
    map_home_size,
    normalize,
    normalize_phone,
)
from intake.models import RawLeadPayload


class TestPhone:
    """Test NANP phone normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("14045551234", "4045551234"),
        ("404-555-1234", "4045551234"),
        ("(404) 555 1234", "4045551234"),
        ("+1 (404) 555-1234", "4045551234"),
        ("4045551234", "4045551234"),
    ])
    def test_valid_numbers(self, raw, expected):
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize("raw", ["5551234", "", None, "24045551234", "404555123456", "phone"])
    def test_invalid_numbers(self, raw):
        with pytest.raises(InvalidPhone):
            normalize_phone(raw)

    @pytest.mark.parametrize("raw", ["14045551234", "404.555.1234", "+1 404 555 1234"])
    def test_idempotent(self, raw):
        once = normalize_phone(raw)
        assert normalize_phone(once) == once

    def test_invalid_phone_aborts_whole_record(self, raw_lead):
        raw_lead["phone"] = "5551234"
        with pytest.raises(InvalidPhone):
            normalize(raw_lead)

    def test_numeric_phone_is_accepted(self, raw_lead):
        raw_lead["phone"] = 4045551234
        assert normalize(raw_lead).phone == "4045551234"


class TestCategoricalFields:
    """Test home size, packing and access flag handling."""

    @pytest.mark.parametrize("raw,label", [
        ("studio", "Studio"),
        ("1BR", "1 bedroom"),
        ("2br", "2 bedroom"),
        (" 3BR ", "3 bedroom"),
        ("House", "3 bedroom+"),
        ("loft", None),
        (None, None),
    ])
    def test_home_size_mapping(self, raw, label):
        assert map_home_size(raw) == label

    def test_unmapped_home_size_does_not_abort(self, raw_lead):
        raw_lead["home_size"] = "loft"
        lead = normalize(raw_lead)
        assert lead.home_size is None
        assert lead.phone == "4045551234"

    @pytest.mark.parametrize("value,expected", [
        (True, True), ("yes", True), ("true", True), (1, True),
        (False, False), (None, False), ("", False), ("no", False), ("false", False), ("0", False),
    ])
    def test_access_flags(self, value, expected):
        assert as_flag(value) is expected

    def test_packing_known_level_is_lowercased(self, raw_lead):
        assert normalize(raw_lead).packing_needed == "partial"

    def test_packing_free_text_passes_through(self, raw_lead):
        raw_lead["packing_needed"] = "Kitchen only"
        assert normalize(raw_lead).packing_needed == "Kitchen only"


class TestNormalize:
    """Test whole-record normalization."""

    def test_full_record(self, lead):
        assert lead.contact_name == "Jane Doe"
        assert lead.phone == "4045551234"
        assert lead.email == "jane@example.com"
        assert lead.move_date == "2025-09-15"
        assert lead.home_size == "2 bedroom"
        assert lead.access_notes.stairs_origin == "1 flight"
        assert lead.access_notes.elevator_destination is True
        assert lead.financing_interest == "maybe"
        assert lead.attribution.ad_click_id == "abc123"
        assert lead.attribution.ad_kind == "GOOGLE_ADS"
        assert lead.attribution.utm_params["utm_source"] == "google"

    def test_minimal_record_degrades_gracefully(self):
        lead = normalize({"phone": "404-555-1234"})
        assert lead.contact_name == FALLBACK_NAME
        assert lead.email == ""
        assert lead.home_size is None
        assert lead.access_notes.elevator_origin is False
        assert lead.attribution.ad_click_id is None
        assert lead.is_test is False

    def test_camel_case_keys(self):
        lead = normalize({
            "contactName": "Sam Lee",
            "phone": "4045551234",
            "moveDate": "2025-10-01",
            "originZip": "30542",
            "destinationZip": "30519",
            "homeSize": "studio",
        })
        assert lead.contact_name == "Sam Lee"
        assert lead.move_date == "2025-10-01"
        assert lead.origin_zip == "30542"
        assert lead.destination_zip == "30519"
        assert lead.home_size == "Studio"

    def test_first_and_last_name(self):
        lead = normalize({"first_name": "Ana", "last_name": "Ruiz", "phone": "4045551234"})
        assert lead.contact_name == "Ana Ruiz"

    def test_special_items_array_is_joined(self, raw_lead):
        raw_lead["special_items"] = ["piano", "safe"]
        assert normalize(raw_lead).special_items == "piano, safe"

    def test_fbclid_without_gclid(self, raw_lead):
        lead = normalize(raw_lead, utm={"fbclid": "fb1"})
        assert lead.attribution.ad_click_id == "fb1"
        assert lead.attribution.ad_kind is None

    def test_non_object_lead(self):
        with pytest.raises(InvalidPayload):
            normalize(["not", "a", "lead"])


class TestCompositeNotes:
    """Test the notes summary carried into CRM free text."""

    def test_segments_and_delimiter(self, raw_lead):
        notes = build_notes(RawLeadPayload.model_validate(raw_lead))
        assert notes == (
            "Gate code 1234. financing_interest: maybe | Stairs@Origin: 1 flight | Stairs@Dest: none"
            " | Elevator@Origin: no | Elevator@Dest: yes | Packing: Partial | Special: piano"
        )

    def test_empty_free_text_is_omitted(self):
        notes = normalize({"phone": "4045551234"}).notes
        assert notes.startswith("Stairs@Origin: n/a | ")
        assert " |  | " not in notes
        assert notes.endswith("Special: n/a")

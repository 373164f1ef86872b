from datetime import datetime

import pytest

from app.models import tables


@pytest.mark.unit
class TestParseNumber:
    @pytest.mark.parametrize("raw, expected", [
        ("450000", 450000.0),
        ("450 000 zł", 450000.0),
        ("72,5", 72.5),
        ("72.5 m", 72.5),
        ("1.250.000 zł", 1250000.0),
        ("450.000,00 zł", 450000.0),
        ("1,250", 1250.0),
        (3, 3.0),
        (2.5, 2.5),
    ])
    def test_parses_display_values(self, raw, expected):
        assert tables.parse_number(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "brak", "zapytaj o cenę", True])
    def test_returns_none_without_a_number(self, raw):
        assert tables.parse_number(raw) is None


@pytest.mark.unit
class TestListingDerivedFields:
    def test_numeric_columns_follow_raw_values_on_insert(self, make_listing):
        listing = make_listing(price="450 000 zł", details={"area": "72,5", "rooms": "3"})

        assert listing.price_num == 450000.0
        assert listing.area_num == 72.5
        assert listing.rooms == 3

    def test_unparseable_price_becomes_zero(self, make_listing):
        listing = make_listing(price="Zapytaj", details={})

        assert listing.price_num == 0.0
        assert listing.area_num is None
        assert listing.rooms is None

    def test_numeric_columns_recomputed_on_update(self, db, make_listing):
        listing = make_listing(price="100000", details={"area": "40"})

        listing.price = "250000"
        listing.details = {"area": "55", "rooms": 2}
        db.commit()
        db.refresh(listing)

        assert listing.price_num == 250000.0
        assert listing.area_num == 55.0
        assert listing.rooms == 2

    def test_location_groups_address_fields(self, make_listing):
        listing = make_listing(address="Prosta 1", city="Kraków", region="małopolskie", lat="50.06", lon="19.94")

        assert listing.location == {
            "address": "Prosta 1",
            "region": "małopolskie",
            "city": "Kraków",
            "lat": "50.06",
            "lon": "19.94",
        }


@pytest.mark.unit
class TestSubmissionNotes:
    def test_append_note_keeps_earlier_lines(self):
        submission = tables.FormSubmission(internal_notes="")

        submission.append_note("first", at=datetime(2025, 1, 2, 3, 4, 5, 678000))
        submission.append_note("second", at=datetime(2025, 1, 3, 0, 0, 0))

        assert submission.notes == [
            "2025-01-02T03:04:05.678Z: first",
            "2025-01-03T00:00:00.000Z: second",
        ]
        assert submission.internal_notes.startswith("2025-01-02T03:04:05.678Z: first\n")

    def test_message_column_mirrors_payload(self, make_submission):
        submission = make_submission(payload={"formType": "contact_inquiry", "message": "Szukam mieszkania"})

        assert submission.message == "Szukam mieszkania"

    def test_full_name(self, make_user):
        user = make_user(name="Anna", surname="Nowak")

        assert user.full_name == "Anna Nowak"

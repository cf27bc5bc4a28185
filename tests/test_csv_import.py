"""Tests for CSV event uploads."""

from datetime import date, datetime

import pytest

from scoop.core.catalog_store import CatalogStore
from scoop.core.csv_import import EventCSVImporter, external_id_for, parse_event_date
from scoop.core.errors import ValidationError
from scoop.core.selectors import EventSelector

SHEET = """Title,Description,Start Date,End Date,Venue
Fall Festival,Music and food,10/18/2025 10:00 AM,10/18/2025 4:00 PM,Lake George
Example Event,This is an example row,10/18/2025,,Somewhere
Bad Date,,not a date,,Library
,,10/19/2025,,Park
Fall Festival,Music and food,10/18/2025 10:00 AM,,Lake George
"""


@pytest.fixture
def importer(db):
    return EventCSVImporter(CatalogStore(db))


class TestEventCSVImporter:
    def test_import_counts(self, importer, db):
        result = importer.import_text(SHEET)

        assert result.created == 1
        assert result.skipped == 2
        assert result.errors == [
            "Row 4: Invalid date in start_date: not a date",
            "Row 5: Missing required fields: Title and Start Date are required",
        ]
        events = CatalogStore(db).list_events()
        assert len(events) == 1
        assert events[0].start_date == datetime(2025, 10, 18, 10, 0)
        assert events[0].end_date == datetime(2025, 10, 18, 16, 0)
        assert events[0].venue == "Lake George"

    def test_example_rows_only(self, importer):
        sheet = "Title,Start Date\nExample: Pumpkin Walk,10/20/2025\nAnother,example.com date\n"
        result = importer.import_text(sheet)
        assert (result.created, result.skipped, result.errors) == (0, 2, [])

    def test_byte_order_mark_and_blank_lines(self, importer):
        sheet = "\ufeffTitle,Start Date\n\n,\nTrivia Night,2025-10-21 19:00\n"
        assert importer.import_text(sheet).created == 1

    def test_missing_required_column(self, importer):
        with pytest.raises(ValidationError) as exc_info:
            importer.import_text("Title,Venue\nFestival,Park\n")
        assert "Start Date" in exc_info.value.message

    def test_header_only(self, importer):
        with pytest.raises(ValidationError):
            importer.import_text("Title,Start Date\n")

    def test_same_title_at_different_venues(self, importer, db):
        sheet = (
            "Title,Start Date,Venue\n"
            "Trivia Night,10/18/2025 6:00 PM,Brewery A\n"
            "Trivia Night,10/18/2025 8:00 PM,Pub B\n"
        )

        result = importer.import_text(sheet)

        assert (result.created, result.skipped, result.errors) == (2, 0, [])
        assert sorted(e.venue for e in CatalogStore(db).list_events()) == ["Brewery A", "Pub B"]

    @pytest.mark.asyncio
    async def test_offset_dates_stored_as_local_time(self, db):
        catalog = CatalogStore(db)
        importer = EventCSVImporter(catalog, "America/Chicago")

        result = importer.import_text("Title,Start Date,Venue\nConcert,2025-10-18T19:00:00-05:00,Park\n")

        assert result.created == 1
        event = catalog.list_events()[0]
        assert event.start_date == datetime(2025, 10, 18, 19, 0)
        assert event.start_date.tzinfo is None

        campaign = db.create_campaign(date(2025, 10, 18))
        selections = await EventSelector(catalog).populate(campaign.id, date(2025, 10, 18))
        assert [e.title for _, e in selections] == ["Concert"]


@pytest.mark.parametrize(
    "value,expected",
    [
        ("10/18/2025 10:00 AM", datetime(2025, 10, 18, 10, 0)),
        ("10/18/2025 7:30PM", datetime(2025, 10, 18, 19, 30)),
        ("10/18/2025", datetime(2025, 10, 18)),
        ("2025-10-18T09:15:00", datetime(2025, 10, 18, 9, 15)),
        ("October 18, 2025", datetime(2025, 10, 18)),
        ("2025-10-18T19:00:00-05:00", datetime(2025, 10, 18, 19, 0)),
        ("2025-10-19T01:00:00Z", datetime(2025, 10, 18, 20, 0)),
    ],
)
def test_parse_event_date(value, expected):
    assert parse_event_date(value) == expected


def test_external_id():
    assert external_id_for("Fall Fest!", datetime(2025, 10, 18, 10)) == "csv_fall_fest__2025-10-18T1000"
    assert (
        external_id_for("Trivia Night", datetime(2025, 10, 18, 18), "Brewery A")
        == "csv_trivia_night_2025-10-18T1800_brewery_a"
    )

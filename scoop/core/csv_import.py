"""Bulk event import from CSV uploads."""

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from scoop.core.errors import ValidationError
from scoop.models.content import Event

logger = logging.getLogger(__name__)

COLUMNS = {
    "Title": "title",
    "Description": "description",
    "Start Date": "start_date",
    "End Date": "end_date",
    "Venue": "venue",
    "Address": "address",
    "URL": "url",
    "Image URL": "image_url",
}
REQUIRED = ("Title", "Start Date")

_DATE_FORMATS = (
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %I:%M%p",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%Y-%m-%d %I:%M %p",
    "%B %d, %Y %I:%M %p",
    "%B %d, %Y",
)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


@dataclass
class ImportResult:
    created: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict:
        return {"created": self.created, "skipped": self.skipped, "errors": self.errors}


def parse_event_date(value: str, tz_name: str = "America/Chicago") -> datetime:
    """Parse the date formats event sheets commonly use.

    Values carrying a UTC offset are converted to naive wall-clock time in
    ``tz_name``, the form every stored event uses.

    Raises:
        ValueError: If no format matches
    """
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value[:-1] + "+00:00" if value.endswith("Z") else value)
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)
        return parsed
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ValueError(f"Invalid date format: {value}")


def _slug(text: str) -> str:
    return _NON_ALNUM_RE.sub("_", text.lower())


def external_id_for(title: str, start: datetime, venue: str = "") -> str:
    parts = [_slug(title), start.strftime("%Y-%m-%dT%H%M")]
    if venue:
        parts.append(_slug(venue))
    return "csv_" + "_".join(parts)


class EventCSVImporter:
    """Creates catalog events from an uploaded sheet.

    Rows mentioning "example" anywhere are template rows and are skipped, as
    are events already present with the same title, start and venue.
    """

    def __init__(self, catalog, tz_name: str = "America/Chicago"):
        self.catalog = catalog
        self.tz_name = tz_name

    def import_text(self, text: str) -> ImportResult:
        """Import events from CSV text.

        Raises:
            ValidationError: If the sheet is empty or lacks a required column
        """
        reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
        rows = [row for row in reader if any(cell.strip() for cell in row)]
        if len(rows) < 2:
            raise ValidationError("CSV must have at least a header and one data row")

        headers = [h.strip().strip('"') for h in rows[0]]
        missing = [name for name in REQUIRED if name not in headers]
        if missing:
            raise ValidationError(f"Missing required columns: {', '.join(missing)}")
        indices = {COLUMNS[h]: i for i, h in enumerate(headers) if h in COLUMNS}

        result = ImportResult()
        for line_number, row in enumerate(rows[1:], start=2):
            try:
                outcome = self._import_row(row, indices)
            except ValueError as e:
                result.errors.append(f"Row {line_number}: {e}")
                continue
            if outcome:
                result.created += 1
            else:
                result.skipped += 1

        logger.info(
            f"📥 Event CSV import: {result.created} created, {result.skipped} skipped, "
            f"{len(result.errors)} errors"
        )
        return result

    def _import_row(self, row: List[str], indices: Dict[str, int]) -> bool:
        """Returns True when an event was created, False when the row was skipped."""
        if any("example" in cell.lower() for cell in row):
            return False

        values: Dict[str, Optional[str]] = {}
        for name, index in indices.items():
            cell = row[index].strip() if index < len(row) else ""
            values[name] = cell or None

        if not values.get("title") or not values.get("start_date"):
            raise ValueError("Missing required fields: Title and Start Date are required")

        try:
            start = parse_event_date(values["start_date"], self.tz_name)
        except ValueError:
            raise ValueError(f"Invalid date in start_date: {values['start_date']}")
        end = None
        if values.get("end_date"):
            try:
                end = parse_event_date(values["end_date"], self.tz_name)
            except ValueError:
                raise ValueError(f"Invalid date in end_date: {values['end_date']}")

        title = values["title"]
        venue = values.get("venue") or ""
        if self.catalog.event_exists(title, start, venue):
            return False

        event = Event(
            external_id=external_id_for(title, start, venue),
            title=title,
            description=values.get("description") or "",
            start_date=start,
            end_date=end,
            venue=venue,
            address=values.get("address") or "",
            url=values.get("url") or "",
            image_url=values.get("image_url") or "",
        )
        return self.catalog.add_event(event) is not None

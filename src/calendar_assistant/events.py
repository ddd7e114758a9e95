"""Calendar event creation: argument validation and the provider call."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, StringConstraints
from pydantic import ValidationError as PydanticValidationError

from calendar_assistant.errors import EventValidationError, ProviderCallError
from calendar_assistant.google_client import GoogleCalendarClient

logger = logging.getLogger(__name__)

PRIMARY_CALENDAR = "primary"

INVALID_DATE_MESSAGE = 'Invalid date format. Please use ISO format (e.g., "2025-02-06T15:00:00Z")'

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EventArguments(BaseModel):
    """Schema for the ``create_event`` tool arguments."""

    model_config = ConfigDict(extra="ignore")

    summary: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    start_time: str
    end_time: str
    description: str | None = None
    attendees: list[str] | None = None


@dataclass(frozen=True, slots=True)
class CalendarEvent:
    """A validated event, ready to be sent to Google Calendar."""

    summary: str
    start_time: str
    end_time: str
    timezone: str
    description: str | None = None
    attendees: list[str] = field(default_factory=list)

    def to_body(self) -> dict[str, Any]:
        """Map to the Google Calendar event resource."""
        body: dict[str, Any] = {
            "summary": self.summary,
            "start": {"dateTime": self.start_time, "timeZone": self.timezone},
            "end": {"dateTime": self.end_time, "timeZone": self.timezone},
        }
        if self.description is not None:
            body["description"] = self.description
        if self.attendees:
            body["attendees"] = [{"email": email} for email in self.attendees]
        return body


def _parse_iso_datetime(value: str) -> datetime:
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = f"{normalized[:-1]}+00:00"
    return datetime.fromisoformat(normalized)


def is_valid_iso_datetime(value: str) -> bool:
    """True if *value* is a full ISO 8601 date-time (a bare date is rejected)."""
    if "T" not in value:
        return False
    try:
        _parse_iso_datetime(value)
    except ValueError:
        return False
    return True


def _in_zone(dt: datetime, tz_name: str) -> datetime:
    tz = ZoneInfo(tz_name)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def _format_validation_error(exc: PydanticValidationError) -> str:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"]) or "arguments"
        problems.append(f"{location}: {err['msg']}")
    return "Invalid arguments: " + "; ".join(problems)


def parse_event(arguments: Mapping[str, Any], *, timezone: str) -> CalendarEvent:
    """Validate raw tool arguments and build a :class:`CalendarEvent`.

    Raises:
        EventValidationError: If a field is missing or mistyped, a timestamp
            is not a full ISO 8601 date-time, the start is not before the end,
            or an attendee is not an email address.
    """
    try:
        args = EventArguments.model_validate(dict(arguments))
    except PydanticValidationError as exc:
        raise EventValidationError(_format_validation_error(exc)) from exc

    if not is_valid_iso_datetime(args.start_time) or not is_valid_iso_datetime(args.end_time):
        raise EventValidationError(INVALID_DATE_MESSAGE)

    start = _in_zone(_parse_iso_datetime(args.start_time), timezone)
    end = _in_zone(_parse_iso_datetime(args.end_time), timezone)
    if start >= end:
        raise EventValidationError("start_time must be before end_time.")

    attendees = args.attendees or []
    bad = [email for email in attendees if not _EMAIL_RE.match(email)]
    if bad:
        raise EventValidationError(f"Invalid email address(es): {', '.join(bad)}")

    return CalendarEvent(
        summary=args.summary,
        start_time=args.start_time,
        end_time=args.end_time,
        timezone=timezone,
        description=args.description,
        attendees=attendees,
    )


async def create_event(
    client: GoogleCalendarClient,
    arguments: Mapping[str, Any],
    *,
    timezone: str,
) -> str:
    """Create an event on the primary calendar and return a confirmation.

    Validation happens before any network activity.  Failures of the
    provider call are re-raised as :class:`ProviderCallError` with the
    message ``Failed to create event: <original message>``.
    """
    event = parse_event(arguments, timezone=timezone)
    body = event.to_body()
    logger.debug("Creating event %r (%s to %s)", event.summary, event.start_time, event.end_time)

    try:
        created = await client.insert_event(body, calendar_id=PRIMARY_CALENDAR)
    except Exception as exc:
        logger.debug("Event insert failed: %s: %s", type(exc).__name__, exc)
        raise ProviderCallError(f"Failed to create event: {exc}") from exc

    logger.debug("Event created: id=%s", created.get("id"))
    return f"Event created: {created.get('htmlLink')}"

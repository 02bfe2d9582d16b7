"""
Slot primitives shared by the availability and booking services.

A schedule stores its slots as a JSON list of ``{startTime, endTime, isAvailable}``
objects; ``TimeSlot`` is the typed view of one entry.
"""

import logging
from datetime import datetime, time
from enum import Enum

from pydantic import BaseModel, Field

from calmme.core import config
from calmme.errors import InvalidDateError

logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%d'
CLOCK_FORMAT = '%H:%M'


class DayOfWeek(str, Enum):
    MONDAY = 'monday'
    TUESDAY = 'tuesday'
    WEDNESDAY = 'wednesday'
    THURSDAY = 'thursday'
    FRIDAY = 'friday'
    SATURDAY = 'saturday'
    SUNDAY = 'sunday'


WEEKDAY_ORDER = list(DayOfWeek)


class TimeSlot(BaseModel):
    start_time: str = Field(alias='startTime')
    end_time: str = Field(alias='endTime')
    is_available: bool = Field(default=True, alias='isAvailable')

    class Config:
        populate_by_name = True

    @property
    def time_range(self) -> str:
        return f'{self.start_time}-{self.end_time}'

    def matches(self, other: 'TimeSlot') -> bool:
        return self.start_time == other.start_time and self.end_time == other.end_time

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


def parse_date(value: str) -> datetime:
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT)
    except (AttributeError, ValueError) as exc:
        raise InvalidDateError(f'Invalid date {value!r}; expected YYYY-MM-DD.') from exc


def day_of_week_for_date(value: str, lenient: bool | None = None) -> DayOfWeek:
    """Map a ``YYYY-MM-DD`` string to its weekday.

    When ``lenient`` is true an unparseable date maps to the configured fallback
    weekday instead of raising ``InvalidDateError``.
    """
    if lenient is None:
        lenient = config.LENIENT_DATE_PARSING

    try:
        parsed = parse_date(value)
    except InvalidDateError:
        if not lenient:
            raise
        fallback = DayOfWeek(config.FALLBACK_DAY_OF_WEEK)
        logger.warning('Could not parse date %r, falling back to %s', value, fallback.value)
        return fallback

    return WEEKDAY_ORDER[parsed.weekday()]


def parse_clock(value: str) -> time:
    return datetime.strptime(value, CLOCK_FORMAT).time()


def slots_from_documents(documents: list[dict] | None) -> list[TimeSlot]:
    return [TimeSlot.model_validate(document) for document in documents or []]


def slots_to_documents(slots: list[TimeSlot]) -> list[dict]:
    return [slot.to_document() for slot in slots]


def find_overlapping_pair(slots: list[TimeSlot]) -> tuple[TimeSlot, TimeSlot] | None:
    ordered = sorted(slots, key=lambda slot: parse_clock(slot.start_time))
    for previous, current in zip(ordered, ordered[1:]):
        if parse_clock(current.start_time) < parse_clock(previous.end_time):
            return previous, current
    return None


def summarize_working_hours(slots: list[TimeSlot]) -> str | None:
    if not slots:
        return None
    earliest = min(slot.start_time for slot in slots)
    latest = max(slot.end_time for slot in slots)
    return f'{earliest} - {latest}'

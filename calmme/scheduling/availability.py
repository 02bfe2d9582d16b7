"""
Availability Manager

Owns the weekly schedule records of each psychologist:
- listing the bookable slots for a calendar date
- replacing a weekday's slot list
- reserving a single slot exactly once

Reservation is a conditional write on ``schedules.version``: the slot list is
only written back if nobody else wrote the record since it was read. A lost race
re-reads the record and tries again, up to ``SLOT_RESERVATION_RETRIES`` times.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from calmme.core import config
from calmme.errors import (
    ScheduleConflictError,
    SlotNotFoundError,
    SlotUnavailableError,
    StoreUnavailableError,
    ValidationFailedError,
)
from calmme.models.appointment import Appointment
from calmme.models.schedule import Schedule
from calmme.scheduling.notifications import ScheduleChangeHub, Subscription, schedule_changes
from calmme.scheduling.slots import (
    WEEKDAY_ORDER,
    DayOfWeek,
    TimeSlot,
    day_of_week_for_date,
    slots_from_documents,
    slots_to_documents,
    summarize_working_hours,
)

logger = logging.getLogger(__name__)


def schedule_snapshot(schedule: Schedule) -> dict[str, Any]:
    return {
        'scheduleId': schedule.id,
        'psychologistId': schedule.psychologist_id,
        'dayOfWeek': schedule.day_of_week,
        'timeSlots': list(schedule.time_slots or []),
        'isRecurring': bool(schedule.is_recurring),
        'version': schedule.version,
        'updatedAt': schedule.updated_at.isoformat() if schedule.updated_at else None,
    }


class AvailabilityManager:
    def __init__(
        self,
        db: Session,
        hub: ScheduleChangeHub | None = None,
        max_attempts: int | None = None,
        lenient_dates: bool | None = None,
    ):
        self.db = db
        self.hub = hub or schedule_changes
        self.max_attempts = max_attempts or config.SLOT_RESERVATION_RETRIES
        self.lenient_dates = lenient_dates

    def day_for(self, date: str) -> DayOfWeek:
        return day_of_week_for_date(date, lenient=self.lenient_dates)

    def _find_schedule(self, psychologist_id: str, day: DayOfWeek) -> Schedule | None:
        # populate_existing: a retry must see what the other writer committed,
        # not the copy already sitting in the identity map.
        return (
            self.db.query(Schedule)
            .filter(
                Schedule.psychologist_id == psychologist_id,
                Schedule.day_of_week == day.value,
            )
            .order_by(Schedule.id.asc())
            .populate_existing()
            .first()
        )

    def _booked_time_ranges(self, psychologist_id: str, date: str) -> set[str]:
        rows = self.db.query(Appointment.appointment_time).filter(
            Appointment.psychologist_id == psychologist_id,
            Appointment.appointment_date == date,
            Appointment.status.in_(config.BOOKED_APPOINTMENT_STATUSES),
        ).all()
        return {appointment_time for (appointment_time,) in rows if appointment_time}

    def _write_slots_if_unchanged(self, schedule_id: int, expected_version: int, slots: list[TimeSlot]) -> bool:
        updated_rows = self.db.query(Schedule).filter(
            Schedule.id == schedule_id,
            Schedule.version == expected_version,
        ).update(
            {
                Schedule.time_slots: slots_to_documents(slots),
                Schedule.version: expected_version + 1,
                Schedule.updated_at: datetime.now(),
            },
            synchronize_session=False,
        )
        return updated_rows == 1

    def list_available_slots(self, psychologist_id: str, date: str) -> list[TimeSlot]:
        """Return the schedule's open slots for ``date`` in stored order.

        Slots already taken by a scheduled or confirmed appointment on that
        exact date are left out as well.
        """
        if not psychologist_id or not psychologist_id.strip():
            return []

        day = self.day_for(date)

        try:
            schedule = self._find_schedule(psychologist_id, day)
            if schedule is None:
                return []
            booked_ranges = self._booked_time_ranges(psychologist_id, date)
        except SQLAlchemyError as exc:
            logger.exception('Failed to load time slots for %s on %s', psychologist_id, date)
            raise StoreUnavailableError('Failed to load time slots.') from exc

        return [
            slot
            for slot in slots_from_documents(schedule.time_slots)
            if slot.is_available and slot.time_range not in booked_ranges
        ]

    def reserve_slot(self, psychologist_id: str, date: str, slot: TimeSlot, commit: bool = True) -> bool:
        """Mark ``slot`` unavailable in the schedule for ``date``'s weekday.

        Returns False, without writing anything, when the psychologist has no
        schedule for that weekday. With ``commit=False`` the write joins the
        caller's transaction and no notification is published.
        """
        if not psychologist_id or not psychologist_id.strip():
            raise ValidationFailedError('Psychologist ID is empty.')

        day = self.day_for(date)

        try:
            for attempt in range(1, self.max_attempts + 1):
                schedule = self._find_schedule(psychologist_id, day)
                if schedule is None:
                    return False

                slots = slots_from_documents(schedule.time_slots)
                index = next((i for i, candidate in enumerate(slots) if candidate.matches(slot)), None)
                if index is None:
                    raise SlotNotFoundError(f'No {slot.time_range} slot on {day.value}.')
                if not slots[index].is_available:
                    raise SlotUnavailableError(f'The {slot.time_range} slot on {date} is already booked.')

                updated_slots = list(slots)
                updated_slots[index] = slots[index].model_copy(update={'is_available': False})

                if self._write_slots_if_unchanged(schedule.id, schedule.version, updated_slots):
                    if commit:
                        self.db.commit()
                        self.notify(psychologist_id, day)
                    return True

                logger.warning(
                    'Schedule %s changed during reservation of %s (attempt %d/%d)',
                    schedule.id,
                    slot.time_range,
                    attempt,
                    self.max_attempts,
                )
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to update time slot availability for %s', psychologist_id)
            raise StoreUnavailableError('Failed to update time slot availability.') from exc

        raise ScheduleConflictError()

    def upsert_schedule(self, psychologist_id: str, day_of_week: str, slots: list[TimeSlot]) -> Schedule:
        """Replace the slot list for one weekday, creating the record if needed."""
        if not psychologist_id or not psychologist_id.strip():
            raise ValidationFailedError('Psychologist data not found.')

        try:
            day = DayOfWeek(day_of_week.strip().lower())
        except (AttributeError, ValueError) as exc:
            raise ValidationFailedError(f'Invalid day of week {day_of_week!r}.') from exc

        documents = slots_to_documents(slots)

        try:
            schedule = self._find_schedule(psychologist_id, day)
            if schedule is None:
                schedule = Schedule(
                    psychologist_id=psychologist_id,
                    day_of_week=day.value,
                    time_slots=documents,
                    is_recurring=True,
                    version=1,
                )
                self.db.add(schedule)
            else:
                self._overwrite_slots(schedule, documents)

            try:
                self.db.commit()
            except IntegrityError:
                # Another writer created the record first; update theirs instead.
                self.db.rollback()
                schedule = self._find_schedule(psychologist_id, day)
                if schedule is None:
                    raise
                self._overwrite_slots(schedule, documents)
                self.db.commit()

            self.db.refresh(schedule)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to update schedule for %s on %s', psychologist_id, day.value)
            raise StoreUnavailableError('Failed to update schedule.') from exc

        self.hub.publish(psychologist_id, schedule_snapshot(schedule))
        return schedule

    @staticmethod
    def _overwrite_slots(schedule: Schedule, documents: list[dict]) -> None:
        schedule.time_slots = documents
        schedule.is_recurring = True
        schedule.version = (schedule.version or 0) + 1
        schedule.updated_at = datetime.now()

    def list_schedules(self, psychologist_id: str) -> list[Schedule]:
        if not psychologist_id or not psychologist_id.strip():
            raise ValidationFailedError('Psychologist ID is empty.')

        try:
            schedules = self.db.query(Schedule).filter(
                Schedule.psychologist_id == psychologist_id,
            ).all()
        except SQLAlchemyError as exc:
            logger.exception('Failed to load schedules for %s', psychologist_id)
            raise StoreUnavailableError('Failed to load schedules.') from exc

        weekday_index = {day.value: index for index, day in enumerate(WEEKDAY_ORDER)}
        return sorted(schedules, key=lambda schedule: weekday_index.get(schedule.day_of_week, len(weekday_index)))

    def working_hours(self, psychologist_id: str) -> dict[str, str]:
        hours: dict[str, str] = {}
        for schedule in self.list_schedules(psychologist_id):
            summary = summarize_working_hours(slots_from_documents(schedule.time_slots))
            if summary:
                hours[schedule.day_of_week] = summary
        return hours

    def notify(self, psychologist_id: str, day: DayOfWeek) -> None:
        schedule = self._find_schedule(psychologist_id, day)
        if schedule is not None:
            self.hub.publish(psychologist_id, schedule_snapshot(schedule))

    def subscribe(self, psychologist_id: str) -> Subscription:
        return self.hub.subscribe(psychologist_id)

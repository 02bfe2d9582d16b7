import pytest

from calmme.errors import (
    InvalidDateError,
    ScheduleConflictError,
    SlotNotFoundError,
    SlotUnavailableError,
    ValidationFailedError,
)
from calmme.models.appointment import Appointment
from calmme.models.schedule import Schedule
from calmme.scheduling.availability import AvailabilityManager
from calmme.scheduling.slots import TimeSlot

MONDAY = '2026-01-05'


def _slot(start: str, end: str, is_available: bool = True) -> TimeSlot:
    return TimeSlot(start_time=start, end_time=end, is_available=is_available)


def test_list_available_slots_returns_open_slots_in_stored_order(schedule_db, monday_schedule, hub) -> None:
    monday_schedule.time_slots = [
        {'startTime': '11:00', 'endTime': '12:00', 'isAvailable': True},
        {'startTime': '09:00', 'endTime': '10:00', 'isAvailable': False},
        {'startTime': '10:00', 'endTime': '11:00', 'isAvailable': True},
    ]
    schedule_db.commit()

    slots = AvailabilityManager(schedule_db, hub=hub).list_available_slots('psy-1', MONDAY)

    assert [slot.time_range for slot in slots] == ['11:00-12:00', '10:00-11:00']


def test_list_available_slots_skips_store_for_blank_psychologist() -> None:
    manager = AvailabilityManager(db=None)

    assert manager.list_available_slots('', MONDAY) == []
    assert manager.list_available_slots('   ', MONDAY) == []


def test_list_available_slots_is_empty_without_schedule(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    assert manager.list_available_slots('psy-1', '2026-01-06') == []
    assert manager.list_available_slots('psy-2', MONDAY) == []


def test_list_available_slots_rejects_bad_date(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub, lenient_dates=False)

    with pytest.raises(InvalidDateError):
        manager.list_available_slots('psy-1', '2026/01/05')


def test_list_available_slots_lenient_mode_reads_fallback_day(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub, lenient_dates=True)

    slots = manager.list_available_slots('psy-1', 'garbage')

    assert [slot.time_range for slot in slots] == ['09:00-10:00', '10:00-11:00']


def test_list_available_slots_hides_ranges_with_active_appointments(schedule_db, monday_schedule, hub) -> None:
    schedule_db.add_all([
        Appointment(
            user_id='user-1',
            psychologist_id='psy-1',
            appointment_date=MONDAY,
            appointment_time='09:00-10:00',
            status='confirmed',
        ),
        Appointment(
            user_id='user-2',
            psychologist_id='psy-1',
            appointment_date=MONDAY,
            appointment_time='10:00-11:00',
            status='cancelled',
        ),
    ])
    schedule_db.commit()

    slots = AvailabilityManager(schedule_db, hub=hub).list_available_slots('psy-1', MONDAY)

    assert [slot.time_range for slot in slots] == ['10:00-11:00']


def test_reserve_slot_flips_only_the_matching_entry(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    assert manager.reserve_slot('psy-1', MONDAY, _slot('09:00', '10:00')) is True

    schedule = schedule_db.query(Schedule).filter(Schedule.id == monday_schedule.id).one()
    assert schedule.time_slots == [
        {'startTime': '09:00', 'endTime': '10:00', 'isAvailable': False},
        {'startTime': '10:00', 'endTime': '11:00', 'isAvailable': True},
    ]
    assert schedule.version == 2


def test_booked_slot_disappears_from_later_reads(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    assert len(manager.list_available_slots('psy-1', MONDAY)) == 2
    manager.reserve_slot('psy-1', MONDAY, _slot('09:00', '10:00'))

    remaining = manager.list_available_slots('psy-1', MONDAY)
    assert [slot.to_document() for slot in remaining] == [
        {'startTime': '10:00', 'endTime': '11:00', 'isAvailable': True},
    ]


def test_reserve_slot_without_schedule_is_a_no_op(schedule_db, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    assert manager.reserve_slot('psy-1', MONDAY, _slot('09:00', '10:00')) is False
    assert schedule_db.query(Schedule).count() == 0


def test_reserve_slot_rejects_second_booking_of_same_slot(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)
    manager.reserve_slot('psy-1', MONDAY, _slot('09:00', '10:00'))

    with pytest.raises(SlotUnavailableError):
        manager.reserve_slot('psy-1', MONDAY, _slot('09:00', '10:00'))

    schedule = schedule_db.query(Schedule).filter(Schedule.id == monday_schedule.id).one()
    assert schedule.version == 2


def test_reserve_slot_requires_exact_start_and_end(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    with pytest.raises(SlotNotFoundError):
        manager.reserve_slot('psy-1', MONDAY, _slot('09:00', '09:30'))


def test_reserve_slot_rejects_blank_psychologist(hub) -> None:
    with pytest.raises(ValidationFailedError):
        AvailabilityManager(db=None, hub=hub).reserve_slot('', MONDAY, _slot('09:00', '10:00'))


def test_write_slots_if_unchanged_refuses_stale_version(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    written = manager._write_slots_if_unchanged(monday_schedule.id, 0, [_slot('09:00', '10:00', False)])

    assert written is False


def test_reserve_slot_retries_after_losing_a_race(schedule_db, monday_schedule, hub, monkeypatch) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)
    original_write = manager._write_slots_if_unchanged
    calls = []

    def write_after_competitor(schedule_id, expected_version, slots):
        if not calls:
            # Another client books 10:00-11:00 between our read and our write.
            schedule_db.query(Schedule).filter(Schedule.id == schedule_id).update(
                {
                    Schedule.time_slots: [
                        {'startTime': '09:00', 'endTime': '10:00', 'isAvailable': True},
                        {'startTime': '10:00', 'endTime': '11:00', 'isAvailable': False},
                    ],
                    Schedule.version: expected_version + 1,
                },
                synchronize_session=False,
            )
        calls.append(expected_version)
        return original_write(schedule_id, expected_version, slots)

    monkeypatch.setattr(manager, '_write_slots_if_unchanged', write_after_competitor)

    assert manager.reserve_slot('psy-1', MONDAY, _slot('09:00', '10:00')) is True

    assert calls == [1, 2]
    schedule = schedule_db.query(Schedule).filter(Schedule.id == monday_schedule.id).one()
    assert schedule.time_slots == [
        {'startTime': '09:00', 'endTime': '10:00', 'isAvailable': False},
        {'startTime': '10:00', 'endTime': '11:00', 'isAvailable': False},
    ]
    assert schedule.version == 3


def test_reserve_slot_gives_up_after_max_attempts(schedule_db, monday_schedule, hub, monkeypatch) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub, max_attempts=2)
    attempts = []

    def always_stale(schedule_id, expected_version, slots):
        attempts.append(expected_version)
        return False

    monkeypatch.setattr(manager, '_write_slots_if_unchanged', always_stale)

    with pytest.raises(ScheduleConflictError):
        manager.reserve_slot('psy-1', MONDAY, _slot('09:00', '10:00'))

    assert len(attempts) == 2


def test_upsert_schedule_creates_record_when_missing(schedule_db, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    schedule = manager.upsert_schedule('psy-1', 'Tuesday', [_slot('09:00', '10:00')])

    assert schedule.day_of_week == 'tuesday'
    assert schedule.is_recurring is True
    assert schedule.time_slots == [{'startTime': '09:00', 'endTime': '10:00', 'isAvailable': True}]
    assert schedule_db.query(Schedule).count() == 1


def test_upsert_schedule_replaces_the_whole_slot_list(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    schedule = manager.upsert_schedule('psy-1', 'monday', [_slot('14:00', '15:00')])

    assert schedule.id == monday_schedule.id
    assert schedule.time_slots == [{'startTime': '14:00', 'endTime': '15:00', 'isAvailable': True}]
    assert schedule.version == 2
    assert schedule_db.query(Schedule).count() == 1
    assert [slot.time_range for slot in manager.list_available_slots('psy-1', MONDAY)] == ['14:00-15:00']


@pytest.mark.parametrize(('psychologist_id', 'day_of_week'), [('', 'monday'), ('psy-1', 'someday')])
def test_upsert_schedule_rejects_invalid_input(schedule_db, hub, psychologist_id: str, day_of_week: str) -> None:
    with pytest.raises(ValidationFailedError):
        AvailabilityManager(schedule_db, hub=hub).upsert_schedule(psychologist_id, day_of_week, [])


def test_upsert_schedule_publishes_snapshot(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    with manager.subscribe('psy-1') as subscription:
        manager.upsert_schedule('psy-1', 'monday', [_slot('14:00', '15:00')])
        snapshot = subscription.get(timeout=1)

    assert snapshot['psychologistId'] == 'psy-1'
    assert snapshot['dayOfWeek'] == 'monday'
    assert snapshot['timeSlots'] == [{'startTime': '14:00', 'endTime': '15:00', 'isAvailable': True}]


def test_reserve_slot_publishes_snapshot(schedule_db, monday_schedule, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)

    with manager.subscribe('psy-1') as subscription:
        manager.reserve_slot('psy-1', MONDAY, _slot('10:00', '11:00'))
        snapshot = subscription.get(timeout=1)

    assert snapshot['version'] == 2
    assert snapshot['timeSlots'][1]['isAvailable'] is False


def test_list_schedules_orders_by_weekday(schedule_db, hub) -> None:
    manager = AvailabilityManager(schedule_db, hub=hub)
    manager.upsert_schedule('psy-1', 'friday', [_slot('13:00', '14:00')])
    manager.upsert_schedule('psy-1', 'monday', [_slot('08:00', '09:00'), _slot('15:00', '16:00')])
    manager.upsert_schedule('psy-1', 'wednesday', [])

    schedules = manager.list_schedules('psy-1')

    assert [schedule.day_of_week for schedule in schedules] == ['monday', 'wednesday', 'friday']
    assert manager.working_hours('psy-1') == {
        'monday': '08:00 - 16:00',
        'friday': '13:00 - 14:00',
    }

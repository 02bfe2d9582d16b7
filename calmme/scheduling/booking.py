"""
Booking Service

Creates appointments and marks the booked slot unavailable in the same
transaction: either both the appointment row and the slot flip are committed, or
neither is.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from calmme.errors import (
    AppointmentNotFoundError,
    PermissionDeniedError,
    ScheduleNotFoundError,
    SchedulingError,
    StoreUnavailableError,
    ValidationFailedError,
)
from calmme.models.appointment import Appointment
from calmme.models.user import User
from calmme.scheduling.availability import AvailabilityManager
from calmme.scheduling.slots import TimeSlot, parse_date

logger = logging.getLogger(__name__)

SCHEDULED_STATUS = 'scheduled'
PAYMENT_PENDING = 'pending'
PAYMENT_PAID = 'paid'
SUBSCRIPTION_PAYMENT_METHOD = 'subscription'
CONSULTATION_METHODS = ('chat', 'call', 'video')


class BookingResult:
    def __init__(self, appointment: Appointment, requires_payment: bool):
        self.appointment = appointment
        self.requires_payment = requires_payment


class BookingService:
    def __init__(self, db: Session, availability: AvailabilityManager | None = None):
        self.db = db
        self.availability = availability or AvailabilityManager(db)

    def _is_subscribed(self, user_id: str) -> bool:
        user = self.db.query(User).filter(User.id == user_id).first()
        return user is not None and (user.subscription_status or 'inactive') == 'active'

    def book_appointment(
        self,
        user_id: str,
        psychologist_id: str,
        date: str,
        time_slot: TimeSlot | None,
        consultation_method: str,
    ) -> BookingResult:
        if not user_id:
            raise ValidationFailedError('User not authenticated.')
        if not psychologist_id or not psychologist_id.strip():
            raise ValidationFailedError('Psychologist ID is empty.')
        if time_slot is None:
            raise ValidationFailedError('No time slot selected.')
        if not date:
            raise ValidationFailedError('No date selected.')
        # Bookings always need a real calendar date, even in lenient mode.
        parse_date(date)
        method = (consultation_method or '').strip().lower()
        if not method:
            raise ValidationFailedError('No consultation method selected.')
        if method not in CONSULTATION_METHODS:
            raise ValidationFailedError(f'Unsupported consultation method {consultation_method!r}.')

        try:
            is_subscribed = self._is_subscribed(user_id)
            now = datetime.now()
            appointment = Appointment(
                user_id=user_id,
                psychologist_id=psychologist_id,
                appointment_date=date,
                appointment_time=time_slot.time_range,
                status=SCHEDULED_STATUS,
                payment_status=PAYMENT_PAID if is_subscribed else PAYMENT_PENDING,
                payment_method=SUBSCRIPTION_PAYMENT_METHOD if is_subscribed else '',
                consultation_method=method,
                chat_room_id=None,
                created_at=now,
                updated_at=now,
            )
            self.db.add(appointment)
            self.db.flush()

            reserved = self.availability.reserve_slot(psychologist_id, date, time_slot, commit=False)
            if not reserved:
                raise ScheduleNotFoundError(f'Psychologist has no schedule for {date}.')

            self.db.commit()
            self.db.refresh(appointment)
        except SchedulingError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to create appointment for %s with %s', user_id, psychologist_id)
            raise StoreUnavailableError('Failed to create appointment.') from exc

        logger.info(
            'Booked %s on %s with %s for %s',
            time_slot.time_range,
            date,
            psychologist_id,
            user_id,
        )
        self.availability.notify(psychologist_id, self.availability.day_for(date))
        return BookingResult(appointment, requires_payment=not is_subscribed)

    def list_user_appointments(self, user_id: str) -> list[Appointment]:
        if not user_id:
            raise ValidationFailedError('User not authenticated.')

        try:
            return self.db.query(Appointment).filter(
                Appointment.user_id == user_id,
            ).order_by(
                Appointment.appointment_date.desc(),
                Appointment.appointment_time.desc(),
            ).all()
        except SQLAlchemyError as exc:
            logger.exception('Failed to load appointments for %s', user_id)
            raise StoreUnavailableError('Failed to load appointments.') from exc

    def mark_paid(self, appointment_id: str, user_id: str, payment_method: str = '') -> Appointment:
        try:
            appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
            if appointment is None:
                raise AppointmentNotFoundError()
            if appointment.user_id != user_id:
                raise PermissionDeniedError('Only the user who booked this appointment can pay for it.')

            appointment.payment_status = PAYMENT_PAID
            if payment_method:
                appointment.payment_method = payment_method
            appointment.updated_at = datetime.now()
            self.db.commit()
            self.db.refresh(appointment)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to update payment status of appointment %s', appointment_id)
            raise StoreUnavailableError('Failed to update payment status.') from exc

        return appointment

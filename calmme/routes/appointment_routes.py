from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from calmme.auth.dependencies import get_current_user
from calmme.database import get_db
from calmme.errors import SchedulingError
from calmme.models.appointment import Appointment
from calmme.models.user import User
from calmme.routes.availability_routes import ensure_database_ready
from calmme.routes.errors import to_http_exception
from calmme.scheduling.booking import CONSULTATION_METHODS, BookingService
from calmme.scheduling.slots import TimeSlot

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    psychologist_id: str = Field(alias='psychologistId')
    appointment_date: str = Field(alias='appointmentDate')
    time_slot: TimeSlot = Field(alias='timeSlot')
    consultation_method: str = Field(alias='consultationMethod')

    class Config:
        populate_by_name = True

    @field_validator('psychologist_id')
    @classmethod
    def validate_psychologist_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Psychologist ID is required.')
        return normalized

    @field_validator('appointment_date')
    @classmethod
    def validate_appointment_date(cls, value: str) -> str:
        normalized = value.strip()
        try:
            datetime.strptime(normalized, '%Y-%m-%d')
        except ValueError as exc:
            raise ValueError('Appointment date must use the YYYY-MM-DD format.') from exc
        return normalized

    @field_validator('consultation_method')
    @classmethod
    def validate_consultation_method(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in CONSULTATION_METHODS:
            raise ValueError('Invalid consultation method.')
        return normalized


class MarkPaidRequest(BaseModel):
    payment_method: str = Field(default='', alias='paymentMethod')

    class Config:
        populate_by_name = True


class AppointmentResponse(BaseModel):
    appointment_id: str = Field(alias='appointmentId')
    user_id: str = Field(alias='userId')
    psychologist_id: str = Field(alias='psychologistId')
    appointment_date: str = Field(alias='appointmentDate')
    appointment_time: str = Field(alias='appointmentTime')
    status: str
    payment_status: str = Field(alias='paymentStatus')
    payment_method: str = Field(default='', alias='paymentMethod')
    consultation_method: str | None = Field(default=None, alias='consultationMethod')
    chat_room_id: str | None = Field(default=None, alias='chatRoomId')
    created_at: datetime | None = Field(default=None, alias='createdAt')

    class Config:
        populate_by_name = True


class BookingResponse(BaseModel):
    appointment: AppointmentResponse
    requires_payment: bool = Field(alias='requiresPayment')

    class Config:
        populate_by_name = True


def build_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        appointment_id=appointment.id,
        user_id=appointment.user_id,
        psychologist_id=appointment.psychologist_id,
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_time,
        status=appointment.status or 'scheduled',
        payment_status=appointment.payment_status or 'pending',
        payment_method=appointment.payment_method or '',
        consultation_method=appointment.consultation_method,
        chat_room_id=appointment.chat_room_id or None,
        created_at=appointment.created_at,
    )


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        result = BookingService(db).book_appointment(
            user_id=current_user.id,
            psychologist_id=data.psychologist_id,
            date=data.appointment_date,
            time_slot=data.time_slot,
            consultation_method=data.consultation_method,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return BookingResponse(
        appointment=build_appointment_response(result.appointment),
        requires_payment=result.requires_payment,
    )


@router.get('/me', response_model=list[AppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = BookingService(db).list_user_appointments(current_user.id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [build_appointment_response(appointment) for appointment in appointments]


@router.post('/{appointment_id}/payment', response_model=AppointmentResponse)
def mark_appointment_paid(
    appointment_id: str,
    data: MarkPaidRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = BookingService(db).mark_paid(appointment_id, current_user.id, data.payment_method.strip())
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return build_appointment_response(appointment)

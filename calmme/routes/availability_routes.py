import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from calmme.auth.dependencies import get_current_user
from calmme.database import ensure_appointment_schema, ensure_schedule_schema, get_db
from calmme.errors import SchedulingError
from calmme.models.psychologist import Psychologist
from calmme.models.schedule import Schedule
from calmme.models.user import User
from calmme.routes.errors import to_http_exception
from calmme.scheduling.availability import AvailabilityManager
from calmme.scheduling.notifications import schedule_changes
from calmme.scheduling.slots import CLOCK_FORMAT, TimeSlot, find_overlapping_pair, parse_clock

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 15.0


class UpsertScheduleRequest(BaseModel):
    time_slots: list[TimeSlot] = Field(alias='timeSlots')

    class Config:
        populate_by_name = True

    @field_validator('time_slots')
    @classmethod
    def validate_time_slots(cls, value: list[TimeSlot]) -> list[TimeSlot]:
        normalized: list[TimeSlot] = []

        for slot in value:
            try:
                start = parse_clock(slot.start_time.strip())
                end = parse_clock(slot.end_time.strip())
            except ValueError as exc:
                raise ValueError('Times must use the HH:MM format.') from exc

            if start >= end:
                raise ValueError(f'Time slot {slot.time_range} must start before it ends.')

            normalized.append(
                TimeSlot(
                    start_time=start.strftime(CLOCK_FORMAT),
                    end_time=end.strftime(CLOCK_FORMAT),
                    is_available=slot.is_available,
                )
            )

        overlapping = find_overlapping_pair(normalized)
        if overlapping:
            first, second = overlapping
            raise ValueError(f'Time slots {first.time_range} and {second.time_range} overlap.')

        return normalized


class ScheduleResponse(BaseModel):
    schedule_id: int = Field(alias='scheduleId')
    psychologist_id: str = Field(alias='psychologistId')
    day_of_week: str = Field(alias='dayOfWeek')
    time_slots: list[TimeSlot] = Field(alias='timeSlots')
    is_recurring: bool = Field(alias='isRecurring')
    updated_at: datetime | None = Field(default=None, alias='updatedAt')

    class Config:
        populate_by_name = True


def build_schedule_response(schedule: Schedule) -> ScheduleResponse:
    return ScheduleResponse(
        schedule_id=schedule.id,
        psychologist_id=schedule.psychologist_id,
        day_of_week=schedule.day_of_week,
        time_slots=[TimeSlot.model_validate(document) for document in schedule.time_slots or []],
        is_recurring=bool(schedule.is_recurring),
        updated_at=schedule.updated_at,
    )


def ensure_database_ready() -> None:
    try:
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


def require_schedule_owner(psychologist_id: str, current_user: User, db: Session) -> Psychologist:
    psychologist = db.query(Psychologist).filter(Psychologist.id == psychologist_id).first()

    if psychologist is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Psychologist not found.',
        )

    if psychologist.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the psychologist can change their own schedule.',
        )

    return psychologist


@router.get('/psychologists/{psychologist_id}/slots', response_model=list[TimeSlot])
def list_available_slots(
    psychologist_id: str,
    date: str = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return AvailabilityManager(db).list_available_slots(psychologist_id, date)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/psychologists/{psychologist_id}/schedules', response_model=list[ScheduleResponse])
def list_schedules(psychologist_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        schedules = AvailabilityManager(db).list_schedules(psychologist_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [build_schedule_response(schedule) for schedule in schedules]


@router.put('/psychologists/{psychologist_id}/schedules/{day_of_week}', response_model=ScheduleResponse)
def upsert_schedule(
    psychologist_id: str,
    day_of_week: str,
    data: UpsertScheduleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    require_schedule_owner(psychologist_id, current_user, db)

    try:
        schedule = AvailabilityManager(db).upsert_schedule(psychologist_id, day_of_week, data.time_slots)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return build_schedule_response(schedule)


@router.get('/psychologists/{psychologist_id}/working-hours', response_model=dict[str, str])
def get_working_hours(psychologist_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return AvailabilityManager(db).working_hours(psychologist_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message['type'] == 'websocket.disconnect':
            return


@router.websocket('/psychologists/{psychologist_id}/changes')
async def stream_schedule_changes(websocket: WebSocket, psychologist_id: str):
    await websocket.accept()

    with schedule_changes.subscribe_async(psychologist_id) as subscription:
        disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            while True:
                next_snapshot = asyncio.create_task(subscription.next(HEARTBEAT_SECONDS))
                await asyncio.wait({disconnected, next_snapshot}, return_when=asyncio.FIRST_COMPLETED)

                if disconnected.done():
                    next_snapshot.cancel()
                    break

                snapshot = next_snapshot.result()
                if snapshot is None:
                    await websocket.send_json({'type': 'heartbeat'})
                else:
                    await websocket.send_json({'type': 'schedule', 'schedule': snapshot})
        except WebSocketDisconnect:
            pass
        finally:
            disconnected.cancel()

    logger.info('Schedule change stream for %s closed by client', psychologist_id)

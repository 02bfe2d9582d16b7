import os
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from calmme.core import config  # noqa: E402
from calmme.database import Base  # noqa: E402
from calmme.models.appointment import Appointment  # noqa: E402
from calmme.models.psychologist import Psychologist  # noqa: E402
from calmme.models.schedule import Schedule  # noqa: E402
from calmme.models.user import User  # noqa: E402
from calmme.scheduling.notifications import ScheduleChangeHub  # noqa: E402

TABLES = [User.__table__, Psychologist.__table__, Schedule.__table__, Appointment.__table__]

MONDAY_SLOTS = [
    {'startTime': '09:00', 'endTime': '10:00', 'isAvailable': True},
    {'startTime': '10:00', 'endTime': '11:00', 'isAvailable': True},
]


@pytest.fixture
def schedule_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def hub():
    return ScheduleChangeHub()


@pytest.fixture
def monday_schedule(schedule_db):
    schedule = Schedule(
        psychologist_id='psy-1',
        day_of_week='monday',
        time_slots=[dict(slot) for slot in MONDAY_SLOTS],
        is_recurring=True,
        version=1,
    )
    schedule_db.add(schedule)
    schedule_db.commit()
    schedule_db.refresh(schedule)
    return schedule


@pytest.fixture
def issue_token():
    """Sign a token the way the auth provider does, with this service's secret."""

    def issue(subject: str, role: str | None = None, expires_in: timedelta = timedelta(minutes=60)) -> str:
        issued_at = datetime.now(timezone.utc)
        payload = {'sub': subject, 'iat': issued_at, 'exp': issued_at + expires_in}
        if role:
            payload['role'] = role
        return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    return issue

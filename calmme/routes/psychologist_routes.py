from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from calmme.auth.dependencies import get_current_user
from calmme.database import get_db
from calmme.models.psychologist import Psychologist
from calmme.models.user import User

router = APIRouter(tags=['psychologists'])


class PsychologistResponse(BaseModel):
    psychologist_id: str = Field(alias='psychologistId')
    user_id: str | None = Field(default=None, alias='userId')
    name: str
    specialization: list[str] = Field(default_factory=list)
    description: str = ''
    experience: str = ''
    education: str = ''
    license: str = ''
    is_available: bool = Field(default=True, alias='isAvailable')
    updated_at: datetime | None = Field(default=None, alias='updatedAt')

    class Config:
        populate_by_name = True


class UpsertProfileRequest(BaseModel):
    name: str
    specialization: list[str] = Field(default_factory=list)
    description: str = ''
    experience: str = ''
    education: str = ''
    license: str = ''

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('specialization')
    @classmethod
    def validate_specialization(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item.strip()]

    @field_validator('description', 'experience', 'education', 'license')
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()


def build_psychologist_response(psychologist: Psychologist) -> PsychologistResponse:
    return PsychologistResponse(
        psychologist_id=psychologist.id,
        user_id=psychologist.user_id,
        name=psychologist.name,
        specialization=list(psychologist.specialization or []),
        description=psychologist.description or '',
        experience=psychologist.experience or '',
        education=psychologist.education or '',
        license=psychologist.license or '',
        is_available=bool(psychologist.is_available),
        updated_at=psychologist.updated_at,
    )


def matches_search(psychologist: Psychologist, search: str) -> bool:
    needle = search.lower()
    return (
        needle in (psychologist.name or '').lower()
        or needle in (psychologist.description or '').lower()
        or any(needle in item.lower() for item in psychologist.specialization or [])
    )


def matches_specialization(psychologist: Psychologist, specialization: str) -> bool:
    needle = specialization.lower()
    return any(needle in item.lower() for item in psychologist.specialization or [])


@router.get('', response_model=list[PsychologistResponse])
def list_psychologists(
    search: str | None = None,
    specialization: str | None = None,
    db: Session = Depends(get_db),
):
    try:
        psychologists = db.query(Psychologist).filter(
            Psychologist.is_available.is_(True),
        ).order_by(Psychologist.name.asc()).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Failed to load psychologists.',
        ) from exc

    # Specialization is a JSON list, so both filters run on the loaded rows.
    if search and search.strip():
        psychologists = [item for item in psychologists if matches_search(item, search.strip())]
    if specialization and specialization.strip():
        psychologists = [item for item in psychologists if matches_specialization(item, specialization.strip())]

    return [build_psychologist_response(psychologist) for psychologist in psychologists]


def find_profile_for_user(user_id: str, db: Session) -> Psychologist | None:
    return db.query(Psychologist).filter(Psychologist.user_id == user_id).first()


@router.get('/me', response_model=PsychologistResponse)
def get_my_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        psychologist = find_profile_for_user(current_user.id, db)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Failed to load psychologist data.',
        ) from exc

    if psychologist is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Psychologist profile not found.',
        )

    return build_psychologist_response(psychologist)


@router.put('/me', response_model=PsychologistResponse)
def upsert_my_profile(
    data: UpsertProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    now = datetime.now()

    try:
        psychologist = find_profile_for_user(current_user.id, db)
        if psychologist is None:
            psychologist = Psychologist(user_id=current_user.id, is_available=True, created_at=now)
            db.add(psychologist)

        psychologist.name = data.name
        psychologist.specialization = list(data.specialization)
        psychologist.description = data.description
        psychologist.experience = data.experience
        psychologist.education = data.education
        psychologist.license = data.license
        psychologist.updated_at = now

        db.commit()
        db.refresh(psychologist)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Failed to save psychologist data.',
        ) from exc

    return build_psychologist_response(psychologist)


@router.get('/{psychologist_id}', response_model=PsychologistResponse)
def get_psychologist(psychologist_id: str, db: Session = Depends(get_db)):
    try:
        psychologist = db.query(Psychologist).filter(Psychologist.id == psychologist_id).first()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Failed to load psychologist data.',
        ) from exc

    if psychologist is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Psychologist not found.',
        )

    return build_psychologist_response(psychologist)

from datetime import datetime, time

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_serializer, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telecounsel.auth.dependencies import require_roles
from telecounsel.core.errors import Unavailable
from telecounsel.database import ensure_availability_schema, get_db
from telecounsel.scheduling import availability as availability_store
from telecounsel.scheduling.access import Actor, Role
from telecounsel.scheduling.timeparse import as_utc

router = APIRouter(tags=['availability'])

schedule_editor = require_roles(Role.ADMIN, Role.PSYCHOLOGIST)


class CreateAvailabilityRequest(BaseModel):
    weekday: int | None = None
    start_time: str | None = None
    end_time: str | None = None


class UpdateAvailabilityRequest(BaseModel):
    weekday: int | None = None
    start_time: str | None = None
    end_time: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def blank_means_unchanged(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


class AvailabilityResponse(BaseModel):
    id: str
    psychologist_id: str
    weekday: int
    start_time: time
    end_time: time
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

    @field_serializer('created_at', 'updated_at')
    def serialize_utc(self, value: datetime | None) -> datetime | None:
        return as_utc(value)


class AvailabilityEnvelope(BaseModel):
    availability: AvailabilityResponse


class AvailabilityListResponse(BaseModel):
    items: list[AvailabilityResponse]


class OkResponse(BaseModel):
    ok: bool


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
    except SQLAlchemyError as exc:
        raise Unavailable('Database unavailable. Verify DATABASE_URL and database credentials.') from exc


@router.get('/psychologists/{psychologist_id}/availabilities', response_model=AvailabilityListResponse)
def list_psychologist_availabilities(psychologist_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    items = availability_store.list_availabilities(db, psychologist_id)
    return AvailabilityListResponse(items=[AvailabilityResponse.model_validate(item) for item in items])


@router.post(
    '/psychologists/{psychologist_id}/availabilities',
    response_model=AvailabilityEnvelope,
    status_code=status.HTTP_201_CREATED,
)
def create_psychologist_availability(
    psychologist_id: str,
    data: CreateAvailabilityRequest,
    actor: Actor = Depends(schedule_editor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    availability = availability_store.create_availability(
        db,
        psychologist_id=psychologist_id,
        weekday=data.weekday,
        start_time=data.start_time,
        end_time=data.end_time,
        actor=actor,
    )
    return AvailabilityEnvelope(availability=AvailabilityResponse.model_validate(availability))


@router.put('/availabilities/{availability_id}', response_model=AvailabilityEnvelope)
def update_availability(
    availability_id: str,
    data: UpdateAvailabilityRequest,
    actor: Actor = Depends(schedule_editor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    availability = availability_store.update_availability(
        db,
        availability_id,
        actor,
        weekday=data.weekday,
        start_time=data.start_time,
        end_time=data.end_time,
    )
    return AvailabilityEnvelope(availability=AvailabilityResponse.model_validate(availability))


@router.delete('/availabilities/{availability_id}', response_model=OkResponse)
def delete_availability(
    availability_id: str,
    actor: Actor = Depends(schedule_editor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return availability_store.delete_availability(db, availability_id, actor)

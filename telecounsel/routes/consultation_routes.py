from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_serializer, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telecounsel.auth.dependencies import get_current_actor, require_roles
from telecounsel.core.errors import Unavailable
from telecounsel.database import ensure_consultation_schema, get_db
from telecounsel.scheduling import consultations as scheduler
from telecounsel.scheduling.access import Actor, Role
from telecounsel.scheduling.timeparse import as_utc

router = APIRouter(tags=['consultations'])


def _coerce_id(value):
    if value is None or isinstance(value, str):
        return value
    return str(value)


class CreateConsultationRequest(BaseModel):
    psychologist_id: str
    channel: str
    scheduled_start_at: str
    scheduled_end_at: str
    patient_notes: str | None = None
    patient_id: str | None = None

    @field_validator('psychologist_id', 'patient_id', mode='before')
    @classmethod
    def coerce_ids(cls, value):
        return _coerce_id(value)

    @field_validator('channel')
    @classmethod
    def normalize_channel(cls, value: str) -> str:
        return value.strip().lower()


class UpdateConsultationRequest(BaseModel):
    status: str | None = None
    scheduled_start_at: str | None = None
    scheduled_end_at: str | None = None


class UserSummary(BaseModel):
    id: str
    email: str | None = None
    full_name: str | None = None
    role: str | None = None

    class Config:
        from_attributes = True


class PsychologistSummary(BaseModel):
    id: str
    price_chat: Decimal | None = None
    price_video: Decimal | None = None
    user: UserSummary | None = None

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: str
    method: str | None = None
    amount: Decimal | None = None
    status: str | None = None
    paid_at: datetime | None = None

    class Config:
        from_attributes = True

    @field_serializer('paid_at')
    def serialize_utc(self, value: datetime | None) -> datetime | None:
        return as_utc(value)


class ReviewResponse(BaseModel):
    id: str
    rating: int | None = None
    comment: str | None = None

    class Config:
        from_attributes = True


class StreamChannelResponse(BaseModel):
    id: str
    provider: str | None = None
    channel_ref: str | None = None

    class Config:
        from_attributes = True


class ConsultationResponse(BaseModel):
    id: str
    patient_id: str
    psychologist_id: str
    channel: str
    status: str
    scheduled_start_at: datetime
    scheduled_end_at: datetime
    price: Decimal | None = None
    patient_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

    @field_serializer('scheduled_start_at', 'scheduled_end_at', 'created_at', 'updated_at')
    def serialize_utc(self, value: datetime | None) -> datetime | None:
        return as_utc(value)


class ConsultationDetailResponse(ConsultationResponse):
    patient: UserSummary | None = None
    psychologist: PsychologistSummary | None = None
    payments: list[PaymentResponse] = []
    review: ReviewResponse | None = None
    stream_channel: StreamChannelResponse | None = None


class ConsultationEnvelope(BaseModel):
    consultation: ConsultationResponse


class ConsultationDetailEnvelope(BaseModel):
    consultation: ConsultationDetailResponse


class ConsultationListResponse(BaseModel):
    items: list[ConsultationDetailResponse]


def ensure_database_ready() -> None:
    try:
        ensure_consultation_schema()
    except SQLAlchemyError as exc:
        raise Unavailable('Database unavailable. Verify DATABASE_URL and database credentials.') from exc


@router.get('/consultations', response_model=ConsultationListResponse)
def list_my_consultations(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    ensure_database_ready()

    items = scheduler.list_my_consultations(db, actor)
    return ConsultationListResponse(items=[ConsultationDetailResponse.model_validate(item) for item in items])


@router.get('/consultations/{consultation_id}', response_model=ConsultationDetailEnvelope)
def get_consultation(
    consultation_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    consultation = scheduler.get_consultation(db, consultation_id, actor)
    return ConsultationDetailEnvelope(consultation=ConsultationDetailResponse.model_validate(consultation))


@router.post('/consultations', response_model=ConsultationEnvelope, status_code=status.HTTP_201_CREATED)
def create_consultation(
    data: CreateConsultationRequest,
    actor: Actor = Depends(require_roles(Role.PATIENT, Role.ADMIN)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    consultation = scheduler.create_consultation(
        db,
        actor,
        psychologist_id=data.psychologist_id,
        channel=data.channel,
        scheduled_start_at=data.scheduled_start_at,
        scheduled_end_at=data.scheduled_end_at,
        patient_notes=data.patient_notes,
        patient_id=data.patient_id,
    )
    return ConsultationEnvelope(consultation=ConsultationResponse.model_validate(consultation))


@router.put('/consultations/{consultation_id}', response_model=ConsultationEnvelope)
def update_consultation(
    consultation_id: str,
    data: UpdateConsultationRequest,
    actor: Actor = Depends(require_roles(Role.PSYCHOLOGIST, Role.ADMIN)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    consultation = scheduler.update_consultation(
        db,
        consultation_id,
        actor,
        status=data.status,
        scheduled_start_at=data.scheduled_start_at,
        scheduled_end_at=data.scheduled_end_at,
    )
    return ConsultationEnvelope(consultation=ConsultationResponse.model_validate(consultation))


@router.delete('/consultations/{consultation_id}', response_model=ConsultationEnvelope)
def cancel_consultation(
    consultation_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    consultation = scheduler.cancel_consultation(db, consultation_id, actor)
    return ConsultationEnvelope(consultation=ConsultationResponse.model_validate(consultation))

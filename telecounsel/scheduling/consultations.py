"""Booking, rescheduling and cancellation of consultations.

Active consultations (scheduled/ongoing) of one psychologist never overlap.
Every check-and-write runs under ``schedule_lock`` for that psychologist so
that, of two racing conflicting bookings, only one is committed.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session, joinedload, selectinload

from telecounsel.core import config
from telecounsel.core.errors import Conflict, InvalidInput, InvalidRange, NotFound
from telecounsel.database import persistence_guard, schedule_lock, utcnow
from telecounsel.models.consultation import Consultation, ConsultationStatus
from telecounsel.models.psychologist import Psychologist
from telecounsel.models.user import User
from telecounsel.scheduling.access import (
    Actor,
    Role,
    can_book_consultation,
    can_cancel_consultation,
    can_see_consultation,
    ensure,
    is_admin_or_owner,
)
from telecounsel.scheduling.availability import find_covering_window
from telecounsel.scheduling.overlap import find_overlapping
from telecounsel.scheduling.pricing import parse_channel, resolve_price
from telecounsel.scheduling.status import ACTIVE_STATUSES, check_transition, is_active, parse_status
from telecounsel.scheduling.timeparse import parse_timestamp

logger = logging.getLogger(__name__)

DETAIL_LOADS = (
    joinedload(Consultation.patient),
    joinedload(Consultation.psychologist).joinedload(Psychologist.user),
    selectinload(Consultation.payments),
    joinedload(Consultation.review),
    joinedload(Consultation.stream_channel),
)


def validate_schedule_range(start: datetime, end: datetime) -> None:
    if end <= start:
        raise InvalidRange('Invalid schedule range')


def validate_patient_notes(notes: str | None) -> str | None:
    if notes is None:
        return None

    normalized = notes.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_PATIENT_NOTES_LENGTH:
        raise InvalidInput(f'patient_notes must be {config.MAX_PATIENT_NOTES_LENGTH} characters or fewer')

    return normalized


def get_active_consultations(
    db: Session,
    psychologist_id: str,
    exclude_id: str | None = None,
) -> list[Consultation]:
    query = db.query(Consultation).filter(
        Consultation.psychologist_id == psychologist_id,
        Consultation.status.in_([status.value for status in ACTIVE_STATUSES]),
    )
    if exclude_id is not None:
        query = query.filter(Consultation.id != exclude_id)
    return query.all()


def ensure_no_conflict(
    db: Session,
    psychologist_id: str,
    start: datetime,
    end: datetime,
    exclude_id: str | None = None,
) -> None:
    existing = get_active_consultations(db, psychologist_id, exclude_id=exclude_id)
    clashes = find_overlapping(start, end, existing, 'scheduled_start_at', 'scheduled_end_at')
    if clashes:
        logger.warning(
            'Schedule conflict for psychologist %s (%s-%s) with consultation(s) %s',
            psychologist_id, start, end, ', '.join(c.id for c in clashes),
        )
        raise Conflict('Schedule conflict')


def ensure_within_availability(db: Session, psychologist_id: str, start: datetime, end: datetime) -> None:
    if not config.ENFORCE_AVAILABILITY_WINDOW:
        return
    if find_covering_window(db, psychologist_id, start, end) is None:
        raise Conflict('Requested time is outside the psychologist availability')


def get_consultation_or_404(db: Session, consultation_id: str, with_details: bool = False) -> Consultation:
    query = db.query(Consultation)
    if with_details:
        query = query.options(*DETAIL_LOADS)
    consultation = query.filter(Consultation.id == str(consultation_id)).first()
    if consultation is None:
        raise NotFound('Consultation not found')
    return consultation


def ensure_bookable_patient(db: Session, patient_id: str) -> User:
    patient = db.get(User, patient_id)
    if patient is None:
        raise NotFound('Patient not found')
    if patient.role != Role.PATIENT.value:
        raise InvalidInput('patient_id must refer to a patient')
    return patient


def create_consultation(
    db: Session,
    actor: Actor,
    psychologist_id: str,
    channel,
    scheduled_start_at,
    scheduled_end_at,
    patient_notes: str | None = None,
    patient_id: str | None = None,
) -> Consultation:
    ensure(can_book_consultation(actor), 'Only patients or admins can book consultations')

    # Admins may book on behalf of a patient; everyone else books for themselves.
    on_behalf = actor.is_admin and patient_id is not None
    patient_id = str(patient_id) if on_behalf else actor.id

    psychologist_id = str(psychologist_id)
    channel = parse_channel(channel)

    with persistence_guard(db):
        psychologist = db.get(Psychologist, psychologist_id)
        if psychologist is None:
            raise NotFound('Psychologist not found')

        if on_behalf:
            ensure_bookable_patient(db, patient_id)

        start = parse_timestamp(scheduled_start_at, 'scheduled_start_at')
        end = parse_timestamp(scheduled_end_at, 'scheduled_end_at')
        validate_schedule_range(start, end)
        notes = validate_patient_notes(patient_notes)

        with schedule_lock(db, psychologist_id):
            ensure_within_availability(db, psychologist_id, start, end)
            ensure_no_conflict(db, psychologist_id, start, end)

            consultation = Consultation(
                patient_id=patient_id,
                psychologist_id=psychologist_id,
                channel=channel.value,
                status=ConsultationStatus.SCHEDULED.value,
                scheduled_start_at=start,
                scheduled_end_at=end,
                price=resolve_price(psychologist, channel),
                patient_notes=notes,
            )
            db.add(consultation)
            db.commit()

        db.refresh(consultation)

    logger.info(
        'Booked consultation %s for patient %s with psychologist %s',
        consultation.id, patient_id, psychologist_id,
    )
    return consultation


def update_consultation(
    db: Session,
    consultation_id: str,
    actor: Actor,
    status=None,
    scheduled_start_at=None,
    scheduled_end_at=None,
) -> Consultation:
    with persistence_guard(db):
        consultation = get_consultation_or_404(db, consultation_id)
        ensure(is_admin_or_owner(actor, consultation.psychologist_id))

        if status is None and scheduled_start_at is None and scheduled_end_at is None:
            raise InvalidInput('No fields to update')

        current_status = parse_status(consultation.status)
        next_status = parse_status(status) if status is not None else current_status
        check_transition(current_status, next_status, override=actor.is_admin)

        reschedule = scheduled_start_at is not None or scheduled_end_at is not None
        start, end = consultation.scheduled_start_at, consultation.scheduled_end_at
        if reschedule:
            if not is_active(current_status) and not actor.is_admin:
                raise InvalidInput(f'Cannot reschedule a consultation that is {current_status.value}')
            if scheduled_start_at is not None:
                start = parse_timestamp(scheduled_start_at, 'scheduled_start_at')
            if scheduled_end_at is not None:
                end = parse_timestamp(scheduled_end_at, 'scheduled_end_at')
            validate_schedule_range(start, end)

        reactivated = is_active(next_status) and not is_active(current_status)

        with schedule_lock(db, consultation.psychologist_id):
            if is_active(next_status) and (reschedule or reactivated):
                if reschedule:
                    ensure_within_availability(db, consultation.psychologist_id, start, end)
                ensure_no_conflict(db, consultation.psychologist_id, start, end, exclude_id=consultation.id)

            consultation.status = next_status.value
            consultation.scheduled_start_at = start
            consultation.scheduled_end_at = end
            consultation.updated_at = utcnow()
            db.commit()

        db.refresh(consultation)

    logger.info('Updated consultation %s (status=%s)', consultation.id, consultation.status)
    return consultation


def cancel_consultation(db: Session, consultation_id: str, actor: Actor) -> Consultation:
    with persistence_guard(db):
        consultation = get_consultation_or_404(db, consultation_id)
        ensure(can_cancel_consultation(actor, consultation))

        if consultation.status == ConsultationStatus.CANCELLED.value:
            logger.info('Consultation %s is already cancelled', consultation.id)
            return consultation

        check_transition(consultation.status, ConsultationStatus.CANCELLED, override=actor.is_admin)

        consultation.status = ConsultationStatus.CANCELLED.value
        consultation.updated_at = utcnow()
        db.commit()
        db.refresh(consultation)

    logger.info('Cancelled consultation %s', consultation.id)
    return consultation


def apply_external_status(db: Session, consultation_id: str, status) -> Consultation:
    """Status write issued by a collaborator such as payment confirmation.

    The transition table is not consulted, but a booking that becomes active
    again must still fit the psychologist's calendar.
    """
    next_status = parse_status(status)

    with persistence_guard(db):
        consultation = get_consultation_or_404(db, consultation_id)

        with schedule_lock(db, consultation.psychologist_id):
            if is_active(next_status) and not is_active(consultation.status):
                ensure_no_conflict(
                    db,
                    consultation.psychologist_id,
                    consultation.scheduled_start_at,
                    consultation.scheduled_end_at,
                    exclude_id=consultation.id,
                )

            consultation.status = next_status.value
            consultation.updated_at = utcnow()
            db.commit()

        db.refresh(consultation)

    logger.info('Consultation %s set to %s by collaborator', consultation.id, consultation.status)
    return consultation


def get_consultation(db: Session, consultation_id: str, actor: Actor) -> Consultation:
    with persistence_guard(db):
        consultation = get_consultation_or_404(db, consultation_id, with_details=True)
        ensure(can_see_consultation(actor, consultation))
        return consultation


def list_my_consultations(db: Session, actor: Actor) -> list[Consultation]:
    query = db.query(Consultation).options(*DETAIL_LOADS)

    if actor.role is Role.PSYCHOLOGIST:
        query = query.filter(Consultation.psychologist_id == actor.id)
    elif actor.role is Role.PATIENT:
        query = query.filter(Consultation.patient_id == actor.id)

    with persistence_guard(db):
        return query.order_by(Consultation.scheduled_start_at.desc()).all()

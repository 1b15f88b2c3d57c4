import logging
from datetime import datetime, time, timedelta

from sqlalchemy.orm import Session

from telecounsel.core.errors import Conflict, InvalidInput, InvalidRange, NotFound
from telecounsel.database import persistence_guard, schedule_lock, utcnow
from telecounsel.models.availability import Availability
from telecounsel.models.psychologist import Psychologist
from telecounsel.scheduling.access import Actor, ensure, is_admin_or_owner
from telecounsel.scheduling.overlap import find_overlapping
from telecounsel.scheduling.timeparse import parse_time_of_day, sunday_based_weekday

logger = logging.getLogger(__name__)

MIN_WEEKDAY = 0
MAX_WEEKDAY = 6

# Last minute a weekly window can name; a window ending here runs to midnight.
END_OF_DAY = time(23, 59)


def validate_weekday(value) -> int:
    if value is None:
        raise InvalidInput('weekday is required')

    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise InvalidInput('weekday must be an integer between 0 and 6')

    try:
        weekday = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput('weekday must be an integer between 0 and 6') from exc

    if not MIN_WEEKDAY <= weekday <= MAX_WEEKDAY:
        raise InvalidInput('weekday must be an integer between 0 and 6')

    return weekday


def validate_time_range(start: time, end: time) -> None:
    if end <= start:
        raise InvalidRange('end_time must be after start_time')


def get_same_weekday_slots(
    db: Session,
    psychologist_id: str,
    weekday: int,
    exclude_id: str | None = None,
) -> list[Availability]:
    query = db.query(Availability).filter(
        Availability.psychologist_id == psychologist_id,
        Availability.weekday == weekday,
    )
    if exclude_id is not None:
        query = query.filter(Availability.id != exclude_id)
    return query.all()


def ensure_no_overlap(
    db: Session,
    psychologist_id: str,
    weekday: int,
    start: time,
    end: time,
    exclude_id: str | None = None,
) -> None:
    existing = get_same_weekday_slots(db, psychologist_id, weekday, exclude_id=exclude_id)
    if find_overlapping(start, end, existing):
        logger.warning(
            'Rejected overlapping availability for psychologist %s on weekday %s (%s-%s)',
            psychologist_id, weekday, start, end,
        )
        raise Conflict('Availability overlaps with existing slot')


def get_availability(db: Session, availability_id: str) -> Availability:
    availability = db.query(Availability).filter(Availability.id == str(availability_id)).first()
    if availability is None:
        raise NotFound('Availability not found')
    return availability


def create_availability(
    db: Session,
    psychologist_id: str,
    weekday,
    start_time,
    end_time,
    actor: Actor,
) -> Availability:
    psychologist_id = str(psychologist_id)
    ensure(is_admin_or_owner(actor, psychologist_id))

    weekday = validate_weekday(weekday)
    start = parse_time_of_day(start_time, 'start_time')
    end = parse_time_of_day(end_time, 'end_time')
    validate_time_range(start, end)

    with persistence_guard(db):
        if db.get(Psychologist, psychologist_id) is None:
            raise NotFound('Psychologist not found')

        with schedule_lock(db, psychologist_id):
            ensure_no_overlap(db, psychologist_id, weekday, start, end)

            availability = Availability(
                psychologist_id=psychologist_id,
                weekday=weekday,
                start_time=start,
                end_time=end,
            )
            db.add(availability)
            db.commit()

        db.refresh(availability)

    logger.info('Created availability %s for psychologist %s', availability.id, psychologist_id)
    return availability


def update_availability(
    db: Session,
    availability_id: str,
    actor: Actor,
    weekday=None,
    start_time=None,
    end_time=None,
) -> Availability:
    with persistence_guard(db):
        availability = get_availability(db, availability_id)
        ensure(is_admin_or_owner(actor, availability.psychologist_id))

        if weekday is None and start_time is None and end_time is None:
            raise InvalidInput('No fields to update')

        next_weekday = validate_weekday(weekday) if weekday is not None else availability.weekday
        next_start = parse_time_of_day(start_time, 'start_time') if start_time is not None else availability.start_time
        next_end = parse_time_of_day(end_time, 'end_time') if end_time is not None else availability.end_time
        validate_time_range(next_start, next_end)

        with schedule_lock(db, availability.psychologist_id):
            ensure_no_overlap(
                db,
                availability.psychologist_id,
                next_weekday,
                next_start,
                next_end,
                exclude_id=availability.id,
            )

            availability.weekday = next_weekday
            availability.start_time = next_start
            availability.end_time = next_end
            availability.updated_at = utcnow()
            db.commit()

        db.refresh(availability)

    logger.info('Updated availability %s', availability.id)
    return availability


def delete_availability(db: Session, availability_id: str, actor: Actor) -> dict:
    with persistence_guard(db):
        availability = get_availability(db, availability_id)
        ensure(is_admin_or_owner(actor, availability.psychologist_id))

        db.delete(availability)
        db.commit()

    logger.info('Deleted availability %s', availability_id)
    return {'ok': True}


def list_availabilities(db: Session, psychologist_id: str) -> list[Availability]:
    with persistence_guard(db):
        return db.query(Availability).filter(
            Availability.psychologist_id == str(psychologist_id),
        ).order_by(Availability.weekday.asc(), Availability.start_time.asc()).all()


def find_covering_window(
    db: Session,
    psychologist_id: str,
    start: datetime,
    end: datetime,
) -> Availability | None:
    """Return the declared weekly window that fully contains [start, end), if any.

    Only same-day intervals can be covered; weekday is taken from the UTC start.
    A booking ending exactly at the following midnight fits a window that ends
    at 23:59, since "HH:MM" cannot express 24:00.
    """
    ends_at_midnight = end == datetime.combine(start.date() + timedelta(days=1), time())
    if start.date() != end.date() and not ends_at_midnight:
        return None

    windows = get_same_weekday_slots(db, str(psychologist_id), sunday_based_weekday(start))
    for window in windows:
        if window.start_time > start.time():
            continue
        if ends_at_midnight:
            if window.end_time >= END_OF_DAY:
                return window
        elif end.time() <= window.end_time:
            return window
    return None

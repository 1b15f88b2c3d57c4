import logging
import uuid
import weakref
from contextlib import contextmanager
from datetime import datetime, timezone
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from telecounsel.core import config
from telecounsel.core.errors import Conflict, InternalError, SchedulingError, Unavailable


logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

ACTIVE_OVERLAP_CONSTRAINT = 'consultations_no_active_overlap'

_schema_lock = Lock()
_availability_schema_checked = False
_consultation_schema_checked = False

# Entries drop out once no request holds or waits on them.
_schedule_locks: "weakref.WeakValueDictionary[str, Lock]" = weakref.WeakValueDictionary()
_schedule_locks_guard = Lock()


def generate_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availabilities' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_availabilities_psy_weekday_start '
                    'ON availabilities(psychologist_id, weekday, start_time)'
                )
            )

        _availability_schema_checked = True


def supports_overlap_backstop() -> bool:
    return engine.dialect.name == 'postgresql'


def install_overlap_backstop(connection) -> None:
    """Storage-level backstop: active bookings of one psychologist can never intersect."""
    connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
    exists = connection.execute(
        text('SELECT 1 FROM pg_constraint WHERE conname = :name'),
        {'name': ACTIVE_OVERLAP_CONSTRAINT},
    ).first()
    if not exists:
        connection.execute(
            text(
                f'ALTER TABLE consultations ADD CONSTRAINT {ACTIVE_OVERLAP_CONSTRAINT} '
                'EXCLUDE USING gist ('
                'psychologist_id WITH =, '
                "tsrange(scheduled_start_at, scheduled_end_at, '[)') WITH &&"
                ") WHERE (status IN ('scheduled', 'ongoing'))"
            )
        )


def ensure_consultation_schema() -> None:
    global _consultation_schema_checked

    if _consultation_schema_checked:
        return

    with _schema_lock:
        if _consultation_schema_checked:
            return

        inspector = inspect(engine)

        if 'consultations' not in inspector.get_table_names():
            _consultation_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_consultations_psy_status_start '
                    'ON consultations(psychologist_id, status, scheduled_start_at)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_consultations_patient ON consultations(patient_id)')
            )

        if supports_overlap_backstop():
            # Needs CREATE privileges and clean data; schedule_lock still serialises writers without it.
            try:
                with engine.begin() as connection:
                    install_overlap_backstop(connection)
            except SQLAlchemyError as exc:
                logger.warning('Skipping %s exclusion constraint: %s', ACTIVE_OVERLAP_CONSTRAINT, exc)

        _consultation_schema_checked = True


def _schedule_lock_for(psychologist_id: str) -> Lock:
    with _schedule_locks_guard:
        lock = _schedule_locks.get(psychologist_id)
        if lock is None:
            lock = Lock()
            _schedule_locks[psychologist_id] = lock
        return lock


@contextmanager
def schedule_lock(db: Session, psychologist_id: str):
    """Serialise check-and-write on one psychologist's calendar.

    The caller must commit (or roll back) before leaving the block. Across
    processes, PostgreSQL takes a transaction-scoped advisory lock and SQLite
    takes the database write lock up front with BEGIN IMMEDIATE.
    """
    key = str(psychologist_id)
    with _schedule_lock_for(key):
        dialect = db.get_bind().dialect.name
        if dialect == 'postgresql':
            db.execute(
                text('SELECT pg_advisory_xact_lock(hashtext(:key))'),
                {'key': f'schedule:{key}'},
            )
        elif dialect == 'sqlite':
            raw_connection = db.connection().connection.dbapi_connection
            if not raw_connection.in_transaction:
                db.execute(text('BEGIN IMMEDIATE'))
        yield


def is_overlap_violation(exc: IntegrityError) -> bool:
    return ACTIVE_OVERLAP_CONSTRAINT in str(exc.orig)


@contextmanager
def persistence_guard(db: Session):
    """Roll back and translate database failures into scheduling error kinds."""
    try:
        yield
    except SchedulingError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        if is_overlap_violation(exc):
            logger.warning('Write rejected by storage constraint: %s', exc.orig)
            raise Conflict('Schedule conflict') from exc
        logger.exception('Integrity error outside the overlap constraint')
        raise InternalError() from exc
    except (OperationalError, InterfaceError, DisconnectionError) as exc:
        db.rollback()
        logger.error('Database unreachable: %s', exc)
        raise Unavailable('Database unavailable') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Unexpected database error')
        raise InternalError() from exc

import gc
import logging
import sqlite3
import threading
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from telecounsel import database
from telecounsel.core.errors import Conflict, InternalError, NotFound, Unavailable
from telecounsel.database import ACTIVE_OVERLAP_CONSTRAINT, Base, persistence_guard, schedule_lock
from telecounsel.models.consultation import Consultation
from telecounsel.models.psychologist import Psychologist
from telecounsel.models.user import User
from telecounsel.scheduling.access import Actor, Role
from telecounsel.scheduling.consultations import create_consultation


class _FakeSession:
    def __init__(self):
        self.rolled_back = False

    def rollback(self):
        self.rolled_back = True


def test_persistence_guard_maps_overlap_constraint_to_conflict() -> None:
    session = _FakeSession()

    with pytest.raises(Conflict):
        with persistence_guard(session):
            raise IntegrityError(
                'INSERT',
                {},
                Exception(f'conflicting key value violates exclusion constraint "{ACTIVE_OVERLAP_CONSTRAINT}"'),
            )

    assert session.rolled_back


def test_persistence_guard_does_not_report_other_integrity_errors_as_conflict() -> None:
    session = _FakeSession()

    with pytest.raises(InternalError):
        with persistence_guard(session):
            raise IntegrityError(
                'INSERT',
                {},
                Exception('insert or update on table "consultations" violates foreign key constraint'),
            )

    assert session.rolled_back


def test_persistence_guard_maps_operational_error_to_unavailable() -> None:
    session = _FakeSession()

    with pytest.raises(Unavailable) as exception_info:
        with persistence_guard(session):
            raise OperationalError('SELECT 1', {}, Exception("can't reach database server"))

    assert exception_info.value.code == 'UNAVAILABLE'
    assert session.rolled_back


def test_persistence_guard_hides_unclassified_errors() -> None:
    session = _FakeSession()

    with pytest.raises(InternalError) as exception_info:
        with persistence_guard(session):
            raise SQLAlchemyError('secret table layout detail')

    assert exception_info.value.message == 'Internal server error'
    assert 'secret' not in str(exception_info.value)


def test_persistence_guard_passes_scheduling_errors_through() -> None:
    session = _FakeSession()

    with pytest.raises(NotFound):
        with persistence_guard(session):
            raise NotFound('Consultation not found')

    assert session.rolled_back


def test_schedule_lock_serialises_same_psychologist(db) -> None:
    order: list[str] = []
    entered = threading.Event()
    release = threading.Event()

    def hold_lock() -> None:
        with schedule_lock(db, 'psy-lock'):
            order.append('first-in')
            entered.set()
            release.wait(timeout=5)
            order.append('first-out')

    def wait_for_lock() -> None:
        entered.wait(timeout=5)
        with schedule_lock(db, 'psy-lock'):
            order.append('second-in')

    first = threading.Thread(target=hold_lock)
    second = threading.Thread(target=wait_for_lock)
    first.start()
    second.start()
    entered.wait(timeout=5)
    second.join(timeout=0.2)
    release.set()
    first.join(timeout=5)
    second.join(timeout=5)

    assert order == ['first-in', 'first-out', 'second-in']


def test_racing_conflicting_bookings_only_one_wins(tmp_path) -> None:
    engine = create_engine(
        f'sqlite:///{tmp_path / "race.db"}',
        connect_args={'check_same_thread': False},
    )
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = session_factory()
    setup.add_all([
        User(id='psy-race', email='psy-race@example.com', role='psychologist'),
        User(id='patient-a', email='a@example.com', role='patient'),
        User(id='patient-b', email='b@example.com', role='patient'),
    ])
    setup.commit()
    setup.add(Psychologist(id='psy-race', price_video=Decimal('120000')))
    setup.commit()
    setup.close()

    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def attempt(patient_id: str, start: str, end: str) -> None:
        session = session_factory()
        try:
            barrier.wait(timeout=5)
            create_consultation(
                session,
                Actor(id=patient_id, role=Role.PATIENT),
                psychologist_id='psy-race',
                channel='video',
                scheduled_start_at=start,
                scheduled_end_at=end,
            )
            result = 'booked'
        except Conflict:
            result = 'conflict'
        finally:
            session.close()
        with outcomes_lock:
            outcomes.append(result)

    threads = [
        threading.Thread(target=attempt, args=('patient-a', '2025-01-10T09:00:00Z', '2025-01-10T10:00:00Z')),
        threading.Thread(target=attempt, args=('patient-b', '2025-01-10T09:30:00Z', '2025-01-10T10:30:00Z')),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(outcomes) == ['booked', 'conflict']

    check = session_factory()
    try:
        assert check.query(Consultation).count() == 1
    finally:
        check.close()
        engine.dispose()


def test_sqlite_schedule_lock_holds_database_write_lock(tmp_path) -> None:
    path = tmp_path / 'locked.db'
    engine = create_engine(f'sqlite:///{path}', connect_args={'check_same_thread': False})
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    other_process = sqlite3.connect(str(path), timeout=0.1, isolation_level=None)

    try:
        with schedule_lock(session, 'psy-shared'):
            with pytest.raises(sqlite3.OperationalError, match='locked'):
                other_process.execute('BEGIN IMMEDIATE')
        session.rollback()

        other_process.execute('BEGIN IMMEDIATE')
        other_process.execute('ROLLBACK')
    finally:
        other_process.close()
        session.close()
        engine.dispose()


def test_schedule_locks_are_dropped_once_unused(db) -> None:
    with schedule_lock(db, 'psy-transient'):
        assert 'psy-transient' in database._schedule_locks
    db.rollback()
    gc.collect()

    assert 'psy-transient' not in database._schedule_locks


@pytest.fixture
def schema_engine(tmp_path, monkeypatch: pytest.MonkeyPatch):
    engine = create_engine(f'sqlite:///{tmp_path / "schema.db"}')
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_consultation_schema_checked', False)
    yield engine
    engine.dispose()


def test_failed_overlap_backstop_does_not_block_consultations(
    schema_engine, db, people, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture,
) -> None:
    attempts: list[object] = []

    def refuse(connection) -> None:
        attempts.append(connection)
        raise ProgrammingError('CREATE EXTENSION btree_gist', {}, Exception('permission denied to create extension'))

    monkeypatch.setattr(database, 'supports_overlap_backstop', lambda: True)
    monkeypatch.setattr(database, 'install_overlap_backstop', refuse)

    with caplog.at_level(logging.WARNING, logger='telecounsel.database'):
        database.ensure_consultation_schema()
        database.ensure_consultation_schema()

    assert len(attempts) == 1
    assert database._consultation_schema_checked
    assert ACTIVE_OVERLAP_CONSTRAINT in caplog.text

    consultation = create_consultation(
        db,
        people['patient_1'],
        psychologist_id='psy-x',
        channel='video',
        scheduled_start_at='2025-01-10T09:00:00Z',
        scheduled_end_at='2025-01-10T10:00:00Z',
    )
    assert consultation.status == 'scheduled'

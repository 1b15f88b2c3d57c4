import os
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from telecounsel.database import Base  # noqa: E402
from telecounsel.models import availability, consultation, payment, review, stream_channel  # noqa: E402,F401
from telecounsel.models.psychologist import Psychologist  # noqa: E402
from telecounsel.models.user import User  # noqa: E402
from telecounsel.scheduling.access import Actor, Role  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def add_user(db, user_id: str, role: str) -> User:
    user = User(id=user_id, email=f'{user_id}@example.com', full_name=user_id.title(), role=role)
    db.add(user)
    db.commit()
    return user


def add_psychologist(db, user_id: str, price_chat=None, price_video=None) -> Psychologist:
    add_user(db, user_id, 'psychologist')
    psychologist = Psychologist(id=user_id, price_chat=price_chat, price_video=price_video)
    db.add(psychologist)
    db.commit()
    return psychologist


@pytest.fixture
def people(db):
    """Two psychologists, two patients and an admin."""
    add_psychologist(db, 'psy-x', price_chat=Decimal('100000.00'), price_video=Decimal('150000.00'))
    add_psychologist(db, 'psy-y', price_chat=Decimal('80000.00'))
    add_user(db, 'patient-1', 'patient')
    add_user(db, 'patient-2', 'patient')
    add_user(db, 'admin-1', 'admin')
    return {
        'psy_x': Actor(id='psy-x', role=Role.PSYCHOLOGIST),
        'psy_y': Actor(id='psy-y', role=Role.PSYCHOLOGIST),
        'patient_1': Actor(id='patient-1', role=Role.PATIENT),
        'patient_2': Actor(id='patient-2', role=Role.PATIENT),
        'admin': Actor(id='admin-1', role=Role.ADMIN),
    }

"""Role and ownership checks shared by the availability and consultation stores."""

from enum import Enum

from pydantic import BaseModel

from telecounsel.core.errors import Forbidden
from telecounsel.models.consultation import Consultation


class Role(str, Enum):
    PATIENT = "patient"
    PSYCHOLOGIST = "psychologist"
    ADMIN = "admin"


class Actor(BaseModel):
    id: str
    role: Role
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def is_admin_or_owner(actor: Actor | None, owner_psychologist_id) -> bool:
    if actor is None:
        return False
    if actor.is_admin:
        return True
    return actor.role is Role.PSYCHOLOGIST and actor.id == str(owner_psychologist_id)


def can_see_consultation(actor: Actor | None, consultation: Consultation) -> bool:
    if actor is None:
        return False
    if actor.is_admin:
        return True
    return actor.id in (str(consultation.patient_id), str(consultation.psychologist_id))


def can_cancel_consultation(actor: Actor | None, consultation: Consultation) -> bool:
    if actor is None:
        return False
    return actor.is_admin or actor.id == str(consultation.patient_id)


def can_book_consultation(actor: Actor | None) -> bool:
    return actor is not None and actor.role in (Role.PATIENT, Role.ADMIN)


def ensure(allowed: bool, message: str = 'Forbidden') -> None:
    if not allowed:
        raise Forbidden(message)

"""Consultation status lifecycle.

scheduled is the initial state. A status may always be rewritten to itself.
"""

from telecounsel.core.errors import InvalidInput
from telecounsel.models.consultation import ConsultationStatus

ACTIVE_STATUSES = frozenset({ConsultationStatus.SCHEDULED, ConsultationStatus.ONGOING})

ALLOWED_TRANSITIONS = {
    ConsultationStatus.SCHEDULED: frozenset({
        ConsultationStatus.ONGOING,
        ConsultationStatus.CANCELLED,
        ConsultationStatus.NO_SHOW,
    }),
    ConsultationStatus.ONGOING: frozenset({
        ConsultationStatus.COMPLETED,
        ConsultationStatus.CANCELLED,
        ConsultationStatus.REFUNDED,
    }),
    ConsultationStatus.COMPLETED: frozenset({ConsultationStatus.REFUNDED}),
    ConsultationStatus.CANCELLED: frozenset({ConsultationStatus.REFUNDED}),
    ConsultationStatus.NO_SHOW: frozenset({ConsultationStatus.REFUNDED}),
    ConsultationStatus.REFUNDED: frozenset(),
}


def parse_status(value: str | ConsultationStatus | None) -> ConsultationStatus:
    try:
        return ConsultationStatus(value)
    except ValueError as exc:
        allowed = ', '.join(status.value for status in ConsultationStatus)
        raise InvalidInput(f'status must be one of: {allowed}') from exc


def is_active(status: str | ConsultationStatus) -> bool:
    return ConsultationStatus(status) in ACTIVE_STATUSES


def can_transition(current: str | ConsultationStatus, target: str | ConsultationStatus) -> bool:
    current, target = ConsultationStatus(current), ConsultationStatus(target)
    return current is target or target in ALLOWED_TRANSITIONS[current]


def check_transition(
    current: str | ConsultationStatus,
    target: str | ConsultationStatus,
    override: bool = False,
) -> None:
    if override or can_transition(current, target):
        return
    raise InvalidInput(
        f'Cannot change status from {ConsultationStatus(current).value} to {ConsultationStatus(target).value}'
    )

from decimal import Decimal

from telecounsel.core.errors import InvalidInput
from telecounsel.models.consultation import ConsultationChannel
from telecounsel.models.psychologist import Psychologist


def parse_channel(value: str | ConsultationChannel | None) -> ConsultationChannel:
    try:
        return ConsultationChannel(value)
    except ValueError as exc:
        raise InvalidInput('channel must be one of: chat, video') from exc


def resolve_price(psychologist: Psychologist, channel: str | ConsultationChannel) -> Decimal | None:
    """Price snapshot for a new booking; an unset price stays None rather than zero."""
    if parse_channel(channel) is ConsultationChannel.CHAT:
        return psychologist.price_chat
    return psychologist.price_video

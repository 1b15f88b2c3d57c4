"""Half-open interval overlap checks shared by availability and consultations."""


def overlaps(start_a, end_a, start_b, end_b) -> bool:
    """Return True when [start_a, end_a) and [start_b, end_b) intersect.

    Works for any mutually comparable values (datetimes for consultations,
    times of day for weekly availability). Intervals that only touch at a
    boundary do not overlap, so back-to-back bookings are allowed.
    """
    return start_a < end_b and start_b < end_a


def find_overlapping(start, end, rows, start_attr: str = 'start_time', end_attr: str = 'end_time') -> list:
    return [
        row for row in rows
        if overlaps(start, end, getattr(row, start_attr), getattr(row, end_attr))
    ]

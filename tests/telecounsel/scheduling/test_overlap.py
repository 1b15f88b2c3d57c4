from datetime import datetime, time

import pytest

from telecounsel.scheduling.overlap import find_overlapping, overlaps


def test_touching_intervals_do_not_overlap() -> None:
    assert overlaps(time(10, 0), time(11, 0), time(11, 0), time(12, 0)) is False
    assert overlaps(time(11, 0), time(12, 0), time(10, 0), time(11, 0)) is False


def test_strict_containment_overlaps() -> None:
    assert overlaps(time(9, 0), time(12, 0), time(10, 0), time(10, 30)) is True
    assert overlaps(time(10, 0), time(10, 30), time(9, 0), time(12, 0)) is True


@pytest.mark.parametrize(
    ('first', 'second'),
    [
        ((9, 11), (10, 12)),
        ((9, 10), (10, 11)),
        ((9, 10), (11, 12)),
        ((9, 12), (9, 12)),
        ((9, 12), (10, 11)),
        ((13, 14), (9, 10)),
    ],
)
def test_overlap_is_symmetric(first: tuple[int, int], second: tuple[int, int]) -> None:
    a_start, a_end = (datetime(2025, 1, 10, hour) for hour in first)
    b_start, b_end = (datetime(2025, 1, 10, hour) for hour in second)

    assert overlaps(a_start, a_end, b_start, b_end) == overlaps(b_start, b_end, a_start, a_end)


def test_find_overlapping_returns_only_intersecting_rows() -> None:
    class Row:
        def __init__(self, name: str, start: time, end: time):
            self.name = name
            self.start_time = start
            self.end_time = end

    rows = [
        Row('early', time(8, 0), time(9, 0)),
        Row('middle', time(9, 30), time(10, 30)),
        Row('late', time(11, 0), time(12, 0)),
    ]

    clashes = find_overlapping(time(9, 0), time(11, 0), rows)

    assert [row.name for row in clashes] == ['middle']

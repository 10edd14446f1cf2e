from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from concertsync.utils.slug import create_slug
from concertsync.utils.time import days_until, to_iso


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("The Testers", "the-testers"),
        ("  AC/DC: Live!  ", "ac-dc-live"),
        ("Sigur Rós", "sigur-r-s"),
        ("", ""),
        (None, ""),
    ],
)
def test_create_slug(value: str | None, expected: str) -> None:
    assert create_slug(value) == expected


def test_days_until_counts_calendar_days() -> None:
    today = date(2024, 6, 1)

    assert days_until(date(2024, 6, 1), today=today) == 0
    assert days_until(date(2024, 6, 8), today=today) == 7
    assert days_until(date(2024, 5, 31), today=today) == -1


def test_to_iso_treats_naive_values_as_utc() -> None:
    assert to_iso(None) is None
    assert to_iso(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05+00:00"
    assert to_iso(datetime(2024, 1, 2, tzinfo=UTC)) == "2024-01-02T00:00:00+00:00"

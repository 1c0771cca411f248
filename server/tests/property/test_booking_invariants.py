"""Property-based tests for booking system invariants."""

from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from booking_api.core.dates import DateRange
from booking_api.core.exceptions import ValidationError
from booking_api.services.availability_service import Candidate, select_bookings_to_cancel
from booking_api.services.flight_gateway import normalize_flight_ids
from booking_api.services.inventory_service import lock_keys_for

# Strategies for generating test data
stay_starts = st.dates(min_value=date(2024, 1, 1), max_value=date(2030, 12, 31))
stay_lengths = st.integers(min_value=1, max_value=60)
room_counts = st.integers(min_value=1, max_value=10)
flight_tokens = st.text(alphabet="ABCDEFGHJK0123456789", min_size=1, max_size=8)
separators = st.sampled_from(["%", "splitting_here", " % "])


@given(start=stay_starts, nights=stay_lengths)
def test_stay_covers_each_night_once(start, nights):
    """A stay yields every night from check-in up to, not including, check-out."""
    stay = DateRange(start, start + timedelta(days=nights))
    days = list(stay)

    assert len(days) == nights == stay.nights
    assert days[0] == start
    assert days[-1] == stay.end - timedelta(days=1)
    assert stay.end not in stay
    assert all(b - a == timedelta(days=1) for a, b in zip(days, days[1:]))
    # Iterating twice gives the same nights
    assert list(stay) == days


@given(start=stay_starts, offset=st.integers(min_value=-30, max_value=0))
def test_empty_or_reversed_stay_rejected(start, offset):
    with pytest.raises(ValidationError):
        DateRange(start, start + timedelta(days=offset))


@given(tokens=st.lists(flight_tokens, min_size=1, max_size=6), separator=separators)
def test_normalized_ids_are_unique_and_complete(tokens, separator):
    """Joining ids with any separator and normalizing gives back the distinct ids."""
    segments = normalize_flight_ids([separator.join(tokens)])

    assert len(segments) == len(set(segments))
    assert segments == list(dict.fromkeys(tokens))


@given(ids=st.lists(st.text(max_size=40), max_size=10))
def test_normalization_is_idempotent(ids):
    once = normalize_flight_ids(ids)
    assert normalize_flight_ids(once) == once
    assert all(segment and segment == segment.strip() for segment in once)


@st.composite
def candidates(draw):
    rooms = draw(st.lists(room_counts, min_size=1, max_size=15))
    base = datetime(2024, 5, 1)
    # Newest first, as the reducer queries them
    return [
        Candidate(uuid4(), uuid4(), count, base - timedelta(minutes=index))
        for index, count in enumerate(rooms)
    ]


@given(pool=candidates(), deficit=st.integers(min_value=-5, max_value=200))
def test_selection_is_minimal_newest_prefix(pool, deficit):
    selected = select_bookings_to_cancel(pool, deficit)
    freed = sum(c.rooms for c in selected)

    # Always a prefix of the newest-first order
    assert selected == pool[:len(selected)]

    if deficit <= 0:
        assert selected == []
    elif sum(c.rooms for c in pool) < deficit:
        assert selected == pool
    else:
        assert freed >= deficit
        # Dropping the last pick would not be enough
        assert freed - selected[-1].rooms < deficit


@given(
    stays=st.lists(st.tuples(stay_starts, stay_lengths), min_size=1, max_size=5),
)
def test_lock_keys_match_nights(stays):
    room_type_id = uuid4()
    ranges = [DateRange(start, start + timedelta(days=n)) for start, n in stays]

    keys = lock_keys_for((room_type_id, r) for r in ranges)

    assert len(keys) == sum(r.nights for r in ranges)
    assert all(key[0] == room_type_id for key in keys)

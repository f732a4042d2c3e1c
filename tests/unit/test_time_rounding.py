"""
Unit Tests for Time Rounding

Tests verify:
1. Rounding to the nearest N minutes, with carry into the next hour/day/year
2. Ties round half to even
3. Rounding is idempotent
4. Granularities must divide the hour
5. Vectorized rounding matches the scalar version
"""

import pytest
import pandas as pd
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys
import pytz

# Add src to path
src_path = Path(__file__).parent.parent.parent / 'src'
sys.path.insert(0, str(src_path))

from gauge_obs.errors import InvalidGranularity, MissingRequiredColumn
from gauge_obs.normalize.schemas import ObservationTable
from gauge_obs.normalize.time_rounding import (
    VALID_GRANULARITIES,
    round_series,
    round_to_nearest_minutes,
    stamp_slice_time,
    validate_granularity,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


# Test Cases: Scalar rounding

@pytest.mark.parametrize("ts,g,expected", [
    (utc(2017, 9, 1, 0, 58, 45), 5, utc(2017, 9, 1, 1, 0)),
    (utc(2017, 9, 1, 0, 12, 29), 5, utc(2017, 9, 1, 0, 10)),
    (utc(2017, 9, 1, 0, 12, 31), 5, utc(2017, 9, 1, 0, 15)),
    (utc(2017, 9, 1, 12, 29, 59), 60, utc(2017, 9, 1, 12, 0)),
    (utc(2017, 9, 1, 12, 30, 1), 60, utc(2017, 9, 1, 13, 0)),
    (utc(2017, 9, 1, 6, 44, 0), 15, utc(2017, 9, 1, 6, 45)),
])
def test_round_to_nearest(ts, g, expected):
    assert round_to_nearest_minutes(ts, g) == expected


def test_carry_into_next_year():
    """Carry past minute 59 rolls the hour, day, month and year"""
    result = round_to_nearest_minutes(utc(2017, 12, 31, 23, 59, 40), 1)

    assert result == utc(2018, 1, 1, 0, 0)


def test_ties_round_half_to_even():
    """2.5 min -> 0 and 7.5 min -> 10 at 5-minute granularity"""
    assert round_to_nearest_minutes(utc(2017, 9, 1, 0, 2, 30), 5) == utc(2017, 9, 1, 0, 0)
    assert round_to_nearest_minutes(utc(2017, 9, 1, 0, 7, 30), 5) == utc(2017, 9, 1, 0, 10)


def test_subsecond_breaks_tie():
    """Microseconds count toward the minute"""
    ts = utc(2017, 9, 1, 0, 2, 30, 500000)

    assert round_to_nearest_minutes(ts, 5) == utc(2017, 9, 1, 0, 5)


def test_naive_time_taken_as_utc():
    result = round_to_nearest_minutes(datetime(2017, 9, 1, 0, 58, 45), 5)

    assert result == utc(2017, 9, 1, 1, 0)
    assert result.tzinfo is not None


def test_non_utc_input_converted():
    """Rounding happens on the UTC clock"""
    ist = timezone(timedelta(hours=5, minutes=30))

    result = round_to_nearest_minutes(datetime(2017, 9, 1, 10, 7, tzinfo=ist), 15)

    assert result == utc(2017, 9, 1, 4, 30)


@pytest.mark.parametrize("g", VALID_GRANULARITIES)
def test_idempotent(g):
    """Rounding a rounded time changes nothing"""
    start = utc(2017, 12, 31, 22, 0)
    for seconds in range(0, 2 * 3600, 97):
        once = round_to_nearest_minutes(start + timedelta(seconds=seconds), g)
        assert round_to_nearest_minutes(once, g) == once
        assert once.second == 0 and once.microsecond == 0
        assert once.minute % g == 0


# Test Cases: Granularity validation

@pytest.mark.parametrize("g", [0, -5, 7, 45, 90, 2.5, "5", None, True])
def test_invalid_granularity(g):
    with pytest.raises(InvalidGranularity):
        validate_granularity(g)


def test_invalid_granularity_rejected_by_rounding():
    with pytest.raises(InvalidGranularity):
        round_to_nearest_minutes(utc(2017, 9, 1), 7)


def test_float_integral_granularity_accepted():
    assert validate_granularity(15.0) == 15


# Test Cases: Vectorized rounding

@pytest.mark.parametrize("g", [1, 5, 15, 60])
def test_series_matches_scalar(g):
    times = pd.Series(pd.date_range(
        datetime(2017, 12, 31, 22, 0), periods=300, freq='37s', tz=pytz.UTC
    ))

    rounded = round_series(times, g)

    expected = [round_to_nearest_minutes(t.to_pydatetime(), g) for t in times]
    assert list(rounded) == expected


def test_series_keeps_missing():
    times = pd.Series([pd.Timestamp('2017-09-01 00:58:45', tz='UTC'), pd.NaT])

    rounded = round_series(times, 5)

    assert rounded.iloc[0] == pd.Timestamp('2017-09-01 01:00', tz='UTC')
    assert pd.isna(rounded.iloc[1])


# Test Cases: Stamping tables

def test_stamp_slice_time():
    frame = pd.DataFrame({
        'site_no': ['A', 'B'],
        'time': ['2017-09-01 00:58:45', '2017-09-01 00:03:00'],
        'discharge': [1.0, 2.0],
    })
    table = ObservationTable.from_frame(frame)

    stamped = stamp_slice_time(table, 5)

    assert 'slice_time' not in table.columns
    assert list(stamped.frame['slice_time']) == [
        pd.Timestamp('2017-09-01 01:00', tz='UTC'),
        pd.Timestamp('2017-09-01 00:05', tz='UTC'),
    ]


def test_stamp_requires_time():
    table = ObservationTable(pd.DataFrame({'site_no': ['A'], 'discharge': [1.0]}))

    with pytest.raises(MissingRequiredColumn):
        stamp_slice_time(table, 5)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Time Rounding Service

Rounds observation times to the nearest N minutes so that observations
collected at slightly different instants share one time-slice key.

Design Principles:
- The granularity must evenly divide 60; anything else is a configuration error
- Rounding is measured from the top of the containing hour, so a carry past
  minute 59 lands on the next hour (and day, month, year) naturally
- Ties round half to even
- Naive times are treated as UTC; results are always UTC timezone-aware
"""

import logging
from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd

from gauge_obs.errors import InvalidGranularity, MissingRequiredColumn
from gauge_obs.normalize.schemas import OBS_TIME, SLICE_TIME, ObservationTable

logger = logging.getLogger(__name__)


# Granularities that divide the hour
VALID_GRANULARITIES = (1, 2, 3, 4, 5, 6, 10, 12, 15, 20, 30, 60)


def validate_granularity(nearest_minutes) -> int:
    """
    Check a rounding granularity.

    Raises:
        InvalidGranularity: If not a positive integer dividing 60
    """
    if isinstance(nearest_minutes, bool):
        raise InvalidGranularity(nearest_minutes)
    try:
        as_int = int(nearest_minutes)
    except (TypeError, ValueError):
        raise InvalidGranularity(nearest_minutes) from None
    if as_int != nearest_minutes or as_int not in VALID_GRANULARITIES:
        raise InvalidGranularity(nearest_minutes)
    return as_int


def round_to_nearest_minutes(ts: datetime, nearest_minutes: int = 5) -> datetime:
    """
    Round a timestamp to the nearest `nearest_minutes`.

    rounded minute = round((minute + second/60) / g) * g, added to the
    top of the hour.

    Args:
        ts: Timestamp (naive values are taken as UTC)
        nearest_minutes: Granularity g, must divide 60

    Returns:
        UTC timezone-aware datetime with zero seconds

    Examples:
        >>> round_to_nearest_minutes(datetime(2017, 9, 1, 0, 58, 45, tzinfo=timezone.utc), 5)
        datetime.datetime(2017, 9, 1, 1, 0, tzinfo=datetime.timezone.utc)
    """
    g = validate_granularity(nearest_minutes)

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    else:
        ts = ts.astimezone(timezone.utc)

    the_min = ts.minute + (ts.second + ts.microsecond / 1e6) / 60.0
    round_min = round(the_min / g) * g

    hour_floor = ts.replace(minute=0, second=0, microsecond=0)
    return hour_floor + timedelta(minutes=round_min)


def round_series(times: pd.Series, nearest_minutes: int = 5) -> pd.Series:
    """
    Vectorized round_to_nearest_minutes over a datetime Series.

    Missing times stay missing.
    """
    g = validate_granularity(nearest_minutes)

    times = pd.to_datetime(times, utc=True)
    hour_floor = times.dt.floor('h')
    the_min = (times - hour_floor).dt.total_seconds() / 60.0
    # np.round rounds half to even, like the builtin round
    round_min = np.round(the_min / g) * g

    return hour_floor + pd.to_timedelta(round_min, unit='min')


def stamp_slice_time(table: ObservationTable, nearest_minutes: int = 5) -> ObservationTable:
    """
    Add the rounded slice time to every observation.

    Args:
        table: Observation table with an observation time column
        nearest_minutes: Granularity in minutes

    Returns:
        New table with a `slice_time` column
    """
    g = validate_granularity(nearest_minutes)
    if OBS_TIME not in table.columns:
        raise MissingRequiredColumn([OBS_TIME], context="time rounding")

    frame = table.to_frame()
    frame[SLICE_TIME] = round_series(frame[OBS_TIME], g)

    n_missing = int(frame[SLICE_TIME].isna().sum())
    if n_missing:
        logger.warning(f"{n_missing} observations have no time and no slice time")

    logger.info(
        f"Rounded {len(frame)} observation times to nearest {g} min "
        f"({frame[SLICE_TIME].nunique()} distinct slice times)"
    )
    return table.with_frame(frame)

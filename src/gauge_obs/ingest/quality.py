"""
Discharge Quality Filters

The minimal removal policy applied before writing observations:
missing discharge, observations older than a cutoff, observations
without a location, non-positive discharge, and discharge quality below
a threshold.

Every filter returns the filtered table together with the number of
rows it removed, so no drop goes unreported.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import pandas as pd
from pydantic import BaseModel

from gauge_obs.errors import MissingRequiredColumn
from gauge_obs.normalize.schemas import (
    DISCHARGE,
    DISCHARGE_QUALITY,
    ELEVATION,
    LAT,
    LON,
    OBS_TIME,
    ObservationTable,
)

logger = logging.getLogger(__name__)


class FilterReport(BaseModel):
    """Counts of rows removed by each filter."""
    n_input: int = 0
    n_missing_discharge: int = 0
    n_too_old: int = 0
    n_missing_location: int = 0
    n_nonpositive: int = 0
    n_low_quality: int = 0

    @property
    def n_removed(self) -> int:
        return (
            self.n_missing_discharge + self.n_too_old + self.n_missing_location
            + self.n_nonpositive + self.n_low_quality
        )

    @property
    def n_output(self) -> int:
        return self.n_input - self.n_removed


def _require(table: ObservationTable, column: str, context: str):
    if column not in table.columns:
        raise MissingRequiredColumn([column], context=context)


def _keep(table: ObservationTable, mask: pd.Series, reason: str) -> tuple[ObservationTable, int]:
    n_removed = int((~mask).sum())
    if n_removed:
        logger.warning(f"Removed {n_removed} of {len(table)} observations: {reason}")
    return table.with_frame(table.frame.loc[mask].copy()), n_removed


def drop_missing_discharge(table: ObservationTable) -> tuple[ObservationTable, int]:
    """Remove rows whose discharge is missing."""
    _require(table, DISCHARGE, "missing discharge filter")
    return _keep(table, table.frame[DISCHARGE].notna(), "missing discharge")


def filter_oldest_time(
    table: ObservationTable,
    oldest_time: datetime
) -> tuple[ObservationTable, int]:
    """Remove observations before `oldest_time` (naive taken as UTC)."""
    _require(table, OBS_TIME, "oldest time filter")
    if oldest_time.tzinfo is None:
        oldest_time = oldest_time.replace(tzinfo=timezone.utc)
    times = pd.to_datetime(table.frame[OBS_TIME], utc=True)
    return _keep(table, times >= pd.Timestamp(oldest_time), f"before {oldest_time}")


def drop_missing_location(table: ObservationTable) -> tuple[ObservationTable, int]:
    """Remove rows missing any of lon, lat or elevation."""
    missing = [c for c in (LON, LAT, ELEVATION) if c not in table.columns]
    if missing:
        raise MissingRequiredColumn(missing, context="location filter")
    located = table.frame[[LON, LAT, ELEVATION]].notna().all(axis=1)
    return _keep(table, located, "missing location")


def remove_nonpositive_discharge(table: ObservationTable) -> tuple[ObservationTable, int]:
    """Remove rows with zero or negative discharge (missing rows are kept)."""
    _require(table, DISCHARGE, "non-positive discharge filter")
    q = table.frame[DISCHARGE]
    return _keep(table, q.isna() | (q > 0), "non-positive discharge")


def apply_quality_threshold(
    table: ObservationTable,
    threshold: float
) -> tuple[ObservationTable, int]:
    """
    Keep rows with discharge_quality * 0.01 >= threshold.

    Quality is a 0-100 percentage; the threshold is a fraction, so 1.0
    keeps only fully trusted observations. Rows without a quality code
    are removed.
    """
    _require(table, DISCHARGE_QUALITY, "quality threshold filter")
    quality = pd.to_numeric(table.frame[DISCHARGE_QUALITY], errors='coerce')
    return _keep(table, quality * 0.01 >= threshold, f"quality below {threshold}")


def apply_discharge_filters(
    table: ObservationTable,
    drop_missing: bool = False,
    oldest_time: Optional[datetime] = None,
    drop_unlocated: bool = False,
    remove_nonpositive: bool = False,
    quality_threshold: Optional[float] = None
) -> tuple[ObservationTable, FilterReport]:
    """
    Apply the selected filters in order and report what each removed.

    Args:
        table: Observation table
        drop_missing: Remove missing discharge
        oldest_time: Remove observations before this time
        drop_unlocated: Remove observations without lon, lat or elevation
        remove_nonpositive: Remove discharge <= 0
        quality_threshold: Minimum quality fraction, None to skip

    Returns:
        Tuple of (filtered table, FilterReport)
    """
    report = FilterReport(n_input=len(table))

    if drop_missing:
        table, report.n_missing_discharge = drop_missing_discharge(table)
    if oldest_time is not None:
        table, report.n_too_old = filter_oldest_time(table, oldest_time)
    if drop_unlocated:
        table, report.n_missing_location = drop_missing_location(table)
    if remove_nonpositive:
        table, report.n_nonpositive = remove_nonpositive_discharge(table)
    if quality_threshold is not None:
        table, report.n_low_quality = apply_quality_threshold(table, quality_threshold)

    logger.info(f"Filters kept {report.n_output} of {report.n_input} observations")
    return table, report

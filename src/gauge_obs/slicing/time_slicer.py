"""
Time Slicer

Partitions a rounded observation table into time slices: groups of
observations sharing one rounded timestamp, optionally split further by
site. Each slice is independent, which makes it the unit of parallel
writing.
"""

import logging
import warnings
from datetime import datetime
from typing import Literal, Optional

import pandas as pd

from gauge_obs.errors import (
    DuplicateSiteObservation,
    DuplicateSiteObservations,
    MissingRequiredColumn,
)
from gauge_obs.normalize.schemas import SITE_NO, SLICE_TIME, ObservationTable

logger = logging.getLogger(__name__)


DuplicatePolicy = Literal["warn", "reject"]

# Format of slice times in tags and file names
SLICE_TIME_FORMAT = "%Y-%m-%d_%H:%M:%S"


class TimeSlice:
    """
    Observations sharing one rounded timestamp.

    Attributes:
        rounded_time: The shared slice time (None for site-only partitions)
        site_no: Site of a site sub-partition, or None
        table: The member observations
    """

    def __init__(
        self,
        rounded_time: Optional[datetime],
        table: ObservationTable,
        site_no: Optional[str] = None
    ):
        self.rounded_time = rounded_time
        self.table = table
        self.site_no = site_no

    @property
    def key(self) -> tuple:
        return (self.rounded_time, self.site_no)

    def __len__(self) -> int:
        return len(self.table)

    def __repr__(self) -> str:
        return f"TimeSlice(time={self.rounded_time}, site={self.site_no}, rows={len(self)})"

    def tag(self, base_tag: Optional[str] = None) -> str:
        """
        Group tag for file naming.

        Joins the base tag, the slice time and the site with '_', skipping
        whichever are absent.
        """
        parts = []
        if base_tag:
            parts.append(base_tag)
        if self.rounded_time is not None:
            parts.append(self.rounded_time.strftime(SLICE_TIME_FORMAT))
        if self.site_no is not None:
            parts.append(self.site_no)
        if not parts:
            raise ValueError("A group tag is required for an unkeyed slice")
        return "_".join(parts)

    def duplicate_sites(self) -> list[str]:
        """Sites with more than one observation in this slice."""
        frame = self.table.frame
        if SITE_NO not in frame.columns:
            return []
        dupes = frame.loc[frame[SITE_NO].duplicated(), SITE_NO]
        return list(pd.unique(dupes))


def _check_duplicates(time_slice: TimeSlice, policy: DuplicatePolicy):
    sites = time_slice.duplicate_sites()
    if not sites:
        return
    if policy == "reject":
        raise DuplicateSiteObservations(time_slice.rounded_time, sites)
    message = (
        f"Time slice {time_slice.rounded_time} has multiple observations for "
        f"{len(sites)} site(s): {sites}"
    )
    logger.warning(message)
    warnings.warn(message, DuplicateSiteObservation, stacklevel=3)


def partition_by_site(table: ObservationTable, rounded_time: Optional[datetime] = None) -> list[TimeSlice]:
    """
    Partition a table by site, in order of first appearance.

    Rows keep their source order within each site.
    """
    if SITE_NO not in table.columns:
        raise MissingRequiredColumn([SITE_NO], context="site partitioning")

    slices = []
    for site_no, group in table.frame.groupby(SITE_NO, sort=False):
        slices.append(
            TimeSlice(rounded_time, table.with_frame(group.copy()), site_no=str(site_no))
        )
    return slices


def slice_by_time(
    table: ObservationTable,
    by_site: bool = False,
    duplicate_policy: DuplicatePolicy = "warn"
) -> list[TimeSlice]:
    """
    Group a rounded table into time slices, ascending by slice time.

    Args:
        table: Observation table with a `slice_time` column
        by_site: Further partition each slice by site
        duplicate_policy: 'warn' surfaces duplicate sites within a slice,
            'reject' raises; duplicates are never dropped

    Returns:
        List of TimeSlice (empty for an empty table)

    Raises:
        MissingRequiredColumn: If `slice_time` is absent
        DuplicateSiteObservations: On duplicates with policy 'reject'
    """
    if duplicate_policy not in ("warn", "reject"):
        raise ValueError(f"Invalid duplicate_policy '{duplicate_policy}'")
    if SLICE_TIME not in table.columns:
        raise MissingRequiredColumn([SLICE_TIME], context="time slicing")

    frame = table.frame
    if frame.empty:
        return []

    n_missing = int(frame[SLICE_TIME].isna().sum())
    if n_missing:
        logger.warning(f"{n_missing} observations without a slice time are not sliced")

    slices = []
    for slice_time, group in frame.groupby(SLICE_TIME, sort=True):
        rounded_time = pd.Timestamp(slice_time).to_pydatetime()
        time_slice = TimeSlice(rounded_time, table.with_frame(group.copy()))
        _check_duplicates(time_slice, duplicate_policy)

        if by_site:
            slices.extend(partition_by_site(time_slice.table, rounded_time))
        else:
            slices.append(time_slice)

    logger.info(
        f"Sliced {len(frame) - n_missing} observations into {len(slices)} group(s)"
        f"{' by site' if by_site else ''}"
    )
    return slices

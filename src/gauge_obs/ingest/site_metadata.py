"""
Site Location Metadata

Attaches longitude, latitude and elevation to observations by site.

The join is an inner join: sites without location metadata are
excluded. That exclusion is expected behavior, but it is always logged,
warned about and counted in the JoinReport.
"""

import logging
import warnings
from pathlib import Path
from typing import Iterable, Union

import pandas as pd
import xarray as xr
from pydantic import BaseModel

from gauge_obs.errors import JoinMiss, MissingRequiredColumn
from gauge_obs.normalize.schemas import (
    ELEVATION,
    LAT,
    LOCATION_COLUMNS,
    LON,
    SITE_NO,
    ObservationTable,
    SiteLocation,
)

logger = logging.getLogger(__name__)


# RouteLink variable -> canonical column
ROUTE_LINK_VARIABLES = {
    'gages': SITE_NO,
    'lon': LON,
    'lat': LAT,
    'alt': ELEVATION,
}


class JoinReport(BaseModel):
    """Outcome of joining observations to site locations."""
    n_input: int
    n_joined: int
    excluded_sites: list[str] = []

    @property
    def n_excluded_sites(self) -> int:
        return len(self.excluded_sites)

    @property
    def n_excluded_rows(self) -> int:
        return self.n_input - self.n_joined


def _clean_site_ids(series: pd.Series) -> pd.Series:
    def decode(v):
        if isinstance(v, bytes):
            return v.decode('utf-8', errors='replace')
        return str(v)
    return series.map(decode).str.strip()


def locations_from_records(locations: Iterable[SiteLocation]) -> pd.DataFrame:
    """Location frame from validated SiteLocation records."""
    return pd.DataFrame(
        [loc.dict() for loc in locations],
        columns=LOCATION_COLUMNS
    )


def locations_from_dataset(ds: xr.Dataset) -> pd.DataFrame:
    """
    Location frame from a RouteLink-style dataset.

    Reads `gages`, `lon`, `lat` and `alt`; reaches without a gage (blank
    identifiers) are dropped.
    """
    missing = [v for v in ROUTE_LINK_VARIABLES if v not in ds.variables]
    if missing:
        raise MissingRequiredColumn(missing, context="RouteLink locations")

    frame = pd.DataFrame({
        column: ds[variable].values for variable, column in ROUTE_LINK_VARIABLES.items()
    })
    frame[SITE_NO] = _clean_site_ids(frame[SITE_NO])
    frame = frame.loc[frame[SITE_NO] != ''].reset_index(drop=True)

    logger.info(f"Read locations for {len(frame)} gaged reaches")
    return frame[LOCATION_COLUMNS]


def load_route_link_locations(path: Union[str, Path]) -> pd.DataFrame:
    """Read gage locations from a RouteLink NetCDF file."""
    logger.info(f"Loading gage locations from {path}")
    with xr.open_dataset(path) as ds:
        return locations_from_dataset(ds.load())


def join_site_metadata(
    table: ObservationTable,
    locations: pd.DataFrame
) -> tuple[ObservationTable, JoinReport]:
    """
    Inner-join observations to site locations on stripped site ids.

    Location columns already on the observations are replaced. When a
    site appears more than once in `locations`, its first row is used.

    Args:
        table: Observation table with `site_no`
        locations: Frame with site_no, lon, lat, elevation

    Returns:
        Tuple of (joined table, JoinReport)

    Raises:
        MissingRequiredColumn: If either side lacks the join columns
    """
    if SITE_NO not in table.columns:
        raise MissingRequiredColumn([SITE_NO], context="site metadata join")
    missing = set(LOCATION_COLUMNS) - set(locations.columns)
    if missing:
        raise MissingRequiredColumn(missing, context="site locations")

    locs = locations[LOCATION_COLUMNS].copy()
    locs[SITE_NO] = _clean_site_ids(locs[SITE_NO])
    locs = locs.loc[locs[SITE_NO] != '']
    n_dupes = int(locs[SITE_NO].duplicated().sum())
    if n_dupes:
        logger.warning(f"Ignoring {n_dupes} duplicate location rows")
        locs = locs.drop_duplicates(subset=SITE_NO, keep='first')

    obs = table.to_frame()
    obs[SITE_NO] = _clean_site_ids(obs[SITE_NO])
    obs = obs.drop(columns=[c for c in (LON, LAT, ELEVATION) if c in obs.columns])

    known = set(locs[SITE_NO])
    excluded = [s for s in pd.unique(obs[SITE_NO]) if s not in known]

    joined = obs.merge(locs, on=SITE_NO, how='inner', sort=False)
    report = JoinReport(n_input=len(obs), n_joined=len(joined), excluded_sites=excluded)

    if excluded:
        message = (
            f"Excluded {report.n_excluded_rows} observations from {len(excluded)} "
            f"site(s) without location metadata: {excluded}"
        )
        logger.warning(message)
        warnings.warn(message, JoinMiss, stacklevel=2)

    logger.info(f"Joined locations for {report.n_joined} of {report.n_input} observations")
    return table.with_frame(joined), report

"""
USGS Time-Slice Writer

Writes one artifact per time slice: one row per site with the rounded
slice time, the query (collection) time, discharge in m³/s, the
discharge quality code and the observation variance.

Design Principles:
- Discharge is always written in SI units (cms)
- File names derive only from the slice time and resolution, so
  identical input gives identical names and identical bytes
- Two encodings share one column set: CSV text and NetCDF3 through xarray
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional, Union

import numpy as np
import pandas as pd
import xarray as xr

from gauge_obs.errors import MissingRequiredColumn
from gauge_obs.normalize.schemas import (
    DISCHARGE,
    DISCHARGE_QUALITY,
    OBS_TIME,
    QUERY_TIME,
    SITE_NO,
    SLICE_TIME,
    DischargeUnit,
    ErrorStatistic,
    ObservationTable,
)
from gauge_obs.normalize.time_rounding import validate_granularity
from gauge_obs.normalize.units import conversion_factor, convert_discharge
from gauge_obs.slicing.time_slicer import SLICE_TIME_FORMAT, TimeSlice
from gauge_obs.writers.atomic import atomic_output

logger = logging.getLogger(__name__)


TimeSliceFormat = Literal["csv", "netcdf"]

VARIANCE = "variance"
TIME_SLICE_COLUMNS = [SITE_NO, SLICE_TIME, QUERY_TIME, DISCHARGE, DISCHARGE_QUALITY, VARIANCE]

FILE_EXTENSIONS = {
    "csv": "csv",
    "netcdf": "ncdf",
}

# NetCDF3 has no missing value for integers
QUALITY_FILL = -9999

_EPOCH = pd.Timestamp("1970-01-01", tz="UTC")


def time_slice_file_name(
    rounded_time: datetime,
    resolution_minutes: int,
    fmt: TimeSliceFormat = "netcdf"
) -> str:
    """
    Deterministic artifact name for a slice time.

    Examples:
        >>> from datetime import timezone
        >>> time_slice_file_name(datetime(2017, 9, 1, 0, 15, tzinfo=timezone.utc), 15)
        '2017-09-01_00:15:00.15min.usgsTimeSlice.ncdf'
    """
    if fmt not in FILE_EXTENSIONS:
        raise ValueError(f"Invalid format '{fmt}'. Must be one of: {list(FILE_EXTENSIONS)}")
    resolution = validate_granularity(resolution_minutes)
    stamp = rounded_time.strftime(SLICE_TIME_FORMAT)
    return f"{stamp}.{resolution:02d}min.usgsTimeSlice.{FILE_EXTENSIONS[fmt]}"


def _epoch_seconds(times: pd.Series) -> pd.Series:
    times = pd.to_datetime(times, utc=True)
    return ((times - _EPOCH) // pd.Timedelta(seconds=1)).astype('int64')


def time_slice_frame(
    time_slice: TimeSlice,
    error_column: Optional[str] = None
) -> pd.DataFrame:
    """
    Build the rows of a time-slice artifact.

    Args:
        time_slice: Slice to serialize
        error_column: Error column to use (defaults to the table's only one);
            a plain column of that name is read as variance in the
            table's discharge unit

    Returns:
        DataFrame with TIME_SLICE_COLUMNS, sorted by site

    Raises:
        MissingRequiredColumn: If site, discharge, quality, a query or
            observation time, or the error column is absent
    """
    table = time_slice.table
    query_column = QUERY_TIME if QUERY_TIME in table.columns else OBS_TIME
    missing = [c for c in (SITE_NO, DISCHARGE, DISCHARGE_QUALITY, query_column)
               if c not in table.columns]
    try:
        err = table.error_column(error_column)
    except KeyError:
        err = None
        if error_column is None or error_column not in table.columns:
            missing.append(error_column or VARIANCE)
    if missing:
        raise MissingRequiredColumn(missing, context="time slice")

    from_unit = table.discharge_unit
    table = convert_discharge(table, DischargeUnit.CMS)
    frame = table.frame
    if err is None:
        variance = frame[error_column] * conversion_factor(from_unit, DischargeUnit.CMS) ** 2
    else:
        # the conversion renames the error column to its cms name
        err = next(c for c in table.error_columns.values()
                   if c.model == err.model and c.statistic == err.statistic)
        variance = frame[err.name]
        if err.statistic == ErrorStatistic.STDEV:
            variance = variance ** 2

    quality = frame[DISCHARGE_QUALITY]
    if pd.api.types.is_numeric_dtype(quality):
        quality = quality.round().astype('Int64')

    out = pd.DataFrame({
        SITE_NO: frame[SITE_NO].astype(str).str.strip().to_numpy(),
        SLICE_TIME: time_slice.rounded_time.strftime(SLICE_TIME_FORMAT),
        QUERY_TIME: _epoch_seconds(frame[query_column]).to_numpy(),
        DISCHARGE: frame[DISCHARGE].to_numpy(dtype=float),
        DISCHARGE_QUALITY: quality.to_numpy(),
        VARIANCE: variance.to_numpy(dtype=float),
    }, columns=TIME_SLICE_COLUMNS)

    return out.sort_values(SITE_NO, kind='mergesort').reset_index(drop=True)


def _to_dataset(out: pd.DataFrame, time_slice: TimeSlice, resolution: int) -> xr.Dataset:
    dim = 'stationIdInd'
    quality = pd.to_numeric(out[DISCHARGE_QUALITY], errors='coerce')
    ds = xr.Dataset(
        {
            SITE_NO: (dim, out[SITE_NO].to_numpy(dtype=str)),
            SLICE_TIME: (dim, out[SLICE_TIME].to_numpy(dtype=str)),
            QUERY_TIME: (dim, out[QUERY_TIME].to_numpy(dtype=np.int32)),
            DISCHARGE: (dim, out[DISCHARGE].to_numpy(dtype=float)),
            DISCHARGE_QUALITY: (dim, quality.fillna(QUALITY_FILL).to_numpy(dtype=np.int32)),
            VARIANCE: (dim, out[VARIANCE].to_numpy(dtype=float)),
        },
        attrs={
            'sliceCenterTimeUTC': time_slice.rounded_time.strftime(SLICE_TIME_FORMAT),
            'sliceTimeResolutionMinutes': str(resolution),
        }
    )
    ds[DISCHARGE].attrs['units'] = 'm3 s-1'
    ds[VARIANCE].attrs['units'] = 'm6 s-2'
    ds[QUERY_TIME].attrs['units'] = 'seconds since 1970-01-01 00:00:00 UTC'
    ds[DISCHARGE_QUALITY].attrs['missing_value'] = np.int32(QUALITY_FILL)
    return ds


def write_time_slice(
    time_slice: TimeSlice,
    out_dir: Union[str, Path],
    resolution_minutes: int,
    fmt: TimeSliceFormat = "netcdf",
    error_column: Optional[str] = None
) -> Path:
    """
    Write one time-slice artifact.

    Args:
        time_slice: Slice with a rounded time
        out_dir: Output directory
        resolution_minutes: Rounding granularity, recorded in the name
        fmt: 'csv' or 'netcdf'
        error_column: Error column to write as variance

    Returns:
        Path of the written artifact

    Raises:
        MissingRequiredColumn: If the slice lacks required columns
        IoFailure: If the artifact could not be written
    """
    if time_slice.rounded_time is None:
        raise ValueError("Time-slice artifacts need a rounded time")

    path = Path(out_dir) / time_slice_file_name(time_slice.rounded_time, resolution_minutes, fmt)
    out = time_slice_frame(time_slice, error_column=error_column)

    with atomic_output(path) as tmp_path:
        if fmt == "csv":
            out.to_csv(tmp_path, index=False, lineterminator='\n')
        else:
            ds = _to_dataset(out, time_slice, validate_granularity(resolution_minutes))
            ds.to_netcdf(tmp_path, engine='scipy', format='NETCDF3_64BIT')

    logger.info(f"Wrote {len(out)} sites to {path}")
    return path


def read_time_slice(path: Union[str, Path]) -> ObservationTable:
    """
    Read a time-slice artifact back into a cms observation table.

    The variance column is kept under its artifact name ('variance').
    """
    path = Path(path)
    if path.suffix == '.csv':
        frame = pd.read_csv(path, dtype={SITE_NO: str})
    else:
        # query_time stays integer seconds
        with xr.open_dataset(path, engine='scipy', decode_times=False) as ds:
            frame = ds.load().to_dataframe().reset_index(drop=True)
        frame[SITE_NO] = frame[SITE_NO].map(
            lambda v: v.decode('utf-8') if isinstance(v, bytes) else str(v)
        )
        frame[SLICE_TIME] = frame[SLICE_TIME].map(
            lambda v: v.decode('utf-8') if isinstance(v, bytes) else str(v)
        )
        frame[DISCHARGE_QUALITY] = frame[DISCHARGE_QUALITY].where(
            frame[DISCHARGE_QUALITY] != QUALITY_FILL
        )

    missing = set(TIME_SLICE_COLUMNS) - set(frame.columns)
    if missing:
        raise MissingRequiredColumn(missing, context=f"time slice {path.name}")

    frame[SITE_NO] = frame[SITE_NO].str.strip()
    frame[SLICE_TIME] = pd.to_datetime(frame[SLICE_TIME], format=SLICE_TIME_FORMAT, utc=True)
    frame[QUERY_TIME] = pd.to_datetime(frame[QUERY_TIME], unit='s', utc=True)

    logger.debug(f"Read {len(frame)} sites from {path}")
    return ObservationTable(frame[TIME_SLICE_COLUMNS], discharge_unit=DischargeUnit.CMS)

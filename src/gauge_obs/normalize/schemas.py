"""
Canonical Data Schemas for Gauge Observation Preparation

Defines the typed records and the observation table used throughout the system.

Design Principles:
- Timezone-aware timestamps (always UTC)
- Units travel as explicit enums next to the numbers, never inside column names
- Tables are copy-on-write: every transformation returns a new table
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

import pandas as pd
from pydantic import BaseModel, Field, validator


# Canonical column names
SITE_NO = "site_no"
OBS_TIME = "time"
SLICE_TIME = "slice_time"
QUERY_TIME = "query_time"
DISCHARGE = "discharge"
DISCHARGE_QUALITY = "discharge_quality"
LON = "lon"
LAT = "lat"
ELEVATION = "elevation"

RAW_COLUMNS = [SITE_NO, OBS_TIME, DISCHARGE, DISCHARGE_QUALITY]
LOCATION_COLUMNS = [SITE_NO, LON, LAT, ELEVATION]


class DischargeUnit(str, Enum):
    """Discharge units understood by the writers."""
    CFS = "cfs"  # cubic feet per second
    CMS = "cms"  # cubic meters per second


class ObservationKind(str, Enum):
    """Observation kinds. Only discharge is serialized by this system."""
    DISCHARGE = "discharge"


class ErrorModelKind(str, Enum):
    """Closed set of three-sigma error models."""
    PCT_PLUS_QUANTILE = "pct_plus_quantile"
    CLIM_TAPER = "clim_taper"


class ErrorStatistic(str, Enum):
    """How a derived error column expresses the one-sigma error."""
    VARIANCE = "variance"
    STDEV = "st.dev."

    @property
    def exponent(self) -> int:
        return 2 if self is ErrorStatistic.VARIANCE else 1


class Observation(BaseModel):
    """
    A single streamflow gauge observation.

    Discharge is either missing (None) or finite. Location is missing until
    joined from site metadata.
    """
    site_no: str = Field(..., description="Gauge site identifier")
    time: datetime = Field(..., description="Observation time (UTC, timezone-aware)")
    discharge: Optional[float] = Field(None, description="Discharge value")
    discharge_quality: Optional[int] = Field(None, description="Quality code (0-100)")
    lon: Optional[float] = Field(None, ge=-180.0, lt=360.0, description="Longitude (degrees)")
    lat: Optional[float] = Field(None, ge=-90.0, le=90.0, description="Latitude (degrees)")
    elevation: Optional[float] = Field(None, description="Elevation (m)")

    @validator('time')
    def time_must_be_utc(cls, v):
        """Ensure time is timezone-aware"""
        if v.tzinfo is None:
            raise ValueError("time must be timezone-aware (UTC)")
        return v.astimezone(timezone.utc)

    @validator('discharge')
    def discharge_must_be_finite(cls, v):
        if v is not None and not math.isfinite(v):
            raise ValueError("discharge must be finite or missing")
        return v


class SiteLocation(BaseModel):
    """Location metadata for a gauge site."""
    site_no: str
    lon: float = Field(..., ge=-180.0, lt=360.0)
    lat: float = Field(..., ge=-90.0, le=90.0)
    elevation: float


class ErrorColumn(BaseModel):
    """
    Describes a derived error column.

    The column name is for human traceability only; consumers read
    the statistic and unit from here.
    """
    name: str
    model: ErrorModelKind
    statistic: ErrorStatistic
    unit: DischargeUnit

    class Config:
        """Pydantic config"""
        frozen = True


def error_column_name(
    model: ErrorModelKind,
    statistic: ErrorStatistic,
    unit: DischargeUnit,
    variable: str = DISCHARGE
) -> str:
    """e.g. 'discharge variance (cms^2) [clim_taper]'"""
    statistic = ErrorStatistic(statistic)
    return (
        f"{variable} {statistic.value} "
        f"({DischargeUnit(unit).value}^{statistic.exponent}) "
        f"[{ErrorModelKind(model).value}]"
    )


class ObsSeqRecord(BaseModel):
    """
    One observation definition as consumed by create_obs_sequence.

    Built transiently while writing; exists on disk only as lines.
    """
    index: int = Field(..., ge=1, description="1-based sequence index")
    obs_type: int = Field(..., description="Observation kind index")
    vertical_code: int = Field(-1, description="Vertical coordinate code")
    elevation: float
    lon: float = Field(..., ge=0.0, lt=360.0, description="Longitude in [0, 360)")
    lat: float = Field(..., ge=-90.0, le=90.0)
    time: datetime
    error: float
    value: float

    def to_lines(self) -> list[str]:
        """Render the record in the fixed positional order."""
        t = self.time
        return [
            str(self.index),
            str(self.obs_type),
            str(self.vertical_code),
            format_number(self.elevation),
            format_number(self.lon),
            format_number(self.lat),
            f"{t.year} {t.month} {t.day} {t.hour} {t.minute} {t.second}",
            format_number(self.error),
            format_number(self.value),
        ]


def format_number(value) -> str:
    """
    Format a number without losing precision.

    Integers print as integers; floats use the shortest repr that
    round-trips (up to 17 significant digits).
    """
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    return repr(float(value))


def _or_nan(value: Optional[float]) -> float:
    return float('nan') if value is None else value


def normalize_longitude(lon: float) -> float:
    """Map a longitude onto [0, 360)."""
    lon360 = float(lon) % 360.0
    # tiny negatives round up to exactly 360.0
    if lon360 >= 360.0:
        lon360 = 0.0
    return lon360


class ObservationTable:
    """
    A discharge observation table with its units made explicit.

    Wraps a pandas DataFrame using the canonical column names. The frame
    is never modified in place; transformations build a new table.

    Attributes:
        frame: Observation rows
        kind: Observation kind of the rows
        discharge_unit: Unit of the discharge column
        error_columns: Derived error columns, keyed by column name
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        kind: ObservationKind = ObservationKind.DISCHARGE,
        discharge_unit: DischargeUnit = DischargeUnit.CFS,
        error_columns: Optional[Iterable[ErrorColumn]] = None
    ):
        self._frame = frame
        self.kind = ObservationKind(kind)
        self.discharge_unit = DischargeUnit(discharge_unit)
        self.error_columns = {c.name: c for c in (error_columns or [])}

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame

    @property
    def columns(self) -> list[str]:
        return list(self._frame.columns)

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return (
            f"ObservationTable(rows={len(self)}, kind={self.kind.value}, "
            f"unit={self.discharge_unit.value}, errors={list(self.error_columns)})"
        )

    def to_frame(self) -> pd.DataFrame:
        """Return a copy of the underlying frame."""
        return self._frame.copy()

    def with_frame(self, frame: pd.DataFrame, **changes) -> 'ObservationTable':
        """Build a new table over `frame`, carrying this table's metadata."""
        error_columns = changes.pop('error_columns', list(self.error_columns.values()))
        error_columns = [c for c in error_columns if c.name in frame.columns]
        return ObservationTable(
            frame,
            kind=changes.pop('kind', self.kind),
            discharge_unit=changes.pop('discharge_unit', self.discharge_unit),
            error_columns=error_columns
        )

    def error_column(self, name: Optional[str] = None) -> ErrorColumn:
        """
        Resolve a derived error column.

        Args:
            name: Column name; may be omitted when the table has exactly one

        Raises:
            KeyError: If the column is unknown or the choice is ambiguous
        """
        if name is not None:
            return self.error_columns[name]
        if len(self.error_columns) != 1:
            raise KeyError(
                f"Expected exactly one error column, found {list(self.error_columns)}"
            )
        return next(iter(self.error_columns.values()))

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        discharge_unit: DischargeUnit = DischargeUnit.CFS
    ) -> 'ObservationTable':
        """
        Build a table from a raw frame.

        Site identifiers are stripped of padding and times parsed as UTC
        (naive times are taken to be UTC).
        """
        frame = frame.copy()
        if SITE_NO in frame.columns:
            frame[SITE_NO] = frame[SITE_NO].astype(str).str.strip()
        for col in (OBS_TIME, SLICE_TIME, QUERY_TIME):
            if col in frame.columns:
                frame[col] = pd.to_datetime(frame[col], utc=True)
        return cls(frame, discharge_unit=discharge_unit)

    @classmethod
    def from_observations(
        cls,
        observations: Iterable[Observation],
        discharge_unit: DischargeUnit = DischargeUnit.CFS
    ) -> 'ObservationTable':
        """Build a table from validated Observation records."""
        rows = [
            {
                SITE_NO: o.site_no,
                OBS_TIME: o.time,
                DISCHARGE: _or_nan(o.discharge),
                DISCHARGE_QUALITY: o.discharge_quality,
                LON: _or_nan(o.lon),
                LAT: _or_nan(o.lat),
                ELEVATION: _or_nan(o.elevation),
            }
            for o in observations
        ]
        frame = pd.DataFrame(rows, columns=[
            SITE_NO, OBS_TIME, DISCHARGE, DISCHARGE_QUALITY, LON, LAT, ELEVATION
        ])
        return cls.from_frame(frame, discharge_unit=discharge_unit)

"""
Observation Preparation Drivers

Top-level entry points tying the pieces together:
- make_time_slices: raw gauge observations -> one time-slice artifact per rounded time
- prepare_obs_seq: observations + site locations -> create_obs_sequence input files
- time_slice_files_to_obs_seq: time-slice artifacts -> create_obs_sequence input files

Design Principles:
- Schema and configuration problems abort the batch before any file is written
- Each group is written independently; one group's failure is reported,
  not propagated, and never discards the other groups' artifacts
- Every removed observation is counted in the returned report
"""

import logging
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from gauge_obs.errors import IoFailure, MissingRequiredColumn
from gauge_obs.ingest.quality import FilterReport, apply_discharge_filters
from gauge_obs.ingest.site_metadata import JoinReport, join_site_metadata
from gauge_obs.normalize.schemas import (
    DischargeUnit,
    ELEVATION,
    LAT,
    LON,
    OBS_TIME,
    ObservationTable,
    RAW_COLUMNS,
    SLICE_TIME,
)
from gauge_obs.normalize.time_rounding import stamp_slice_time, validate_granularity
from gauge_obs.normalize.units import convert_discharge
from gauge_obs.pipeline.parallel import run_groups
from gauge_obs.slicing.time_slicer import (
    DuplicatePolicy,
    TimeSlice,
    partition_by_site,
    slice_by_time,
)
from gauge_obs.uncertainty.error_models import ArrayLike, ErrorModel
from gauge_obs.uncertainty.variance import derive_variance
from gauge_obs.writers.obs_seq import (
    STREAM_FLOW_OBS_TYPE,
    ObsSeqWriteResult,
    check_obs_seq_columns,
    check_obs_seq_layout,
    write_obs_seq,
)
from gauge_obs.writers.time_slice import (
    VARIANCE,
    TimeSliceFormat,
    read_time_slice,
    write_time_slice,
)

logger = logging.getLogger(__name__)


class BatchReport:
    """
    Outcome of writing a batch of groups.

    Attributes:
        paths: Group key -> artifact path, for groups written successfully
        failures: Group key -> exception, for groups that failed
        filter_report: Rows removed by the quality filters
    """

    def __init__(
        self,
        paths: Dict,
        failures: Dict,
        filter_report: Optional[FilterReport] = None
    ):
        self.paths = paths
        self.failures = failures
        self.filter_report = filter_report or FilterReport()

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self):
        """Raise the first group failure, if any."""
        if self.failures:
            key, error = next(iter(self.failures.items()))
            logger.error(f"{len(self.failures)} group(s) failed, first: {key}")
            raise error

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(written={len(self.paths)}, "
            f"failed={len(self.failures)}, removed={self.filter_report.n_removed})"
        )


class SliceWriteReport(BatchReport):
    """Time-slice batch outcome; `paths` maps rounded time -> artifact path."""
    pass


class ObsSeqBatchReport(BatchReport):
    """
    Observation sequence batch outcome; `paths` maps group tag -> file.

    Attributes:
        results: Group tag -> ObsSeqWriteResult with per-file counts
        join_report: Sites excluded by the location join
    """

    def __init__(
        self,
        results: Dict[str, ObsSeqWriteResult],
        failures: Dict,
        filter_report: Optional[FilterReport] = None,
        join_report: Optional[JoinReport] = None
    ):
        super().__init__(
            {tag: r.path for tag, r in results.items()},
            failures,
            filter_report
        )
        self.results = results
        self.join_report = join_report

    @property
    def n_dropped_missing(self) -> int:
        return sum(r.n_dropped for r in self.results.values())


def _require_columns(table: ObservationTable, columns: Iterable[str], context: str):
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise MissingRequiredColumn(missing, context=context)


def _collect(results) -> tuple[Dict, Dict]:
    written = {key: r.value for key, r in results.items() if r.ok}
    failures = {key: r.error for key, r in results.items() if not r.ok}
    for key, error in failures.items():
        if not isinstance(error, IoFailure):
            logger.error(f"Group {key} failed: {error}")
    return written, failures


def write_time_slices(
    slices: Sequence[TimeSlice],
    out_dir: Union[str, Path],
    resolution_minutes: int,
    fmt: TimeSliceFormat = "netcdf",
    error_column: Optional[str] = None,
    max_workers: int = 1
) -> SliceWriteReport:
    """
    Write one artifact per time slice.

    Returns:
        SliceWriteReport mapping each rounded time to its artifact path
    """
    validate_granularity(resolution_minutes)
    tasks = [
        (
            s.rounded_time,
            partial(write_time_slice, s, out_dir, resolution_minutes,
                    fmt=fmt, error_column=error_column)
        )
        for s in slices
    ]
    written, failures = _collect(run_groups(tasks, max_workers=max_workers, desc="Time slices"))
    return SliceWriteReport(written, failures)


def make_time_slices(
    table: ObservationTable,
    out_dir: Union[str, Path],
    nearest_minutes: int = 5,
    error_model: Optional[ErrorModel] = None,
    as_variance: bool = True,
    sample: Optional[ArrayLike] = None,
    oldest_time: Optional[datetime] = None,
    fmt: TimeSliceFormat = "netcdf",
    error_column: Optional[str] = None,
    duplicate_policy: DuplicatePolicy = "warn",
    max_workers: int = 1
) -> SliceWriteReport:
    """
    Turn raw gauge observations into time-slice artifacts.

    Missing discharge and observations before `oldest_time` are removed,
    discharge is converted to cms, the variance is derived, times are
    rounded to `nearest_minutes`, and each slice is written.

    Args:
        table: Raw observations (site_no, time, discharge, discharge_quality)
        out_dir: Output directory
        nearest_minutes: Slice resolution, must divide 60
        error_model: Model for the variance; None uses an existing error column
        as_variance: Derive variance (True) or st.dev. (False); the artifact
            always holds variance
        sample: Historical sample for the error model quantiles
        oldest_time: Ignore observations before this time
        fmt: 'csv' or 'netcdf'
        error_column: Existing error column when no model is given
        duplicate_policy: 'warn' or 'reject' duplicate sites in a slice
        max_workers: Worker threads

    Returns:
        SliceWriteReport

    Raises:
        InvalidGranularity, MissingRequiredColumn, WrongObservationKind:
            before anything is written
    """
    g = validate_granularity(nearest_minutes)
    _require_columns(table, RAW_COLUMNS, "time slices")

    logger.info(f"Making {g}-minute time slices from {len(table)} observations")

    table, filter_report = apply_discharge_filters(
        table, drop_missing=True, oldest_time=oldest_time
    )
    if error_model is None:
        try:
            existing = table.error_column(error_column)
        except KeyError:
            raise MissingRequiredColumn([error_column or "error"], context="time slices") from None
    table = convert_discharge(table, DischargeUnit.CMS)
    if error_model is None:
        # conversion renames error columns to their cms names
        error_column = next(
            c.name for c in table.error_columns.values()
            if c.model == existing.model and c.statistic == existing.statistic
        )
    else:
        before = set(table.error_columns)
        table = derive_variance(table, error_model, as_variance=as_variance, sample=sample)
        error_column = next(name for name in table.error_columns if name not in before)

    table = stamp_slice_time(table, g)
    slices = slice_by_time(table, duplicate_policy=duplicate_policy)

    report = write_time_slices(
        slices, out_dir, g, fmt=fmt, error_column=error_column, max_workers=max_workers
    )
    report.filter_report = filter_report
    logger.info(f"Time slices: {report}")
    return report


def _build_groups(
    table: ObservationTable,
    by_time: bool,
    by_site: bool,
    duplicate_policy: DuplicatePolicy
) -> List[TimeSlice]:
    if by_time:
        return slice_by_time(table, by_site=by_site, duplicate_policy=duplicate_policy)
    if by_site:
        return partition_by_site(table)
    return [TimeSlice(None, table)]


def prepare_obs_seq(
    table: ObservationTable,
    out_dir: Union[str, Path],
    error_model: Optional[ErrorModel] = None,
    locations: Optional[pd.DataFrame] = None,
    error_tag: Optional[str] = None,
    group_tag: Optional[str] = None,
    by_time: bool = False,
    by_site: bool = False,
    nearest_minutes: Optional[int] = None,
    as_variance: bool = True,
    sample: Optional[ArrayLike] = None,
    error_column: Optional[str] = None,
    time_column: Optional[str] = None,
    remove_nonpositive: bool = True,
    quality_threshold: Optional[float] = 1.0,
    drop_missing: bool = False,
    obs_type: int = STREAM_FLOW_OBS_TYPE,
    num_copies: int = 1,
    num_quality: int = 0,
    duplicate_policy: DuplicatePolicy = "warn",
    max_workers: int = 1
) -> ObsSeqBatchReport:
    """
    Write create_obs_sequence input files for discharge observations.

    Steps: join site locations, derive the observation error (quantiles
    over the positive joined discharge unless a sample is given), remove
    unlocated, non-positive and low-quality observations, group, and write
    one file per group.

    Grouping:
        by_time and/or by_site: one file per slice time and/or site, tagged
            '<group_tag>_<slice time>_<site>' (absent parts skipped)
        neither: a single file tagged `group_tag`

    Args:
        table: Discharge observations
        out_dir: Output directory
        error_model: Error model; None uses `error_column` as is
        locations: Site locations to inner-join (site_no, lon, lat, elevation)
        error_tag: Error tag for file names (defaults to the model tag)
        group_tag: Base group tag (required when not grouping)
        by_time: One file per rounded time
        by_site: One file per site
        nearest_minutes: Round times first (required by `by_time` unless
            the table already carries slice times)
        as_variance: Write variance (True) or st.dev. (False)
        sample: Historical sample for the error model quantiles
        error_column: Existing error column when no model is given
        time_column: Time column written (defaults to slice time when present)
        remove_nonpositive: Remove discharge <= 0
        quality_threshold: Keep discharge_quality * 0.01 >= threshold; None skips
        drop_missing: Drop missing discharge instead of warning
        obs_type: Observation kind index
        num_copies: Data copies in the header (only 1 is supported)
        num_quality: QC values per observation in the header (only 0 is supported)
        duplicate_policy: 'warn' or 'reject' duplicate sites within a slice
        max_workers: Worker threads

    Returns:
        ObsSeqBatchReport

    Raises:
        ValueError: On inconsistent grouping or tagging arguments
        InvalidGranularity, MissingRequiredColumn, WrongObservationKind,
            InsufficientData: before anything is written
    """
    if nearest_minutes is not None:
        nearest_minutes = validate_granularity(nearest_minutes)
    if by_time and nearest_minutes is None and SLICE_TIME not in table.columns:
        raise ValueError("nearest_minutes is required to group by time")
    if not (by_time or by_site) and not group_tag:
        raise ValueError("group_tag is required when writing a single group")
    error_tag = error_tag or (error_model.tag if error_model is not None else None)
    if not error_tag:
        raise ValueError("error_tag is required when no error model is given")
    check_obs_seq_layout(num_copies, num_quality)

    join_report = None
    if locations is not None:
        table, join_report = join_site_metadata(table, locations)

    if error_model is not None:
        before = set(table.error_columns)
        table = derive_variance(table, error_model, as_variance=as_variance, sample=sample)
        error_column = next(name for name in table.error_columns if name not in before)

    table, filter_report = apply_discharge_filters(
        table,
        drop_unlocated=all(c in table.columns for c in (LON, LAT, ELEVATION)),
        remove_nonpositive=remove_nonpositive,
        quality_threshold=quality_threshold
    )

    if nearest_minutes is not None:
        table = stamp_slice_time(table, nearest_minutes)

    time_column = time_column or (SLICE_TIME if SLICE_TIME in table.columns else OBS_TIME)
    error_column = check_obs_seq_columns(table, time_column, error_column)

    groups = _build_groups(table, by_time, by_site, duplicate_policy)
    tasks = [
        (
            g.tag(group_tag),
            partial(
                write_obs_seq, g.table, out_dir, g.tag(group_tag), error_tag,
                time_column=time_column,
                error_column=error_column,
                obs_type=obs_type,
                num_copies=num_copies,
                num_quality=num_quality,
                drop_missing=drop_missing
            )
        )
        for g in groups
    ]

    results, failures = _collect(
        run_groups(tasks, max_workers=max_workers, desc="Observation sequences")
    )
    report = ObsSeqBatchReport(results, failures, filter_report, join_report)
    logger.info(f"Observation sequences: {report}")
    return report


def read_time_slices(files: Iterable[Union[str, Path]]) -> ObservationTable:
    """Concatenate time-slice artifacts into one cms table."""
    tables = [read_time_slice(f) for f in files]
    if not tables:
        raise ValueError("No time-slice files given")
    frame = pd.concat([t.frame for t in tables], ignore_index=True)
    logger.info(f"Read {len(frame)} observations from {len(tables)} time-slice file(s)")
    return ObservationTable(frame, discharge_unit=DischargeUnit.CMS)


def time_slice_files_to_obs_seq(
    files: Iterable[Union[str, Path]],
    out_dir: Union[str, Path],
    locations: pd.DataFrame,
    error_model: Optional[ErrorModel] = None,
    error_tag: Optional[str] = None,
    **kwargs
) -> ObsSeqBatchReport:
    """
    Write create_obs_sequence input from time-slice artifacts.

    Without an error model, the artifacts' own variance is written and
    the error tag defaults to 'variance'. Other keyword arguments go to
    prepare_obs_seq.
    """
    table = read_time_slices(files)
    if error_model is None:
        kwargs.setdefault('error_column', VARIANCE)
        error_tag = error_tag or VARIANCE
    return prepare_obs_seq(
        table,
        out_dir,
        error_model=error_model,
        locations=locations,
        error_tag=error_tag,
        **kwargs
    )

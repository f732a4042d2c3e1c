"""
Observation Sequence Definition Writer

Writes discharge observations as the positional text input that DART's
create_obs_sequence reads from stdin. The format is not self-describing:
every value is prompted for in a fixed order, so the file must match
that order exactly.

File layout:
    <rows + 1>                      upper bound on observations in the sequence
    <copies>                        data copies (1)
    <quality fields>                QC values per observation (0)
    "The observations"              meta data for the data copy
    then per observation:
        <i>                         1-based index (any value but -1 continues)
        <obs type>                  observation kind index (20 = STREAM_FLOW)
        -1                          vertical coordinate: surface
        <elevation>                 vertical coordinate value
        <lon>                       longitude in [0, 360)
        <lat>                       latitude
        <y m d h m s>               date as integers
        <error>                     error variance (or st.dev.)
        <value>                     observed value
    -1                              no more observations
    <groupTag>.<errorTag>.obs_seq.out   file create_obs_sequence should write

Only the one-copy, no-QC layout is written: each record carries exactly one
value and no quality fields, so any other header would be inconsistent with
the records that follow it.
"""

import logging
import warnings
from pathlib import Path
from typing import Optional, Union

import pandas as pd
from pydantic import BaseModel

from gauge_obs.errors import MissingDischarge, MissingLocation, MissingRequiredColumn
from gauge_obs.normalize.schemas import (
    DISCHARGE,
    ELEVATION,
    LAT,
    LON,
    SITE_NO,
    SLICE_TIME,
    ObservationTable,
    ObsSeqRecord,
    format_number,
    normalize_longitude,
)
from gauge_obs.writers.atomic import atomic_output

logger = logging.getLogger(__name__)


# Stream discharge observation kind index in DART obs_kind
STREAM_FLOW_OBS_TYPE = 20

# Vertical coordinate code for the surface
VERTICAL_SURFACE = -1

DATA_COPY_LABEL = '"The observations"'
END_OF_OBSERVATIONS = -1

DEFINITION_SUFFIX = "inputForCreateObsSeq"
SEQUENCE_SUFFIX = "obs_seq.out"


class ObsSeqWriteResult(BaseModel):
    """Outcome of writing one observation definition file."""
    path: Path
    sequence_file: str
    n_records: int
    n_missing: int = 0
    n_dropped: int = 0


def definition_file_name(group_tag: str, error_tag: str) -> str:
    """<groupTag>.<errorTag>.inputForCreateObsSeq"""
    return f"{group_tag}.{error_tag}.{DEFINITION_SUFFIX}"


def sequence_file_name(group_tag: str, error_tag: str) -> str:
    """<groupTag>.<errorTag>.obs_seq.out"""
    return f"{group_tag}.{error_tag}.{SEQUENCE_SUFFIX}"


def check_obs_seq_layout(num_copies: int, num_quality: int) -> None:
    """
    Reject header counts the record layout cannot satisfy.

    Raises:
        ValueError: Unless num_copies is 1 and num_quality is 0
    """
    if num_copies != 1 or num_quality != 0:
        raise ValueError(
            f"Only 1 data copy and 0 QC values are supported, "
            f"got num_copies={num_copies}, num_quality={num_quality}"
        )


def check_obs_seq_columns(
    table: ObservationTable,
    time_column: str = SLICE_TIME,
    error_column: Optional[str] = None
) -> str:
    """
    Verify a table can be written and resolve its error column.

    Returns:
        Name of the error column to write

    Raises:
        MissingRequiredColumn: If time, lon, lat, elevation, discharge or
            error is absent
    """
    required = [time_column, LON, LAT, ELEVATION, DISCHARGE]
    missing = [c for c in required if c not in table.columns]
    try:
        error_name = table.error_column(error_column).name
    except KeyError:
        error_name = error_column
    if error_name is None or error_name not in table.columns:
        missing.append(error_column or "error")
    if missing:
        raise MissingRequiredColumn(missing, context="observation sequence")
    return error_name


def build_records(
    frame: pd.DataFrame,
    time_column: str,
    error_column: str,
    obs_type: int = STREAM_FLOW_OBS_TYPE
) -> list[ObsSeqRecord]:
    """Build the per-row records in frame order, indexed from 1."""
    records = []
    # error column names are not valid identifiers, so no itertuples
    for i, row in enumerate(frame.to_dict('records'), start=1):
        time = pd.Timestamp(row[time_column]).to_pydatetime()
        records.append(ObsSeqRecord(
            index=i,
            obs_type=obs_type,
            vertical_code=VERTICAL_SURFACE,
            elevation=row[ELEVATION],
            lon=normalize_longitude(row[LON]),
            lat=row[LAT],
            time=time,
            error=row[error_column],
            value=row[DISCHARGE],
        ))
    return records


def write_obs_seq(
    table: ObservationTable,
    out_dir: Union[str, Path],
    group_tag: str,
    error_tag: str,
    time_column: str = SLICE_TIME,
    error_column: Optional[str] = None,
    obs_type: int = STREAM_FLOW_OBS_TYPE,
    num_copies: int = 1,
    num_quality: int = 0,
    drop_missing: bool = False
) -> ObsSeqWriteResult:
    """
    Write one observation definition file.

    Args:
        table: Observations with time, location, discharge and an error column
        out_dir: Directory for the file
        group_tag: Identifies the observation group (e.g. time slice or site)
        error_tag: Identifies the error specification
        time_column: Column holding observation times
        error_column: Error column to write (defaults to the table's only one)
        obs_type: Observation kind index
        num_copies: Number of data copies (must be 1)
        num_quality: Number of QC values per observation (must be 0)
        drop_missing: Drop missing discharge if True; otherwise keep it
            and emit a MissingDischarge warning

    Returns:
        ObsSeqWriteResult with the path and counts

    Raises:
        ValueError: If the header counts are not 1 copy and 0 QC values
        MissingRequiredColumn: If a required column is absent
        MissingLocation: If a row lacks longitude, latitude or elevation
        IoFailure: If the file could not be written
    """
    check_obs_seq_layout(num_copies, num_quality)
    error_name = check_obs_seq_columns(table, time_column, error_column)

    frame = table.frame
    missing = frame[DISCHARGE].isna()
    n_missing = int(missing.sum())
    n_dropped = 0
    if n_missing:
        if drop_missing:
            frame = frame.loc[~missing]
            n_dropped = n_missing
            logger.warning(f"Dropped {n_dropped} missing observations from {group_tag}")
        else:
            message = f"{n_missing} missing observations present in {group_tag}"
            logger.warning(message)
            warnings.warn(message, MissingDischarge, stacklevel=2)

    unlocated = frame[[LON, LAT, ELEVATION]].isna().any(axis=1)
    if unlocated.any():
        raise MissingLocation(sorted(frame.loc[unlocated, SITE_NO].astype(str).unique()))

    records = build_records(frame, time_column, error_name, obs_type=obs_type)

    path = Path(out_dir) / definition_file_name(group_tag, error_tag)
    seq_name = sequence_file_name(group_tag, error_tag)

    lines = [
        str(len(records) + 1),
        str(num_copies),
        str(num_quality),
        DATA_COPY_LABEL,
    ]
    for record in records:
        lines.extend(record.to_lines())
    lines.append(format_number(END_OF_OBSERVATIONS))
    lines.append(seq_name)

    with atomic_output(path) as tmp_path:
        with open(tmp_path, 'w', newline='\n') as f:
            f.write("\n".join(lines) + "\n")

    logger.info(f"Wrote {len(records)} observations to {path}")
    return ObsSeqWriteResult(
        path=path,
        sequence_file=seq_name,
        n_records=len(records),
        n_missing=n_missing,
        n_dropped=n_dropped,
    )

"""
Unit Tests for Discharge Quality Filters

Tests verify each filter removes what it should and reports the count.
"""

import pytest
import pandas as pd
import numpy as np
from datetime import datetime
from pathlib import Path
import sys
import pytz

# Add src to path
src_path = Path(__file__).parent.parent.parent / 'src'
sys.path.insert(0, str(src_path))

from gauge_obs.errors import MissingRequiredColumn
from gauge_obs.ingest.quality import (
    FilterReport,
    apply_discharge_filters,
    apply_quality_threshold,
    drop_missing_discharge,
    drop_missing_location,
    filter_oldest_time,
    remove_nonpositive_discharge,
)
from gauge_obs.normalize.schemas import ObservationTable


# Fixtures
@pytest.fixture
def mixed_table():
    """Six observations: one missing, one zero, one negative, two below full quality"""
    frame = pd.DataFrame({
        'site_no': ['A', 'B', 'C', 'D', 'E', 'F'],
        'time': pd.date_range(datetime(2017, 9, 1), periods=6, freq='h', tz=pytz.UTC),
        'discharge': [10.0, np.nan, 0.0, -1.0, 5.0, 7.0],
        'discharge_quality': [100, 100, 100, 100, 50, np.nan],
    })
    return ObservationTable.from_frame(frame)


# Test Cases

def test_drop_missing(mixed_table):
    table, n = drop_missing_discharge(mixed_table)

    assert n == 1
    assert 'B' not in set(table.frame['site_no'])


def test_nonpositive_keeps_missing(mixed_table):
    """Only zero and negative discharge is removed"""
    table, n = remove_nonpositive_discharge(mixed_table)

    assert n == 2
    assert list(table.frame['site_no']) == ['A', 'B', 'E', 'F']


def test_quality_threshold(mixed_table):
    """quality * 0.01 >= threshold; missing quality fails"""
    table, n = apply_quality_threshold(mixed_table, 1.0)

    assert n == 2
    assert list(table.frame['site_no']) == ['A', 'B', 'C', 'D']

    table, n = apply_quality_threshold(mixed_table, 0.5)
    assert n == 1


def test_oldest_time(mixed_table):
    table, n = filter_oldest_time(mixed_table, datetime(2017, 9, 1, 2, 0))

    assert n == 2
    assert list(table.frame['site_no']) == ['C', 'D', 'E', 'F']


def test_combined_report(mixed_table):
    table, report = apply_discharge_filters(
        mixed_table,
        drop_missing=True,
        remove_nonpositive=True,
        quality_threshold=1.0
    )

    assert list(table.frame['site_no']) == ['A']
    assert report.n_input == 6
    assert report.n_missing_discharge == 1
    assert report.n_nonpositive == 2
    assert report.n_low_quality == 2
    assert report.n_removed == 5
    assert report.n_output == 1


def test_no_filters_is_identity(mixed_table):
    table, report = apply_discharge_filters(mixed_table)

    pd.testing.assert_frame_equal(table.frame, mixed_table.frame)
    assert report == FilterReport(n_input=6)


def test_input_not_modified(mixed_table):
    before = mixed_table.to_frame()

    apply_discharge_filters(mixed_table, drop_missing=True, remove_nonpositive=True)

    pd.testing.assert_frame_equal(mixed_table.frame, before)


def test_drop_missing_location(mixed_table):
    """Rows without lon, lat or elevation are removed, never defaulted"""
    frame = mixed_table.to_frame()
    frame['lon'] = [-71.9, np.nan, -76.3, -80.0, -81.0, -82.0]
    frame['lat'] = [42.4, 39.5, np.nan, 40.0, 41.0, 42.0]
    frame['elevation'] = [120.0, 45.0, 10.0, np.nan, 5.0, 6.0]

    table, n = drop_missing_location(mixed_table.with_frame(frame))

    assert n == 3
    assert list(table.frame['site_no']) == ['A', 'E', 'F']


def test_unlocated_counted_in_report(mixed_table):
    frame = mixed_table.to_frame()
    frame['lon'] = [-71.9, -71.9, np.nan, -71.9, -71.9, -71.9]
    frame['lat'] = 42.4
    frame['elevation'] = 120.0

    table, report = apply_discharge_filters(mixed_table.with_frame(frame), drop_unlocated=True)

    assert report.n_missing_location == 1
    assert report.n_removed == 1
    assert 'C' not in set(table.frame['site_no'])


def test_location_filter_requires_columns(mixed_table):
    with pytest.raises(MissingRequiredColumn):
        drop_missing_location(mixed_table)


def test_quality_filter_requires_column():
    table = ObservationTable(pd.DataFrame({'site_no': ['A'], 'discharge': [1.0]}))

    with pytest.raises(MissingRequiredColumn):
        apply_quality_threshold(table, 1.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Observation ingest: site location joins and discharge quality filters.
"""

from .quality import FilterReport, apply_discharge_filters, drop_missing_location
from .site_metadata import (
    JoinReport,
    join_site_metadata,
    load_route_link_locations,
    locations_from_dataset,
    locations_from_records,
)

__all__ = [
    'FilterReport',
    'apply_discharge_filters',
    'drop_missing_location',
    'JoinReport',
    'join_site_metadata',
    'load_route_link_locations',
    'locations_from_dataset',
    'locations_from_records',
]

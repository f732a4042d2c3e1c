"""
Gauge Observation Preparation

Prepares streamflow gauge observations for data assimilation:
- Three-sigma error models and derived variances
- Rounding observation times into fixed-resolution time slices
- USGS time-slice artifacts (CSV or NetCDF)
- Observation definition files for DART create_obs_sequence
"""

__version__ = "0.1.0"

"""
Configuration for Gauge Observation Preparation

Settings live in config/obs_prep.yaml. Environment variables (read from
.env when present) override the file:
- OBS_PREP_OUTPUT_DIR: output directory
- OBS_PREP_MAX_WORKERS: worker threads for per-group writing
- LOG_LEVEL: logging level used by setup_logging()
"""

import logging
import os
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator

from gauge_obs.normalize.schemas import ErrorModelKind
from gauge_obs.normalize.time_rounding import validate_granularity
from gauge_obs.uncertainty.error_models import ErrorModel

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / 'config' / 'obs_prep.yaml'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Optional[str] = None):
    """Configure root logging from LOG_LEVEL (default INFO)."""
    load_dotenv()
    logging.basicConfig(
        level=level or os.getenv('LOG_LEVEL', 'INFO'),
        format=LOG_FORMAT
    )


class ErrorModelConfig(BaseModel):
    """Error model selection and parameters (None keeps the model default)."""
    kind: ErrorModelKind = ErrorModelKind.CLIM_TAPER
    q_intercept: Optional[float] = None
    q_clim: Optional[float] = None
    pct_err: Optional[float] = None
    as_variance: bool = True
    tag: Optional[str] = Field(None, description="Error tag for file names")

    def build(self) -> ErrorModel:
        return ErrorModel.for_kind(
            self.kind,
            q_intercept=self.q_intercept,
            q_clim=self.q_clim,
            pct_err=self.pct_err
        )


class TimeSliceConfig(BaseModel):
    nearest_minutes: int = 5
    format: Literal["csv", "netcdf"] = "netcdf"
    oldest_time: Optional[str] = Field(None, description="ISO time; older observations are ignored")

    @validator('nearest_minutes')
    def nearest_minutes_must_divide_hour(cls, v):
        return validate_granularity(v)


class ObsSeqConfig(BaseModel):
    obs_type: int = 20
    # records carry one value and no QC fields
    num_copies: Literal[1] = 1
    num_quality: Literal[0] = 0
    drop_missing: bool = False
    by_site: bool = False
    by_time: bool = False
    group_tag: Optional[str] = None


class QualityConfig(BaseModel):
    remove_nonpositive: bool = True
    quality_threshold: Optional[float] = 1.0


class ParallelConfig(BaseModel):
    max_workers: int = Field(1, ge=1)


class PrepConfig(BaseModel):
    """Complete configuration for time-slice and observation-sequence preparation."""
    output_dir: Path = Path('data/processed/obs_prep')
    error_model: ErrorModelConfig = Field(default_factory=ErrorModelConfig)
    time_slices: TimeSliceConfig = Field(default_factory=TimeSliceConfig)
    obs_seq: ObsSeqConfig = Field(default_factory=ObsSeqConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path], use_env: bool = True) -> 'PrepConfig':
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to obs_prep.yaml
            use_env: Apply environment variable overrides

        Returns:
            PrepConfig instance
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config not found: {config_path}")

        with open(config_path, 'r') as f:
            params = yaml.safe_load(f) or {}

        if use_env:
            load_dotenv()
            output_dir = os.getenv('OBS_PREP_OUTPUT_DIR')
            if output_dir:
                params['output_dir'] = output_dir
            max_workers = os.getenv('OBS_PREP_MAX_WORKERS')
            if max_workers:
                params.setdefault('parallel', {})['max_workers'] = int(max_workers)

        logger.debug(f"Loaded configuration from {config_path}")
        return cls(**params)


def load_default_config(use_env: bool = True) -> PrepConfig:
    """Load config/obs_prep.yaml."""
    return PrepConfig.from_yaml(DEFAULT_CONFIG_PATH, use_env=use_env)

"""
Typed pipeline configuration.

`config/default.yaml` holds the project defaults; run-specific YAML files can
override any subset of keys.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from seasonal_sdm.exceptions import ConfigurationError
from seasonal_sdm.temporal import (
    DEFAULT_MAX_WATER_YEAR,
    DEFAULT_MIN_WATER_YEAR,
    Method,
    Season,
    TemporalIndexer,
)
from seasonal_sdm.utils.io import CONFIG_PATH, load_yaml

logger = logging.getLogger(__name__)


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TemporalConfig(_Section):
    min_water_year: int = DEFAULT_MIN_WATER_YEAR
    max_water_year: int = DEFAULT_MAX_WATER_YEAR

    @model_validator(mode="after")
    def check_order(self) -> "TemporalConfig":
        if self.min_water_year > self.max_water_year:
            raise ValueError(
                f"min_water_year {self.min_water_year} is after max_water_year {self.max_water_year}"
            )
        return self

    def indexer(self) -> TemporalIndexer:
        return TemporalIndexer(self.min_water_year, self.max_water_year)


class ObservationConfig(_Section):
    id_column: str = "gbifid"
    lon_column: str = "decimallongitude"
    lat_column: str = "decimallatitude"
    date_column: str = "eventdate"
    crs: str = "EPSG:4326"


class SpatialConfig(_Section):
    climate_crs: str = "EPSG:3310"
    band_name_length: Optional[int] = None


class SoilConfig(_Section):
    depth_cutoffs: List[int] = Field(default_factory=lambda: [30, 100, 200])
    variables: Dict[str, str] = Field(
        default_factory=lambda: {"om": "om_r", "cec": "cec7_r", "ph": "ph1to1h2o_r"}
    )
    decimals: int = 2
    region: Optional[str] = None
    resolution: str = "270m"
    vintage: str = "2023"

    @field_validator("depth_cutoffs")
    @classmethod
    def positive_cutoffs(cls, value: List[int]) -> List[int]:
        if not value or any(v <= 0 for v in value):
            raise ValueError("depth_cutoffs must be a non-empty list of positive depths (cm)")
        return sorted(set(value))


class SeasonalLayerConfig(_Section):
    variable: str
    season: Season
    method: Method


class LayersConfig(_Section):
    monthly_variables: List[str] = Field(default_factory=lambda: ["aet", "tmx", "tdiff"])
    seasonal: List[SeasonalLayerConfig] = Field(
        default_factory=lambda: [
            SeasonalLayerConfig(variable="ppt", season=Season.WINTER, method=Method.SUM),
            SeasonalLayerConfig(variable="tmx", season=Season.SUMMER, method=Method.MEAN),
        ]
    )
    static_variables: List[str] = Field(default_factory=lambda: ["om", "ph", "cec"])


class ProcessingConfig(_Section):
    n_workers: int = 1
    overwrite: bool = False

    @field_validator("n_workers")
    @classmethod
    def valid_workers(cls, value: int) -> int:
        if value == 0 or value < -1:
            raise ValueError("n_workers must be a positive integer or -1")
        return value


class PipelineConfig(_Section):
    temporal: TemporalConfig = Field(default_factory=TemporalConfig)
    observations: ObservationConfig = Field(default_factory=ObservationConfig)
    spatial: SpatialConfig = Field(default_factory=SpatialConfig)
    soil: SoilConfig = Field(default_factory=SoilConfig)
    layers: LayersConfig = Field(default_factory=LayersConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)

    def indexer(self) -> TemporalIndexer:
        return self.temporal.indexer()


def load_config(config_path: Optional[Union[str, Path]] = None) -> PipelineConfig:
    """Loads and validates the pipeline configuration.

    Args:
        config_path: YAML file to read. Defaults to `config/default.yaml` in the
            project root. Missing sections fall back to their defaults.

    Returns:
        PipelineConfig: The validated configuration.

    Raises:
        ConfigurationError: If the file is missing or a value fails validation.
    """
    if config_path is None and not CONFIG_PATH.exists():
        logger.warning(f"{CONFIG_PATH} not found, using built-in defaults")
        return PipelineConfig()
    path = Path(config_path) if config_path is not None else CONFIG_PATH
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    raw = load_yaml(path)
    try:
        config = PipelineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}:\n{e}") from e
    logger.debug(f"Loaded configuration from {path}")
    return config

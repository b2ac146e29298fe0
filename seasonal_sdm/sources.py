"""Which raster layers feed extraction and prediction."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from seasonal_sdm.raster.naming import seasonal_short_name
from seasonal_sdm.raster.store import RasterStore
from seasonal_sdm.temporal import Method, Season, parse_method, parse_season
from seasonal_sdm.utils.text_utils import tidy_variable_name


@dataclass(frozen=True)
class SeasonalLayer:
    variable: str
    season: Season
    method: Method

    def __post_init__(self):
        object.__setattr__(self, "variable", tidy_variable_name(self.variable))
        object.__setattr__(self, "season", parse_season(self.season))
        object.__setattr__(self, "method", parse_method(self.method))

    @property
    def short_name(self) -> str:
        return seasonal_short_name(self.variable, self.season, self.method)


@dataclass
class LayerSources:
    """Raster stores and the variables to draw from them.

    Args:
        climate: Store holding monthly layers, seasonal composites and climatologies.
        static: Store holding static layers such as soil properties. May be the climate store.
        monthly_variables: Variables sampled from the calendar month of each observation.
        seasonal_layers: Seasonal composites sampled from the observation's water year.
        static_variables: Variables sampled from time-invariant layers.
    """
    climate: RasterStore
    static: Optional[RasterStore] = None
    monthly_variables: List[str] = field(default_factory=list)
    seasonal_layers: List[SeasonalLayer] = field(default_factory=list)
    static_variables: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.monthly_variables = [tidy_variable_name(v) for v in self.monthly_variables]
        self.static_variables = [tidy_variable_name(v) for v in self.static_variables]

    @classmethod
    def from_directories(
        cls,
        climate_dir: Union[str, Path, Sequence[Union[str, Path]]],
        static_dir: Optional[Union[str, Path, Sequence[Union[str, Path]]]] = None,
        monthly_variables: Sequence[str] = (),
        seasonal_layers: Sequence[SeasonalLayer] = (),
        static_variables: Sequence[str] = (),
    ) -> "LayerSources":
        climate = RasterStore(climate_dir)
        static = RasterStore(static_dir) if static_dir is not None else None
        return cls(
            climate=climate,
            static=static,
            monthly_variables=list(monthly_variables),
            seasonal_layers=list(seasonal_layers),
            static_variables=list(static_variables),
        )

    @property
    def static_store(self) -> RasterStore:
        return self.static if self.static is not None else self.climate

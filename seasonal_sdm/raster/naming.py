"""
On-disk naming convention for raster layers.

Layer identity is encoded in file names rather than embedded metadata:

    monthly               {variable}{year}{mon}.tif            aet2018oct.tif
    seasonal composite    {variable}{wy}{season}_{method}.tif  ppt2018winter_sum.tif
    monthly climatology   {variable}_{mon}_avg.tif             aet_oct_avg.tif
    seasonal climatology  {variable}_{season}_{method}_avg.tif ppt_winter_sum_avg.tif
    soil / static         {prefix}_{variable}_{res}_{region}_{vintage}.tif

Parsing happens once, when a directory is indexed. Everything downstream
works with `LayerKey` values.
"""

import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Optional, Union

from seasonal_sdm.temporal import (
    MONTH_ABBREVIATIONS,
    Method,
    Season,
    month_abbreviation,
    parse_method,
    parse_season,
)

RASTER_SUFFIX = ".tif"

_MONTHS = "|".join(MONTH_ABBREVIATIONS)
_SEASONS = "|".join(s.value for s in Season)
_METHODS = "|".join(m.value for m in Method)
_VARIABLE = r"[a-z][a-z0-9]*?"

MONTHLY_PATTERN = re.compile(rf"^(?P<variable>{_VARIABLE})(?P<year>\d{{4}})(?P<month>{_MONTHS})$")
SEASONAL_PATTERN = re.compile(
    rf"^(?P<variable>{_VARIABLE})(?P<year>\d{{4}})(?P<season>{_SEASONS})_(?P<method>{_METHODS})$"
)
MONTHLY_AVERAGE_PATTERN = re.compile(rf"^(?P<variable>{_VARIABLE})_(?P<month>{_MONTHS})_avg$")
SEASONAL_AVERAGE_PATTERN = re.compile(
    rf"^(?P<variable>{_VARIABLE})_(?P<season>{_SEASONS})_(?P<method>{_METHODS})_avg$"
)


class LayerKind(StrEnum):
    MONTHLY = "monthly"
    SEASONAL = "seasonal"
    MONTHLY_AVERAGE = "monthly_average"
    SEASONAL_AVERAGE = "seasonal_average"
    STATIC = "static"


def seasonal_short_name(variable: str, season: Union[str, Season], method: Union[str, Method]) -> str:
    return f"{variable}_{parse_season(season)}_{parse_method(method)}"


@dataclass(frozen=True)
class LayerKey:
    """Semantic identity of a raster layer.

    `year` is the calendar year for monthly layers and the water year for
    seasonal composites. Climatologies and static layers carry no year.
    """
    variable: str
    kind: LayerKind
    year: Optional[int] = None
    month: Optional[int] = None
    season: Optional[Season] = None
    method: Optional[Method] = None

    def short_name(self, length: Optional[int] = None) -> str:
        """Band label that is stable across periods.

        Temporal tokens are dropped so that the same variable gets the same
        column in every period. Composites keep their season and method since
        one variable may be summarised more than one way.
        """
        if self.kind in (LayerKind.SEASONAL, LayerKind.SEASONAL_AVERAGE):
            return seasonal_short_name(self.variable, self.season, self.method)
        if length:
            return self.variable[:length]
        return self.variable

    def __str__(self) -> str:
        if self.kind == LayerKind.STATIC:
            return self.variable
        return Path(layer_filename(self)).stem


def monthly_key(variable: str, year: int, month: int) -> LayerKey:
    return LayerKey(variable.lower(), LayerKind.MONTHLY, year=int(year), month=int(month))


def seasonal_key(
    variable: str,
    water_year: int,
    season: Union[str, Season],
    method: Union[str, Method],
) -> LayerKey:
    return LayerKey(
        variable.lower(),
        LayerKind.SEASONAL,
        year=int(water_year),
        season=parse_season(season),
        method=parse_method(method),
    )


def monthly_average_key(variable: str, month: int) -> LayerKey:
    return LayerKey(variable.lower(), LayerKind.MONTHLY_AVERAGE, month=int(month))


def seasonal_average_key(variable: str, season: Union[str, Season], method: Union[str, Method]) -> LayerKey:
    return LayerKey(
        variable.lower(),
        LayerKind.SEASONAL_AVERAGE,
        season=parse_season(season),
        method=parse_method(method),
    )


def static_key(variable: str) -> LayerKey:
    return LayerKey(variable.lower(), LayerKind.STATIC)


def parse_layer_filename(path: Union[str, Path]) -> Optional[LayerKey]:
    """Parses a climate layer file name into its key.

    Returns None for names that follow none of the temporal conventions,
    which is the case for static layers.
    """
    path = Path(path)
    if path.suffix.lower() != RASTER_SUFFIX:
        return None
    stem = path.stem.lower()

    match = SEASONAL_PATTERN.match(stem)
    if match:
        return seasonal_key(match["variable"], int(match["year"]), match["season"], match["method"])
    match = MONTHLY_PATTERN.match(stem)
    if match:
        return monthly_key(match["variable"], int(match["year"]), MONTH_ABBREVIATIONS.index(match["month"]) + 1)
    match = SEASONAL_AVERAGE_PATTERN.match(stem)
    if match:
        return seasonal_average_key(match["variable"], match["season"], match["method"])
    match = MONTHLY_AVERAGE_PATTERN.match(stem)
    if match:
        return monthly_average_key(match["variable"], MONTH_ABBREVIATIONS.index(match["month"]) + 1)
    return None


def layer_filename(key: LayerKey) -> str:
    if key.kind == LayerKind.MONTHLY:
        return f"{key.variable}{key.year}{month_abbreviation(key.month)}{RASTER_SUFFIX}"
    if key.kind == LayerKind.SEASONAL:
        return f"{key.variable}{key.year}{key.season}_{key.method}{RASTER_SUFFIX}"
    if key.kind == LayerKind.MONTHLY_AVERAGE:
        return f"{key.variable}_{month_abbreviation(key.month)}_avg{RASTER_SUFFIX}"
    if key.kind == LayerKind.SEASONAL_AVERAGE:
        return f"{key.variable}_{key.season}_{key.method}_avg{RASTER_SUFFIX}"
    raise ValueError(f"Static layers have no canonical file name: {key.variable}")


def static_layer_filename(
    variable: str,
    prefix: str = "soil",
    resolution: str = "270m",
    region: str = "conus",
    vintage: str = "2023",
) -> str:
    return f"{prefix}_{variable}_{resolution}_{region}_{vintage}{RASTER_SUFFIX}"


def matches_static(path: Union[str, Path], variable: str) -> bool:
    return f"_{variable.lower()}_" in Path(path).name.lower()

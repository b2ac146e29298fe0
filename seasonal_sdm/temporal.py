"""
Water-year calendar and period enumeration.

The project follows the hydrologic water year (1 October - 30 September),
labelled by the calendar year that contains its final month. October,
November and December therefore belong to the *next* calendar year's
water year.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import List, Tuple, Union

import numpy as np
import pandas as pd

from seasonal_sdm.exceptions import ConfigurationError, RangeError

logger = logging.getLogger(__name__)

MONTH_ABBREVIATIONS = (
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
)

# Calendar months in water-year order
WATER_YEAR_MONTHS = (10, 11, 12, 1, 2, 3, 4, 5, 6, 7, 8, 9)

DEFAULT_MIN_WATER_YEAR = 2000
DEFAULT_MAX_WATER_YEAR = 2022


class Season(StrEnum):
    WINTER = "winter"
    SUMMER = "summer"


class Method(StrEnum):
    MEAN = "mean"
    SUM = "sum"


SEASON_MONTHS = {
    Season.WINTER: (12, 1, 2),
    Season.SUMMER: (6, 7, 8),
}


def parse_season(season: Union[str, Season]) -> Season:
    try:
        return Season(str(season).lower())
    except ValueError:
        raise ConfigurationError(
            f"Unsupported season '{season}'. Expected one of {[s.value for s in Season]}."
        )


def parse_method(method: Union[str, Method]) -> Method:
    try:
        return Method(str(method).lower())
    except ValueError:
        raise ConfigurationError(
            f"Unsupported method '{method}'. Expected one of {[m.value for m in Method]}."
        )


def month_abbreviation(month: int) -> str:
    if not 1 <= int(month) <= 12:
        raise ConfigurationError(f"Month must be in 1..12, got {month}")
    return MONTH_ABBREVIATIONS[int(month) - 1]


def month_number(month: Union[str, int]) -> int:
    """Accepts 1..12 or a three letter abbreviation."""
    if isinstance(month, str) and not month.isdigit():
        try:
            return MONTH_ABBREVIATIONS.index(month.lower()[:3]) + 1
        except ValueError:
            raise ConfigurationError(f"Unknown month '{month}'")
    number = int(month)
    if not 1 <= number <= 12:
        raise ConfigurationError(f"Month must be in 1..12, got {month}")
    return number


def water_year_of(year: int, month: int) -> int:
    """Water year for a calendar year and month."""
    return year + 1 if month >= 10 else year


def calendar_year_of(water_year: int, month: int) -> int:
    """Calendar year of a month within a water year."""
    return water_year - 1 if month >= 10 else water_year


def water_year(value: Union[date, pd.Timestamp, str]) -> int:
    timestamp = pd.Timestamp(value)
    return water_year_of(timestamp.year, timestamp.month)


def water_years(dates: pd.Series) -> pd.Series:
    """Vectorised water year for a series of dates. Null dates stay null."""
    dates = pd.to_datetime(dates, errors="coerce")
    offset = (dates.dt.month >= 10).astype("Int64")
    return (dates.dt.year.astype("Int64") + offset).rename("water_year")


@dataclass(frozen=True, order=True)
class Period:
    """One month of the water-year calendar."""
    water_year: int
    year: int
    month_name: str = field(compare=False)
    month: int

    def label(self) -> str:
        return f"{self.year}{self.month_name}"

    def as_tuple(self) -> Tuple[int, int, str, int]:
        return (self.water_year, self.year, self.month_name, self.month)


class TemporalIndexer:
    """Maps dates onto the water-year calendar and enumerates monthly periods.

    Args:
        min_water_year: First water year covered by the environmental data.
        max_water_year: Last water year covered by the environmental data.
    """

    def __init__(
        self,
        min_water_year: int = DEFAULT_MIN_WATER_YEAR,
        max_water_year: int = DEFAULT_MAX_WATER_YEAR,
    ):
        if min_water_year > max_water_year:
            raise ConfigurationError(
                f"Supported range is inverted: {min_water_year} > {max_water_year}"
            )
        self.min_water_year = int(min_water_year)
        self.max_water_year = int(max_water_year)

    def __repr__(self) -> str:
        return f"TemporalIndexer({self.min_water_year}, {self.max_water_year})"

    def validate_year(self, water_year: int) -> int:
        if not self.min_water_year <= int(water_year) <= self.max_water_year:
            raise RangeError(
                f"Water year {water_year} is outside the supported range "
                f"{self.min_water_year}-{self.max_water_year}"
            )
        return int(water_year)

    def validate_range(self, start: int, end: int) -> Tuple[int, int]:
        if start > end:
            raise RangeError(f"Start water year {start} is after end water year {end}")
        return self.validate_year(start), self.validate_year(end)

    def periods(self, start: int, end: int) -> List[Period]:
        """Every month from October of `start` to September of `end`, in order."""
        start, end = self.validate_range(start, end)
        return [
            self.period(wy, month)
            for wy in range(start, end + 1)
            for month in WATER_YEAR_MONTHS
        ]

    def period(self, water_year: int, month: Union[int, str]) -> Period:
        month = month_number(month)
        return Period(
            water_year=int(water_year),
            year=calendar_year_of(int(water_year), month),
            month_name=month_abbreviation(month),
            month=month,
        )

    def period_for(self, value: Union[date, pd.Timestamp, str]) -> Period:
        timestamp = pd.Timestamp(value)
        wy = water_year_of(timestamp.year, timestamp.month)
        self.validate_year(wy)
        return self.period(wy, timestamp.month)

    def season_periods(self, water_year: int, season: Union[str, Season]) -> List[Period]:
        """The three constituent months of a season, in water-year order.

        Winter spans December of the previous calendar year, January and February.
        """
        season = parse_season(season)
        return [self.period(water_year, month) for month in SEASON_MONTHS[season]]

    def in_range(self, dates: pd.Series) -> pd.Series:
        """Boolean mask of dates that resolve to a supported water year."""
        wy = water_years(dates)
        mask = (wy >= self.min_water_year) & (wy <= self.max_water_year)
        return mask.fillna(False).astype(bool)


def derive_date_fields(frame: pd.DataFrame, date_column: str) -> pd.DataFrame:
    """Add calendar year, month and water year columns derived from a date column."""
    frame = frame.copy()
    dates = pd.to_datetime(frame[date_column], errors="coerce")
    frame["year"] = dates.dt.year.astype("Int64")
    frame["month"] = dates.dt.month.astype("Int64")
    frame["water_year"] = water_years(dates)
    n_null = int(dates.isna().sum())
    if n_null:
        logger.warning("%d observations have no parseable date in '%s'", n_null, date_column)
    return frame


def month_range(months=None) -> List[int]:
    if months is None:
        return list(range(1, 13))
    return [month_number(m) for m in np.atleast_1d(months)]

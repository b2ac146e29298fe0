import pandas as pd
import pytest

from seasonal_sdm.exceptions import ConfigurationError, RangeError
from seasonal_sdm.temporal import (
    Season,
    TemporalIndexer,
    derive_date_fields,
    month_number,
    water_year,
    water_years,
)


@pytest.mark.parametrize(
    "date, expected",
    [
        ("2018-11-15", 2019),
        ("2018-10-01", 2019),
        ("2018-12-31", 2019),
        ("2018-03-01", 2018),
        ("2018-09-30", 2018),
        ("2019-01-01", 2019),
    ],
)
def test_water_year(date, expected):
    assert water_year(date) == expected


def test_water_years_vectorised_keeps_nulls():
    dates = pd.Series(["2018-11-15", None, "2018-03-01"])
    result = water_years(dates)
    assert result.iloc[0] == 2019
    assert pd.isna(result.iloc[1])
    assert result.iloc[2] == 2018


def test_periods_start_in_october_and_cover_every_month():
    periods = TemporalIndexer(2000, 2022).periods(2018, 2019)
    assert len(periods) == 24
    first = periods[0]
    assert first.as_tuple() == (2018, 2017, "oct", 10)
    assert periods[3].as_tuple() == (2018, 2018, "jan", 1)
    assert periods[11].as_tuple() == (2018, 2018, "sep", 9)
    assert periods[12].as_tuple() == (2019, 2018, "oct", 10)
    assert [p.label() for p in periods[:3]] == ["2017oct", "2017nov", "2017dec"]


def test_periods_are_water_year_ordered():
    periods = TemporalIndexer().periods(2005, 2007)
    assert periods == sorted(periods)


@pytest.mark.parametrize("start, end", [(2019, 2018), (1999, 2005), (2010, 2023)])
def test_invalid_ranges_raise(start, end):
    with pytest.raises(RangeError):
        TemporalIndexer(2000, 2022).periods(start, end)


def test_range_error_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        TemporalIndexer().validate_year(1900)


def test_custom_bounds():
    indexer = TemporalIndexer(1990, 1995)
    assert len(indexer.periods(1990, 1990)) == 12
    with pytest.raises(RangeError):
        indexer.periods(1995, 1996)


def test_winter_spans_previous_december():
    periods = TemporalIndexer().season_periods(2018, Season.WINTER)
    assert [(p.year, p.month) for p in periods] == [(2017, 12), (2018, 1), (2018, 2)]


def test_summer_months():
    periods = TemporalIndexer().season_periods(2018, "summer")
    assert [(p.year, p.month) for p in periods] == [(2018, 6), (2018, 7), (2018, 8)]


def test_unknown_season_is_configuration_error():
    with pytest.raises(ConfigurationError):
        TemporalIndexer().season_periods(2018, "spring")


def test_period_for_date():
    period = TemporalIndexer().period_for("2018-11-15")
    assert period.water_year == 2019
    assert period.year == 2018
    assert period.month_name == "nov"


def test_month_number_accepts_names_and_numbers():
    assert month_number("Oct") == 10
    assert month_number(3) == 3
    assert month_number("7") == 7
    with pytest.raises(ConfigurationError):
        month_number(13)


def test_in_range_mask():
    indexer = TemporalIndexer(2000, 2022)
    dates = pd.Series(["1999-09-30", "1999-10-01", "2022-09-30", "2022-10-01", None])
    assert indexer.in_range(dates).tolist() == [False, True, True, False, False]


def test_derive_date_fields():
    frame = pd.DataFrame({"eventdate": ["2018-11-15", "2018-03-01"]})
    result = derive_date_fields(frame, "eventdate")
    assert result["year"].tolist() == [2018, 2018]
    assert result["month"].tolist() == [11, 3]
    assert result["water_year"].tolist() == [2019, 2018]
    assert "year" not in frame.columns

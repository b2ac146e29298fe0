import numpy as np
import pytest

from seasonal_sdm.climate.seasonal import SeasonalAggregator
from seasonal_sdm.exceptions import ConfigurationError, MissingInputError, OutputExistsError, RangeError
from seasonal_sdm.raster.io import read_layer
from seasonal_sdm.raster.store import RasterStore
from seasonal_sdm.report import IssueKind


@pytest.fixture
def winter_dir(tmp_path, write_raster):
    directory = tmp_path / "climate"
    write_raster(directory / "ppt2017dec.tif", 10.0)
    write_raster(directory / "ppt2018jan.tif", 20.0)
    write_raster(directory / "ppt2018feb.tif", 30.0)
    return directory


def test_winter_sum_is_cellwise_total(winter_dir, tmp_path):
    aggregator = SeasonalAggregator(RasterStore(winter_dir), tmp_path / "out")
    handle = aggregator.build("ppt", "winter", "sum", water_year=2018)

    assert handle.path.name == "ppt2018winter_sum.tif"
    values = read_layer(handle.path).values
    np.testing.assert_allclose(values, 60.0)


def test_winter_mean(winter_dir):
    aggregator = SeasonalAggregator(RasterStore(winter_dir))
    composite = aggregator.composite("ppt", "winter", "mean", 2018)
    np.testing.assert_allclose(composite.values, 20.0)
    assert composite.name == "ppt_winter_mean"


def test_fails_with_fewer_than_three_inputs(tmp_path, write_raster):
    directory = tmp_path / "climate"
    write_raster(directory / "ppt2017dec.tif", 10.0)
    write_raster(directory / "ppt2018jan.tif", 20.0)
    aggregator = SeasonalAggregator(RasterStore(directory), tmp_path / "out")

    with pytest.raises(MissingInputError) as excinfo:
        aggregator.build("ppt", "winter", "sum", 2018)
    assert "2018feb" in str(excinfo.value)
    assert not (tmp_path / "out" / "ppt2018winter_sum.tif").exists()


def test_nodata_propagates(tmp_path, write_raster):
    directory = tmp_path / "climate"
    holes = np.full((4, 5), 1.0, dtype="float32")
    holes[0, 0] = np.nan
    write_raster(directory / "tmx2018jun.tif", holes)
    write_raster(directory / "tmx2018jul.tif", 2.0)
    write_raster(directory / "tmx2018aug.tif", 3.0)
    composite = SeasonalAggregator(RasterStore(directory)).composite("tmx", "summer", "mean", 2018)
    assert np.isnan(composite.values[0, 0])
    assert composite.values[1, 1] == pytest.approx(2.0)


def test_existing_output_is_not_silently_replaced(winter_dir, tmp_path):
    store = RasterStore(winter_dir)
    SeasonalAggregator(store, tmp_path / "out").build("ppt", "winter", "sum", 2018)

    with pytest.raises(OutputExistsError):
        SeasonalAggregator(store, tmp_path / "out").build("ppt", "winter", "sum", 2018)

    handle = SeasonalAggregator(store, tmp_path / "out", overwrite=True).build("ppt", "winter", "sum", 2018)
    np.testing.assert_allclose(read_layer(handle.path).values, 60.0)


@pytest.mark.parametrize("season, method", [("spring", "sum"), ("winter", "median")])
def test_unknown_season_or_method(winter_dir, season, method):
    with pytest.raises(ConfigurationError):
        SeasonalAggregator(RasterStore(winter_dir)).composite("ppt", season, method, 2018)


def test_out_of_range_year(winter_dir):
    with pytest.raises(RangeError):
        SeasonalAggregator(RasterStore(winter_dir)).composite("ppt", "winter", "sum", 1990)


def test_sum_of_temperature_warns(tmp_path, write_raster, caplog):
    directory = tmp_path / "climate"
    for name in ("tmx2018jun.tif", "tmx2018jul.tif", "tmx2018aug.tif"):
        write_raster(directory / name, 1.0)
    with caplog.at_level("WARNING"):
        SeasonalAggregator(RasterStore(directory)).composite("tmx", "summer", "sum", 2018)
    assert "precipitation" in caplog.text


def test_build_range_reports_missing_years(winter_dir, tmp_path):
    store = RasterStore(winter_dir)
    aggregator = SeasonalAggregator(store, tmp_path / "out")

    handles, report = aggregator.build_range("ppt", "winter", "sum", 2017, 2019)

    assert [h.key.year for h in handles] == [2018]
    assert report.count(IssueKind.MISSING_INPUT) == 2
    assert sorted(i.period for i in report.issues) == ["2017", "2019"]
    assert store.find_seasonal("ppt", 2018, "winter", "sum")


def test_build_range_skips_existing(winter_dir, tmp_path):
    aggregator = SeasonalAggregator(RasterStore(winter_dir), tmp_path / "out")
    aggregator.build("ppt", "winter", "sum", 2018)
    handles, report = aggregator.build_range("ppt", "winter", "sum", 2018, 2018)
    assert len(handles) == 1
    assert not report.has_issues

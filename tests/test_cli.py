import pandas as pd
import pytest
from typer.testing import CliRunner

from seasonal_sdm.cli import app

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("temporal:\n  min_water_year: 2015\n  max_water_year: 2020\n")
    return path


def test_seasonal_builds_range_and_reports_gaps(tmp_path, write_raster, config_file):
    climate = tmp_path / "climate"
    for name, value in [("ppt2017dec", 1.0), ("ppt2018jan", 2.0), ("ppt2018feb", 3.0), ("ppt2018dec", 4.0)]:
        write_raster(climate / f"{name}.tif", value)
    report_path = tmp_path / "report.csv"

    result = runner.invoke(
        app,
        [
            "seasonal",
            "--climate-dir", str(climate),
            "--output-dir", str(tmp_path / "out"),
            "--variable", "ppt",
            "--season", "winter",
            "--method", "sum",
            "--start", "2018",
            "--end", "2019",
            "--report", str(report_path),
            "--config", str(config_file),
        ],
    )
    assert result.exit_code == 0, result.output
    assert (tmp_path / "out" / "ppt2018winter_sum.tif").exists()
    assert not (tmp_path / "out" / "ppt2019winter_sum.tif").exists()

    report = pd.read_csv(report_path)
    assert report["kind"].tolist() == ["missing_input"]
    assert report["period"].tolist() == [2019]


def test_seasonal_range_outside_configured_years_fails(tmp_path, write_raster, config_file):
    climate = tmp_path / "climate"
    write_raster(climate / "ppt2018jan.tif", 1.0)
    result = runner.invoke(
        app,
        [
            "seasonal",
            "--climate-dir", str(climate),
            "--output-dir", str(tmp_path / "out"),
            "--variable", "ppt",
            "--season", "winter",
            "--method", "sum",
            "--start", "2010",
            "--end", "2019",
            "--config", str(config_file),
        ],
    )
    assert result.exit_code == 1


def test_soil_aggregate_writes_one_table_per_depth(tmp_path, horizons, components, mapunits, config_file):
    paths = {}
    for name, frame in [("horizon", horizons), ("component", components), ("mapunit", mapunits)]:
        paths[name] = tmp_path / f"{name}.csv"
        frame.to_csv(paths[name], index=False)

    result = runner.invoke(
        app,
        [
            "soil-aggregate",
            "--horizon", str(paths["horizon"]),
            "--component", str(paths["component"]),
            "--mapunit", str(paths["mapunit"]),
            "--output-dir", str(tmp_path / "soil"),
            "--depth", "30",
            "--depth", "100",
            "--config", str(config_file),
        ],
    )
    assert result.exit_code == 0, result.output
    assert sorted(p.name for p in (tmp_path / "soil").iterdir()) == ["horizon_100cm.csv", "horizon_30cm.csv"]
    table = pd.read_csv(tmp_path / "soil" / "horizon_30cm.csv", dtype={"mukey": str})
    assert table["mukey"].tolist() == ["100", "200", "300"]


def test_invalid_config_exits_with_code_2(tmp_path, write_raster):
    bad = tmp_path / "bad.yaml"
    bad.write_text("temporal:\n  min_water_year: 2020\n  max_water_year: 2010\n")
    climate = tmp_path / "climate"
    write_raster(climate / "ppt2018jan.tif", 1.0)
    result = runner.invoke(
        app,
        ["monthly-average", "--climate-dir", str(climate), "--output-dir", str(tmp_path / "out"),
         "--start", "2018", "--end", "2018", "--config", str(bad)],
    )
    assert result.exit_code == 2


def test_climatology_commands_can_be_rerun(tmp_path, write_raster, config_file):
    climate = tmp_path / "climate"
    write_raster(climate / "aet2018jan.tif", 1.0)
    write_raster(climate / "ppt2018winter_sum.tif", 5.0)
    write_raster(climate / "tmx2018summer_mean.tif", 25.0)
    common = [
        "--climate-dir", str(climate),
        "--output-dir", str(tmp_path / "avg"),
        "--start", "2018",
        "--end", "2018",
        "--config", str(config_file),
    ]
    for _ in range(2):
        monthly = runner.invoke(app, ["monthly-average", "--variable", "aet"] + common)
        assert monthly.exit_code == 0, monthly.output
        seasonal = runner.invoke(app, ["seasonal-average"] + common)
        assert seasonal.exit_code == 0, seasonal.output

    names = sorted(p.name for p in (tmp_path / "avg").iterdir())
    assert names == ["aet_jan_avg.tif", "ppt_winter_sum_avg.tif", "tmx_summer_mean_avg.tif"]


def test_extract_labels_presence_and_background(tmp_path, write_raster, cell_centres):
    config = tmp_path / "projected.yaml"
    config.write_text(
        "temporal:\n  min_water_year: 2015\n  max_water_year: 2020\n"
        "observations:\n  crs: 'EPSG:3310'\n"
        "layers:\n  monthly_variables: [aet]\n  seasonal: []\n  static_variables: []\n"
    )
    climate = tmp_path / "climate"
    write_raster(climate / "aet2018jan.tif", 7.0)
    x, y = cell_centres(1, 2)
    columns = ["gbifid", "decimallongitude", "decimallatitude", "eventdate"]
    presence = tmp_path / "presence.csv"
    pd.DataFrame([["p1", x, y, "2018-01-10"]], columns=columns).to_csv(presence, index=False)
    background = tmp_path / "background.csv"
    pd.DataFrame(
        [["b1", x, y, "2018-01-20"], ["b2", x, y, "2009-01-20"]], columns=columns
    ).to_csv(background, index=False)
    output = tmp_path / "features.csv"

    result = runner.invoke(
        app,
        [
            "extract",
            "--observations", str(presence),
            "--background", str(background),
            "--climate-dir", str(climate),
            "--output", str(output),
            "--start", "2018",
            "--end", "2018",
            "--config", str(config),
        ],
    )
    assert result.exit_code == 0, result.output
    features = pd.read_csv(output, dtype={"gbifid": str})
    assert features["gbifid"].tolist() == ["p1", "b1"]
    assert features["presence"].tolist() == [1, 0]
    assert features["aet"].tolist() == [7.0, 7.0]

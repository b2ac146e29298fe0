import numpy as np
import pandas as pd
import pytest

from seasonal_sdm.exceptions import ConfigurationError, SchemaMismatchError
from seasonal_sdm.soil.aggregate import SoilAggregator, read_soil_table, write_soil_table


def _one_component(horizons: pd.DataFrame) -> pd.DataFrame:
    components = pd.DataFrame(
        {"cokey": [1], "mukey": [10], "comppct_r": [100], "compname": ["A"], "compkind": ["Series"]}
    )
    mapunits = pd.DataFrame({"mukey": [10], "muname": ["A loam"]})
    return SoilAggregator(decimals=None).aggregate(horizons, components, mapunits, depth_cutoff=200)


def _horizons(tops, bottoms, om):
    n = len(tops)
    return pd.DataFrame(
        {
            "cokey": [1] * n,
            "hzdept_r": tops,
            "hzdepb_r": bottoms,
            "om_r": om,
            "cec7_r": [np.nan] * n,
            "ph1to1h2o_r": [np.nan] * n,
        }
    )


def test_thickness_is_clipped_at_cutoff():
    # 0-20 contributes 20 cm, 20-250 contributes 180 cm (not 230) at a 200 cm cutoff
    table = _one_component(_horizons([0, 20], [20, 250], [1.0, 4.0]))
    assert table["om"].item() == pytest.approx((20 * 1.0 + 180 * 4.0) / 200)


def test_thickness_weighted_mean():
    table = _one_component(_horizons([0, 10], [10, 40], [2.0, 4.0]))
    assert table["om"].item() == pytest.approx(3.5)


def test_horizons_below_cutoff_are_ignored():
    table = _one_component(_horizons([0, 200], [10, 300], [2.0, 50.0]))
    assert table["om"].item() == pytest.approx(2.0)


def test_aggregate_fixture(horizons, components, mapunits):
    table = SoilAggregator().aggregate(horizons, components, mapunits, depth_cutoff=30)

    assert table["mukey"].tolist() == ["100", "200", "300"]
    mu100 = table.set_index("mukey").loc["100"]
    # c1: om (10*2 + 20*4) / 30, c2: om 1.0; weighted 60/40
    assert mu100["om"] == pytest.approx(2.4)
    # c1 cec only from its first horizon
    assert mu100["cec"] == pytest.approx(18.0)
    assert mu100["ph"] == pytest.approx(6.0)
    assert mu100["dominant_taxon_name"] == "Alpha"
    assert mu100["dominant_taxon_kind"] == "Series"
    assert mu100["drainage_class"] == "Well drained"
    assert mu100["muname"] == "Alpha-Beta complex_0 to 2 percent slopes"


def test_map_units_without_horizons_are_kept(horizons, components, mapunits):
    table = SoilAggregator().aggregate(horizons, components, mapunits, depth_cutoff=30).set_index("mukey")
    assert table.loc["200", ["om", "cec", "ph"]].isna().all()
    assert table.loc["300", ["om", "cec", "ph"]].isna().all()
    assert table.loc["300", "muname"] == "Water"


def test_miscellaneous_areas_are_not_dominant(horizons, components, mapunits):
    table = SoilAggregator().aggregate(horizons, components, mapunits, depth_cutoff=30).set_index("mukey")
    assert table.loc["200", "dominant_taxon_name"] == "Gamma"
    assert pd.isna(table.loc["300", "dominant_taxon_name"])


def test_all_null_mapunit_columns_are_dropped(horizons, components, mapunits):
    table = SoilAggregator().aggregate(horizons, components, mapunits, depth_cutoff=30)
    assert "mukind" not in table.columns


def test_dominant_taxon_tie_break_is_deterministic():
    horizons = pd.DataFrame(
        {"cokey": [], "hzdept_r": [], "hzdepb_r": [], "om_r": [], "cec7_r": [], "ph1to1h2o_r": []}
    )
    components = pd.DataFrame(
        {
            "cokey": ["9", "10", "11"],
            "mukey": ["1", "1", "1"],
            "comppct_r": [40, 40, 20],
            "compname": ["Nine", "Ten", "Eleven"],
            "compkind": ["Series", "Series", "Series"],
        }
    )
    mapunits = pd.DataFrame({"mukey": ["1"], "muname": ["Mixed"]})
    aggregator = SoilAggregator()

    names = set()
    for seed in range(5):
        shuffled = components.sample(frac=1, random_state=seed)
        table = aggregator.aggregate(horizons, shuffled, mapunits, depth_cutoff=30)
        names.add(table["dominant_taxon_name"].item())
    # "10" sorts before "9" as a string
    assert names == {"Ten"}


def test_rounding_happens_on_final_table_only():
    table = SoilAggregator(decimals=2).aggregate(
        _horizons([0, 10], [10, 40], [1.0, 2.0]),
        pd.DataFrame({"cokey": [1], "mukey": [10], "comppct_r": [100], "compname": ["A"], "compkind": ["Series"]}),
        pd.DataFrame({"mukey": [10], "muname": ["A"]}),
        depth_cutoff=30,
    )
    # (10 * 1 + 20 * 2) / 30 = 1.6667
    assert table["om"].item() == 1.67


def test_invalid_depths_are_dropped(caplog):
    with caplog.at_level("WARNING"):
        table = _one_component(_horizons([0, 30], [10, 20], [2.0, 99.0]))
    assert table["om"].item() == pytest.approx(2.0)
    assert "inverted" in caplog.text


def test_unknown_depth_cutoff(horizons, components, mapunits):
    aggregator = SoilAggregator(supported_depths=[30, 100, 200])
    with pytest.raises(ConfigurationError):
        aggregator.aggregate(horizons, components, mapunits, depth_cutoff=50)


def test_duplicate_mapunits_raise(horizons, components, mapunits):
    duplicated = pd.concat([mapunits, mapunits.iloc[:1]])
    with pytest.raises(SchemaMismatchError):
        SoilAggregator().aggregate(horizons, components, duplicated, depth_cutoff=30)


def test_missing_columns_raise(horizons, components, mapunits):
    with pytest.raises(SchemaMismatchError):
        SoilAggregator().aggregate(horizons.drop(columns="om_r"), components, mapunits, depth_cutoff=30)


def test_soil_table_round_trip_keeps_string_keys(tmp_path, horizons, components, mapunits):
    table = SoilAggregator().aggregate(horizons, components, mapunits, depth_cutoff=100)
    path = write_soil_table(table, tmp_path, 100, region="CA")
    assert path.name == "horizon_100cm_CA.csv"
    loaded = read_soil_table(path)
    assert loaded["mukey"].tolist() == ["100", "200", "300"]
    assert "," not in "".join(loaded["muname"].dropna())

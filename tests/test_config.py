import pytest

from seasonal_sdm.config import PipelineConfig, load_config
from seasonal_sdm.exceptions import ConfigurationError
from seasonal_sdm.temporal import Method, Season


def test_defaults():
    config = PipelineConfig()
    assert config.temporal.min_water_year == 2000
    assert config.temporal.max_water_year == 2022
    assert config.soil.depth_cutoffs == [30, 100, 200]
    assert config.layers.seasonal[0].season is Season.WINTER
    assert config.layers.seasonal[0].method is Method.SUM


def test_partial_file_keeps_other_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("soil:\n  depth_cutoffs: [100, 30]\nprocessing:\n  n_workers: -1\n")
    config = load_config(path)
    assert config.soil.depth_cutoffs == [30, 100]
    assert config.processing.n_workers == -1
    assert config.observations.id_column == "gbifid"


def test_empty_file_is_all_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(path) == PipelineConfig()


def test_indexer_uses_configured_years(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("temporal:\n  min_water_year: 2010\n  max_water_year: 2012\n")
    indexer = load_config(path).indexer()
    assert [p.water_year for p in indexer.periods(2010, 2012)][::12] == [2010, 2011, 2012]
    with pytest.raises(ConfigurationError):
        indexer.periods(2009, 2012)


@pytest.mark.parametrize(
    "text",
    [
        "temporal:\n  min_water_year: 2020\n  max_water_year: 2000\n",
        "processing:\n  n_workers: 0\n",
        "layers:\n  seasonal:\n    - {variable: ppt, season: spring, method: sum}\n",
        "soil:\n  depth_cutoffs: []\n",
        "unknown_section: 1\n",
    ],
)
def test_invalid_values(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "missing.yaml")

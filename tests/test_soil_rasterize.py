import numpy as np
import pandas as pd
import pytest

from seasonal_sdm.exceptions import SchemaMismatchError
from seasonal_sdm.raster.io import read_layer
from seasonal_sdm.raster.store import RasterStore
from seasonal_sdm.soil.encoding import DRAINAGE_CLASSES, CategoricalEncoding, encoding_path
from seasonal_sdm.soil.rasterize import SoilRasterizer, VariableKind

from conftest import make_layer


@pytest.fixture
def soil_table() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "mukey": ["100", "200"],
            "om": [2.4, 5.0],
            "dominant_taxon_name": ["Gamma", "Alpha"],
            "drainage_class": ["Poorly drained", "Well drained"],
        }
    )


@pytest.fixture
def mapunit_raster():
    keys = np.full((4, 5), 100.0, dtype="float32")
    keys[:, 3:] = 200.0
    keys[0, 0] = 999.0
    keys[3, 4] = np.nan
    return make_layer(keys)


def test_reclassify_continuous(grid_layer, mapunit_raster, soil_table):
    result = SoilRasterizer(grid_layer).reclassify(mapunit_raster, soil_table, "om")
    assert result.values[1, 1] == pytest.approx(2.4)
    assert result.values[1, 4] == pytest.approx(5.0)
    # unknown key and nodata
    assert np.isnan(result.values[0, 0])
    assert np.isnan(result.values[3, 4])


def test_rasterize_categorical_uses_shared_codes(grid_layer, mapunit_raster, soil_table):
    rasterizer = SoilRasterizer(grid_layer)
    result = rasterizer.rasterize(mapunit_raster, soil_table, "dominant_taxon_name", VariableKind.CATEGORICAL)
    encoding = rasterizer.encodings["dominant_taxon_name"]
    assert encoding.labels == ("Alpha", "Gamma")
    assert result.values[1, 1] == 1.0
    assert result.values[1, 4] == 0.0
    assert set(np.unique(result.values[np.isfinite(result.values)])) <= {0.0, 1.0}


def test_drainage_uses_ordered_classes(grid_layer, mapunit_raster, soil_table):
    rasterizer = SoilRasterizer(grid_layer)
    result = rasterizer.rasterize(mapunit_raster, soil_table, "drainage_class", "categorical")
    assert rasterizer.encodings["drainage_class"].ordered
    assert result.values[1, 1] == DRAINAGE_CLASSES.index("Poorly drained")
    assert result.values[1, 4] == DRAINAGE_CLASSES.index("Well drained")


def test_rasterize_aligns_to_reference(mapunit_raster, soil_table):
    coarse = make_layer(0.0, resolution=200.0, shape=(2, 3))
    result = SoilRasterizer(coarse).rasterize(mapunit_raster, soil_table, "om", "continuous")
    assert result.shape == (2, 3)
    np.testing.assert_array_equal(result.x.values, coarse.x.values)


def test_written_layers_are_found_by_variable(tmp_path, grid_layer, mapunit_raster, soil_table):
    rasterizer = SoilRasterizer(grid_layer)
    paths = rasterizer.rasterize_all(
        mapunit_raster,
        soil_table,
        tmp_path,
        {"om": "continuous", "dominant_taxon_name": "categorical"},
        region="CA",
    )
    assert [p.name for p in paths] == [
        "soil_om_270m_CA_2023.tif",
        "soil_dominant_taxon_name_270m_CA_2023.tif",
    ]
    assert encoding_path(paths[1]).exists()
    assert not encoding_path(paths[0]).exists()

    store = RasterStore(tmp_path)
    assert [h.path for h in store.find_static("om")] == [paths[0]]
    assert read_layer(paths[0]).values[1, 1] == pytest.approx(2.4)


def test_missing_variable_raises(grid_layer, mapunit_raster, soil_table):
    with pytest.raises(SchemaMismatchError):
        SoilRasterizer(grid_layer).reclassify(mapunit_raster, soil_table, "cec")


def test_encoding_round_trip(tmp_path):
    encoding = CategoricalEncoding.from_values(["b", "a", None, "b"], name="taxon")
    assert encoding.labels == ("a", "b")
    codes = encoding.encode(["b", "c", None])
    assert codes[0] == 1.0
    assert np.isnan(codes[1]) and np.isnan(codes[2])
    assert encoding.decode([1.0, np.nan, 0]).tolist() == ["b", None, "a"]

    loaded = CategoricalEncoding.load(encoding.save(tmp_path / "taxon.encoding.csv"), name="taxon")
    assert loaded == encoding


@pytest.fixture
def two_unit_raster():
    keys = np.full((4, 5), 100.0, dtype="float32")
    keys[:, 3:] = 200.0
    return make_layer(keys)


def test_offset_grid_continuous_is_interpolated(two_unit_raster, soil_table):
    # cell centres fall on the source cell edges
    offset = make_layer(0.0, x_min=50.0)
    result = SoilRasterizer(offset).rasterize(two_unit_raster, soil_table, "om", "continuous")
    assert result.values[1, 0] == pytest.approx(2.4, abs=1e-4)
    assert result.values[1, 3] == pytest.approx(5.0, abs=1e-4)
    # boundary between map units 100 and 200
    assert result.values[1, 2] == pytest.approx(3.7, abs=1e-4)


def test_offset_grid_categorical_keeps_valid_codes(two_unit_raster, soil_table):
    offset = make_layer(0.0, x_min=50.0)
    rasterizer = SoilRasterizer(offset)
    valid = {float(DRAINAGE_CLASSES.index("Poorly drained")), float(DRAINAGE_CLASSES.index("Well drained"))}

    drainage = rasterizer.rasterize(two_unit_raster, soil_table, "drainage_class", "categorical")
    codes = drainage.values[np.isfinite(drainage.values)]
    assert codes.size > 0
    assert set(np.unique(codes)) <= valid
    assert drainage.values[1, 0] == DRAINAGE_CLASSES.index("Poorly drained")
    assert drainage.values[1, 3] == DRAINAGE_CLASSES.index("Well drained")

    taxon = rasterizer.rasterize(two_unit_raster, soil_table, "dominant_taxon_name", "categorical")
    assert set(np.unique(taxon.values[np.isfinite(taxon.values)])) <= {0.0, 1.0}

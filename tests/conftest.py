from pathlib import Path
from typing import Callable, Union

import numpy as np
import pandas as pd
import pytest
import xarray as xr
import rioxarray  # noqa: F401

GRID_CRS = "EPSG:3310"
RESOLUTION = 100.0
N_ROWS, N_COLS = 4, 5
X_MIN, Y_MAX = 0.0, 1000.0


def make_layer(
    values: Union[float, np.ndarray],
    crs: str = GRID_CRS,
    x_min: float = X_MIN,
    y_max: float = Y_MAX,
    resolution: float = RESOLUTION,
    shape=(N_ROWS, N_COLS),
) -> xr.DataArray:
    """A single-band grid with cell centres on a regular lattice, north up."""
    n_rows, n_cols = shape
    data = np.broadcast_to(np.asarray(values, dtype="float32"), shape).copy()
    x = x_min + resolution / 2 + resolution * np.arange(n_cols)
    y = y_max - resolution / 2 - resolution * np.arange(n_rows)
    layer = xr.DataArray(data, coords={"y": y, "x": x}, dims=("y", "x"))
    layer = layer.rio.write_crs(crs)
    return layer.rio.write_nodata(np.nan, encoded=False)


@pytest.fixture
def write_raster() -> Callable[..., Path]:
    """Writes a synthetic GeoTIFF and returns its path."""
    def _write(path: Path, values=0.0, **kwargs) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        make_layer(values, **kwargs).rio.to_raster(path)
        return path
    return _write


@pytest.fixture
def grid_layer() -> xr.DataArray:
    return make_layer(0.0)


@pytest.fixture
def cell_centres():
    """(x, y) of the centre of cell (row, col) on the default grid."""
    def _centre(row: int, col: int):
        return X_MIN + RESOLUTION * (col + 0.5), Y_MAX - RESOLUTION * (row + 0.5)
    return _centre


@pytest.fixture
def horizons() -> pd.DataFrame:
    """Horizons for three map units.

    Component c1 (mu 100) has horizons 0-10 and 10-40; c2 (mu 100) has one
    horizon 20-250; c3 (mu 200) starts below every cutoff used in the tests.
    """
    return pd.DataFrame(
        {
            "cokey": [1, 1, 2, 3],
            "hzdept_r": [0, 10, 20, 300],
            "hzdepb_r": [10, 40, 250, 400],
            "om_r": [2.0, 4.0, 1.0, 9.0],
            "cec7_r": [10.0, np.nan, 30.0, 50.0],
            "ph1to1h2o_r": [6.0, 7.0, 5.0, 8.0],
        }
    )


@pytest.fixture
def components() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "cokey": [1, 2, 3, 4],
            "mukey": [100, 100, 200, 200],
            "comppct_r": [60, 40, 50, 50],
            "compname": ["Alpha", "Beta", "Gamma", "Rock outcrop"],
            "compkind": ["Series", "Series", "Series", "Miscellaneous area"],
            "drainagecl": ["Well drained", "Poorly drained", "Somewhat poorly drained", None],
        }
    )


@pytest.fixture
def mapunits() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "mukey": [100, 200, 300],
            "muname": ["Alpha-Beta complex, 0 to 2 percent slopes", "Gamma loam", "Water"],
            "mukind": [None, None, None],
        }
    )

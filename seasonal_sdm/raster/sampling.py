"""Point reprojection and nearest-cell sampling of raster stacks."""

import logging
from typing import Tuple, Union

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr

logger = logging.getLogger(__name__)


def reproject_points(
    xs: Union[np.ndarray, pd.Series],
    ys: Union[np.ndarray, pd.Series],
    src_crs: Union[str, int],
    dst_crs: Union[str, int],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Reprojects coordinates between CRSs.

    Returns:
        Projected x, projected y and a boolean mask of points that projected to
        finite coordinates. Failed points get NaN coordinates.
    """
    xs = pd.to_numeric(pd.Series(np.asarray(xs)), errors="coerce").to_numpy(dtype="float64")
    ys = pd.to_numeric(pd.Series(np.asarray(ys)), errors="coerce").to_numpy(dtype="float64")
    out_x = np.full(xs.shape, np.nan)
    out_y = np.full(ys.shape, np.nan)

    valid = np.isfinite(xs) & np.isfinite(ys)
    if valid.any():
        points = gpd.GeoSeries(gpd.points_from_xy(xs[valid], ys[valid]), crs=src_crs)
        projected = points.to_crs(dst_crs)
        out_x[valid] = projected.x.to_numpy()
        out_y[valid] = projected.y.to_numpy()

    ok = np.isfinite(out_x) & np.isfinite(out_y)
    return out_x, out_y, ok


def cell_indices(stack: Union[xr.Dataset, xr.DataArray], xs: np.ndarray, ys: np.ndarray):
    """Row/column of the cell containing each point and whether it lies on the grid."""
    transform = stack.rio.transform()
    width, height = stack.rio.width, stack.rio.height
    finite = np.isfinite(xs) & np.isfinite(ys)
    cols, rows = ~transform @ (np.where(finite, xs, 0.0), np.where(finite, ys, 0.0))
    cols = np.floor(cols).astype("int64")
    rows = np.floor(rows).astype("int64")
    inside = finite & (cols >= 0) & (cols < width) & (rows >= 0) & (rows < height)
    return rows, cols, inside


def sample_nearest(
    stack: xr.Dataset,
    xs: np.ndarray,
    ys: np.ndarray,
) -> Tuple[pd.DataFrame, np.ndarray]:
    """Samples every band at each point's containing cell, without interpolation.

    Args:
        stack: Dataset of 2D bands sharing one grid.
        xs, ys: Point coordinates in the stack's CRS.

    Returns:
        A frame with one column per band (in stack order) and one row per point,
        NaN where the point is off the grid, plus the on-grid mask.
    """
    xs = np.asarray(xs, dtype="float64")
    ys = np.asarray(ys, dtype="float64")
    if not stack.data_vars:
        return pd.DataFrame(index=range(len(xs))), np.zeros(len(xs), dtype=bool)

    rows, cols, inside = cell_indices(stack, xs, ys)
    values = {}
    for name, band in stack.data_vars.items():
        array = band.transpose("y", "x").to_numpy()
        sampled = np.full(len(xs), np.nan, dtype="float64")
        sampled[inside] = array[rows[inside], cols[inside]]
        values[name] = sampled
    return pd.DataFrame(values), inside

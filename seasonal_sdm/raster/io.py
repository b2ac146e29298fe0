"""Scoped read and write of single-band raster layers."""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Union

import numpy as np
import rioxarray as rxr
import xarray as xr

from seasonal_sdm.exceptions import MissingInputError, OutputExistsError, SchemaMismatchError

logger = logging.getLogger(__name__)

_ENCODING_ATTRS = ("_FillValue", "scale_factor", "add_offset", "missing_value")


@contextmanager
def open_layer(path: Union[str, Path]) -> Iterator[xr.DataArray]:
    """Opens a single-band raster, masking nodata as NaN, and guarantees it is closed."""
    path = Path(path)
    if not path.exists():
        raise MissingInputError(f"Raster not found: {path}", key=path.name)
    data = rxr.open_rasterio(path, masked=True)
    try:
        if "band" in data.dims:
            if data.sizes["band"] != 1:
                raise SchemaMismatchError(f"{path.name} has {data.sizes['band']} bands, expected 1")
            data = data.squeeze("band", drop=True)
        yield data
    finally:
        data.close()


def read_layer(path: Union[str, Path]) -> xr.DataArray:
    """Reads a single-band raster fully into memory."""
    with open_layer(path) as data:
        return data.load()


def _clean_for_write(data: xr.DataArray) -> xr.DataArray:
    data = data.astype("float32")
    data.encoding = {}
    data.attrs = {k: v for k, v in data.attrs.items() if k not in _ENCODING_ATTRS}
    return data.rio.write_nodata(np.nan, encoded=False)


def write_layer(
    data: xr.DataArray,
    path: Union[str, Path],
    overwrite: bool = False,
) -> Path:
    """Writes a single-band float32 GeoTIFF with NaN as nodata.

    The raster is written to a temporary file in the same directory and then
    moved into place, so a key never points at a partially written file.

    Raises:
        OutputExistsError: If `path` exists and `overwrite` is False.
        SchemaMismatchError: If the array has no CRS.
    """
    path = Path(path)
    if path.exists() and not overwrite:
        raise OutputExistsError(f"{path} already exists; pass overwrite=True to replace it")
    if data.rio.crs is None:
        raise SchemaMismatchError(f"Refusing to write {path.name} without a CRS")
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = path.with_name(f".{path.stem}.tmp{path.suffix}")
    _clean_for_write(data).rio.to_raster(tmp_path, compress="deflate")
    os.replace(tmp_path, path)
    logger.debug(f"Wrote {path}")
    return path


def convert_ascii_rasters(
    directory: Union[str, Path],
    crs: Union[str, int] = "EPSG:3310",
    overwrite: bool = False,
) -> List[Path]:
    """Converts every ESRI ASCII grid in a directory to a same-named GeoTIFF.

    ASCII grids carry no reliable projection, so `crs` is written explicitly.

    Args:
        directory: Folder containing `.asc` files.
        crs: Coordinate reference system of the grids.
        overwrite: Replace existing `.tif` files instead of skipping them.

    Returns:
        Paths of the GeoTIFFs written in this call.
    """
    directory = Path(directory)
    written = []
    ascii_paths = sorted(directory.glob("*.asc"))
    logger.info(f"Found {len(ascii_paths)} ASCII grids in {directory}")
    for asc_path in ascii_paths:
        tif_path = asc_path.with_suffix(".tif")
        if tif_path.exists() and not overwrite:
            logger.debug(f"Skipping {asc_path.name}, {tif_path.name} exists")
            continue
        with open_layer(asc_path) as data:
            data = data.rio.write_crs(crs)
            written.append(write_layer(data, tif_path, overwrite=True))
    logger.info(f"Converted {len(written)} ASCII grids to GeoTIFF")
    return written

"""
Read-only access to directories of name-encoded raster layers.

A store scans its directories once, building a key -> path index. Lookups
return lists of `LayerHandle`; an empty list means nothing matched and the
caller decides whether that is fatal.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import xarray as xr
from rasterio.enums import Resampling

from seasonal_sdm.exceptions import SchemaMismatchError
from seasonal_sdm.raster.io import read_layer
from seasonal_sdm.raster.naming import (
    RASTER_SUFFIX,
    LayerKey,
    LayerKind,
    matches_static,
    monthly_average_key,
    parse_layer_filename,
    seasonal_average_key,
    static_key,
)
from seasonal_sdm.temporal import Method, Season, parse_method, parse_season

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class LayerHandle:
    key: LayerKey
    path: Path

    def label(self, length: Optional[int] = None) -> str:
        return self.key.short_name(length)


class RasterStore:
    """Key -> path index over one or more raster directories.

    Args:
        directories: Directory or directories to scan (non-recursive).
    """

    def __init__(self, directories: Union[PathLike, Sequence[PathLike]]):
        if isinstance(directories, (str, Path)):
            directories = [directories]
        self.directories = [Path(d) for d in directories]
        self._index: Dict[LayerKey, Path] = {}
        self._unkeyed: List[Path] = []
        self.scan()

    def __repr__(self) -> str:
        return f"RasterStore({[str(d) for d in self.directories]}, {len(self._index)} keyed layers)"

    def __len__(self) -> int:
        return len(self._index) + len(self._unkeyed)

    def __contains__(self, key: LayerKey) -> bool:
        return key in self._index

    def scan(self) -> None:
        """(Re)builds the index from the directories."""
        self._index = {}
        self._unkeyed = []
        for directory in self.directories:
            if not directory.is_dir():
                logger.warning(f"Raster directory does not exist: {directory}")
                continue
            for path in sorted(directory.iterdir()):
                if path.suffix.lower() != RASTER_SUFFIX or path.name.startswith("."):
                    continue
                key = parse_layer_filename(path)
                if key is None:
                    self._unkeyed.append(path)
                    continue
                if key in self._index:
                    logger.warning(
                        f"Duplicate layer {key}: keeping {self._index[key]}, ignoring {path}"
                    )
                    continue
                self._index[key] = path
        logger.debug(f"Indexed {len(self._index)} keyed and {len(self._unkeyed)} unkeyed layers")

    def register(self, handle: LayerHandle) -> None:
        """Adds a layer written after the scan."""
        self._index[handle.key] = handle.path

    def keys(self, kind: Optional[LayerKind] = None) -> List[LayerKey]:
        return [k for k in self._index if kind is None or k.kind == kind]

    def path(self, key: LayerKey) -> Optional[Path]:
        return self._index.get(key)

    def _select(self, **criteria) -> List[LayerHandle]:
        handles = [
            LayerHandle(key, path)
            for key, path in self._index.items()
            if all(getattr(key, name) == value for name, value in criteria.items() if value is not None)
        ]
        return sorted(handles, key=lambda h: h.path.name)

    def find(self, variable: Optional[str], year: int, month: int) -> List[LayerHandle]:
        """Monthly layers for a calendar year and month. `variable=None` returns every variable."""
        return self._select(
            kind=LayerKind.MONTHLY,
            variable=variable.lower() if variable else None,
            year=int(year),
            month=int(month),
        )

    def find_seasonal(
        self,
        variable: Optional[str],
        water_year: int,
        season: Union[str, Season],
        method: Optional[Union[str, Method]] = None,
    ) -> List[LayerHandle]:
        """Seasonal composites for a water year."""
        return self._select(
            kind=LayerKind.SEASONAL,
            variable=variable.lower() if variable else None,
            year=int(water_year),
            season=parse_season(season),
            method=parse_method(method) if method is not None else None,
        )

    def find_monthly_average(self, variable: str, month: int) -> List[LayerHandle]:
        path = self._index.get(monthly_average_key(variable, month))
        return [LayerHandle(monthly_average_key(variable, month), path)] if path else []

    def find_seasonal_average(
        self,
        variable: str,
        season: Union[str, Season],
        method: Union[str, Method],
    ) -> List[LayerHandle]:
        key = seasonal_average_key(variable, season, method)
        path = self._index.get(key)
        return [LayerHandle(key, path)] if path else []

    def find_static(self, variable: str) -> List[LayerHandle]:
        """Static layers whose file name contains `_{variable}_`."""
        key = static_key(variable)
        return [LayerHandle(key, path) for path in self._unkeyed if matches_static(path, variable)]

    def stack(
        self,
        handles: Iterable[LayerHandle],
        reference: Optional[xr.DataArray] = None,
        length: Optional[int] = None,
    ) -> xr.Dataset:
        return stack_layers(handles, reference=reference, length=length)


def _aligned(data: xr.DataArray, reference: xr.DataArray) -> bool:
    return (
        data.rio.crs == reference.rio.crs
        and data.shape == reference.shape
        and data.rio.transform().almost_equals(reference.rio.transform())
    )


def stack_layers(
    handles: Iterable[LayerHandle],
    reference: Optional[xr.DataArray] = None,
    length: Optional[int] = None,
) -> xr.Dataset:
    """Reads layers into one dataset with bands in the order given.

    Bands are labelled by each key's short name. Layers that do not share the
    reference grid are resampled onto it with nearest-neighbour resampling.

    Args:
        handles: Layers to stack.
        reference: Target grid. Defaults to the first layer.
        length: Truncate plain variable labels to this many characters.

    Raises:
        SchemaMismatchError: If two layers resolve to the same label.
    """
    bands: Dict[str, xr.DataArray] = {}
    for handle in handles:
        label = handle.label(length)
        if label in bands:
            raise SchemaMismatchError(f"Two layers resolve to band '{label}' (second: {handle.path.name})")
        data = read_layer(handle.path)
        if reference is None:
            reference = data
        elif not _aligned(data, reference):
            logger.warning(f"{handle.path.name} is not on the reference grid; resampling (nearest)")
            data = data.rio.reproject_match(reference, resampling=Resampling.nearest)
        data = data.assign_coords(x=reference.x, y=reference.y)
        bands[label] = data.rename(label)

    dataset = xr.Dataset(bands)
    if reference is not None:
        dataset = dataset.rio.write_crs(reference.rio.crs)
    return dataset

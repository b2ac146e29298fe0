"""
Seasonal composite layers.

A composite summarises the three monthly layers of a season within one water
year: winter is December of the previous calendar year plus January and
February, summer is June to August.
"""

import logging
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import xarray as xr

from seasonal_sdm.exceptions import MissingInputError, OutputExistsError, SchemaMismatchError
from seasonal_sdm.raster.io import read_layer, write_layer
from seasonal_sdm.raster.naming import layer_filename, seasonal_key
from seasonal_sdm.raster.store import LayerHandle, RasterStore
from seasonal_sdm.report import RunReport
from seasonal_sdm.temporal import Method, Season, TemporalIndexer, parse_method, parse_season
from seasonal_sdm.utils.parallel import map_tasks

logger = logging.getLogger(__name__)

SUMMABLE_VARIABLES = ("ppt",)


def reduce_layers(layers: Sequence[xr.DataArray], method: Union[str, Method], name: str) -> xr.DataArray:
    """Cell-wise mean or sum of layers sharing one grid.

    A cell that is nodata in any input is nodata in the output.

    Raises:
        SchemaMismatchError: If the layers do not share CRS and grid.
    """
    method = parse_method(method)
    crs = layers[0].rio.crs
    for layer in layers[1:]:
        if layer.rio.crs != crs:
            raise SchemaMismatchError(f"{name}: inputs have different CRS ({crs} vs {layer.rio.crs})")
    try:
        stacked = xr.concat(layers, dim="layer", join="exact")
    except ValueError as e:
        raise SchemaMismatchError(f"{name}: inputs are not on the same grid: {e}") from e

    if method == Method.SUM:
        reduced = stacked.sum(dim="layer", skipna=False)
    else:
        reduced = stacked.mean(dim="layer", skipna=False)
    return reduced.rename(name).rio.write_crs(crs)


class SeasonalAggregator:
    """Builds seasonal composites from monthly layers.

    Args:
        store: Store holding the monthly layers.
        output_dir: Directory composites are written to.
        overwrite: Replace existing composites instead of refusing.
        indexer: Water-year calendar and supported range.
    """

    def __init__(
        self,
        store: RasterStore,
        output_dir: Optional[Union[str, Path]] = None,
        overwrite: bool = False,
        indexer: Optional[TemporalIndexer] = None,
    ):
        self.store = store
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.overwrite = overwrite
        self.indexer = indexer or TemporalIndexer()

    def _check(self, variable: str, season, method, water_year: int) -> Tuple[Season, Method]:
        season = parse_season(season)
        method = parse_method(method)
        self.indexer.validate_year(water_year)
        if method == Method.SUM and variable.lower() not in SUMMABLE_VARIABLES:
            logger.warning(f"Summing '{variable}' over {season}; sums are normally only meaningful for precipitation")
        return season, method

    def composite(
        self,
        variable: str,
        season: Union[str, Season],
        method: Union[str, Method],
        water_year: int,
    ) -> xr.DataArray:
        """Computes a composite in memory.

        Raises:
            ConfigurationError: Unknown season or method.
            RangeError: Water year outside the supported range.
            MissingInputError: Fewer than three monthly inputs exist.
        """
        season, method = self._check(variable, season, method, water_year)
        key = seasonal_key(variable, water_year, season, method)
        periods = self.indexer.season_periods(water_year, season)

        paths, missing = [], []
        for period in periods:
            handles = self.store.find(variable, period.year, period.month)
            if handles:
                paths.append(handles[0].path)
            else:
                missing.append(period.label())
        if missing:
            raise MissingInputError(
                f"{key}: found {len(paths)} of 3 monthly layers, missing {', '.join(variable + m for m in missing)}",
                key=str(key),
            )

        layers = [read_layer(path) for path in paths]
        return reduce_layers(layers, method, key.short_name())

    def output_path(self, variable: str, season, method, water_year: int) -> Path:
        if self.output_dir is None:
            raise ValueError("SeasonalAggregator has no output_dir")
        return self.output_dir / layer_filename(seasonal_key(variable, water_year, season, method))

    def build(
        self,
        variable: str,
        season: Union[str, Season],
        method: Union[str, Method],
        water_year: int,
    ) -> LayerHandle:
        """Computes a composite and writes it under its key.

        Raises:
            OutputExistsError: The output exists and `overwrite` is False.
        """
        season, method = self._check(variable, season, method, water_year)
        path = self.output_path(variable, season, method, water_year)
        if path.exists() and not self.overwrite:
            raise OutputExistsError(f"{path} already exists; pass overwrite=True to rebuild it")

        data = self.composite(variable, season, method, water_year)
        write_layer(data, path, overwrite=self.overwrite)
        handle = LayerHandle(seasonal_key(variable, water_year, season, method), path)
        self.store.register(handle)
        logger.info(f"Built {path.name}")
        return handle

    def _build_or_report(self, variable, season, method, water_year) -> Tuple[Optional[LayerHandle], RunReport]:
        report = RunReport()
        try:
            return self.build(variable, season, method, water_year), report
        except MissingInputError as e:
            logger.warning(str(e))
            report.record(str(water_year), e)
            return None, report

    def build_range(
        self,
        variable: str,
        season: Union[str, Season],
        method: Union[str, Method],
        start: int,
        end: int,
        skip_existing: bool = True,
        n_workers: int = 1,
        progress: Optional[Callable[[int], None]] = None,
    ) -> Tuple[List[LayerHandle], RunReport]:
        """Builds a composite for every water year from `start` to `end`.

        Years with missing inputs are recorded in the returned report instead of
        aborting the batch.

        Returns:
            Handles for every composite available after the run, in water-year
            order, and the report of skipped years.
        """
        season = parse_season(season)
        method = parse_method(method)
        start, end = self.indexer.validate_range(start, end)

        existing = {}
        todo = []
        for wy in range(start, end + 1):
            path = self.output_path(variable, season, method, wy)
            if skip_existing and path.exists() and not self.overwrite:
                logger.debug(f"{path.name} exists, skipping")
                existing[wy] = LayerHandle(seasonal_key(variable, wy, season, method), path)
            else:
                todo.append(wy)

        task = partial(self._build_or_report, variable, season, method)
        results = map_tasks(task, todo, n_workers=n_workers, desc=f"{variable} {season} {method}", progress=progress)

        built = dict(existing)
        reports = []
        for wy, (handle, report) in zip(todo, results):
            reports.append(report)
            if handle is not None:
                self.store.register(handle)
                built[wy] = handle
        report = RunReport.merge(reports)
        logger.info(
            f"{variable} {season} {method}: {len(built) - len(existing)} built, "
            f"{len(existing)} existing, {report.count()} skipped for missing inputs"
        )
        return [built[wy] for wy in sorted(built)], report

"""Multi-year climatologies used as covariates for prediction maps."""

import logging
from functools import partial
from itertools import product
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from seasonal_sdm.climate.seasonal import reduce_layers
from seasonal_sdm.exceptions import MissingInputError, OutputExistsError
from seasonal_sdm.raster.io import read_layer, write_layer
from seasonal_sdm.raster.naming import (
    LayerKey,
    layer_filename,
    monthly_average_key,
    seasonal_average_key,
)
from seasonal_sdm.raster.store import LayerHandle, RasterStore
from seasonal_sdm.report import RunReport
from seasonal_sdm.temporal import Method, Season, TemporalIndexer, month_number, parse_method, parse_season
from seasonal_sdm.utils.parallel import map_tasks

logger = logging.getLogger(__name__)


def _write_average(
    store: RasterStore,
    key: LayerKey,
    handles: List[LayerHandle],
    expected: int,
    output_dir: Union[str, Path],
    overwrite: bool,
    skip_existing: bool = False,
) -> LayerHandle:
    path = Path(output_dir) / layer_filename(key)
    if path.exists() and not overwrite:
        if skip_existing:
            logger.debug(f"{path.name} exists, skipping")
            handle = LayerHandle(key, path)
            store.register(handle)
            return handle
        raise OutputExistsError(f"{path} already exists; pass overwrite=True to rebuild it")
    if not handles:
        raise MissingInputError(f"{key}: no input layers found", key=str(key))
    if len(handles) < expected:
        logger.warning(f"{key}: averaging {len(handles)} of {expected} years")

    layers = [read_layer(h.path) for h in handles]
    data = reduce_layers(layers, Method.MEAN, key.short_name())
    write_layer(data, path, overwrite=overwrite)
    handle = LayerHandle(key, path)
    store.register(handle)
    logger.info(f"Wrote {path.name} from {len(handles)} layers")
    return handle


def average_monthly(
    store: RasterStore,
    variable: str,
    month: Union[int, str],
    start: int,
    end: int,
    output_dir: Union[str, Path],
    overwrite: bool = False,
    indexer: Optional[TemporalIndexer] = None,
    skip_existing: bool = False,
) -> LayerHandle:
    """Averages one calendar month of a variable across water years `start`..`end`.

    Writes `{variable}_{mon}_avg.tif`. An existing output raises OutputExistsError
    unless `overwrite` is set, or is returned as is when `skip_existing` is set.

    Raises:
        MissingInputError: No monthly layer exists for any year in the range.
    """
    indexer = indexer or TemporalIndexer()
    start, end = indexer.validate_range(start, end)
    month = month_number(month)
    handles = []
    for wy in range(start, end + 1):
        period = indexer.period(wy, month)
        handles.extend(store.find(variable, period.year, period.month))
    key = monthly_average_key(variable, month)
    return _write_average(store, key, handles, end - start + 1, output_dir, overwrite, skip_existing)


def average_seasonal(
    store: RasterStore,
    variable: str,
    season: Union[str, Season],
    method: Union[str, Method],
    start: int,
    end: int,
    output_dir: Union[str, Path],
    overwrite: bool = False,
    indexer: Optional[TemporalIndexer] = None,
    skip_existing: bool = False,
) -> LayerHandle:
    """Averages a seasonal composite across water years `start`..`end`.

    Writes `{variable}_{season}_{method}_avg.tif`, band-named `{variable}_{season}_{method}`.
    """
    indexer = indexer or TemporalIndexer()
    start, end = indexer.validate_range(start, end)
    season, method = parse_season(season), parse_method(method)
    handles = []
    for wy in range(start, end + 1):
        handles.extend(store.find_seasonal(variable, wy, season, method))
    key = seasonal_average_key(variable, season, method)
    return _write_average(store, key, handles, end - start + 1, output_dir, overwrite, skip_existing)


def _average_month_task(store, start, end, output_dir, overwrite, indexer, skip_existing, item):
    variable, month = item
    report = RunReport()
    try:
        return average_monthly(store, variable, month, start, end, output_dir, overwrite, indexer, skip_existing), report
    except MissingInputError as e:
        logger.warning(str(e))
        report.record(f"{variable}_{month:02d}", e)
        return None, report


def average_all_months(
    store: RasterStore,
    variables: Sequence[str],
    start: int,
    end: int,
    output_dir: Union[str, Path],
    overwrite: bool = False,
    indexer: Optional[TemporalIndexer] = None,
    n_workers: int = 1,
    skip_existing: bool = True,
) -> Tuple[List[LayerHandle], RunReport]:
    """Monthly climatologies for every variable and calendar month.

    Variables with no inputs for a month are reported rather than aborting.
    Existing climatologies are kept unless `overwrite` is set.
    """
    indexer = indexer or TemporalIndexer()
    indexer.validate_range(start, end)
    items = list(product(variables, range(1, 13)))
    task = partial(_average_month_task, store, start, end, output_dir, overwrite, indexer, skip_existing)
    results = map_tasks(task, items, n_workers=n_workers, desc="Monthly averages")

    handles = []
    for handle, _ in results:
        if handle is not None:
            store.register(handle)
            handles.append(handle)
    return handles, RunReport.merge(r for _, r in results)

"""
Environmental data extraction at observation points.

For every month of the requested water years the engine selects the
observations dated to that calendar month, stacks that month's climate layers
with the water year's seasonal composites and the static layers, and samples
the stack at each point. Each period is computed independently and the
per-period tables are concatenated in period order, producing one
samples-with-data (SWD) row per observation.
"""

import logging
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from seasonal_sdm.climate.seasonal import SeasonalAggregator
from seasonal_sdm.exceptions import GeometryError, MissingInputError, SchemaMismatchError
from seasonal_sdm.raster.naming import seasonal_key, static_key
from seasonal_sdm.raster.sampling import reproject_points, sample_nearest
from seasonal_sdm.raster.store import LayerHandle, stack_layers
from seasonal_sdm.report import RunReport
from seasonal_sdm.sources import LayerSources, SeasonalLayer
from seasonal_sdm.temporal import Period, TemporalIndexer, derive_date_fields
from seasonal_sdm.utils.io import write_table
from seasonal_sdm.utils.parallel import map_tasks

logger = logging.getLogger(__name__)

ROW_ID = "_row"


def feature_column_names(
    monthly_variables: Sequence[str],
    seasonal_layers: Sequence[SeasonalLayer],
    static_variables: Sequence[str],
    band_name_length: Optional[int] = None,
) -> List[str]:
    """Normalised environmental column names: monthly, then seasonal, then static."""
    columns = (
        [static_key(v).short_name(band_name_length) for v in monthly_variables]
        + [layer.short_name for layer in seasonal_layers]
        + [static_key(v).short_name(band_name_length) for v in static_variables]
    )
    duplicated = sorted({c for c in columns if columns.count(c) > 1})
    if duplicated:
        raise SchemaMismatchError(f"Layer names collide after normalisation: {duplicated}")
    return columns


@dataclass
class ExtractionResult:
    features: pd.DataFrame
    report: RunReport = field(default_factory=RunReport)


class ExtractionEngine:
    """Builds a feature table by sampling period-matched raster stacks at observations.

    Args:
        indexer: Water-year calendar and supported range.
        id_column: Observation identifier column.
        lon_column: Longitude (x) column.
        lat_column: Latitude (y) column.
        date_column: Observation date column.
        observation_crs: CRS of the observation coordinates.
        band_name_length: Truncate monthly and static variable names to this many
            characters in the output columns.
        aggregator: If given, seasonal composites missing from the climate store
            are built before extraction.
    """

    def __init__(
        self,
        indexer: Optional[TemporalIndexer] = None,
        id_column: str = "gbifid",
        lon_column: str = "decimallongitude",
        lat_column: str = "decimallatitude",
        date_column: str = "eventdate",
        observation_crs: Union[str, int] = "EPSG:4326",
        band_name_length: Optional[int] = None,
        aggregator: Optional[SeasonalAggregator] = None,
    ):
        self.indexer = indexer or TemporalIndexer()
        self.id_column = id_column
        self.lon_column = lon_column
        self.lat_column = lat_column
        self.date_column = date_column
        self.observation_crs = observation_crs
        self.band_name_length = band_name_length
        self.aggregator = aggregator

    def feature_columns(self, sources: LayerSources) -> List[str]:
        """Environmental column names, identical for every period of a run."""
        return feature_column_names(
            sources.monthly_variables,
            sources.seasonal_layers,
            sources.static_variables,
            self.band_name_length,
        )

    def _prepare(self, observations: pd.DataFrame) -> pd.DataFrame:
        required = [self.id_column, self.lon_column, self.lat_column, self.date_column]
        missing = [c for c in required if c not in observations.columns]
        if missing:
            raise SchemaMismatchError(f"Observation table is missing column(s) {missing}")
        if ROW_ID in observations.columns:
            raise SchemaMismatchError(f"Observation table may not contain a '{ROW_ID}' column")
        frame = observations
        if not {"year", "month", "water_year"} <= set(frame.columns):
            frame = derive_date_fields(frame, self.date_column)
        frame = frame.reset_index(drop=True)
        frame[ROW_ID] = np.arange(len(frame))
        return frame

    def _ensure_seasonal(self, sources: LayerSources, water_years: List[int]) -> None:
        for layer in sources.seasonal_layers:
            for wy in water_years:
                key = seasonal_key(layer.variable, wy, layer.season, layer.method)
                if key in sources.climate:
                    continue
                path = self.aggregator.output_path(layer.variable, layer.season, layer.method, wy)
                if path.exists() and not self.aggregator.overwrite:
                    sources.climate.register(LayerHandle(key, path))
                    continue
                try:
                    handle = self.aggregator.build(layer.variable, layer.season, layer.method, wy)
                except MissingInputError as e:
                    logger.debug(f"Cannot build {key}: {e}")
                    continue
                sources.climate.register(handle)

    def period_layers(self, period: Period, sources: LayerSources) -> Tuple[List[LayerHandle], RunReport]:
        """Layer handles for one period, with a report entry for each missing layer."""
        report = RunReport()
        label = period.label()
        handles = []

        def take(found: List[LayerHandle], key: str):
            if not found:
                report.record(label, MissingInputError(f"No layer for {key}", key=key))
                return
            if len(found) > 1:
                logger.warning(f"{len(found)} layers match {key}; using {found[0].path.name}")
            handles.append(found[0])

        for variable in sources.monthly_variables:
            take(sources.climate.find(variable, period.year, period.month), f"{variable}{label}")
        for layer in sources.seasonal_layers:
            found = sources.climate.find_seasonal(layer.variable, period.water_year, layer.season, layer.method)
            take(found, str(seasonal_key(layer.variable, period.water_year, layer.season, layer.method)))
        for variable in sources.static_variables:
            take(sources.static_store.find_static(variable), variable)
        return handles, report

    def extract_period(
        self,
        sources: LayerSources,
        task: Tuple[Period, pd.DataFrame],
    ) -> Tuple[pd.DataFrame, RunReport]:
        """Samples one period's stack at that period's observations.

        Every observation comes back exactly once. Missing layers give null
        columns; points that fail to reproject or fall off the grid give null
        values for every environmental column.
        """
        period, observations = task
        label = period.label()
        columns = self.feature_columns(sources)
        handles, report = self.period_layers(period, sources)

        values = pd.DataFrame(np.nan, index=range(len(observations)), columns=columns)
        if handles:
            stack = stack_layers(handles, length=self.band_name_length)
            xs, ys, projected = reproject_points(
                observations[self.lon_column],
                observations[self.lat_column],
                self.observation_crs,
                stack.rio.crs,
            )
            sampled, inside = sample_nearest(stack, xs, ys)
            values[list(sampled.columns)] = sampled.to_numpy()

            n_failed = int((~projected).sum())
            n_outside = int((projected & ~inside).sum())
            if n_failed:
                report.record(label, GeometryError("Coordinates failed to reproject", key="reprojection"), n_failed)
            if n_outside:
                report.record(label, GeometryError("Point outside raster extent", key="extent"), n_outside)

        rows = pd.concat(
            [observations.reset_index(drop=True), values.astype("float64")],
            axis=1,
        )
        logger.debug(f"{label}: extracted {len(rows)} rows from {len(handles)} layers")
        return rows, report

    def extract(
        self,
        observations: pd.DataFrame,
        date_range: Tuple[int, int],
        sources: LayerSources,
        n_workers: int = 1,
        progress: Optional[Callable[[Period], None]] = None,
        quiet: bool = False,
    ) -> ExtractionResult:
        """Extracts environmental values for every observation dated within `date_range`.

        Args:
            observations: Observation table with id, coordinate and date columns.
            date_range: First and last water year (inclusive).
            sources: Layers to sample.
            n_workers: Processes to spread periods over; -1 uses all cores but one.
            progress: Called with each period once its extraction completes.
            quiet: Disable the progress bar.

        Returns:
            ExtractionResult with one row per matched observation and the report
            of missing layers and geometry failures.

        Raises:
            RangeError: If the date range is inverted or unsupported.
            SchemaMismatchError: If columns are missing or the output row count
                does not match the observations.
        """
        start, end = date_range
        periods = self.indexer.periods(start, end)
        columns = self.feature_columns(sources)
        frame = self._prepare(observations)

        if self.aggregator is not None:
            self._ensure_seasonal(sources, list(range(start, end + 1)))

        grouped = {key: group for key, group in frame.groupby(["year", "month"], sort=False)}
        tasks = []
        for period in periods:
            matched = grouped.get((period.year, period.month))
            if matched is None or matched.empty:
                continue
            tasks.append((period, matched))

        n_matched = sum(len(t[1]) for t in tasks)
        n_unmatched = len(frame) - n_matched
        if n_unmatched:
            logger.info(f"{n_unmatched} observations fall outside water years {start}-{end}")
        logger.info(f"Extracting {n_matched} observations over {len(tasks)} of {len(periods)} periods")

        results = map_tasks(
            partial(self.extract_period, sources),
            tasks,
            n_workers=n_workers,
            desc="Extracting",
            progress=(lambda task: progress(task[0])) if progress is not None else None,
            quiet=quiet,
        )

        output_columns = [c for c in frame.columns if c != ROW_ID] + columns
        if results:
            features = pd.concat([rows for rows, _ in results], ignore_index=True)
        else:
            features = frame.iloc[0:0].reindex(columns=list(frame.columns) + columns)

        duplicated = features[ROW_ID].duplicated()
        if duplicated.any():
            logger.warning(f"Removing {int(duplicated.sum())} duplicated extraction rows")
            features = features.loc[~duplicated]
        if len(features) != n_matched:
            raise SchemaMismatchError(
                f"Extraction produced {len(features)} rows for {n_matched} observations"
            )

        features = features[output_columns].reset_index(drop=True)
        report = RunReport.merge(r for _, r in results)
        report.log_summary(logger)
        return ExtractionResult(features=features, report=report)


def write_feature_table(features: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Writes the feature table as csv or parquet depending on the suffix."""
    path = write_table(features, path)
    logger.info(f"Saved {len(features)} feature rows to {path}")
    return path

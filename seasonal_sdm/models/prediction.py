"""Monthly suitability maps from a fitted model and climatology layers."""

import logging
from functools import partial
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import xarray as xr
from tqdm import tqdm

from seasonal_sdm.exceptions import OutputExistsError, SchemaMismatchError
from seasonal_sdm.models.maxent import SuitabilityModel
from seasonal_sdm.raster.io import write_layer
from seasonal_sdm.raster.store import stack_layers
from seasonal_sdm.sources import LayerSources
from seasonal_sdm.temporal import month_abbreviation, month_number, month_range
from seasonal_sdm.utils.parallel import map_tasks

logger = logging.getLogger(__name__)


def prediction_filename(month: int, species: Optional[str] = None, scenario: Optional[str] = None) -> str:
    parts = [p for p in (species, scenario) if p] + [month_abbreviation(month), "pred"]
    return "_".join(parts) + ".tif"


class PredictionMapper:
    """Applies a suitability model cell-wise to a month's covariate stack.

    The stack for a month holds the monthly climatologies of the monthly
    variables, the seasonal climatologies and the static layers, labelled the
    same way as the extraction feature table.

    Args:
        sources: Default layer sources.
        band_name_length: Must match the length used during extraction.
        block_rows: Raster rows evaluated per model call.
    """

    def __init__(
        self,
        sources: Optional[LayerSources] = None,
        band_name_length: Optional[int] = None,
        block_rows: int = 256,
    ):
        self.sources = sources
        self.band_name_length = band_name_length
        self.block_rows = block_rows

    def _sources(self, sources: Optional[LayerSources]) -> LayerSources:
        sources = sources or self.sources
        if sources is None:
            raise ValueError("No layer sources given")
        return sources

    def assemble(self, month: Union[int, str], sources: Optional[LayerSources] = None) -> xr.Dataset:
        """Stacks every available covariate layer for a calendar month."""
        sources = self._sources(sources)
        month = month_number(month)
        handles = []
        for variable in sources.monthly_variables:
            handles.extend(sources.climate.find_monthly_average(variable, month))
        for layer in sources.seasonal_layers:
            handles.extend(sources.climate.find_seasonal_average(layer.variable, layer.season, layer.method))
        for variable in sources.static_variables:
            handles.extend(sources.static_store.find_static(variable)[:1])
        return stack_layers(handles, length=self.band_name_length)

    @staticmethod
    def validate(model: SuitabilityModel, stack: xr.Dataset) -> None:
        """Raises SchemaMismatchError unless every covariate the model expects is a band."""
        available = list(stack.data_vars)
        missing = [name for name in model.covariate_names if name not in available]
        if missing:
            raise SchemaMismatchError(
                f"Covariate stack is missing {missing} expected by the model (available: {available})"
            )

    def evaluate(self, model: SuitabilityModel, stack: xr.Dataset, quiet: bool = True) -> xr.DataArray:
        """Predicts every cell where all covariates are finite; other cells are NaN."""
        self.validate(model, stack)
        names = list(model.covariate_names)
        reference = stack[names[0]]
        values = np.stack([stack[name].transpose("y", "x").to_numpy() for name in names])
        n_rows, n_cols = values.shape[1:]
        output = np.full((n_rows, n_cols), np.nan, dtype="float32")

        for start in tqdm(range(0, n_rows, self.block_rows), desc="Predicting", disable=quiet):
            block = values[:, start:start + self.block_rows, :].reshape(len(names), -1).T
            finite = np.isfinite(block).all(axis=1)
            if not finite.any():
                continue
            frame = pd.DataFrame(block[finite], columns=names)
            predicted = np.full(block.shape[0], np.nan, dtype="float32")
            predicted[finite] = model.predict(frame)
            output[start:start + self.block_rows, :] = predicted.reshape(-1, n_cols)

        suitability = xr.DataArray(
            output,
            coords={"y": reference.y, "x": reference.x},
            dims=("y", "x"),
            name="suitability",
        )
        return suitability.rio.write_crs(stack.rio.crs)

    def predict(
        self,
        model: SuitabilityModel,
        month: Union[int, str],
        sources: Optional[LayerSources] = None,
    ) -> xr.DataArray:
        """Suitability raster for one calendar month.

        Raises:
            SchemaMismatchError: If any covariate the model expects is absent.
        """
        stack = self.assemble(month, sources)
        return self.evaluate(model, stack)

    def _predict_to_file(self, model, output_dir, species, scenario, overwrite, sources, month) -> Path:
        path = Path(output_dir) / prediction_filename(month, species, scenario)
        if path.exists() and not overwrite:
            raise OutputExistsError(f"{path} already exists; pass overwrite=True to replace it")
        suitability = self.predict(model, month, sources)
        write_layer(suitability, path, overwrite=overwrite)
        logger.info(f"Wrote {path.name}")
        return path

    def predict_months(
        self,
        model: SuitabilityModel,
        output_dir: Union[str, Path],
        months: Optional[Sequence[Union[int, str]]] = None,
        species: Optional[str] = None,
        scenario: Optional[str] = None,
        overwrite: bool = False,
        sources: Optional[LayerSources] = None,
        n_workers: int = 1,
    ) -> List[Path]:
        """Writes `{species}_{scenario}_{mon}_pred.tif` for each month (all twelve by default)."""
        sources = self._sources(sources)
        months = month_range(months)
        task = partial(self._predict_to_file, model, output_dir, species, scenario, overwrite, sources)
        return map_tasks(task, months, n_workers=n_workers, desc="Monthly predictions")

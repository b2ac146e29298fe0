"""Map-unit soil tables to climate-aligned raster layers."""

import logging
from enum import StrEnum
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd
import xarray as xr
from rasterio.enums import Resampling

from seasonal_sdm.exceptions import SchemaMismatchError
from seasonal_sdm.raster.io import write_layer
from seasonal_sdm.raster.naming import static_layer_filename
from seasonal_sdm.soil.aggregate import key_strings
from seasonal_sdm.soil.encoding import CategoricalEncoding, build_encodings, encoding_path

logger = logging.getLogger(__name__)


class VariableKind(StrEnum):
    CONTINUOUS = "continuous"
    CATEGORICAL = "categorical"


DEFAULT_VARIABLE_KINDS = {
    "om": VariableKind.CONTINUOUS,
    "cec": VariableKind.CONTINUOUS,
    "ph": VariableKind.CONTINUOUS,
    "dominant_taxon_name": VariableKind.CATEGORICAL,
    "drainage_class": VariableKind.CATEGORICAL,
}

RESAMPLING = {
    VariableKind.CONTINUOUS: Resampling.bilinear,
    VariableKind.CATEGORICAL: Resampling.nearest,
}


class SoilRasterizer:
    """Reclassifies a map-unit key raster to soil values on the climate grid.

    Args:
        reference: A layer on the target climate grid.
        encodings: Encodings for categorical variables. Missing ones are built
            from the soil table on first use and kept, so every layer of a
            variable shares one encoding.
    """

    def __init__(
        self,
        reference: xr.DataArray,
        encodings: Optional[Dict[str, CategoricalEncoding]] = None,
    ):
        if reference.rio.crs is None:
            raise SchemaMismatchError("Reference grid has no CRS")
        self.reference = reference
        self.encodings = dict(encodings or {})

    def encoding_for(self, variable: str, soil_table: pd.DataFrame) -> CategoricalEncoding:
        if variable not in self.encodings:
            self.encodings.update(build_encodings(soil_table, [variable]))
        return self.encodings[variable]

    def lookup(
        self,
        soil_table: pd.DataFrame,
        variable: str,
        kind: Union[str, VariableKind],
    ) -> pd.Series:
        """mukey -> numeric value (or category code)."""
        kind = VariableKind(kind)
        for column in ("mukey", variable):
            if column not in soil_table.columns:
                raise SchemaMismatchError(f"Soil table has no column '{column}'")
        keys = key_strings(soil_table["mukey"])
        if kind == VariableKind.CATEGORICAL:
            values = self.encoding_for(variable, soil_table).encode(soil_table[variable])
        else:
            values = pd.to_numeric(soil_table[variable], errors="coerce").to_numpy(dtype="float64")
        return pd.Series(values, index=pd.Index(keys, name="mukey"), name=variable)

    def reclassify(
        self,
        mapunit_raster: xr.DataArray,
        soil_table: pd.DataFrame,
        variable: str,
        kind: Union[str, VariableKind] = VariableKind.CONTINUOUS,
    ) -> xr.DataArray:
        """Replaces every map-unit key cell with its table value on the map-unit grid.

        Keys not in the table become NaN.
        """
        lookup = self.lookup(soil_table, variable, kind)
        array = mapunit_raster.to_numpy()
        finite = np.isfinite(array)
        unique_keys, inverse = np.unique(array[finite], return_inverse=True)
        mapped = lookup.reindex(key_strings(pd.Series(unique_keys))).to_numpy(dtype="float64")

        n_unknown = int(np.isnan(mapped).sum())
        if n_unknown:
            logger.debug(f"{variable}: {n_unknown} of {len(unique_keys)} map units have no value")

        values = np.full(array.shape, np.nan, dtype="float64")
        values[finite] = mapped[inverse.ravel()]
        return mapunit_raster.copy(data=values).rename(variable)

    def rasterize(
        self,
        mapunit_raster: xr.DataArray,
        soil_table: pd.DataFrame,
        variable: str,
        kind: Union[str, VariableKind] = VariableKind.CONTINUOUS,
    ) -> xr.DataArray:
        """Reclassifies and resamples onto the reference grid.

        Continuous variables are resampled bilinearly. Categorical variables use
        nearest neighbour so that no blended category codes appear.
        """
        kind = VariableKind(kind)
        reclassified = self.reclassify(mapunit_raster, soil_table, variable, kind)
        reclassified = reclassified.rio.write_nodata(np.nan, encoded=False)
        aligned = reclassified.rio.reproject_match(self.reference, resampling=RESAMPLING[kind])
        aligned = aligned.where(aligned != aligned.rio.nodata, np.nan)
        aligned = aligned.assign_coords(x=self.reference.x, y=self.reference.y)
        logger.info(f"Rasterised {variable} ({kind}) onto the reference grid")
        return aligned.rename(variable)

    def write(
        self,
        data: xr.DataArray,
        output_dir: Union[str, Path],
        variable: str,
        prefix: str = "soil",
        resolution: str = "270m",
        region: str = "conus",
        vintage: str = "2023",
        overwrite: bool = False,
    ) -> Path:
        """Writes a soil layer under the static naming convention.

        Categorical layers also get their encoding written beside them.
        """
        path = Path(output_dir) / static_layer_filename(variable, prefix, resolution, region, vintage)
        write_layer(data, path, overwrite=overwrite)
        if variable in self.encodings:
            self.encodings[variable].save(encoding_path(path))
        return path

    def rasterize_all(
        self,
        mapunit_raster: xr.DataArray,
        soil_table: pd.DataFrame,
        output_dir: Union[str, Path],
        variables: Optional[Dict[str, Union[str, VariableKind]]] = None,
        overwrite: bool = False,
        **name_parts,
    ) -> List[Path]:
        """Rasterises and writes every variable present in the soil table."""
        if variables is None:
            variables = {v: k for v, k in DEFAULT_VARIABLE_KINDS.items() if v in soil_table.columns}
        paths = []
        for variable, kind in variables.items():
            data = self.rasterize(mapunit_raster, soil_table, variable, kind)
            paths.append(self.write(data, output_dir, variable, overwrite=overwrite, **name_parts))
        return paths

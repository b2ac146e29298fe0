"""
Aggregation of gNATSGO horizon, component and map-unit tables.

Horizon properties are averaged down to a depth cutoff weighted by horizon
thickness, then component values are averaged per map unit weighted by the
component's share of the map unit area. The table that comes out has one row
per map unit and is the lookup the soil rasters are built from.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

import numpy as np
import pandas as pd

from seasonal_sdm.exceptions import ConfigurationError, SchemaMismatchError
from seasonal_sdm.soil.encoding import EXCLUDED_TAXON_KINDS
from seasonal_sdm.utils.io import read_table, write_table
from seasonal_sdm.utils.joins import checked_merge
from seasonal_sdm.utils.text_utils import csv_safe_label

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_VARIABLES = {"om": "om_r", "cec": "cec7_r", "ph": "ph1to1h2o_r"}

HORIZON_KEYS = ("cokey", "hzdept_r", "hzdepb_r")
COMPONENT_KEYS = ("cokey", "mukey", "comppct_r", "compname", "compkind")
MAPUNIT_KEYS = ("mukey", "muname")


def key_strings(values: pd.Series) -> pd.Series:
    """Normalise keys to strings, so 123, 123.0 and "123" all become "123"."""
    numeric = pd.to_numeric(values, errors="coerce")
    if numeric.notna().sum() == values.notna().sum() and (numeric.dropna() % 1 == 0).all():
        return numeric.astype("Int64").astype("string").astype(object).where(numeric.notna(), None)
    return values.astype("string").astype(object).where(values.notna(), None)


def _require(frame: pd.DataFrame, columns: Iterable[str], table: str) -> None:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise SchemaMismatchError(f"{table} table is missing column(s) {missing}")


def weighted_mean(values: pd.Series, weights: pd.Series, groups: pd.Series) -> pd.Series:
    """Per-group weighted mean ignoring null values (and their weights).

    Groups with no usable value get NaN.
    """
    valid = values.notna() & weights.notna()
    numerator = (values * weights).where(valid).groupby(groups).sum(min_count=1)
    denominator = weights.where(valid).groupby(groups).sum(min_count=1)
    result = numerator / denominator
    return result.replace([np.inf, -np.inf], np.nan)


class SoilAggregator:
    """Collapses horizon -> component -> map unit soil data.

    Args:
        horizon_variables: Output variable -> horizon column, e.g. {"om": "om_r"}.
        decimals: Rounding applied to the final table only.
        supported_depths: If given, depth cutoffs outside this set are rejected.
    """

    def __init__(
        self,
        horizon_variables: Optional[Dict[str, str]] = None,
        decimals: Optional[int] = 2,
        supported_depths: Optional[Iterable[int]] = None,
    ):
        self.horizon_variables = dict(horizon_variables or DEFAULT_HORIZON_VARIABLES)
        self.decimals = decimals
        self.supported_depths = set(supported_depths) if supported_depths is not None else None

    def _check_depth(self, depth_cutoff) -> float:
        if depth_cutoff is None or depth_cutoff <= 0:
            raise ConfigurationError(f"Depth cutoff must be positive, got {depth_cutoff}")
        if self.supported_depths is not None and depth_cutoff not in self.supported_depths:
            raise ConfigurationError(
                f"Unknown depth cutoff {depth_cutoff}; supported: {sorted(self.supported_depths)}"
            )
        return float(depth_cutoff)

    def horizon_means(self, horizons: pd.DataFrame, depth_cutoff: float) -> pd.DataFrame:
        """Thickness-weighted mean of each variable per component, above the cutoff."""
        _require(horizons, list(HORIZON_KEYS) + list(self.horizon_variables.values()), "Horizon")
        h = horizons.copy()
        h["cokey"] = key_strings(h["cokey"])
        top = pd.to_numeric(h["hzdept_r"], errors="coerce")
        bottom = pd.to_numeric(h["hzdepb_r"], errors="coerce")

        invalid = top.isna() | bottom.isna() | (bottom <= top) | h["cokey"].isna()
        if invalid.any():
            logger.warning(f"Dropping {int(invalid.sum())} horizons with missing or inverted depths")
        keep = ~invalid & (top < depth_cutoff)
        h = h.loc[keep]
        thickness = np.minimum(bottom[keep], depth_cutoff) - top[keep]

        means = {}
        for variable, column in self.horizon_variables.items():
            values = pd.to_numeric(h[column], errors="coerce")
            means[variable] = weighted_mean(values, thickness, h["cokey"])
        result = pd.DataFrame(means, columns=list(self.horizon_variables))
        result.index = result.index.astype(object)
        result.index.name = "cokey"
        return result.reset_index()

    def dominant_components(self, components: pd.DataFrame) -> pd.DataFrame:
        """The component with the largest area share per map unit.

        Components without a kind, or whose kind is a miscellaneous area or a
        taxon above family, are not candidates. Ties go to the lexicographically
        smallest component key.
        """
        kind = components["compkind"]
        usable = kind.notna() & ~kind.astype(str).str.strip().str.lower().isin(EXCLUDED_TAXON_KINDS)
        candidates = components.loc[usable]
        candidates = candidates.sort_values(
            ["mukey", "comppct_r", "cokey"],
            ascending=[True, False, True],
            na_position="last",
            kind="mergesort",
        )
        dominant = candidates.drop_duplicates("mukey", keep="first")
        columns = {"compkind": "dominant_taxon_kind", "compname": "dominant_taxon_name"}
        if "drainagecl" in dominant.columns:
            columns["drainagecl"] = "drainage_class"
        return dominant[["mukey"] + list(columns)].rename(columns=columns).reset_index(drop=True)

    def aggregate(
        self,
        horizons: pd.DataFrame,
        components: pd.DataFrame,
        mapunits: pd.DataFrame,
        depth_cutoff: Union[int, float],
    ) -> pd.DataFrame:
        """One row per map unit with area-weighted soil properties and the dominant taxon.

        Map units present in either the map-unit or the component table are
        kept even when no horizon lies above the cutoff; their numeric
        columns are null.

        Args:
            horizons: Horizon table (cokey, hzdept_r, hzdepb_r and the measured columns).
            components: Component table (cokey, mukey, comppct_r, compname, compkind,
                optionally drainagecl).
            mapunits: Map-unit table (mukey, muname and any descriptive columns).
            depth_cutoff: Depth (cm) below which horizons are ignored.

        Returns:
            DataFrame keyed by string `mukey`.
        """
        depth_cutoff = self._check_depth(depth_cutoff)
        _require(components, COMPONENT_KEYS, "Component")
        _require(mapunits, MAPUNIT_KEYS, "Map unit")
        variables = list(self.horizon_variables)

        comp = components.copy()
        comp["cokey"] = key_strings(comp["cokey"])
        comp["mukey"] = key_strings(comp["mukey"])
        comp["comppct_r"] = pd.to_numeric(comp["comppct_r"], errors="coerce")
        comp = comp.loc[comp["mukey"].notna()]

        horizon_means = self.horizon_means(horizons, depth_cutoff)
        comp = checked_merge(comp, horizon_means, on="cokey", name="components+horizons")

        unit_values = pd.DataFrame(
            {v: weighted_mean(comp[v], comp["comppct_r"], comp["mukey"]) for v in variables},
            columns=variables,
        )
        unit_values.index = unit_values.index.astype(object)
        unit_values.index.name = "mukey"
        unit_values = unit_values.reset_index()

        units = mapunits.loc[:, mapunits.notna().any(axis=0)].copy()
        units["mukey"] = key_strings(units["mukey"])
        units = units.loc[units["mukey"].notna()]
        if "muname" in units.columns:
            units["muname"] = units["muname"].map(csv_safe_label)
        else:
            units["muname"] = None

        keys = sorted(set(units["mukey"]) | set(comp["mukey"]))
        table = pd.DataFrame({"mukey": pd.Series(keys, dtype=object)})
        table = checked_merge(table, unit_values, on="mukey", name="map units+values")
        table = checked_merge(table, self.dominant_components(comp), on="mukey", name="map units+taxon")
        table = checked_merge(table, units, on="mukey", name="map units+attributes")

        if self.decimals is not None:
            table[variables] = table[variables].round(self.decimals)
        logger.info(
            f"Aggregated {len(comp)} components into {len(table)} map units at {depth_cutoff:g} cm "
            f"({int(table[variables].isna().all(axis=1).sum())} without horizon data)"
        )
        return table


def soil_table_name(depth_cutoff: Union[int, float], region: Optional[str] = None) -> str:
    depth = f"{depth_cutoff:g}"
    return f"horizon_{depth}cm_{region}.csv" if region else f"horizon_{depth}cm.csv"


def write_soil_table(
    table: pd.DataFrame,
    output_dir: Union[str, Path],
    depth_cutoff: Union[int, float],
    region: Optional[str] = None,
) -> Path:
    path = write_table(table, Path(output_dir) / soil_table_name(depth_cutoff, region))
    logger.info(f"Saved soil table to {path}")
    return path


def read_soil_table(path: Union[str, Path]) -> pd.DataFrame:
    """Reads an aggregated soil table, keeping map-unit keys as strings."""
    table = read_table(path, dtype={"mukey": str})
    _require(table, ["mukey"], "Soil")
    if table["mukey"].duplicated().any():
        raise SchemaMismatchError(f"{path} has duplicate map-unit keys")
    return table

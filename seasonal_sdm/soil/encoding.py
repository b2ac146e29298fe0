"""
One categorical encoding shared by soil aggregation, rasterisation and modelling.

Categorical soil variables are stored as labels in the map-unit table, as
integer codes in rasters and feature tables, and converted between the two
only through a `CategoricalEncoding`.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

import numpy as np
import pandas as pd

from seasonal_sdm.exceptions import SchemaMismatchError

logger = logging.getLogger(__name__)

# NRCS drainage classes, driest first
DRAINAGE_CLASSES = (
    "Excessively drained",
    "Somewhat excessively drained",
    "Well drained",
    "Moderately well drained",
    "Somewhat poorly drained",
    "Poorly drained",
    "Very poorly drained",
    "Subaqueous",
)

EXCLUDED_TAXON_KINDS = ("miscellaneous area", "taxon above family")


@dataclass(frozen=True)
class CategoricalEncoding:
    """Label <-> integer code mapping. Codes are positions in `labels`.

    Args:
        labels: Category labels in code order.
        ordered: Whether the order carries meaning (e.g. drainage class).
        name: Variable the encoding belongs to.
    """
    labels: tuple
    ordered: bool = False
    name: str = ""

    def __post_init__(self):
        labels = tuple(str(label) for label in self.labels)
        if len(set(labels)) != len(labels):
            raise SchemaMismatchError(f"Encoding '{self.name}' has duplicate labels")
        object.__setattr__(self, "labels", labels)

    @classmethod
    def from_values(
        cls,
        values: Iterable,
        name: str = "",
        categories: Optional[Iterable[str]] = None,
    ) -> "CategoricalEncoding":
        """Builds an encoding from observed labels.

        With `categories` the encoding is ordered and fixed to those labels;
        otherwise the observed labels are sorted lexicographically.
        """
        if categories is not None:
            return cls(tuple(categories), ordered=True, name=name)
        observed = pd.Series(list(values), dtype="object").dropna().astype(str)
        return cls(tuple(sorted(observed.unique())), ordered=False, name=name)

    @property
    def dtype(self) -> pd.CategoricalDtype:
        return pd.CategoricalDtype(categories=list(self.labels), ordered=self.ordered)

    def encode(self, values: Iterable) -> np.ndarray:
        """Labels -> float codes. Missing or unknown labels become NaN."""
        series = pd.Series(list(values), dtype="object")
        present = series.notna()
        series = series.where(~present, series.astype(str))
        categorical = pd.Categorical(series, dtype=self.dtype)
        codes = categorical.codes.astype("float64")
        unknown = (categorical.codes == -1) & present.to_numpy()
        if unknown.any():
            examples = sorted(set(series[unknown].astype(str)))[:5]
            logger.warning(f"{int(unknown.sum())} values not in encoding '{self.name}', e.g. {examples}")
        codes[categorical.codes == -1] = np.nan
        return codes

    def decode(self, codes: Iterable) -> pd.Series:
        """Float or integer codes -> labels. NaN and out-of-range codes become None."""
        codes = pd.to_numeric(pd.Series(list(codes)), errors="coerce")
        lookup = dict(enumerate(self.labels))
        return codes.map(lambda c: lookup.get(int(c)) if pd.notna(c) and float(c).is_integer() else None)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {"code": range(len(self.labels)), "label": list(self.labels), "ordered": self.ordered}
        )

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False)
        return path

    @classmethod
    def load(cls, path: Union[str, Path], name: str = "") -> "CategoricalEncoding":
        frame = pd.read_csv(path, dtype={"label": str})
        if not {"code", "label"} <= set(frame.columns):
            raise SchemaMismatchError(f"{path} is not an encoding table")
        frame = frame.sort_values("code")
        if list(frame["code"]) != list(range(len(frame))):
            raise SchemaMismatchError(f"{path}: codes must run 0..{len(frame) - 1}")
        ordered = bool(frame["ordered"].iloc[0]) if "ordered" in frame and len(frame) else False
        return cls(tuple(frame["label"]), ordered=ordered, name=name or Path(path).stem)


def encoding_path(raster_path: Union[str, Path]) -> Path:
    raster_path = Path(raster_path)
    return raster_path.with_name(f"{raster_path.stem}.encoding.csv")


DRAINAGE_ENCODING = CategoricalEncoding(DRAINAGE_CLASSES, ordered=True, name="drainage_class")


def build_encodings(soil_table: pd.DataFrame, variables: Iterable[str]) -> Dict[str, CategoricalEncoding]:
    """Encodings for the categorical columns of an aggregated soil table."""
    encodings = {}
    for variable in variables:
        if variable not in soil_table.columns:
            raise SchemaMismatchError(f"Soil table has no column '{variable}'")
        if variable == "drainage_class":
            encodings[variable] = DRAINAGE_ENCODING
        else:
            encodings[variable] = CategoricalEncoding.from_values(soil_table[variable], name=variable)
    return encodings

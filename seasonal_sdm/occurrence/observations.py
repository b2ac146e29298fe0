"""Loading and preparing occurrence and background observations."""

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from seasonal_sdm.exceptions import SchemaMismatchError
from seasonal_sdm.temporal import TemporalIndexer, derive_date_fields
from seasonal_sdm.utils.io import read_table

logger = logging.getLogger(__name__)


def load_observations(path: Union[str, Path], id_column: str = "gbifid") -> pd.DataFrame:
    """Reads an observation table (csv or parquet). Identifiers are kept as strings."""
    path = Path(path)
    if path.suffix.lower() in (".parquet", ".pq"):
        frame = read_table(path)
        if id_column in frame.columns:
            frame[id_column] = frame[id_column].astype(str)
        return frame
    return read_table(path, dtype={id_column: str})


def prepare_observations(
    observations: pd.DataFrame,
    indexer: Optional[TemporalIndexer] = None,
    id_column: str = "gbifid",
    lon_column: str = "decimallongitude",
    lat_column: str = "decimallatitude",
    date_column: str = "eventdate",
) -> pd.DataFrame:
    """Derives calendar and water-year fields and drops observations outside the data range.

    Observations with no date, or whose water year falls outside the range
    covered by the environmental data, cannot be matched to a raster period
    and are removed here, with a warning, before extraction.

    Raises:
        SchemaMismatchError: If a required column is missing.
    """
    indexer = indexer or TemporalIndexer()
    required = [id_column, lon_column, lat_column, date_column]
    missing = [c for c in required if c not in observations.columns]
    if missing:
        raise SchemaMismatchError(f"Observation table is missing column(s) {missing}")

    frame = derive_date_fields(observations, date_column)
    in_range = indexer.in_range(frame[date_column])
    n_dropped = int((~in_range).sum())
    if n_dropped:
        logger.warning(
            f"Dropping {n_dropped} of {len(frame)} observations outside water years "
            f"{indexer.min_water_year}-{indexer.max_water_year}"
        )
    return frame.loc[in_range.to_numpy()].reset_index(drop=True)


def combine_observations(
    presence: pd.DataFrame,
    background: pd.DataFrame,
    label_column: str = "presence",
) -> pd.DataFrame:
    """Stacks presence and background points with a 1/0 label column."""
    presence = presence.assign(**{label_column: 1})
    background = background.assign(**{label_column: 0})
    combined = pd.concat([presence, background], ignore_index=True, sort=False)
    logger.info(f"Combined {len(presence)} presence and {len(background)} background points")
    return combined

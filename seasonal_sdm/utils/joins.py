"""Joins that refuse to change row counts silently."""

import logging
from typing import List, Union

import pandas as pd

from seasonal_sdm.exceptions import SchemaMismatchError

logger = logging.getLogger(__name__)


def checked_merge(
    left: pd.DataFrame,
    right: pd.DataFrame,
    on: Union[str, List[str]],
    how: str = "left",
    name: str = "join",
) -> pd.DataFrame:
    """Merge two tables and assert that the left table's row count is preserved.

    A left join only changes the row count when the right-hand keys are not
    unique, which is exactly the many-to-one assumption every join in the
    pipeline relies on.

    Raises:
        SchemaMismatchError: If a join key is missing, or the output row count
            differs from the left input.
    """
    keys = [on] if isinstance(on, str) else list(on)
    for frame, side in ((left, "left"), (right, "right")):
        missing = [k for k in keys if k not in frame.columns]
        if missing:
            raise SchemaMismatchError(f"{name}: {side} table is missing join key(s) {missing}")

    duplicated = right.duplicated(subset=keys, keep=False)
    if duplicated.any():
        examples = right.loc[duplicated, keys].drop_duplicates().head(5).to_dict("records")
        raise SchemaMismatchError(
            f"{name}: right table has {int(duplicated.sum())} rows with duplicate keys, e.g. {examples}"
        )

    merged = left.merge(right, on=keys, how=how, validate="many_to_one")
    if how == "left" and len(merged) != len(left):
        raise SchemaMismatchError(
            f"{name}: row count changed from {len(left)} to {len(merged)}"
        )
    logger.debug("%s: %d rows", name, len(merged))
    return merged

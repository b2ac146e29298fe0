"""Error taxonomy for the extraction and aggregation pipeline."""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PipelineError, ValueError):
    """Invalid parameter combination, raised before any I/O takes place."""


class RangeError(ConfigurationError):
    """A year range is inverted or lies outside the supported data range."""


class MissingInputError(PipelineError):
    """An expected raster or table is absent for a required period.

    Attributes:
        key: Identifier of the missing input (variable / period / species).
    """

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class SchemaMismatchError(PipelineError):
    """Band or column names, or join row counts, do not match what is expected."""


class GeometryError(PipelineError):
    """A point could not be reprojected or falls outside every raster extent.

    Extraction records these in its RunReport instead of raising them, so the
    observation keeps its row.

    Attributes:
        key: Which geometry step failed ("reprojection" or "extent").
    """

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class OutputExistsError(PipelineError, FileExistsError):
    """An output already exists under the same key and overwriting was not requested."""

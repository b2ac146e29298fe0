"""Seasonal species distribution modelling: environmental extraction and aggregation."""

__version__ = "0.1.0"

from .exceptions import (
    ConfigurationError,
    GeometryError,
    MissingInputError,
    OutputExistsError,
    PipelineError,
    RangeError,
    SchemaMismatchError,
)
from .temporal import Method, Period, Season, TemporalIndexer

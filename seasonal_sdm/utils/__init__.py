from .logging_utils import setup_logging
from .text_utils import tidy_variable_name
from .joins import checked_merge
from .parallel import map_tasks, resolve_workers

__all__ = [
    "setup_logging",
    "tidy_variable_name",
    "checked_merge",
    "map_tasks",
    "resolve_workers",
]

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# GDAL bindings are chatty at DEBUG
NOISY_LOGGERS = ("rasterio", "fiona", "urllib3")


def setup_logging(
    level=logging.INFO,
    verbose: bool = False,
    log_file: Optional[Union[str, Path]] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """Configures the root logger for a batch run.

    Args:
        level: Log level when not verbose.
        verbose: Log at DEBUG.
        log_file: Also append records to this file.
        quiet: Logger names held at WARNING.
    """
    log_level = logging.DEBUG if verbose else level
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers, force=True)
    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logging.getLogger()

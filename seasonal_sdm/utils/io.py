import logging
import os
import pickle
from pathlib import Path
from typing import Any, Dict, Union

import pandas as pd
import yaml
from pyhere import here

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(here(".")) / "config" / "default.yaml"


def load_yaml(config_path: Union[str, Path] = CONFIG_PATH) -> Dict:
    """Loads a YAML file into a dictionary. An empty file gives an empty dict."""
    with open(config_path, "r") as f:
        config = yaml.safe_load(f)
    return config or {}


def load_pickled_model(model_path_str: Union[str, Path]) -> Any:
    """Loads a pickled model object from a given path string."""
    model_path = Path(model_path_str)
    if not model_path.exists():
        raise FileNotFoundError(f"Model file not found: {model_path}")
    try:
        with open(model_path, "rb") as f:
            model = pickle.load(f)
        return model
    except (pickle.UnpicklingError, EOFError, AttributeError) as e:
        raise IOError(f"Error loading model from {model_path}: {e}")


def save_pickled_model(model: Any, model_path: Union[str, Path]) -> Path:
    model_path = Path(model_path)
    model_path.parent.mkdir(parents=True, exist_ok=True)
    with open(model_path, "wb") as f:
        pickle.dump(model, f)
    logger.info(f"Saved model to {model_path}")
    return model_path


def read_table(path: Union[str, Path], **kwargs) -> pd.DataFrame:
    """Reads a csv or parquet table, choosing the reader from the file suffix."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Table not found: {path}")
    if path.suffix.lower() in (".parquet", ".pq"):
        return pd.read_parquet(path, **kwargs)
    return pd.read_csv(path, **kwargs)


def write_table(frame: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Writes a csv or parquet table atomically, choosing the writer from the file suffix."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    if path.suffix.lower() in (".parquet", ".pq"):
        frame.to_parquet(tmp_path, index=False)
    else:
        frame.to_csv(tmp_path, index=False)
    os.replace(tmp_path, path)
    return path

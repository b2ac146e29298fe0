"""
Adapter around elapid's Maxent model.

The fitted scikit-learn pipeline selects covariates by name, scales the
continuous ones and passes categorical codes straight through to Maxent.
`SuitabilityModel` wraps it with the list of covariate names it expects, so
prediction can align raster bands by name rather than position.
"""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from elapid.models import MaxentModel
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.compose import ColumnTransformer
from sklearn.metrics import roc_auc_score
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from seasonal_sdm.exceptions import ConfigurationError, SchemaMismatchError
from seasonal_sdm.utils.io import load_pickled_model, save_pickled_model

logger = logging.getLogger(__name__)


class FeatureSubsetter(BaseEstimator, TransformerMixin):
    """
    Subsets a DataFrame to a list of feature columns, in that order.
    Stores the feature names for later reference.
    Compatible with scikit-learn pipelines and pickling.
    """
    def __init__(self, feature_names: List[str]):
        self.feature_names = feature_names

    def fit(self, X, y=None):
        return self

    def transform(self, X):
        if isinstance(X, pd.DataFrame):
            missing = [f for f in self.feature_names if f not in X.columns]
            if missing:
                raise SchemaMismatchError(f"Missing covariates: {missing}")
            return X[self.feature_names]
        return pd.DataFrame(X, columns=self.feature_names)[self.feature_names]


@dataclass
class MaxentSettings:
    """Maxent hyperparameters, passed to `elapid.MaxentModel` as keyword arguments."""
    feature_types: List[str] = field(default_factory=lambda: ["linear", "hinge", "product"])
    beta_multiplier: float = 1.5
    beta_lqp: float = 1.0
    beta_hinge: float = 1.0
    beta_threshold: float = 1.0
    beta_categorical: float = 1.0
    n_hinge_features: int = 10
    n_threshold_features: int = 10
    clamp: bool = True
    convergence_tolerance: float = 1e-5
    use_lambdas: str = "best"
    n_lambdas: int = 100
    class_weights: Union[str, float] = 100
    tau: float = 0.5
    transform: str = "cloglog"

    @classmethod
    def from_dict(cls, values: Optional[Dict] = None) -> "MaxentSettings":
        values = dict(values or {})
        unknown = set(values) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown Maxent hyperparameter(s): {sorted(unknown)}")
        return cls(**values)


def create_maxent_pipeline(
    feature_names: List[str],
    categorical: Sequence[str] = (),
    settings: Optional[MaxentSettings] = None,
    maxent_n_jobs: int = 1,
) -> Pipeline:
    """Creates a scikit-learn Pipeline for Maxent modelling.

    Continuous covariates are standardised; categorical covariates (integer
    codes) are passed through unscaled and placed after the continuous ones.

    Args:
        feature_names: Covariates to select, by name.
        categorical: The subset of `feature_names` that are categorical.
        settings: Maxent hyperparameters.
        maxent_n_jobs: Number of CPUs for the Maxent model.

    Returns:
        A scikit-learn Pipeline instance.
    """
    settings = settings or MaxentSettings()
    unknown = [c for c in categorical if c not in feature_names]
    if unknown:
        raise ConfigurationError(f"Categorical covariates not in feature list: {unknown}")
    continuous = [f for f in feature_names if f not in categorical]

    preprocessing = ColumnTransformer(
        [
            ("scaling", StandardScaler(), continuous),
            ("categorical", "passthrough", list(categorical)),
        ],
        remainder="drop",
    )
    maxent = MaxentModel(**asdict(settings), n_cpus=maxent_n_jobs, use_sklearn=True)

    pipeline = Pipeline([
        ("feature_selection", FeatureSubsetter(feature_names=list(feature_names))),
        ("preprocessing", preprocessing),
        ("maxent", maxent),
    ])
    logger.debug(f"Created Maxent pipeline for {feature_names}")
    return pipeline


class SuitabilityModel:
    """A fitted model together with the covariate names it expects.

    Args:
        pipeline: Fitted estimator with `predict_proba`.
        covariate_names: Covariates in the order the pipeline selects them.
        categorical: Covariates holding category codes.
    """

    def __init__(
        self,
        pipeline: BaseEstimator,
        covariate_names: Sequence[str],
        categorical: Sequence[str] = (),
    ):
        self.pipeline = pipeline
        self.covariate_names = list(covariate_names)
        self.categorical = list(categorical)
        self.training_auc: Optional[float] = None

    def __repr__(self) -> str:
        return f"SuitabilityModel({self.covariate_names})"

    @classmethod
    def from_pipeline(cls, pipeline: Pipeline) -> "SuitabilityModel":
        """Wraps a bare pipeline, reading covariate names from its FeatureSubsetter step."""
        subsetter = next(
            (step for _, step in getattr(pipeline, "steps", []) if isinstance(step, FeatureSubsetter)),
            None,
        )
        if subsetter is None:
            raise SchemaMismatchError("Pipeline has no FeatureSubsetter step to read covariate names from")
        return cls(pipeline, subsetter.feature_names)

    def predict(self, frame: pd.DataFrame) -> np.ndarray:
        """Suitability for each row of `frame`."""
        missing = [c for c in self.covariate_names if c not in frame.columns]
        if missing:
            raise SchemaMismatchError(f"Missing covariates for prediction: {missing}")
        return np.asarray(self.pipeline.predict_proba(frame[self.covariate_names])[:, 1], dtype="float64")

    def save(self, path: Union[str, Path]) -> Path:
        return save_pickled_model(self, path)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SuitabilityModel":
        model = load_pickled_model(path)
        if isinstance(model, cls):
            return model
        if isinstance(model, Pipeline):
            return cls.from_pipeline(model)
        raise SchemaMismatchError(f"{path} does not contain a suitability model")


def fit_suitability_model(
    features: pd.DataFrame,
    labels: Union[str, Iterable[int]],
    covariate_names: Sequence[str],
    categorical: Sequence[str] = (),
    hyperparameters: Optional[Union[Dict, MaxentSettings]] = None,
    sample_weight: Optional[Iterable[float]] = None,
    maxent_n_jobs: int = 1,
) -> SuitabilityModel:
    """Fits Maxent on a feature table of presence (1) and background (0) rows.

    Rows with a null covariate are dropped before fitting.

    Args:
        features: Feature table.
        labels: Label column name or array of 1/0 labels aligned with `features`.
        covariate_names: Covariates to model.
        categorical: Covariates holding category codes.
        hyperparameters: Maxent settings or a dict of overrides.
        sample_weight: Optional per-row weights.
        maxent_n_jobs: Number of CPUs for the Maxent model.

    Returns:
        The fitted SuitabilityModel.
    """
    covariate_names = list(covariate_names)
    missing = [c for c in covariate_names if c not in features.columns]
    if missing:
        raise SchemaMismatchError(f"Feature table is missing covariates {missing}")

    y = features[labels] if isinstance(labels, str) else pd.Series(list(labels), index=features.index)
    weights = None if sample_weight is None else pd.Series(list(sample_weight), index=features.index)

    complete = features[covariate_names].notna().all(axis=1) & y.notna()
    if not complete.all():
        logger.warning(f"Dropping {int((~complete).sum())} rows with null covariates or labels before fitting")
    X = features.loc[complete, covariate_names]
    y = y[complete].astype(int)
    if y.nunique() < 2:
        raise SchemaMismatchError("Need both presence (1) and background (0) rows to fit a model")

    settings = hyperparameters if isinstance(hyperparameters, MaxentSettings) else MaxentSettings.from_dict(hyperparameters)
    pipeline = create_maxent_pipeline(covariate_names, categorical, settings, maxent_n_jobs)

    fit_params = {}
    continuous = [c for c in covariate_names if c not in categorical]
    if categorical:
        # ColumnTransformer output puts categorical columns after the continuous ones
        fit_params["maxent__categorical"] = list(range(len(continuous), len(covariate_names)))
    if weights is not None:
        fit_params["maxent__sample_weight"] = weights[complete].to_numpy()

    logger.info(f"Fitting Maxent on {int(y.sum())} presence and {int((y == 0).sum())} background rows")
    pipeline.fit(X, y, **fit_params)

    model = SuitabilityModel(pipeline, covariate_names, categorical)
    model.training_auc = float(roc_auc_score(y, model.predict(X)))
    logger.info(f"Training AUC: {model.training_auc:.4f}")
    return model

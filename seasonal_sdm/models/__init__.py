from .maxent import (
    FeatureSubsetter,
    MaxentSettings,
    SuitabilityModel,
    create_maxent_pipeline,
    fit_suitability_model,
)
from .prediction import PredictionMapper, prediction_filename

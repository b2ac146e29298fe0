from .observations import combine_observations, load_observations, prepare_observations

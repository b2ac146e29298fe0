import logging
from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated

from seasonal_sdm.climate.averages import average_all_months, average_seasonal
from seasonal_sdm.climate.seasonal import SeasonalAggregator
from seasonal_sdm.config import PipelineConfig, load_config
from seasonal_sdm.exceptions import PipelineError
from seasonal_sdm.extract import ExtractionEngine, feature_column_names, write_feature_table
from seasonal_sdm.models.maxent import SuitabilityModel, fit_suitability_model
from seasonal_sdm.models.prediction import PredictionMapper
from seasonal_sdm.occurrence.observations import combine_observations, load_observations, prepare_observations
from seasonal_sdm.raster.io import convert_ascii_rasters, read_layer
from seasonal_sdm.raster.store import RasterStore
from seasonal_sdm.report import RunReport
from seasonal_sdm.soil.aggregate import SoilAggregator, read_soil_table, write_soil_table
from seasonal_sdm.soil.rasterize import DEFAULT_VARIABLE_KINDS, SoilRasterizer
from seasonal_sdm.sources import LayerSources, SeasonalLayer
from seasonal_sdm.utils.io import read_table, write_table
from seasonal_sdm.utils.logging_utils import setup_logging

app = typer.Typer(
    name="seasonal-sdm",
    help="CLI tools for seasonal species distribution modelling data preparation and prediction",
    add_completion=False,
)
logger = logging.getLogger(__name__)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="YAML configuration file (defaults to config/default.yaml).", exists=True, dir_okay=False),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")]
WorkersOption = Annotated[Optional[int], typer.Option("--workers", "-w", help="Worker processes; -1 uses all cores but one.")]


def _start(config_path: Optional[Path], verbose: bool) -> PipelineConfig:
    setup_logging(verbose=verbose)
    try:
        return load_config(config_path)
    except PipelineError as e:
        logger.error(str(e))
        raise typer.Exit(code=2)


def _finish(report: RunReport, report_path: Optional[Path] = None) -> None:
    report.log_summary(logger)
    if report_path is not None:
        write_table(report.to_frame(), report_path)
        logger.info(f"Saved run report to {report_path}")


def _sources(config: PipelineConfig, climate_dir: Path, static_dir: Optional[Path]) -> LayerSources:
    return LayerSources.from_directories(
        climate_dir,
        static_dir,
        monthly_variables=config.layers.monthly_variables,
        seasonal_layers=[SeasonalLayer(s.variable, s.season, s.method) for s in config.layers.seasonal],
        static_variables=config.layers.static_variables,
    )


def _guard(func):
    """Turns pipeline errors into a logged message and a non-zero exit code."""
    try:
        return func()
    except PipelineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        raise typer.Exit(code=1)


@app.command("convert-ascii")
def convert_ascii(
    input_dir: Annotated[Path, typer.Option(help="Directory of .asc grids.", exists=True, file_okay=False)],
    crs: Annotated[Optional[str], typer.Option(help="CRS of the grids (defaults to the configured climate CRS).")] = None,
    overwrite: Annotated[bool, typer.Option(help="Replace existing GeoTIFFs.")] = False,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Converts ESRI ASCII grids to GeoTIFFs with an explicit CRS."""
    config = _start(config_path, verbose)
    _guard(lambda: convert_ascii_rasters(input_dir, crs or config.spatial.climate_crs, overwrite))


@app.command()
def seasonal(
    climate_dir: Annotated[Path, typer.Option(help="Directory of monthly climate layers.", exists=True, file_okay=False)],
    output_dir: Annotated[Path, typer.Option(help="Directory for the composites.")],
    variable: Annotated[str, typer.Option(help="Variable, e.g. ppt.")],
    season: Annotated[str, typer.Option(help="winter or summer.")],
    method: Annotated[str, typer.Option(help="mean or sum.")],
    start: Annotated[int, typer.Option(help="First water year.")],
    end: Annotated[int, typer.Option(help="Last water year.")],
    overwrite: Annotated[bool, typer.Option(help="Rebuild existing composites.")] = False,
    workers: WorkersOption = None,
    report_path: Annotated[Optional[Path], typer.Option("--report", help="Write the issue report to this csv.")] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Builds seasonal composites for every water year in a range."""
    config = _start(config_path, verbose)

    def run():
        aggregator = SeasonalAggregator(RasterStore(climate_dir), output_dir, overwrite, config.indexer())
        _, report = aggregator.build_range(
            variable, season, method, start, end,
            skip_existing=not overwrite,
            n_workers=workers or config.processing.n_workers,
        )
        _finish(report, report_path)

    _guard(run)


@app.command("monthly-average")
def monthly_average(
    climate_dir: Annotated[Path, typer.Option(help="Directory of monthly climate layers.", exists=True, file_okay=False)],
    output_dir: Annotated[Path, typer.Option(help="Directory for the climatologies.")],
    start: Annotated[int, typer.Option(help="First water year.")],
    end: Annotated[int, typer.Option(help="Last water year.")],
    variables: Annotated[Optional[List[str]], typer.Option("--variable", help="Variables to average (repeatable).")] = None,
    overwrite: Annotated[bool, typer.Option(help="Replace existing climatologies.")] = False,
    workers: WorkersOption = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Averages each calendar month across water years."""
    config = _start(config_path, verbose)

    def run():
        _, report = average_all_months(
            RasterStore(climate_dir),
            variables or config.layers.monthly_variables,
            start, end, output_dir,
            overwrite=overwrite,
            indexer=config.indexer(),
            n_workers=workers or config.processing.n_workers,
        )
        _finish(report)

    _guard(run)


@app.command("seasonal-average")
def seasonal_average(
    climate_dir: Annotated[Path, typer.Option(help="Directory holding the seasonal composites.", exists=True, file_okay=False)],
    output_dir: Annotated[Path, typer.Option(help="Directory for the climatologies.")],
    start: Annotated[int, typer.Option(help="First water year.")],
    end: Annotated[int, typer.Option(help="Last water year.")],
    overwrite: Annotated[bool, typer.Option(help="Replace existing climatologies.")] = False,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Averages each configured seasonal composite across water years."""
    config = _start(config_path, verbose)

    def run():
        store = RasterStore(climate_dir)
        for layer in config.layers.seasonal:
            average_seasonal(
                store, layer.variable, layer.season, layer.method, start, end, output_dir,
                overwrite=overwrite, indexer=config.indexer(), skip_existing=True,
            )

    _guard(run)


@app.command("soil-aggregate")
def soil_aggregate(
    horizon_path: Annotated[Path, typer.Option("--horizon", help="Horizon (chorizon) table.", exists=True, dir_okay=False)],
    component_path: Annotated[Path, typer.Option("--component", help="Component table.", exists=True, dir_okay=False)],
    mapunit_path: Annotated[Path, typer.Option("--mapunit", help="Map unit table.", exists=True, dir_okay=False)],
    output_dir: Annotated[Path, typer.Option(help="Directory for the aggregated tables.")],
    depths: Annotated[Optional[List[int]], typer.Option("--depth", help="Depth cutoff in cm (repeatable).")] = None,
    region: Annotated[Optional[str], typer.Option(help="Region suffix for the output names.")] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Aggregates gNATSGO tables to one row per map unit for each depth cutoff."""
    config = _start(config_path, verbose)

    def run():
        horizons = read_table(horizon_path)
        components = read_table(component_path)
        mapunits = read_table(mapunit_path)
        aggregator = SoilAggregator(
            config.soil.variables, config.soil.decimals, supported_depths=config.soil.depth_cutoffs
        )
        for depth in depths or config.soil.depth_cutoffs:
            table = aggregator.aggregate(horizons, components, mapunits, depth)
            write_soil_table(table, output_dir, depth, region or config.soil.region)

    _guard(run)


@app.command("soil-rasterize")
def soil_rasterize(
    soil_table_path: Annotated[Path, typer.Option("--soil-table", help="Aggregated soil table.", exists=True, dir_okay=False)],
    mapunit_raster_path: Annotated[Path, typer.Option("--mapunit-raster", help="Raster of map unit keys.", exists=True, dir_okay=False)],
    reference_path: Annotated[Path, typer.Option("--reference", help="A layer on the climate grid.", exists=True, dir_okay=False)],
    output_dir: Annotated[Path, typer.Option(help="Directory for the soil layers.")],
    prefix: Annotated[str, typer.Option(help="File name prefix, e.g. the depth.")] = "soil",
    overwrite: Annotated[bool, typer.Option(help="Replace existing layers.")] = False,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Rasterises an aggregated soil table onto the climate grid."""
    config = _start(config_path, verbose)

    def run():
        table = read_soil_table(soil_table_path)
        rasterizer = SoilRasterizer(read_layer(reference_path))
        variables = {v: k for v, k in DEFAULT_VARIABLE_KINDS.items() if v in table.columns}
        rasterizer.rasterize_all(
            read_layer(mapunit_raster_path), table, output_dir, variables,
            overwrite=overwrite,
            prefix=prefix,
            resolution=config.soil.resolution,
            region=config.soil.region or "conus",
            vintage=config.soil.vintage,
        )

    _guard(run)


@app.command()
def extract(
    observations_path: Annotated[Path, typer.Option("--observations", help="Occurrence or background points (csv/parquet).", exists=True, dir_okay=False)],
    climate_dir: Annotated[Path, typer.Option(help="Directory of monthly layers and seasonal composites.", exists=True, file_okay=False)],
    output_path: Annotated[Path, typer.Option("--output", help="Feature table to write (csv/parquet).")],
    start: Annotated[int, typer.Option(help="First water year.")],
    end: Annotated[int, typer.Option(help="Last water year.")],
    background_path: Annotated[Optional[Path], typer.Option("--background", help="Background points; if given, rows get a 1/0 presence label.", exists=True, dir_okay=False)] = None,
    label_column: Annotated[str, typer.Option("--label", help="Label column added when --background is given.")] = "presence",
    static_dir: Annotated[Optional[Path], typer.Option(help="Directory of static soil layers.", exists=True, file_okay=False)] = None,
    workers: WorkersOption = None,
    report_path: Annotated[Optional[Path], typer.Option("--report", help="Write the issue report to this csv.")] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Extracts environmental values at each observation (samples-with-data table)."""
    config = _start(config_path, verbose)
    obs = config.observations

    def run():
        indexer = config.indexer()
        observations = load_observations(observations_path, obs.id_column)
        if background_path is not None:
            observations = combine_observations(
                observations, load_observations(background_path, obs.id_column), label_column
            )
        observations = prepare_observations(
            observations, indexer, obs.id_column, obs.lon_column, obs.lat_column, obs.date_column,
        )
        engine = ExtractionEngine(
            indexer,
            obs.id_column, obs.lon_column, obs.lat_column, obs.date_column,
            observation_crs=obs.crs,
            band_name_length=config.spatial.band_name_length,
        )
        result = engine.extract(
            observations, (start, end), _sources(config, climate_dir, static_dir),
            n_workers=workers or config.processing.n_workers,
        )
        write_feature_table(result.features, output_path)
        if report_path is not None:
            write_table(result.report.to_frame(), report_path)

    _guard(run)


@app.command()
def train(
    features_path: Annotated[Path, typer.Option("--features", help="Feature table with a presence label column.", exists=True, dir_okay=False)],
    model_path: Annotated[Path, typer.Option("--output", help="Where to save the fitted model (pickle).")],
    label_column: Annotated[str, typer.Option("--label", help="1 for presence, 0 for background.")] = "presence",
    covariates: Annotated[Optional[List[str]], typer.Option("--covariate", help="Covariates (repeatable); defaults to the configured layers.")] = None,
    categorical: Annotated[Optional[List[str]], typer.Option("--categorical", help="Categorical covariates (repeatable).")] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Fits a Maxent suitability model on an extracted feature table."""
    config = _start(config_path, verbose)

    def run():
        features = read_table(features_path)
        names = covariates or feature_column_names(
            config.layers.monthly_variables,
            [SeasonalLayer(s.variable, s.season, s.method) for s in config.layers.seasonal],
            config.layers.static_variables,
            config.spatial.band_name_length,
        )
        model = fit_suitability_model(features, label_column, names, categorical or [])
        model.save(model_path)

    _guard(run)


@app.command()
def predict(
    model_path: Annotated[Path, typer.Option("--model", help="Fitted model pickle.", exists=True, dir_okay=False)],
    climate_dir: Annotated[Path, typer.Option(help="Directory of monthly and seasonal climatologies.", exists=True, file_okay=False)],
    output_dir: Annotated[Path, typer.Option(help="Directory for the suitability rasters.")],
    static_dir: Annotated[Optional[Path], typer.Option(help="Directory of static soil layers.", exists=True, file_okay=False)] = None,
    months: Annotated[Optional[List[str]], typer.Option("--month", help="Months to predict (repeatable); all twelve by default.")] = None,
    species: Annotated[Optional[str], typer.Option(help="Species label for the output names.")] = None,
    scenario: Annotated[Optional[str], typer.Option(help="Scenario label for the output names.")] = None,
    overwrite: Annotated[bool, typer.Option(help="Replace existing predictions.")] = False,
    workers: WorkersOption = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Writes one suitability raster per month."""
    config = _start(config_path, verbose)

    def run():
        model = SuitabilityModel.load(model_path)
        mapper = PredictionMapper(
            _sources(config, climate_dir, static_dir), band_name_length=config.spatial.band_name_length
        )
        mapper.predict_months(
            model, output_dir, months, species, scenario,
            overwrite=overwrite,
            n_workers=workers or config.processing.n_workers,
        )

    _guard(run)


if __name__ == "__main__":
    app()

from .encoding import CategoricalEncoding, DRAINAGE_CLASSES, build_encodings
from .aggregate import SoilAggregator, read_soil_table, write_soil_table
from .rasterize import SoilRasterizer, VariableKind

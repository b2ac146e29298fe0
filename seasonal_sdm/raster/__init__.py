from .naming import LayerKey, LayerKind, layer_filename, parse_layer_filename
from .store import LayerHandle, RasterStore, stack_layers
from .io import convert_ascii_rasters, open_layer, read_layer, write_layer
from .sampling import reproject_points, sample_nearest

from .core.conversion_service import ConversionService
from .core.errors import (FormatError, MapError, MapIOError, TruncatedDataError,
                          ValidationError)
from .core.metadata_codec import MetadataCodec
from .core.models import MapDescriptor, OccupancyGrid, Origin, RasterImage, SavedMap
from .core.occupancy_mapper import OccupancyMapper
from .core.raster_codec import RasterCodec
from .utils.constants import CellState, RasterFormat

__version__ = "1.0"

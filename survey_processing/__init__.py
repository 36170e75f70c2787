"""
Processing package for Barrio Survey Maps

This package contains the survey data transformation steps: spreadsheet
schema mapping, record normalization, chunked upload, coordinate repair and
heatmap feature building.
"""

__version__ = "0.1.0"

from .batch_uploader import BatchUploader, ProcessingStats
from .coordinates import DEFAULT_BOUNDING_BOX, BoundingBox, GeoPoint, normalize_coordinates
from .data_utils import read_raw_grid
from .geo_mesh import BarrioMesh
from .heatmap import AggregateStat, HeatmapFeatureBuilder, summarize_stats, top_barrios
from .record_builder import MalformedGridError, NormalizedRecord, build_record, process_grid
from .schema_mapper import Category, ColumnMapping, build_column_mappings

__all__ = [
    "read_raw_grid",
    "build_column_mappings",
    "Category",
    "ColumnMapping",
    "build_record",
    "process_grid",
    "NormalizedRecord",
    "MalformedGridError",
    "BatchUploader",
    "ProcessingStats",
    "normalize_coordinates",
    "BoundingBox",
    "GeoPoint",
    "DEFAULT_BOUNDING_BOX",
    "BarrioMesh",
    "AggregateStat",
    "HeatmapFeatureBuilder",
    "summarize_stats",
    "top_barrios",
]

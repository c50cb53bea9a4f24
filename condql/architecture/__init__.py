from .base import ConfigBaseModel
from .column import ColumnMetadata, infer_semantic_type, normalize_data_type

__all__ = [
    "ColumnMetadata",
    "ConfigBaseModel",
    "infer_semantic_type",
    "normalize_data_type",
]

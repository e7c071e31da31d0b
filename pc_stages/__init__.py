"""
PC-Stages: streaming point cloud stages.

Decodes NASA ATM QFIT binary lidar files into point views and applies
4x4 homogeneous transformations to point coordinates.
"""

__version__ = "0.1.0"

# Import public API
from pc_stages.config import (
    QfitReaderConfig,
    StagesConfig,
    TransformConfig,
    WriterConfig,
    load_config,
    save_config,
)
from pc_stages.errors import FormatError, RangeError
from pc_stages.io import PointView, QfitReader, QfitSequentialReader, load_point_view, save_point_view
from pc_stages.stages import Stage, StageRegistry, register_default_stages
from pc_stages.transform import Transform, TransformationFilter

__all__ = [
    "__version__",
    # Config
    "QfitReaderConfig",
    "StagesConfig",
    "TransformConfig",
    "WriterConfig",
    "load_config",
    "save_config",
    # Errors
    "FormatError",
    "RangeError",
    # I/O
    "PointView",
    "QfitReader",
    "QfitSequentialReader",
    "load_point_view",
    "save_point_view",
    # Stages
    "Stage",
    "StageRegistry",
    "register_default_stages",
    "Transform",
    "TransformationFilter",
]

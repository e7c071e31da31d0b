"""Matrix transformation of point coordinates."""

from pc_stages.transform.filter import TransformationFilter
from pc_stages.transform.matrix import Transform

__all__ = [
    "Transform",
    "TransformationFilter",
]

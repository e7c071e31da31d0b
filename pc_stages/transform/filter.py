"""
Transformation filter stage.

Applies a 4x4 homogeneous matrix to the X, Y and Z dimensions of every
point in a view, optionally inverting the matrix first and replacing the
view's spatial reference.
"""

import logging
from typing import Optional

from pc_stages.config import TransformConfig
from pc_stages.io.point_view import PointView
from pc_stages.stages import Stage
from pc_stages.transform.matrix import Transform

logger = logging.getLogger(__name__)

COORDINATE_DIMS = ("X", "Y", "Z")


class TransformationFilter(Stage):
    """Transform each point using a 4x4 transformation matrix.

    Parameters
    ----------
    config : TransformConfig, optional
        Filter options. Keyword options are used to build one when omitted.

    Attributes
    ----------
    matrix : Transform
        Matrix applied to points; set by :meth:`initialize`.
    """

    name = "filters.transformation"
    description = "Transform each point using a 4x4 transformation matrix"

    def __init__(self, config: Optional[TransformConfig] = None, **options):
        self.config = config if config is not None else TransformConfig(**options)
        self.matrix = Transform.identity()

    def initialize(self) -> None:
        """Parse the configured matrix and invert it if requested."""
        if not self.config.matrix:
            raise ValueError(f"{self.name} requires a matrix")

        self.matrix = Transform.parse(self.config.matrix)
        if self.config.invert:
            self.matrix.invert_in_place()

        logger.info(f"{self.name}: using matrix\n{self.matrix}")

    def spatial_reference_changed(self, srs: str) -> None:
        """Warn when an incoming spatial reference is about to be replaced."""
        if srs and self.config.override_srs:
            logger.warning(f"{self.name}: overriding input spatial reference.")

    def process_one(self, view: PointView, index: int) -> None:
        """Transform the point at ``index`` in place."""
        x, y, z = (view.get_field(dim, index) for dim in COORDINATE_DIMS)
        for dim, value in zip(COORDINATE_DIMS, self.matrix.apply(x, y, z)):
            view.set_field(dim, index, value)

    def filter(self, view: PointView) -> PointView:
        """
        Transform every point of ``view`` in place.

        Points keep their index; each output row is computed from the same
        input row only. Derived products of the view are invalidated
        afterwards.

        Returns
        -------
        PointView
            The same view, modified.
        """
        missing = [dim for dim in COORDINATE_DIMS if dim not in view]
        if view.n_points and missing:
            raise ValueError(f"{self.name}: view is missing dimensions {missing}")

        self.spatial_reference_changed(view.spatial_reference)
        if self.config.override_srs:
            view.spatial_reference = self.config.override_srs

        if view.n_points:
            transformed = self.matrix.apply_array(view.xyz)
            for axis, dim in enumerate(COORDINATE_DIMS):
                view.dims[dim][:] = transformed[:, axis]

        view.invalidate_products()
        return view

    def do_filter(self, view: PointView, matrix: Transform) -> PointView:
        """Filter ``view`` with ``matrix`` in place of the stored matrix.

        The stored matrix is restored afterwards. Not reentrant.
        """
        previous = self.matrix
        self.matrix = matrix
        try:
            return self.filter(view)
        finally:
            self.matrix = previous

    def process(self, view: Optional[PointView] = None) -> PointView:
        if view is None:
            raise ValueError(f"{self.name} needs an input view")
        return self.filter(view)

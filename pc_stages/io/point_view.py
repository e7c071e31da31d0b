"""
Point collection used by PC-Stages readers and filters.

Provides the PointView dataclass: a table of named float64 columns (one
row per point) with an opaque spatial reference and a small cache of
derived products such as bounds.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import numpy as np


@dataclass(eq=False)
class PointView:
    """Container for point data addressed by dimension name.

    Parameters
    ----------
    dims : dict, optional
        Mapping of dimension name to a 1-D array of values. All arrays
        must have the same length. Values are stored as float64.
    spatial_reference : str
        Spatial reference of the coordinates (WKT, EPSG code, ...). Treated
        as an opaque string; empty means unknown.
    source_file : Path, optional
        Path of the file the points were read from.

    Attributes
    ----------
    _products : dict
        Cached derived products (bounds, ...). Cleared by
        :meth:`invalidate_products`.
    """

    dims: Dict[str, np.ndarray] = field(default_factory=dict)
    spatial_reference: str = ""
    source_file: Optional[Path] = None

    _products: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        """Validate column shapes and normalize dtypes."""
        n_points = None
        for name, values in list(self.dims.items()):
            arr = np.asarray(values, dtype=np.float64)
            if arr.ndim != 1:
                raise ValueError(
                    f"Dimension '{name}' must be 1-D, got shape {arr.shape}"
                )
            if n_points is None:
                n_points = len(arr)
            elif len(arr) != n_points:
                raise ValueError(
                    f"Dimension '{name}' has length {len(arr)}, expected {n_points}"
                )
            self.dims[name] = arr

    @classmethod
    def from_xyz(cls, xyz: np.ndarray, spatial_reference: str = "") -> "PointView":
        """Create a view holding only X, Y and Z from an (N, 3) array."""
        xyz = np.asarray(xyz, dtype=np.float64)
        if xyz.ndim != 2 or xyz.shape[1] != 3:
            raise ValueError(f"xyz must have shape (N, 3), got {xyz.shape}")
        return cls(
            dims={"X": xyz[:, 0].copy(), "Y": xyz[:, 1].copy(), "Z": xyz[:, 2].copy()},
            spatial_reference=spatial_reference,
        )

    @classmethod
    def concatenate(cls, views: Iterable["PointView"]) -> "PointView":
        """Join views with identical dimensions into a single view, in order."""
        views = list(views)
        if not views:
            return cls()

        names = views[0].dimension_names
        for view in views[1:]:
            if view.dimension_names != names:
                raise ValueError(
                    f"Cannot concatenate views with dimensions {view.dimension_names} "
                    f"and {names}"
                )

        return cls(
            dims={name: np.concatenate([v.dims[name] for v in views]) for name in names},
            spatial_reference=views[0].spatial_reference,
            source_file=views[0].source_file,
        )

    def __len__(self) -> int:
        return self.n_points

    def __getitem__(self, name: str) -> np.ndarray:
        return self.dims[name]

    def __contains__(self, name: str) -> bool:
        return name in self.dims

    @property
    def n_points(self) -> int:
        """Return number of points in the view."""
        if not self.dims:
            return 0
        return len(next(iter(self.dims.values())))

    @property
    def dimension_names(self) -> List[str]:
        """Return dimension names in insertion order."""
        return list(self.dims)

    def get_field(self, name: str, index: int) -> float:
        """Return the value of dimension ``name`` for point ``index``."""
        return float(self.dims[name][index])

    def set_field(self, name: str, index: int, value: float) -> None:
        """Set the value of dimension ``name`` for point ``index``."""
        self.dims[name][index] = value

    def add_dimension(self, name: str, values: np.ndarray) -> None:
        """Add (or replace) a whole dimension.

        Raises
        ------
        ValueError
            If ``values`` does not have one entry per point.
        """
        arr = np.asarray(values, dtype=np.float64)
        if self.dims and len(arr) != self.n_points:
            raise ValueError(
                f"Dimension '{name}' has length {len(arr)}, expected {self.n_points}"
            )
        self.dims[name] = arr
        self.invalidate_products()

    @property
    def xyz(self) -> np.ndarray:
        """Return an (N, 3) copy of the X, Y, Z dimensions."""
        return np.column_stack([self.dims["X"], self.dims["Y"], self.dims["Z"]])

    @property
    def bounds(self) -> Dict[str, tuple]:
        """Return min/max for each coordinate, cached until invalidated.

        Returns
        -------
        dict
            Dictionary with 'x', 'y', 'z' keys containing (min, max) tuples.
        """
        if "bounds" not in self._products:
            if self.n_points == 0:
                raise ValueError("Cannot compute bounds of an empty view")
            self._products["bounds"] = {
                axis: (float(self.dims[dim].min()), float(self.dims[dim].max()))
                for axis, dim in (("x", "X"), ("y", "Y"), ("z", "Z"))
            }
        return self._products["bounds"]

    @property
    def products_valid(self) -> bool:
        """Return True if any derived product is currently cached."""
        return bool(self._products)

    def invalidate_products(self) -> None:
        """Discard derived products; they are recomputed on next access."""
        self._products.clear()

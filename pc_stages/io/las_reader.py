"""
LAS/LAZ file reader for PC-Stages.

Provides load_point_view for reading LiDAR point cloud files into a
PointView so they can be passed through filter stages.
"""

from pathlib import Path

import laspy
import numpy as np
from laspy.vlrs.known import WktCoordinateSystemVlr

from pc_stages.io.point_view import PointView


def load_point_view(filepath: Path) -> PointView:
    """
    Load a LAS/LAZ file into a PointView object.

    X, Y and Z are read as scaled coordinates; every extra dimension is
    added under its own name. A WKT coordinate system record, if present,
    becomes the view's spatial reference.

    Parameters
    ----------
    filepath : Path
        Path to LAS or LAZ file.

    Returns
    -------
    PointView
        View holding X, Y, Z and the file's extra dimensions.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file cannot be read as a valid LAS/LAZ file.
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        las = laspy.read(filepath)
    except Exception as e:
        raise ValueError(f"Failed to read LAS file: {filepath}. Error: {e}") from e

    dims = {
        "X": np.asarray(las.x, dtype=np.float64),
        "Y": np.asarray(las.y, dtype=np.float64),
        "Z": np.asarray(las.z, dtype=np.float64),
    }
    for dim in las.point_format.extra_dimensions:
        dims[dim.name] = np.asarray(las[dim.name], dtype=np.float64)

    return PointView(
        dims=dims,
        spatial_reference=read_spatial_reference(las.header),
        source_file=filepath,
    )


def read_spatial_reference(header: laspy.LasHeader) -> str:
    """Return the WKT stored in the header's VLRs, or an empty string."""
    for vlr in header.vlrs:
        if isinstance(vlr, WktCoordinateSystemVlr):
            return vlr.string.rstrip("\0")
    return ""

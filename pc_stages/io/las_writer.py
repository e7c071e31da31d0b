"""
LAS/LAZ file writer for PC-Stages.

Provides LasStreamWriter, which appends point views batch by batch, and
the save_point_view convenience function. Every dimension other than X,
Y and Z (the QFIT fields in particular) is stored as an extra dimension.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import laspy
import numpy as np
from laspy.vlrs.known import WktCoordinateSystemVlr

from pc_stages.io.point_view import PointView

logger = logging.getLogger(__name__)

# Extra dimensions written for QFIT fields
# Format: (name, (dtype_str, description))
# Note: LAS description field is limited to 32 characters
QFIT_EXTRA_DIMS: Dict[str, Tuple[str, str]] = {
    "OffsetTime": ("i4", "Time since start of day (ms)"),
    "StartPulse": ("i4", "Start pulse signal strength"),
    "ReflectedPulse": ("i4", "Reflected signal strength"),
    "ScanAngleRank": ("f8", "Scan azimuth (degrees)"),
    "Pitch": ("f8", "Pitch (degrees)"),
    "Roll": ("f8", "Roll (degrees)"),
    "Pdop": ("f4", "GPS PDOP"),
    "PulseWidth": ("i4", "Laser pulse width"),
    "GpsTime": ("i4", "GPS time (hhmmss)"),
    "PassiveSignal": ("i4", "Passive signal strength"),
    "PassiveX": ("f8", "Passive footprint longitude"),
    "PassiveY": ("f8", "Passive footprint latitude"),
    "PassiveZ": ("f8", "Passive footprint elevation"),
}

# Mapping from numpy dtype strings to laspy types
DTYPE_MAP = {
    "f4": np.float32,
    "f8": np.float64,
    "u1": np.uint8,
    "u2": np.uint16,
    "u4": np.uint32,
    "i1": np.int8,
    "i2": np.int16,
    "i4": np.int32,
}

COORDINATE_DIMS = ("X", "Y", "Z")


def output_path_for(output_path: Path, compress: bool) -> Path:
    """Return ``output_path`` with its suffix matching ``compress``."""
    output_path = Path(output_path)
    if compress and not output_path.suffix.lower() == ".laz":
        return output_path.with_suffix(".laz")
    if not compress and output_path.suffix.lower() == ".laz":
        return output_path.with_suffix(".las")
    return output_path


class LasStreamWriter:
    """Write point views to one LAS/LAZ file, batch by batch.

    Parameters
    ----------
    output_path : Path
        Output file path; the suffix is adjusted to match ``compress``.
    dimension_names : sequence of str
        Dimensions every written view holds. Must include X, Y and Z.
    scales : sequence of float
        LAS scale factors for X, Y, Z.
    offsets : sequence of float, optional
        LAS offsets for X, Y, Z. Defaults to the floor of the first
        batch's minimum coordinates.
    spatial_reference : str
        WKT stored in the file's coordinate system record.
    compress : bool
        If True, write LAZ.

    Notes
    -----
    The file is created on the first call to :meth:`write` (or on
    :meth:`close` if nothing was written).
    """

    def __init__(
        self,
        output_path: Path,
        dimension_names: Sequence[str],
        scales: Sequence[float] = (1e-7, 1e-7, 1e-3),
        offsets: Optional[Sequence[float]] = None,
        spatial_reference: str = "",
        compress: bool = False,
    ):
        missing = [dim for dim in COORDINATE_DIMS if dim not in dimension_names]
        if missing:
            raise ValueError(f"Cannot write points without dimensions {missing}")

        self.output_path = output_path_for(output_path, compress)
        self.dimension_names = list(dimension_names)
        self.scales = np.asarray(scales, dtype=np.float64)
        self.offsets = None if offsets is None else np.asarray(offsets, dtype=np.float64)
        self.spatial_reference = spatial_reference
        self.n_written = 0

        self.header: Optional[laspy.LasHeader] = None
        self._writer = None

    def __enter__(self) -> "LasStreamWriter":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def _open(self, offsets: np.ndarray) -> None:
        header = laspy.LasHeader(point_format=0, version="1.4")
        header.add_extra_dims(
            [
                laspy.ExtraBytesParams(name=name, type=dtype, description=description)
                for name, (dtype, description) in self._extra_dims().items()
            ]
        )
        header.scales = self.scales
        header.offsets = offsets
        if self.spatial_reference:
            header.global_encoding.wkt = True
            header.vlrs.append(WktCoordinateSystemVlr(self.spatial_reference))

        # Ensure output directory exists
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.header = header
        self._writer = laspy.open(self.output_path, mode="w", header=header)

    def _extra_dims(self) -> Dict[str, Tuple[type, str]]:
        """Known QFIT fields get their declared type, anything else float64."""
        extra = {}
        for name in self.dimension_names:
            if name in COORDINATE_DIMS:
                continue
            if name in QFIT_EXTRA_DIMS:
                dtype_str, description = QFIT_EXTRA_DIMS[name]
                extra[name] = (DTYPE_MAP[dtype_str], description)
            else:
                extra[name] = (np.float64, "")
        return extra

    def write(self, view: PointView) -> None:
        """
        Append the points of ``view``.

        Raises
        ------
        ValueError
            If the view's dimensions differ from ``dimension_names``.
        """
        if sorted(view.dimension_names) != sorted(self.dimension_names):
            raise ValueError(
                f"View dimensions {view.dimension_names} do not match "
                f"writer dimensions {self.dimension_names}"
            )
        if view.n_points == 0:
            return

        if self._writer is None:
            offsets = self.offsets
            if offsets is None:
                offsets = np.floor(view.xyz.min(axis=0))
            self._open(offsets)

        record = laspy.ScaleAwarePointRecord.zeros(view.n_points, header=self.header)
        record.x = view["X"]
        record.y = view["Y"]
        record.z = view["Z"]
        for name, (dtype, _) in self._extra_dims().items():
            values = view[name]
            # Integer fields are stored from exact float64 values
            if np.issubdtype(dtype, np.integer):
                values = np.rint(values)
            record[name] = values.astype(dtype)

        self._writer.write_points(record)
        self.n_written += view.n_points

    def close(self) -> None:
        """Finish the file, creating an empty one if nothing was written."""
        if self._writer is None:
            offsets = self.offsets if self.offsets is not None else np.zeros(3)
            self._open(offsets)
        self._writer.close()
        logger.info(f"Wrote {self.n_written} points to {self.output_path}")


def save_point_view(
    view: PointView,
    output_path: Path,
    scales: Sequence[float] = (1e-7, 1e-7, 1e-3),
    compress: bool = False,
) -> Path:
    """
    Save a point view as a LAS/LAZ file.

    Parameters
    ----------
    view : PointView
        Points to write. Must hold X, Y and Z.
    output_path : Path
        Output file path (.las or .laz).
    scales : sequence of float
        LAS scale factors for X, Y, Z. Offsets are taken from the
        minimum of each coordinate.
    compress : bool
        If True, save as LAZ (compressed). Default False.

    Returns
    -------
    Path
        Path actually written (the suffix follows ``compress``).

    Raises
    ------
    ValueError
        If the view has no X, Y or Z dimension.
    """
    writer = LasStreamWriter(
        output_path,
        view.dimension_names,
        scales=scales,
        spatial_reference=view.spatial_reference,
        compress=compress,
    )
    with writer:
        writer.write(view)
    return writer.output_path

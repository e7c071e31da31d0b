"""
4x4 homogeneous transformation matrix.

Provides the Transform class: sixteen row-major float64 entries that can
be parsed from text (inline or from a file), written back as text,
inverted as an affine transform and applied to points with a full
perspective divide.
"""

import os
import re
from typing import Iterable, Iterator, Optional, Tuple

import numpy as np

from pc_stages.errors import FormatError

# Decimal number as read by stream extraction; no nan, inf or underscores
_NUMBER = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


class Transform:
    """Row-major 4x4 transformation matrix.

    Parameters
    ----------
    values : iterable of float, optional
        Exactly 16 entries, row-major. Defaults to the identity.

    Notes
    -----
    Entries can be changed in place (``transform[i] = v``) but the matrix
    always holds exactly 16 of them.
    """

    SIZE = 16
    ROW_SIZE = 4
    COL_SIZE = 4

    def __init__(self, values: Optional[Iterable[float]] = None):
        if values is None:
            values = np.eye(self.ROW_SIZE).ravel()
        values = np.asarray(list(values), dtype=np.float64).ravel()
        if values.size != self.SIZE:
            raise FormatError(
                f"Transformation matrix needs {self.SIZE} entries, got {values.size}"
            )
        self._values = values

    @classmethod
    def identity(cls) -> "Transform":
        return cls()

    @classmethod
    def parse(cls, text: str) -> "Transform":
        """
        Parse a matrix from text or from the file the text names.

        Numbers are read in order, separated by any whitespace including
        newlines. Reading stops at the first character that cannot be part of
        a decimal number; a partly numeric token contributes its leading
        number.

        Parameters
        ----------
        text : str
            Sixteen numbers, or the path of a file containing them.

        Returns
        -------
        Transform
            Parsed matrix.

        Raises
        ------
        FormatError
            If more or fewer than 16 numbers are found.
        """
        if os.path.isfile(text):
            with open(text) as f:
                text = f.read()

        entries = []
        for token in text.split():
            match = _NUMBER.match(token)
            if match is None:
                break
            if len(entries) + 1 > cls.SIZE:
                raise FormatError(
                    f"Too many entries in transformation matrix, should be {cls.SIZE}"
                )
            entries.append(float(match.group()))
            # A number followed by other characters ends the scan
            if match.end() != len(token):
                break

        if len(entries) != cls.SIZE:
            raise FormatError(
                f"Too few entries in transformation matrix: "
                f"{len(entries)} (should be {cls.SIZE})"
            )
        return cls(entries)

    def format(self) -> str:
        """Return the matrix as 4 lines of 4 values separated by two spaces."""
        lines = []
        for r in range(self.ROW_SIZE):
            row = self._values[r * self.COL_SIZE:(r + 1) * self.COL_SIZE]
            lines.append("  ".join(repr(float(v)) for v in row) + "\n")
        return "".join(lines)

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"Transform({[float(v) for v in self._values]})"

    def __len__(self) -> int:
        return self.SIZE

    def __iter__(self) -> Iterator[float]:
        return (float(v) for v in self._values)

    def __getitem__(self, index: int) -> float:
        return float(self._values[index])

    def __setitem__(self, index: int, value: float) -> None:
        if not isinstance(index, (int, np.integer)):
            raise TypeError("Transform entries must be set one at a time")
        self._values[index] = value

    def __eq__(self, other) -> bool:
        if not isinstance(other, Transform):
            return NotImplemented
        return bool(np.array_equal(self._values, other._values))

    def copy(self) -> "Transform":
        return Transform(self._values.copy())

    def to_array(self) -> np.ndarray:
        """Return a (4, 4) copy of the matrix."""
        return self._values.reshape(self.ROW_SIZE, self.COL_SIZE).copy()

    def invert_in_place(self) -> None:
        """
        Replace the matrix with its affine inverse.

        The upper-left 3x3 block and the translation column are inverted
        as an affine transform; the bottom row is left untouched.

        Raises
        ------
        FormatError
            If the 3x3 block is singular.
        """
        m = self.to_array()
        linear = m[:3, :3]
        translation = m[:3, 3]

        try:
            linear_inv = np.linalg.inv(linear)
        except np.linalg.LinAlgError as e:
            raise FormatError(f"Transformation matrix is not invertible: {e}") from e
        if not np.all(np.isfinite(linear_inv)):
            raise FormatError("Transformation matrix is not invertible")

        inverse = np.empty((3, 4))
        inverse[:, :3] = linear_inv
        inverse[:, 3] = -linear_inv @ translation
        self._values[:12] = inverse.ravel()

    def inverted(self) -> "Transform":
        """Return the affine inverse as a new Transform."""
        result = self.copy()
        result.invert_in_place()
        return result

    def apply(self, x: float, y: float, z: float) -> Tuple[float, float, float]:
        """
        Transform one point, dividing by the homogeneous coordinate.

        Parameters
        ----------
        x, y, z : float
            Input coordinates.

        Returns
        -------
        tuple
            Transformed (x, y, z). A zero homogeneous coordinate yields
            inf/nan values.
        """
        m = self._values
        with np.errstate(divide="ignore", invalid="ignore"):
            w = x * m[12] + y * m[13] + z * m[14] + m[15]
            return (
                float((x * m[0] + y * m[1] + z * m[2] + m[3]) / w),
                float((x * m[4] + y * m[5] + z * m[6] + m[7]) / w),
                float((x * m[8] + y * m[9] + z * m[10] + m[11]) / w),
            )

    def apply_array(self, xyz: np.ndarray) -> np.ndarray:
        """
        Transform an (N, 3) array of points.

        Each row is computed with the same formula as :meth:`apply`, so the
        results match point-by-point application exactly.

        Returns
        -------
        np.ndarray
            (N, 3) float64 array of transformed points.
        """
        xyz = np.asarray(xyz, dtype=np.float64)
        if xyz.ndim != 2 or xyz.shape[1] != 3:
            raise ValueError(f"xyz must have shape (N, 3), got {xyz.shape}")

        m = self._values
        x, y, z = xyz[:, 0], xyz[:, 1], xyz[:, 2]
        with np.errstate(divide="ignore", invalid="ignore"):
            w = x * m[12] + y * m[13] + z * m[14] + m[15]
            return np.column_stack([
                (x * m[0] + y * m[1] + z * m[2] + m[3]) / w,
                (x * m[4] + y * m[5] + z * m[6] + m[7]) / w,
                (x * m[8] + y * m[9] + z * m[10] + m[11]) / w,
            ])

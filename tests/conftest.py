"""
Shared pytest fixtures for PC-Stages tests.

These fixtures provide consistent test data across all test modules.
"""

from pathlib import Path
from typing import Callable, Tuple

import numpy as np
import pytest


# =============================================================================
# Synthetic QFIT Records
# =============================================================================

def make_qfit_words(n_records: int, version: int) -> np.ndarray:
    """Deterministic raw record words, shape (n_records, version)."""
    i = np.arange(n_records, dtype=np.int64)
    words = np.zeros((n_records, version), dtype=np.int64)
    words[:, 0] = 1000 + 10 * i                 # OffsetTime (ms)
    words[:, 1] = 70_123_456 + i                # latitude * 1e6
    words[:, 2] = 310_654_321 + 3 * i           # longitude * 1e6 (0-360)
    words[:, 3] = 1_500_000 + 7 * i             # elevation (mm)
    words[:, 4] = 200 + i                       # start pulse
    words[:, 5] = -100 - i                      # reflected pulse
    words[:, 6] = 45_500 + i                    # azimuth * 1e3
    words[:, 7] = -1_250                        # pitch * 1e3
    words[:, 8] = 2_750                         # roll * 1e3
    if version == 10:
        words[:, 9] = 123_456                   # GPS time hhmmss
    elif version == 12:
        words[:, 9] = 25                        # PDOP * 10
        words[:, 10] = 8                        # pulse width
        words[:, 11] = 123_456
    elif version == 14:
        words[:, 9] = 77                        # passive signal
        words[:, 10] = 70_100_000 + i           # passive latitude * 1e6
        words[:, 11] = 310_500_000 + i          # passive longitude * 1e6
        words[:, 12] = 1_400_000 + i            # passive elevation (mm)
        words[:, 13] = 123_456
    return words


def build_qfit_bytes(
    words: np.ndarray,
    version: int,
    byte_order: str = "little",
    header_records: int = 2,
    trailing: bytes = b"",
) -> bytes:
    """
    Serialize records behind a QFIT header.

    Word 0 of the header holds the record width and the word at byte
    ``width + 4`` holds the data offset.
    """
    width = version * 4
    dtype = np.dtype("<i4" if byte_order == "little" else ">i4")

    header = np.zeros((header_records, version), dtype=dtype)
    header[0, 0] = width
    header[1, 1] = header_records * width

    return header.tobytes() + words.astype(dtype).tobytes() + trailing


@pytest.fixture
def qfit_factory(tmp_path) -> Callable[..., Tuple[Path, np.ndarray]]:
    """Return a function writing a synthetic QFIT file to ``tmp_path``."""

    def _make(
        n_records: int = 10,
        version: int = 10,
        byte_order: str = "little",
        name: str = "test.qi",
        header_records: int = 2,
        trailing: bytes = b"",
    ) -> Tuple[Path, np.ndarray]:
        words = make_qfit_words(n_records, version)
        path = tmp_path / name
        path.write_bytes(
            build_qfit_bytes(words, version, byte_order, header_records, trailing)
        )
        return path, words

    return _make


@pytest.fixture
def qfit_file(qfit_factory) -> Path:
    """Little-endian format 10 file holding 10 records."""
    path, _ = qfit_factory()
    return path


# =============================================================================
# Matrices and Point Views
# =============================================================================

@pytest.fixture
def affine_values() -> list:
    """Non-singular affine matrix: rotation about Z, scale and translation."""
    c, s = np.cos(0.3), np.sin(0.3)
    return [
        2 * c, -2 * s, 0.0, 10.0,
        2 * s, 2 * c, 0.0, -5.0,
        0.0, 0.0, 0.5, 100.0,
        0.0, 0.0, 0.0, 1.0,
    ]


@pytest.fixture
def simple_xyz() -> np.ndarray:
    """Simple 100-point random point cloud."""
    np.random.seed(42)  # Reproducible
    return np.random.uniform(0, 10, (100, 3)).astype(np.float64)

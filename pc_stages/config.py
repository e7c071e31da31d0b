"""
Configuration module for PC-Stages.

Contains dataclasses holding the options of the QFIT reader, the
transformation filter and the LAS writer, plus YAML load/save helpers.
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml


@dataclass
class QfitReaderConfig:
    """Options for the ``readers.qfit`` stage.

    Parameters
    ----------
    filename : Path, optional
        QFIT file to read.
    format : int, optional
        Format code (10, 12 or 14) overriding the one implied by the
        header's record width.
    byte_order : str
        "auto" to detect from the header, or "little" / "big".
    scale_z : float
        Multiplier applied to elevations. 1.0 keeps the stored millimeters;
        0.001 converts to meters.
    flip_x : bool
        Map longitudes from 0-360 into -180-180.
    batch_size : int
        Number of records decoded per batch when streaming.
    spatial_reference : str
        Spatial reference assigned to the decoded points.
    """

    filename: Optional[Path] = None
    format: Optional[int] = None
    byte_order: str = "auto"
    scale_z: float = 1.0
    flip_x: bool = False
    batch_size: int = 65536
    spatial_reference: str = ""


@dataclass
class TransformConfig:
    """Options for the ``filters.transformation`` stage.

    Parameters
    ----------
    matrix : str
        Sixteen whitespace-separated numbers (row-major), or the path of a
        file containing them.
    invert : bool
        Apply the inverse of ``matrix``.
    override_srs : str
        Spatial reference assigned to the output, replacing the input's.
    """

    matrix: str = ""
    invert: bool = False
    override_srs: str = ""


# Degrees to 1e-7, millimeter elevations to 1e-3
GEOGRAPHIC_SCALES = (1e-7, 1e-7, 1e-3)
# Millimeter resolution for coordinates in meters
PROJECTED_SCALES = (0.001, 0.001, 0.001)


@dataclass
class WriterConfig:
    """Options for LAS/LAZ output.

    Parameters
    ----------
    scales : tuple, optional
        LAS coordinate scale factors for X, Y, Z. None picks
        GEOGRAPHIC_SCALES for untransformed QFIT output and
        PROJECTED_SCALES when a transformation matrix is configured.
    compress : bool
        Write LAZ instead of LAS.
    """

    scales: Optional[Tuple[float, float, float]] = None
    compress: bool = False


@dataclass
class StagesConfig:
    """Top-level configuration grouping every stage's options."""

    reader: QfitReaderConfig = field(default_factory=QfitReaderConfig)
    transformation: TransformConfig = field(default_factory=TransformConfig)
    writer: WriterConfig = field(default_factory=WriterConfig)

    def output_scales(self) -> Tuple[float, float, float]:
        """Return the LAS scales to write with, resolving the default."""
        if self.writer.scales is not None:
            return tuple(self.writer.scales)
        if self.transformation.matrix:
            return PROJECTED_SCALES
        return GEOGRAPHIC_SCALES


_SECTIONS = {
    "reader": QfitReaderConfig,
    "transformation": TransformConfig,
    "writer": WriterConfig,
}


def load_config(yaml_path: Path) -> StagesConfig:
    """
    Load configuration from YAML file.

    Parameters
    ----------
    yaml_path : Path
        Path to YAML configuration file with optional ``reader``,
        ``transformation`` and ``writer`` sections.

    Returns
    -------
    StagesConfig
        Configuration object with values from file.

    Raises
    ------
    FileNotFoundError
        If the YAML file does not exist.
    ValueError
        If the YAML file contains unknown sections or keys.
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with open(yaml_path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return StagesConfig()

    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    sections = {}
    for name, section_cls in _SECTIONS.items():
        sections[name] = _build_section(section_cls, data.get(name) or {}, name)

    return StagesConfig(**sections)


def save_config(config: StagesConfig, yaml_path: Path) -> None:
    """
    Save configuration to YAML file.

    Parameters
    ----------
    config : StagesConfig
        Configuration object to save.
    yaml_path : Path
        Path to output YAML file.
    """
    data = asdict(config)

    # Convert non-YAML types
    if data["reader"]["filename"] is not None:
        data["reader"]["filename"] = str(data["reader"]["filename"])
    if data["writer"]["scales"] is not None:
        data["writer"]["scales"] = list(data["writer"]["scales"])

    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    with open(yaml_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def _build_section(section_cls, values: Dict[str, Any], section: str):
    """Instantiate one config dataclass from a YAML mapping."""
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{section}' section: {sorted(unknown)}")

    values = dict(values)
    if values.get("filename") is not None:
        values["filename"] = Path(values["filename"])
    if values.get("scales") is not None:
        values["scales"] = tuple(float(s) for s in values["scales"])

    return section_cls(**values)

"""
QFIT record layouts and decoding.

QFIT is the binary record format written by NASA's Airborne Topographic
Mapper. A file holds a header region followed by fixed-width records of
32-bit integer words. The number of words per record (10, 12 or 14) is
the format version. Words are stored in either byte order; the first word
of the file is the record width in bytes, which is how the byte order is
detected.

Layout of the shared leading words::

    Word | Dimension      | Stored as
    -----|----------------|------------------------------
    0    | OffsetTime     | milliseconds
    1    | Y              | latitude, degrees * 1e6
    2    | X              | longitude, degrees * 1e6
    3    | Z              | elevation, millimeters
    4    | StartPulse     | start pulse signal strength
    5    | ReflectedPulse | reflected signal strength
    6    | ScanAngleRank  | scan azimuth, degrees * 1e3
    7    | Pitch          | degrees * 1e3
    8    | Roll           | degrees * 1e3
"""

import logging
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, BinaryIO, Dict, Optional, Tuple

import numpy as np

from pc_stages.errors import FormatError

logger = logging.getLogger(__name__)

BYTE_ORDERS = ("little", "big")

# Word 0 read little-endian is below this only for little-endian files
_LITTLE_ENDIAN_LIMIT = 100

PointRecord = Dict[str, float]


class FormatVersion(IntEnum):
    """QFIT format codes (record length in 32-bit words)."""

    FORMAT_10 = 10
    FORMAT_12 = 12
    FORMAT_14 = 14
    UNKNOWN = 128


@dataclass(frozen=True)
class FieldSpec:
    """Location and conversion of one field inside a record.

    Parameters
    ----------
    name : str
        Dimension name the decoded value is stored under.
    offset : int
        Byte offset of the field inside the record.
    width : int
        Field width in bytes.
    signed : bool
        Whether the raw integer is signed.
    scale : float
        Multiplier converting the raw integer to the dimension's units.
    kind : str
        "longitude" or "elevation" for fields subject to post-decode
        adjustment, empty otherwise.
    """

    name: str
    offset: int
    width: int = 4
    signed: bool = True
    scale: float = 1.0
    kind: str = ""


@dataclass(frozen=True)
class FormatDescriptor:
    """Record width and field layout for one format version."""

    format_version: FormatVersion
    record_width: int
    fields: Tuple[FieldSpec, ...]

    @property
    def dimension_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def dtype(self, byte_order: str) -> np.dtype:
        """Return a numpy structured dtype matching one on-disk record."""
        return np.dtype(
            {
                "names": [f.name for f in self.fields],
                "formats": [_field_dtype(f.width, byte_order, f.signed) for f in self.fields],
                "offsets": [f.offset for f in self.fields],
                "itemsize": self.record_width,
            }
        )


@dataclass(frozen=True)
class DecodeOptions:
    """Post-decode adjustments.

    Parameters
    ----------
    scale_z : float
        Multiplier applied to elevations (Z and PassiveZ). Use 0.001 to
        convert the stored millimeters to meters.
    flip_x : bool
        Map longitudes stored in the 0-360 range into -180-180.
    """

    scale_z: float = 1.0
    flip_x: bool = False


@dataclass(frozen=True)
class QfitHeader:
    """Values read from the header region of a QFIT file."""

    record_width: int
    format_version: FormatVersion
    byte_order: str
    data_offset: int


def _word_fields(*specs) -> Tuple[FieldSpec, ...]:
    """Build 4-byte FieldSpecs laid out one per word, in order."""
    fields = []
    for word, spec in enumerate(specs):
        if isinstance(spec, str):
            spec = (spec,)
        fields.append(FieldSpec(spec[0], word * 4, 4, True, *spec[1:]))
    return tuple(fields)


_COMMON_WORDS = (
    "OffsetTime",
    ("Y", 1e-6),
    ("X", 1e-6, "longitude"),
    ("Z", 1.0, "elevation"),
    "StartPulse",
    "ReflectedPulse",
    ("ScanAngleRank", 1e-3),
    ("Pitch", 1e-3),
    ("Roll", 1e-3),
)

FORMAT_DESCRIPTORS: Dict[FormatVersion, FormatDescriptor] = {
    FormatVersion.FORMAT_10: FormatDescriptor(
        format_version=FormatVersion.FORMAT_10,
        record_width=40,
        fields=_word_fields(*_COMMON_WORDS, "GpsTime"),
    ),
    FormatVersion.FORMAT_12: FormatDescriptor(
        format_version=FormatVersion.FORMAT_12,
        record_width=48,
        fields=_word_fields(*_COMMON_WORDS, ("Pdop", 0.1), "PulseWidth", "GpsTime"),
    ),
    FormatVersion.FORMAT_14: FormatDescriptor(
        format_version=FormatVersion.FORMAT_14,
        record_width=56,
        fields=_word_fields(
            *_COMMON_WORDS,
            "PassiveSignal",
            ("PassiveY", 1e-6),
            ("PassiveX", 1e-6, "longitude"),
            ("PassiveZ", 1.0, "elevation"),
            "GpsTime",
        ),
    ),
}


def resolve_format(version_code: int) -> FormatDescriptor:
    """
    Return the record layout for a QFIT format code.

    Parameters
    ----------
    version_code : int
        Format code, one of 10, 12 or 14.

    Returns
    -------
    FormatDescriptor
        Immutable record layout.

    Raises
    ------
    FormatError
        If the code is not a known format.
    """
    try:
        version = FormatVersion(int(version_code))
    except ValueError:
        version = FormatVersion.UNKNOWN

    if version not in FORMAT_DESCRIPTORS:
        raise FormatError(f"Unknown QFIT format version: {version_code}")
    return FORMAT_DESCRIPTORS[version]


def _check_byte_order(byte_order: str) -> None:
    if byte_order not in BYTE_ORDERS:
        raise ValueError(f"byte_order must be one of {BYTE_ORDERS}, got {byte_order!r}")


def _field_dtype(width: int, byte_order: str, signed: bool) -> np.dtype:
    _check_byte_order(byte_order)
    if width not in (1, 2, 4, 8):
        raise FormatError(f"Unsupported field width: {width}")
    prefix = "<" if byte_order == "little" else ">"
    return np.dtype(f"{prefix}{'i' if signed else 'u'}{width}")


def read_field(
    buffer: bytes,
    offset: int,
    width: int,
    byte_order: str,
    signed: bool = True,
) -> int:
    """
    Read one integer field from a byte buffer.

    The field's bytes are reversed when ``byte_order`` differs from the
    host order, then interpreted natively.

    Parameters
    ----------
    buffer : bytes
        Buffer holding the field.
    offset : int
        Byte offset of the field.
    width : int
        Field width in bytes (1, 2, 4 or 8).
    byte_order : str
        "little" or "big", the order the field is stored in.
    signed : bool
        Interpret the field as a signed integer.

    Returns
    -------
    int
        Field value.

    Raises
    ------
    FormatError
        If the field does not lie entirely inside the buffer.
    """
    _check_byte_order(byte_order)
    if offset < 0 or offset + width > len(buffer):
        raise FormatError(
            f"Field at offset {offset} (width {width}) is outside a "
            f"{len(buffer)}-byte buffer"
        )

    raw = bytes(buffer[offset:offset + width])
    if byte_order != sys.byteorder:
        raw = raw[::-1]
    native = _field_dtype(width, sys.byteorder, signed)
    return int(np.frombuffer(raw, dtype=native)[0])


def _adjust(spec: FieldSpec, value: Any, options: DecodeOptions) -> Any:
    """Apply scale_z / flip_x to a decoded scalar or array."""
    if spec.kind == "elevation" and options.scale_z != 1.0:
        value = value * options.scale_z
    elif spec.kind == "longitude" and options.flip_x:
        value = np.where(value > 180.0, value - 360.0, value)
    return value


def decode_record(
    raw: bytes,
    descriptor: FormatDescriptor,
    byte_order: str,
    options: Optional[DecodeOptions] = None,
) -> PointRecord:
    """
    Decode a single record into a dimension -> value mapping.

    Parameters
    ----------
    raw : bytes
        Exactly ``descriptor.record_width`` bytes.
    descriptor : FormatDescriptor
        Record layout.
    byte_order : str
        Byte order of the source, "little" or "big".
    options : DecodeOptions, optional
        Post-decode adjustments. Defaults to none.

    Returns
    -------
    dict
        Decoded values keyed by dimension name.

    Raises
    ------
    FormatError
        If ``raw`` is not exactly one record long.
    """
    if len(raw) != descriptor.record_width:
        raise FormatError(
            f"Record must be {descriptor.record_width} bytes, got {len(raw)}"
        )
    options = options or DecodeOptions()

    record = {}
    for spec in descriptor.fields:
        value = read_field(raw, spec.offset, spec.width, byte_order, spec.signed) * spec.scale
        record[spec.name] = float(_adjust(spec, value, options))
    return record


def decode_records(
    buffer: bytes,
    descriptor: FormatDescriptor,
    byte_order: str,
    options: Optional[DecodeOptions] = None,
) -> Dict[str, np.ndarray]:
    """
    Decode a run of consecutive records into float64 columns.

    Parameters
    ----------
    buffer : bytes
        Whole records, ``len(buffer)`` a multiple of the record width.
    descriptor : FormatDescriptor
        Record layout.
    byte_order : str
        Byte order of the source, "little" or "big".
    options : DecodeOptions, optional
        Post-decode adjustments. Defaults to none.

    Returns
    -------
    dict
        Mapping of dimension name to a (N,) float64 array.

    Raises
    ------
    FormatError
        If the buffer holds a partial record.
    """
    if len(buffer) % descriptor.record_width != 0:
        raise FormatError(
            f"Buffer of {len(buffer)} bytes does not hold a whole number of "
            f"{descriptor.record_width}-byte records"
        )
    options = options or DecodeOptions()

    records = np.frombuffer(buffer, dtype=descriptor.dtype(byte_order))
    columns = {}
    for spec in descriptor.fields:
        values = records[spec.name].astype(np.float64) * spec.scale
        columns[spec.name] = np.asarray(_adjust(spec, values, options), dtype=np.float64)
    return columns


def _read_exact(stream: BinaryIO, offset: int, size: int, what: str) -> bytes:
    stream.seek(offset)
    data = stream.read(size)
    if len(data) != size:
        raise FormatError(f"QFIT header is truncated: could not read {what}")
    return data


def read_header(
    stream: BinaryIO,
    byte_order: str = "auto",
    format_hint: Optional[int] = None,
) -> QfitHeader:
    """
    Read record width, byte order and data offset from a QFIT stream.

    Parameters
    ----------
    stream : BinaryIO
        Seekable binary stream positioned anywhere.
    byte_order : str
        "auto" to detect from the first word, or "little" / "big".
    format_hint : int, optional
        Format code to use instead of the one implied by the record width.

    Returns
    -------
    QfitHeader
        Parsed header values.

    Raises
    ------
    FormatError
        If the header is truncated or names an unknown format.
    """
    first = _read_exact(stream, 0, 4, "record width")

    if byte_order == "auto":
        probe = read_field(first, 0, 4, "little")
        byte_order = "little" if 0 <= probe < _LITTLE_ENDIAN_LIMIT else "big"
    _check_byte_order(byte_order)

    stored_width = read_field(first, 0, 4, byte_order)
    if stored_width <= 0 or stored_width % 4 != 0:
        raise FormatError(f"Invalid QFIT record width: {stored_width}")

    if format_hint is not None:
        descriptor = resolve_format(format_hint)
        if stored_width != descriptor.record_width:
            logger.warning(
                f"Header record width {stored_width} does not match format "
                f"{int(descriptor.format_version)}; using the format hint"
            )
    else:
        descriptor = resolve_format(stored_width // 4)

    # The header is laid out with the stored width, whatever the hint says
    word = _read_exact(stream, stored_width + 4, 4, "data offset")
    data_offset = read_field(word, 0, 4, byte_order)

    return QfitHeader(
        record_width=descriptor.record_width,
        format_version=descriptor.format_version,
        byte_order=byte_order,
        data_offset=data_offset,
    )


def compute_record_count(source_length: int, data_offset: int, record_width: int) -> int:
    """
    Return the number of records following the header.

    Raises
    ------
    FormatError
        If the offset lies outside the source or the data region is not a
        whole number of records.
    """
    if record_width <= 0:
        raise FormatError(f"Invalid record width: {record_width}")
    if data_offset < 0 or data_offset > source_length:
        raise FormatError(
            f"Data offset {data_offset} is outside a {source_length}-byte source"
        )

    count, remainder = divmod(source_length - data_offset, record_width)
    if remainder:
        raise FormatError(
            f"QFIT data region of {source_length - data_offset} bytes is not a "
            f"multiple of the {record_width}-byte record size"
        )
    return count

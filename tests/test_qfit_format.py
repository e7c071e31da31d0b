"""Tests for pc_stages.io.qfit_format module."""

import io
import sys

import numpy as np
import pytest

from conftest import build_qfit_bytes, make_qfit_words


def _record_bytes(version=10, byte_order="little", n_records=1):
    words = make_qfit_words(n_records, version)
    dtype = "<i4" if byte_order == "little" else ">i4"
    return words.astype(dtype).tobytes()


# =============================================================================
# Format resolution
# =============================================================================

@pytest.mark.parametrize("version, width, n_fields", [(10, 40, 10), (12, 48, 12), (14, 56, 14)])
def test_resolve_known_formats(version, width, n_fields):
    """Each known format code maps to its record width and field count."""
    from pc_stages.io.qfit_format import resolve_format

    descriptor = resolve_format(version)

    assert int(descriptor.format_version) == version
    assert descriptor.record_width == width
    assert len(descriptor.fields) == n_fields
    assert descriptor.dimension_names[:4] == ("OffsetTime", "Y", "X", "Z")
    assert descriptor.dimension_names[-1] == "GpsTime"


@pytest.mark.parametrize("code", [0, 11, 13, 16, 128])
def test_resolve_unknown_format(code):
    """Unknown codes, including the UNKNOWN marker, are rejected."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import resolve_format

    with pytest.raises(FormatError, match="Unknown QFIT format"):
        resolve_format(code)


def test_descriptor_dtype_matches_record_width():
    """Structured dtype covers exactly one record."""
    from pc_stages.io.qfit_format import resolve_format

    descriptor = resolve_format(14)
    assert descriptor.dtype("big").itemsize == 56
    assert descriptor.dtype("little").itemsize == 56


def test_format_error_is_value_error():
    """FormatError can be caught as ValueError."""
    from pc_stages.errors import FormatError

    assert issubclass(FormatError, ValueError)


# =============================================================================
# Field readers
# =============================================================================

def test_read_field_little_and_big():
    """The same value is recovered from either byte order."""
    from pc_stages.io.qfit_format import read_field

    value = -123456789
    little = np.array([value], dtype="<i4").tobytes()
    big = np.array([value], dtype=">i4").tobytes()

    assert read_field(little, 0, 4, "little") == value
    assert read_field(big, 0, 4, "big") == value


def test_read_field_reverses_foreign_order():
    """Reading with the wrong order yields the byte-reversed value."""
    from pc_stages.io.qfit_format import read_field

    buffer = bytes([0x00, 0x00, 0x00, 0x28])
    assert read_field(buffer, 0, 4, "big") == 40
    assert read_field(buffer, 0, 4, "little") == 0x28000000


def test_read_field_unsigned_and_widths():
    """Width and signedness are honored."""
    from pc_stages.io.qfit_format import read_field

    buffer = bytes([0xFF, 0xFF, 0x01, 0x00])
    assert read_field(buffer, 0, 2, "little", signed=True) == -1
    assert read_field(buffer, 0, 2, "little", signed=False) == 0xFFFF
    assert read_field(buffer, 2, 2, "little") == 1
    assert read_field(buffer, 3, 1, "big") == 0


def test_read_field_out_of_bounds():
    """Fields extending past the buffer are refused."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import read_field

    with pytest.raises(FormatError, match="outside"):
        read_field(b"\x00" * 6, 4, 4, "little")
    with pytest.raises(FormatError, match="outside"):
        read_field(b"\x00" * 6, -1, 4, "little")


def test_read_field_invalid_byte_order():
    """Only 'little' and 'big' are accepted."""
    from pc_stages.io.qfit_format import read_field

    with pytest.raises(ValueError, match="byte_order"):
        read_field(b"\x00" * 4, 0, 4, "middle")


# =============================================================================
# Record decoding
# =============================================================================

def test_decode_record_format_10():
    """Raw words are converted to dimension units."""
    from pc_stages.io.qfit_format import decode_record, resolve_format

    record = decode_record(_record_bytes(10), resolve_format(10), "little")

    assert record["OffsetTime"] == 1000
    assert record["Y"] == pytest.approx(70.123456)
    assert record["X"] == pytest.approx(310.654321)
    assert record["Z"] == 1_500_000
    assert record["StartPulse"] == 200
    assert record["ReflectedPulse"] == -100
    assert record["ScanAngleRank"] == pytest.approx(45.5)
    assert record["Pitch"] == pytest.approx(-1.25)
    assert record["Roll"] == pytest.approx(2.75)
    assert record["GpsTime"] == 123_456


def test_decode_record_format_12_and_14_tail_fields():
    """Format-specific trailing fields are decoded."""
    from pc_stages.io.qfit_format import decode_record, resolve_format

    rec12 = decode_record(_record_bytes(12), resolve_format(12), "little")
    assert rec12["Pdop"] == pytest.approx(2.5)
    assert rec12["PulseWidth"] == 8
    assert rec12["GpsTime"] == 123_456

    rec14 = decode_record(_record_bytes(14), resolve_format(14), "little")
    assert rec14["PassiveSignal"] == 77
    assert rec14["PassiveY"] == pytest.approx(70.1)
    assert rec14["PassiveX"] == pytest.approx(310.5)
    assert rec14["PassiveZ"] == 1_400_000
    assert rec14["GpsTime"] == 123_456


@pytest.mark.parametrize("version", [10, 12, 14])
def test_decode_record_byte_order_independent(version):
    """Big- and little-endian encodings decode to identical records."""
    from pc_stages.io.qfit_format import decode_record, resolve_format

    descriptor = resolve_format(version)
    little = decode_record(_record_bytes(version, "little"), descriptor, "little")
    big = decode_record(_record_bytes(version, "big"), descriptor, "big")

    assert little == big


def test_decode_record_is_pure():
    """Decoding the same bytes twice gives the same record."""
    from pc_stages.io.qfit_format import decode_record, resolve_format

    raw = _record_bytes(12, "big")
    descriptor = resolve_format(12)

    assert decode_record(raw, descriptor, "big") == decode_record(raw, descriptor, "big")


@pytest.mark.parametrize("length", [0, 39, 41, 80])
def test_decode_record_refuses_wrong_length(length):
    """Only a full record is decoded."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import decode_record, resolve_format

    with pytest.raises(FormatError, match="40 bytes"):
        decode_record(b"\x00" * length, resolve_format(10), "little")


def test_decode_adjustments():
    """scale_z scales elevations and flip_x wraps longitudes."""
    from pc_stages.io.qfit_format import DecodeOptions, decode_record, resolve_format

    options = DecodeOptions(scale_z=0.001, flip_x=True)
    record = decode_record(_record_bytes(14), resolve_format(14), "little", options)

    assert record["Z"] == pytest.approx(1500.0)
    assert record["PassiveZ"] == pytest.approx(1400.0)
    assert record["X"] == pytest.approx(310.654321 - 360.0)
    assert record["PassiveX"] == pytest.approx(310.5 - 360.0)
    # Latitude is never adjusted
    assert record["Y"] == pytest.approx(70.123456)


def test_decode_default_is_no_adjustment():
    """Without options the stored values are kept."""
    from pc_stages.io.qfit_format import DecodeOptions, decode_record, resolve_format

    descriptor = resolve_format(10)
    raw = _record_bytes(10)

    assert decode_record(raw, descriptor, "little") == decode_record(
        raw, descriptor, "little", DecodeOptions()
    )


def test_flip_x_leaves_western_longitudes():
    """Longitudes already within -180-180 are not changed by flip_x."""
    from pc_stages.io.qfit_format import DecodeOptions, decode_record, resolve_format

    words = make_qfit_words(1, 10)
    words[0, 2] = -45_000_000
    record = decode_record(
        words.astype("<i4").tobytes(),
        resolve_format(10),
        "little",
        DecodeOptions(flip_x=True),
    )

    assert record["X"] == pytest.approx(-45.0)


@pytest.mark.parametrize("byte_order", ["little", "big"])
def test_decode_records_matches_decode_record(byte_order):
    """Vectorized decoding agrees with per-record decoding."""
    from pc_stages.io.qfit_format import DecodeOptions, decode_record, decode_records, resolve_format

    descriptor = resolve_format(12)
    options = DecodeOptions(scale_z=0.001, flip_x=True)
    buffer = _record_bytes(12, byte_order, n_records=5)

    columns = decode_records(buffer, descriptor, byte_order, options)

    for i in range(5):
        record = decode_record(buffer[i * 48:(i + 1) * 48], descriptor, byte_order, options)
        for name, value in record.items():
            assert columns[name][i] == value
    assert all(col.dtype == np.float64 for col in columns.values())


def test_decode_records_rejects_partial_record():
    """A trailing partial record is an error."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import decode_records, resolve_format

    with pytest.raises(FormatError, match="whole number"):
        decode_records(b"\x00" * 45, resolve_format(10), "little")


# =============================================================================
# Header parsing
# =============================================================================

@pytest.mark.parametrize("byte_order", ["little", "big"])
@pytest.mark.parametrize("version", [10, 12, 14])
def test_read_header_detects_byte_order(byte_order, version):
    """Byte order and format come from the first word."""
    from pc_stages.io.qfit_format import read_header

    data = build_qfit_bytes(make_qfit_words(3, version), version, byte_order)
    header = read_header(io.BytesIO(data))

    assert header.byte_order == byte_order
    assert int(header.format_version) == version
    assert header.record_width == version * 4
    assert header.data_offset == 2 * version * 4


def test_read_header_explicit_byte_order():
    """An explicit byte order skips detection."""
    from pc_stages.io.qfit_format import read_header

    data = build_qfit_bytes(make_qfit_words(1, 10), 10, "big")
    assert read_header(io.BytesIO(data), byte_order="big").byte_order == "big"


def test_read_header_wrong_explicit_byte_order():
    """Declaring the wrong byte order yields an unknown format."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import read_header

    data = build_qfit_bytes(make_qfit_words(1, 10), 10, "big")
    with pytest.raises(FormatError):
        read_header(io.BytesIO(data), byte_order="little")


def test_read_header_format_hint():
    """A matching hint is accepted; an unknown hint is rejected."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import FormatVersion, read_header

    data = build_qfit_bytes(make_qfit_words(1, 12), 12, "little")

    assert read_header(io.BytesIO(data), format_hint=12).format_version == FormatVersion.FORMAT_12
    with pytest.raises(FormatError, match="Unknown QFIT format"):
        read_header(io.BytesIO(data), format_hint=11)


def test_read_header_mismatched_hint_warns(caplog):
    """A hint disagreeing with the stored record width is logged."""
    from pc_stages.io.qfit_format import read_header

    data = build_qfit_bytes(make_qfit_words(4, 10), 10, "little", header_records=3)
    with caplog.at_level("WARNING"):
        header = read_header(io.BytesIO(data), format_hint=12)

    assert header.record_width == 48
    assert header.data_offset == 120
    assert "format hint" in caplog.text


def test_read_header_hint_keeps_stored_offset_position():
    """The data offset is read after the stored width, not the hinted one."""
    from pc_stages.io.qfit_format import FormatVersion, read_header

    data = build_qfit_bytes(make_qfit_words(3, 12), 12, "big", header_records=2)
    header = read_header(io.BytesIO(data), format_hint=10)

    assert header.format_version == FormatVersion.FORMAT_10
    assert header.record_width == 40
    assert header.data_offset == 96


def test_read_header_hint_invalid_stored_width():
    """An unusable stored width is rejected even when a hint is given."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import read_header

    data = np.array([42] + [0] * 20, dtype="<i4").tobytes()
    with pytest.raises(FormatError, match="record width"):
        read_header(io.BytesIO(data), format_hint=10)


def test_read_header_truncated():
    """Files too short to hold the header are rejected."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import read_header

    with pytest.raises(FormatError, match="truncated"):
        read_header(io.BytesIO(b"\x28\x00"))

    # Record width present but no data offset word
    with pytest.raises(FormatError, match="truncated"):
        read_header(io.BytesIO(np.array([40], dtype="<i4").tobytes()))


def test_read_header_invalid_record_width():
    """Record widths that are not a whole number of words are rejected."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import read_header

    data = np.array([42] + [0] * 20, dtype="<i4").tobytes()
    with pytest.raises(FormatError, match="record width"):
        read_header(io.BytesIO(data))


# =============================================================================
# Record count
# =============================================================================

def test_compute_record_count_exact():
    from pc_stages.io.qfit_format import compute_record_count

    assert compute_record_count(80 + 40 * 25, 80, 40) == 25
    assert compute_record_count(80, 80, 40) == 0


def test_compute_record_count_inexact():
    """L - H not a multiple of R is malformed."""
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import compute_record_count

    with pytest.raises(FormatError, match="not a multiple"):
        compute_record_count(80 + 40 * 25 + 3, 80, 40)


@pytest.mark.parametrize("offset", [-4, 2000])
def test_compute_record_count_bad_offset(offset):
    from pc_stages.errors import FormatError
    from pc_stages.io.qfit_format import compute_record_count

    with pytest.raises(FormatError, match="outside"):
        compute_record_count(1000, offset, 40)


def test_host_byte_order_is_supported():
    """The host order is one of the supported orders."""
    from pc_stages.io.qfit_format import BYTE_ORDERS

    assert sys.byteorder in BYTE_ORDERS

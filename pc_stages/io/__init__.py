"""I/O module for reading QFIT files and reading/writing LAS files."""

from pc_stages.io.las_reader import load_point_view, read_spatial_reference
from pc_stages.io.las_writer import QFIT_EXTRA_DIMS, LasStreamWriter, save_point_view
from pc_stages.io.point_view import PointView
from pc_stages.io.qfit_format import (
    DecodeOptions,
    FormatDescriptor,
    FormatVersion,
    decode_record,
    decode_records,
    read_field,
    read_header,
    resolve_format,
)
from pc_stages.io.qfit_reader import QfitReader, QfitSequentialReader, ReaderState

__all__ = [
    "PointView",
    "load_point_view",
    "read_spatial_reference",
    "save_point_view",
    "LasStreamWriter",
    "QFIT_EXTRA_DIMS",
    "DecodeOptions",
    "FormatDescriptor",
    "FormatVersion",
    "decode_record",
    "decode_records",
    "read_field",
    "read_header",
    "resolve_format",
    "QfitReader",
    "QfitSequentialReader",
    "ReaderState",
]

"""
Streaming QFIT reader for PC-Stages.

Provides QfitSequentialReader, a pull-based cursor that decodes a QFIT
file in bounded batches, and the QfitReader stage built on top of it.
"""

import io
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union

import numpy as np

from pc_stages.config import QfitReaderConfig
from pc_stages.errors import RangeError
from pc_stages.io.point_view import PointView
from pc_stages.io.qfit_format import (
    DecodeOptions,
    FormatDescriptor,
    PointRecord,
    QfitHeader,
    compute_record_count,
    decode_record,
    decode_records,
    read_header,
    resolve_format,
)
from pc_stages.stages import Stage

logger = logging.getLogger(__name__)

Source = Union[str, Path, BinaryIO]


class ReaderState(Enum):
    CREATED = "created"
    OPENED = "opened"
    STREAMING = "streaming"
    EXHAUSTED = "exhausted"


@dataclass
class StreamCursor:
    """Position of a reader inside the record region.

    Attributes
    ----------
    byte_offset : int
        Byte offset of the next record in the source.
    record_index : int
        Index of the next record.
    total_records : int
        Number of records in the source.
    """

    byte_offset: int
    record_index: int
    total_records: int

    @property
    def remaining(self) -> int:
        return self.total_records - self.record_index

    def advance(self, n_records: int, record_width: int) -> None:
        if n_records < 0 or n_records > self.remaining:
            raise RangeError(
                f"Cannot advance {n_records} records with {self.remaining} remaining"
            )
        self.record_index += n_records
        self.byte_offset += n_records * record_width


class QfitSequentialReader:
    """Sequential, bounded-memory reader over a QFIT byte source.

    Parameters
    ----------
    byte_order : str
        "auto" (detect from the header), "little" or "big".
    format_hint : int, optional
        Format code overriding the one implied by the header.
    options : DecodeOptions, optional
        Post-decode adjustments applied to every record.
    spatial_reference : str
        Spatial reference attached to every batch.

    Notes
    -----
    Only the records of the batch being decoded are held in memory. A
    path source is opened and closed by the reader; a file object source
    is left open.
    """

    def __init__(
        self,
        byte_order: str = "auto",
        format_hint: Optional[int] = None,
        options: Optional[DecodeOptions] = None,
        spatial_reference: str = "",
    ):
        self.byte_order = byte_order
        self.format_hint = format_hint
        self.options = options or DecodeOptions()
        self.spatial_reference = spatial_reference

        self.state = ReaderState.CREATED
        self.header: Optional[QfitHeader] = None
        self.descriptor: Optional[FormatDescriptor] = None
        self.cursor: Optional[StreamCursor] = None
        self.source_file: Optional[Path] = None

        self._stream: Optional[BinaryIO] = None
        self._owns_stream = False

    def __enter__(self) -> "QfitSequentialReader":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def total_records(self) -> int:
        self._require_open()
        return self.cursor.total_records

    def open(self, source: Source) -> "QfitSequentialReader":
        """
        Open a QFIT source and position the cursor on the first record.

        Parameters
        ----------
        source : str, Path or binary file object
            File path or seekable binary stream.

        Returns
        -------
        QfitSequentialReader
            The reader itself, for chaining.

        Raises
        ------
        FileNotFoundError
            If a path source does not exist.
        FormatError
            If the header is invalid or the record region is not a whole
            number of records.
        """
        if self.state is not ReaderState.CREATED:
            raise RuntimeError(f"Reader cannot be opened in state {self.state.value}")

        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"File not found: {path}")
            stream = open(path, "rb")
            self._owns_stream = True
            self.source_file = path
        else:
            stream = source

        try:
            source_length = stream.seek(0, io.SEEK_END)
            header = read_header(stream, self.byte_order, self.format_hint)
            total = compute_record_count(
                source_length, header.data_offset, header.record_width
            )
        except Exception:
            if self._owns_stream:
                stream.close()
                self._owns_stream = False
            raise

        self._stream = stream
        self.header = header
        self.descriptor = resolve_format(header.format_version)
        self.cursor = StreamCursor(
            byte_offset=header.data_offset,
            record_index=0,
            total_records=total,
        )
        self.state = ReaderState.OPENED

        logger.info(
            f"Opened QFIT format {int(header.format_version)} "
            f"({header.byte_order}-endian): {total} records at offset {header.data_offset}"
        )

        self._update_state()
        return self

    def close(self) -> None:
        """Release the source if the reader opened it."""
        if self._stream is not None and self._owns_stream:
            self._stream.close()
        self._stream = None
        self._owns_stream = False

    def at_end(self) -> bool:
        """Return True once every record has been read or skipped."""
        self._require_open()
        return self.cursor.record_index == self.cursor.total_records

    def skip(self, n: int) -> int:
        """
        Move the cursor forward ``n`` records without decoding them.

        Returns
        -------
        int
            Number of records skipped.

        Raises
        ------
        RangeError
            If fewer than ``n`` records remain.
        """
        self._require_open()
        if n < 0:
            raise ValueError(f"Cannot skip a negative number of records: {n}")
        if n > self.cursor.remaining:
            raise RangeError(
                f"Cannot skip {n} records: only {self.cursor.remaining} remain"
            )

        self.cursor.advance(n, self.descriptor.record_width)
        self._update_state()
        return n

    def read_batch(self, max_count: int) -> PointView:
        """
        Decode up to ``max_count`` records starting at the cursor.

        Fewer records are returned only when fewer remain; once the stream
        is exhausted an empty view is returned.

        Raises
        ------
        IOError
            If the source returns fewer bytes than the batch requires.
        """
        count = self._batch_size(max_count)
        if count == 0:
            return self._empty_view()

        data = self._read_records_bytes(count)
        columns = decode_records(
            data, self.descriptor, self.header.byte_order, self.options
        )
        self.cursor.advance(count, self.descriptor.record_width)
        self._update_state()

        return PointView(
            dims=columns,
            spatial_reference=self.spatial_reference,
            source_file=self.source_file,
        )

    def read_records(self, max_count: int) -> List[PointRecord]:
        """Decode up to ``max_count`` records one at a time."""
        count = self._batch_size(max_count)
        if count == 0:
            return []

        width = self.descriptor.record_width
        data = self._read_records_bytes(count)
        records = [
            decode_record(
                data[i * width:(i + 1) * width],
                self.descriptor,
                self.header.byte_order,
                self.options,
            )
            for i in range(count)
        ]
        self.cursor.advance(count, width)
        self._update_state()
        return records

    def iter_batches(self, batch_size: int) -> Iterator[PointView]:
        """Yield batches of at most ``batch_size`` points until exhausted."""
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        while not self.at_end():
            yield self.read_batch(batch_size)

    def _batch_size(self, max_count: int) -> int:
        self._require_open()
        if max_count < 0:
            raise ValueError(f"max_count must be non-negative, got {max_count}")
        return min(max_count, self.cursor.remaining)

    def _read_records_bytes(self, count: int) -> bytes:
        size = count * self.descriptor.record_width
        self._stream.seek(self.cursor.byte_offset)
        data = self._stream.read(size)
        if data is None or len(data) != size:
            got = 0 if data is None else len(data)
            raise IOError(
                f"Short read at byte {self.cursor.byte_offset}: "
                f"expected {size} bytes, got {got}"
            )
        return data

    def _empty_view(self) -> PointView:
        return PointView(
            dims={name: np.empty(0) for name in self.descriptor.dimension_names},
            spatial_reference=self.spatial_reference,
            source_file=self.source_file,
        )

    def _update_state(self) -> None:
        if self.cursor.record_index == self.cursor.total_records:
            self.state = ReaderState.EXHAUSTED
        else:
            self.state = ReaderState.STREAMING

    def _require_open(self) -> None:
        if self.state is ReaderState.CREATED or self._stream is None:
            raise RuntimeError("Reader is not open")


class QfitReader(Stage):
    """Reader stage producing point views from a QFIT file.

    Parameters
    ----------
    config : QfitReaderConfig
        Reader options. ``config.filename`` is required.
    """

    name = "readers.qfit"
    description = "Read NASA ATM QFIT binary lidar files"

    def __init__(self, config: Optional[QfitReaderConfig] = None, **options):
        self.config = config if config is not None else QfitReaderConfig(**options)
        self.header: Optional[QfitHeader] = None
        self.num_points = 0

    @property
    def point_data_offset(self) -> int:
        return self.header.data_offset

    @property
    def point_data_size(self) -> int:
        return self.header.record_width

    def initialize(self) -> None:
        """Validate the file and read its header."""
        if self.config.filename is None:
            raise ValueError("readers.qfit requires a filename")

        with self.create_iterator() as reader:
            self.header = reader.header
            self.num_points = reader.total_records

    def create_iterator(self) -> QfitSequentialReader:
        """Return a new sequential reader opened on the configured file."""
        reader = QfitSequentialReader(
            byte_order=self.config.byte_order,
            format_hint=self.config.format,
            options=DecodeOptions(scale_z=self.config.scale_z, flip_x=self.config.flip_x),
            spatial_reference=self.config.spatial_reference,
        )
        return reader.open(self.config.filename)

    def iter_batches(self) -> Iterator[PointView]:
        """Yield the file as batches of ``config.batch_size`` points."""
        with self.create_iterator() as reader:
            yield from reader.iter_batches(self.config.batch_size)

    def process(self, view: Optional[PointView] = None) -> PointView:
        """Read the whole file into one view."""
        with self.create_iterator() as reader:
            batches = list(reader.iter_batches(self.config.batch_size))
            if not batches:
                return reader.read_batch(0)
        return PointView.concatenate(batches)

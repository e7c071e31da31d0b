"""Command-line interface for PC-Stages."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pc_stages import __version__


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="pc-stages",
        description="Streaming QFIT reader and point transformation stages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show header information of a QFIT file
  pc-stages info flight.qi

  # Convert a QFIT file to LAS, elevations in meters
  pc-stages translate flight.qi flight.las --scale-z 0.001 --flip-x

  # Convert and transform with a matrix stored in a file
  pc-stages translate flight.qi flight.las --matrix boresight.txt

  # Transform an existing LAS file with an inline matrix
  pc-stages transform in.las out.las "1 0 0 10  0 1 0 20  0 0 1 0  0 0 0 1"
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Info command
    info_parser = subparsers.add_parser(
        "info",
        help="Print QFIT header information",
    )
    info_parser.add_argument(
        "input",
        type=Path,
        help="Input QFIT file",
    )
    _add_reader_arguments(info_parser)

    # Translate command
    translate_parser = subparsers.add_parser(
        "translate",
        help="Convert a QFIT file to LAS/LAZ, optionally transforming it",
    )
    translate_parser.add_argument(
        "input",
        type=Path,
        help="Input QFIT file",
    )
    translate_parser.add_argument(
        "output",
        type=Path,
        help="Output LAS/LAZ file",
    )
    translate_parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Configuration YAML file",
    )
    translate_parser.add_argument(
        "--matrix",
        help="Transformation matrix (16 numbers or a file path)",
    )
    _add_reader_arguments(translate_parser)
    translate_parser.add_argument(
        "--scale-z",
        type=float,
        default=None,
        help="Elevation scale factor (0.001 converts mm to m)",
    )
    translate_parser.add_argument(
        "--flip-x",
        action="store_true",
        help="Map longitudes from 0-360 to -180-180",
    )
    translate_parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        metavar="N",
        help="Records decoded per batch",
    )
    _add_transform_arguments(translate_parser)
    _add_writer_arguments(translate_parser)

    # Transform command
    transform_parser = subparsers.add_parser(
        "transform",
        help="Apply a 4x4 matrix to a LAS/LAZ file",
    )
    transform_parser.add_argument(
        "input",
        type=Path,
        help="Input LAS/LAZ file",
    )
    transform_parser.add_argument(
        "output",
        type=Path,
        help="Output LAS/LAZ file",
    )
    transform_parser.add_argument(
        "matrix",
        help="Transformation matrix (16 numbers or a file path)",
    )
    _add_transform_arguments(transform_parser)
    _add_writer_arguments(transform_parser)
    _add_verbose_argument(transform_parser)

    return parser


def _add_reader_arguments(parser: argparse.ArgumentParser) -> None:
    _add_verbose_argument(parser)
    parser.add_argument(
        "--format",
        type=int,
        choices=[10, 12, 14],
        default=None,
        help="QFIT format version (default: from the header)",
    )
    parser.add_argument(
        "--byte-order",
        choices=["auto", "little", "big"],
        default=None,
        help="Byte order of the file (default: auto)",
    )


def _add_verbose_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )


def _add_writer_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--scales",
        type=float,
        nargs=3,
        default=None,
        metavar=("SX", "SY", "SZ"),
        help="LAS coordinate scale factors (default: 1e-7 1e-7 1e-3 for "
        "untransformed QFIT, 0.001 on every axis with a matrix)",
    )
    parser.add_argument(
        "--compress",
        action="store_true",
        help="Write LAZ instead of LAS",
    )


def _add_transform_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--invert",
        action="store_true",
        help="Apply the inverse of the matrix",
    )
    parser.add_argument(
        "--override-srs",
        default=None,
        help="Spatial reference (WKT) to assign to the output",
    )


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO if parsed.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        if parsed.command == "info":
            return run_info(parsed)
        elif parsed.command == "translate":
            return run_translate(parsed)
        elif parsed.command == "transform":
            return run_transform(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def _build_registry():
    from pc_stages.stages import StageRegistry, register_default_stages

    return register_default_stages(StageRegistry())


def run_info(args) -> int:
    """Run info command."""
    from pc_stages.config import QfitReaderConfig

    registry = _build_registry()
    reader = registry.create(
        "readers.qfit",
        config=QfitReaderConfig(
            filename=args.input,
            format=args.format,
            byte_order=args.byte_order or "auto",
        ),
    )
    reader.initialize()

    header = reader.header
    print(f"File:          {args.input}")
    print(f"Format:        {int(header.format_version)}")
    print(f"Byte order:    {header.byte_order}")
    print(f"Record size:   {reader.point_data_size} bytes")
    print(f"Data offset:   {reader.point_data_offset}")
    print(f"Points:        {reader.num_points:,}")
    return 0


def run_translate(args) -> int:
    """Run translate command."""
    from pc_stages.config import StagesConfig, load_config
    from pc_stages.io.las_writer import LasStreamWriter

    # Load configuration
    if args.config:
        config = load_config(args.config)
        logging.getLogger(__name__).info(f"Loaded config from {args.config}")
    else:
        config = StagesConfig()

    # Apply CLI overrides
    config.reader.filename = args.input
    if args.format is not None:
        config.reader.format = args.format
    if args.byte_order is not None:
        config.reader.byte_order = args.byte_order
    if args.scale_z is not None:
        config.reader.scale_z = args.scale_z
    if args.flip_x:
        config.reader.flip_x = True
    if args.batch_size is not None:
        config.reader.batch_size = args.batch_size
    _apply_transform_overrides(config.transformation, args)
    if args.scales is not None:
        config.writer.scales = tuple(args.scales)
    if args.compress:
        config.writer.compress = True

    registry = _build_registry()
    reader = registry.create("readers.qfit", config=config.reader)
    reader.initialize()

    stages = []
    if config.transformation.matrix:
        transform = registry.create("filters.transformation", config=config.transformation)
        transform.initialize()
        transform.spatial_reference_changed(config.reader.spatial_reference)
        stages.append(transform)

    srs = config.transformation.override_srs or config.reader.spatial_reference
    with reader.create_iterator() as iterator:
        writer = LasStreamWriter(
            args.output,
            iterator.descriptor.dimension_names,
            scales=config.output_scales(),
            spatial_reference=srs,
            compress=config.writer.compress,
        )
        with writer:
            for batch in iterator.iter_batches(config.reader.batch_size):
                # The override warning was already issued above
                batch.spatial_reference = ""
                for stage in stages:
                    batch = stage.process(batch)
                writer.write(batch)

    for stage in stages:
        stage.finalize()
    reader.finalize()

    print(f"Wrote {writer.n_written:,} points to {writer.output_path}")
    return 0


def run_transform(args) -> int:
    """Run transform command."""
    from pc_stages.config import PROJECTED_SCALES, TransformConfig
    from pc_stages.io.las_reader import load_point_view
    from pc_stages.io.las_writer import save_point_view

    config = TransformConfig(matrix=args.matrix)
    _apply_transform_overrides(config, args)

    registry = _build_registry()
    transform = registry.create("filters.transformation", config=config)

    view = load_point_view(args.input)
    view = transform.execute(view)

    scales = tuple(args.scales) if args.scales is not None else PROJECTED_SCALES
    output_path = save_point_view(view, args.output, scales=scales, compress=args.compress)
    print(f"Wrote {view.n_points:,} points to {output_path}")
    return 0


def _apply_transform_overrides(config, args) -> None:
    if args.matrix is not None:
        config.matrix = args.matrix
    if args.invert:
        config.invert = True
    if args.override_srs is not None:
        config.override_srs = args.override_srs


if __name__ == "__main__":
    sys.exit(main())

"""
Exception types raised by PC-Stages.

Read failures from the underlying byte source are reported with the
builtin ``IOError`` (``OSError``) and are not redefined here.
"""


class FormatError(ValueError):
    """Malformed input: unknown record format, bad matrix text, bad file size."""


class RangeError(IndexError):
    """A read or skip was requested past the end of a point stream."""

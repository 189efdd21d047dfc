"""
Whole-file input and single-shot output.

Licensed under the MIT License
"""

from pathlib import Path
from typing import Union

from .errors import FirmwareIOError

PathLike = Union[str, Path]


def read_input(path: PathLike) -> bytes:
    """Load a complete input file into memory"""
    path = Path(path)
    if not path.is_file():
        raise FirmwareIOError(f"Input file not found: {path}")

    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise FirmwareIOError(f"Unable to read input file {path}: {e}") from e


def write_output(path: PathLike, data: bytes) -> None:
    """Write a fully assembled result buffer in one go"""
    path = Path(path)
    try:
        with open(path, 'wb') as f:
            f.write(data)
    except OSError as e:
        raise FirmwareIOError(f"Error during writing to file {path}: {e}") from e

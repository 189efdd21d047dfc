"""
Optional dump of intermediate buffers.

Licensed under the MIT License
"""

from pathlib import Path
from typing import Dict, Union

from .console import print_info
from .errors import FirmwareIOError
from .fileio import write_output


class DebugSink:
    """
    Writes named intermediate buffers into a target directory.

    Passed explicitly into the pipelines. A failed write raises
    FirmwareIOError and aborts the running operation.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.written: Dict[str, int] = {}

    def write(self, name: str, data: bytes) -> Path:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FirmwareIOError(f"Unable to create debug directory {self.directory}: {e}") from e

        target = self.directory / name
        write_output(target, data)
        self.written[name] = len(data)
        print_info(f"Debug file written: {target} ({len(data)} bytes)")
        return target

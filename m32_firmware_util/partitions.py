"""
Partition headers of a recovery image.

A recovery image is a sequence of partitions, each an 80-byte header
followed by its payload. Header layout (little-endian):

+0x00: Partition magic, e.g. "DLK6E6010001" (12 bytes)
+0x0E: Data checksum (word) - 16-bit sum over the payload
+0x20: Erase start address (dword)
+0x24: Erase length (dword)
+0x28: Write start address (dword)
+0x2C: Write length (dword) - payload length
+0x40: Firmware header ID, versions, SID, image info type
+0x4C: FM fmid, has to match the device
+0x4E: Header checksum (word) - chosen so the inverted 16-bit sum of the
       header words equals this value

Licensed under the MIT License
"""

import struct
from dataclasses import dataclass
from typing import List, Union

from rich import box
from rich.table import Table

from .checksum import checksum16
from .console import console, print_info, print_warning
from .errors import CapacityError, FormatError

PARTITION_HEADER_LENGTH = 80
MAX_PARTITIONS = 16

DATA_LENGTH_OFFSET = 0x2C
DATA_CHECKSUM_OFFSET = 0x0E
HEADER_CHECKSUM_OFFSET = PARTITION_HEADER_LENGTH - 2


@dataclass
class PartitionPatch:
    """Result of checking and repairing one partition header"""
    index: int
    offset: int
    length: int
    stored_length: int
    stored_data_checksum: int
    data_checksum: int
    stored_header_checksum: int
    header_checksum: int

    @property
    def end(self) -> int:
        return self.offset + PARTITION_HEADER_LENGTH + self.length

    @property
    def length_updated(self) -> bool:
        return self.stored_length != self.length

    @property
    def data_checksum_updated(self) -> bool:
        return self.stored_data_checksum != self.data_checksum

    @property
    def header_checksum_updated(self) -> bool:
        return self.stored_header_checksum != self.header_checksum

    @property
    def changed(self) -> bool:
        return self.length_updated or self.data_checksum_updated or self.header_checksum_updated


class RecoveryImage:
    """Owned, bounds-checked working copy of a recovery image"""

    def __init__(self, data: bytes, magic: Union[str, bytes] = b'', copy: bool = True):
        self.data = bytearray(data) if copy or not isinstance(data, bytearray) else data
        self.magic = magic.encode('ascii') if isinstance(magic, str) else bytes(magic)
        self.partitions: List[int] = []
        self.patches: List[PartitionPatch] = []

    def _check_range(self, offset: int, length: int) -> None:
        if offset < 0 or length < 0 or offset + length > len(self.data):
            raise FormatError(
                f"Range 0x{offset:X}+0x{length:X} exceeds image size 0x{len(self.data):X}"
            )

    def read_dword_le(self, offset: int) -> int:
        """Read 32-bit little-endian value"""
        self._check_range(offset, 4)
        return struct.unpack_from('<I', self.data, offset)[0]

    def read_word_le(self, offset: int) -> int:
        """Read 16-bit little-endian value"""
        self._check_range(offset, 2)
        return struct.unpack_from('<H', self.data, offset)[0]

    def write_dword_le(self, offset: int, value: int) -> None:
        self._check_range(offset, 4)
        struct.pack_into('<I', self.data, offset, value)

    def write_word_le(self, offset: int, value: int) -> None:
        self._check_range(offset, 2)
        struct.pack_into('<H', self.data, offset, value)

    def view(self, offset: int, length: int) -> memoryview:
        """Bounds-checked read-only window into the image"""
        self._check_range(offset, length)
        return memoryview(self.data)[offset:offset + length].toreadonly()

    def find_partitions(self, strict: bool = False) -> List[int]:
        """
        Find partition headers by scanning for the partition magic.

        Scans byte by byte without alignment assumptions. A magic inside the
        last 80 bytes cannot start a complete header and is not considered.
        At most 16 partitions are collected; once the limit is reached the
        scan stops and any later match is ignored, unless strict is set, in
        which case a further match raises CapacityError.
        """
        self.partitions = []
        scan_end = len(self.data) - PARTITION_HEADER_LENGTH
        if not self.magic or scan_end <= 0:
            return []

        # Matches must start before scan_end
        search_end = scan_end + len(self.magic) - 1

        pos = self.data.find(self.magic, 0, search_end)
        while pos != -1:
            if len(self.partitions) == MAX_PARTITIONS:
                if strict:
                    raise CapacityError(
                        f"More than {MAX_PARTITIONS} partitions found (next at 0x{pos:08X})"
                    )
                print_warning(f"Reached maximum of {MAX_PARTITIONS} partitions, stopping search")
                break

            print_info(f"Found partition header at address 0x{pos:08X}")
            self.partitions.append(pos)
            pos = self.data.find(self.magic, pos + 1, search_end)

        return list(self.partitions)

    def _update_checksum(self, name: str, index: int, offset: int, value: int) -> int:
        stored = self.read_word_le(offset)
        if stored != value:
            print_info(f"Updating {name} checksum in partition {index} from 0x{stored:04X} to 0x{value:04X}")
            self.write_word_le(offset, value)
        else:
            console.print(f"[dim]Keeping {name} checksum in partition {index}: 0x{stored:04X}[/dim]")
        return stored

    def patch_partition(self, offset: int, end: int, index: int = 0) -> PartitionPatch:
        """
        Repair length and checksums of the partition at offset.

        The payload runs from the end of the 80-byte header up to end, which
        is the next partition's header or the end of the image. Fields are
        only rewritten when they differ; mismatches are corrected, never
        reported as errors.
        """
        length = end - offset - PARTITION_HEADER_LENGTH
        if length < 0:
            raise FormatError(
                f"Partition {index} at 0x{offset:08X} is shorter than its {PARTITION_HEADER_LENGTH}-byte header"
            )
        self._check_range(offset, PARTITION_HEADER_LENGTH + length)

        stored_length = self.read_dword_le(offset + DATA_LENGTH_OFFSET)
        if stored_length != length:
            print_info(
                f"Updating data length in partition {index} from {stored_length} (0x{stored_length:08X}) "
                f"to {length} (0x{length:08X})"
            )
            self.write_dword_le(offset + DATA_LENGTH_OFFSET, length)

        # Data checksum lives inside the header, so it has to be settled
        # before the header checksum is calculated.
        payload = self.view(offset + PARTITION_HEADER_LENGTH, length)
        if length % 2:
            # Trailing byte is summed as the low byte of a final word
            payload = bytes(payload) + b'\x00'
        data_checksum = checksum16(payload)
        stored_data_checksum = self._update_checksum(
            "data", index, offset + DATA_CHECKSUM_OFFSET, data_checksum)

        header_checksum = checksum16(self.view(offset, HEADER_CHECKSUM_OFFSET), invert=True)
        stored_header_checksum = self._update_checksum(
            "header", index, offset + HEADER_CHECKSUM_OFFSET, header_checksum)

        return PartitionPatch(
            index=index,
            offset=offset,
            length=length,
            stored_length=stored_length,
            stored_data_checksum=stored_data_checksum,
            data_checksum=data_checksum,
            stored_header_checksum=stored_header_checksum,
            header_checksum=header_checksum,
        )

    def update_headers(self, strict: bool = False) -> bytes:
        """Scan and repair every partition, returning the patched image"""
        console.print("\n[*] Scanning for partition headers...")
        offsets = self.find_partitions(strict=strict)
        if not offsets:
            raise FormatError(f"No partitions with magic {self.magic.decode('ascii', 'replace')} found")

        ends = offsets[1:] + [len(self.data)]
        self.patches = [
            self.patch_partition(offset, end, index)
            for index, (offset, end) in enumerate(zip(offsets, ends))
        ]

        return bytes(self.data)

    def print_summary(self) -> None:
        """Print the partition table with rich formatting"""
        table = Table(title=f"Partitions ({len(self.patches)})", box=box.ROUNDED)
        table.add_column("#", style="dim", width=3)
        table.add_column("Offset", justify="right")
        table.add_column("Length", justify="right")
        table.add_column("Data CS", justify="right")
        table.add_column("Header CS", justify="right")
        table.add_column("Status", justify="center")

        for patch in self.patches:
            status = "[yellow]patched[/yellow]" if patch.changed else "[green]✓ valid[/green]"
            table.add_row(
                str(patch.index),
                f"0x{patch.offset:08X}",
                f"0x{patch.length:X}",
                f"0x{patch.data_checksum:04X}",
                f"0x{patch.header_checksum:04X}",
                status,
            )

        console.print()
        console.print(table)


def find_partitions(buffer: bytes, magic: Union[str, bytes], strict: bool = False) -> List[int]:
    """Offsets of up to 16 partition headers, in ascending order"""
    return RecoveryImage(buffer, magic).find_partitions(strict=strict)


def patch_partition(buffer: bytearray, offset: int, end: int, index: int = 0) -> PartitionPatch:
    """Repair one partition header in place in a caller-owned bytearray"""
    if not isinstance(buffer, bytearray):
        raise TypeError(f"patch_partition needs a bytearray to patch in place, got {type(buffer).__name__}")
    return RecoveryImage(buffer, copy=False).patch_partition(offset, end, index)


def update_header_in_recovery_image(buffer: bytes, magic: Union[str, bytes], strict: bool = False) -> bytes:
    """
    Repair every partition header of a recovery image.

    Raises:
        FormatError: No partition header found
        CapacityError: strict is set and more than 16 partitions are present
    """
    return RecoveryImage(buffer, magic).update_headers(strict=strict)

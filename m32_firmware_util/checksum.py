"""
16-bit summation checksum used in recovery image partition headers.

Licensed under the MIT License
"""

from .errors import FormatError


def checksum16(buffer: bytes, invert: bool = False) -> int:
    """
    Calculate the 16-bit word sum of a buffer.

    Reads the buffer as little-endian 16-bit words and adds them into a
    16-bit accumulator. Whenever an addition wraps past 0xFFFF the
    accumulator is incremented by one. This is the rule the bootloader
    applies and is not a general end-around carry: the +1 itself is never
    folded again.

    Args:
        buffer: Data to sum, must have an even length
        invert: Return 0xFFFF - sum instead of the sum (header checksum)

    Returns:
        16-bit checksum
    """
    if len(buffer) % 2:
        raise FormatError(f"Checksum buffer length must be even, got {len(buffer)}")

    checksum = 0
    view = memoryview(buffer)

    for pos in range(0, len(view), 2):
        word = view[pos] | (view[pos + 1] << 8)
        checksum += word
        # Overflow: keep the low 16 bits and add one
        if checksum > 0xFFFF:
            checksum = (checksum & 0xFFFF) + 1

    if invert:
        checksum = 0xFFFF - checksum

    return checksum

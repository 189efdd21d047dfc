"""
MH01 block headers.

A 16-byte MH01 header precedes every verification (SHA-512 signed) and
encryption (AES-128-CBC) block of a factory image:

  Verification header              Encryption header
  +0x00  "MH01"                    +0x00  "MH01"
  +0x04  payload length (LE32)     +0x04  0x21 0x00 0x00 0x00
  +0x08  0x00 0x01 0x00 0x00       +0x08  payload length (LE32)
  +0x0C  0x2B 0x1A                 +0x0C  0x2B 0x1A
  +0x0E  byte sum of bytes 0-13    +0x0E  byte sum of bytes 0-13
  +0x0F  XOR of bytes 0-13         +0x0F  XOR of bytes 0-13

Licensed under the MIT License
"""

import struct
from enum import Enum
from typing import Tuple

from .errors import FormatError

HEADER_MAGIC = b'MH01'
HEADER_LENGTH = 16

HEADER_TRAILER = b'\x2B\x1A'
VERIFICATION_TYPE_TAG = b'\x00\x01\x00\x00'
ENCRYPTION_TYPE_TAG = b'\x21\x00\x00\x00'


class HeaderType(Enum):
    """MH01 header flavours, valued by the offset of their length field"""
    VERIFICATION = 4
    ENCRYPTION = 8

    @property
    def length_offset(self) -> int:
        return self.value


def header_check_bytes(data: bytes) -> Tuple[int, int]:
    """Return (byte sum mod 256, XOR) over the first 14 header bytes"""
    byte_sum = 0
    byte_xor = 0
    for value in data[:14]:
        byte_sum = (byte_sum + value) & 0xFF
        byte_xor ^= value
    return byte_sum, byte_xor


def _build_header(header_type: HeaderType, payload_length: int) -> bytes:
    if not 0 <= payload_length <= 0xFFFFFFFF:
        raise FormatError(f"Payload length {payload_length} does not fit in a MH01 header")

    if header_type is HeaderType.VERIFICATION:
        body = HEADER_MAGIC + struct.pack('<I', payload_length) + VERIFICATION_TYPE_TAG
    else:
        body = HEADER_MAGIC + ENCRYPTION_TYPE_TAG + struct.pack('<I', payload_length)
    body += HEADER_TRAILER

    return body + bytes(header_check_bytes(body))


def build_verification_header(payload_length: int) -> bytes:
    """Create the header of a block covered by a SHA-512 signature"""
    return _build_header(HeaderType.VERIFICATION, payload_length)


def build_encryption_header(payload_length: int) -> bytes:
    """Create the header of an AES-128-CBC encrypted block"""
    return _build_header(HeaderType.ENCRYPTION, payload_length)


def parse_header(data: bytes, header_type: HeaderType = HeaderType.VERIFICATION) -> int:
    """
    Read the payload length from a MH01 header.

    Only the magic is checked. The check bytes are written when a header is
    built but are not validated here, the signature over the payload is what
    authenticates a block.

    Raises:
        FormatError: Fewer than 16 bytes available or magic is not "MH01"
    """
    if len(data) < HEADER_LENGTH:
        raise FormatError(f"Truncated MH01 header ({len(data)} of {HEADER_LENGTH} bytes)")

    if bytes(data[:4]) != HEADER_MAGIC:
        raise FormatError(f"Invalid header magic {bytes(data[:4])!r}, expected {HEADER_MAGIC!r}")

    return struct.unpack_from('<I', data, header_type.length_offset)[0]


def parse_verification_header(data: bytes) -> int:
    return parse_header(data, HeaderType.VERIFICATION)


def parse_encryption_header(data: bytes) -> int:
    return parse_header(data, HeaderType.ENCRYPTION)

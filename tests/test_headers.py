from functools import reduce

import pytest

from m32_firmware_util.errors import FormatError
from m32_firmware_util.headers import (
    HeaderType,
    build_encryption_header,
    build_verification_header,
    header_check_bytes,
    parse_encryption_header,
    parse_header,
    parse_verification_header,
)


def test_verification_header_layout():
    header = build_verification_header(0x1234)
    assert header == bytes.fromhex("4d483031" "34120000" "00010000" "2b1a" "8212")


def test_encryption_header_layout():
    header = build_encryption_header(0x1234)
    assert header == bytes.fromhex("4d483031" "21000000" "34120000" "2b1a" "a232")


@pytest.mark.parametrize("length", [0, 1, 0x1234, 0x00ABCDEF, 0xFFFFFFFF])
@pytest.mark.parametrize("build", [build_verification_header, build_encryption_header])
def test_check_bytes(build, length):
    header = build(length)
    assert len(header) == 16
    assert header[14] == sum(header[:14]) % 256
    assert header[15] == reduce(lambda a, b: a ^ b, header[:14])
    assert header_check_bytes(header) == (header[14], header[15])


@pytest.mark.parametrize("length", [0, 1968, 0x7FFFFFFF, 0xFFFFFFFF])
def test_parse_returns_built_length(length):
    assert parse_header(build_verification_header(length)) == length
    assert parse_verification_header(build_verification_header(length)) == length
    assert parse_encryption_header(build_encryption_header(length)) == length
    assert parse_header(build_encryption_header(length), HeaderType.ENCRYPTION) == length


def test_parse_ignores_check_bytes():
    header = bytearray(build_verification_header(4096))
    header[14] ^= 0xFF
    header[15] ^= 0xFF
    assert parse_header(bytes(header)) == 4096


def test_parse_rejects_bad_magic():
    header = bytearray(build_verification_header(16))
    header[0:4] = b'MH02'
    with pytest.raises(FormatError):
        parse_header(bytes(header))


def test_parse_rejects_truncated_header():
    with pytest.raises(FormatError):
        parse_header(build_verification_header(16)[:7])


@pytest.mark.parametrize("length", [-1, 0x100000000])
def test_build_rejects_unrepresentable_length(length):
    with pytest.raises(FormatError):
        build_verification_header(length)

import argparse
import struct

import pytest

from m32_firmware_util.container import LEGACY_IV
from m32_firmware_util.main import Operation, build_parser, hex_bytes, iv_value, main

RECOVERY_IMAGE = bytes(range(256)) * 6


@pytest.fixture
def recovery_file(tmp_path):
    path = tmp_path / "recovery.bin"
    path.write_bytes(RECOVERY_IMAGE)
    return path


def test_update_firmware_header(tmp_path, partition_builder):
    source = tmp_path / "in.bin"
    target = tmp_path / "out.bin"
    source.write_bytes(partition_builder(b'DLK6E6010001', bytes(1968)))

    assert main(["M32", "UpdateFirmwareHeader", str(source), str(target)]) == 0

    patched = target.read_bytes()
    assert struct.unpack_from('<I', patched, 0x2C)[0] == 1968
    assert struct.unpack_from('<H', patched, 0x4E)[0] == 0xACEA
    assert source.read_bytes()[0x2C:0x30] == bytes(4)


def test_update_firmware_header_wrong_device(tmp_path, partition_builder):
    source = tmp_path / "in.bin"
    target = tmp_path / "out.bin"
    source.write_bytes(partition_builder(b'DLK6E6010001', bytes(1968)))

    assert main(["M60", "UpdateFirmwareHeader", str(source), str(target)]) == 1
    assert not target.exists()


def test_create_and_decrypt_m32(tmp_path, recovery_file):
    factory = tmp_path / "factory.bin"
    decrypted = tmp_path / "decrypted.bin"

    assert main(["M32", "CreateFactoryImage", str(recovery_file), str(factory)]) == 0
    assert factory.read_bytes()[:4] == b'MH01'
    assert main(["M32", "DecryptFactoryImage", str(factory), str(decrypted)]) == 0
    assert decrypted.read_bytes() == RECOVERY_IMAGE


def test_decrypt_with_wrong_device(tmp_path, recovery_file):
    factory = tmp_path / "factory.bin"
    decrypted = tmp_path / "decrypted.bin"

    assert main(["M32", "CreateFactoryImage", str(recovery_file), str(factory), "--quiet"]) == 0
    assert main(["M60", "DecryptFactoryImage", str(factory), str(decrypted), "-q"]) == 1
    assert not decrypted.exists()


def test_salt_iv_and_debug(tmp_path, recovery_file):
    factory = tmp_path / "factory.bin"
    debug_dir = tmp_path / "debug"

    assert main(["R32", "CreateFactoryImage", str(recovery_file), str(factory),
                 "--salt", "0011223344556677", "--iv", LEGACY_IV.hex(), "--debug", str(debug_dir)]) == 0

    image = factory.read_bytes()
    assert image[32:65] == LEGACY_IV.hex().encode() + b'\n'
    assert image[73:81] == bytes.fromhex("0011223344556677")
    assert (debug_dir / "IV.bin").read_bytes() == image[32:65]
    assert (debug_dir / "Sig1.bin").exists()


def test_input_too_small(tmp_path):
    source = tmp_path / "small.bin"
    target = tmp_path / "out.bin"
    source.write_bytes(bytes(1023))

    assert main(["M32", "CreateFactoryImage", str(source), str(target)]) == 1
    assert main(["M32", "DecryptFactoryImage", str(source), str(target)]) == 1
    assert main(["M32", "UpdateFirmwareHeader", str(source), str(target)]) == 1
    assert not target.exists()


def test_missing_input(tmp_path):
    assert main(["M32", "CreateFactoryImage", str(tmp_path / "absent.bin"), str(tmp_path / "out.bin")]) == 1
    assert not (tmp_path / "out.bin").exists()


def test_unknown_device(tmp_path, recovery_file):
    assert main(["M99", "CreateFactoryImage", str(recovery_file), str(tmp_path / "out.bin")]) == 1


def test_devices_file(tmp_path, recovery_file, test_device):
    (tmp_path / "private.pem").write_bytes(test_device.private_key_pem)
    (tmp_path / "public.pem").write_bytes(test_device.public_key_pem)
    devices = tmp_path / "devices.json"
    devices.write_text(
        '{"devices": [{"name": "LAB", "partition_magic": "DLK6E6010001", '
        '"firmware_key": "00112233445566778899aabbccddeeff", '
        '"private_key": "private.pem", "public_key": "public.pem"}]}'
    )
    factory = tmp_path / "factory.bin"
    decrypted = tmp_path / "decrypted.bin"

    args = ["--devices", str(devices)]
    assert main(["LAB", "CreateFactoryImage", str(recovery_file), str(factory)] + args) == 0
    assert main(["LAB", "DecryptFactoryImage", str(factory), str(decrypted)] + args) == 0
    assert decrypted.read_bytes() == RECOVERY_IMAGE
    assert main(["M32", "DecryptFactoryImage", str(factory), str(tmp_path / "x.bin")]) == 1


def test_invalid_operation():
    assert main(["M32", "Flash", "in.bin", "out.bin"]) == 1


def test_missing_arguments():
    assert main(["M32"]) == 1
    assert main([]) == 1


def test_invalid_salt_argument(tmp_path, recovery_file):
    target = tmp_path / "out.bin"
    assert main(["M32", "CreateFactoryImage", str(recovery_file), str(target), "--salt", "0011"]) == 1
    assert not target.exists()


def test_version_exits_cleanly():
    assert main(["--version"]) == 0


def test_legacy_iv_argument(tmp_path, recovery_file):
    factory = tmp_path / "factory.bin"
    assert main(["M32", "CreateFactoryImage", str(recovery_file), str(factory), "--iv", "legacy"]) == 0
    assert factory.read_bytes()[32:65] == LEGACY_IV.hex().encode() + b'\n'
    assert iv_value("LEGACY") == LEGACY_IV


@pytest.mark.parametrize("value", ["0011", "zz" * 8, "00112233445566778"])
def test_hex_bytes_rejects(value):
    with pytest.raises(argparse.ArgumentTypeError):
        hex_bytes(8)(value)


def test_parser_defaults():
    args = build_parser().parse_args(["M32", "CreateFactoryImage", "a", "b"])
    assert Operation(args.operation) is Operation.CREATE_FACTORY_IMAGE
    assert args.salt is None and args.iv is None and args.debug is None
    assert not args.strict_partitions
    assert hex_bytes(8)("65FC43BC67A32335") == bytes.fromhex("65fc43bc67a32335")

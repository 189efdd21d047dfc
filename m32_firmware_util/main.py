#!/usr/bin/env python3
"""
D-Link M32 Firmware Utility

Converts firmware images of D-Link M30/M32/R32/M60 routers:
  - repairs partition lengths and checksums in recovery images
  - creates encrypted, doubly signed factory images from recovery images
  - verifies and decrypts factory images back into recovery images

Licensed under the MIT License
"""

import argparse
import binascii
import sys
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional

from rich.panel import Panel

from . import __version__
from .console import console, print_banner, print_error, print_info, print_success
from .container import LEGACY_IV, FactoryImageOptions, create_factory_image, decrypt_factory_image
from .debug import DebugSink
from .devices import DEVICES, DeviceProfile, get_device, load_devices
from .errors import CapacityError, FirmwareError
from .fileio import read_input, write_output
from .headers import HEADER_LENGTH
from .partitions import PARTITION_HEADER_LENGTH, RecoveryImage
from .signature import SIGNATURE_LENGTH

MIN_PAYLOAD_SIZE = 1024


class Operation(Enum):
    """Operations selectable on the command line"""
    UPDATE_FIRMWARE_HEADER = "UpdateFirmwareHeader"
    CREATE_FACTORY_IMAGE = "CreateFactoryImage"
    DECRYPT_FACTORY_IMAGE = "DecryptFactoryImage"

    @property
    def description(self) -> str:
        return OPERATION_DESCRIPTIONS[self]

    @property
    def minimum_file_size(self) -> int:
        return OPERATION_MINIMUM_SIZES[self]


OPERATION_DESCRIPTIONS = {
    Operation.UPDATE_FIRMWARE_HEADER:
        "Updates data length information and checksum in an existing header in a recovery image",
    Operation.CREATE_FACTORY_IMAGE: "Create a factory image from a recovery image",
    Operation.DECRYPT_FACTORY_IMAGE: "Decrypts a factory image",
}

OPERATION_MINIMUM_SIZES = {
    Operation.UPDATE_FIRMWARE_HEADER: PARTITION_HEADER_LENGTH,
    Operation.CREATE_FACTORY_IMAGE: MIN_PAYLOAD_SIZE,
    # Signature and header for inner and outer image plus at least 1kB payload
    Operation.DECRYPT_FACTORY_IMAGE: 2 * (SIGNATURE_LENGTH + HEADER_LENGTH) + MIN_PAYLOAD_SIZE,
}


def update_firmware_header(data: bytes, device: DeviceProfile, args: argparse.Namespace) -> bytes:
    image = RecoveryImage(data, device.partition_magic)
    patched = image.update_headers(strict=args.strict_partitions)
    image.print_summary()
    return patched


def create_factory(data: bytes, device: DeviceProfile, args: argparse.Namespace) -> bytes:
    options = FactoryImageOptions(debug=args.debug_sink)
    if args.salt is not None:
        options.salt = args.salt
    if args.iv is not None:
        options.iv = args.iv
    return create_factory_image(data, device, options)


def decrypt_factory(data: bytes, device: DeviceProfile, args: argparse.Namespace) -> bytes:
    return decrypt_factory_image(data, device, debug=args.debug_sink)


OPERATION_HANDLERS: Dict[Operation, Callable[[bytes, DeviceProfile, argparse.Namespace], bytes]] = {
    Operation.UPDATE_FIRMWARE_HEADER: update_firmware_header,
    Operation.CREATE_FACTORY_IMAGE: create_factory,
    Operation.DECRYPT_FACTORY_IMAGE: decrypt_factory,
}


def run_operation(operation: Operation, device: DeviceProfile, input_path: str,
                  output_path: str, args: argparse.Namespace) -> None:
    """Read the input, run one pipeline and write its result exactly once"""
    data = read_input(input_path)
    print_success(f"Loaded: {Path(input_path).name}")
    print_info(f"Size: 0x{len(data):X} ({len(data):,} bytes)")

    if len(data) < operation.minimum_file_size:
        raise CapacityError(
            f"File {input_path} is smaller than {operation.minimum_file_size} bytes"
        )

    result = OPERATION_HANDLERS[operation](data, device, args)

    write_output(output_path, result)
    console.print()
    console.print(Panel(
        f"[green]✓[/green] {operation.value} output saved to:\n[cyan]{output_path}[/cyan]\n\n"
        f"[bold]Size:[/bold] 0x{len(result):X} ({len(result):,} bytes)",
        title="💾 Success",
        border_style="green"
    ))


def hex_bytes(length: int) -> Callable[[str], bytes]:
    """argparse type for fixed-length hex strings"""
    def parse(value: str) -> bytes:
        try:
            raw = binascii.unhexlify(value)
        except (binascii.Error, ValueError):
            raise argparse.ArgumentTypeError(f"{value!r} is not a hex string")
        if len(raw) != length:
            raise argparse.ArgumentTypeError(f"expected {length} bytes ({2 * length} hex digits)")
        return raw
    return parse


def iv_value(value: str) -> bytes:
    """argparse type for --iv: 16 hex bytes or 'legacy'"""
    if value.lower() == 'legacy':
        return LEGACY_IV
    return hex_bytes(16)(value)


class UsageErrorParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with exit code 1"""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_epilog(registry: Mapping[str, DeviceProfile]) -> str:
    lines = ["<device> can be one of the following:"]
    lines += [f"  {profile.name}: {profile.description}" for profile in registry.values()]
    lines += ["", "<operation> can be one of the following:"]
    lines += [f"  {operation.value}: {operation.description}" for operation in Operation]
    lines += [
        "",
        "Examples:",
        "  # Repair partition headers of a modified recovery image",
        "  %(prog)s M32 UpdateFirmwareHeader recovery.bin recovery_fixed.bin",
        "",
        "  # Build a factory image, dumping intermediate buffers",
        "  %(prog)s M32 CreateFactoryImage recovery.bin factory.bin --debug ./debug",
        "",
        "  # Decrypt a vendor factory image",
        "  %(prog)s M32 DecryptFactoryImage M32_REVA_FIRMWARE_v1.00B34.bin recovery.bin",
    ]
    return "\n".join(lines)


def build_parser(registry: Mapping[str, DeviceProfile] = DEVICES) -> argparse.ArgumentParser:
    parser = UsageErrorParser(
        prog='m32-firmware-util',
        description=f'D-Link M32 Firmware Utility v{__version__}',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=build_epilog(registry),
    )

    parser.add_argument('device', help='Device name, e.g. M32')
    parser.add_argument('operation', choices=[operation.value for operation in Operation],
                        metavar='operation', help='Operation to perform')
    parser.add_argument('input_file', help='Input image')
    parser.add_argument('output_file', help='Output image')
    parser.add_argument('--debug', metavar='DIRECTORY',
                        help='Write intermediate buffers to DIRECTORY')
    parser.add_argument('--devices', metavar='FILE',
                        help='JSON file with additional device profiles')
    parser.add_argument('--salt', type=hex_bytes(8), metavar='HEX',
                        help='Salt for CreateFactoryImage (8 bytes, default 65FC43BC67A32335)')
    parser.add_argument('--iv', type=iv_value, metavar='HEX',
                        help="AES IV for CreateFactoryImage (16 bytes, or 'legacy' for the IV of "
                             "earlier releases; default: derived from the key)")
    parser.add_argument('--strict-partitions', action='store_true',
                        help='Fail instead of ignoring partitions beyond the 16th')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Only print the final diagnostic line on failure')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point"""
    try:
        args = build_parser().parse_args(argv)
    except SystemExit as e:
        # --help and --version exit with 0, usage errors with 1
        return 1 if e.code else 0

    console.quiet = args.quiet
    print_banner()

    start_time = time.time()

    try:
        registry = load_devices(args.devices) if args.devices else DEVICES
        device = get_device(args.device, registry)
        operation = Operation(args.operation)
        args.debug_sink = DebugSink(args.debug) if args.debug else None

        print_info(f"Device: {device.name} ({device.description})")
        run_operation(operation, device, args.input_file, args.output_file, args)

    except FirmwareError as e:
        console.quiet = False
        print_error(str(e))
        return 1
    except Exception as e:
        console.quiet = False
        print_error(f"Unexpected error: {e}")
        import traceback
        traceback.print_exc()
        return 1

    elapsed = time.time() - start_time
    console.print()
    console.print(f"[dim]Completed in {elapsed:.2f}s[/dim]")
    return 0


if __name__ == "__main__":
    sys.exit(main())

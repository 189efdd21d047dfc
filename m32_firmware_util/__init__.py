"""
D-Link M32 Firmware Utility

Converts firmware for D-Link M30/M32/R32/M60 routers between recovery images
(flashable via TFTP or the recovery web UI) and the encrypted, doubly signed
factory images distributed by the vendor.

Licensed under the MIT License
"""

__version__ = "1.0.0"

from .errors import (  # noqa: E402
    CapacityError,
    CryptoError,
    FirmwareError,
    FirmwareIOError,
    FormatError,
    PaddingError,
    UnknownDeviceError,
)
from .checksum import checksum16  # noqa: E402
from .headers import (  # noqa: E402
    HeaderType,
    build_encryption_header,
    build_verification_header,
    parse_header,
)
from .kdf import derive_key_iv  # noqa: E402
from .container import (  # noqa: E402
    FactoryImageOptions,
    create_factory_image,
    decrypt_factory_image,
)
from .partitions import (  # noqa: E402
    RecoveryImage,
    find_partitions,
    patch_partition,
    update_header_in_recovery_image,
)
from .devices import DEVICES, DeviceProfile, get_device, load_devices  # noqa: E402
from .debug import DebugSink  # noqa: E402

__all__ = [
    "__version__",
    "CapacityError",
    "CryptoError",
    "FirmwareError",
    "FirmwareIOError",
    "FormatError",
    "PaddingError",
    "UnknownDeviceError",
    "checksum16",
    "HeaderType",
    "build_encryption_header",
    "build_verification_header",
    "parse_header",
    "derive_key_iv",
    "FactoryImageOptions",
    "create_factory_image",
    "decrypt_factory_image",
    "RecoveryImage",
    "find_partitions",
    "patch_partition",
    "update_header_in_recovery_image",
    "DEVICES",
    "DeviceProfile",
    "get_device",
    "load_devices",
    "DebugSink",
]

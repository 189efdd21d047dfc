"""
Error taxonomy for the firmware container codec.

Every pipeline step either succeeds or raises one of these. The CLI turns
any FirmwareError into a single diagnostic line and exit code 1.

Licensed under the MIT License
"""


class FirmwareError(Exception):
    """Base class for all firmware processing failures"""


class FormatError(FirmwareError):
    """Magic mismatch, truncated buffer or offsets outside the buffer"""


class CryptoError(FirmwareError):
    """Digest, signature, key loading or cipher failure"""


class PaddingError(CryptoError):
    """Invalid PKCS#7 padding after decryption"""


class CapacityError(FirmwareError):
    """Too many partitions, or input smaller than an operation's minimum"""


class FirmwareIOError(FirmwareError, OSError):
    """File open/read/write/stat failure"""


class UnknownDeviceError(FirmwareError, KeyError):
    """Device name not present in the registry"""

    def __str__(self):
        return Exception.__str__(self)

"""
Factory image container.

Factory image layout:

  +0x00  16   MH01 verification header, length N of the block below
  +0x10  16   MH01 encryption header, length L of salt tag + ciphertext
  +0x20  32   AES-CBC IV as lowercase ASCII hex
  +0x40  1    0x0A (LF)
  +0x41  8    "Salted__"
  +0x49  8    Salt for the key derivation
  +0x51  L-16 AES-128-CBC ciphertext
  16+N   256  Signature over the N bytes at 0x10

Decrypted ciphertext:

  +0x00  16   MH01 verification header, length M of the recovery image
  +0x10  M    Recovery image
  16+M   256  Signature over the recovery image

A signature always covers exactly the payload announced by the header in
front of it, i.e. the bytes between that header and the signature.

Licensed under the MIT License
"""

import binascii
from dataclasses import dataclass
from typing import Optional

from . import cipher, signature
from .console import console, print_info, print_success
from .debug import DebugSink
from .devices import DeviceProfile
from .errors import CryptoError, FormatError
from .headers import (
    HEADER_LENGTH,
    build_encryption_header,
    build_verification_header,
    parse_encryption_header,
    parse_verification_header,
)
from .kdf import SALT_LENGTH, derive_key_iv
from .signature import SIGNATURE_LENGTH

SALT_TAG = b'Salted__'
SALT_INFO_LENGTH = len(SALT_TAG) + SALT_LENGTH

IV_ASCII_LENGTH = cipher.AES_BLOCK_SIZE * 2
IV_TERMINATOR = b'\n'
IV_INFO_LENGTH = IV_ASCII_LENGTH + len(IV_TERMINATOR)

# Salt used by the vendor tooling; the build is deterministic unless overridden
DEFAULT_SALT = bytes([0x65, 0xFC, 0x43, 0xBC, 0x67, 0xA3, 0x23, 0x35])

# IV hard-coded by earlier releases of the M32 tooling (not derived from the key)
LEGACY_IV = bytes([0x99, 0x38, 0x0C, 0x25, 0xAE, 0xCC, 0x79, 0xD3,
                   0x9B, 0x14, 0x5A, 0xC0, 0x43, 0x53, 0xBB, 0xE9])

# Debug file names
DEBUG_INNER_SIGNATURE = "Sig1.bin"
DEBUG_INNER_BLOCK = "FW_and_Sig1.bin"
DEBUG_ENCRYPTED = "FWenc.bin"
DEBUG_IV = "IV.bin"


@dataclass
class FactoryImageOptions:
    """Build parameters of a factory image"""
    salt: bytes = DEFAULT_SALT
    iv: Optional[bytes] = None  # None: use the IV derived with the key
    debug: Optional[DebugSink] = None

    def __post_init__(self):
        if len(self.salt) != SALT_LENGTH:
            raise FormatError(f"Salt must be {SALT_LENGTH} bytes, got {len(self.salt)}")
        if self.iv is not None and len(self.iv) != cipher.AES_BLOCK_SIZE:
            raise FormatError(f"IV must be {cipher.AES_BLOCK_SIZE} bytes, got {len(self.iv)}")


def encode_iv(iv: bytes) -> bytes:
    """IV as stored in the image: 32 lowercase hex characters and a line feed"""
    return binascii.hexlify(iv) + IV_TERMINATOR


def decode_iv(data: bytes) -> bytes:
    if len(data) < IV_INFO_LENGTH:
        raise FormatError(f"Truncated IV ({len(data)} of {IV_INFO_LENGTH} bytes)")
    if bytes(data[IV_ASCII_LENGTH:IV_INFO_LENGTH]) != IV_TERMINATOR:
        raise FormatError("IV is not terminated by a line feed")
    try:
        return binascii.unhexlify(bytes(data[:IV_ASCII_LENGTH]))
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"IV is not a valid hex string: {e}") from e


def sign_block(payload: bytes, device: DeviceProfile) -> bytes:
    """Wrap a payload as verification header || payload || signature"""
    header = build_verification_header(len(payload))
    sig = signature.sign(payload, device.private_key_pem, device.private_key_passphrase)
    return header + payload + sig


def open_signed_block(data: bytes, device: DeviceProfile, name: str) -> bytes:
    """
    Check a verification header and its signature, returning the payload.

    Raises:
        FormatError: Bad magic or the announced payload runs past the buffer
        CryptoError: Signature does not match the device's public key
    """
    length = parse_verification_header(data)
    end = HEADER_LENGTH + length
    if end + SIGNATURE_LENGTH > len(data):
        raise FormatError(
            f"Block offset for {name} out of range "
            f"(0x{end + SIGNATURE_LENGTH:X} > 0x{len(data):X})"
        )

    payload = data[HEADER_LENGTH:end]
    sig = data[end:end + SIGNATURE_LENGTH]
    if not signature.verify(payload, sig, device.public_key_pem):
        raise CryptoError(f"Verification of {name} failed")

    return payload


def create_factory_image(recovery_image: bytes, device: DeviceProfile,
                         options: Optional[FactoryImageOptions] = None) -> bytes:
    """
    Build an encrypted and doubly signed factory image from a recovery image.

    The returned buffer is complete; nothing is written by this function
    except debug files when a DebugSink is configured.
    """
    options = options or FactoryImageOptions()
    debug = options.debug
    recovery_image = bytes(recovery_image)

    console.print(f"\n[*] Creating factory image for {device.name} ({len(recovery_image):,} bytes)...")

    inner = sign_block(recovery_image, device)
    print_info("Signed recovery image")
    if debug:
        debug.write(DEBUG_INNER_SIGNATURE, inner[-SIGNATURE_LENGTH:])
        debug.write(DEBUG_INNER_BLOCK, inner)

    key, derived_iv = derive_key_iv(device.firmware_key, options.salt)
    iv = options.iv if options.iv is not None else derived_iv

    ciphertext = cipher.encrypt(inner, key, iv)
    salt_info = SALT_TAG + options.salt
    print_info(f"Encrypted {len(inner):,} bytes to {len(ciphertext):,} bytes")
    if debug:
        debug.write(DEBUG_ENCRYPTED, salt_info + ciphertext)

    iv_info = encode_iv(iv)
    if debug:
        debug.write(DEBUG_IV, iv_info)

    enc_block = (build_encryption_header(len(salt_info) + len(ciphertext))
                 + iv_info + salt_info + ciphertext)

    factory_image = sign_block(enc_block, device)
    print_success(f"Factory image created ({len(factory_image):,} bytes)")

    return factory_image


def decrypt_factory_image(factory_image: bytes, device: DeviceProfile,
                          debug: Optional[DebugSink] = None) -> bytes:
    """
    Verify and decrypt a factory image, returning the recovery image.

    Each layer is verified before the next one is parsed. Any malformed
    header or failed verification raises; no partial result is returned.
    """
    data = memoryview(bytes(factory_image))
    console.print(f"\n[*] Decrypting factory image for {device.name} ({len(data):,} bytes)...")

    enc_block = open_signed_block(data, device, "IV and encrypted firmware")
    print_success("Outer signature verified")

    enc_length = parse_encryption_header(enc_block)
    if enc_length < SALT_INFO_LENGTH:
        raise FormatError(f"Encrypted block length {enc_length} is shorter than its salt header")

    iv_offset = HEADER_LENGTH
    salt_offset = iv_offset + IV_INFO_LENGTH
    end = salt_offset + enc_length
    if end > len(enc_block):
        raise FormatError(
            f"Block offset for encrypted firmware out of range (0x{end:X} > 0x{len(enc_block):X})"
        )

    iv = decode_iv(enc_block[iv_offset:salt_offset])
    salt_info = bytes(enc_block[salt_offset:salt_offset + SALT_INFO_LENGTH])
    if salt_info[:len(SALT_TAG)] != SALT_TAG:
        raise FormatError(f"Missing {SALT_TAG.decode()} tag in front of the encrypted firmware")
    salt = salt_info[len(SALT_TAG):]

    if debug:
        debug.write(DEBUG_IV, enc_block[iv_offset:salt_offset])
        debug.write(DEBUG_ENCRYPTED, enc_block[salt_offset:end])

    # Only the key comes from the derivation, the IV is the one embedded above
    key = derive_key_iv(device.firmware_key, salt).key
    plaintext = cipher.decrypt(enc_block[salt_offset + SALT_INFO_LENGTH:end], key, iv)
    print_info(f"Decrypted {len(plaintext):,} bytes")
    if debug:
        debug.write(DEBUG_INNER_BLOCK, plaintext)

    recovery_image = open_signed_block(memoryview(plaintext), device, "recovery image")
    print_success(f"Inner signature verified, recovery image is {len(recovery_image):,} bytes")

    return bytes(recovery_image)

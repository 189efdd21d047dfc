"""
Legacy salted key derivation.

The firmware key is stretched exactly like `openssl enc -aes-128-cbc -md sha256`
does without -pbkdf2 (OpenSSL EVP_BytesToKey, one iteration):

    D_0 = SHA256(passphrase || salt)
    D_i = SHA256(D_{i-1} || passphrase || salt)
    key || iv = D_0 || D_1 || ...

Licensed under the MIT License
"""

import hashlib
from typing import NamedTuple, Union

from .errors import FormatError

SALT_LENGTH = 8
KEY_LENGTH = 16
IV_LENGTH = 16


class DerivedKey(NamedTuple):
    key: bytes
    iv: bytes


def derive_key_iv(passphrase: Union[str, bytes], salt: bytes,
                  key_length: int = KEY_LENGTH, iv_length: int = IV_LENGTH) -> DerivedKey:
    """
    Derive an AES key and IV from a passphrase and an 8-byte salt.

    Args:
        passphrase: Firmware key; strings are used as their UTF-8 bytes
        salt: 8-byte salt as stored after "Salted__"
        key_length: Number of key bytes to produce
        iv_length: Number of IV bytes to produce

    Returns:
        DerivedKey(key, iv)
    """
    if len(salt) != SALT_LENGTH:
        raise FormatError(f"Salt must be {SALT_LENGTH} bytes, got {len(salt)}")

    if isinstance(passphrase, str):
        passphrase = passphrase.encode('utf-8')

    material = b''
    digest = b''
    while len(material) < key_length + iv_length:
        digest = hashlib.sha256(digest + passphrase + bytes(salt)).digest()
        material += digest

    return DerivedKey(material[:key_length], material[key_length:key_length + iv_length])

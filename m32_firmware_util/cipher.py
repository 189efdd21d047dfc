"""
AES-128-CBC with PKCS#7 padding.

Licensed under the MIT License
"""

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import CryptoError, PaddingError

AES_BLOCK_SIZE = 16
AES_KEY_LENGTH = 16


def _cipher(key: bytes, iv: bytes) -> Cipher:
    if len(key) != AES_KEY_LENGTH:
        raise CryptoError(f"AES-128 key must be {AES_KEY_LENGTH} bytes, got {len(key)}")
    if len(iv) != AES_BLOCK_SIZE:
        raise CryptoError(f"AES-CBC IV must be {AES_BLOCK_SIZE} bytes, got {len(iv)}")
    return Cipher(algorithms.AES(bytes(key)), modes.CBC(bytes(iv)))


def encrypt(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    """Pad and encrypt; the result is up to one block longer than the input"""
    padder = padding.PKCS7(AES_BLOCK_SIZE * 8).padder()
    padded = padder.update(bytes(plaintext)) + padder.finalize()

    encryptor = _cipher(key, iv).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """
    Decrypt and strip the PKCS#7 padding.

    Raises:
        CryptoError: Bad key/IV size or ciphertext not a whole number of blocks
        PaddingError: Padding of the last block is invalid
    """
    if not ciphertext or len(ciphertext) % AES_BLOCK_SIZE:
        raise CryptoError(
            f"Ciphertext length {len(ciphertext)} is not a positive multiple of {AES_BLOCK_SIZE}"
        )

    decryptor = _cipher(key, iv).decryptor()
    padded = decryptor.update(bytes(ciphertext)) + decryptor.finalize()

    unpadder = padding.PKCS7(AES_BLOCK_SIZE * 8).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise PaddingError(f"Invalid PKCS#7 padding: {e}") from e

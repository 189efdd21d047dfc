"""
SHA-512 / RSA-2048 PKCS#1 v1.5 block signatures.

The vendor verifier hashes a block with SHA-512 and then verifies the RSA
signature over that 64-byte digest with SHA-512 as the signature hash, i.e.
the equivalent of

    openssl dgst -sha512 -binary -out digest.bin block.bin
    openssl dgst -sha512 -sign key.pem -out sig.bin digest.bin

Both sides here follow the same two-stage scheme.

Licensed under the MIT License
"""

import hashlib
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .errors import CryptoError

SIGNATURE_LENGTH = 256


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode('ascii') if isinstance(value, str) else bytes(value)


def sha512_digest(data: bytes) -> bytes:
    return hashlib.sha512(data).digest()


def load_private_key(pem: Union[str, bytes], passphrase: Optional[str] = None) -> rsa.RSAPrivateKey:
    """Load a (possibly encrypted) PEM RSA private key"""
    password = passphrase.encode('utf-8') if passphrase else None
    try:
        key = serialization.load_pem_private_key(_as_bytes(pem), password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CryptoError(f"Unable to load RSA private key: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise CryptoError("Private key is not an RSA key")
    return key


def load_public_key(pem: Union[str, bytes]) -> rsa.RSAPublicKey:
    """Load a PEM SubjectPublicKeyInfo RSA public key"""
    try:
        key = serialization.load_pem_public_key(_as_bytes(pem))
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CryptoError(f"Unable to load RSA public key: {e}") from e

    if not isinstance(key, rsa.RSAPublicKey):
        raise CryptoError("Public key is not an RSA key")
    return key


def sign(data: bytes, private_key_pem: Union[str, bytes], passphrase: Optional[str] = None) -> bytes:
    """
    Create the 256-byte signature of a block.

    Args:
        data: Signed block payload
        private_key_pem: PEM encoded RSA-2048 private key
        passphrase: Passphrase of an encrypted private key

    Returns:
        256-byte PKCS#1 v1.5 signature

    Raises:
        CryptoError: Key cannot be loaded, signing fails or the key is not 2048 bits
    """
    key = load_private_key(private_key_pem, passphrase)
    digest = sha512_digest(data)

    try:
        signature = key.sign(digest, padding.PKCS1v15(), hashes.SHA512())
    except (ValueError, TypeError) as e:
        raise CryptoError(f"RSA signing failed: {e}") from e

    if len(signature) != SIGNATURE_LENGTH:
        raise CryptoError(
            f"Invalid signature length. Actual: {len(signature)}, expected: {SIGNATURE_LENGTH}"
        )
    return signature


def verify(data: bytes, signature: bytes, public_key_pem: Union[str, bytes]) -> bool:
    """
    Check the signature of a block.

    A mismatching signature is not an error here, the caller decides
    whether a False result is fatal.

    Raises:
        CryptoError: Public key cannot be loaded
    """
    key = load_public_key(public_key_pem)

    if len(signature) != SIGNATURE_LENGTH:
        return False

    try:
        key.verify(bytes(signature), sha512_digest(data), padding.PKCS1v15(), hashes.SHA512())
    except InvalidSignature:
        return False
    return True

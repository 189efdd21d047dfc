import struct

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from m32_firmware_util.devices import DeviceProfile
from m32_firmware_util.partitions import PARTITION_HEADER_LENGTH


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def test_device(rsa_key):
    """Device profile backed by a throwaway unencrypted RSA-2048 key"""
    private_pem = rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )
    public_pem = rsa_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return DeviceProfile(
        name="TEST",
        description="Test device",
        partition_magic="DLK6E6010001",
        firmware_key="00112233445566778899aabbccddeeff",
        private_key_pem=private_pem,
        private_key_passphrase=None,
        public_key_pem=public_pem,
    )


@pytest.fixture(scope="session")
def other_device(test_device):
    """Same symmetric key as test_device but a different signing key"""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return DeviceProfile(
        name="OTHER",
        description="Other device",
        partition_magic=test_device.partition_magic,
        firmware_key=test_device.firmware_key,
        private_key_pem=key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(b"secret"),
        ),
        private_key_passphrase="secret",
        public_key_pem=key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ),
    )


def make_partition(magic: bytes, payload: bytes, stored_length: int = 0) -> bytes:
    """80-byte partition header stamped with magic, followed by payload"""
    header = bytearray(PARTITION_HEADER_LENGTH)
    header[:len(magic)] = magic
    struct.pack_into('<I', header, 0x2C, stored_length)
    return bytes(header) + payload


@pytest.fixture
def partition_builder():
    return make_partition

"""
AES primitives for protected books.

A book's content keys arrive base64-encoded and encrypted with a session
key derived from the device and user ids. Each decrypted content key then
unlocks one container entry, which is AES-128/ECB with PKCS7 padding.
"""

import base64
import binascii
import hashlib

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from kobo_cli.exceptions import DecryptionError, DescriptorError

KEY_SIZE = 16


def derive_session_key(device_id: str, user_id: str) -> bytes:
    """The last 16 bytes of SHA-256(device_id + user_id)."""
    digest = hashlib.sha256(f"{device_id}{user_id}".encode("utf-8")).digest()
    return digest[-KEY_SIZE:]


def _ecb_decrypt(data: bytes, key: bytes) -> bytes:
    decryptor = Cipher(algorithms.AES(key), modes.ECB()).decryptor()
    return decryptor.update(data) + decryptor.finalize()


def decrypt_content_key(encoded: str, session_key: bytes) -> bytes:
    """
    Decodes and decrypts one content key.

    Raises:
        DescriptorError: If the value is not base64 for exactly 16 bytes.
    """
    try:
        encrypted = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DescriptorError(f"Content key is not valid base64: {e}") from e
    if len(encrypted) != KEY_SIZE:
        raise DescriptorError(
            f"Content key has {len(encrypted)} bytes, expected {KEY_SIZE}"
        )
    try:
        return _ecb_decrypt(encrypted, session_key)
    except ValueError as e:
        raise DescriptorError(f"Cannot decrypt content key: {e}") from e


def decrypt_entry(data: bytes, key: bytes) -> bytes:
    """
    Decrypts one protected container entry and strips its PKCS7 padding.

    Raises:
        DecryptionError: If the ciphertext length or the padding is invalid.
    """
    try:
        padded = _ecb_decrypt(data, key)
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionError(f"Cannot decrypt entry: {e}") from e

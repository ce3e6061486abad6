"""Builders for encrypted fixtures."""

import base64
import io
import zipfile

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes


def ecb_encrypt(data: bytes, key: bytes) -> bytes:
    encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def encrypt_entry(plaintext: bytes, key: bytes) -> bytes:
    padder = padding.PKCS7(128).padder()
    return ecb_encrypt(padder.update(plaintext) + padder.finalize(), key)


def encrypt_content_key(content_key: bytes, session_key: bytes) -> str:
    return base64.b64encode(ecb_encrypt(content_key, session_key)).decode("ascii")


def build_epub(entries: list[tuple[str, bytes, int]]) -> bytes:
    """A zip archive from (name, data, compress_type) triples."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data, compress_type in entries:
            archive.writestr(zipfile.ZipInfo(name), data, compress_type=compress_type)
    return buffer.getvalue()

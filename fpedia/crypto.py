"""
Credential-at-rest protection.

Stored format is ``<iv hex>:<ciphertext hex>`` (AES-256-CBC, PKCS7). Values
without a valid 32-character key, or without the envelope, pass through
untouched so rows imported before a key was configured stay readable.
"""
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

IV_LENGTH = 16


def _usable(key: str) -> bool:
    return bool(key) and len(key.encode()) == 32


def _is_hex(s: str, length: int | None = None) -> bool:
    if not s or len(s) % 2:
        return False
    if length is not None and len(s) != length:
        return False
    try:
        bytes.fromhex(s)
    except ValueError:
        return False
    return True


def encrypt(text: str, key: str) -> str:
    if not _usable(key):
        logger.warning(
            "ENCRYPTION_KEY is not set or invalid (must be 32 chars). "
            "Storing plain text."
        )
        return text
    iv = os.urandom(IV_LENGTH)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    data = padder.update(text.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key.encode()), modes.CBC(iv)).encryptor()
    ct = encryptor.update(data) + encryptor.finalize()
    return iv.hex() + ":" + ct.hex()


def decrypt(text: str, key: str) -> str:
    if not _usable(key):
        return text
    iv_hex, sep, ct_hex = text.partition(":")
    if not sep or not _is_hex(iv_hex, IV_LENGTH * 2) or not _is_hex(ct_hex):
        return text
    iv = bytes.fromhex(iv_hex)
    ct = bytes.fromhex(ct_hex)
    decryptor = Cipher(algorithms.AES(key.encode()), modes.CBC(iv)).decryptor()
    data = decryptor.update(ct) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return (unpadder.update(data) + unpadder.finalize()).decode("utf-8")

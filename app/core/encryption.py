# app/core/encryption.py
"""
AES-256-CBC encryption for store access tokens.

Stored format is "<iv hex>:<ciphertext hex>". Values that do not look like that
are legacy plaintext tokens and are returned unchanged by decrypt_token.
"""

import logging
import os
import re
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from app.core.config import get_settings
from app.core.exceptions import TokenDecryptionError, ValidationError

logger = logging.getLogger(__name__)

IV_LENGTH = 16
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def _key_bytes(key: Optional[str] = None) -> bytes:
    key = key if key is not None else get_settings().ENCRYPTION_KEY
    if not key:
        raise ValidationError("ENCRYPTION_KEY is not configured")
    if len(key) == 64 and _HEX_RE.match(key):
        return bytes.fromhex(key)
    return key.ljust(32, "0")[:32].encode("utf-8")


def is_probably_encrypted(value) -> bool:
    if not isinstance(value, str) or ":" not in value:
        return False
    iv_hex = value.split(":", 1)[0]
    return len(iv_hex) == IV_LENGTH * 2 and bool(_HEX_RE.match(iv_hex))


def encrypt_token(plaintext: Optional[str], key: Optional[str] = None) -> Optional[str]:
    if not plaintext:
        return None

    iv = os.urandom(IV_LENGTH)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(_key_bytes(key)), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt_token(value: Optional[str], key: Optional[str] = None) -> Optional[str]:
    """
    Decrypt a stored token.

    Raises:
        TokenDecryptionError: the value looks encrypted but cannot be decrypted,
            usually because ENCRYPTION_KEY changed since it was stored.
    """
    if not value:
        return None
    if not is_probably_encrypted(value):
        return value

    iv_hex, cipher_hex = value.split(":", 1)
    try:
        iv = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(cipher_hex)
        decryptor = Cipher(algorithms.AES(_key_bytes(key)), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        logger.error(f"Decryption error: {e}. This usually means the encryption key has changed.")
        raise TokenDecryptionError() from e

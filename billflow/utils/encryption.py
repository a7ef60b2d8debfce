"""
Symmetric encryption for stored card fields.

AES-256-CBC with PKCS7 padding. The 32-byte key is the SHA-256 digest of the
configured secret, and every value gets a fresh random 16-byte IV. Stored
format is ``hex(iv):hex(ciphertext)``.
"""

import os

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

IV_LENGTH = 16


class DecryptionError(ValueError):
    pass


def derive_key(secret: str) -> bytes:
    if not secret:
        raise ValueError("Encryption secret is not configured")
    digest = hashes.Hash(hashes.SHA256())
    digest.update(secret.encode("utf-8"))
    return digest.finalize()


def encrypt(text: str, secret: str) -> str:
    iv = os.urandom(IV_LENGTH)
    encryptor = Cipher(algorithms.AES(derive_key(secret)), modes.CBC(iv)).encryptor()

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(text.encode("utf-8")) + padder.finalize()

    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt(value: str, secret: str) -> str:
    try:
        iv_hex, cipher_hex = value.split(":", 1)
        iv = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(cipher_hex)
    except (AttributeError, ValueError):
        raise DecryptionError("Malformed encrypted value")

    if len(iv) != IV_LENGTH:
        raise DecryptionError("Malformed encrypted value")

    decryptor = Cipher(algorithms.AES(derive_key(secret)), modes.CBC(iv)).decryptor()
    try:
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except ValueError:
        # wrong key or tampered ciphertext; never echo the value back
        raise DecryptionError("Unable to decrypt value")


def mask_card_number(card_number: str) -> str:
    """``4242424242424242`` -> ``4242-****-****-****``."""
    digits = (card_number or "").replace(" ", "").replace("-", "")
    return f"{digits[:4]}-****-****-****"


def mask_cvv(_cvv: str) -> str:
    return "***"


def mask_expiry(_expiry: str) -> str:
    return "**/**"

import base64
import binascii
import os

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms

try:
    from cryptography.hazmat.decrepit.ciphers.modes import CFB
except ImportError:  # cryptography < 46
    from cryptography.hazmat.primitives.ciphers.modes import CFB

from app.core.exceptions import InvalidCiphertext

KEY_SIZE = 32
BLOCK_SIZE = 16


def fix_encryption_key(key: str) -> bytes:
    """Right-pad with "0" or truncate so the key is exactly 32 bytes (AES-256)."""
    raw = key.encode("utf-8")
    if len(raw) < KEY_SIZE:
        return raw + b"0" * (KEY_SIZE - len(raw))
    return raw[:KEY_SIZE]


class SecretCipher:
    """AES-CFB encryption of task security codes, stored as base64(IV || ciphertext)."""

    def __init__(self, key: str):
        self._key = fix_encryption_key(key)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(BLOCK_SIZE)
        encryptor = Cipher(algorithms.AES(self._key), CFB(iv)).encryptor()
        ciphertext = encryptor.update(plaintext.encode("utf-8")) + encryptor.finalize()
        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, data: str) -> str:
        try:
            payload = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidCiphertext(f"ciphertext is not valid base64: {e}") from e

        if len(payload) < BLOCK_SIZE:
            raise InvalidCiphertext("ciphertext too short")

        iv, ciphertext = payload[:BLOCK_SIZE], payload[BLOCK_SIZE:]
        decryptor = Cipher(algorithms.AES(self._key), CFB(iv)).decryptor()
        plaintext = decryptor.update(ciphertext) + decryptor.finalize()
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidCiphertext("decrypted payload is not valid UTF-8") from e

"""AES-256-CBC cipher adapter.

Implements the core CipherPort with the scheme the deployed clients use:
scrypt(secret, "salt") as the key, a zero IV and PKCS#7 padding. The fixed
salt and IV make ciphertexts deterministic; that is a property of the
protocol and has to be kept for compatibility.
"""

from __future__ import annotations

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from core.errors import DecryptionFailed

BLOCK_SIZE = 16
KEY_LEN = 32
ZERO_IV = bytes(BLOCK_SIZE)
SCRYPT_SALT = b"salt"
# Node's crypto.scryptSync defaults.
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


class AesCbcCipher:
    """Deterministic AES-256-CBC with a scrypt-derived key."""

    def __init__(self, salt: bytes = SCRYPT_SALT) -> None:
        self._salt = salt
        # Derived keys, cached per secret.
        self._keys: dict[str, bytes] = {}

    def _key(self, secret: str) -> bytes:
        key = self._keys.get(secret)
        if key is None:
            kdf = Scrypt(salt=self._salt, length=KEY_LEN, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
            key = kdf.derive(secret.encode("utf-8"))
            self._keys[secret] = key
        return key

    def encrypt(self, plaintext: str, secret: str) -> bytes:
        padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key(secret)), modes.CBC(ZERO_IV)).encryptor()
        return encryptor.update(padded) + encryptor.finalize()

    def decrypt(self, ciphertext: bytes, secret: str) -> str:
        if not ciphertext or len(ciphertext) % BLOCK_SIZE:
            raise DecryptionFailed(
                f"Ciphertext length {len(ciphertext)} is not a positive multiple of {BLOCK_SIZE}"
            )
        decryptor = Cipher(algorithms.AES(self._key(secret)), modes.CBC(ZERO_IV)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
        try:
            raw = unpadder.update(padded) + unpadder.finalize()
            return raw.decode("utf-8")
        except ValueError as exc:
            # Bad padding and invalid UTF-8 (a ValueError subclass) both mean wrong key or corrupt data.
            raise DecryptionFailed("Decryption failed. Incorrect key or corrupt data.") from exc

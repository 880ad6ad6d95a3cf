"""Passphrase-keyed AES-256-GCM encryption for imported private keys."""

import base64
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import EncryptionError

SALT_BYTES = 16
NONCE_BYTES = 12
KDF_ITERATIONS = 200_000


class SecretCipher:
    """
    Encrypts a secret string with a key derived from a process-wide passphrase.

    The token layout is ``base64(salt || nonce || ciphertext)``; a fresh salt
    and nonce are drawn for every call.
    """

    def __init__(self, passphrase: str, *, iterations: int = KDF_ITERATIONS) -> None:
        if not passphrase:
            raise EncryptionError("encryption passphrase is empty")
        self._passphrase = passphrase.encode("utf-8")
        self.iterations = iterations

    def _derive(self, salt: bytes) -> AESGCM:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.iterations,
        )
        return AESGCM(kdf.derive(self._passphrase))

    def encrypt(self, plaintext: str) -> str:
        try:
            salt = secrets.token_bytes(SALT_BYTES)
            nonce = secrets.token_bytes(NONCE_BYTES)
            ciphertext = self._derive(salt).encrypt(nonce, plaintext.encode("utf-8"), None)
        except Exception as exc:
            raise EncryptionError(f"encryption failed: {exc}") from exc
        return base64.b64encode(salt + nonce + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            blob = base64.b64decode(token.encode("ascii"), validate=True)
        except ValueError as exc:
            raise EncryptionError("ciphertext is not valid base64") from exc
        if len(blob) <= SALT_BYTES + NONCE_BYTES:
            raise EncryptionError("ciphertext is truncated")
        salt = blob[:SALT_BYTES]
        nonce = blob[SALT_BYTES : SALT_BYTES + NONCE_BYTES]
        try:
            plaintext = self._derive(salt).decrypt(nonce, blob[SALT_BYTES + NONCE_BYTES :], None)
        except InvalidTag as exc:
            raise EncryptionError("wrong passphrase or corrupted ciphertext") from exc
        return plaintext.decode("utf-8")

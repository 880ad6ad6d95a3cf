import pytest

from core.crypto import SecretCipher
from core.errors import EncryptionError

from .conftest import DEV_PRIVATE_KEY


def test_encrypted_secret_does_not_contain_plaintext(cipher):
    token = cipher.encrypt(DEV_PRIVATE_KEY)

    assert DEV_PRIVATE_KEY not in token
    assert DEV_PRIVATE_KEY[2:] not in token
    assert cipher.decrypt(token) == DEV_PRIVATE_KEY


def test_each_encryption_uses_fresh_salt_and_nonce(cipher):
    assert cipher.encrypt("secret") != cipher.encrypt("secret")


def test_wrong_passphrase_is_rejected(cipher):
    token = cipher.encrypt("secret")
    other = SecretCipher("another-passphrase", iterations=1_000)

    with pytest.raises(EncryptionError):
        other.decrypt(token)


def test_empty_passphrase_is_an_encryption_error():
    with pytest.raises(EncryptionError):
        SecretCipher("")


def test_truncated_ciphertext(cipher):
    with pytest.raises(EncryptionError):
        cipher.decrypt("AAAA")

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from podio_portal.services.token_cipher import TokenCipherService


def test_token_cipher_roundtrip() -> None:
    cipher = TokenCipherService(secret="super-secret-key")
    plaintext = "sensitive-token"

    encrypted = cipher.encrypt(plaintext)
    assert encrypted != plaintext

    decrypted = cipher.decrypt(encrypted)
    assert decrypted == plaintext


def test_token_cipher_rejects_bad_ciphertext() -> None:
    cipher = TokenCipherService(secret="another-secret")

    with pytest.raises(ValueError):
        cipher.decrypt("not-valid")


def test_token_cipher_reads_rows_written_with_a_retired_secret() -> None:
    old = TokenCipherService(secret="old-secret")
    encrypted = old.encrypt("podio-access-token")

    rotated = TokenCipherService(secret="new-secret", previous_secrets=["old-secret"])
    assert rotated.decrypt(encrypted) == "podio-access-token"

    without_old = TokenCipherService(secret="new-secret")
    with pytest.raises(ValueError):
        without_old.decrypt(encrypted)


def test_token_cipher_requires_a_secret() -> None:
    with pytest.raises(ValueError):
        TokenCipherService(secret="")

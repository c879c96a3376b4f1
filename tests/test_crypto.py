from __future__ import annotations

from pathlib import Path

import pytest
from cryptography.fernet import Fernet

from dosemate.crypto import SECRET_KEY_ENV, ValueCipher, load_or_create_key


def test_key_file_is_created_once(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv(SECRET_KEY_ENV, raising=False)
    key_path = tmp_path / "keys" / "app.key"
    first = load_or_create_key(key_path)
    assert key_path.exists()
    assert load_or_create_key(key_path) == first
    Fernet(first)


def test_env_key_wins(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    key = Fernet.generate_key()
    monkeypatch.setenv(SECRET_KEY_ENV, key.decode("utf-8"))
    key_path = tmp_path / "app.key"
    assert load_or_create_key(key_path) == key
    assert not key_path.exists()


def test_cipher_round_trip() -> None:
    cipher = ValueCipher(Fernet.generate_key())
    token = cipher.encrypt("glycémie 120")
    assert "120" not in token
    assert cipher.decrypt(token) == "glycémie 120"


def test_plain_values_are_returned_as_is() -> None:
    cipher = ValueCipher(Fernet.generate_key())
    assert cipher.decrypt("12.5") == "12.5"


def test_token_from_other_key_is_not_decrypted() -> None:
    token = ValueCipher(Fernet.generate_key()).encrypt("secret")
    assert ValueCipher(Fernet.generate_key()).decrypt(token) == token


def test_malformed_key_raises() -> None:
    with pytest.raises(ValueError):
        ValueCipher(b"short")

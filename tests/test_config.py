"""
Tests for environment-based settings.
"""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from keystore import ConfigError, RootKeySource, Settings

ROOT_KEY_B64 = base64.b64encode(b"\x05" * 32).decode("ascii")


def _env(**overrides):
    environ = {
        "KEYSTORE_ROOT_KEY": ROOT_KEY_B64,
        "KEYSTORE_ACCESS_POLICY": "/etc/keystore/policy.json",
    }
    environ.update(overrides)
    return {k: v for k, v in environ.items() if v is not None}


def test_defaults():
    settings = Settings.from_env(_env())

    assert settings.root_key == b"\x05" * 32
    assert settings.access_policy_path == Path("/etc/keystore/policy.json")
    assert settings.database_url is None
    assert settings.host == "127.0.0.1"
    assert settings.port == 8080
    assert settings.log_level == "INFO"


def test_overrides():
    settings = Settings.from_env(
        _env(
            DATABASE_URL="postgresql://localhost/keystore",
            KEYSTORE_HOST="0.0.0.0",
            KEYSTORE_PORT="9000",
            KEYSTORE_LOG_LEVEL="debug",
        )
    )

    assert settings.database_url == "postgresql://localhost/keystore"
    assert settings.host == "0.0.0.0"
    assert settings.port == 9000
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "overrides",
    [
        {"KEYSTORE_ROOT_KEY": None},
        {"KEYSTORE_ROOT_KEY": "not base64!"},
        {"KEYSTORE_ACCESS_POLICY": None},
        {"KEYSTORE_PORT": "http"},
        {"KEYSTORE_PORT": "70000"},
        {"KEYSTORE_LOG_LEVEL": "LOUD"},
    ],
)
def test_invalid_settings(overrides):
    with pytest.raises(ConfigError):
        Settings.from_env(_env(**overrides))


def test_repr_hides_secrets():
    settings = Settings.from_env(_env(DATABASE_URL="postgresql://user:pw@db/keystore"))

    text = repr(settings)
    assert "REDACTED" in text
    assert "pw@db" not in text


async def test_root_key_source_from_settings():
    source = RootKeySource.from_settings(Settings.from_env(_env()))

    key = await source.get_root_key()
    assert key.as_bytes() == b"\x05" * 32


def test_root_key_of_wrong_length_is_rejected():
    settings = Settings.from_env(_env(KEYSTORE_ROOT_KEY=base64.b64encode(b"x" * 8).decode()))

    with pytest.raises(ConfigError):
        RootKeySource.from_settings(settings)

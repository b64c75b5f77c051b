"""
Unit tests for utils.keys module.

Tests:
- load_keys_from_env() with hex, nsec, missing and malformed values
- KeysConfig auto-population from the environment
"""

import pytest
from pydantic import ValidationError

from nostrpool.exceptions import ConfigurationError, InvalidSecretKeyError
from nostrpool.utils.keys import ENV_PRIVATE_KEY, KeysConfig, load_keys_from_env


VALID_HEX_KEY = "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"  # pragma: allowlist secret
VALID_NSEC = "nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5"  # pragma: allowlist secret
EXPECTED_PUBKEY = "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"


class TestLoadKeysFromEnv:
    def test_hex(self, monkeypatch):
        monkeypatch.setenv("TEST_KEY", VALID_HEX_KEY)
        assert load_keys_from_env("TEST_KEY").public_key() == EXPECTED_PUBKEY

    def test_nsec(self, monkeypatch):
        monkeypatch.setenv("TEST_KEY", VALID_NSEC)
        assert load_keys_from_env("TEST_KEY").secret_hex() == VALID_HEX_KEY

    def test_missing(self, monkeypatch):
        monkeypatch.delenv("TEST_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="TEST_KEY"):
            load_keys_from_env("TEST_KEY")

    def test_empty(self, monkeypatch):
        monkeypatch.setenv("TEST_KEY", "")
        with pytest.raises(ConfigurationError):
            load_keys_from_env("TEST_KEY")

    def test_malformed(self, monkeypatch):
        monkeypatch.setenv("TEST_KEY", "not-a-key")
        with pytest.raises(InvalidSecretKeyError):
            load_keys_from_env("TEST_KEY")


class TestKeysConfig:
    def test_default_env_var(self, monkeypatch):
        monkeypatch.setenv(ENV_PRIVATE_KEY, VALID_HEX_KEY)
        config = KeysConfig()
        assert config.keys_env == "PRIVATE_KEY"
        assert config.keys.public_key() == EXPECTED_PUBKEY

    def test_custom_env_var(self, monkeypatch):
        monkeypatch.setenv("POOL_KEY", VALID_NSEC)
        config = KeysConfig(keys_env="POOL_KEY")
        assert config.keys.public_key() == EXPECTED_PUBKEY

    def test_explicit_keys_skip_env(self, monkeypatch, keys):
        monkeypatch.delenv(ENV_PRIVATE_KEY, raising=False)
        assert KeysConfig(keys=keys).keys is keys

    def test_missing_env_var(self, monkeypatch):
        monkeypatch.delenv("POOL_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            KeysConfig(keys_env="POOL_KEY")

    def test_malformed_env_var(self, monkeypatch):
        monkeypatch.setenv("POOL_KEY", "zz")
        with pytest.raises((ValidationError, InvalidSecretKeyError)):
            KeysConfig(keys_env="POOL_KEY")

    def test_secret_not_dumped(self, monkeypatch):
        monkeypatch.setenv(ENV_PRIVATE_KEY, VALID_HEX_KEY)
        config = KeysConfig()
        assert "keys" not in config.model_dump()
        assert VALID_HEX_KEY not in repr(config)

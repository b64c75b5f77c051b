"""Signing key loading from the environment.

Private keys must never live in configuration files or logs. The pool's
optional signing key (used to answer NIP-42 AUTH challenges) is loaded
from an environment variable named in the config, ``PRIVATE_KEY`` by
default. Both ``nsec1...`` and 64-char hex are accepted.

Examples:
    ```python
    import os

    os.environ["PRIVATE_KEY"] = "nsec1..."  # pragma: allowlist secret
    keys = load_keys_from_env("PRIVATE_KEY")
    print(keys.public_key_bech32())
    ```
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, model_validator

from nostrpool.exceptions import ConfigurationError
from nostrpool.models.keys import Keys


ENV_PRIVATE_KEY = "PRIVATE_KEY"  # pragma: allowlist secret


def load_keys_from_env(env_var: str) -> Keys:
    """Load a keypair from an environment variable.

    Raises:
        ConfigurationError: If the variable is unset or empty.
        InvalidSecretKeyError: If the value is not a valid secret key.
    """
    value = os.getenv(env_var)

    if not value:
        raise ConfigurationError(
            f"{env_var} environment variable is required. Generate one with: openssl rand -hex 32"
        )

    return Keys.parse(value)


class KeysConfig(BaseModel):
    """Pydantic model that loads [Keys][nostrpool.models.keys.Keys] from the environment.

    When ``keys`` is not given explicitly, it is populated during validation
    from the variable named by ``keys_env``. Construction fails fast if the
    variable is missing or malformed.

    Warning:
        ``keys`` holds a live secret. Do not dump this model to logs or JSON.
    """

    model_config = {"arbitrary_types_allowed": True}

    keys_env: str = Field(
        default=ENV_PRIVATE_KEY,
        min_length=1,
        description="Environment variable name for private key",
    )
    keys: Keys = Field(description="Keys loaded from keys_env", exclude=True, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _load_keys_from_env(cls, data: Any) -> Any:
        """Auto-populate the ``keys`` field from the environment variable."""
        if isinstance(data, dict) and "keys" not in data:
            env_var = data.get("keys_env", ENV_PRIVATE_KEY)
            data = {**data, "keys": load_keys_from_env(env_var)}
        return data

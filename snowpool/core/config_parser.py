"""
Connection parameter parsing.

Turns "key=value;key=value" connection strings or plain parameter mappings
into a validated ConnectionConfig. Keys are case-insensitive and values of
the form ${NAME} are expanded from the environment when NAME is set.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from snowpool.errors import ConfigurationError
from snowpool.models.connection import AuthenticationType, ConnectionConfig

logger = logging.getLogger(__name__)

_AUTHENTICATORS: dict[str, AuthenticationType] = {
    "default": AuthenticationType.PASSWORD,
    "snowflake": AuthenticationType.PASSWORD,
    "snowflake_jwt": AuthenticationType.KEY_PAIR,
    "jwt": AuthenticationType.KEY_PAIR,
    "key_pair": AuthenticationType.KEY_PAIR,
    "oauth": AuthenticationType.OAUTH,
    "sso": AuthenticationType.SSO,
    "externalbrowser": AuthenticationType.EXTERNAL_BROWSER,
}

# parameter key -> ConnectionConfig field
_CONNECTION_KEYS = {
    "account": "account",
    "user": "user",
    "database": "database_name",
    "schema": "schema_name",
    "warehouse": "warehouse",
    "role": "role",
    "query_timeout": "query_timeout",
}

# parameter key -> AuthenticationConfig field
_AUTH_KEYS = {
    "password": "password",
    "private_key_path": "private_key_path",
    "private_key_passphrase": "private_key_passphrase",
    "oauth_token": "oauth_token",
    "oauth_refresh_token": "oauth_refresh_token",
    "oauth_client_id": "oauth_client_id",
    "oauth_client_secret": "oauth_client_secret",
    "oauth_token_endpoint": "oauth_token_endpoint",
}

# parameter key -> ConnectionPoolConfig field
_POOL_KEYS = {
    "max_pool_size": "max_pool_size",
    "min_pool_size": "min_pool_size",
    "pool_timeout": "connection_timeout",
    "connection_timeout": "connection_timeout",
    "pool_idle_timeout": "idle_timeout",
    "pool_max_lifetime": "max_connection_lifetime",
    "pool_cleanup_interval": "cleanup_interval",
    "pool_overflow_policy": "overflow_policy",
}

_SSO_PREFIX = "sso_"

# Reverse lookup for naming offending keys in validation errors.
_FIELD_TO_KEY = {
    **{v: k for k, v in _CONNECTION_KEYS.items()},
    **{v: k for k, v in _AUTH_KEYS.items()},
    **{v: k for k, v in _POOL_KEYS.items() if k != "connection_timeout"},
    "type": "authenticator",
    "sso_properties": "sso_*",
}


def expand_env(value: str) -> str:
    """Replace a whole-value ${NAME} reference with the environment value, if set."""
    if value.startswith("${") and value.endswith("}"):
        env_value = os.environ.get(value[2:-1])
        if env_value is not None:
            return env_value
    return value


def split_connection_string(connection_string: str) -> dict[str, str]:
    """
    Split "k=v;k=v" into a lower-cased key dict.

    Raises:
        ConfigurationError: On an empty string or a pair without key or value
    """
    if connection_string is None or not connection_string.strip():
        raise ConfigurationError("Connection string cannot be empty.", keys=["connection_string"])

    params: dict[str, str] = {}
    for pair in connection_string.split(";"):
        if not pair.strip():
            continue
        key, sep, value = pair.partition("=")
        key = key.strip()
        value = value.strip()
        if not sep or not key or not value:
            raise ConfigurationError(
                f"Invalid connection string parameter: '{key or pair.strip()}'",
                keys=[key] if key else [],
            )
        params[key.lower()] = expand_env(value)
    return params


def parse_connection_string(connection_string: str) -> ConnectionConfig:
    """Parse a "key=value;..." connection string into a ConnectionConfig."""
    return parse_parameters(split_connection_string(connection_string))


def parse_parameters(parameters: Mapping[str, Any]) -> ConnectionConfig:
    """
    Build a ConnectionConfig from a parameter mapping.

    Raises:
        ConfigurationError: Missing account/user, unknown authenticator or
            values that fail model validation
    """
    params: dict[str, str] = {}
    for key, value in parameters.items():
        if value is None:
            continue
        text = expand_env(str(value).strip())
        if text:
            params[str(key).strip().lower()] = text

    missing = [k for k in ("account", "user") if not params.get(k)]
    if missing:
        raise ConfigurationError(
            "Required parameter(s) missing or empty: " + ", ".join(f"'{k}'" for k in missing),
            keys=missing,
        )

    connection: dict[str, Any] = {}
    auth: dict[str, Any] = {"sso_properties": {}}
    pool: dict[str, Any] = {}

    for key, value in params.items():
        if key in _CONNECTION_KEYS:
            connection[_CONNECTION_KEYS[key]] = value
        elif key in _AUTH_KEYS:
            auth[_AUTH_KEYS[key]] = value
        elif key in _POOL_KEYS:
            pool[_POOL_KEYS[key]] = value.lower() if key == "pool_overflow_policy" else value
        elif key == "authenticator":
            auth["type"] = _authentication_type(value)
        elif key.startswith(_SSO_PREFIX) and len(key) > len(_SSO_PREFIX):
            auth["sso_properties"][key[len(_SSO_PREFIX):]] = value
        else:
            logger.debug("Ignoring unknown connection parameter '%s'", key)

    connection["authentication"] = auth
    connection["pool"] = pool

    try:
        return ConnectionConfig.model_validate(connection)
    except ValidationError as e:
        keys = [_offending_key(err["loc"]) for err in e.errors()]
        messages = [f"{k}: {err['msg']}" for k, err in zip(keys, e.errors())]
        raise ConfigurationError(
            "Configuration validation failed: " + "; ".join(messages), keys=keys
        ) from e


def merge_parameters(
    database_parameters: Mapping[str, str],
    connection_parameters: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """
    Overlay connection-level parameters on database-level defaults.

    Keys are compared case-insensitively and returned lower-cased.
    """
    merged = {str(k).lower(): v for k, v in database_parameters.items()}
    for key, value in (connection_parameters or {}).items():
        merged[str(key).lower()] = value
    return merged


def _authentication_type(value: str) -> AuthenticationType:
    try:
        return _AUTHENTICATORS[value.strip().lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported authenticator: {value}", keys=["authenticator"]
        ) from None


def _offending_key(loc: tuple) -> str:
    for part in reversed(loc):
        if isinstance(part, str) and part in _FIELD_TO_KEY:
            return _FIELD_TO_KEY[part]
    return ".".join(str(p) for p in loc)

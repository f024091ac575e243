"""
Read-only secrets lookup consumed by in-process provider components.

The operator never stores secrets; it only hands components a lookup
they can query by name.  Backends are pluggable through the
``SecretsLookup`` protocol.

Guardrails:
    - Secret values should NEVER be logged (use ``SecretValue``)
    - Lookups return None for unknown names; components decide
      whether that is fatal
"""

from __future__ import annotations

import os
from typing import Protocol, runtime_checkable


class SecretValue:
    """Wrapper for secret values that prevents accidental logging.

    Example:
        >>> secret = SecretValue("xoxb-123")
        >>> str(secret)
        '[REDACTED]'
        >>> secret.get_secret()
        'xoxb-123'
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def get_secret(self) -> str:
        """Get the actual secret value."""
        return self._value

    def __str__(self) -> str:
        return "[REDACTED]"

    def __repr__(self) -> str:
        return "SecretValue('[REDACTED]')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretValue):
            return self._value == other._value
        return False

    def __hash__(self) -> int:
        return hash(self._value)


@runtime_checkable
class SecretsLookup(Protocol):
    """Read-only view onto a secrets backend."""

    def get(self, name: str) -> SecretValue | None: ...


class EnvSecretsLookup:
    """Resolve secrets from environment variables.

    Tries ``OPERATOR_SECRET_{NAME}`` first, then ``{NAME}``.
    """

    def __init__(self, prefix: str = "OPERATOR_SECRET_"):
        self.prefix = prefix

    def get(self, name: str) -> SecretValue | None:
        key = name.upper().replace("-", "_").replace(".", "_")
        for candidate in (f"{self.prefix}{key}", key):
            value = os.environ.get(candidate)
            if value is not None:
                return SecretValue(value)
        return None


class DictSecretsLookup:
    """In-memory lookup for tests. NOT for production use."""

    def __init__(self, secrets: dict[str, str] | None = None):
        self._secrets = dict(secrets) if secrets else {}

    def get(self, name: str) -> SecretValue | None:
        value = self._secrets.get(name)
        return SecretValue(value) if value is not None else None


__all__ = ["SecretValue", "SecretsLookup", "EnvSecretsLookup", "DictSecretsLookup"]

"""
Structured error types for the operator control plane.

Every error raised by operator_plane carries a category and a retryable
flag so that callers which own the retry decision (the egress pipeline,
the subscription scheduler, the plan executor) can make it without
string matching.

Provider invocation failures are NOT raised: the invoker folds them into
an ``OperationOutcome``.  The classes here cover the failures that do
propagate: local validation, configuration, persistence and discovery.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       OperatorError                           │
        │  (category, retryable, retry_after, context, cause)           │
        ├──────────────────────────────────────────────────────────────┤
        │  ValidationError        ConfigError          StorageError     │
        │  (VALIDATION)           (CONFIG)             (STORAGE)        │
        │       │                      │                    │           │
        │  SubscriptionValidation  MissingConfig       StateStoreError  │
        │                          RunnerConfig        DeadLetterWrite  │
        │                                                               │
        │  DiscoveryError         ProviderError        PlanExecution    │
        │  (DISCOVERY)            (PROVIDER)           (PLAN)           │
        │       │                      │                                │
        │  PackManifestError     ProviderNotFound                       │
        │                        SubscriptionOperation                  │
        │                        TimerTickError                         │
        └──────────────────────────────────────────────────────────────┘

Usage:
    from operator_plane.core.errors import SubscriptionValidationError

    if not request.resource:
        raise SubscriptionValidationError(
            "resource is required", field="resource"
        )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    VALIDATION = "VALIDATION"     # Missing or malformed request fields
    CONFIG = "CONFIG"             # Settings, runner binary
    STORAGE = "STORAGE"           # State files, DLQ file
    DISCOVERY = "DISCOVERY"       # Pack archives, manifests
    PROVIDER = "PROVIDER"         # Provider operation returned failure
    PLAN = "PLAN"                 # Domain-wide plan execution
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields that are set end up in ``to_dict()``; anything that
    has no dedicated slot goes into ``metadata``.
    """

    provider: str | None = None
    domain: str | None = None
    op: str | None = None
    tenant: str | None = None
    team: str | None = None
    binding_id: str | None = None
    path: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["provider", "domain", "op", "tenant", "team", "binding_id", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class OperatorError(Exception):
    """
    Base exception for all operator_plane errors.

    Subclasses set ``default_category`` and ``default_retryable``; both
    can be overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> OperatorError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StateStoreError("write failed").with_context(
                provider="graph", binding_id="b-1"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(OperatorError):
    """
    Local request validation error.

    Raised before any provider call; never retryable.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class SubscriptionValidationError(ValidationError):
    """A subscription request is missing a required field."""


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(OperatorError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class RunnerConfigError(ConfigError):
    """The external runner binary is unusable."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"runner binary {path} {reason}")


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(OperatorError):
    """Filesystem persistence failed. Propagated, never swallowed."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class StateStoreError(StorageError):
    """Reading or writing a subscription state file failed."""


class DeadLetterWriteError(StorageError):
    """Appending to the dead-letter log failed."""


# =============================================================================
# DISCOVERY ERRORS
# =============================================================================


class DiscoveryError(OperatorError):
    """Pack discovery failed."""

    default_category = ErrorCategory.DISCOVERY


class PackManifestError(DiscoveryError):
    """A pack archive has no readable manifest."""


# =============================================================================
# PROVIDER ERRORS
# =============================================================================


class ProviderError(OperatorError):
    """A provider operation reported failure."""

    default_category = ErrorCategory.PROVIDER


class ProviderNotFoundError(ProviderError):
    """No pack is catalogued for the requested (domain, provider)."""

    def __init__(self, domain: str, provider: str):
        self.domain = domain
        self.provider = provider
        super().__init__(
            f"provider {provider} not found for domain {domain}",
            context=ErrorContext(domain=domain, provider=provider),
        )


class SubscriptionOperationError(ProviderError):
    """A subscription_ensure/renew/delete call was unsuccessful."""


class TimerTickError(ProviderError):
    """A timer handler invocation was unsuccessful."""


# =============================================================================
# PLAN ERRORS
# =============================================================================


class PlanExecutionError(OperatorError):
    """One or more flows of a domain-wide plan failed."""

    default_category = ErrorCategory.PLAN

    def __init__(self, failures: list[str], **kwargs: Any):
        self.failures = failures
        super().__init__(f"{len(failures)} flow(s) failed", **kwargs)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "OperatorError",
    "ValidationError",
    "SubscriptionValidationError",
    "ConfigError",
    "MissingConfigError",
    "RunnerConfigError",
    "StorageError",
    "StateStoreError",
    "DeadLetterWriteError",
    "DiscoveryError",
    "PackManifestError",
    "ProviderError",
    "ProviderNotFoundError",
    "SubscriptionOperationError",
    "TimerTickError",
    "PlanExecutionError",
]

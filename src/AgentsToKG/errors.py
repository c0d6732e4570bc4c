"""Exception hierarchy shared across harvesting, resolution, compilation, and publishing.

The agent pipeline spans registry HTTP APIs, a relational store, and a remote
triple store. This module groups their failure modes so callers can react to
broad categories (fatal configuration or authorization problems vs. per-record
data problems) while keeping access to the specialised subclasses.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "AgentsToKGError",
    "ConfigurationError",
    "AuthorizationError",
    "StorageAuthorizationError",
    "RegistryHTTPError",
    "StorageError",
    "BatchRejectedError",
    "HarvestError",
    "CompileError",
    "PublishError",
    "raise_for_registry_status",
]


class AgentsToKGError(RuntimeError):
    """Base exception for every failure raised by the agent pipeline."""


class ConfigurationError(AgentsToKGError):
    """Raised when required configuration or credentials are missing or invalid."""


class AuthorizationError(AgentsToKGError):
    """Raised when a remote service rejects the supplied credentials."""


class StorageAuthorizationError(AuthorizationError):
    """Raised when the relational store rejects the supplied credentials."""


class RegistryHTTPError(AgentsToKGError):
    """Raised when a registry responds with a non-success status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class StorageError(AgentsToKGError):
    """Raised when the relational storage adapter cannot complete a statement."""


class BatchRejectedError(StorageError):
    """Raised when a backend refuses to execute a statement batch as a unit."""


class HarvestError(AgentsToKGError):
    """Raised when a single registry item cannot be mapped to an agent record."""


class CompileError(AgentsToKGError):
    """Raised when an agent record cannot be compiled into statements."""


class PublishError(AgentsToKGError):
    """Raised when the triple store rejects a payload or a SPARQL request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def raise_for_registry_status(response, *, registry: str) -> None:
    """Raise :class:`RegistryHTTPError` (or :class:`AuthorizationError`) for failed responses.

    Args:
        response: ``httpx.Response`` returned by the retrying client.
        registry: Registry label used in the error message.

    Raises:
        AuthorizationError: On HTTP 401/403.
        RegistryHTTPError: On any other non-2xx status.
    """

    status = response.status_code
    if 200 <= status < 300:
        return
    body = (response.text or "")[:500]
    if status in (401, 403):
        raise AuthorizationError(f"{registry} rejected credentials (HTTP {status}): {body}")
    raise RegistryHTTPError(
        f"{registry} request failed (HTTP {status}): {body}",
        status_code=status,
        retryable=status == 429 or status >= 500,
    )

# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.errors",
#   "purpose": "Define the exception hierarchy used across harvesting, resolution, compilation and publishing",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "configuration", "name": "Configuration & Authorization Errors", "anchor": "CFG", "kind": "api"},
#     {"id": "registry", "name": "Registry & Storage Errors", "anchor": "REG", "kind": "api"},
#     {"id": "publish", "name": "Compile & Publish Errors", "anchor": "PUB", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault Exceptions - Custom exceptions for the worldvault package.

Every exception carries an ``http_status`` so the HTTP layer can map
failures without inspecting message text.
"""


class WorldVaultError(Exception):
    """Base exception for all worldvault errors."""

    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(WorldVaultError):
    """Raised when configuration is invalid or incomplete."""

    http_status = 400


class ValidationError(WorldVaultError):
    """Raised when a caller supplies a bad path, key or id."""

    http_status = 400


class PathOutsideRootsError(ValidationError):
    """Raised when a path does not resolve under any managed root."""

    http_status = 403


class InvalidJobTransitionError(ValidationError):
    """Raised when a job is moved backwards or out of a terminal state."""

    pass


class MaintenanceRequiredError(WorldVaultError):
    """Raised when a mutating operation runs without maintenance mode."""

    http_status = 400


class NotFoundError(WorldVaultError):
    """Raised when an object, file or job does not exist."""

    http_status = 404


class JobConflictError(WorldVaultError):
    """Raised when an exclusive job is already running."""

    http_status = 409


class StorageError(WorldVaultError):
    """Raised when the object store fails at the transport or HTTP level."""

    http_status = 502


class RangeNotSatisfiableError(StorageError):
    """Raised when a ranged GET asks for bytes outside the object."""

    pass


class IntegrityError(WorldVaultError):
    """Raised when downloaded bytes do not match a declared checksum."""

    pass


class ArchiveError(WorldVaultError):
    """Raised when creating or extracting an archive fails."""

    pass


class ProviderError(WorldVaultError):
    """Raised when a modpack provider API or download request fails."""

    http_status = 502

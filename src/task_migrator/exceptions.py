"""
Custom exception classes for the task migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class ProviderError(MigrationError):
    """Raised when an integration provider cannot complete a request."""


class SourceUnavailable(ProviderError):
    """Raised when the source backend cannot return its task list."""


class DestinationUnavailable(ProviderError):
    """Raised when the destination backend cannot return members or vocabularies."""


class DestinationRejected(ProviderError):
    """Raised when the destination backend refuses to create a single task."""


class MissingDestinationScope(MigrationError):
    """Raised when a destination workspace id is required but empty."""


class UnsupportedBackend(MigrationError):
    """Raised when a migration names a backend no provider is registered for."""


class MigrationNotFound(MigrationError):
    """Raised when a migration id does not exist in the store."""


class MappingNotFound(MigrationError):
    """Raised when a resolution targets a value that was never discovered."""


class MappingsIncomplete(MigrationError):
    """Raised when a migration is started while mapping records are still pending."""


class MigrationAlreadyRunning(MigrationError):
    """Raised when a migration is started while an execution of it is already running."""


class InvalidMigrationState(MigrationError):
    """Raised when an operation is not allowed in the migration's current status."""

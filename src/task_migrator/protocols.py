"""Protocols defining the contracts for integration providers.

The migration architecture separates concerns into three components:

1. IntegrationProvider: Reads tasks from, and writes tasks to, one backend
   (Asana, ClickUp, ...)
2. MigrationStore: Persists migrations, mapping records and task outcomes
3. MigrationOrchestrator: Discovers mappings, gates execution and replays
   tasks from the source provider to the destination provider

This separation allows:
- Adding new backends without changing the orchestration code
- Testing the orchestrator in isolation with in-memory providers
- Clear boundaries for backend-specific logic (status vocabularies, API quirks)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import CreatedTask, Member, PriorityOptions, Task


class IntegrationProvider(Protocol):
    """Protocol for one work-tracking backend.

    A provider plays the source role (fetch_tasks) or the destination role
    (create_task, list_members, list_statuses) depending on the migration.
    Every method may block on network I/O.

    Error Contract:
        fetch_tasks raises SourceUnavailable, create_task raises
        DestinationRejected and list_members raises DestinationUnavailable.
        Implementations must not let transport exceptions escape unwrapped.

    Example implementations:
        - AsanaProvider: Asana REST API, status derived from the completion flag
        - ClickUpProvider: ClickUp REST API, list-defined statuses
    """

    name: str
    default_priorities: tuple[str, ...]
    """Static priority vocabulary offered when no dynamic lookup is available."""

    def fetch_tasks(self, container_id: str) -> list[Task]:
        """Return every task of a project or list, in backend order."""
        ...

    def create_task(self, container_id: str, workspace_id: str, task: Task) -> CreatedTask:
        """Create a task in the destination container.

        The task's status, priority and assignees are already translated into
        this backend's vocabulary.
        """
        ...

    def list_members(self, workspace_id: str) -> list[Member]:
        """Return the users of a workspace. The workspace id is never empty."""
        ...

    def list_statuses(self, container_id: str) -> list[str]:
        """Return the status names a task in this container may take."""
        ...


@runtime_checkable
class PriorityOptionsProvider(Protocol):
    """Optional capability for backends whose priority is an enum custom field.

    The orchestrator checks for this capability with isinstance(); its absence
    is not an error.
    """

    def list_priority_options(self, container_id: str) -> PriorityOptions:
        """Return the priority field id and its option ids for a container.

        Raises:
            DestinationUnavailable: If the vocabulary cannot be fetched
        """
        ...

"""Data models for migration between source and destination backends.

These models represent the normalized data exchanged between integration
providers, the persistent store and the orchestrator. Tasks are intentionally
simple and backend-agnostic; the ledger records mirror the rows kept by
MigrationStore.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class MigrationStatus(StrEnum):
    """Lifecycle states of a migration."""

    PENDING_CONFIGURATION = "pending_configuration"
    READY_TO_START = "ready_to_start"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[MigrationStatus] = frozenset(
    {MigrationStatus.COMPLETED, MigrationStatus.COMPLETED_WITH_ERRORS, MigrationStatus.FAILED}
)


class MappingKind(StrEnum):
    """Attribute classes that need translation before a task is created."""

    STATUS = "status"
    PRIORITY = "priority"
    ASSIGNEE = "assignee"


class MappingState(StrEnum):
    PENDING = "pending"
    MAPPED = "mapped"


class TaskOutcome(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class TaskAssignee:
    """A user assigned to a task. Name and email are informational only."""

    id: str
    name: str = ""
    email: str = ""


@dataclass
class Task:
    """A task as read from, or written to, a backend.

    The status and priority are plain strings in the vocabulary of the backend
    the task belongs to. On the destination side the priority may carry a
    compound "<field_id>:<option_id>" identifier (see PriorityOptions).
    """

    id: str
    name: str
    description: str = ""
    status: str = ""
    completed: bool = False
    assignees: list[TaskAssignee] = field(default_factory=list)
    due_date: dt.datetime | None = None
    priority: str = ""
    custom_fields: dict[str, Any] = field(default_factory=dict)


@dataclass
class CreatedTask:
    """Identifier returned by the destination after a task is created."""

    id: str
    name: str = ""


@dataclass
class Member:
    """A user of the destination workspace."""

    id: str
    name: str = ""
    email: str = ""


@dataclass
class PriorityOptions:
    """Priority vocabulary of a destination container backed by an enum field.

    Backends such as Asana model priority as a custom enum field. Setting it on
    a new task needs both the field id and the id of the chosen option.
    """

    field_id: str | None
    options: dict[str, str] = field(default_factory=dict)  # option name -> option id

    def compound_id(self, name: str) -> str | None:
        """Return "<field_id>:<option_id>" for an option name, or None if either half is unknown."""
        option_id = self.options.get(name)
        if not self.field_id or not option_id:
            return None
        return f"{self.field_id}:{option_id}"


@dataclass
class Migration:
    """One migration attempt between a source project and a destination list."""

    id: int
    source: str
    destination: str
    source_project_id: str
    dest_list_id: str
    dest_workspace_id: str
    status: MigrationStatus
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    created_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "destination": self.destination,
            "source_project_id": self.source_project_id,
            "dest_list_id": self.dest_list_id,
            "dest_workspace_id": self.dest_workspace_id,
            "status": str(self.status),
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class AssigneeMetadata:
    name: str = ""
    email: str = ""


@dataclass
class MappingRecord:
    """A discovered source value and, once resolved, its destination value."""

    migration_id: int
    kind: MappingKind
    source_value: str
    dest_value: str | None = None
    status: MappingState = MappingState.PENDING
    metadata: AssigneeMetadata | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


@dataclass
class Resolution:
    """An operator-supplied destination value for a discovered source value."""

    kind: MappingKind
    source_value: str
    dest_value: str


@dataclass
class TaskOutcomeRecord:
    """Append-only ledger entry for one task transfer attempt."""

    migration_id: int
    source_task_id: str
    outcome: TaskOutcome
    dest_task_id: str | None = None
    error: str | None = None
    created_at: dt.datetime | None = None


@dataclass
class MappingsState:
    """Everything an operator needs to resolve a migration's pending mappings.

    Built fresh on every request from the ledger and live provider state; never
    persisted.
    """

    migration: Migration
    mappings: dict[MappingKind, list[MappingRecord]]
    dest_members: list[Member]
    dest_statuses: list[str]
    dest_priorities: list[str]
    suggested_assignees: dict[str, str] = field(default_factory=dict)  # source id -> destination member id

    @property
    def pending_count(self) -> int:
        return sum(1 for records in self.mappings.values() for r in records if r.status is MappingState.PENDING)

    @property
    def all_mapped(self) -> bool:
        return self.pending_count == 0

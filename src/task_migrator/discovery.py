"""
Discovery of the distinct status, priority and assignee values of a source task set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import AssigneeMetadata, MappingKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import Task
    from .protocols import IntegrationProvider
    from .store import MigrationStore

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class DiscoveredValues:
    """Distinct attribute values in first-seen order."""

    statuses: list[str] = field(default_factory=list)
    priorities: list[str] = field(default_factory=list)
    assignees: dict[str, AssigneeMetadata] = field(default_factory=dict)  # source id -> first-seen name/email


def collect_values(tasks: Iterable[Task]) -> DiscoveredValues:
    """Compute the distinct non-empty statuses, priorities and assignee ids of a task set."""
    values = DiscoveredValues()
    seen_statuses: set[str] = set()
    seen_priorities: set[str] = set()

    for task in tasks:
        if task.status and task.status not in seen_statuses:
            seen_statuses.add(task.status)
            values.statuses.append(task.status)
        if task.priority and task.priority not in seen_priorities:
            seen_priorities.add(task.priority)
            values.priorities.append(task.priority)
        for assignee in task.assignees:
            if assignee.id and assignee.id not in values.assignees:
                values.assignees[assignee.id] = AssigneeMetadata(name=assignee.name, email=assignee.email)

    return values


def discover(
    store: MigrationStore,
    source: IntegrationProvider,
    migration_id: int,
    source_project_id: str,
) -> list[Task]:
    """Seed pending mapping records for every value of the source task set.

    Re-running discovery is safe: values already in the ledger, resolved or not,
    are left untouched, and values that vanished from the source are kept.

    Args:
        store: Store holding the mapping ledger
        source: Provider to read the tasks from
        migration_id: Migration that owns the records
        source_project_id: Source project or list to read

    Returns:
        The fetched tasks, so callers can avoid a second fetch

    Raises:
        SourceUnavailable: If the source provider cannot return the task list
    """
    tasks = source.fetch_tasks(source_project_id)
    values = collect_values(tasks)

    inserted = 0
    for status in values.statuses:
        inserted += store.insert_pending_mapping(migration_id, MappingKind.STATUS, status)
    for priority in values.priorities:
        inserted += store.insert_pending_mapping(migration_id, MappingKind.PRIORITY, priority)
    for assignee_id, metadata in values.assignees.items():
        inserted += store.insert_pending_mapping(migration_id, MappingKind.ASSIGNEE, assignee_id, metadata)

    logger.info(
        f"Discovered {len(values.statuses)} statuses, {len(values.priorities)} priorities and "
        f"{len(values.assignees)} assignees in {len(tasks)} tasks for migration {migration_id} "
        f"({inserted} new mapping records)"
    )
    return tasks

"""
Read-side view of a migration's mappings combined with live destination vocabularies.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import MissingDestinationScope
from .models import MappingKind, MappingState, MappingsState
from .protocols import PriorityOptionsProvider

if TYPE_CHECKING:
    from .models import MappingRecord, Member, Migration
    from .protocols import IntegrationProvider
    from .store import MigrationStore

logger: logging.Logger = logging.getLogger(__name__)


def group_by_kind(records: list[MappingRecord]) -> dict[MappingKind, list[MappingRecord]]:
    grouped: dict[MappingKind, list[MappingRecord]] = {kind: [] for kind in MappingKind}
    for record in records:
        grouped[record.kind].append(record)
    return grouped


def destination_priorities(destination: IntegrationProvider, dest_list_id: str) -> list[str]:
    """Return the priority names offered by the destination container.

    Uses the dynamic vocabulary when the destination supports it and returns
    options, and the provider's static default vocabulary otherwise.
    """
    if isinstance(destination, PriorityOptionsProvider):
        options = destination.list_priority_options(dest_list_id)
        if options.options:
            return list(options.options)
        logger.debug(f"Destination {destination.name} returned no priority options, using defaults")
    return list(destination.default_priorities)


def suggest_assignees(records: list[MappingRecord], members: list[Member]) -> dict[str, str]:
    """Suggest destination members for pending assignees whose email matches exactly (case-insensitive)."""
    by_email = {m.email.lower(): m.id for m in members if m.email}
    suggestions: dict[str, str] = {}
    for record in records:
        if record.status is not MappingState.PENDING or record.metadata is None or not record.metadata.email:
            continue
        member_id = by_email.get(record.metadata.email.lower())
        if member_id is not None:
            suggestions[record.source_value] = member_id
    return suggestions


def build_view(
    store: MigrationStore,
    destination: IntegrationProvider,
    migration: Migration,
) -> MappingsState:
    """Assemble the current mapping state of a migration.

    Raises:
        MissingDestinationScope: If the migration has no destination workspace id
        DestinationUnavailable: If a live destination lookup fails
    """
    if not migration.dest_workspace_id:
        msg = f"Migration {migration.id} has no destination workspace id; members cannot be listed"
        raise MissingDestinationScope(msg)

    mappings = group_by_kind(store.get_mappings(migration.id))
    members = destination.list_members(migration.dest_workspace_id)
    statuses = destination.list_statuses(migration.dest_list_id)
    priorities = destination_priorities(destination, migration.dest_list_id)

    return MappingsState(
        migration=migration,
        mappings=mappings,
        dest_members=members,
        dest_statuses=statuses,
        dest_priorities=priorities,
        suggested_assignees=suggest_assignees(mappings[MappingKind.ASSIGNEE], members),
    )

"""Execution engine that replays a migration's source tasks against the destination.

Execution Flow
--------------
One execution pass runs as a single background unit of work:

Step 1: Fetch the full source task list (abortive)
Step 2: Record the total task count
Step 3: Build status, priority and assignee lookups from the mapped records
Step 4: Fetch the destination priority options once, when the destination
        supports them (abortive)
Step 5: For each task, in source order:
        a. Translate status, defaulting to "to do"
        b. Translate priority, empty when unmapped
        c. Turn the priority name into the destination's "<field>:<option>" id
        d. Keep only assignees that have a resolved destination id
        e. Create the task and append its outcome; a failure here never stops
           the pass
Step 6: Finalize as completed, completed_with_errors or failed

Progress counters are persisted after every task so readers see
completed + failed grow monotonically up to total.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from .exceptions import ProviderError
from .models import MappingKind, MigrationStatus, TaskAssignee, TaskOutcome, TaskOutcomeRecord
from .protocols import PriorityOptionsProvider

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import MappingRecord, Migration, PriorityOptions, Task
    from .protocols import IntegrationProvider
    from .store import MigrationStore

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_DEST_STATUS: Final[str] = "to do"


@dataclass
class MappingLookups:
    """Source value -> destination value tables, one per mapping kind."""

    statuses: dict[str, str] = field(default_factory=dict)
    priorities: dict[str, str] = field(default_factory=dict)
    assignees: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_records(cls, records: Iterable[MappingRecord]) -> MappingLookups:
        """Build lookups from ledger records. Records without a destination value are skipped."""
        lookups = cls()
        tables = {
            MappingKind.STATUS: lookups.statuses,
            MappingKind.PRIORITY: lookups.priorities,
            MappingKind.ASSIGNEE: lookups.assignees,
        }
        for record in records:
            if record.dest_value is not None:
                tables[record.kind][record.source_value] = record.dest_value
        return lookups


def translate_task(
    task: Task,
    lookups: MappingLookups,
    priority_options: PriorityOptions | None = None,
) -> Task:
    """Return a copy of a source task expressed in the destination's vocabulary.

    Assignees without a resolved destination id are dropped without error.
    Whether that should instead block the migration is an open question; the
    start gate normally guarantees every discovered assignee is resolved, so
    only assignees added to the source after the last sync end up here.
    """
    status = lookups.statuses.get(task.status, DEFAULT_DEST_STATUS)

    priority = lookups.priorities.get(task.priority, "") if task.priority else ""
    if priority and priority_options is not None:
        compound = priority_options.compound_id(priority)
        if compound is None:
            logger.debug(f"Task {task.id}: priority {priority!r} has no destination option, dropping it")
            priority = ""
        else:
            priority = compound

    assignees: list[TaskAssignee] = []
    for assignee in task.assignees:
        dest_id = lookups.assignees.get(assignee.id)
        if dest_id is None:
            logger.debug(f"Task {task.id}: assignee {assignee.id} ({assignee.email}) has no mapping, omitting")
            continue
        assignees.append(TaskAssignee(id=dest_id))

    return dataclasses.replace(task, status=status, priority=priority, assignees=assignees)


class MigrationExecution:
    """One execution pass of a migration.

    The pass owns the migration's progress counters and its terminal status;
    nothing else writes them while it runs.
    """

    def __init__(
        self,
        store: MigrationStore,
        source: IntegrationProvider,
        destination: IntegrationProvider,
        migration: Migration,
    ) -> None:
        self._store = store
        self._source = source
        self._destination = destination
        self._migration = migration
        self.completed: int = 0
        self.failed: int = 0

    def run(self) -> MigrationStatus:
        """Execute the pass and return the terminal status it recorded."""
        migration = self._migration
        logger.info(
            f"Starting migration {migration.id}: {migration.source} project {migration.source_project_id} "
            f"-> {migration.destination} list {migration.dest_list_id}"
        )

        try:
            tasks = self._source.fetch_tasks(migration.source_project_id)
        except ProviderError:
            logger.exception(f"Migration {migration.id}: failed to fetch source tasks")
            return self._finish(MigrationStatus.FAILED)

        self._store.update_total_tasks(migration.id, len(tasks))
        logger.info(f"Migration {migration.id}: {len(tasks)} tasks to migrate")

        lookups = MappingLookups.from_records(self._store.get_mappings(migration.id))

        priority_options: PriorityOptions | None = None
        if isinstance(self._destination, PriorityOptionsProvider):
            try:
                priority_options = self._destination.list_priority_options(migration.dest_list_id)
            except ProviderError:
                logger.exception(f"Migration {migration.id}: failed to fetch destination priority options")
                return self._finish(MigrationStatus.FAILED)

        for task in tasks:
            self._migrate_task(task, lookups, priority_options)

        final_status = MigrationStatus.COMPLETED if self.failed == 0 else MigrationStatus.COMPLETED_WITH_ERRORS
        return self._finish(final_status)

    def _migrate_task(self, task: Task, lookups: MappingLookups, priority_options: PriorityOptions | None) -> None:
        migration = self._migration
        translated = translate_task(task, lookups, priority_options)
        logger.debug(
            f"Migrating task [{task.id}] {task.name}: status {task.status!r} -> {translated.status!r}, "
            f"priority {task.priority!r} -> {translated.priority!r}"
        )

        try:
            created = self._destination.create_task(migration.dest_list_id, migration.dest_workspace_id, translated)
        except ProviderError as e:
            self.failed += 1
            self._store.append_outcome(
                TaskOutcomeRecord(
                    migration_id=migration.id,
                    source_task_id=task.id,
                    outcome=TaskOutcome.FAILED,
                    error=str(e),
                )
            )
            self._store.update_progress(migration.id, self.completed, self.failed)
            logger.warning(f"Migration {migration.id}: failed to migrate task [{task.id}] {task.name}: {e}")
            return

        self.completed += 1
        self._store.append_outcome(
            TaskOutcomeRecord(
                migration_id=migration.id,
                source_task_id=task.id,
                outcome=TaskOutcome.SUCCESS,
                dest_task_id=created.id,
            )
        )
        self._store.update_progress(migration.id, self.completed, self.failed)
        logger.info(f"Migration {migration.id}: migrated task [{task.id}] {task.name} -> {created.id}")

    def _finish(self, status: MigrationStatus) -> MigrationStatus:
        self._store.complete(self._migration.id, status)
        log = logger.error if status is MigrationStatus.FAILED else logger.info
        log(
            f"Migration {self._migration.id} finished with status {status} "
            f"({self.completed} migrated, {self.failed} failed)"
        )
        return status


def execute(
    store: MigrationStore,
    source: IntegrationProvider,
    destination: IntegrationProvider,
    migration: Migration,
) -> MigrationStatus:
    """Run one execution pass for a migration that is already marked running."""
    return MigrationExecution(store, source, destination, migration).run()

"""Migration orchestrator that coordinates the store, the providers and executions.

The MigrationOrchestrator class is the central coordinator for migration. It:
1. Creates migrations and discovers the values that need mapping
2. Exposes the mapping state for operator resolution
3. Gates execution until every mapping record is resolved
4. Runs executions in the background and tracks them per migration

Migration Lifecycle
-------------------
    pending_configuration ──save (all mapped)──► ready_to_start
           ▲        │                                  │
           └─save───┘ (records still pending)          │ start
                                                       ▼
                                                    running
                                                       │
                          ┌────────────────────────────┼──────────────────┐
                          ▼                            ▼                  ▼
                      completed             completed_with_errors       failed

- create: inserts the migration as pending_configuration and runs discovery
- sync: reruns discovery against the current source data, no status change
- save: applies resolutions (all or nothing), then re-evaluates readiness
- start: requires zero pending records and wins an atomic status transition
  to running before the execution is submitted
- Terminal states are final

Concurrency
-----------
create, sync, save, start and the read operations run on the caller's thread.
start submits the execution to a thread pool and returns immediately. The
resulting Future is kept per migration id so the execution can be joined with
wait() or, if it has not begun yet, cancelled with cancel(). The status
transition to running is a compare-and-swap in the store, so two concurrent
starts of the same migration can never both launch an execution.

Error Handling
--------------
- Validation errors (unknown backend, empty workspace, unknown mapping,
  pending mappings, wrong status) are raised before anything is mutated
- A source failure during create finalizes the new migration as failed and
  propagates
- Execution errors are handled by the execution pass itself; see execution.py
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING, Final

from .discovery import discover
from .exceptions import (
    InvalidMigrationState,
    MappingsIncomplete,
    MigrationAlreadyRunning,
    MissingDestinationScope,
    ProviderError,
    UnsupportedBackend,
)
from .execution import execute
from .mapping_view import build_view
from .models import MigrationStatus

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from .models import MappingsState, Migration, Resolution, Task, TaskOutcomeRecord
    from .protocols import IntegrationProvider
    from .store import MigrationStore

logger: logging.Logger = logging.getLogger(__name__)

CONFIGURABLE_STATUSES: Final[frozenset[MigrationStatus]] = frozenset(
    {MigrationStatus.PENDING_CONFIGURATION, MigrationStatus.READY_TO_START}
)


class MigrationOrchestrator:
    """Orchestrates migrations from a source backend to a destination backend.

    Usage:
        store = MigrationStore("migrator.db")
        orchestrator = MigrationOrchestrator(store, {"asana": asana, "clickup": clickup})
        migration = orchestrator.create_migration("asana", "clickup", "123", "456", "789")
        orchestrator.save_mappings(migration.id, resolutions)
        orchestrator.start_migration(migration.id)

    Providers are injected by backend name at construction; there is no global
    registry.
    """

    def __init__(
        self,
        store: MigrationStore,
        providers: Mapping[str, IntegrationProvider],
        *,
        max_workers: int = 4,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Store for migrations and both ledgers
            providers: Integration providers keyed by backend name
            max_workers: Maximum number of executions running at once
        """
        self._store = store
        self._providers: dict[str, IntegrationProvider] = dict(providers)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="migration")
        self._executions: dict[int, Future[MigrationStatus]] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> MigrationOrchestrator:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown(wait=True)

    def _provider(self, name: str) -> IntegrationProvider:
        try:
            return self._providers[name]
        except KeyError:
            supported = ", ".join(sorted(self._providers)) or "none"
            msg = f"Unsupported backend '{name}' (registered: {supported})"
            raise UnsupportedBackend(msg) from None

    @staticmethod
    def _require_configurable(migration: Migration, operation: str) -> None:
        if migration.status not in CONFIGURABLE_STATUSES:
            msg = f"Cannot {operation} migration {migration.id} in status {migration.status}"
            raise InvalidMigrationState(msg)

    # -- Lifecycle --

    def create_migration(
        self,
        source: str,
        destination: str,
        source_project_id: str,
        dest_list_id: str,
        dest_workspace_id: str,
    ) -> Migration:
        """Create a migration and discover the values that need mapping.

        Raises:
            UnsupportedBackend: If no provider is registered for source or destination
            MissingDestinationScope: If dest_workspace_id is empty
            SourceUnavailable: If the source tasks cannot be fetched; the
                migration is then recorded as failed
        """
        source_provider = self._provider(source)
        self._provider(destination)
        if not dest_workspace_id:
            msg = f"dest_workspace_id is required when destination is {destination}"
            raise MissingDestinationScope(msg)

        migration = self._store.create_migration(
            source=source,
            destination=destination,
            source_project_id=source_project_id,
            dest_list_id=dest_list_id,
            dest_workspace_id=dest_workspace_id,
        )
        logger.info(f"Created migration {migration.id}: {source} {source_project_id} -> {destination} {dest_list_id}")

        try:
            discover(self._store, source_provider, migration.id, source_project_id)
        except ProviderError:
            logger.exception(f"Migration {migration.id}: discovery failed")
            self._store.complete(migration.id, MigrationStatus.FAILED)
            raise

        return self._store.get_migration(migration.id)

    def sync_mappings(self, migration_id: int) -> list[Task]:
        """Rediscover mapping values from the current source data.

        Returns:
            The fetched source tasks
        """
        migration = self._store.get_migration(migration_id)
        self._require_configurable(migration, "sync")
        return discover(self._store, self._provider(migration.source), migration.id, migration.source_project_id)

    def get_mappings(self, migration_id: int) -> MappingsState:
        """Build the mapping view of a migration from the ledger and live destination data."""
        migration = self._store.get_migration(migration_id)
        return build_view(self._store, self._provider(migration.destination), migration)

    def save_mappings(self, migration_id: int, resolutions: Sequence[Resolution]) -> Migration:
        """Apply operator resolutions and re-evaluate whether the migration can start.

        Raises:
            MappingNotFound: If a resolution targets an undiscovered value; nothing is applied
            InvalidMigrationState: If the migration is running or finished
        """
        migration = self._store.get_migration(migration_id)
        self._require_configurable(migration, "save mappings of")

        self._store.apply_resolutions(migration_id, resolutions)

        pending = self._store.count_pending(migration_id)
        new_status = MigrationStatus.READY_TO_START if pending == 0 else MigrationStatus.PENDING_CONFIGURATION
        self._store.transition_status(migration_id, CONFIGURABLE_STATUSES, new_status)
        logger.info(
            f"Migration {migration_id}: saved {len(resolutions)} resolutions, {pending} pending, status {new_status}"
        )
        return self._store.get_migration(migration_id)

    def start_migration(self, migration_id: int) -> Migration:
        """Mark a fully mapped migration as running and launch its execution in the background.

        Returns immediately with the migration in status running.

        Raises:
            MappingsIncomplete: If any mapping record is still pending
            MigrationAlreadyRunning: If an execution is already running for this migration
            InvalidMigrationState: If the migration already finished
        """
        migration = self._store.get_migration(migration_id)
        source = self._provider(migration.source)
        destination = self._provider(migration.destination)

        with self._lock:
            existing = self._executions.get(migration_id)
            if existing is not None and not existing.done():
                msg = f"Migration {migration_id} is already running"
                raise MigrationAlreadyRunning(msg)

            if not self._store.start_if_fully_mapped(migration_id, CONFIGURABLE_STATUSES):
                pending = self._store.count_pending(migration_id)
                current = self._store.get_migration(migration_id).status
                if pending and current in CONFIGURABLE_STATUSES:
                    msg = f"Migration {migration_id} has {pending} pending mappings"
                    raise MappingsIncomplete(msg)
                msg = f"Cannot start migration {migration_id} in status {current}"
                if current is MigrationStatus.RUNNING:
                    raise MigrationAlreadyRunning(msg)
                raise InvalidMigrationState(msg)

            running = self._store.get_migration(migration_id)
            self._executions[migration_id] = self._executor.submit(self._run, source, destination, running)

        logger.info(f"Migration {migration_id}: execution launched")
        return running

    def _run(self, source: IntegrationProvider, destination: IntegrationProvider, migration: Migration) -> MigrationStatus:
        try:
            return execute(self._store, source, destination, migration)
        except Exception:
            # Never leave a migration stuck in running
            logger.exception(f"Migration {migration.id}: execution crashed")
            self._store.complete(migration.id, MigrationStatus.FAILED)
            raise

    # -- Execution handles --

    def wait(self, migration_id: int, timeout: float | None = None) -> MigrationStatus | None:
        """Block until the execution of a migration finishes.

        Returns:
            The terminal status, or None if no execution was launched by this
            orchestrator or the timeout expired first
        """
        with self._lock:
            future = self._executions.get(migration_id)
        if future is None:
            return None
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            return None

    def cancel(self, migration_id: int) -> bool:
        """Cancel an execution that has not begun yet. A running execution cannot be interrupted.

        Returns:
            True if the execution was cancelled; the migration is then recorded as failed
        """
        with self._lock:
            future = self._executions.get(migration_id)
            if future is None or not future.cancel():
                return False
        self._store.complete(migration_id, MigrationStatus.FAILED)
        logger.warning(f"Migration {migration_id}: execution cancelled before it began")
        return True

    def is_running(self, migration_id: int) -> bool:
        with self._lock:
            future = self._executions.get(migration_id)
        return future is not None and not future.done()

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # -- Read side --

    def get_migration(self, migration_id: int) -> Migration:
        return self._store.get_migration(migration_id)

    def list_migrations(self) -> list[Migration]:
        return self._store.list_migrations()

    def list_outcomes(self, migration_id: int) -> list[TaskOutcomeRecord]:
        self._store.get_migration(migration_id)
        return self._store.get_outcomes(migration_id)

"""
Command-line interface for the task migration tool.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import TYPE_CHECKING, Any

from . import asana_utils, clickup_utils
from .asana_utils import AsanaProvider
from .clickup_utils import ClickUpProvider
from .exceptions import MigrationError
from .models import MappingKind, MappingState, MigrationStatus, TaskOutcome
from .orchestrator import MigrationOrchestrator
from .resolutions import parse_resolutions
from .store import MigrationStore
from .utils import get_db_path, setup_logging

if TYPE_CHECKING:
    from .models import MappingsState, Migration, TaskOutcomeRecord
    from .protocols import IntegrationProvider

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Migrate tasks between Asana and ClickUp with operator-approved status, priority and assignee mappings"
    )

    _ = parser.add_argument("--db", help="Path of the sqlite database (default: $TASK_MIGRATOR_DB or migrator.db)")
    _ = parser.add_argument("--asana-pass-token", help="Path for Asana token in pass utility (default: asana/cli/token)")
    _ = parser.add_argument(
        "--clickup-pass-token", help="Path for ClickUp token in pass utility (default: clickup/cli/token)"
    )
    _ = parser.add_argument(
        "--verbose", "-v", action="count", default=0, help="Increase console verbosity (-v info, -vv debug)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Create a migration and discover values to map")
    _ = create.add_argument("source", help="Source backend (asana or clickup)")
    _ = create.add_argument("destination", help="Destination backend (asana or clickup)")
    _ = create.add_argument("source_project_id", help="Source project (Asana) or list (ClickUp) id")
    _ = create.add_argument("dest_list_id", help="Destination list (ClickUp) or project (Asana) id")
    _ = create.add_argument("--workspace", "-w", required=True, help="Destination workspace id")

    sync = subparsers.add_parser("sync", help="Rediscover values from the current source data")
    _ = sync.add_argument("migration_id", type=int)

    mappings = subparsers.add_parser("mappings", help="Show mappings and destination vocabularies")
    _ = mappings.add_argument("migration_id", type=int)
    _ = mappings.add_argument("--json", action="store_true", help="Print as JSON")

    save = subparsers.add_parser("save", help="Save mapping resolutions")
    _ = save.add_argument("migration_id", type=int)
    _ = save.add_argument(
        "--map",
        "-m",
        action="append",
        dest="resolutions",
        help='Resolution (format: "kind:source=destination", kind is status, priority or assignee). '
        "Can be specified multiple times.",
    )
    _ = save.add_argument(
        "--accept-suggestions",
        action="store_true",
        help="Also map pending assignees to the destination member with the same email",
    )

    start = subparsers.add_parser("start", help="Start a fully mapped migration and wait for it to finish")
    _ = start.add_argument("migration_id", type=int)

    show = subparsers.add_parser("show", help="Show one migration")
    _ = show.add_argument("migration_id", type=int)

    _ = subparsers.add_parser("list", help="List all migrations")

    outcomes = subparsers.add_parser("outcomes", help="Show per-task results of a migration")
    _ = outcomes.add_argument("migration_id", type=int)
    _ = outcomes.add_argument("--failed", action="store_true", help="Only show failed tasks")

    return parser.parse_args(argv)


def build_providers(args: argparse.Namespace) -> dict[str, IntegrationProvider]:
    """Create a provider for every backend a token is available for."""
    providers: dict[str, IntegrationProvider] = {}

    asana_token = asana_utils.get_token(getattr(args, "asana_pass_token", None))
    if asana_token:
        providers[AsanaProvider.name] = AsanaProvider(asana_token)

    clickup_token = clickup_utils.get_token(getattr(args, "clickup_pass_token", None))
    if clickup_token:
        providers[ClickUpProvider.name] = ClickUpProvider(clickup_token)

    return providers


def _print_migration(migration: Migration) -> None:
    print(
        f"Migration {migration.id}: {migration.source} {migration.source_project_id} -> "
        f"{migration.destination} {migration.dest_list_id} (workspace {migration.dest_workspace_id})"
    )
    print(f"  Status:    {migration.status}")
    print(
        f"  Tasks:     total={migration.total_tasks} completed={migration.completed_tasks} "
        f"failed={migration.failed_tasks}"
    )
    print(f"  Created:   {migration.created_at.isoformat(sep=' ', timespec='seconds') if migration.created_at else '-'}")
    if migration.completed_at:
        print(f"  Completed: {migration.completed_at.isoformat(sep=' ', timespec='seconds')}")


def _mappings_to_dict(state: MappingsState) -> dict[str, Any]:
    return {
        "migration": state.migration.to_dict(),
        "mappings": {
            kind.value: [
                {
                    "source_value": r.source_value,
                    "dest_value": r.dest_value,
                    "status": r.status.value,
                    "metadata": {"name": r.metadata.name, "email": r.metadata.email} if r.metadata else None,
                    "suggested_dest_value": state.suggested_assignees.get(r.source_value)
                    if kind is MappingKind.ASSIGNEE
                    else None,
                }
                for r in records
            ]
            for kind, records in state.mappings.items()
        },
        "destination": {
            "members": [{"id": m.id, "name": m.name, "email": m.email} for m in state.dest_members],
            "statuses": state.dest_statuses,
            "priorities": state.dest_priorities,
        },
        "all_mapped": state.all_mapped,
    }


def _print_mappings(state: MappingsState) -> None:
    print(f"Migration {state.migration.id} ({state.migration.status}): {state.pending_count} pending mappings")
    for kind, records in state.mappings.items():
        print(f"\n{kind.value.capitalize()} mappings:")
        if not records:
            print("  (none)")
        for record in records:
            label = record.source_value
            if record.metadata and (record.metadata.name or record.metadata.email):
                label += f" ({record.metadata.name} <{record.metadata.email}>)"
            if record.status is MappingState.MAPPED:
                print(f"  {label} -> {record.dest_value}")
            else:
                suggestion = state.suggested_assignees.get(record.source_value) if kind is MappingKind.ASSIGNEE else None
                hint = f" (suggested: {suggestion})" if suggestion else ""
                print(f"  {label} -> PENDING{hint}")

    print(f"\nDestination statuses: {', '.join(state.dest_statuses) or '(none)'}")
    print(f"Destination priorities: {', '.join(state.dest_priorities) or '(none)'}")
    print("Destination members:")
    for member in state.dest_members:
        print(f"  {member.id}: {member.name} <{member.email}>")


def _print_outcomes(outcomes: list[TaskOutcomeRecord], *, only_failed: bool) -> None:
    for outcome in outcomes:
        if only_failed and outcome.outcome is not TaskOutcome.FAILED:
            continue
        if outcome.dest_task_id:
            print(f"  {outcome.source_task_id}: {outcome.outcome} -> {outcome.dest_task_id}")
        else:
            print(f"  {outcome.source_task_id}: {outcome.outcome} ({outcome.error})")


def run_command(args: argparse.Namespace, orchestrator: MigrationOrchestrator) -> int:
    """Run the selected subcommand and return the process exit code."""
    command: str = args.command

    if command == "create":
        migration = orchestrator.create_migration(
            args.source, args.destination, args.source_project_id, args.dest_list_id, args.workspace
        )
        _print_migration(migration)
        return 0

    if command == "sync":
        tasks = orchestrator.sync_mappings(args.migration_id)
        print(f"Synced {len(tasks)} source tasks")
        return 0

    if command == "mappings":
        state = orchestrator.get_mappings(args.migration_id)
        if args.json:
            print(json.dumps(_mappings_to_dict(state), indent=2))
        else:
            _print_mappings(state)
        return 0

    if command == "save":
        resolutions = parse_resolutions(args.resolutions)
        if args.accept_suggestions:
            state = orchestrator.get_mappings(args.migration_id)
            explicit = {(r.kind, r.source_value) for r in resolutions}
            resolutions.extend(
                parse_resolutions(
                    [
                        f"{MappingKind.ASSIGNEE.value}:{source_id}={member_id}"
                        for source_id, member_id in state.suggested_assignees.items()
                        if (MappingKind.ASSIGNEE, source_id) not in explicit
                    ]
                )
            )
        migration = orchestrator.save_mappings(args.migration_id, resolutions)
        _print_migration(migration)
        return 0

    if command == "start":
        orchestrator.start_migration(args.migration_id)
        print(f"Migration {args.migration_id} started")
        try:
            final_status = orchestrator.wait(args.migration_id)
        except Exception as e:
            logger.exception(f"Migration {args.migration_id} crashed")
            print(f"Error: migration {args.migration_id} crashed: {e}", file=sys.stderr)
            final_status = MigrationStatus.FAILED
        _print_migration(orchestrator.get_migration(args.migration_id))
        return 0 if final_status is MigrationStatus.COMPLETED else 1

    if command == "show":
        _print_migration(orchestrator.get_migration(args.migration_id))
        return 0

    if command == "list":
        for migration in orchestrator.list_migrations():
            print(
                f"{migration.id}\t{migration.status}\t{migration.source} -> {migration.destination}\t"
                f"{migration.completed_tasks + migration.failed_tasks}/{migration.total_tasks}"
            )
        return 0

    if command == "outcomes":
        _print_outcomes(orchestrator.list_outcomes(args.migration_id), only_failed=args.failed)
        return 0

    msg = f"Unknown command: {command}"
    raise ValueError(msg)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    verbosity: int = getattr(args, "verbose", 0)
    setup_logging(verbosity=verbosity)

    try:
        providers = build_providers(args)
        store = MigrationStore(get_db_path(getattr(args, "db", None)))
        with store, MigrationOrchestrator(store, providers) as orchestrator:
            exit_code = run_command(args, orchestrator)
    except (MigrationError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")  # noqa: TRY400
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(exit_code)

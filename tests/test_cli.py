"""
Tests for CLI module.
"""

import argparse
import json
from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from conftest import FakeProvider, make_task

from task_migrator.cli import build_providers, main, parse_arguments, run_command
from task_migrator.models import (
    MappingKind,
    Member,
    Migration,
    MigrationStatus,
    Resolution,
    TaskOutcome,
    TaskOutcomeRecord,
)


@pytest.fixture
def providers() -> dict[str, FakeProvider]:
    return {
        "asana": FakeProvider(
            "asana",
            tasks=[
                make_task("t1", status="Open", assignees=[("u1", "ann@example.com")]),
                make_task("t2", status="Done"),
            ],
        ),
        "clickup": FakeProvider(
            "clickup",
            members=[Member(id="m1", name="Ann", email="ann@example.com")],
            statuses=["to do", "complete"],
        ),
    }


@pytest.fixture
def cli_env(tmp_path: Path, providers: dict[str, FakeProvider]) -> Generator[str]:
    """Patch provider construction and logging setup; yield the database path."""
    with (
        patch("task_migrator.cli.build_providers", return_value=providers),
        patch("task_migrator.cli.setup_logging"),
    ):
        yield str(tmp_path / "migrator.db")


def _run(db: str, *argv: str) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(["--db", db, *argv])
    return int(exc_info.value.code or 0)


@pytest.mark.unit
class TestParseArguments:
    def test_create(self) -> None:
        args = parse_arguments(["-vv", "create", "asana", "clickup", "p1", "l1", "--workspace", "w1"])
        assert args.command == "create"
        assert (args.source, args.destination, args.source_project_id, args.dest_list_id) == (
            "asana",
            "clickup",
            "p1",
            "l1",
        )
        assert args.workspace == "w1"
        assert args.verbose == 2

    def test_save_collects_repeated_maps(self) -> None:
        args = parse_arguments(["save", "3", "-m", "status:Open=to do", "--map", "assignee:u1=m1"])
        assert args.migration_id == 3
        assert args.resolutions == ["status:Open=to do", "assignee:u1=m1"]
        assert not args.accept_suggestions

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_arguments([])

    def test_workspace_is_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_arguments(["create", "asana", "clickup", "p1", "l1"])


@pytest.mark.unit
class TestBuildProviders:
    def test_only_backends_with_tokens(self) -> None:
        args = argparse.Namespace(asana_pass_token=None, clickup_pass_token="team/clickup")
        with (
            patch("task_migrator.cli.asana_utils.get_token", return_value=None),
            patch("task_migrator.cli.clickup_utils.get_token", return_value="pk_1") as mock_clickup,
        ):
            providers = build_providers(args)

        assert list(providers) == ["clickup"]
        mock_clickup.assert_called_once_with("team/clickup")


@pytest.mark.unit
class TestRunCommand:
    def _migration(self, status: MigrationStatus = MigrationStatus.COMPLETED) -> Migration:
        return Migration(
            id=1,
            source="asana",
            destination="clickup",
            source_project_id="p1",
            dest_list_id="l1",
            dest_workspace_id="w1",
            status=status,
            total_tasks=2,
            completed_tasks=2,
        )

    def test_save_passes_parsed_resolutions(self, capsys: pytest.CaptureFixture[str]) -> None:
        orchestrator = MagicMock()
        orchestrator.save_mappings.return_value = self._migration(MigrationStatus.READY_TO_START)
        args = parse_arguments(["save", "1", "-m", "status:Open=to do"])

        assert run_command(args, orchestrator) == 0

        orchestrator.save_mappings.assert_called_once_with(1, [Resolution(MappingKind.STATUS, "Open", "to do")])
        assert "ready_to_start" in capsys.readouterr().out

    def test_start_exit_code_reflects_outcome(self) -> None:
        orchestrator = MagicMock()
        orchestrator.get_migration.return_value = self._migration(MigrationStatus.COMPLETED_WITH_ERRORS)
        orchestrator.wait.return_value = MigrationStatus.COMPLETED_WITH_ERRORS

        assert run_command(parse_arguments(["start", "1"]), orchestrator) == 1
        orchestrator.start_migration.assert_called_once_with(1)

    def test_start_reports_crashed_execution(self, capsys: pytest.CaptureFixture[str]) -> None:
        orchestrator = MagicMock()
        orchestrator.get_migration.return_value = self._migration(MigrationStatus.FAILED)
        orchestrator.wait.side_effect = RuntimeError("unexpected bug")

        assert run_command(parse_arguments(["start", "1"]), orchestrator) == 1

        captured = capsys.readouterr()
        assert "migration 1 crashed: unexpected bug" in captured.err
        assert "failed" in captured.out

    def test_failed_filter_uses_outcome(self, capsys: pytest.CaptureFixture[str]) -> None:
        orchestrator = MagicMock()
        orchestrator.list_outcomes.return_value = [
            TaskOutcomeRecord(migration_id=1, source_task_id="t1", outcome=TaskOutcome.SUCCESS, dest_task_id="d1"),
            TaskOutcomeRecord(migration_id=1, source_task_id="t2", outcome=TaskOutcome.FAILED),
            TaskOutcomeRecord(
                migration_id=1, source_task_id="t3", outcome=TaskOutcome.FAILED, error="create task: rejected"
            ),
        ]

        assert run_command(parse_arguments(["outcomes", "1", "--failed"]), orchestrator) == 0

        out = capsys.readouterr().out
        assert "t1" not in out
        assert "t2: failed" in out
        assert "t3: failed (create task: rejected)" in out


@pytest.mark.unit
class TestMain:
    def test_full_workflow(
        self, cli_env: str, providers: dict[str, FakeProvider], capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert _run(cli_env, "create", "asana", "clickup", "p1", "l1", "-w", "w1") == 0
        assert "pending_configuration" in capsys.readouterr().out

        assert _run(cli_env, "mappings", "1") == 0
        out = capsys.readouterr().out
        assert "Open -> PENDING" in out
        assert "(suggested: m1)" in out

        assert (
            _run(cli_env, "save", "1", "-m", "status:Open=to do", "-m", "status:Done=complete", "--accept-suggestions")
            == 0
        )
        assert "ready_to_start" in capsys.readouterr().out

        assert _run(cli_env, "start", "1") == 0
        out = capsys.readouterr().out
        assert "Migration 1 started" in out
        assert "completed=2 failed=0" in out
        created = providers["clickup"].created
        assert [(task.status, [a.id for a in task.assignees]) for _, _, task in created] == [
            ("to do", ["m1"]),
            ("complete", []),
        ]

        assert _run(cli_env, "outcomes", "1") == 0
        assert "t1: success -> dest-1" in capsys.readouterr().out

        assert _run(cli_env, "list") == 0
        assert "1\tcompleted\tasana -> clickup\t2/2" in capsys.readouterr().out

    def test_mappings_as_json(self, cli_env: str, capsys: pytest.CaptureFixture[str]) -> None:
        _run(cli_env, "create", "asana", "clickup", "p1", "l1", "-w", "w1")
        capsys.readouterr()

        assert _run(cli_env, "mappings", "1", "--json") == 0

        data = json.loads(capsys.readouterr().out)
        assert [m["source_value"] for m in data["mappings"]["status"]] == ["Open", "Done"]
        assert data["mappings"]["assignee"][0]["suggested_dest_value"] == "m1"
        assert data["destination"]["statuses"] == ["to do", "complete"]
        assert data["all_mapped"] is False

    def test_start_with_pending_mappings_fails(self, cli_env: str, capsys: pytest.CaptureFixture[str]) -> None:
        _run(cli_env, "create", "asana", "clickup", "p1", "l1", "-w", "w1")

        assert _run(cli_env, "start", "1") == 1
        assert "pending mappings" in capsys.readouterr().err

    def test_invalid_resolution_fails(self, cli_env: str, capsys: pytest.CaptureFixture[str]) -> None:
        _run(cli_env, "create", "asana", "clickup", "p1", "l1", "-w", "w1")

        assert _run(cli_env, "save", "1", "-m", "status=Open") == 1
        assert "Invalid resolution format" in capsys.readouterr().err

    def test_unknown_migration_fails(self, cli_env: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(cli_env, "show", "42") == 1
        assert "Migration 42 not found" in capsys.readouterr().err

    def test_unsupported_backend_fails(self, cli_env: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(cli_env, "create", "trello", "clickup", "p1", "l1", "-w", "w1") == 1
        assert "Unsupported backend" in capsys.readouterr().err

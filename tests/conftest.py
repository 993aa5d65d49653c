"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Fail on any warnings from the code under test
- Unit tests: Allow warnings, and run against in-memory providers and an
  in-memory store
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from typing_extensions import override

import pytest

from task_migrator.exceptions import DestinationRejected, DestinationUnavailable, SourceUnavailable
from task_migrator.models import CreatedTask, Member, PriorityOptions, Task, TaskAssignee
from task_migrator.orchestrator import MigrationOrchestrator
from task_migrator.store import MigrationStore

if TYPE_CHECKING:
    from collections.abc import Generator

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class IntegrationTestWarningHandler(logging.Handler):
    """Custom logging handler to capture warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        """Capture WARNING and above level logs."""
        if self.test_nodeid not in _integration_test_warnings:
            _integration_test_warnings[self.test_nodeid] = []
        _integration_test_warnings[self.test_nodeid].append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Automatically fail integration tests if any WARNING level logs are emitted from the code under test.

    Warnings are acceptable when running the tool as a user, but against a
    prepared test workspace we don't expect any and treat them as failures.
    """
    is_integration_test = request.node.get_closest_marker("integration") is not None

    if not is_integration_test:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """
    Hook to check for warnings after test execution and mark test as failed if warnings were detected.
    """
    outcome = yield
    report = outcome.get_result()

    if call.when == "call" and report.outcome == "passed":
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]

            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(test_nodeid, None)


# -- In-memory providers --


class FakeProvider:
    """In-memory backend recording every created task.

    Set fetch_error to make fetch_tasks fail, add task names to reject_names to
    make create_task fail for them, and set gate to hold create_task until the
    event is set.
    """

    default_priorities: tuple[str, ...] = ("urgent", "high", "normal", "low")

    def __init__(
        self,
        name: str,
        tasks: list[Task] | None = None,
        members: list[Member] | None = None,
        statuses: list[str] | None = None,
    ) -> None:
        self.name = name
        self.tasks: list[Task] = list(tasks or [])
        self.members: list[Member] = list(members or [])
        self.statuses: list[str] = list(statuses or [])
        self.created: list[tuple[str, str, Task]] = []
        self.reject_names: set[str] = set()
        self.fetch_error: SourceUnavailable | None = None
        self.members_error: DestinationUnavailable | None = None
        self.gate: threading.Event | None = None
        self.fetch_calls = 0

    def fetch_tasks(self, container_id: str) -> list[Task]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.tasks)

    def create_task(self, container_id: str, workspace_id: str, task: Task) -> CreatedTask:
        if self.gate is not None:
            assert self.gate.wait(timeout=5), "gate was never opened"
        if task.name in self.reject_names:
            msg = f"create task {task.name!r} (fake): rejected"
            raise DestinationRejected(msg)
        self.created.append((container_id, workspace_id, task))
        return CreatedTask(id=f"dest-{len(self.created)}", name=task.name)

    def list_members(self, workspace_id: str) -> list[Member]:
        if self.members_error is not None:
            raise self.members_error
        return list(self.members)

    def list_statuses(self, container_id: str) -> list[str]:
        return list(self.statuses)


class FakePriorityProvider(FakeProvider):
    """In-memory backend whose priority is an enum custom field."""

    default_priorities: tuple[str, ...] = ("High", "Medium", "Low")

    def __init__(
        self,
        name: str,
        priority_options: PriorityOptions | None = None,
        tasks: list[Task] | None = None,
        members: list[Member] | None = None,
        statuses: list[str] | None = None,
    ) -> None:
        super().__init__(name, tasks=tasks, members=members, statuses=statuses)
        self.priority_options = priority_options or PriorityOptions(field_id=None)
        self.options_error: DestinationUnavailable | None = None

    def list_priority_options(self, container_id: str) -> PriorityOptions:
        if self.options_error is not None:
            raise self.options_error
        return self.priority_options


def make_task(
    task_id: str,
    *,
    status: str = "",
    priority: str = "",
    assignees: list[tuple[str, str]] | None = None,
    name: str | None = None,
) -> Task:
    """Build a task; assignees are (id, email) pairs."""
    return Task(
        id=task_id,
        name=name or f"Task {task_id}",
        status=status,
        priority=priority,
        assignees=[TaskAssignee(id=a_id, name=f"User {a_id}", email=email) for a_id, email in assignees or []],
    )


@pytest.fixture
def sample_tasks() -> list[Task]:
    """Three source tasks with 2 statuses, 1 priority and 2 assignees."""
    return [
        make_task("t1", status="Open", priority="High", assignees=[("u1", "ann@example.com")]),
        make_task("t2", status="Done", assignees=[("u2", "bob@example.com")]),
        make_task("t3", status="Open", priority="High", assignees=[("u1", "ann@example.com")]),
    ]


@pytest.fixture
def store() -> Generator[MigrationStore]:
    with MigrationStore() as s:
        yield s


@pytest.fixture
def source(sample_tasks: list[Task]) -> FakeProvider:
    return FakeProvider("asana", tasks=sample_tasks)


@pytest.fixture
def destination() -> FakeProvider:
    return FakeProvider(
        "clickup",
        members=[Member(id="m1", name="Ann", email="ANN@example.com"), Member(id="m2", name="Carl", email="")],
        statuses=["to do", "in progress", "complete"],
    )


@pytest.fixture
def orchestrator(
    store: MigrationStore, source: FakeProvider, destination: FakeProvider
) -> Generator[MigrationOrchestrator]:
    with MigrationOrchestrator(store, {"asana": source, "clickup": destination}) as orch:
        yield orch

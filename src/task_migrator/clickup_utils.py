"""ClickUp integration provider and token lookup."""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any, Final

from . import utils
from .exceptions import DestinationRejected, DestinationUnavailable, ProviderError, SourceUnavailable
from .models import CreatedTask, Member, Task, TaskAssignee
from .rest_client import RestClient

if TYPE_CHECKING:
    import requests

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "CLICKUP_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "clickup/cli/token"  # noqa: S105

BASE_URL: Final[str] = "https://api.clickup.com/api/v2"

# ClickUp priorities are fixed: 1 is the most urgent
PRIORITY_LEVELS: Final[dict[str, int]] = {"urgent": 1, "high": 2, "normal": 3, "low": 4}

# Guard against a server that never reports the last page
MAX_PAGES: Final[int] = 1000


def get_token(pass_path: str | None = None) -> str | None:
    """Get ClickUp token from pass path, env var CLICKUP_TOKEN, or default pass location."""
    return utils.get_token(env_var=_TOKEN_ENV_VAR, default_pass_path=_DEFAULT_TOKEN_PASS_PATH, pass_path=pass_path)


def parse_timestamp_ms(value: str | int | None) -> dt.datetime | None:
    """Parse a ClickUp epoch-milliseconds timestamp."""
    if value in (None, ""):
        return None
    return dt.datetime.fromtimestamp(int(value) / 1000, tz=dt.UTC)


def to_timestamp_ms(value: dt.datetime) -> int:
    return int(value.timestamp() * 1000)


class ClickUpProvider(RestClient):
    """ClickUp backend.

    Statuses are defined per list. Priority is one of four fixed levels, so
    ClickUp offers no dynamic priority vocabulary.
    """

    name = "clickup"
    backend_name = "clickup"
    base_url = BASE_URL
    default_priorities: tuple[str, ...] = tuple(PRIORITY_LEVELS)

    def __init__(
        self,
        token: str,
        *,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__({"Authorization": token}, timeout=timeout, session=session)

    def _error_message(self, response: requests.Response) -> str | None:
        body = response.json()
        if isinstance(body, dict) and body.get("err"):
            return f"ClickUp error: {body['err']}"
        return None

    @staticmethod
    def _to_task(raw: dict[str, Any]) -> Task:
        status = raw.get("status") or {}
        priority = raw.get("priority") or {}
        assignees = [
            TaskAssignee(id=str(a["id"]), name=a.get("username") or "", email=a.get("email") or "")
            for a in raw.get("assignees") or []
            if a.get("id") is not None
        ]
        custom_fields = {cf.get("name", cf.get("id", "")): cf.get("value") for cf in raw.get("custom_fields") or []}
        return Task(
            id=raw["id"],
            name=raw.get("name", ""),
            description=raw.get("description") or "",
            status=status.get("status", ""),
            completed=status.get("type") == "closed",
            assignees=assignees,
            due_date=parse_timestamp_ms(raw.get("due_date")),
            priority=priority.get("priority") or "",
            custom_fields=custom_fields,
        )

    def fetch_tasks(self, container_id: str) -> list[Task]:
        tasks: list[Task] = []
        for page in range(MAX_PAGES):
            body = self.request(
                "GET",
                f"/list/{container_id}/task",
                params={"include_closed": "true", "subtasks": "true", "page": page},
                error_cls=SourceUnavailable,
                context=f"get tasks of list {container_id}",
            )
            raw_tasks = body.get("tasks") or []
            try:
                tasks.extend(self._to_task(raw) for raw in raw_tasks)
            except (KeyError, AttributeError, TypeError, ValueError) as e:
                msg = f"Unexpected task payload (clickup): {e}"
                raise SourceUnavailable(msg) from e
            if not raw_tasks or body.get("last_page", True):
                break
        logger.debug(f"Fetched {len(tasks)} tasks from ClickUp list {container_id}")
        return tasks

    def create_task(self, container_id: str, workspace_id: str, task: Task) -> CreatedTask:
        payload: dict[str, Any] = {"name": task.name}
        if task.description:
            payload["description"] = task.description
        if task.status:
            payload["status"] = task.status

        assignee_ids: list[int] = []
        for assignee in task.assignees:
            try:
                assignee_ids.append(int(assignee.id))
            except ValueError:
                logger.debug(f"Skipping non-numeric ClickUp assignee id {assignee.id!r} on task {task.name!r}")
        if assignee_ids:
            payload["assignees"] = assignee_ids

        if task.priority:
            level = PRIORITY_LEVELS.get(task.priority.lower())
            if level is None:
                logger.debug(f"Unknown ClickUp priority {task.priority!r} on task {task.name!r}, leaving it unset")
            else:
                payload["priority"] = level

        if task.due_date is not None:
            payload["due_date"] = to_timestamp_ms(task.due_date)

        body = self.request(
            "POST",
            f"/list/{container_id}/task",
            json=payload,
            error_cls=DestinationRejected,
            context=f"create task {task.name!r}",
        )
        if not isinstance(body, dict) or not body.get("id"):
            msg = f"create task {task.name!r} (clickup): response has no task id: {body!r}"
            raise DestinationRejected(msg)
        return CreatedTask(id=body["id"], name=body.get("name", ""))

    def list_workspaces(self) -> list[dict[str, Any]]:
        body = self.request("GET", "/team", error_cls=DestinationUnavailable, context="get workspaces")
        return body.get("teams", [])

    def list_members(self, workspace_id: str) -> list[Member]:
        for team in self.list_workspaces():
            if str(team.get("id")) == workspace_id:
                members: list[Member] = []
                for entry in team.get("members") or []:
                    user = entry.get("user") or {}
                    if user.get("id") is None:
                        continue
                    members.append(
                        Member(id=str(user["id"]), name=user.get("username") or "", email=user.get("email") or "")
                    )
                return members
        msg = f"Workspace {workspace_id} not found (clickup)"
        raise DestinationUnavailable(msg)

    def list_statuses(self, container_id: str) -> list[str]:
        body = self.request(
            "GET",
            f"/list/{container_id}",
            error_cls=DestinationUnavailable,
            context=f"get statuses of list {container_id}",
        )
        return [s["status"] for s in body.get("statuses") or [] if s.get("status")]

    def list_spaces(self, workspace_id: str) -> list[dict[str, Any]]:
        body = self.request(
            "GET",
            f"/team/{workspace_id}/space",
            error_cls=ProviderError,
            context=f"get spaces of workspace {workspace_id}",
        )
        return body.get("spaces", [])

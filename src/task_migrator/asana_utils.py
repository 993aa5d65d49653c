"""Asana integration provider and token lookup."""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any, Final

from . import utils
from .exceptions import DestinationRejected, DestinationUnavailable, ProviderError, SourceUnavailable
from .models import CreatedTask, Member, PriorityOptions, Task, TaskAssignee
from .rest_client import RestClient

if TYPE_CHECKING:
    import requests

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "ASANA_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "asana/cli/token"  # noqa: S105

BASE_URL: Final[str] = "https://app.asana.com/api/1.0"
PAGE_LIMIT: Final[int] = 100
PRIORITY_FIELD_NAME: Final[str] = "Priority"
STATUS_COMPLETED: Final[str] = "Completed"
STATUS_INCOMPLETE: Final[str] = "Incomplete"

_TASK_FIELDS: Final[str] = ",".join(
    [
        "name",
        "notes",
        "completed",
        "assignee",
        "assignee.name",
        "assignee.email",
        "due_on",
        "custom_fields",
        "custom_fields.name",
        "custom_fields.display_value",
        "custom_fields.enum_value",
        "custom_fields.enum_value.name",
    ]
)


def get_token(pass_path: str | None = None) -> str | None:
    """Get Asana token from pass path, env var ASANA_TOKEN, or default pass location."""
    return utils.get_token(env_var=_TOKEN_ENV_VAR, default_pass_path=_DEFAULT_TOKEN_PASS_PATH, pass_path=pass_path)


def parse_due_date(value: str | None) -> dt.datetime | None:
    """Parse an Asana due_on date. The time of day is set to noon UTC so the date survives any timezone."""
    if not value:
        return None
    try:
        day = dt.date.fromisoformat(value)
    except ValueError as e:
        msg = f"Invalid due_on date (asana): {value!r}"
        raise SourceUnavailable(msg) from e
    return dt.datetime(day.year, day.month, day.day, 12, tzinfo=dt.UTC)


def format_due_date(value: dt.datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(dt.UTC).date().isoformat()


class AsanaProvider(RestClient):
    """Asana backend.

    Asana has no task statuses, only a completion flag, so tasks read from
    Asana carry the status "Completed" or "Incomplete". Priority lives in an
    enum custom field named "Priority".
    """

    name = "asana"
    backend_name = "asana"
    base_url = BASE_URL
    default_priorities: tuple[str, ...] = ("High", "Medium", "Low")

    def __init__(
        self,
        token: str,
        *,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__({"Authorization": f"Bearer {token}"}, timeout=timeout, session=session)

    def _error_message(self, response: requests.Response) -> str | None:
        body = response.json()
        errors = body.get("errors") if isinstance(body, dict) else None
        if errors and isinstance(errors, list) and isinstance(errors[0], dict):
            message = errors[0].get("message")
            return f"Asana error: {message}" if message else None
        return None

    def _get_all(
        self,
        path: str,
        params: dict[str, Any],
        *,
        error_cls: type[ProviderError],
        context: str,
    ) -> list[dict[str, Any]]:
        """Follow Asana offset pagination and return every item."""
        items: list[dict[str, Any]] = []
        page_params: dict[str, Any] = {**params, "limit": PAGE_LIMIT}
        while True:
            body = self.request("GET", path, params=page_params, error_cls=error_cls, context=context)
            items.extend(body.get("data", []))
            next_page = body.get("next_page")
            if not next_page or not next_page.get("offset"):
                return items
            page_params = {**page_params, "offset": next_page["offset"]}

    @staticmethod
    def _to_task(raw: dict[str, Any]) -> Task:
        assignees: list[TaskAssignee] = []
        assignee = raw.get("assignee")
        if assignee:
            assignees.append(
                TaskAssignee(id=assignee.get("gid", ""), name=assignee.get("name", ""), email=assignee.get("email", ""))
            )

        priority = ""
        custom_fields: dict[str, Any] = {}
        for cf in raw.get("custom_fields") or []:
            cf_name = cf.get("name", "")
            custom_fields[cf_name] = cf.get("display_value")
            enum_value = cf.get("enum_value")
            if cf_name == PRIORITY_FIELD_NAME and enum_value and not priority:
                priority = enum_value.get("name", "")

        completed = bool(raw.get("completed"))
        return Task(
            id=raw["gid"],
            name=raw.get("name", ""),
            description=raw.get("notes") or "",
            status=STATUS_COMPLETED if completed else STATUS_INCOMPLETE,
            completed=completed,
            assignees=assignees,
            due_date=parse_due_date(raw.get("due_on")),
            priority=priority,
            custom_fields=custom_fields,
        )

    def fetch_tasks(self, container_id: str) -> list[Task]:
        raw_tasks = self._get_all(
            "/tasks",
            {"project": container_id, "opt_fields": _TASK_FIELDS},
            error_cls=SourceUnavailable,
            context=f"get tasks of project {container_id}",
        )
        try:
            tasks = [self._to_task(raw) for raw in raw_tasks]
        except (KeyError, AttributeError, TypeError) as e:
            msg = f"Unexpected task payload (asana): {e}"
            raise SourceUnavailable(msg) from e
        logger.debug(f"Fetched {len(tasks)} tasks from Asana project {container_id}")
        return tasks

    def create_task(self, container_id: str, workspace_id: str, task: Task) -> CreatedTask:
        data: dict[str, Any] = {
            "name": task.name,
            "notes": task.description,
            "projects": [container_id],
            "completed": task.status == STATUS_COMPLETED,
        }
        if task.assignees:
            # Asana tasks have a single assignee
            data["assignee"] = task.assignees[0].id
        due_on = format_due_date(task.due_date)
        if due_on:
            data["due_on"] = due_on
        if task.priority:
            field_id, sep, option_id = task.priority.partition(":")
            if sep and field_id and option_id:
                data["custom_fields"] = {field_id: option_id}

        body = self.request(
            "POST",
            "/tasks",
            json={"data": data},
            expected=(201,),
            error_cls=DestinationRejected,
            context=f"create task {task.name!r}",
        )
        created = body.get("data") if isinstance(body, dict) else None
        if not isinstance(created, dict) or not created.get("gid"):
            msg = f"create task {task.name!r} (asana): response has no task id: {body!r}"
            raise DestinationRejected(msg)
        return CreatedTask(id=created["gid"], name=created.get("name", ""))

    def list_members(self, workspace_id: str) -> list[Member]:
        users = self._get_all(
            "/users",
            {"workspace": workspace_id, "opt_fields": "name,email"},
            error_cls=DestinationUnavailable,
            context=f"get members of workspace {workspace_id}",
        )
        return [Member(id=u["gid"], name=u.get("name", ""), email=u.get("email") or "") for u in users]

    def list_statuses(self, container_id: str) -> list[str]:
        return [STATUS_INCOMPLETE, STATUS_COMPLETED]

    def list_priority_options(self, container_id: str) -> PriorityOptions:
        body = self.request(
            "GET",
            f"/projects/{container_id}/custom_field_settings",
            params={
                "opt_fields": (
                    "custom_field.name,custom_field.gid,custom_field.enum_options,"
                    "custom_field.enum_options.name,custom_field.enum_options.gid"
                )
            },
            error_cls=DestinationUnavailable,
            context=f"get custom field settings of project {container_id}",
        )
        for setting in body.get("data", []):
            custom_field = setting.get("custom_field") or {}
            if custom_field.get("name") == PRIORITY_FIELD_NAME:
                options = {opt["name"]: opt["gid"] for opt in custom_field.get("enum_options") or []}
                return PriorityOptions(field_id=custom_field.get("gid"), options=options)
        return PriorityOptions(field_id=None)

    def list_workspaces(self) -> list[dict[str, Any]]:
        body = self.request("GET", "/workspaces", error_cls=ProviderError, context="get workspaces")
        return body.get("data", [])

    def list_projects(self, workspace_id: str) -> list[dict[str, Any]]:
        return self._get_all(
            "/projects",
            {"workspace": workspace_id},
            error_cls=ProviderError,
            context=f"get projects of workspace {workspace_id}",
        )

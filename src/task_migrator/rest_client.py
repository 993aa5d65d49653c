"""
Shared HTTP plumbing for the REST-based integration providers.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from .exceptions import ProviderError
from .utils import get_http_timeout

logger: logging.Logger = logging.getLogger(__name__)


class RestClient:
    """Thin JSON client around a requests.Session.

    Subclasses set the backend's base URL and auth headers and extract the
    backend's error message from failed responses.
    """

    base_url: str = ""
    backend_name: str = "backend"

    def __init__(
        self,
        headers: dict[str, str],
        *,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.timeout: float = timeout if timeout is not None else get_http_timeout()
        self.session: requests.Session = session or requests.Session()
        self.session.headers.update(headers)

    def _error_message(self, response: requests.Response) -> str | None:
        """Return the backend's error message from a failed response, if it has one."""
        return None

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        expected: tuple[int, ...] = (200,),
        error_cls: type[ProviderError] = ProviderError,
        context: str = "",
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to base_url, starting with "/"
            params: Query parameters
            json: JSON request body
            expected: Status codes considered successful
            error_cls: ProviderError subclass raised on any failure
            context: Short description of the operation for error messages

        Raises:
            error_cls: On transport errors, unexpected status codes or invalid JSON
        """
        url = f"{self.base_url}{path}"
        what = context or f"{method} {path}"
        try:
            response = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            msg = f"{what} ({self.backend_name}): {e}"
            raise error_cls(msg) from e

        if response.status_code not in expected:
            try:
                detail = self._error_message(response)
            except ValueError:
                detail = None
            if detail:
                msg = f"{what} ({self.backend_name}): {detail}"
            else:
                msg = f"{what} ({self.backend_name}): API error status {response.status_code}"
            raise error_cls(msg)

        try:
            return response.json()
        except ValueError as e:
            msg = f"{what} ({self.backend_name}): invalid JSON response"
            raise error_cls(msg) from e

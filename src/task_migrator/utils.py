"""
Utility functions for the task migration tool: logging, secrets and settings.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from subprocess import CompletedProcess
from typing import Final

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

DB_PATH_ENV_VAR: Final[str] = "TASK_MIGRATOR_DB"
DEFAULT_DB_PATH: Final[str] = "migrator.db"
HTTP_TIMEOUT_ENV_VAR: Final[str] = "TASK_MIGRATOR_HTTP_TIMEOUT"
DEFAULT_HTTP_TIMEOUT: Final[float] = 10.0


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path format is invalid."""


class PassphraseRequiredError(PassError):
    """Raised when a GPG passphrase is required for the pass utility."""


def setup_logging(*, verbosity: int = 0) -> None:
    """Configure logging for the migration process.

    The log file always receives DEBUG records. The console shows warnings by
    default, INFO with -v and DEBUG with -vv.
    """
    console_level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)

    file_handler = logging.FileHandler("migration.log", mode="a")
    file_handler.setLevel(logging.DEBUG)

    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[console_handler, file_handler],
    )


def _validate_pass_path(pass_path: str) -> None:
    """Validate the pass path format."""
    if not re.fullmatch(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise InvalidPassPathError(msg)


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path."""
    _validate_pass_path(pass_path)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", pass_path], capture_output=True, text=True, check=True
        )
    except FileNotFoundError as e:
        msg = "The 'pass' utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        if e.returncode == 1 and "not in the password store" in e.stderr.lower():
            msg = f"Pass path '{pass_path}' not found or invalid."
            raise InvalidPassPathError(msg) from e
        if e.returncode == 2 and "gpg" in e.stderr.lower() and "public key decryption failed" in e.stderr.lower():
            # The GPG key needs a passphrase. This fails in non-interactive sessions.
            try:
                passphrase = input("Enter passphrase for GPG key used by pass: ")
            except EOFError as eof:
                msg = "Passphrase input was interrupted. Please run the command in an interactive session."
                raise PassphraseRequiredError(msg) from eof

            env = os.environ.copy() | {"PASSWORD_STORE_GPG_OPTS": "--pinentry-mode=loopback --passphrase-fd 0"}
            try:
                result = subprocess.run(  # noqa: S603
                    ["pass", pass_path], input=passphrase, capture_output=True, text=True, check=True, env=env
                )
            except subprocess.CalledProcessError as retry_error:
                msg = (
                    f"Failed to get value from pass at '{pass_path}' with passphrase.\n"
                    f"Error: {retry_error.stderr.strip()}\n"
                    f"Return code: {retry_error.returncode}"
                )
                raise PassphraseRequiredError(msg) from retry_error
            return result.stdout.strip()
        msg = (
            f"Failed to get value from pass at '{pass_path}'.\n"
            f"Error: {e.stderr.strip()}\n"
            f"Return code: {e.returncode}"
        )
        raise PassError(msg) from e

    return result.stdout.strip()


def get_token(*, env_var: str, default_pass_path: str, pass_path: str | None = None) -> str | None:
    """Get an API token from a pass path, an environment variable, or a default pass location.

    An explicit pass path wins and its errors propagate. The default pass
    location is only a fallback, so its errors are logged and None is returned.
    """
    if pass_path:
        return get_pass_value(pass_path)

    token: str | None = os.environ.get(env_var)
    if token:
        return token

    try:
        return get_pass_value(default_pass_path)
    except PassError:
        logger.warning(f"No token specified in {env_var} nor found at pass path {default_pass_path}")
        return None


def get_db_path(explicit: str | None = None) -> str:
    """Return the sqlite database path from the argument, TASK_MIGRATOR_DB, or the default."""
    return explicit or os.environ.get(DB_PATH_ENV_VAR) or DEFAULT_DB_PATH


def get_http_timeout() -> float:
    """Return the HTTP timeout in seconds from TASK_MIGRATOR_HTTP_TIMEOUT, or the default."""
    raw = os.environ.get(HTTP_TIMEOUT_ENV_VAR)
    if not raw:
        return DEFAULT_HTTP_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError as e:
        msg = f"{HTTP_TIMEOUT_ENV_VAR} must be a number of seconds, got {raw!r}"
        raise ValueError(msg) from e
    if timeout <= 0:
        msg = f"{HTTP_TIMEOUT_ENV_VAR} must be positive, got {raw!r}"
        raise ValueError(msg)
    return timeout

"""
Asana / ClickUp Task Migration Tool

Migrates tasks between Asana and ClickUp. Status, priority and assignee values
are discovered from the source and must be mapped by an operator before a
migration can start; every task transfer is recorded in an outcome ledger.
"""

from __future__ import annotations

from .cli import main
from .exceptions import MigrationError
from .orchestrator import MigrationOrchestrator
from .store import MigrationStore
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "MigrationError",
    "MigrationOrchestrator",
    "MigrationStore",
    "main",
    "setup_logging",
]

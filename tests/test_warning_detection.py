"""
Tests for the warning detection of integration tests in conftest.py.
"""

import logging
import subprocess
import sys
from pathlib import Path

import pytest
from conftest import IntegrationTestWarningHandler, _integration_test_warnings


@pytest.mark.unit
class TestIntegrationTestWarningHandler:
    def test_captures_warnings_per_test(self) -> None:
        handler = IntegrationTestWarningHandler("tests/test_x.py::test_y")
        logger = logging.getLogger("task_migrator.execution")
        logger.addHandler(handler)
        try:
            logger.info("Migration 1: migrated task")
            logger.warning("Migration 1: failed to migrate task")
        finally:
            logger.removeHandler(handler)

        records = _integration_test_warnings.pop("tests/test_x.py::test_y")
        assert [r.getMessage() for r in records] == ["Migration 1: failed to migrate task"]

    def test_unit_tests_allow_warnings(self) -> None:
        logging.getLogger("task_migrator.utils").warning("No token specified - allowed in unit tests")


@pytest.mark.unit
class TestIntegrationTestFailsOnWarning:
    def test_warning_fails_integration_test(self, tmp_path: Path) -> None:
        (tmp_path / "conftest.py").write_text((Path(__file__).parent / "conftest.py").read_text())
        (tmp_path / "pytest.ini").write_text("[pytest]\nmarkers =\n    integration: real API test\n")
        test_file = tmp_path / "test_temp_warning.py"
        test_file.write_text(
            "import logging\n"
            "import pytest\n\n"
            "@pytest.mark.integration\n"
            "def test_warning():\n"
            "    logging.getLogger('task_migrator.orchestrator').warning('execution cancelled')\n"
        )

        result = subprocess.run(  # noqa: S603
            [sys.executable, "-m", "pytest", str(test_file), "-v", "--tb=short", "-p", "no:cacheprovider"],
            capture_output=True,
            text=True,
            cwd=str(tmp_path),
            check=False,
        )

        assert result.returncode != 0, f"Expected test to fail but it passed:\n{result.stdout}"
        assert "warning(s) detected" in result.stdout, result.stdout + result.stderr
        assert "execution cancelled" in result.stdout

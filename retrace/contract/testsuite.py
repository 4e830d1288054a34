# retrace/contract/testsuite.py
"""
Test-suite contract: a test command run in the workspace must exit with 0.
"""
import asyncio
import shlex
from pathlib import Path
from typing import List, Optional, Tuple

from retrace.config import config_manager
from retrace.constants import PROJECT_ROOT_DIR
from retrace.contract.errors import ValidationError
from retrace.contract.models import ContractConfig, ContractType
from retrace.utils.logging import get_logger

logger = get_logger(__name__)

CONTRACT_TYPE = ContractType.TEST_SUITE.value


def split_command(config: ContractConfig) -> Tuple[str, List[str]]:
    """Return the executable and its arguments."""
    if not config.command or not config.command.strip():
        raise ValidationError(
            CONTRACT_TYPE,
            "no command configured for test suite validation",
            details=["specify 'command' with the test runner to execute"],
            retryable=False,
        )

    if config.command_args:
        return config.command, list(config.command_args)

    try:
        parts = shlex.split(config.command)
    except ValueError as e:
        raise ValidationError(
            CONTRACT_TYPE, f"cannot parse command: {config.command}", details=[str(e)], retryable=False
        ) from e
    return parts[0], parts[1:]


def tail_lines(label: str, output: str, limit: int) -> List[str]:
    """The last ``limit`` non-empty lines of a stream, formatted as details."""
    if not output.strip():
        return []
    lines = output.strip().splitlines()
    if len(lines) > limit:
        lines = lines[-limit:]
        header = f"{label} (last {limit} lines):"
    else:
        header = f"{label}:"
    return [header] + [f"  {line.strip()}" for line in lines if line.strip()]


async def resolve_working_dir(dir_setting: Optional[str], workspace_path: str) -> Path:
    """
    Resolve where the test command runs.

    - empty: the workspace
    - "project_root": the top of the git repository containing the workspace
    - absolute path: as-is
    - relative path: relative to the workspace
    """
    if not dir_setting:
        return Path(workspace_path)

    if dir_setting == PROJECT_ROOT_DIR:
        process = await asyncio.create_subprocess_exec(
            "git", "rev-parse", "--show-toplevel",
            cwd=workspace_path,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise OSError(
                f"failed to resolve project root (is this a git repo?): "
                f"{stderr.decode('utf-8', errors='replace').strip()}"
            )
        return Path(stdout.decode("utf-8", errors="replace").strip())

    path = Path(dir_setting)
    if path.is_absolute():
        return path
    return Path(workspace_path) / path


class TestSuiteValidator:
    """Runs the configured test command and fails on a non-zero exit status."""

    __test__ = False  # not a pytest test class

    def __init__(self, default_timeout: Optional[float] = None, tail_limit: Optional[int] = None):
        self.default_timeout = default_timeout
        self.tail_limit = tail_limit

    def _settings(self, config: ContractConfig) -> Tuple[float, int]:
        defaults = config_manager.config.validation
        timeout = config.timeout or self.default_timeout or defaults.test_timeout
        tail_limit = self.tail_limit or defaults.tail_lines
        return timeout, tail_limit

    async def validate(self, config: ContractConfig, workspace_path: str) -> None:
        command, args = split_command(config)
        timeout, tail_limit = self._settings(config)
        command_line = " ".join([command, *args])

        try:
            working_dir = await resolve_working_dir(config.dir, workspace_path)
        except OSError as e:
            raise ValidationError(
                CONTRACT_TYPE,
                f"failed to resolve working directory: {e}",
                details=[f"dir: {config.dir}", f"workspace: {workspace_path}"],
                retryable=False,
            ) from e

        logger.info(f"Running test suite: {command_line} (in {working_dir}, timeout {timeout}s)")
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(working_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ValidationError(
                CONTRACT_TYPE,
                "test suite execution failed",
                details=[str(e), f"command: {command_line}", f"working directory: {working_dir}"],
                retryable=False,
            ) from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                # Exited on its own just as the timeout fired
                pass
            stdout_bytes, stderr_bytes = await process.communicate()
            logger.warning(f"Test suite timed out after {timeout}s: {command_line}")
            raise ValidationError(
                CONTRACT_TYPE,
                f"test suite timed out after {timeout:g}s",
                details=self._details(command_line, stdout_bytes, stderr_bytes, tail_limit),
                retryable=True,
            )

        if process.returncode != 0:
            logger.debug(f"Test suite failed with exit code {process.returncode}: {command_line}")
            raise ValidationError(
                CONTRACT_TYPE,
                f"test suite failed (exit code {process.returncode})",
                details=self._details(command_line, stdout_bytes, stderr_bytes, tail_limit),
                retryable=True,
            )

        # Some runners write progress to stderr even on success; only the exit code counts
        logger.debug(f"Test suite passed: {command_line}")

    @staticmethod
    def _details(command_line: str, stdout: bytes, stderr: bytes, limit: int) -> List[str]:
        details = [f"command: {command_line}"]
        details.extend(tail_lines("stderr", (stderr or b"").decode("utf-8", errors="replace"), limit))
        details.extend(tail_lines("stdout", (stdout or b"").decode("utf-8", errors="replace"), limit))
        return details

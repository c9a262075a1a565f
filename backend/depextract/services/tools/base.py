"""
CLI Tool Base Class

Shared subprocess handling for the external tools the pipeline drives
(git, cdxgen, dep-scan, semgrep, trufflehog). Every invocation runs under
its own wall-clock timeout; the process is killed when it expires.
"""

import asyncio
import logging
import os
import shutil
from typing import Dict, List, NamedTuple, Optional

from depextract.services.pipeline.errors import ToolError, ToolNotFoundError, ToolTimeoutError

logger = logging.getLogger(__name__)

OUT_OF_MEMORY_EXIT_CODE = 137


class CommandResult(NamedTuple):
    stdout: bytes
    stderr: bytes
    returncode: int

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode(errors="replace")

    @property
    def first_stderr_line(self) -> str:
        for line in self.stderr_text.splitlines():
            if line.strip():
                return line.strip()
        return "unknown error"


class CLITool:
    """
    Base class for wrappers around an external executable.

    Subclasses set ``cli_command`` and a default ``timeout``.
    """

    name: str = ""
    cli_command: str = ""
    timeout: float = 300.0

    def is_tool_available(self) -> bool:
        """Check if the CLI tool is available in the system PATH."""
        if not self.cli_command:
            return False
        return shutil.which(self.cli_command) is not None

    async def _execute_command(
        self,
        args: List[str],
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """
        Run ``args`` and collect its output.

        Raises ToolNotFoundError when the executable is missing and
        ToolTimeoutError when the timeout expires. A non-zero exit code is
        returned, not raised.
        """
        limit = timeout if timeout is not None else self.timeout
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=cwd,
                env={**os.environ, **env} if env else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(self.name, f"{self.cli_command} is not installed") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=limit)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ToolTimeoutError(self.name, f"{self.name} timed out after {limit:.0f}s") from e

        return CommandResult(stdout, stderr, process.returncode)

    async def _run_checked(
        self,
        args: List[str],
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """Like ``_execute_command`` but raise ToolError on a non-zero exit."""
        result = await self._execute_command(args, cwd=cwd, timeout=timeout, env=env)
        if result.returncode != 0:
            logger.debug(f"{self.name} exited with {result.returncode}: {result.stderr_text[:500]}")
            raise ToolError(
                self.name,
                f"{self.name} failed (exit {result.returncode}): {result.first_stderr_line}",
                exit_code=result.returncode,
                stderr=result.stderr_text,
            )
        return result

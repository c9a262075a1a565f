import json
import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional

from depextract.core.config import settings
from depextract.services.pipeline.errors import ToolError
from depextract.services.tools.base import CLITool
from depextract.services.tools.interfaces import ImportAnalyzer


class CommandImportAnalyzer(CLITool, ImportAnalyzer):
    """
    Runs an external import analyzer configured by command line.

    The command receives the ecosystem and source directory as its last two
    arguments and must print a JSON object. With no command configured the
    analyzer is disabled and the stage is skipped.
    """

    name = "imports"

    def __init__(self, command: Optional[str] = None, timeout: Optional[float] = None):
        command = settings.IMPORT_ANALYZER_COMMAND if command is None else command
        self.args: List[str] = shlex.split(command) if command else []
        self.cli_command = self.args[0] if self.args else ""
        self.timeout = timeout if timeout is not None else settings.IMPORT_ANALYSIS_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        return bool(self.args)

    async def analyze(self, source_dir: Path, ecosystem: str) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None
        result = await self._run_checked(
            [*self.args, ecosystem, str(source_dir)], cwd=str(source_dir)
        )
        try:
            data = json.loads(result.stdout.decode(errors="replace") or "{}")
        except ValueError as e:
            raise ToolError(self.name, f"{self.name} printed invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ToolError(self.name, f"{self.name} output is not a JSON object")
        return data

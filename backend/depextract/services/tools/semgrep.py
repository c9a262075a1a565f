import json
import logging
from pathlib import Path
from typing import Optional

from depextract.core.config import settings
from depextract.services.pipeline.errors import ToolError
from depextract.services.tools.base import CLITool
from depextract.services.tools.interfaces import ScanResult, StaticAnalyzer

logger = logging.getLogger(__name__)


def count_semgrep_findings(path: Path) -> int:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read semgrep output {path}: {e}")
        return 0
    results = data.get("results") if isinstance(data, dict) else None
    return len(results) if isinstance(results, list) else 0


class SemgrepAnalyzer(CLITool, StaticAnalyzer):
    name = "semgrep"
    cli_command = "semgrep"

    def __init__(self, timeout: Optional[float] = None, config: str = "auto"):
        self.timeout = timeout if timeout is not None else settings.STATIC_ANALYSIS_TIMEOUT_SECONDS
        self.config = config

    async def scan(self, source_dir: Path, output_path: Path) -> ScanResult:
        args = [
            self.cli_command,
            "scan",
            "--config",
            self.config,
            "--json",
            "--output",
            str(output_path),
            str(source_dir),
        ]
        result = await self._execute_command(args, cwd=str(source_dir))

        # Exit code 1 means findings were reported
        if result.returncode not in (0, 1) or not output_path.is_file():
            raise ToolError(
                self.name,
                f"{self.name} failed (exit {result.returncode}): {result.first_stderr_line}",
                exit_code=result.returncode,
                stderr=result.stderr_text,
            )
        return ScanResult(output_path, count_semgrep_findings(output_path))

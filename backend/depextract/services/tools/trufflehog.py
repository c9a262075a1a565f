import json
from pathlib import Path
from typing import Optional

from depextract.core.config import settings
from depextract.services.tools.base import CLITool
from depextract.services.tools.interfaces import ScanResult, SecretScanner


def count_secret_findings(output: str) -> int:
    """TruffleHog prints one JSON object per finding; other lines are progress."""
    count = 0
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            finding = json.loads(line)
        except ValueError:
            continue
        if isinstance(finding, dict) and "DetectorName" in finding:
            count += 1
    return count


class TruffleHogScanner(CLITool, SecretScanner):
    name = "trufflehog"
    cli_command = "trufflehog"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.SECRET_SCAN_TIMEOUT_SECONDS

    async def scan(self, source_dir: Path, output_path: Path) -> ScanResult:
        args = [self.cli_command, "filesystem", str(source_dir), "--json", "--no-update"]
        result = await self._run_checked(args, cwd=str(source_dir))

        output = result.stdout.decode(errors="replace")
        output_path.write_text(output, encoding="utf-8")
        return ScanResult(output_path, count_secret_findings(output))

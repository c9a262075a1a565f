from pathlib import Path
from typing import Optional

from depextract.core.config import settings
from depextract.services.pipeline.errors import ToolError
from depextract.services.tools.base import CLITool
from depextract.services.tools.interfaces import SbomGenerator


class CdxgenGenerator(CLITool, SbomGenerator):
    """Generates a CycloneDX BOM, dependency tree included, with cdxgen."""

    name = "cdxgen"
    cli_command = "cdxgen"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.SBOM_TIMEOUT_SECONDS

    async def generate(self, source_dir: Path, output_path: Path, ecosystem: str) -> Path:
        # cdxgen detects the project type itself; ``ecosystem`` is only used by
        # the scanners downstream
        args = [self.cli_command, "--path", str(source_dir), "-o", str(output_path)]
        await self._run_checked(args, cwd=str(source_dir))

        if not output_path.is_file():
            raise ToolError(self.name, f"{self.name} did not produce {output_path.name}")
        return output_path

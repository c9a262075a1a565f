"""
dep-scan wrapper and report discovery.

dep-scan writes its report under a name that depends on its version and the
analyzer in use (``*.vdr.json`` for VDR output, ``dep-scan.json`` for the
older format), and some versions ignore ``--reports-dir``. Discovery
therefore looks in the reports directory, then the workspace root, then
walks the workspace; the first JSON file carrying a ``vulnerabilities``
list is the report.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional

from depextract.core.config import settings
from depextract.core.constants import DEPSCAN_REPORT_NAME, REPORT_SEARCH_MAX_DIRS, VDR_SUFFIX
from depextract.services.pipeline.errors import ToolError
from depextract.services.tools.base import OUT_OF_MEMORY_EXIT_CODE, CLITool
from depextract.services.tools.interfaces import ScanReportFile, VulnerabilityScanner

logger = logging.getLogger(__name__)


def is_report_name(filename: str) -> bool:
    return filename.endswith(VDR_SUFFIX) or filename == DEPSCAN_REPORT_NAME


def _report_files(directory: Path) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and is_report_name(p.name))


def _walk_report_files(root: Path, max_dirs: int) -> Iterator[Path]:
    """Depth-first walk of ``root`` visiting at most ``max_dirs`` directories."""
    stack = [root]
    visited = 0
    while stack and visited < max_dirs:
        directory = stack.pop()
        visited += 1
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError:
            continue
        subdirs = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                if entry.name not in (".git", "node_modules"):
                    subdirs.append(Path(entry.path))
            elif entry.is_file(follow_symlinks=False) and is_report_name(entry.name):
                yield Path(entry.path)
        stack.extend(reversed(subdirs))


def load_report(path: Path) -> Optional[ScanReportFile]:
    """Decode ``path`` if it holds a report with a ``vulnerabilities`` list."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.debug(f"Skipping unreadable report candidate {path}: {e}")
        return None
    if isinstance(data, dict) and isinstance(data.get("vulnerabilities"), list):
        return ScanReportFile(path, data)
    return None


def find_scan_report(
    reports_dir: Path,
    workspace: Path,
    max_dirs: int = REPORT_SEARCH_MAX_DIRS,
) -> Optional[ScanReportFile]:
    seen = set()

    def candidates() -> Iterator[Path]:
        yield from _report_files(reports_dir)
        yield from _report_files(workspace)
        yield from _walk_report_files(workspace, max_dirs)
        if reports_dir.is_dir():
            yield from sorted(p for p in reports_dir.glob("*.json") if p.is_file())

    for path in candidates():
        resolved = path.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        report = load_report(path)
        if report is not None:
            logger.debug(f"Using vulnerability report {path}")
            return report
    return None


class DepScanScanner(CLITool, VulnerabilityScanner):
    name = "dep-scan"
    cli_command = "depscan"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.VULN_SCAN_TIMEOUT_SECONDS

    async def scan(
        self, sbom_path: Path, reports_dir: Path, workspace: Path, ecosystem: str
    ) -> Optional[ScanReportFile]:
        reports_dir.mkdir(parents=True, exist_ok=True)
        args = [
            self.cli_command,
            "--bom",
            str(sbom_path),
            "--reports-dir",
            str(reports_dir),
            "-t",
            ecosystem,
            "--no-banner",
            "--vulnerability-analyzer",
            "VDRAnalyzer",
        ]
        result = await self._execute_command(args, cwd=str(workspace))

        if result.returncode == OUT_OF_MEMORY_EXIT_CODE:
            raise ToolError(
                self.name,
                f"{self.name} ran out of memory. The dependency graph may be too large to scan",
                exit_code=result.returncode,
                stderr=result.stderr_text,
            )

        report = await asyncio.to_thread(find_scan_report, reports_dir, workspace)
        if result.returncode != 0:
            # non-zero when findings exceed the fail threshold
            if report is None:
                raise ToolError(
                    self.name,
                    f"{self.name} failed (exit {result.returncode}): {result.first_stderr_line}",
                    exit_code=result.returncode,
                    stderr=result.stderr_text,
                )
            logger.info(f"{self.name} exited with {result.returncode} but produced a report")
        return report

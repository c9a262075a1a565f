"""
Collaborator interfaces the pipeline is written against.

The default implementations shell out to the usual CLI tools; tests and
alternative deployments substitute their own.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional

from depextract.models.job import ExtractionPayload


class ScanResult(NamedTuple):
    """Outcome of a tool that writes a report file."""

    output_path: Optional[Path]
    findings: int = 0


class ScanReportFile(NamedTuple):
    """A vulnerability report located on disk, already decoded."""

    path: Path
    data: Dict[str, Any]


class RepositoryCloner(ABC):
    name = "git"

    @abstractmethod
    async def clone(self, repository: ExtractionPayload, destination: Path) -> Path:
        """Shallow-clone ``repository`` into ``destination`` and return it."""


class SbomGenerator(ABC):
    name = "cdxgen"

    @abstractmethod
    async def generate(self, source_dir: Path, output_path: Path, ecosystem: str) -> Path:
        """Write a CycloneDX JSON document for ``source_dir`` to ``output_path``."""


class ImportAnalyzer(ABC):
    name = "imports"

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def analyze(self, source_dir: Path, ecosystem: str) -> Optional[Dict[str, Any]]:
        """Return an import/usage summary for ``source_dir``."""


class VulnerabilityScanner(ABC):
    name = "dep-scan"

    @abstractmethod
    async def scan(
        self, sbom_path: Path, reports_dir: Path, workspace: Path, ecosystem: str
    ) -> Optional[ScanReportFile]:
        """Scan ``sbom_path`` and return the report it produced, if any."""


class StaticAnalyzer(ABC):
    name = "semgrep"

    @abstractmethod
    async def scan(self, source_dir: Path, output_path: Path) -> ScanResult:
        """Run static analysis over ``source_dir``."""


class SecretScanner(ABC):
    name = "trufflehog"

    @abstractmethod
    async def scan(self, source_dir: Path, output_path: Path) -> ScanResult:
        """Scan ``source_dir`` for committed secrets."""

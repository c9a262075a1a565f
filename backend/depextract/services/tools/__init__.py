from depextract.services.tools.base import CLITool, CommandResult, OUT_OF_MEMORY_EXIT_CODE
from depextract.services.tools.cdxgen import CdxgenGenerator
from depextract.services.tools.depscan import DepScanScanner, find_scan_report
from depextract.services.tools.git import GitCloner, build_clone_url
from depextract.services.tools.imports import CommandImportAnalyzer
from depextract.services.tools.interfaces import (
    ImportAnalyzer,
    RepositoryCloner,
    SbomGenerator,
    ScanReportFile,
    ScanResult,
    SecretScanner,
    StaticAnalyzer,
    VulnerabilityScanner,
)
from depextract.services.tools.semgrep import SemgrepAnalyzer
from depextract.services.tools.trufflehog import TruffleHogScanner

__all__ = [
    "CLITool",
    "CdxgenGenerator",
    "CommandImportAnalyzer",
    "CommandResult",
    "DepScanScanner",
    "GitCloner",
    "ImportAnalyzer",
    "OUT_OF_MEMORY_EXIT_CODE",
    "RepositoryCloner",
    "SbomGenerator",
    "ScanReportFile",
    "ScanResult",
    "SecretScanner",
    "SemgrepAnalyzer",
    "StaticAnalyzer",
    "TruffleHogScanner",
    "VulnerabilityScanner",
    "build_clone_url",
    "find_scan_report",
]

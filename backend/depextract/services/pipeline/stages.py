from enum import Enum


class PipelineStage(str, Enum):
    """Pipeline stages, in execution order. Values double as log step names."""

    CLONING = "cloning"
    SBOM = "sbom"
    DEPS_SYNC = "deps_sync"
    AST_PARSING = "ast_parsing"
    VULN_SCAN = "vuln_scan"
    SEMGREP = "semgrep"
    TRUFFLEHOG = "trufflehog"
    FINALIZING = "finalizing"


CRITICAL_STAGES = frozenset(
    {
        PipelineStage.CLONING,
        PipelineStage.SBOM,
        PipelineStage.DEPS_SYNC,
        PipelineStage.FINALIZING,
    }
)

# Log steps that are not stages of their own
STEP_UPLOADING = "uploading"
STEP_POPULATE = "populate"
STEP_COMPLETE = "complete"

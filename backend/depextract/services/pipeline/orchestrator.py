"""
Extraction Pipeline Orchestrator

Drives one claimed job through its stages:

    cloning -> sbom -> deps_sync -> [ast_parsing] -> [vuln_scan]
            -> [semgrep] -> [trufflehog] -> finalizing

Bracketed stages are optional: a failure there is logged as a warning and the
run continues. Any other stage failing after its retries ends the run with a
classified, user-facing message written to the project.

Cancellation is checked before every stage. A cancelled run returns without
touching the job or project status, since the job already carries its
terminal state.
"""

import asyncio
import json
import logging
import shutil
import tempfile
import time
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, TypeVar

from depextract.core import utc_now
from depextract.core.config import settings
from depextract.core.metrics import pipeline_stage_duration_seconds
from depextract.models.job import ExtractionJob, ExtractionPayload
from depextract.repositories.artifacts import ArtifactStore, artifact_path
from depextract.repositories.extraction_logs import ExtractionLogRepository
from depextract.repositories.projects import ProjectRepository, ProjectStatus
from depextract.repositories.vulnerabilities import VulnerabilityRepository
from depextract.schemas.sbom import ParsedSBOM, ParsedSbomDependency
from depextract.services.enrichment import VulnerabilityEnrichmentService
from depextract.services.manifests import patch_dev_dependencies
from depextract.services.pipeline.cancellation import CancellationToken
from depextract.services.pipeline.errors import (
    ClassifiedPipelineError,
    JobCancelled,
    ToolError,
    ToolNotFoundError,
    classify_clone_error,
    classify_error,
    classify_sbom_error,
    manifest_missing_error,
    no_dependencies_error,
)
from depextract.services.pipeline.logger import ExtractionLogger, sanitize
from depextract.services.pipeline.retry import with_retry
from depextract.services.pipeline.stages import (
    PipelineStage,
    STEP_COMPLETE,
    STEP_POPULATE,
    STEP_UPLOADING,
)
from depextract.services.populate import PopulateClient
from depextract.services.reconciler import DependencyReconciler, ReconciliationResult
from depextract.services.sbom_parser import parse_sbom
from depextract.services.tools import (
    CdxgenGenerator,
    CommandImportAnalyzer,
    DepScanScanner,
    GitCloner,
    ImportAnalyzer,
    OUT_OF_MEMORY_EXIT_CODE,
    RepositoryCloner,
    SbomGenerator,
    SecretScanner,
    SemgrepAnalyzer,
    StaticAnalyzer,
    TruffleHogScanner,
    VulnerabilityScanner,
)
from depextract.services.vulnerabilities import VulnerabilityProcessor

logger = logging.getLogger(__name__)

T = TypeVar("T")

# User-facing names of the optional stages
OPTIONAL_STAGE_LABELS = {
    PipelineStage.AST_PARSING: "Import analysis",
    PipelineStage.VULN_SCAN: "Vulnerability scanning",
    PipelineStage.SEMGREP: "Static analysis",
    PipelineStage.TRUFFLEHOG: "Secret scanning",
}


class PipelineOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PipelineResult(NamedTuple):
    outcome: PipelineOutcome
    error: Optional[str] = None


class PipelineToolset:
    """The external collaborators a run uses; defaults shell out to the CLIs."""

    def __init__(
        self,
        cloner: Optional[RepositoryCloner] = None,
        sbom_generator: Optional[SbomGenerator] = None,
        import_analyzer: Optional[ImportAnalyzer] = None,
        vulnerability_scanner: Optional[VulnerabilityScanner] = None,
        static_analyzer: Optional[StaticAnalyzer] = None,
        secret_scanner: Optional[SecretScanner] = None,
    ):
        self.cloner = cloner or GitCloner()
        self.sbom_generator = sbom_generator or CdxgenGenerator()
        self.import_analyzer = import_analyzer or CommandImportAnalyzer()
        self.vulnerability_scanner = vulnerability_scanner or DepScanScanner()
        self.static_analyzer = static_analyzer or SemgrepAnalyzer()
        self.secret_scanner = secret_scanner or TruffleHogScanner()


class PipelineRun:
    """State of one job as it moves through the stages."""

    def __init__(self, job: ExtractionJob, workspace: Path, log: ExtractionLogger):
        self.job = job
        self.repository: ExtractionPayload = job.repository
        self.ecosystem = (self.repository.ecosystem or settings.DEFAULT_ECOSYSTEM).lower()
        self.workspace = workspace
        self.log = log

        self.repo_dir = workspace / "repo"
        self.package_dir = self.repo_dir
        self.sbom_path = workspace / "sbom.json"
        self.reports_dir = workspace / "depscan-reports"

        self.parsed: Optional[ParsedSBOM] = None
        self.dependencies: List[ParsedSbomDependency] = []
        self.reconciliation: Optional[ReconciliationResult] = None
        self.ast_parsed_at = None
        self.started = time.monotonic()

    @property
    def project_id(self) -> str:
        return self.job.project_id

    def artifact(self, name: str) -> str:
        return artifact_path(self.job.project_id, self.job.run_id, name)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def resolve_package_dir(repo_dir: Path, package_path: str) -> Optional[Path]:
    """
    The directory holding the project's manifest, or None when it does not
    exist or escapes the clone.
    """
    relative = (package_path or "").strip().strip("/")
    if not relative or relative == ".":
        return repo_dir
    root = repo_dir.resolve()
    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return candidate if candidate.is_dir() else None


class PipelineOrchestrator:
    def __init__(
        self,
        projects: ProjectRepository,
        log_repository: ExtractionLogRepository,
        artifacts: ArtifactStore,
        reconciler: DependencyReconciler,
        vulnerabilities: VulnerabilityRepository,
        tools: Optional[PipelineToolset] = None,
        populate: Optional[PopulateClient] = None,
        enrichment_factory: Callable[[], VulnerabilityEnrichmentService] = VulnerabilityEnrichmentService,
    ):
        self.projects = projects
        self.log_repository = log_repository
        self.artifacts = artifacts
        self.reconciler = reconciler
        self.vulnerabilities = vulnerabilities
        self.tools = tools or PipelineToolset()
        self.populate = populate or PopulateClient()
        self.enrichment_factory = enrichment_factory

    @classmethod
    def from_database(cls, db, tools: Optional[PipelineToolset] = None) -> "PipelineOrchestrator":
        return cls(
            projects=ProjectRepository(db),
            log_repository=ExtractionLogRepository(db),
            artifacts=ArtifactStore(db),
            reconciler=DependencyReconciler.from_database(db),
            vulnerabilities=VulnerabilityRepository(db),
            tools=tools,
        )

    async def run(self, job: ExtractionJob, token: Optional[CancellationToken] = None) -> PipelineResult:
        token = token or CancellationToken.never()
        log = ExtractionLogger(self.log_repository, job.project_id, job.run_id)
        workspace = Path(
            tempfile.mkdtemp(prefix=f"extract-{job.project_id}-", dir=settings.WORKSPACE_ROOT or None)
        )
        run = PipelineRun(job, workspace, log)
        enrichment = self.enrichment_factory()
        stage = PipelineStage.CLONING

        try:
            for stage, handler in (
                (PipelineStage.CLONING, self.clone),
                (PipelineStage.SBOM, self.generate_sbom),
                (PipelineStage.DEPS_SYNC, self.sync_dependencies),
                (PipelineStage.AST_PARSING, self.analyze_imports),
                (PipelineStage.VULN_SCAN, lambda r: self.scan_vulnerabilities(r, enrichment)),
                (PipelineStage.SEMGREP, self.static_analysis),
                (PipelineStage.TRUFFLEHOG, self.secret_scan),
                (PipelineStage.FINALIZING, self.finalize),
            ):
                await token.raise_if_cancelled()
                await handler(run)
            return PipelineResult(PipelineOutcome.COMPLETED)

        except JobCancelled:
            logger.info(f"Job {job.id} for project {job.project_id} cancelled during {stage.value}")
            await log.info(stage.value, "Extraction cancelled")
            return PipelineResult(PipelineOutcome.CANCELLED)

        except Exception as e:
            classified = e if isinstance(e, ClassifiedPipelineError) else classify_error(e)
            if not isinstance(e, ClassifiedPipelineError):
                logger.exception(f"Unexpected failure in {stage.value} for project {job.project_id}")
            cause = e.__cause__ if isinstance(e, ClassifiedPipelineError) and e.__cause__ else e
            message = sanitize(classified.user_message)
            await log.error(stage.value, message, error=cause)
            await self._record_failure(job.project_id, message)
            return PipelineResult(PipelineOutcome.FAILED, message)

        finally:
            await enrichment.close()
            if settings.KEEP_EXTRACT_WORKSPACE:
                logger.info(f"Keeping extraction workspace {workspace}")
            else:
                await asyncio.to_thread(shutil.rmtree, workspace, ignore_errors=True)

    async def _record_failure(self, project_id: str, message: str) -> None:
        try:
            await self.projects.set_error(project_id, message)
        except Exception:
            logger.exception(f"Could not record extraction error for project {project_id}")

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------

    async def _critical(
        self,
        run: PipelineRun,
        stage: PipelineStage,
        operation: Callable[[], Awaitable[T]],
        classify: Callable[[BaseException], ClassifiedPipelineError],
    ) -> T:
        async def on_retry(attempt: int, error: BaseException) -> None:
            await run.log.warn(stage.value, f"Attempt {attempt} failed: {error}. Retrying")

        start = time.monotonic()
        try:
            result = await with_retry(operation, stage.value, on_retry=on_retry)
        except JobCancelled:
            raise
        except Exception as e:
            pipeline_stage_duration_seconds.labels(stage=stage.value, outcome="failed").observe(
                time.monotonic() - start
            )
            raise classify(e) from e
        pipeline_stage_duration_seconds.labels(stage=stage.value, outcome="ok").observe(
            time.monotonic() - start
        )
        return result

    async def _optional(
        self,
        run: PipelineRun,
        stage: PipelineStage,
        operation: Callable[[], Awaitable[T]],
    ) -> Optional[T]:
        label = OPTIONAL_STAGE_LABELS[stage]
        start = time.monotonic()
        outcome = "failed"
        try:
            await self.projects.set_step(run.project_id, stage.value)
            result = await operation()
            outcome = "ok"
            return result
        except JobCancelled:
            raise
        except ToolNotFoundError as e:
            outcome = "unavailable"
            await run.log.warn(stage.value, f"{label} unavailable ({e.tool} not installed)")
        except ToolError as e:
            if e.exit_code == OUT_OF_MEMORY_EXIT_CODE:
                await run.log.warn(stage.value, f"{label} ran out of memory and was skipped")
            else:
                await run.log.warn(stage.value, f"{label} failed: {e}")
        except Exception as e:
            logger.exception(f"{label} failed for project {run.project_id}")
            await run.log.warn(stage.value, f"{label} failed: {e}")
        finally:
            pipeline_stage_duration_seconds.labels(stage=stage.value, outcome=outcome).observe(
                time.monotonic() - start
            )
        return None

    async def _upload(self, run: PipelineRun, name: str, content: bytes) -> None:
        """Store a run artifact; a failed upload only warns."""
        path = run.artifact(name)
        try:
            await self.artifacts.upload(path, content, metadata={"project_id": run.project_id})
        except Exception as e:
            logger.warning(f"Artifact upload {path} failed: {e}")
            await run.log.warn(STEP_UPLOADING, f"Failed to upload {name}: {e}")

    async def _upload_file(self, run: PipelineRun, name: str, path: Optional[Path]) -> None:
        if path is None or not path.is_file():
            return
        await self._upload(run, name, await asyncio.to_thread(path.read_bytes))

    # ------------------------------------------------------------------
    # Critical stages
    # ------------------------------------------------------------------

    async def clone(self, run: PipelineRun) -> None:
        stage = PipelineStage.CLONING
        await self.projects.set_step(run.project_id, stage.value, status=ProjectStatus.EXTRACTING)
        repository = run.repository
        await run.log.info(
            stage.value,
            f"Cloning {repository.repo_full_name or 'repository'} ({repository.default_branch})",
        )
        start = time.monotonic()

        async def attempt() -> Path:
            # A failed attempt can leave a partial checkout behind
            await asyncio.to_thread(shutil.rmtree, run.repo_dir, ignore_errors=True)
            return await self.tools.cloner.clone(repository, run.repo_dir)

        await self._critical(run, stage, attempt, classify_clone_error)

        package_dir = resolve_package_dir(run.repo_dir, repository.package_json_path)
        if package_dir is None:
            raise manifest_missing_error(repository.package_json_path)
        run.package_dir = package_dir
        await run.log.success(stage.value, "Repository cloned successfully", _elapsed_ms(start))

    async def generate_sbom(self, run: PipelineRun) -> None:
        stage = PipelineStage.SBOM
        await self.projects.set_step(run.project_id, stage.value)
        await run.log.info(stage.value, "Generating SBOM")
        start = time.monotonic()

        async def attempt() -> Dict[str, Any]:
            await self.tools.sbom_generator.generate(run.package_dir, run.sbom_path, run.ecosystem)
            return await asyncio.to_thread(_read_json, run.sbom_path)

        bom = await self._critical(run, stage, attempt, classify_sbom_error)
        if not isinstance(bom, dict):
            raise classify_sbom_error(ValueError("SBOM is not a JSON object"))

        run.parsed = parse_sbom(bom)
        run.dependencies = await asyncio.to_thread(
            patch_dev_dependencies, run.parsed.dependencies, run.package_dir, run.ecosystem
        )
        if not run.dependencies:
            raise no_dependencies_error()

        await run.log.success(
            stage.value,
            f"SBOM generated. Found {len(run.dependencies)} dependencies",
            _elapsed_ms(start),
            metadata={
                "components": run.parsed.total_components,
                "direct": run.parsed.direct_count,
                "transitive": run.parsed.transitive_count,
                "skipped": run.parsed.skipped_components,
            },
        )
        await self._upload_file(run, "sbom.json", run.sbom_path)

    async def sync_dependencies(self, run: PipelineRun) -> None:
        stage = PipelineStage.DEPS_SYNC
        await self.projects.set_step(run.project_id, stage.value)
        start = time.monotonic()
        parsed = run.parsed

        async def attempt() -> ReconciliationResult:
            return await self.reconciler.reconcile(
                run.project_id,
                run.ecosystem,
                run.dependencies,
                parsed.relationships,
                parsed.ref_lookup,
            )

        result = await self._critical(
            run, stage, attempt, lambda e: classify_error(e, prefix="Dependency sync failed")
        )
        run.reconciliation = result
        await run.log.success(
            stage.value,
            f"Dependencies synced ({result.direct_count} direct, {result.transitive_count} transitive)",
            _elapsed_ms(start),
            metadata={"edges": result.edge_count, "new_direct": len(result.new_direct_dependencies)},
        )

        if result.has_new_dependencies:
            await self.queue_population(run, result)

    async def queue_population(self, run: PipelineRun, result: ReconciliationResult) -> None:
        try:
            await self.populate.queue_populate(
                run.project_id,
                run.job.organization_id,
                run.ecosystem,
                result.new_direct_dependencies,
            )
        except Exception as e:
            logger.warning(f"Queue-populate failed for project {run.project_id}: {e}")
            await run.log.warn(STEP_POPULATE, f"Failed to queue dependency population: {e}")
            return
        await run.log.info(
            STEP_POPULATE,
            f"Queued {len(result.new_direct_dependencies)} new dependencies for population",
        )

    async def finalize(self, run: PipelineRun) -> None:
        stage = PipelineStage.FINALIZING
        result = run.reconciliation
        status = ProjectStatus.ANALYZING if result.has_new_dependencies else ProjectStatus.READY

        async def attempt() -> None:
            await self.projects.set_step(run.project_id, stage.value)
            await self.projects.set_dependencies_count(
                run.project_id, run.job.organization_id, result.project_dependency_count
            )
            await self.projects.set_completed(run.project_id, status, ast_parsed_at=run.ast_parsed_at)

        await self._critical(
            run, stage, attempt, lambda e: classify_error(e, prefix="Finalizing failed")
        )
        await run.log.success(
            STEP_COMPLETE,
            f"Extraction complete. {result.project_dependency_count} dependencies tracked",
            _elapsed_ms(run.started),
            metadata={"status": status},
        )

    # ------------------------------------------------------------------
    # Optional stages
    # ------------------------------------------------------------------

    async def analyze_imports(self, run: PipelineRun) -> None:
        stage = PipelineStage.AST_PARSING
        analyzer = self.tools.import_analyzer
        if not analyzer.enabled:
            await run.log.info(stage.value, "Import analysis not configured, skipping")
            return
        start = time.monotonic()

        summary = await self._optional(
            run, stage, lambda: analyzer.analyze(run.package_dir, run.ecosystem)
        )
        if summary is None:
            return
        run.ast_parsed_at = utc_now()
        await run.log.success(stage.value, "Import analysis complete", _elapsed_ms(start))

    async def scan_vulnerabilities(
        self, run: PipelineRun, enrichment: VulnerabilityEnrichmentService
    ) -> None:
        stage = PipelineStage.VULN_SCAN
        await run.log.info(stage.value, "Scanning dependencies for vulnerabilities")
        start = time.monotonic()

        async def scan():
            report = await self.tools.vulnerability_scanner.scan(
                run.sbom_path, run.reports_dir, run.package_dir, run.ecosystem
            )
            if report is None:
                await run.log.warn(stage.value, "Vulnerability scan produced no report")
                return None
            await self._upload(run, "dep-scan.json", json.dumps(report.data).encode("utf-8"))

            project = await self.projects.get_context(run.project_id)
            processor = VulnerabilityProcessor(self.vulnerabilities, enrichment)
            return await processor.process(report.data, project, run.reconciliation.tracked)

        summary = await self._optional(run, stage, scan)
        if summary is not None:
            await run.log.success(
                stage.value,
                summary.message,
                _elapsed_ms(start),
                metadata=summary.model_dump(),
            )

    async def static_analysis(self, run: PipelineRun) -> None:
        stage = PipelineStage.SEMGREP
        start = time.monotonic()

        result = await self._optional(
            run,
            stage,
            lambda: self.tools.static_analyzer.scan(run.package_dir, run.workspace / "semgrep.json"),
        )
        if result is None:
            return
        await self._upload_file(run, "semgrep.json", result.output_path)
        await run.log.success(
            stage.value, f"Static analysis complete. Found {result.findings} findings", _elapsed_ms(start)
        )

    async def secret_scan(self, run: PipelineRun) -> None:
        stage = PipelineStage.TRUFFLEHOG
        start = time.monotonic()

        result = await self._optional(
            run,
            stage,
            lambda: self.tools.secret_scanner.scan(run.package_dir, run.workspace / "trufflehog.json"),
        )
        if result is None:
            return
        await self._upload_file(run, "trufflehog.json", result.output_path)
        await run.log.success(
            stage.value,
            f"Secret scan complete. Found {result.findings} potential secrets",
            _elapsed_ms(start),
        )

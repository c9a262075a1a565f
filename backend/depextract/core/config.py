from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Dependency Extraction Worker"

    MONGODB_URL: str
    DATABASE_NAME: str = "dependency_extraction"

    # Redis Cache Settings
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_PREFIX: str = "dx:"
    CACHE_DEFAULT_TTL_HOURS: int = 24
    ENRICHMENT_CACHE_ENABLED: bool = True

    # Enrichment feeds
    ENRICHMENT_MAX_RETRIES: int = 3
    ENRICHMENT_RETRY_DELAY: float = 1.0

    # Worker Settings
    WORKER_COUNT: int = 1
    MACHINE_ID: str = ""
    POLL_INTERVAL_SECONDS: float = 5.0
    HEARTBEAT_INTERVAL_SECONDS: float = 30.0
    PROJECT_LOCK_TTL_SECONDS: int = 2 * 60 * 60

    # Pipeline retries (critical stages)
    MAX_RETRIES: int = 3
    RETRY_DELAY_SECONDS: float = 2.0

    # External tool timeouts
    CLONE_TIMEOUT_SECONDS: float = 300.0
    SBOM_TIMEOUT_SECONDS: float = 300.0
    IMPORT_ANALYSIS_TIMEOUT_SECONDS: float = 300.0
    VULN_SCAN_TIMEOUT_SECONDS: float = 90 * 60.0
    STATIC_ANALYSIS_TIMEOUT_SECONDS: float = 60.0
    SECRET_SCAN_TIMEOUT_SECONDS: float = 60.0

    # Import analysis is skipped unless a command is configured
    IMPORT_ANALYZER_COMMAND: str = ""

    # Workspace
    WORKSPACE_ROOT: str = ""
    KEEP_EXTRACT_WORKSPACE: bool = False
    DEFAULT_ECOSYSTEM: str = "npm"

    # Backend callback for dependency population
    BACKEND_URL: str = "http://localhost:3001"
    EXTRACTION_WORKER_SECRET: str = ""

    # Metrics (0 disables the exporter)
    METRICS_PORT: int = 0

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()

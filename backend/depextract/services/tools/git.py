import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit

from depextract.core.config import settings
from depextract.models.job import ExtractionPayload
from depextract.services.tools.base import CLITool
from depextract.services.tools.interfaces import RepositoryCloner

logger = logging.getLogger(__name__)

PROVIDER_HOSTS = {
    "github": "github.com",
    "gitlab": "gitlab.com",
    "bitbucket": "bitbucket.org",
}

# Username each provider expects alongside an access token in a clone URL
TOKEN_USERNAMES = {
    "github": "x-access-token",
    "gitlab": "oauth2",
    "bitbucket": "x-token-auth",
}


def build_clone_url(repository: ExtractionPayload, access_token: Optional[str] = None) -> str:
    """
    Resolve the HTTPS clone URL for ``repository``.

    An explicit ``clone_url`` wins; otherwise the URL is derived from the
    provider and ``repo_full_name``. A token, when given, is embedded as the
    URL's credentials.
    """
    provider = (repository.provider or "github").lower()
    url = repository.clone_url
    if not url:
        if not repository.repo_full_name:
            raise ValueError("Job payload has neither clone_url nor repo_full_name")
        host = PROVIDER_HOSTS.get(provider, PROVIDER_HOSTS["github"])
        url = f"https://{host}/{repository.repo_full_name}.git"

    if not access_token:
        return url

    parts = urlsplit(url)
    if parts.scheme != "https" or "@" in parts.netloc:
        return url
    username = TOKEN_USERNAMES.get(provider, TOKEN_USERNAMES["github"])
    netloc = f"{username}:{quote(access_token, safe='')}@{parts.netloc}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class GitCloner(CLITool, RepositoryCloner):
    name = "git"
    cli_command = "git"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.CLONE_TIMEOUT_SECONDS

    async def clone(self, repository: ExtractionPayload, destination: Path) -> Path:
        token = getattr(repository, "access_token", None)
        url = build_clone_url(repository, token if isinstance(token, str) else None)
        branch = repository.default_branch or "main"

        destination.parent.mkdir(parents=True, exist_ok=True)
        args = [
            self.cli_command,
            "clone",
            "--branch",
            branch,
            "--depth",
            "1",
            "--single-branch",
            url,
            str(destination),
        ]
        # Never block on an interactive credential prompt
        await self._run_checked(args, env={"GIT_TERMINAL_PROMPT": "0"})
        logger.debug(f"Cloned {repository.repo_full_name or url} ({branch}) into {destination}")
        return destination

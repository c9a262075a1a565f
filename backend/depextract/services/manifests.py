"""
Manifest-based dev dependency detection.

cdxgen does not reliably distinguish development from production
dependencies, so direct dependencies are cross-referenced with the
ecosystem's manifest after parsing. Transitive records are never touched.
"""

import json
import logging
import re
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Set, Union

from depextract.core.constants import SOURCE_DEV_DEPENDENCIES
from depextract.schemas.sbom import ParsedSbomDependency

logger = logging.getLogger(__name__)

_REQUIREMENT_NAME_SPLIT = re.compile(r"[=<>!~;\[\s@]")
_MAVEN_DEV_SCOPES = {"test", "provided"}


def _normalize_python_name(name: str) -> str:
    # PEP 503: runs of -, _ and . are equivalent
    return re.sub(r"[-_.]+", "-", name).lower()


def collect_npm_dev_dependencies(repo_root: Path) -> Set[str]:
    """Names under ``devDependencies`` in package.json."""
    path = repo_root / "package.json"
    if not path.is_file():
        return set()
    try:
        manifest = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug(f"Unreadable package.json at {path}: {e}")
        return set()

    dev = manifest.get("devDependencies") if isinstance(manifest, dict) else None
    if not isinstance(dev, dict):
        return set()
    return set(dev.keys())


def _poetry_dev_sections(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    poetry = data.get("tool", {}).get("poetry", {})
    if not isinstance(poetry, dict):
        return []

    sections = []
    legacy = poetry.get("dev-dependencies")
    if isinstance(legacy, dict):
        sections.append(legacy)

    groups = poetry.get("group", {})
    if isinstance(groups, dict):
        for group in groups.values():
            deps = group.get("dependencies") if isinstance(group, dict) else None
            if isinstance(deps, dict):
                sections.append(deps)
    return sections


def collect_pypi_dev_dependencies(repo_root: Path) -> Set[str]:
    """
    Normalized names from Poetry dev groups in pyproject.toml and from
    requirements-dev.txt.
    """
    names: Set[str] = set()

    pyproject = repo_root / "pyproject.toml"
    if pyproject.is_file():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.debug(f"Unreadable pyproject.toml at {pyproject}: {e}")
            data = {}
        for section in _poetry_dev_sections(data):
            names.update(
                _normalize_python_name(name) for name in section if name != "python"
            )

    requirements = repo_root / "requirements-dev.txt"
    if requirements.is_file():
        try:
            lines = requirements.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.debug(f"Unreadable requirements-dev.txt at {requirements}: {e}")
            lines = []
        for line in lines:
            stripped = line.strip()
            if not stripped or stripped.startswith(("#", "-")):
                continue
            name = _REQUIREMENT_NAME_SPLIT.split(stripped, maxsplit=1)[0]
            if name:
                names.add(_normalize_python_name(name))

    return names


def collect_maven_dev_dependencies(repo_root: Path) -> Set[str]:
    """
    ``groupId:artifactId`` of pom.xml dependencies scoped test or provided.
    The bare artifactId is included too since cdxgen names maven components
    by artifactId alone.
    """
    path = repo_root / "pom.xml"
    if not path.is_file():
        return set()
    try:
        root = ET.parse(path).getroot()
    except (OSError, ET.ParseError) as e:
        logger.debug(f"Unreadable pom.xml at {path}: {e}")
        return set()

    names: Set[str] = set()
    for element in root.iter():
        if not element.tag.endswith("dependency"):
            continue
        fields = {child.tag.rsplit("}", 1)[-1]: (child.text or "").strip() for child in element}
        if fields.get("scope") not in _MAVEN_DEV_SCOPES:
            continue
        group_id = fields.get("groupId")
        artifact_id = fields.get("artifactId")
        if not artifact_id:
            continue
        if group_id:
            names.add(f"{group_id}:{artifact_id}")
        names.add(artifact_id)
    return names


def _match_key(name: str, ecosystem: str) -> str:
    if ecosystem == "pypi":
        return _normalize_python_name(name)
    if ecosystem == "maven":
        return name.replace("/", ":")
    return name


_COLLECTORS = {
    "npm": collect_npm_dev_dependencies,
    "pypi": collect_pypi_dev_dependencies,
    "maven": collect_maven_dev_dependencies,
}


def patch_dev_dependencies(
    dependencies: List[ParsedSbomDependency],
    repo_root: Union[str, Path],
    ecosystem: str,
) -> List[ParsedSbomDependency]:
    """
    Return ``dependencies`` with direct records that the manifest declares as
    development-only moved to the ``devDependencies`` source.

    Unknown ecosystems and missing or invalid manifests yield the input
    unchanged.
    """
    collector = _COLLECTORS.get((ecosystem or "").lower())
    if collector is None:
        return list(dependencies)

    dev_names = collector(Path(repo_root))
    if not dev_names:
        return list(dependencies)

    patched: List[ParsedSbomDependency] = []
    flipped = 0
    for dep in dependencies:
        if dep.is_direct and _match_key(dep.name, ecosystem.lower()) in dev_names:
            patched.append(dep.model_copy(update={"source": SOURCE_DEV_DEPENDENCIES}))
            flipped += 1
        else:
            patched.append(dep)

    if flipped:
        logger.info(f"Reclassified {flipped} direct dependencies as devDependencies")
    return patched
